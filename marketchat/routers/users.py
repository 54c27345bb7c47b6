from fastapi import APIRouter, Depends

from marketchat.repositories.user_repository import UserRepository
from marketchat.schemas.chat import UserNameOut
from marketchat.utils.dependencies import get_user_repository


router = APIRouter(prefix="/users", tags=["users"])


@router.get("/{user_id}", response_model=UserNameOut)
async def get_user_name(user_id: str, repo: UserRepository = Depends(get_user_repository)):
    name = await repo.get_display_name(user_id)
    return UserNameOut(id=user_id, name=name)
