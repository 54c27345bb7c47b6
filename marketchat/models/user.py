from typing import Optional, TypedDict


class UserDocument(TypedDict, total=False):

    _id: str
    name: Optional[str]
    email: str
