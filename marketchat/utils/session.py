from dataclasses import dataclass
from typing import Optional

from marketchat.errors import UnauthenticatedError


@dataclass(frozen=True)
class Session:
    """Identity of the caller, passed explicitly into every service call."""

    user_id: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)

    def require_user(self) -> str:
        if not self.is_authenticated:
            raise UnauthenticatedError("No authenticated session")
        return self.user_id


ANONYMOUS = Session()
