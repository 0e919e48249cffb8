from dataclasses import dataclass
from typing import Optional

from .models import Role


@dataclass(frozen=True)
class Principal:
    """
    The authenticated actor behind a request. Never persisted.
    """
    id: int
    role: Role
    branch_id: Optional[int] = None

    @classmethod
    def from_user(cls, user) -> "Principal":
        return cls(id=user.id, role=Role(user.role), branch_id=user.branch_id)
