from dataclasses import dataclass

from models import UserMode


@dataclass(frozen=True)
class Principal:
    """Authenticated caller, as handed to the core by the auth layer."""
    user_id: int
    role: str = "user"
    mode: str = UserMode.REAL.value

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_promotor(self) -> bool:
        return self.mode == UserMode.PROMOTOR.value

    @classmethod
    def from_user(cls, user) -> "Principal":
        return cls(user_id=int(user.id), role=user.role, mode=user.mode)
