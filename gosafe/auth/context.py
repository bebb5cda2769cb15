from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class AuthContext:
    """Who is asking, passed explicitly to anything that needs a session."""

    token: Optional[str] = None
    user_id: Optional[str] = None
    name: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token) and self.user_id is not None

    @classmethod
    def anonymous(cls) -> "AuthContext":
        return cls()
