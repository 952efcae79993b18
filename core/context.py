"""
Request-scoped context objects for core services.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class AuthContext:
    user_id: str
    email: Optional[str] = None


@dataclass(frozen=True)
class RequestContext:
    auth: AuthContext
    request_id: Optional[str] = None
    source: Optional[str] = None

    @property
    def user_id(self) -> str:
        return self.auth.user_id


__all__ = [
    "AuthContext",
    "RequestContext",
]
