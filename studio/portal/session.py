"""
Explicit auth session lifecycle.

    anonymous -> authenticating -> authenticated -> signed_out
                       |
                       +-> anonymous (failed sign-in)

    anonymous / signed_out -> password_recovery -> anonymous (password reset)
                                                -> authenticating (sign-in)

One AuthSession is created per request that drives auth and is passed to the
handlers that need it. Nothing here is module-level state.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

ANONYMOUS = "anonymous"
AUTHENTICATING = "authenticating"
AUTHENTICATED = "authenticated"
SIGNED_OUT = "signed_out"
PASSWORD_RECOVERY = "password_recovery"

TRANSITIONS: dict[str, frozenset[str]] = {
    ANONYMOUS: frozenset([AUTHENTICATING, PASSWORD_RECOVERY]),
    AUTHENTICATING: frozenset([AUTHENTICATED, ANONYMOUS]),
    AUTHENTICATED: frozenset([SIGNED_OUT]),
    SIGNED_OUT: frozenset([AUTHENTICATING, PASSWORD_RECOVERY]),
    PASSWORD_RECOVERY: frozenset([ANONYMOUS, AUTHENTICATING]),
}


class InvalidSessionTransition(Exception):
    def __init__(self, current: str, target: str):
        super().__init__(f"cannot move session from {current} to {target}")
        self.current = current
        self.target = target


@dataclass
class AuthSession:
    state: str = ANONYMOUS
    user_id: Optional[str] = None
    role: Optional[str] = None
    history: list[str] = field(default_factory=list)

    def _move(self, target: str) -> None:
        if target not in TRANSITIONS[self.state]:
            raise InvalidSessionTransition(self.state, target)
        self.history.append(self.state)
        self.state = target

    @property
    def is_authenticated(self) -> bool:
        return self.state == AUTHENTICATED

    def begin_sign_in(self) -> None:
        self._move(AUTHENTICATING)

    def succeed(self, user_id: str, role: str) -> None:
        self._move(AUTHENTICATED)
        self.user_id = user_id
        self.role = role

    def fail(self) -> None:
        self._move(ANONYMOUS)
        self.user_id = None
        self.role = None

    def sign_out(self) -> None:
        self._move(SIGNED_OUT)
        self.user_id = None
        self.role = None

    def begin_recovery(self) -> None:
        self._move(PASSWORD_RECOVERY)

    def finish_recovery(self) -> None:
        self._move(ANONYMOUS)

    @classmethod
    def restored(cls, user_id: str, role: str) -> "AuthSession":
        """Session rebuilt from a valid token on an incoming request."""
        session = cls()
        session.begin_sign_in()
        session.succeed(user_id, role)
        return session
