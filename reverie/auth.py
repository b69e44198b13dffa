"""
Session-scoped authentication state.

Sign-in mechanics live outside reverie; this only tracks who is signed
in and tells listeners (the entry store) when that changes.
"""

import logging
import os
from typing import Optional

from .protocol import PrincipalListener
from .types import Principal

logger = logging.getLogger(__name__)


class SessionAuth:
    """AuthProvider holding the principal for one session."""

    def __init__(self, principal: Optional[Principal] = None):
        self._principal = principal
        self._listeners: list[PrincipalListener] = []

    @property
    def principal(self) -> Optional[Principal]:
        return self._principal

    def add_listener(self, listener: PrincipalListener) -> None:
        self._listeners.append(listener)

    async def sign_in(self, principal: Principal) -> None:
        logger.info("Signed in as %s", principal.email or principal.id)
        self._principal = principal
        await self._notify()

    async def sign_out(self) -> None:
        if self._principal is not None:
            logger.info("Signed out %s", self._principal.email or self._principal.id)
        self._principal = None
        await self._notify()

    async def _notify(self) -> None:
        for listener in list(self._listeners):
            await listener(self._principal)


def principal_from_env(default_id: str = "") -> Optional[Principal]:
    """Principal from REVERIE_USER_ID / REVERIE_USER_EMAIL, or None."""
    user_id = os.environ.get("REVERIE_USER_ID", default_id)
    if not user_id:
        return None
    return Principal(id=user_id, email=os.environ.get("REVERIE_USER_EMAIL", ""))
