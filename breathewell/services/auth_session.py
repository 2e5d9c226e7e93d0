# breathewell/services/auth_session.py
from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, List, Optional

from ..models.auth import Principal
from .notify import run_bg

logger = logging.getLogger(__name__)

AuthStateCallback = Callable[[Optional[Principal]], Any]


class AuthSession:
    """
    Holds the signed-in principal for one client and tells listeners when it
    changes. Callbacks may be plain functions or coroutine functions; the
    latter run as background tasks.
    """

    def __init__(self, principal: Optional[Principal] = None) -> None:
        self._principal = principal
        self._listeners: List[AuthStateCallback] = []

    def current_principal(self) -> Optional[Principal]:
        return self._principal

    @property
    def uid(self) -> Optional[str]:
        return self._principal.uid if self._principal else None

    def on_auth_state_change(self, callback: AuthStateCallback) -> Callable[[], None]:
        """Register `callback`; returns a function that removes it."""
        self._listeners.append(callback)

        def _remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _remove

    def sign_in(self, principal: Principal) -> None:
        self._principal = principal
        self._notify()

    def sign_out(self) -> None:
        self._principal = None
        self._notify()

    def _notify(self) -> None:
        for callback in list(self._listeners):
            try:
                result = callback(self._principal)
            except Exception:
                logger.exception("Auth state listener failed")
                continue
            if inspect.isawaitable(result):
                run_bg(result, name="auth-state-listener")
