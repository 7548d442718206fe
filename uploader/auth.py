"""
Authentication provider interface.

The uploader only needs the current user's identity and a notification when
it changes; token exchange belongs to the identity SDK.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional

from .errors import NotAuthenticated

logger = logging.getLogger("video_uploader")


@dataclass(frozen=True)
class AuthUser:
    uid: str
    email: Optional[str] = None


AuthListener = Callable[[Optional[AuthUser]], None]


class AuthProvider(ABC):
    """Source of the current user session"""

    @property
    @abstractmethod
    def current_user(self) -> Optional[AuthUser]:
        pass

    @abstractmethod
    def add_state_listener(self, listener: AuthListener) -> None:
        """Register a callback invoked with the new user (or None) on change"""
        pass

    def require_user(self) -> AuthUser:
        """
        Return the signed-in user.

        Raises:
            NotAuthenticated: if nobody is signed in
        """
        user = self.current_user
        if user is None:
            raise NotAuthenticated()
        return user


class LocalAuthProvider(AuthProvider):
    """Session held in process, signed in and out explicitly"""

    def __init__(self):
        self._user: Optional[AuthUser] = None
        self._listeners: List[AuthListener] = []
        self._lock = threading.Lock()

    @property
    def current_user(self) -> Optional[AuthUser]:
        return self._user

    def add_state_listener(self, listener: AuthListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def _notify(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(self._user)

    def sign_in(self, uid: str, email: Optional[str] = None) -> AuthUser:
        if not uid:
            raise ValueError("uid is required")
        user = AuthUser(uid=uid, email=email)
        with self._lock:
            if self._user == user:
                return user
            self._user = user
        logger.info(f"Signed in as {uid}")
        self._notify()
        return user

    def sign_out(self) -> None:
        with self._lock:
            if self._user is None:
                return
            self._user = None
        logger.info("Signed out")
        self._notify()
