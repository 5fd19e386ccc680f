"""Back-office session state.

``check_auth`` stops contacting the origin after ``max_check_attempts``
consecutive unsuccessful checks and stays unauthenticated until a
successful ``login``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from catalogcache.errors import CatalogError

if TYPE_CHECKING:
    from catalogcache.origin import OriginClient

log = structlog.get_logger()


class AuthController:
    def __init__(self, origin: OriginClient, *, max_check_attempts: int = 3) -> None:
        self._origin = origin
        self._max_check_attempts = max_check_attempts
        self._failed_checks = 0

        self.is_authenticated = False
        self.loading = False
        self.error: str | None = None

    @property
    def locked(self) -> bool:
        return self._failed_checks >= self._max_check_attempts

    async def login(self, password: str) -> bool:
        self.loading = True
        self.error = None
        try:
            await self._origin.login(password)
        except CatalogError as exc:
            self.is_authenticated = False
            self.error = "Connection error" if exc.recoverable else exc.message
            return False
        finally:
            self.loading = False
        self.is_authenticated = True
        self._failed_checks = 0
        log.info("auth_login_ok")
        return True

    async def logout(self) -> None:
        """Clear local state first; the origin call is best-effort."""
        self.is_authenticated = False
        self.error = None
        try:
            await self._origin.logout()
        except CatalogError as exc:
            log.info("auth_logout_remote_failed", error=exc.message)

    async def check_auth(self) -> bool:
        if self.locked:
            log.warning("auth_check_locked", attempts=self._failed_checks)
            self.is_authenticated = False
            self.error = "Too many failed authentication checks"
            return False

        self.loading = True
        self.error = None
        try:
            authenticated = await self._origin.verify()
        except CatalogError as exc:
            self._failed_checks += 1
            self.is_authenticated = False
            self.error = "Connection error"
            log.warning("auth_check_failed", attempts=self._failed_checks, error=exc.message)
            return False
        finally:
            self.loading = False

        if authenticated:
            self._failed_checks = 0
        else:
            self._failed_checks += 1
        self.is_authenticated = authenticated
        return authenticated
