# Overview: Sign-in/out with the session mirrored to the local cache for offline reuse.

from __future__ import annotations

import logging

from ..errors import PosSyncError

logger = logging.getLogger(__name__)


class SessionManager:
    """
    Owns the Session. The cached copy under ``user-session`` is superseded
    wholesale on sign-in/refresh and cleared wholesale on sign-out.
    """

    def __init__(self, backend, cache, probe) -> None:
        self.backend = backend
        self.cache = cache
        self.probe = probe

    def sign_in(self, email: str, password: str) -> dict:
        try:
            session = self.backend.sign_in_with_password(email, password)
        except PosSyncError:
            if not self.probe.is_online():
                stored = self.cache.get_session()
                if stored:
                    logger.info("Offline sign-in, continuing with the stored session")
                    return stored
            raise
        self.cache.save_session(session)
        return session

    def sign_out(self) -> None:
        """Local state always wins: the cache is cleared even if the remote call fails."""
        try:
            self.backend.sign_out(self.cache.get_auth_token())
        except PosSyncError as exc:
            logger.warning("Remote sign-out failed: %s", exc)
        finally:
            self.cache.clear_session()

    def get_session(self) -> dict | None:
        stored = self.cache.get_session()
        token = stored.get("access_token") if stored else None
        try:
            session = self.backend.get_session(token)
        except PosSyncError as exc:
            if not self.probe.is_online():
                return stored
            logger.warning("Session fetch failed while online: %s", exc)
            return None

        if session:
            # Keep the refresh token the live lookup does not return
            merged = {**(stored or {}), **session}
            self.cache.save_session(merged)
            return merged
        return stored

    def refresh_session(self) -> dict | None:
        stored = self.cache.get_session()
        try:
            session = self.backend.refresh_session(stored.get("refresh_token") if stored else None)
        except PosSyncError as exc:
            logger.info("Session refresh failed, using stored session: %s", exc)
            return stored
        if session:
            self.cache.save_session(session)
        return session
