from __future__ import annotations

import time

from jose import jwt

from core.constants import Settings, get_settings

CHAT_TOKEN_ALGORITHM = "HS256"


class AuthService:
    """Issues chat transport user tokens signed with the API secret."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    def issue_chat_token(self, user_id: str, now: int | None = None) -> str:
        """Create a time-bounded token for a chat user.

        Args:
            user_id: Chat user id the client will connect as
            now: Issue time in epoch seconds (defaults to the current time)
        """
        if not user_id:
            raise ValueError("user_id is required")
        if not self.settings.stream_api_secret:
            raise ValueError("STREAM_API_SECRET is not configured")

        issued_at = int(time.time()) if now is None else now
        payload = {
            "user_id": user_id,
            "iat": issued_at,
            "exp": issued_at + self.settings.token_ttl_seconds,
        }
        token: str = jwt.encode(payload, self.settings.stream_api_secret, algorithm=CHAT_TOKEN_ALGORITHM)
        return token


__all__ = ["AuthService", "CHAT_TOKEN_ALGORITHM"]
