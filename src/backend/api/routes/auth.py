"""
Chat token endpoint.
"""

from __future__ import annotations

from fastapi import APIRouter

from api.dependencies import Auth
from api.middleware.exception_handlers import MissingFieldError, TokenIssueError
from models.schemas.agents import TokenRequest, TokenResponse
from utils.logger import logger

router = APIRouter()


@router.post(
    "/token",
    response_model=TokenResponse,
    summary="Issue chat token",
    description="Sign a one-hour chat transport token for a user.",
    responses={
        200: {
            "description": "Token issued",
            "content": {"application/json": {"example": {"token": "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9..."}}},
        },
        400: {"description": "Missing userId"},
        500: {"description": "Token could not be signed"},
    },
)
async def issue_token(auth: Auth, body: TokenRequest | None = None) -> TokenResponse:
    """Issue a chat token for ``userId``."""
    if body is None or not body.userId:
        raise MissingFieldError("userId is required", field="userId")

    try:
        token = auth.issue_chat_token(body.userId)
    except Exception as e:
        logger.error(f"Error generating token for {body.userId}: {e}")
        raise TokenIssueError(e) from e

    return TokenResponse(token=token)
