"""Identity store client for deleting authentication accounts, with retry logic."""

import asyncio
import logging
from urllib.parse import quote

import httpx
from pydantic import BaseModel, Field

from orgflow.core.config import constants, settings


logger = logging.getLogger(__name__)


# HTTP status code constants for error handling
HTTP_CLIENT_ERROR_START = 400
HTTP_CLIENT_ERROR_END = 500


class IdentityDeleteResult(BaseModel):
    """Result of deleting an identity-store account."""

    success: bool = Field(..., description="Whether the account is gone from the identity store")
    skipped: bool = Field(default=False, description="True when no identity store is configured")
    error: str | None = Field(None, description="Error message if failed")


async def delete_identity(
    *,
    user_id: str,
    max_retries: int = constants.IDENTITY_MAX_RETRIES,
    retry_delay: float = constants.IDENTITY_RETRY_DELAY_SECONDS,
) -> IdentityDeleteResult:
    """Delete a user's account from the external identity store.

    Never raises: callers treat identity deletion as best effort. An account
    that is already gone (404) counts as deleted.
    """
    if not settings.identity_base_url:
        logger.info("Identity store not configured, skipping account deletion", extra={"user_id": user_id})
        return IdentityDeleteResult(success=False, skipped=True)

    try:
        api_key = settings.require_credential("identity_api_key", "Identity store")
    except ValueError as e:
        logger.error("Identity store has no API key", extra={"user_id": user_id})
        return IdentityDeleteResult(success=False, error=str(e))

    url = f"{settings.identity_base_url.rstrip('/')}/api/users/{quote(user_id, safe='')}"
    headers = {"Accept": "application/json", "X-Api-Key": api_key}

    for attempt in range(max_retries):
        try:
            async with httpx.AsyncClient(timeout=constants.API_TIMEOUT_SECONDS) as client:
                response = await client.delete(url, headers=headers)

                if response.is_success or response.status_code == constants.HTTP_NOT_FOUND:
                    logger.info("Deleted identity account", extra={"user_id": user_id})
                    return IdentityDeleteResult(success=True)

                if HTTP_CLIENT_ERROR_START <= response.status_code < HTTP_CLIENT_ERROR_END:
                    return IdentityDeleteResult(success=False, error=f"Client error: {response.text}")

                raise httpx.HTTPStatusError(
                    f"Server error: {response.status_code}", request=response.request, response=response
                )
        except httpx.HTTPError as e:
            if attempt < max_retries - 1:
                await asyncio.sleep(retry_delay * (2**attempt))
            else:
                return IdentityDeleteResult(success=False, error=f"Failed after retries: {e!s}")

    return IdentityDeleteResult(success=False, error="Max retries exceeded")
