"""Admin API key authentication.

Cache administration endpoints are protected by an ``X-API-Key`` header
validated against a comma-separated list from the environment. The proxy
endpoints themselves stay public: browsers call them directly.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from typing import Annotated

from fastapi import Header

from beach_proxy.core.config import settings
from beach_proxy.core.errors import AuthenticationAppError

logger = logging.getLogger(__name__)


def parse_api_keys(keys_string: str | None) -> set[str]:
    """Parse comma-separated API keys into a set.

    Examples:
        >>> parse_api_keys("key1, key2 , key3 ")
        {'key1', 'key2', 'key3'}
        >>> parse_api_keys(None)
        set()
    """
    if not keys_string:
        return set()

    return {key.strip() for key in keys_string.split(",") if key.strip()}


def _key_hash(key: str) -> str:
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def validate_admin_key(provided_key: str | None) -> None:
    """Validate that the provided key matches one of the configured admin keys.

    Pure validation logic without FastAPI dependencies for easy testing.

    Args:
        provided_key: Key from the X-API-Key header, if any.

    Raises:
        AuthenticationAppError: If the key is missing/invalid, or authentication
            is required but no keys are configured.
    """
    if not settings.app.admin_api_key_required:
        return

    valid_keys = parse_api_keys(settings.app.admin_api_keys)

    if not valid_keys:
        logger.error(
            "admin_auth.failed",
            extra={"reason": "admin_api_keys_not_configured"},
        )
        raise AuthenticationAppError(
            code="admin_api_keys_not_configured",
            message="Admin authentication is enabled but no admin keys are configured",
            details={
                "hint": "Set APP_ADMIN_API_KEYS or disable admin auth with APP_ADMIN_API_KEY_REQUIRED=false"
            },
        )

    if not provided_key:
        logger.warning("admin_auth.failed", extra={"reason": "missing_api_key"})
        raise AuthenticationAppError(
            code="missing_api_key",
            message="Missing API key. Provide X-API-Key header.",
        )

    if not any(secrets.compare_digest(provided_key, key) for key in valid_keys):
        logger.warning(
            "admin_auth.failed",
            extra={"reason": "invalid_api_key", "api_key_hash": _key_hash(provided_key)},
        )
        raise AuthenticationAppError(
            code="invalid_api_key",
            message="Invalid or missing API key",
        )


async def verify_admin_key(
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> None:
    """FastAPI dependency guarding admin routes.

    Usage:
        @router.delete("/admin/cache", dependencies=[Depends(verify_admin_key)])

    Raises:
        AuthenticationAppError: Rendered as 403 by the exception handlers.
    """
    validate_admin_key(x_api_key)
    if x_api_key:
        logger.info("admin_auth.success", extra={"api_key_hash": _key_hash(x_api_key)})
