"""Identity extraction from the framework-supplied authorization context.

The context is an opaque mapping produced by the upstream authorizer, with the
keys `userId`, `email`, `role`, `teamId` and `department`. Nothing here raises:
a context that cannot be read yields no identity.
"""

from collections.abc import Mapping
from typing import Any

import structlog
from pydantic import ValidationError

from timekeep.core.modules.identity.models import IdentityContext, Role

logger = structlog.get_logger(__name__)


def extract_identity(authorizer: Any) -> IdentityContext | None:
    """Build the identity for a request, or None if it cannot be resolved."""
    if authorizer is None:
        logger.info("authorizer_context_missing")
        return None

    if not isinstance(authorizer, Mapping):
        logger.warning("authorizer_context_malformed", context_type=type(authorizer).__name__)
        return None

    user_id = authorizer.get("userId")
    if not user_id:
        logger.info("authorizer_user_id_missing")
        return None

    try:
        return IdentityContext(
            user_id=str(user_id),
            email=authorizer.get("email") or "",
            role=authorizer.get("role") or Role.EMPLOYEE,
            team_id=authorizer.get("teamId") or None,
            department=authorizer.get("department") or None,
        )
    except ValidationError as e:
        logger.warning("authorizer_context_invalid", error=str(e))
        return None


def get_current_user_id(authorizer: Any) -> str | None:
    identity = extract_identity(authorizer)
    return identity.user_id if identity else None


def is_admin(authorizer: Any) -> bool:
    """Check if the caller has the admin role."""
    identity = extract_identity(authorizer)
    return identity is not None and identity.is_admin


def is_manager_or_admin(authorizer: Any) -> bool:
    """Check if the caller has the manager role or higher."""
    identity = extract_identity(authorizer)
    return identity is not None and identity.is_manager_or_admin
