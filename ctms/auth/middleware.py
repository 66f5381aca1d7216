"""API key authentication middleware."""

import hashlib
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyHeader
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ctms.auth.identity import Actor
from ctms.config import settings
from ctms.database import get_db
from ctms.errors import AccessDeniedError
from ctms.models.enums import AuditEventType
from ctms.models.user import User
from ctms.schemas.audit import AuditSubject, RejectedTransitionMeta

API_KEY_HEADER = APIKeyHeader(name="Authorization", auto_error=False)


def hash_api_key(api_key: str) -> str:
    """Hash API key with salt for storage/lookup."""
    return hashlib.sha256(
        f"{settings.api_key_hash_salt}:{api_key}".encode()
    ).hexdigest()


async def get_actor_from_bearer(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    auth_header: str | None = Depends(API_KEY_HEADER),
) -> Actor:
    """Resolve the acting user from a Bearer API key."""
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid Authorization header",
        )
    api_key = auth_header[7:].strip()
    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key",
        )
    result = await db.execute(select(User).where(User.api_key_hash == hash_api_key(api_key)))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )
    forwarded = request.headers.get("x-forwarded-for")
    ip_address = forwarded.split(",")[0].strip() if forwarded else (
        request.client.host if request.client else None
    )
    return Actor(
        user_id=user.id,
        role=user.role,
        ip_address=ip_address,
        user_agent=request.headers.get("user-agent"),
    )


async def require_privileged(
    request: Request, actor: Annotated[Actor, Depends(get_actor_from_bearer)]
) -> Actor:
    """Administrator or QA only. Denials are audited like any other rejected action."""
    if not actor.is_privileged:
        route = request.scope.get("route")
        action = route.name.upper() if route is not None else request.url.path
        await request.app.state.services.audit.record(
            AuditEventType.REJECTED_TRANSITION,
            actor=actor,
            subject=AuditSubject(user_id=actor.user_id),
            metadata=RejectedTransitionMeta(
                action=action,
                reason_code="ROLE_NOT_PERMITTED",
                detail={"method": request.method, "path": request.url.path},
            ),
        )
        raise AccessDeniedError(
            "Administrator or QA role required",
            reason_code="ROLE_NOT_PERMITTED",
            action=action,
        )
    return actor


# Type aliases for dependency injection
ActorDep = Annotated[Actor, Depends(get_actor_from_bearer)]
PrivilegedActorDep = Annotated[Actor, Depends(require_privileged)]
