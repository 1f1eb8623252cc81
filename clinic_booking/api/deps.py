from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials
from typing import List

from ..core.security import (
    security, verify_token, actor_from_payload, AuthenticationError,
    Actor, UserRole, TokenPayload
)
from ..core.errors import UnauthorizedError

async def get_current_actor_token(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> TokenPayload:
    """Extract and verify JWT token from Authorization header."""
    token = credentials.credentials

    # Verify token
    token_payload = verify_token(token)
    if not token_payload:
        raise AuthenticationError("Invalid or expired token")

    # Check if token is access token
    if token_payload.token_type != "access":
        raise AuthenticationError("Invalid token type")

    return token_payload

async def get_current_actor(
    token_payload: TokenPayload = Depends(get_current_actor_token)
) -> Actor:
    """Identity of the caller. Credentials were checked by the auth service that issued the token."""
    actor = actor_from_payload(token_payload)
    if not actor:
        raise AuthenticationError("Invalid token payload")
    return actor

# Role-based access control dependencies
def require_role(allowed_roles: List[UserRole]):
    """Create a dependency that requires specific actor roles."""
    async def role_checker(
        actor: Actor = Depends(get_current_actor)
    ) -> Actor:
        if actor.role not in allowed_roles:
            raise UnauthorizedError(
                f"Access denied. Required roles: {[role.value for role in allowed_roles]}"
            )
        return actor

    return role_checker

# Specific role dependencies
async def get_admin_actor(
    actor: Actor = Depends(require_role([UserRole.ADMIN]))
) -> Actor:
    """Require admin role."""
    return actor

async def get_doctor_actor(
    actor: Actor = Depends(require_role([UserRole.DOCTOR, UserRole.ADMIN]))
) -> Actor:
    """Require doctor or admin role."""
    return actor

async def get_patient_actor(
    actor: Actor = Depends(require_role([UserRole.PATIENT, UserRole.ADMIN]))
) -> Actor:
    """Require patient or admin role."""
    return actor
