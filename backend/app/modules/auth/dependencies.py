from fastapi import Depends
from pydantic import ValidationError as PydanticValidationError
from typing import Callable

from app.core.exceptions import AuthenticationError, AuthorizationError
from app.core.logging_config import set_actor_id
from app.core.security import get_current_token_data
from app.schemas.auth import Actor, ActorRole, TokenData


async def get_current_actor(
    token_data: TokenData = Depends(get_current_token_data)
) -> Actor:
    """Get the actor behind the current request"""
    try:
        actor = token_data.to_actor()
    except PydanticValidationError:
        raise AuthenticationError("Invalid token payload")

    set_actor_id(actor.id)
    return actor


def require_roles(*roles: ActorRole) -> Callable:
    """Dependency factory: allow only actors holding one of ``roles``"""
    allowed = set(roles)

    async def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in allowed:
            names = ", ".join(sorted(role.value for role in allowed))
            raise AuthorizationError(f"This action requires one of the roles: {names}")
        return actor

    return dependency


def ensure_department_scope(actor: Actor, department_id: str) -> None:
    """HODs may only act on sessions of their own department"""
    if actor.role == ActorRole.HOD and actor.department_id != department_id:
        raise AuthorizationError("HODs can only manage sessions of their own department")


# Role sets used by the session routes
require_principal = require_roles(ActorRole.PRINCIPAL, ActorRole.ADMIN)
require_promoter = require_roles(ActorRole.HOD, ActorRole.PRINCIPAL, ActorRole.ADMIN)
require_admin = require_roles(ActorRole.ADMIN)
