# Authentication module

from app.modules.auth.dependencies import (
    get_current_actor,
    require_roles,
    require_principal,
    require_promoter,
    require_admin,
    ensure_department_scope,
)

__all__ = [
    "get_current_actor",
    "require_roles",
    "require_principal",
    "require_promoter",
    "require_admin",
    "ensure_department_scope",
]
