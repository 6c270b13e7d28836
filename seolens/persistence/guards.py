from __future__ import annotations

from seolens.core.config import get_settings


class TenantPredicateError(RuntimeError):
    # Surface missing tenant predicates when guard enforcement is enabled.
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


def require_tenant_id(tenant_id: str | None) -> None:
    # Enforce non-empty tenant identifiers when tenant guard checks are enabled.
    settings = get_settings()
    if not settings.authz_require_tenant_predicate:
        return
    if not tenant_id:
        raise TenantPredicateError("Tenant predicate required but tenant_id is missing")


def tenant_predicate(model, tenant_id: str) -> object:
    # Analytics tables key tenants by user_id; the users table keys them by id.
    require_tenant_id(tenant_id)
    column = getattr(model, "user_id", None)
    if column is None:
        column = model.id
    return column == tenant_id
