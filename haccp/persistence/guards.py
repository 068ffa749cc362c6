from __future__ import annotations

import logging

from haccp.core.config import get_settings
from haccp.core.errors import TenantScopeError


logger = logging.getLogger(__name__)


def require_tenant_id(tenant_id: str | None) -> None:
    # Enforce non-empty tenant identifiers unless the legacy unscoped path is explicitly enabled.
    if tenant_id:
        return
    if not get_settings().allow_unscoped_writes:
        raise TenantScopeError("tenant_id is required for observation writes")
    logger.warning("unscoped_write_accepted")


def tenant_predicate(model, tenant_id: str) -> object:
    # Build tenant predicates through a single helper so reads are never unscoped.
    if not tenant_id:
        raise TenantScopeError("tenant predicate required but tenant_id is missing")
    return model.tenant_id == tenant_id
