"""Tenant context: who a request belongs to.

An upstream auth layer may attach ``tenant_id`` / ``company_id`` / ``user`` /
``api_key`` to ``request.state``; otherwise the ``X-Tenant-ID`` and
``X-Company-ID`` headers are used.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException
from starlette.requests import Request

TENANT_HEADER = "X-Tenant-ID"
COMPANY_HEADER = "X-Company-ID"


@dataclass
class TenantContext:
    tenant_id: Optional[str] = None
    company_id: Optional[str] = None
    user_id: Optional[str] = None
    api_key_id: Optional[str] = None


def _state_id(request: Request, attr: str) -> Optional[str]:
    obj = getattr(request.state, attr, None)
    if obj is None:
        return None
    ident = getattr(obj, "id", obj)
    return str(ident) if ident is not None else None


def resolve_tenant_context(request: Request) -> TenantContext:
    """Collect the scoping identifiers for a request (state first, then headers)."""
    tenant_id = getattr(request.state, "tenant_id", None) or request.headers.get(TENANT_HEADER)
    company_id = getattr(request.state, "company_id", None) or request.headers.get(COMPANY_HEADER)
    return TenantContext(
        tenant_id=str(tenant_id) if tenant_id else None,
        company_id=str(company_id) if company_id else None,
        user_id=_state_id(request, "user"),
        api_key_id=_state_id(request, "api_key"),
    )


async def get_tenant_id(
    x_tenant_id: Optional[str] = Header(None, alias=TENANT_HEADER),
) -> str:
    """Dependency: the tenant every analytics query is scoped to."""
    if not x_tenant_id:
        raise HTTPException(status_code=400, detail=f"Missing {TENANT_HEADER} header")
    return x_tenant_id
