"""Tenant resolution at the HTTP boundary

The tenant id is read once per request and passed explicitly into every
scheduling call; nothing below the router looks it up on its own.
"""

from typing import Optional

from fastapi import Header

from .domain.scheduling.exceptions import InvalidRequest, NoTenantContext


def get_tenant_id(x_tenant_id: Optional[str] = Header(None)) -> int:
    """Dependency that resolves the current tenant from the X-Tenant-ID header"""
    if not x_tenant_id:
        raise NoTenantContext("X-Tenant-ID header is required")
    try:
        return int(x_tenant_id)
    except ValueError:
        raise InvalidRequest("X-Tenant-ID must be an integer") from None


def get_client_id(x_client_id: Optional[str] = Header(None)) -> int:
    """The acting client for client-initiated operations"""
    if not x_client_id:
        raise InvalidRequest("X-Client-ID header is required")
    try:
        return int(x_client_id)
    except ValueError:
        raise InvalidRequest("X-Client-ID must be an integer") from None
