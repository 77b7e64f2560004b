"""
Dependency injection and utilities for web routes.
"""

import hmac
from typing import Optional

from fastapi import Depends, Header, HTTPException

from docketcc.services import Services
from docketcc.services import get_services as service_get_services


def get_services() -> Services:
    """Get the wired pipeline services."""
    return service_get_services()


def require_admin(
    x_admin_secret: Optional[str] = Header(default=None),
    services: Services = Depends(get_services),
) -> None:
    """Reject requests whose X-Admin-Secret header does not match the configured secret."""
    expected = services.config.secret("admin_secret")
    if not expected or not x_admin_secret or not hmac.compare_digest(x_admin_secret, expected):
        raise HTTPException(status_code=401, detail="Invalid admin credentials")
