from __future__ import annotations

from fastapi import Header, Request

from app.core.config import settings
from app.core.lifespan import Services, build_services
from app.core.security import check_api_key, require_user


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        services = build_services(settings)
        request.app.state.services = services
    return services


def current_user(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> str:
    check_api_key(x_api_key)
    return require_user(x_user_id)
