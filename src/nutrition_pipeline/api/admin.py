"""Admin API endpoints with simple token auth."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

if TYPE_CHECKING:
    from nutrition_pipeline.containers import AppContainer

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_admin_token(request: Request) -> str | None:
    container: AppContainer = request.app.state.container
    return container.settings.admin_token


async def require_admin(
    x_admin_token: str | None = Header(default=None),
    admin_token: str | None = Depends(_get_admin_token),
) -> None:
    """Ensure requests include a valid admin token."""
    if not admin_token or not x_admin_token or x_admin_token != admin_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


@router.get("/health", dependencies=[Depends(require_admin)])
async def admin_health(request: Request) -> dict[str, object]:
    """Admin health check endpoint."""
    container: AppContainer = request.app.state.container
    return {
        "status": "ok",
        "environment": container.settings.environment,
        "model_configured": container.completion_client is not None,
    }


@router.get("/price-cache", dependencies=[Depends(require_admin)])
async def price_cache_stats(request: Request) -> dict[str, object]:
    """Return price cache size and limits."""
    container: AppContainer = request.app.state.container
    cache = container.price_cache
    return {
        "entries": len(cache),
        "max_entries": cache.max_entries,
        "ttl_seconds": cache.ttl_seconds,
    }


@router.delete("/price-cache", dependencies=[Depends(require_admin)])
async def clear_price_cache(request: Request) -> dict[str, object]:
    """Drop every cached price estimate."""
    container: AppContainer = request.app.state.container
    removed = len(container.price_cache)
    container.price_cache.clear()
    return {"status": "ok", "removed": removed}
