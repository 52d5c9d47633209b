from fastapi import APIRouter, FastAPI

from .admin import router as admin_router
from .cron import router as cron_router
from .groups import router as groups_router


def include_modular_routers(app: FastAPI) -> None:
    app.include_router(cron_router, tags=["cron"])
    app.include_router(groups_router, tags=["groups"])
    app.include_router(admin_router, tags=["admin"])


__all__ = ["include_modular_routers", "APIRouter"]
