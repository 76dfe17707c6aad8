from fastapi import APIRouter, FastAPI

from .admin import router as admin_router, scaffold_router as admin_scaffold_router
from .matching import router as matching_router, scaffold_router as matching_scaffold_router


def include_modular_routers(app: FastAPI) -> None:
    app.include_router(matching_router, tags=["matching"])
    app.include_router(admin_router, tags=["admin"])

    app.include_router(matching_scaffold_router, prefix="/_scaffold/matching", tags=["scaffold-matching"])
    app.include_router(admin_scaffold_router, prefix="/_scaffold/admin", tags=["scaffold-admin"])


__all__ = ["include_modular_routers", "APIRouter"]
