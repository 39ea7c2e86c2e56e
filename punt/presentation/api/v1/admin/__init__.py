from fastapi import APIRouter

from . import database, settings, users

router = APIRouter()
router.include_router(users.router, prefix="/users")
router.include_router(settings.router, prefix="/settings")
router.include_router(database.router, prefix="/database")
