"""API route aggregation.

All routers registered here get mounted in main.py. Authentication is
enforced per route through Depends(get_current_session) — the users
router mixes open routes (signup, login, public avatar) with protected
ones, and the tasks router gets it through its service dependency.
"""

from fastapi import APIRouter

from taskhub.api.health import router as health_router
from taskhub.api.tasks import router as tasks_router
from taskhub.api.users import router as users_router

api_router = APIRouter()

api_router.include_router(health_router, tags=["health"])
api_router.include_router(users_router, tags=["users"])
api_router.include_router(tasks_router, tags=["tasks"])
