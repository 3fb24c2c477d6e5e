# Import all routes
from .flow import router as flow_router
from .signup import router as signup_router
from .health import router as health_router

# All routers that should be included in main app
__all__ = [
    "flow_router",
    "signup_router",
    "health_router",
]
