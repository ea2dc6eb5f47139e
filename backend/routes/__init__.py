from .users import router as users_router
from .chat import router as chat_router
from .diagnostics import router as diagnostics_router
from .memories import router as memories_router
from .settings import router as settings_router

__all__ = ["users_router", "chat_router", "diagnostics_router", "memories_router", "settings_router"]
