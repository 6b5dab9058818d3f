"""
Stan Chat API Routes Package.

Example:
    from api.routes import chat_router, memories_router

    app.include_router(chat_router)
    app.include_router(memories_router)
"""

from api.routes.chat import router as chat_router
from api.routes.memories import router as memories_router

__all__ = [
    "chat_router",
    "memories_router",
]
