from .recordings import router as recordings_router

__all__ = ["recordings_router"]
