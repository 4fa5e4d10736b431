from .journals import router as journals_router
from .probes import router as probes_router

__all__ = ["journals_router", "probes_router"]
