"""Route handlers for the Web API."""

from luxlibris.web.routes.health import router as health_router
from luxlibris.web.routes.phase import router as phase_router
from luxlibris.web.routes.configurations import router as configurations_router
from luxlibris.web.routes.submissions import router as submissions_router
from luxlibris.web.routes.rollover import router as rollover_router
from luxlibris.web.routes.voting import router as voting_router

__all__ = [
    "health_router",
    "phase_router",
    "configurations_router",
    "submissions_router",
    "rollover_router",
    "voting_router",
]
