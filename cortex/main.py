import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from cortex.core.config import get_settings
from cortex.core.logging import configure_logging
from cortex.routes import assistant, dfc, maintenance
from cortex.services.maintenance import get_maintenance_response, is_maintenance_window

settings = get_settings()
configure_logging(settings.log_level)
logger = logging.getLogger("cortex.api")

UNGATED_PATHS = {"/api/maintenance/status"}

app = FastAPI(title=settings.app_name)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class MaintenanceGateMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if not path.startswith("/api/"):
            return await call_next(request)

        started = time.perf_counter()
        if path not in UNGATED_PATHS and is_maintenance_window():
            response = JSONResponse(status_code=503, content=get_maintenance_response())
        else:
            response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info("%s %s %s in %.0fms", request.method, path, response.status_code, elapsed_ms)
        return response


app.add_middleware(MaintenanceGateMiddleware)

app.include_router(maintenance.router)
app.include_router(dfc.router)
app.include_router(assistant.router)
