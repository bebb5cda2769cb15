from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gosafe.api.routes_safety import router as safety_router
from gosafe.api.routes_sos import router as sos_router
from gosafe.api.routes_tracking import router as tracking_router
from gosafe.api.routes_websocket import router as websocket_router
from gosafe.api.runtime import TrackingRuntime
from gosafe.config import settings, setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown"""
    setup_logging(settings.log_level)
    logger.info(f"Starting GoSafe companion (geo source: {settings.geo_source})...")
    app.state.runtime = TrackingRuntime()

    yield

    logger.info("Shutting down GoSafe companion...")
    # no watch may outlive the service
    app.state.runtime.shutdown()


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(tracking_router)
app.include_router(sos_router)
app.include_router(safety_router)
app.include_router(websocket_router)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    runtime = getattr(app.state, "runtime", None)
    controller = runtime.controller if runtime else None
    return {
        "status": "healthy",
        "geo_source": settings.geo_source,
        "tracking": controller.status.value if controller else None,
        "sos": runtime.dispatcher.status.value if runtime else None,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
