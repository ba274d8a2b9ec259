# src/stoutly_dash/main.py
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi import FastAPI

from stoutly_dash.api import register_error_handlers, router
from stoutly_dash.cards import ALL_DASHBOARD_CARDS
from stoutly_dash.settings import get_settings


settings = get_settings()

LOG_LEVEL = (settings.log_level or "INFO").upper()
HOST = settings.host
PORT = int(settings.port)

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
logger = logging.getLogger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        logger.info("Starting application...")
        for CardCls in ALL_DASHBOARD_CARDS:
            try:
                CardCls(app).as_route(app=app)
                logger.info(
                    "Registered card route: %s/%s", CardCls.route_prefix, CardCls.card_id
                )
            except Exception as e:
                logger.exception(
                    "Failed to register route for %s: %s",
                    getattr(CardCls, "card_id", repr(CardCls)),
                    e,
                )
        if settings.use_mock_data:
            logger.warning("USE_MOCK_DATA is enabled; all dashboard data is synthetic")
        logger.info("Application startup complete")
        yield
    finally:
        logger.info("Application shutdown complete")


app = FastAPI(
    title="Stoutly Dashboard API",
    version=settings.app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins or ["*"],
    allow_credentials=bool(settings.cors_allow_credentials),
    allow_methods=settings.cors_allow_methods or ["*"],
    allow_headers=settings.cors_allow_headers or ["*"],
)

app.include_router(router)
register_error_handlers(app)


@app.get("/", response_class=JSONResponse)
async def root():
    return JSONResponse({"ok": True, "service": settings.app_name})


@app.get("/health", response_class=JSONResponse)
async def health():
    """
    Lightweight health endpoint. Upstream credentials are only checked when a
    function route is called.
    """
    return JSONResponse({"ok": True})


def run() -> None:
    logger.info("Starting %s on %s:%d", app.title, HOST, PORT)
    uvicorn.run(app, host=HOST, port=PORT, log_level=LOG_LEVEL.lower())


if __name__ == "__main__":
    run()
