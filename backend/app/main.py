from contextlib import asynccontextmanager

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.api.health import router as health_router
from app.api.routes_admin import router as admin_router
from app.api.routes_canteen import router as canteen_router
from app.api.routes_cart import router as cart_router
from app.api.routes_order import router as order_router
from app.config import settings
from app.db import SessionLocal, init_db
from app.errors import CanteenAppError, PersistenceFailure
from app.logger import logger
from app.services.auto_advancer import run_sweep


def auto_advance_job():
    db = SessionLocal()
    try:
        report = run_sweep(db)
        if report.errors:
            logger.error("auto-advance sweep finished with errors: {}", report.errors)
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # startup
    init_db()

    scheduler = None
    if settings.AUTO_ADVANCE_ENABLED:
        scheduler = BackgroundScheduler()
        scheduler.add_job(
            auto_advance_job,
            "interval",
            seconds=settings.AUTO_ADVANCE_INTERVAL_SECONDS,
            id="auto_advance_orders",
            max_instances=1,
            coalesce=True,
        )
        scheduler.start()
        logger.info(
            "auto-advance scheduled every {}s", settings.AUTO_ADVANCE_INTERVAL_SECONDS
        )
    app.state.scheduler = scheduler

    try:
        yield
    finally:
        if scheduler:
            scheduler.shutdown(wait=False)


app = FastAPI(title="Campus Canteen - Backend", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.FRONTEND_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CanteenAppError)
async def canteen_error_handler(request: Request, exc: CanteenAppError):
    if exc.status_code >= 500:
        logger.error("{} {} failed: {}", request.method, request.url.path, exc.message)
    else:
        logger.info("{} {} rejected ({}): {}", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.opt(exception=exc).error("{} {} hit a database error", request.method, request.url.path)
    failure = PersistenceFailure()
    return JSONResponse(status_code=failure.status_code, content={"detail": failure.message})


app.include_router(health_router, prefix="/api", tags=["health"])

app.include_router(cart_router, tags=["cart"])

app.include_router(order_router, prefix="/api/orders", tags=["orders"])

app.include_router(canteen_router, tags=["canteens"])

app.include_router(admin_router, tags=["admin"])
