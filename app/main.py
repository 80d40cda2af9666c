from contextlib import asynccontextmanager

from fastapi import FastAPI
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from app.api.accounts import router as accounts_router
from app.api.auth import router as auth_router
from app.api.dashboard import router as dashboard_router
from app.api.departments import router as departments_router
from app.api.escalations import router as escalations_router
from app.api.notifications import router as notifications_router
from app.api.projects import router as projects_router
from app.api.system_logs import router as system_logs_router
from app.api.task_reports import router as task_reports_router
from app.api.tasks import router as tasks_router
from app.container import container
from app.db import SessionLocal, dispose_engine, init_db
from app.errors import register_error_handlers
from app.logging import configure_logging, get_logger
from app.middleware.api_rate_limit import APIRateLimitMiddleware
from app.observability import ObservabilityMiddleware
from app.services.seed import seed_admin_account, seed_roles

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    db = SessionLocal()
    try:
        seed_roles(db)
        seed_admin_account(db)
    finally:
        db.close()
    container.cache().start()
    logger.info("app_started")
    try:
        yield
    finally:
        container.cache().close()
        dispose_engine()
        logger.info("app_stopped")


configure_logging()
app = FastAPI(title="taskflow API", lifespan=lifespan)
app.add_middleware(APIRateLimitMiddleware)
app.add_middleware(ObservabilityMiddleware)
register_error_handlers(app)

for router in (
    auth_router,
    accounts_router,
    departments_router,
    projects_router,
    tasks_router,
    task_reports_router,
    notifications_router,
    escalations_router,
    system_logs_router,
    dashboard_router,
):
    app.include_router(router)


@app.get("/health")
def health_check():
    return {"status": "ok"}


@app.head("/health")
def head_health():
    return Response(status_code=200)


@app.get("/metrics")
def metrics():
    data = generate_latest()
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
