from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Header, HTTPException
from loguru import logger

from src.config import get_settings
from src.db.database import init_db
from src.scheduler.runner import NotificationScheduler, start_scheduler

settings = get_settings()
scheduler: Optional[NotificationScheduler] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    global scheduler
    logger.info("Starting up...")
    await init_db()

    # 啟動排程器
    scheduler = start_scheduler()

    yield

    # 關閉排程器
    if scheduler:
        scheduler.shutdown()
    logger.info("Shutting down...")


# Disable interactive docs in production
docs_url = None if settings.is_production else "/docs"
redoc_url = None if settings.is_production else "/redoc"

app = FastAPI(
    title="Asset Inventory Notification Service",
    description="Maintenance, warranty and license expiry notifications for tenant assets",
    version="0.1.0",
    lifespan=lifespan,
    docs_url=docs_url,
    redoc_url=redoc_url,
)


@app.get("/health")
async def health_check():
    return {"status": "ok"}


@app.get("/api/admin/status")
async def admin_status(x_admin_key: str = Header(None)):
    # Require admin key in production
    if settings.is_production:
        if not settings.admin_api_key:
            raise HTTPException(status_code=503, detail="Admin API not configured")
        if x_admin_key != settings.admin_api_key:
            raise HTTPException(status_code=401, detail="Invalid admin key")

    return {
        "scheduler_running": scheduler is not None and scheduler.running,
        "jobs": scheduler.get_jobs_status() if scheduler else [],
        "scheduled_notifications": len(scheduler.registry) if scheduler else 0,
    }
