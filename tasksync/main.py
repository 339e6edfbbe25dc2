from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
from .config import settings
from .logs import configure_logging
from .routers import cron, tasks, webhooks

configure_logging()

app = FastAPI(title="Task Sync API", version="1.0.0")
app.include_router(tasks.router)
app.include_router(webhooks.router)
app.include_router(cron.router)
app.mount("/files", StaticFiles(directory=settings.storage_dir, check_dir=False), name="files")
