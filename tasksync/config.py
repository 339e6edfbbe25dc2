from pydantic import BaseModel
import os

class Settings(BaseModel):
    api_token: str = os.getenv("API_TOKEN", "change-me")
    cron_secret: str | None = os.getenv("CRON_SECRET")
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    ai_gateway_url: str = os.getenv("AI_GATEWAY_URL", "http://localhost:8787")

    runninghub_api_base_url: str = os.getenv("RUNNINGHUB_API_BASE_URL", "https://www.runninghub.cn")
    runninghub_api_key: str = os.getenv("RUNNINGHUB_API_KEY", "")
    runninghub_single_item_workflow_id: str = os.getenv("RUNNINGHUB_SINGLE_ITEM_WORKFLOW_ID", "")
    runninghub_top_bottom_workflow_id: str = os.getenv("RUNNINGHUB_TOP_BOTTOM_WORKFLOW_ID", "")
    runninghub_node_user_photo: str = os.getenv("RUNNINGHUB_NODE_USER_PHOTO", "")
    runninghub_node_top_clothes: str = os.getenv("RUNNINGHUB_NODE_TOP_CLOTHES", "")
    runninghub_node_bottom_clothes: str = os.getenv("RUNNINGHUB_NODE_BOTTOM_CLOTHES", "")
    runninghub_webhook_url: str | None = os.getenv("RUNNINGHUB_WEBHOOK_URL")

    # tasks with this model tag go to the workflow provider, everything else to predictions
    workflow_model: str = os.getenv("WORKFLOW_MODEL", "clothing-tryon")

    max_status_longpoll_seconds: int = int(os.getenv("MAX_STATUS_LONGPOLL_SECONDS", 25))
    status_poll_interval_seconds: float = float(os.getenv("STATUS_POLL_INTERVAL_SECONDS", 2))
    status_timeout_seconds: float = float(os.getenv("STATUS_TIMEOUT_SECONDS", 30))
    download_timeout_seconds: float = float(os.getenv("DOWNLOAD_TIMEOUT_SECONDS", 120))

    sweep_window_minutes: int = int(os.getenv("SWEEP_WINDOW_MINUTES", 60))
    sweep_batch_limit: int = int(os.getenv("SWEEP_BATCH_LIMIT", 50))
    sweep_interval_seconds: int = int(os.getenv("SWEEP_INTERVAL_SECONDS", 3600))

    storage_dir: str = os.getenv("STORAGE_DIR", "./storage")
    storage_url_base: str = os.getenv("STORAGE_URL_BASE", "http://localhost:8000/files")

    db_retry_attempts: int = int(os.getenv("DB_RETRY_ATTEMPTS", 3))
    db_retry_delay_seconds: float = float(os.getenv("DB_RETRY_DELAY_SECONDS", 1.0))

settings = Settings()
