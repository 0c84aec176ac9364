"""FastAPI main application."""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import os
import logging
import traceback

from mediashelf.config import Config, init_config
from mediashelf.db.database import init_db
from mediashelf.api.routes import router
from mediashelf.core.jobs import init_jobs

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)


def find_config_path() -> str:
    """CONFIG_PATH d'abord, puis /config (Docker), puis ./config (dev local)."""
    candidates = [
        os.getenv("CONFIG_PATH", "/config/config.yaml"),
        "/config/config.yaml",
        "./config/config.yaml",
        os.path.join(os.path.dirname(__file__), "..", "config", "config.yaml"),
    ]
    for candidate in candidates:
        if os.path.exists(candidate):
            return candidate

    tried = "\n".join(f"  - {c}" for c in candidates)
    message = (
        f"Configuration file not found. Tried:\n{tried}\n"
        "Create config/config.yaml from config.example.yaml, or point CONFIG_PATH at it."
    )
    logger.error(message)
    raise FileNotFoundError(message)


def create_app(config: Config) -> FastAPI:
    """Cache SQLite, opérations de bibliothèque et routes."""
    logging.getLogger().setLevel(config.app.log_level.upper())

    data_dir = os.getenv("DATA_DIR", config.app.data_dir)
    try:
        init_db(data_dir)
    except Exception as e:
        logger.error(f"Failed to initialize database in {data_dir}: {str(e)}")
        logger.error("Check that the data directory exists and is writable (DATA_DIR)")
        raise

    jobs = init_jobs(config)
    logger.info(
        f"Library at {jobs.root}, catalogs: {', '.join(s.display_name for s in jobs.resolver.sources) or 'none'}"
    )

    application = FastAPI(title="MediaShelf", version="1.0.0")
    application.include_router(router)

    @application.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception in {request.method} {request.url}")
        return JSONResponse(
            status_code=500,
            content={
                "error": str(exc),
                "type": exc.__class__.__name__,
                "path": str(request.url),
                "method": request.method,
                "traceback": traceback.format_exc()
            }
        )

    @application.get("/")
    async def root():
        return {"message": "MediaShelf API"}

    return application


config_path = find_config_path()
logger.info(f"Loading configuration from: {config_path}")
app = create_app(init_config(config_path))
