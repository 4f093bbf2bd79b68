# app/core/logging.py
# -----------------------------------------------------------------------------
# Loguru setup
# - rotating file sink + stderr
# - called once from the FastAPI startup hook
# -----------------------------------------------------------------------------
import sys
from pathlib import Path

from loguru import logger

from app.core.config import settings


def setup_logging(log_dir: str | None = None, level: str | None = None) -> None:
    level = level or settings.LOG_LEVEL
    path = Path(log_dir or settings.LOG_DIR)
    path.mkdir(exist_ok=True, parents=True)

    logger.remove()  # drop the default handler
    logger.add(sys.stderr, level=level)
    logger.add(
        path / "app.log",
        rotation="10 MB",
        retention=10,  # keep the 10 newest rotated files
        enqueue=True,  # safe across worker processes
        backtrace=True,
        diagnose=False,
        level=level,
    )
