from loguru import logger
import os
import sys
from datetime import datetime
from pathlib import Path

from utils.paths import default_app_dir

log_dir = Path(os.getenv("BLINK_LEDGER_LOG_DIR") or (default_app_dir() / "logs"))

start_time = datetime.now().strftime("%Y%m%d_%H%M%S")
log_file = log_dir / f"run_{start_time}.log"

logger.remove()

# stdout stays clean for command output
logger.add(
    sys.stderr,
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | {level} | {message}",
)

try:
    log_dir.mkdir(parents=True, exist_ok=True)
    logger.add(
        log_file,
        level="DEBUG",
        rotation="10 MB",
        retention="30 days",
        encoding="utf-8",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{line} | {message}",
    )
except OSError as e:
    logger.warning(f"File logging disabled, cannot write to {log_dir}: {e}")
else:
    logger.debug(f"Logger initialized. Writing logs to {log_file}")
