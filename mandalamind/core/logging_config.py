# mandalamind/core/logging_config.py
from logging.handlers import RotatingFileHandler
from pathlib import Path
import logging, sys
from pythonjsonlogger import jsonlogger

from mandalamind.core.config import LOG_DIR, LOG_LEVEL


def setup_json_logger(service_name: str = "mandalamind", log_dir: str = LOG_DIR, to_file: bool = True):
    logger = logging.getLogger()                # root
    logger.setLevel(LOG_LEVEL)

    json_format = (
        "%(asctime)s %(levelname)s %(name)s %(message)s "
        "%(filename)s %(lineno)d %(funcName)s"
    )
    formatter = jsonlogger.JsonFormatter(json_format)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)

    if logger.hasHandlers():
        logger.handlers.clear()
    logger.addHandler(console)

    if to_file:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        fileh = RotatingFileHandler(
            f"{log_dir}/{service_name}.json.log", maxBytes=10_000_000, backupCount=5, encoding="utf-8"
        )
        fileh.setFormatter(formatter)
        logger.addHandler(fileh)

    # quiet noisy libs
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)

    logger.info("JSON structured logging initialized")
    return logger
