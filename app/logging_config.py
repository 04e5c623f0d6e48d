import logging

from app.config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Root stream handler at Settings.log_level. basicConfig is a no-op if uvicorn already set handlers."""
    level_name = (level or get_settings().log_level or "INFO").upper()
    logging.basicConfig(format=LOG_FORMAT)
    logging.getLogger().setLevel(getattr(logging, level_name, logging.INFO))
