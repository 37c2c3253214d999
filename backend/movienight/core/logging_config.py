"""
Process-wide logging setup. Call *configure_logging* once at startup;
modules use ``logging.getLogger(__name__)``.
"""
import logging

from movienight.core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format=LOG_FORMAT,
    )
    # httpx logs every request at INFO; keep TMDB/LLM traffic out of the app log
    logging.getLogger("httpx").setLevel(logging.WARNING)
