from .logger import (
    setup_logging,
    get_logger,
    api_logger,
    weather_logger,
    annotator_logger,
)
from .utcnow import utcnow, seconds_since

__all__ = [
    # Logger
    "setup_logging",
    "get_logger",
    "api_logger",
    "weather_logger",
    "annotator_logger",

    # Clock
    "utcnow",
    "seconds_since",
]
