import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | int = "INFO") -> None:
    """Install a single stream handler on the package logger"""
    logger = logging.getLogger("residency")
    logger.setLevel(level)
    if not any(getattr(h, "_residency", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._residency = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
