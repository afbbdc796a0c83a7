import logging
import os
import sys

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def setup_logger(level: int = logging.INFO, name: str = "crop_uploader") -> logging.Logger:
    """Configure the ``crop_uploader`` logger and return it.

    Every module logs through a child of this logger, so a single call decides
    where crop geometry, queue transitions and upload results end up. The
    CROP_UPLOADER_LOG_LEVEL variable wins over ``level``; CROP_UPLOADER_LOG_CATS
    narrows output to the listed child names (``upload_queue,dispatcher``).
    Safe to call repeatedly: the stderr handler is reused and refreshed.
    """
    logger = logging.getLogger(name)

    env_level = (os.getenv("CROP_UPLOADER_LOG_LEVEL") or "").strip().lower()
    if env_level:
        level = _LEVELS.get(env_level, level)
    logger.setLevel(level)

    # Exactly one stderr StreamHandler; no file logging.
    stream_handler: logging.StreamHandler | None = None
    for h in list(logger.handlers):
        if isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stderr:
            stream_handler = h
            break

    if stream_handler is None:
        stream_handler = logging.StreamHandler(stream=sys.stderr)
        logger.addHandler(stream_handler)

    fmt = logging.Formatter(
        fmt="[%(asctime)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    stream_handler.setFormatter(fmt)

    # Category filter, e.g. CROP_UPLOADER_LOG_CATS=upload_queue,dispatcher
    stream_handler.filters.clear()
    cats = (os.getenv("CROP_UPLOADER_LOG_CATS") or "").strip()
    if cats:
        allowed = {c.strip() for c in cats.split(",") if c.strip()}

        class _CategoryFilter(logging.Filter):
            def filter(self, record: logging.LogRecord) -> bool:
                # record.name like: crop_uploader.upload_queue, crop_uploader.crop
                parts = (record.name or "").split(".")
                suffix = parts[-1] if parts else record.name
                return suffix in allowed

        stream_handler.addFilter(_CategoryFilter())

    logger.propagate = False
    return logger


def get_logger(name: str | None = None) -> logging.Logger:
    base = setup_logger()
    return base if not name else base.getChild(name)
