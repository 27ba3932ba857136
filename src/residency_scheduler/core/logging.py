import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_HANDLER_NAME = "residency_scheduler"


def configure_logging(level: str = "INFO") -> None:
    """Attach a single stream handler to the package logger; safe to call repeatedly."""

    package_logger = logging.getLogger("residency_scheduler")
    package_logger.setLevel(level.upper())
    if any(handler.get_name() == _HANDLER_NAME for handler in package_logger.handlers):
        return
    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    package_logger.addHandler(handler)
