import logging
import sys

logger = logging.getLogger("capture_api")


def configure_logging(level: str = "INFO") -> None:
    """Route our logs through the Uvicorn/Hypercorn handlers when they exist."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=log_level)

    candidate_error_loggers = [
        logging.getLogger("uvicorn.error"),
        logging.getLogger("hypercorn.error"),
    ]
    selected = next((lg for lg in candidate_error_loggers if lg.handlers), None)
    if selected is not None:
        logger.handlers = selected.handlers
        logger.setLevel(log_level)
        logger.propagate = False
    elif not logger.handlers:
        _handler = logging.StreamHandler(sys.stdout)
        _handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        logger.addHandler(_handler)
        logger.setLevel(log_level)
        logger.propagate = False


def log_info(message: str) -> None:
    logger.info(message)


def log_warning(message: str) -> None:
    logger.warning(message)


def log_error(message: str, exc_info=None) -> None:
    logger.error(message, exc_info=exc_info)
