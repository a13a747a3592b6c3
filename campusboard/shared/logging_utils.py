import logging
from typing import Any, Dict, Optional


_LOGGER = logging.getLogger("campusboard")


def log(level: int, doc_path: Optional[str], message: str, **dimensions: Any) -> None:
    dims: Dict[str, Any] = {"docPath": doc_path} if doc_path else {}
    dims.update(dimensions)
    try:
        _LOGGER.log(level, message, extra={"custom_dimensions": dims})
    except Exception:
        # Fallback if extra/custom_dimensions not supported in the environment
        _LOGGER.log(level, f"{message} | {dims}")


def debug(doc_path: Optional[str], message: str, **dimensions: Any) -> None:
    log(logging.DEBUG, doc_path, message, **dimensions)


def info(doc_path: Optional[str], message: str, **dimensions: Any) -> None:
    log(logging.INFO, doc_path, message, **dimensions)


def warning(doc_path: Optional[str], message: str, **dimensions: Any) -> None:
    log(logging.WARNING, doc_path, message, **dimensions)


def error(doc_path: Optional[str], message: str, **dimensions: Any) -> None:
    log(logging.ERROR, doc_path, message, **dimensions)


def configure_logging(level: str = "INFO", azure_level: Optional[str] = None) -> None:
    _LOGGER.setLevel(getattr(logging, level.upper(), logging.INFO))
    if azure_level:
        lvl = getattr(logging, azure_level.upper(), logging.WARNING)
        logging.getLogger("azure").setLevel(lvl)
        logging.getLogger("azure.cosmos").setLevel(lvl)
