"""
Exception logging helpers that never raise themselves.

Used on the proxy's error paths, where a failure to log must not turn a
well-formed 502 into an unhandled 500.
"""

import logging


def _safe_str(obj) -> str:
    """
    Safely convert an object to string, handling cases where __str__ or __repr__ might fail.
    """
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            return f"<{type(obj).__name__} object (string conversion failed)>"


def format_exception_message(exception: Exception) -> str:
    """
    Client-facing description of an exception.

    Transport errors from httpx frequently carry an empty message (e.g. a bare
    ReadTimeout), in which case the exception class name is returned.
    """
    if exception is None:
        return "None"
    message = _safe_str(exception).strip()
    if message:
        return message
    return type(exception).__name__


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: Exception,
    level: int = logging.ERROR,
    exc_info: bool = False,
) -> None:
    """
    Log an exception as "<prefix> <Type>: <message>".

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g., "[Proxy]", "[Rewrite]")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
        exc_info: Attach the traceback to the record
    """
    try:
        exc_type = type(exception).__name__ if exception is not None else "NoneType"
        message = f"{prefix} {exc_type}: {format_exception_message(exception)}"
        logger.log(level, message, exc_info=exception if exc_info else None)
    except Exception:
        try:
            logger.log(level, f"{prefix} Exception (logging failed)")
        except Exception:
            # Logging is best effort on error paths
            pass
