"""
Utility functions for exception logging at the proxy error boundary.
"""

import logging


def _safe_str(obj) -> str:
    """
    Safely convert an object to string, handling cases where __str__ or __repr__ might fail.

    Args:
        obj: The object to convert to string

    Returns:
        A string representation of the object, falling back to safe alternatives
    """
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            return f"<{type(obj).__name__} object (string conversion failed)>"


def _safe_get_exceptions(exception_group) -> list:
    try:
        return list(exception_group.exceptions)
    except Exception:
        return []


def format_exception_message(exception: Exception) -> str:
    """
    Format an exception as the message returned to clients.

    Exception groups (raised by task groups inside the HTTP stack) are flattened
    into ``main (Type: message; Type: message)`` so the real cause stays visible.
    """
    if exception is None:
        return "None"

    main_str = _safe_str(exception)
    sub_exceptions = (
        _safe_get_exceptions(exception) if hasattr(exception, "exceptions") else []
    )
    if not sub_exceptions:
        return main_str

    details = "; ".join(
        f"{type(sub_exc).__name__}: {_safe_str(sub_exc)}" for sub_exc in sub_exceptions
    )
    return f"{main_str} ({details})"


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: Exception,
    level: int = logging.ERROR,
) -> None:
    """
    Log an exception with its traceback, including sub-exceptions of exception groups.
    Never raises, even for broken exception objects or logger failures.

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g., "API Proxy Error:")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
    """
    try:
        sub_exceptions = (
            _safe_get_exceptions(exception)
            if exception is not None and hasattr(exception, "exceptions")
            else []
        )

        if not sub_exceptions:
            logger.log(level, f"{prefix} {_safe_str(exception)}", exc_info=exception)
            return

        logger.log(
            level,
            f"{prefix} Exception with {len(sub_exceptions)} sub-exceptions: {_safe_str(exception)}",
        )
        for i, sub_exc in enumerate(sub_exceptions):
            logger.log(
                level,
                f"{prefix} Sub-exception {i+1}: {type(sub_exc).__name__}: {_safe_str(sub_exc)}",
                exc_info=sub_exc,
            )
    except Exception:
        try:
            logger.log(logging.ERROR, "Exception logging failed")
        except Exception:
            # Logging must never take the error response down with it
            pass
