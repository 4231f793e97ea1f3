#!/usr/bin/env python3
"""
Error handling utilities for ProtoView.
Provides formatting, exit-code mapping and a decorator for CLI entry points.
"""
import sys
import traceback
import logging
from functools import wraps
from typing import Callable, TypeVar, Any, Dict, Optional, Union

from .exceptions import (
    ProtoViewError, MalformedRecordError, AmbiguousMergeError,
    TransactionConflictError, ConfigurationError
)

T = TypeVar('T')

# Exit codes for known error classes; anything else derived from ProtoViewError exits 1
EXIT_CODES = {
    ConfigurationError: 3,
    MalformedRecordError: 4,
    AmbiguousMergeError: 5,
    TransactionConflictError: 75,  # EX_TEMPFAIL, caller may retry
}


def exit_code_for(error: BaseException) -> int:
    """Map an exception to a process exit code

    Args:
        error: Exception raised by a command

    Returns:
        130 on interrupt, class-specific code for known errors, 1 for other
        ProtoView errors and 2 for anything unexpected
    """
    if isinstance(error, KeyboardInterrupt):
        return 130
    for error_class, code in EXIT_CODES.items():
        if isinstance(error, error_class):
            return code
    if isinstance(error, ProtoViewError):
        return 1
    return 2


def format_error(error: Exception, verbose: bool = False) -> str:
    """Format an error message for display

    Args:
        error: Exception object
        verbose: Whether to include details and traceback

    Returns:
        Formatted error message
    """
    if isinstance(error, ProtoViewError):
        msg = f"{error.__class__.__name__}: {error.message}"
        if verbose and error.details:
            detail_text = ", ".join(f"{k}={v}" for k, v in sorted(error.details.items()))
            msg += f"\nDetails: {detail_text}"
        return msg
    if verbose:
        return f"Unexpected Error ({error.__class__.__name__}): {str(error)}\n{traceback.format_exc()}"
    return f"Unexpected Error: {str(error)}"


def handle_exceptions(exit_on_error: bool = False,
                      verbose: bool = False) -> Callable[[Callable[..., T]], Callable[..., Union[T, int]]]:
    """Decorator turning exceptions into logged messages and exit codes

    Args:
        exit_on_error: Call sys.exit with the mapped code instead of returning it
        verbose: Include error details in the message printed to stderr

    Returns:
        Decorated function
    """
    def decorator(func: Callable[..., T]) -> Callable[..., Union[T, int]]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Union[T, int]:
            logger = logging.getLogger(func.__module__)
            try:
                return func(*args, **kwargs)
            except KeyboardInterrupt as e:
                logger.info("Operation cancelled by user")
                print("\nOperation cancelled by user", file=sys.stderr)
                code = exit_code_for(e)
            except ProtoViewError as e:
                log_exception(logger, e)
                print(format_error(e, verbose=verbose), file=sys.stderr)
                code = exit_code_for(e)
            except Exception as e:
                logger.error(f"Unexpected error: {str(e)}", exc_info=True)
                print(format_error(e, verbose=False), file=sys.stderr)
                print("See log for details. Run with --verbose for more information.", file=sys.stderr)
                code = exit_code_for(e)
            if exit_on_error:
                sys.exit(code)
            return code
        return wrapper
    return decorator


def cli_error_handler(func: Callable[..., T]) -> Callable[..., T]:
    """Specialized decorator for CLI commands

    Args:
        func: CLI command function

    Returns:
        Decorated function that exits with the mapped code on error
    """
    return handle_exceptions(exit_on_error=True)(func)


def log_exception(logger: logging.Logger,
                  error: Exception,
                  level: int = logging.ERROR,
                  context: Optional[Dict[str, Any]] = None) -> None:
    """Log an exception with context

    Known errors are logged without a traceback below ERROR level, since
    per-record rejections during ingestion are routine.

    Args:
        logger: Logger instance
        error: Exception object
        level: Logging level
        context: Additional context for the log
    """
    if isinstance(error, ProtoViewError):
        ctx = {**(error.details or {}), **(context or {})}
        logger.log(level, f"{error.__class__.__name__}: {error.message}",
                   extra={"context": ctx} if ctx else None,
                   exc_info=level >= logging.ERROR)
    else:
        logger.log(level, f"Unexpected error: {str(error)}",
                   extra={"context": context} if context else None,
                   exc_info=True)
