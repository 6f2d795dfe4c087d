"""
Decorators for audit logging and performance monitoring.
Both work on plain functions, methods and coroutine functions.
"""
import functools
import inspect
import logging
import time
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable

# Configure audit logger separately from main app logger
audit_logger = logging.getLogger('fta.audit')
perf_logger = logging.getLogger('fta.performance')

# Attribute / key names that identify a document, most specific first
_IDENTITY_FIELDS = ('invoice_number', 'invoiceNumber', 'trn', 'seller_trn', 'sellerTRN')


def _describe_document(value: Any) -> str:
    """Best-effort identifier of a document for log lines"""
    if isinstance(value, str):
        return value[:32] if value else "N/A"
    for name in _IDENTITY_FIELDS:
        if isinstance(value, dict) and value.get(name):
            return str(value[name])
        found = getattr(value, name, None)
        if found:
            return str(found)
    return "N/A"


def _is_method(func: Callable) -> bool:
    return '.' in func.__qualname__.replace('.<locals>.', '')


def _document_id(args: tuple, kwargs: dict, skip_first: bool) -> str:
    candidates = list(args[1:] if skip_first else args)
    candidates.extend(kwargs.values())
    for candidate in candidates:
        described = _describe_document(candidate)
        if described != "N/A":
            return described
    return "N/A"


def _status_of(result: Any) -> str:
    if hasattr(result, 'is_valid'):
        return "VALID" if result.is_valid else "INVALID"
    return "PROCESSED"


def audit_log(func: Callable) -> Callable:
    """
    Decorator that logs every call with the document it concerns and
    its verdict. Compliance checks must leave an audit trail.

    Usage:
        @audit_log
        def validate(self, document):
            ...
    """
    func_name = func.__qualname__
    skip_first = _is_method(func)

    if inspect.iscoroutinefunction(func):
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            document_id = _document_id(args, kwargs, skip_first)
            audit_logger.info(
                f"CALL | {func_name} | Document: {document_id} | "
                f"Timestamp: {datetime.now().isoformat()}"
            )
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                audit_logger.error(
                    f"FAILURE | {func_name} | Document: {document_id} | Error: {e}"
                )
                raise
            audit_logger.info(
                f"SUCCESS | {func_name} | Document: {document_id} | Status: {_status_of(result)}"
            )
            return result

        return async_wrapper

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        document_id = _document_id(args, kwargs, skip_first)

        # Log entry
        audit_logger.info(
            f"CALL | {func_name} | Document: {document_id} | "
            f"Timestamp: {datetime.now().isoformat()}"
        )

        try:
            result = func(*args, **kwargs)
        except Exception as e:
            # Log failure
            audit_logger.error(
                f"FAILURE | {func_name} | Document: {document_id} | Error: {e}"
            )
            raise

        audit_logger.info(
            f"SUCCESS | {func_name} | Document: {document_id} | Status: {_status_of(result)}"
        )
        return result

    return wrapper


def measure_performance(func: Callable) -> Callable:
    """
    Decorator to measure and log execution time.
    Attaches the timing to results that expose ``processing_time_ms``.

    Usage:
        @measure_performance
        def check(self, document, entity_type):
            ...
    """
    def _record(result: Any, start_time: float) -> None:
        elapsed_ms = (time.perf_counter() - start_time) * 1000
        if hasattr(result, 'processing_time_ms'):
            result.processing_time_ms = elapsed_ms
        perf_logger.debug(f"{func.__qualname__} completed in {elapsed_ms:.2f}ms")

    def _failed(error: Exception, start_time: float) -> None:
        elapsed_ms = (time.perf_counter() - start_time) * 1000
        perf_logger.warning(f"{func.__qualname__} failed after {elapsed_ms:.2f}ms: {error}")

    if inspect.iscoroutinefunction(func):
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            start_time = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                _failed(e, start_time)
                raise
            _record(result, start_time)
            return result

        return async_wrapper

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.perf_counter()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            _failed(e, start_time)
            raise
        _record(result, start_time)
        return result

    return wrapper


@contextmanager
def performance_context(operation_name: str):
    """
    Context manager for measuring code block performance.

    Usage:
        with performance_context("XML signing"):
            sign_document(xml, key)
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = (time.perf_counter() - start) * 1000
        perf_logger.debug(f"{operation_name}: {elapsed:.2f}ms")
