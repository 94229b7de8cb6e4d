"""
Module: observability.py
Description: Logging and lightweight metrics for the Expense Tracker API.

Features:
    - Structured "message | key=value" log lines
    - Per-request context (user id, route) held in a ContextVar
    - In-memory counters and timing histograms served on /metrics
    - Timing decorator and context manager

Usage:
    from services.observability import logger, metrics, timed

    @timed("dashboard.build")
    def build_dashboard(...):
        logger.info("Dashboard built", incomes=len(incomes))

Author: Expense Tracker Team
"""

import asyncio
import functools
import logging
import time
from collections import defaultdict
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime
from typing import Any, Callable, Dict, Optional


_log_context: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})


# =============================================================================
# Structured Logger
# =============================================================================

class StructuredLogger:
    """
    Thin wrapper over the stdlib logger that appends key=value fields.

    Context fields are stored per task/request, so concurrent requests
    never see each other's fields.
    """

    def __init__(self, name: str = "expense-tracker", level: str = "INFO"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(level)

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                "%(asctime)s | %(levelname)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def set_level(self, level: str) -> None:
        self.logger.setLevel(level)

    def set_context(self, **kwargs) -> None:
        """Add fields to every log line emitted by the current request."""
        _log_context.set({**_log_context.get(), **kwargs})

    def clear_context(self) -> None:
        _log_context.set({})

    def _format_message(self, message: str, **kwargs) -> str:
        fields = {**_log_context.get(), **kwargs}
        if fields:
            field_str = " | ".join(f"{k}={v}" for k, v in fields.items())
            return f"{message} | {field_str}"
        return message

    def info(self, message: str, **kwargs) -> None:
        self.logger.info(self._format_message(message, **kwargs))

    def warning(self, message: str, **kwargs) -> None:
        self.logger.warning(self._format_message(message, **kwargs))

    def error(self, message: str, **kwargs) -> None:
        self.logger.error(self._format_message(message, **kwargs))

    def debug(self, message: str, **kwargs) -> None:
        self.logger.debug(self._format_message(message, **kwargs))

    def exception(self, message: str, **kwargs) -> None:
        """Log at error level with the active traceback."""
        self.logger.exception(self._format_message(message, **kwargs))


# =============================================================================
# Metrics Collector
# =============================================================================

class MetricsCollector:
    """
    In-memory counters and timings.

    Values are observational only; nothing in request handling reads them.
    """

    MAX_SAMPLES = 1000

    def __init__(self):
        self.counters: Dict[str, int] = defaultdict(int)
        self.timings: Dict[str, list] = defaultdict(list)
        self._start_time = datetime.utcnow()

    def increment(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None) -> None:
        self.counters[self._make_key(name, tags)] += value

    def timing(self, name: str, duration_ms: float, tags: Optional[Dict[str, str]] = None) -> None:
        key = self._make_key(name, tags)
        samples = self.timings[key]
        samples.append(duration_ms)
        if len(samples) > self.MAX_SAMPLES:
            del samples[: len(samples) - self.MAX_SAMPLES]

    def _make_key(self, name: str, tags: Optional[Dict[str, str]] = None) -> str:
        if tags:
            tag_str = ",".join(f"{k}={v}" for k, v in sorted(tags.items()))
            return f"{name}:{tag_str}"
        return name

    def get_summary(self) -> Dict[str, Any]:
        """Counters plus count/avg/min/max/p50 per timing series."""
        summary = {
            "uptime_seconds": (datetime.utcnow() - self._start_time).total_seconds(),
            "counters": dict(self.counters),
            "timings": {},
        }

        for name, values in self.timings.items():
            if not values:
                continue
            ordered = sorted(values)
            summary["timings"][name] = {
                "count": len(values),
                "avg_ms": sum(values) / len(values),
                "min_ms": ordered[0],
                "max_ms": ordered[-1],
                "p50_ms": ordered[len(ordered) // 2],
            }

        return summary


# =============================================================================
# Timing Helpers
# =============================================================================

def timed(name: Optional[str] = None):
    """
    Decorator recording success/error counters and duration for a function.

    Works for both plain and async functions.

    Example:
        @timed("store.list_window")
        def list_window(...):
            ...
    """
    def decorator(func: Callable) -> Callable:
        metric_name = name or func.__name__

        def _record(start: float) -> None:
            duration_ms = (time.perf_counter() - start) * 1000
            metrics.timing(metric_name, duration_ms)
            logger.debug(f"{metric_name} completed", duration_ms=f"{duration_ms:.2f}")

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
                metrics.increment(f"{metric_name}.success")
                return result
            except Exception:
                metrics.increment(f"{metric_name}.error")
                raise
            finally:
                _record(start)

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
                metrics.increment(f"{metric_name}.success")
                return result
            except Exception:
                metrics.increment(f"{metric_name}.error")
                raise
            finally:
                _record(start)

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


@contextmanager
def timed_block(name: str):
    """
    Context manager for timing a block of code.

    Example:
        with timed_block("export.write"):
            frame.to_excel(path)
    """
    start = time.perf_counter()
    try:
        yield
        metrics.increment(f"{name}.success")
    except Exception:
        metrics.increment(f"{name}.error")
        raise
    finally:
        metrics.timing(name, (time.perf_counter() - start) * 1000)


# =============================================================================
# Global Instances
# =============================================================================

logger = StructuredLogger()

metrics = MetricsCollector()


# =============================================================================
# Convenience Functions
# =============================================================================

def log_suggestion_request(user_id: str, income_count: int, expense_count: int) -> None:
    logger.info(
        "Suggestion requested",
        user=user_id[:8],
        incomes=income_count,
        expenses=expense_count,
    )
    metrics.increment("suggestion.requests")


def log_chat_request(user_id: str, message_length: int, history_length: int) -> None:
    logger.info(
        "Chat request",
        user=user_id[:8],
        msg_length=message_length,
        history=history_length,
    )
    metrics.increment("chat.requests")


def log_llm_call(purpose: str, model: str, duration_ms: float, tokens: int = 0) -> None:
    """Log one text-generation API call."""
    logger.debug(
        "LLM call",
        purpose=purpose,
        model=model,
        tokens=tokens,
        duration_ms=f"{duration_ms:.2f}",
    )
    metrics.increment("llm.calls", tags={"purpose": purpose})
    if tokens:
        metrics.increment("llm.tokens", tokens)
    metrics.timing("llm.latency", duration_ms)


def log_store_failure(operation: str, error: Exception) -> None:
    logger.error("Store unavailable", operation=operation, error=str(error))
    metrics.increment("store.unavailable", tags={"operation": operation})
