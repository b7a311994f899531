"""
``@traced_engine``: one structured log line per calculator call.

The forecast and refund-risk calculators are pure, so the only thing worth
recording about a call is which engine ran, on what inputs and for how long.
Inputs are reduced to a short fingerprint over the named arguments so two
log lines with the same fingerprint are known to have seen the same inputs.

Successful calls log ``LEDGER_ENGINE_TRACE`` at INFO.  A call that raises
logs ``LEDGER_ENGINE_FAILED`` at WARNING and the exception propagates.
"""

from __future__ import annotations

import functools
import inspect
import time
from collections.abc import Callable
from typing import Any

from prepaid_kernel.logging_config import get_logger
from prepaid_kernel.utils.hashing import canonicalize_json, sha256_hex

logger = get_logger("engines.tracer")

FINGERPRINT_LENGTH = 16


def _fingerprintable(value: Any) -> Any:
    # Engine inputs are dataclasses, lists of dataclasses, Decimals and dates.
    if hasattr(value, "__dataclass_fields__"):
        return {name: _fingerprintable(getattr(value, name)) for name in value.__dataclass_fields__}
    if isinstance(value, (list, tuple)):
        return [_fingerprintable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _fingerprintable(v) for k, v in value.items()}
    return value


def compute_input_fingerprint(fields: tuple[str, ...], arguments: dict[str, Any]) -> str:
    """Truncated SHA-256 over the named arguments; absent names count as null."""
    selected = {name: _fingerprintable(arguments.get(name)) for name in fields}
    return sha256_hex(canonicalize_json(selected))[:FINGERPRINT_LENGTH]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fingerprint = ""
            if fingerprint_fields:
                bound = signature.bind_partial(*args, **kwargs)
                fingerprint = compute_input_fingerprint(fingerprint_fields, bound.arguments)
            trace = {
                "engine_name": engine_name,
                "engine_version": engine_version,
                "input_fingerprint": fingerprint,
                "function": func.__qualname__,
            }

            started = time.monotonic()
            try:
                result = func(*args, **kwargs)
            except Exception as exc:
                trace["duration_ms"] = round((time.monotonic() - started) * 1000, 2)
                trace["error_type"] = type(exc).__name__
                logger.warning("LEDGER_ENGINE_FAILED", extra=trace)
                raise
            trace["duration_ms"] = round((time.monotonic() - started) * 1000, 2)
            logger.info("LEDGER_ENGINE_TRACE", extra=trace)
            return result

        return wrapper

    return decorator
