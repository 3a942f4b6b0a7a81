"""
Correlation ids, error classification and read retries

Every balance refresh and every orchestrated transaction runs inside a
CorrelationContext; CorrelationIdFilter stamps the active id on each log
record so one operation's lines can be followed across modules and tasks.

Only read-side calls (estimation, fee and balance reads) are retried.
Broadcasts never are: a sent transaction cannot be taken back.
"""

import asyncio
import contextvars
import logging
import uuid
from typing import Awaitable, Callable, Optional, Tuple, TypeVar

from ..errors import ErrorCode, WalletEngineError
from ..config import config as global_config

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Task-local under asyncio: each gathered task sees the id of the scope that spawned it
_current_cid: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("wallet_engine_cid", default=None)


def generate_correlation_id(prefix: Optional[str] = None) -> str:
    token = uuid.uuid4().hex[:12]
    return f"{prefix}_{token}" if prefix else token


def get_correlation_id() -> Optional[str]:
    return _current_cid.get()


class CorrelationContext:
    """
    Scope a correlation id to a block (and the tasks started inside it)

    Usage:
        with CorrelationContext("tx") as cid:
            logger.info("submitting")       # record.correlation_id == cid
    """

    def __init__(self, prefix: Optional[str] = None):
        self.correlation_id = generate_correlation_id(prefix)
        self._reset: Optional[contextvars.Token] = None

    def __enter__(self) -> str:
        self._reset = _current_cid.set(self.correlation_id)
        return self.correlation_id

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._reset is not None:
            _current_cid.reset(self._reset)
            self._reset = None


class CorrelationIdFilter(logging.Filter):
    """Adds record.correlation_id ("-" outside any context) for format strings"""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "correlation_id") or record.correlation_id is None:
            record.correlation_id = get_correlation_id() or "-"
        return True


def log_with_correlation(
    level: int,
    message: str,
    operation_name: str,
    attempt: Optional[int] = None,
    max_retries: Optional[int] = None,
    **fields
):
    """
    Log one structured line for an operation

    The operation name (and attempt counter, when given) prefixes the message;
    the same values plus any extra fields travel on the record for handlers
    that emit structured output.
    """
    prefix = f"[{operation_name}]"
    if attempt is not None and max_retries is not None:
        prefix += f"[{attempt}/{max_retries}]"

    logger.log(
        level,
        f"{prefix} {message}",
        extra={
            "correlation_id": get_correlation_id(),
            "operation": operation_name,
            "attempt": attempt,
            "max_retries": max_retries,
            **fields,
        },
    )


# Error keywords for classification
# Substrings seen in node/provider messages for transient failures
RECOVERABLE_KEYWORDS = (
    "timeout", "timed out", "connection", "network", "rate limit",
    "too many requests", "503", "502", "504",
    "temporarily unavailable", "service unavailable",
    "econnreset", "enotfound", "etimedout",
    "socket hang up", "request failed", "header not found",
)

REVERT_KEYWORDS = (
    "execution reverted", "revert", "out of gas",
    "insufficient funds", "gas required exceeds",
)

# First match wins; anything else recoverable is an invalid response
_TRANSIENT_CODES = (
    (("timeout", "timed out"), ErrorCode.RPC_TIMEOUT),
    (("rate limit", "too many requests"), ErrorCode.RPC_RATE_LIMITED),
    (("connection", "network", "socket"), ErrorCode.RPC_UNAVAILABLE),
)

_REVERT_CODES = (ErrorCode.ESTIMATION_FAILED, ErrorCode.EXECUTION_REVERTED)


def _mentions(text: str, keywords) -> bool:
    return any(keyword in text for keyword in keywords)


def classify_error(error: Exception) -> Tuple[bool, bool, Optional[ErrorCode]]:
    """
    Sort a raw failure into (recoverable, revert, code).

    Engine errors already carry both flags. Builtin timeouts and connection
    errors are transient. Anything else is judged by its message text.
    """
    if isinstance(error, WalletEngineError):
        return error.recoverable, error.code in _REVERT_CODES, error.code
    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return True, False, ErrorCode.RPC_TIMEOUT
    if isinstance(error, ConnectionError):
        return True, False, ErrorCode.RPC_UNAVAILABLE

    text = str(error).lower()
    if _mentions(text, REVERT_KEYWORDS):
        return False, True, ErrorCode.EXECUTION_REVERTED
    if not _mentions(text, RECOVERABLE_KEYWORDS):
        return False, False, None

    for keywords, code in _TRANSIENT_CODES:
        if _mentions(text, keywords):
            return True, False, code
    return True, False, ErrorCode.RPC_INVALID_RESPONSE


async def retry_read(
    operation: Callable[[], Awaitable[T]],
    operation_name: str,
    max_retries: Optional[int] = None,
    retry_delay: Optional[float] = None,
) -> T:
    """
    Await ``operation()`` until it succeeds or fails for good.

    Only read-side calls go through here; submissions are never repeated.
    Recoverable ``WalletEngineError``s back off linearly (delay, 2*delay,
    ...). Everything else propagates on the first attempt.
    """
    attempts = max(1, global_config.tx.read_max_retries if max_retries is None else max_retries)
    delay = global_config.tx.retry_delay if retry_delay is None else retry_delay

    attempt = 0
    while True:
        attempt += 1
        try:
            result = await operation()
        except WalletEngineError as e:
            exhausted = attempt >= attempts
            if e.recoverable and not exhausted:
                log_with_correlation(
                    logging.WARNING, f"Retrying after: {e}", operation_name,
                    attempt, attempts, error_type="recoverable",
                )
                await asyncio.sleep(delay * attempt)
                continue
            log_with_correlation(
                logging.ERROR if e.recoverable else logging.WARNING,
                f"Giving up: {e}", operation_name, attempt, attempts,
                error_type="recoverable" if e.recoverable else "fatal",
            )
            raise

        if attempt > 1:
            log_with_correlation(logging.INFO, "Recovered", operation_name, attempt, attempts)
        return result
