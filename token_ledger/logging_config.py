"""
Structured Logging Configuration Module

Provides JSON-formatted structured logging for ledger operations.
"""

import logging
import json
from datetime import datetime, timezone
from typing import Optional


TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.module if hasattr(record, 'module') else record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, 'correlation_id', None),
            "caller": getattr(record, 'caller', None),
            "action": getattr(record, 'action', None),
            "counterparty": getattr(record, "counterparty", None),
            "amount": getattr(record, "amount", None),
            "outcome": getattr(record, "outcome", None),
            "extra": getattr(record, 'extra', None)
        }

        # Remove None values
        log_entry = {k: v for k, v in log_entry.items() if v is not None}

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(
    level: str = "INFO",
    logger_name: str = "token_ledger",
    log_format: str = "json",
    log_file: Optional[str] = None
) -> logging.Logger:
    """
    Setup structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        logger_name: Name of the logger
        log_format: "json" or "text"
        log_file: Optional file path, stdout stream when None

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)

    # Remove existing handlers to avoid duplicates
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.FileHandler(log_file) if log_file else logging.StreamHandler()
    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper()))

    # Prevent propagation to avoid duplicate logs
    logger.propagate = False

    return logger


def get_logger(name: str = "token_ledger") -> logging.Logger:
    """Get logger instance"""
    return logging.getLogger(name)


LEVEL_BY_OUTCOME = {"committed": "info", "rejected": "warning"}


def log_operation(logger: logging.Logger, action: str, caller: str, outcome: str = "committed",
                  counterparty: Optional[str] = None, amount: Optional[int] = None,
                  correlation_id: Optional[str] = None, extra: Optional[dict] = None):
    """
    Log the outcome of a ledger operation with structured data.

    The message reads "<action> <outcome>". Amounts are logged as decimal
    strings since uint256 values overflow JSON number parsers.

    Args:
        logger: Logger instance
        action: Operation name (transfer, approve, ...)
        caller: Identity invoking the operation
        outcome: "committed" or "rejected", which also picks the level
        counterparty: Recipient, spender or source account
        amount: Token amount moved or approved
        correlation_id: Correlation ID for request tracing
        extra: Additional structured data
    """
    fields = {
        "caller": caller,
        "action": action,
        "outcome": outcome,
        "counterparty": counterparty,
        "amount": None if amount is None else str(amount),
        "correlation_id": correlation_id,
        "extra": extra
    }
    level = LEVEL_BY_OUTCOME.get(outcome, "info")
    logger.log(
        getattr(logging, level.upper()),
        f"{action} {outcome}",
        extra={k: v for k, v in fields.items() if v is not None}
    )
