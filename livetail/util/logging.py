"""
Structured logging for tail queries, feed polling and lifecycle pruning.
"""

import logging
from typing import Any, Dict, Optional


class StructuredLogger:
    """Structured logger for live tail operations."""

    def __init__(self, name: str = "livetail"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None,
                      level: int = logging.INFO):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        self.logger.log(level, message)

    def log_bootstrap(self, category: str, cursor: Optional[str], empty: bool):
        """Log a bootstrap resolution on the server."""
        self.log_operation("tail.bootstrap", "empty" if empty else "success",
                           {"category": category, "cursor": cursor}, level=logging.DEBUG)

    def log_tail_query(self, category: str, cursor: Optional[str], count: int,
                       next_cursor: Optional[str], limit: int):
        """Log a served tail query."""
        self.log_operation("tail.query", "success", {
            "category": category,
            "cursor": cursor,
            "limit": limit,
            "count": count,
            "next_cursor": next_cursor,
        }, level=logging.DEBUG)

    def log_rejected(self, operation: str, reason: str, details: Dict[str, Any] = None):
        """Log a request rejected for a caller error (bad category or cursor)."""
        log_details = {"reason": reason}
        if details:
            log_details.update(details)
        self.log_operation(operation, "rejected", log_details, level=logging.WARNING)

    def log_poll(self, category: str, phase: str, status: str, details: Dict[str, Any] = None):
        """Log one feed poller step (bootstrap or tail)."""
        log_details = {"category": category}
        if details:
            log_details.update(details)

        level = logging.WARNING if status == "error" else logging.DEBUG
        self.log_operation(f"feed.{phase}", status, log_details, level=level)

    def log_feed_lifecycle(self, category: str, action: str, details: Dict[str, Any] = None):
        """Log poller start/stop/retarget."""
        log_details = {"category": category}
        if details:
            log_details.update(details)
        self.log_operation(f"feed.{action}", "success", log_details)

    def log_prune(self, expired: int, evicted: int, remaining: int, duration_ms: float):
        """Log a lifecycle prune pass. Quiet when nothing was removed."""
        level = logging.INFO if (expired or evicted) else logging.DEBUG
        self.log_operation("lifecycle.prune", "success", {
            "expired": expired,
            "evicted": evicted,
            "remaining": remaining,
            "duration_ms": round(duration_ms, 2),
        }, level=level)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


# Global logger instance
logger = StructuredLogger()
