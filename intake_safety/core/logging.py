"""Logging setup for the safety service.

Development gets a plain human-readable line. Other environments get
key=value lines that carry the intake context attached via ``extra``.
"""

import logging
import sys
from typing import Any

from intake_safety.core.config import settings

# Record attributes copied into structured lines when a caller sets them
CONTEXT_FIELDS = ("intake_id", "service_type", "action")


class StructuredFormatter(logging.Formatter):
    """Render a record as space-separated key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        fields: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for name in CONTEXT_FIELDS:
            if hasattr(record, name):
                fields[name] = getattr(record, name)

        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)

        return " ".join(f"{key}={value}" for key, value in fields.items())


def setup_logging() -> None:
    """Install a single stdout handler on the root logger.

    Called when the app module is imported. Handlers already on the
    root logger are replaced, so a second call does not duplicate output.
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if settings.is_dev:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
    else:
        handler.setFormatter(StructuredFormatter())
    root.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class AuditLogger:
    """Writes safety evaluation events to the "audit" logger.

    Callers pass only identifiers and outcome metadata. Raw intake
    answers belong in the audit record, never in log lines.
    """

    def __init__(self) -> None:
        self.logger = get_logger("audit")

    def log(
        self,
        action: str,
        entity_type: str,
        entity_id: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self.logger.info(
            f"AUDIT: action={action} entity={entity_type}:{entity_id} "
            f"metadata={metadata or {}}",
            extra={"action": action},
        )


audit_logger = AuditLogger()
