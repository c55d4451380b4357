"""
Logging setup: per-module loggers, console/file handlers and a JSON trade log.
"""

import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

LOG_DIR = Path("logs")
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

MAX_LOG_SIZE_MB = 10
BACKUP_COUNT = 5

TRADE_EVENTS_LOGGER = "trading.events"
TRADE_EVENT_FIELDS = (
    "event_type",
    "token_mint",
    "platform",
    "amount_sol",
    "token_amount",
    "tx_signature",
    "attempts",
)

_loggers: Dict[str, logging.Logger] = {}
_file_handler_added = False


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured trade events."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.name,
            "message": record.getMessage(),
        }
        for field in TRADE_EVENT_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)
        extra = getattr(record, "extra_fields", None)
        if extra:
            log_data.update(extra)
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, default=str)


def get_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    """Get or create a logger."""
    if name in _loggers:
        return _loggers[name]
    logger = logging.getLogger(name)
    logger.setLevel(level)
    _loggers[name] = logger
    return logger


def setup_file_logging(
    filename: str = "pump_trader.log",
    level: int = logging.INFO,
    use_rotation: bool = True,
) -> None:
    """Set up a single root file handler (repeated calls are no-ops)."""
    global _file_handler_added

    if _file_handler_added:
        return

    LOG_DIR.mkdir(exist_ok=True)
    log_path = LOG_DIR / Path(filename).name

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    if use_rotation:
        file_handler = logging.handlers.RotatingFileHandler(
            str(log_path),
            maxBytes=MAX_LOG_SIZE_MB * 1024 * 1024,
            backupCount=BACKUP_COUNT,
            encoding="utf-8",
        )
    else:
        file_handler = logging.FileHandler(str(log_path), encoding="utf-8")

    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    _file_handler_added = True


def setup_console_logging(level: int = logging.INFO) -> None:
    """Set up console logging."""
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers:
        if isinstance(handler, logging.StreamHandler) and handler.stream == sys.stdout:
            return

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(
        logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    )
    root_logger.addHandler(console_handler)


def setup_json_logging(filename: str = "trade_events.jsonl") -> logging.Logger:
    """Set up the JSON-lines logger used for trade events."""
    json_logger = logging.getLogger(TRADE_EVENTS_LOGGER)
    json_logger.setLevel(logging.INFO)
    json_logger.propagate = False

    for handler in json_logger.handlers:
        if isinstance(handler, logging.FileHandler):
            return json_logger

    LOG_DIR.mkdir(exist_ok=True)
    json_handler = logging.handlers.RotatingFileHandler(
        str(LOG_DIR / filename),
        maxBytes=MAX_LOG_SIZE_MB * 1024 * 1024,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    json_handler.setFormatter(JSONFormatter())
    json_logger.addHandler(json_handler)
    return json_logger


def log_trade_event(
    event_type: str,
    token_mint: str,
    platform: str,
    amount_sol: Optional[float] = None,
    tx_signature: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    """Log a structured trade event (BUY, SELL, CLAIM)."""
    json_logger = setup_json_logging()
    record = json_logger.makeRecord(
        name=TRADE_EVENTS_LOGGER,
        level=logging.INFO,
        fn="",
        lno=0,
        msg=f"{event_type}: {token_mint[:8]}... on {platform}",
        args=(),
        exc_info=None,
    )
    record.event_type = event_type
    record.token_mint = token_mint
    record.platform = platform
    if amount_sol is not None:
        record.amount_sol = amount_sol
    if tx_signature is not None:
        record.tx_signature = tx_signature
    if extra:
        record.extra_fields = dict(extra)
    json_logger.handle(record)
