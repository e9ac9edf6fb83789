"""Wiring: settings → logging → config → scanner → hook handler."""

import logging
import logging.handlers
from pathlib import Path

import structlog

from bashscan.core.category import CategoryClassifier, default_category_config
from bashscan.core.config import BashscanSettings, load_config
from bashscan.core.safety.audit import AuditLogger
from bashscan.core.safety.scanner import Scanner
from bashscan.hooks import HookHandler

logger = structlog.get_logger()


def configure_logging(
    settings: BashscanSettings, *, log_dir: Path | None = None
) -> None:
    """Set up structlog with stderr console output and optional rotating JSON file handler."""
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]

    root_logger = logging.getLogger()
    root_logger.setLevel(settings.log_level)
    root_logger.handlers.clear()

    # stdout carries the hook response, so the console handler stays on stderr
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.dev.ConsoleRenderer(colors=False),
        )
    )
    root_logger.addHandler(console_handler)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_dir / "bashscan.log",
            maxBytes=settings.log_max_bytes,
            backupCount=settings.log_backup_count,
        )
        file_handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processor=structlog.processors.JSONRenderer(),
            )
        )
        root_logger.addHandler(file_handler)

    structlog.configure(
        processors=shared_processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def build_scanner(settings: BashscanSettings, cwd: str | None = None) -> Scanner:
    scan_cwd = str(settings.cwd) if settings.cwd else cwd
    project_dir = settings.project_dir or scan_cwd
    config = load_config(project_dir)
    return Scanner(scan_cwd or None, config)


def build_handler(settings: BashscanSettings, cwd: str | None = None) -> HookHandler:
    """Build a hook handler for one invocation.

    ``settings.cwd`` wins over the *cwd* reported by the hook payload; the
    project directory used for config lookup defaults to the scan directory.
    """
    scanner = build_scanner(settings, cwd)

    audit = None
    categories = None
    if settings.audit_log_path is not None:
        audit = AuditLogger(settings.audit_log_path)
        project_dir = settings.project_dir or scanner.classifier.cwd
        categories = CategoryClassifier(default_category_config(project_dir))

    logger.debug(
        "handler_built",
        cwd=scanner.classifier.cwd,
        audit_enabled=audit is not None,
    )
    return HookHandler(scanner, audit=audit, categories=categories)
