"""
rocket_templates: paper rocket design store, analysis and cutting template export.

Command line entry point: rokit (rocket_templates.cli).
"""

from rocket_templates.logging_config import (
    setup_logging,
    get_logger,
    configure_default_logging,
    log_timing,
    timed,
    LogContext,
)

__version__ = "0.1.0"

__all__ = [
    "setup_logging",
    "get_logger",
    "configure_default_logging",
    "log_timing",
    "timed",
    "LogContext",
]
