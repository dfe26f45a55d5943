# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Logging setup and emoji-prefixed message helpers for cmlctl.

Every module logs through `logging.getLogger(__name__)`; the CLI calls
setup_logging() once. Provider commands are logged at DEBUG, so --verbose
shows every gcloud/gsutil invocation.
"""

import logging
import sys
from pathlib import Path

# ============================================================================
# Emoji Constants
# ============================================================================

CHECK = "✓"
ROCKET = "🚀"
HOURGLASS = "⏳"
PACKAGE = "📦"
WARN = "⚠"
CLOUD = "☁"
FOLDER = "📁"
LINK = "🔗"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are only useful when debugging them
QUIET_LOGGERS = ("urllib3", "requests")


# ============================================================================
# Logging Configuration
# ============================================================================


def setup_logging(level: int = logging.INFO, log_file: Path | None = None) -> None:
    """Configure the root logger for cmlctl.

    Args:
        level: Logging level (default: INFO)
        log_file: Also append records to this file (e.g. for background collection)
    """
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=DATE_FORMAT, handlers=handlers, force=True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


# ============================================================================
# Output Helpers
# ============================================================================


def _emit(emoji: str, message: str, logger: logging.Logger | None, level: int = logging.INFO) -> None:
    (logger or logging.getLogger()).log(level, "%s %s", emoji, message)


def success(message: str, logger: logging.Logger | None = None) -> None:
    """Log a completed operation (submitted, cancelled, collected)."""
    _emit(CHECK, message, logger)


def warn(message: str, logger: logging.Logger | None = None) -> None:
    _emit(WARN, message, logger, logging.WARNING)


def step(message: str, logger: logging.Logger | None = None) -> None:
    """Log the start of a provider operation."""
    _emit(ROCKET, message, logger)


def waiting(message: str, logger: logging.Logger | None = None) -> None:
    """Log that a job is not finished yet."""
    _emit(HOURGLASS, message, logger)
