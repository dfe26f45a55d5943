# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Exceptions raised by the job lifecycle.

Each error carries the process exit code the CLI maps it to.
"""


class CloudMLError(Exception):
    """Base exception for cmlctl errors."""

    exit_code = 1


class ConfigError(CloudMLError, ValueError):
    """Raised when a tool or job configuration document is invalid."""

    exit_code = 2


class ProviderInvocationError(CloudMLError):
    """Raised when a provider CLI call exits with non-zero status.

    The message is the stderr captured from the call.
    """

    exit_code = 3

    def __init__(self, action: str, stderr: str, exit_status: int):
        self.action = action
        self.stderr = stderr
        self.exit_status = exit_status
        detail = stderr.strip() or f"exit status {exit_status}"
        super().__init__(f"{action} failed: {detail}")


class ParseError(CloudMLError):
    """Raised when provider output (YAML or tabular) cannot be parsed."""

    exit_code = 4


class UnsupportedVersionError(CloudMLError):
    """Raised when the requested runtime version is below the supported floor."""

    exit_code = 5


class InvalidSourceError(CloudMLError):
    """Raised when an artifact source is not a Google Storage URI."""

    exit_code = 6


class NotFoundError(CloudMLError):
    exit_code = 7


class JobNotFoundError(NotFoundError):
    """Raised when 'latest' is requested before any job was registered."""


class ArtifactNotFoundError(NotFoundError):
    """Raised when the remote output directory of a job does not exist."""


class TrialSelectionError(CloudMLError):
    exit_code = 8


class NoTrialsError(TrialSelectionError):
    """Raised when best-trial selection is requested on a job with no trials."""


class MissingMetricError(TrialSelectionError):
    """Raised when trials lack the final metric needed to pick the best one."""


class TimeoutExceededError(CloudMLError):
    """Raised when collection gives up waiting for a terminal state."""

    exit_code = 9

    def __init__(self, timeout_minutes: float, state: str):
        self.timeout_minutes = timeout_minutes
        self.state = state
        super().__init__(f"Giving up after {timeout_minutes:g} minutes with job in state {state}")
