# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Core modules for cmlctl.

This package contains:
- arguments: ArgumentsBuilder for ordered provider arguments
- executor: CommandExecutor and ExecResult
- config: Tool and job configuration loading and validation
- schema: Frozen dataclass schemas (ToolConfig, JobConfig, JobStatus, etc.)
- errors: Exception hierarchy
- registry: Job and JobRegistry
- jobs: JobController (submit, status, cancel, list, stream logs, collect)
- trials: Trial selection and download paths
- collector: ArtifactCollector and run metadata
- deployment: Deployment bundle staging
- report: HTML run report
- background: Detached collection processes
- status: Optional external status reporting
"""

from .config import get_setting, load_job_config, load_tool_config
from .errors import CloudMLError
from .jobs import JobController
from .registry import LATEST, Job, JobRegistry
from .schema import JobConfig, JobState, JobStatus, ToolConfig
