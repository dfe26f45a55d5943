"""
cmlctl - Training job orchestration for Google Cloud ML.

This package drives the gcloud and gsutil command-line tools to run training
jobs on Cloud ML Engine:
- Submission of a local trainer application as a deployment bundle
- Status, cancellation, listing and log streaming
- Blocking or background collection of job outputs, including
  hyperparameter tuning trials

Key modules:
- core.arguments: Ordered provider command-line arguments
- core.executor: Subprocess execution of provider commands
- core.config: Tool and job configuration loading and validation
- core.schema: Frozen dataclass definitions (ToolConfig, JobStatus, etc.)
- core.registry: Job references and the "latest" job
- core.jobs: JobController, the job lifecycle operations
- core.trials: Trial selection and download paths
- core.collector: Artifact download and run metadata
- cli.main: Command-line interface
- logging_utils: Logging configuration

Usage:
    cmlctl train train.py --config tuning.yml --collect
    cmlctl collect cloudml_2018_01_01_120000 --trials all
"""

__version__ = "0.1.0"

# Logging utilities (should be first)
from .logging_utils import setup_logging

# Core modules
from .core.arguments import ArgumentsBuilder
from .core.collector import ArtifactCollector
from .core.config import get_setting, load_job_config, load_tool_config
from .core.errors import CloudMLError
from .core.executor import CommandExecutor, ExecResult
from .core.jobs import JobController, unique_job_name
from .core.registry import LATEST, Job, JobRegistry
from .core.schema import JobState, JobStatus, ToolConfig
from .core.trials import TrialPaths, resolve_trial_paths, select_best_trial

__all__ = [
    # Version
    "__version__",
    # Logging
    "setup_logging",
    # Config
    "load_tool_config",
    "load_job_config",
    "get_setting",
    "ToolConfig",
    # Execution
    "ArgumentsBuilder",
    "CommandExecutor",
    "ExecResult",
    # Jobs
    "LATEST",
    "Job",
    "JobRegistry",
    "JobController",
    "JobState",
    "JobStatus",
    "unique_job_name",
    # Collection
    "ArtifactCollector",
    "TrialPaths",
    "resolve_trial_paths",
    "select_best_trial",
    # Errors
    "CloudMLError",
]
