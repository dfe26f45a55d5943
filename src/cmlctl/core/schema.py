# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Dataclass schema definitions for tool configuration, job configuration and
provider job descriptions.

Uses marshmallow_dataclass for type-safe loading with validation. Provider
documents use camelCase keys, mapped onto snake_case attributes with
data_key. Keys the provider adds that are not modelled here are dropped from
the typed view; JobStatus.raw keeps the full document.
"""

import dataclasses
import posixpath
from dataclasses import field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Type

from marshmallow import EXCLUDE, Schema, validate
from marshmallow_dataclass import dataclass


class ProviderSchema(Schema):
    """Base schema that tolerates keys not modelled by the dataclass."""

    class Meta:
        unknown = EXCLUDE


# ============================================================================
# Enums
# ============================================================================


class JobState(str, Enum):
    """Job states reported by `jobs describe`."""

    QUEUED = "QUEUED"
    PREPARING = "PREPARING"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLING = "CANCELLING"
    CANCELLED = "CANCELLED"


# Collection proceeds only from these states; a CANCELLED job keeps being polled.
TERMINAL_STATES = frozenset({JobState.SUCCEEDED, JobState.FAILED})


class ParameterType(str, Enum):
    INTEGER = "INTEGER"
    DOUBLE = "DOUBLE"
    CATEGORICAL = "CATEGORICAL"
    DISCRETE = "DISCRETE"


class Goal(str, Enum):
    MAXIMIZE = "MAXIMIZE"
    MINIMIZE = "MINIMIZE"


SCALE_TYPES = ("NONE", "UNIT_LINEAR_SCALE", "UNIT_LOG_SCALE", "UNIT_REVERSE_LOG_SCALE")

CUSTOM_SCALE_TIER = "CUSTOM"

CONSOLE_URL_PREFIX = "https://console.cloud.google.com/ml/jobs/"
LOG_URL_PREFIX = "https://console.cloud.google.com/logs"


def message_url(messages: str, prefix: str) -> Optional[str]:
    """First line of provider stderr that is a URL starting with prefix."""
    lines = (line.strip() for line in messages.splitlines())
    return next((line for line in lines if line.startswith(prefix)), None)


# ============================================================================
# Tool Configuration (cmlctl.yaml)
# ============================================================================


@dataclass
class ReportingStatusConfig:
    """Status API endpoint for job state reporting."""

    endpoint: Optional[str] = None

    Schema: ClassVar[Type[Schema]] = Schema


@dataclass
class ReportingConfig:
    """Reporting configuration."""

    status: Optional[ReportingStatusConfig] = None

    Schema: ClassVar[Type[Schema]] = Schema


@dataclass(frozen=True)
class ToolConfig:
    """Tool configuration from cmlctl.yaml."""

    gcloud_binary: str = "gcloud"
    gsutil_binary: str = "gsutil"
    project: Optional[str] = None
    account: Optional[str] = None
    region: Optional[str] = None
    storage: Optional[str] = None
    runtime_version: Optional[str] = None
    reporting: Optional[ReportingConfig] = None

    Schema: ClassVar[Type[Schema]] = Schema


# ============================================================================
# Job Configuration (trainingInput)
# ============================================================================


@dataclass(frozen=True, base_schema=ProviderSchema)
class ParameterSpec:
    """One tunable hyperparameter."""

    parameter_name: str = field(metadata={"data_key": "parameterName"})
    type: str = field(metadata={"validate": validate.OneOf([t.value for t in ParameterType])})
    min_value: Optional[float] = field(default=None, metadata={"data_key": "minValue"})
    max_value: Optional[float] = field(default=None, metadata={"data_key": "maxValue"})
    categorical_values: Optional[List[str]] = field(default=None, metadata={"data_key": "categoricalValues"})
    discrete_values: Optional[List[float]] = field(default=None, metadata={"data_key": "discreteValues"})
    scale_type: Optional[str] = field(
        default=None,
        metadata={"data_key": "scaleType", "validate": validate.OneOf(SCALE_TYPES)},
    )

    Schema: ClassVar[Type[Schema]] = Schema

    def __post_init__(self):
        if self.type in (ParameterType.INTEGER.value, ParameterType.DOUBLE.value):
            if self.min_value is None or self.max_value is None:
                raise ValueError(f"Parameter '{self.parameter_name}' of type {self.type} needs minValue and maxValue")
            if self.min_value > self.max_value:
                raise ValueError(f"Parameter '{self.parameter_name}' has minValue greater than maxValue")
        elif self.type == ParameterType.CATEGORICAL.value and not self.categorical_values:
            raise ValueError(f"Parameter '{self.parameter_name}' of type CATEGORICAL needs categoricalValues")
        elif self.type == ParameterType.DISCRETE.value and not self.discrete_values:
            raise ValueError(f"Parameter '{self.parameter_name}' of type DISCRETE needs discreteValues")


@dataclass(frozen=True, base_schema=ProviderSchema)
class HyperparameterSpec:
    """Hyperparameter tuning specification."""

    goal: Optional[str] = field(default=None, metadata={"validate": validate.OneOf([g.value for g in Goal])})
    hyperparameter_metric_tag: Optional[str] = field(default=None, metadata={"data_key": "hyperparameterMetricTag"})
    max_trials: Optional[int] = field(default=None, metadata={"data_key": "maxTrials"})
    max_parallel_trials: Optional[int] = field(default=None, metadata={"data_key": "maxParallelTrials"})
    enable_trial_early_stopping: Optional[bool] = field(
        default=None, metadata={"data_key": "enableTrialEarlyStopping"}
    )
    params: List[ParameterSpec] = field(default_factory=list)

    Schema: ClassVar[Type[Schema]] = Schema


@dataclass(frozen=True, base_schema=ProviderSchema)
class TrainingInput:
    """Requested training configuration.

    Used both for the job configuration document and for the trainingInput
    section of a job description.
    """

    scale_tier: Optional[str] = field(default=None, metadata={"data_key": "scaleTier"})
    master_type: Optional[str] = field(default=None, metadata={"data_key": "masterType"})
    worker_type: Optional[str] = field(default=None, metadata={"data_key": "workerType"})
    parameter_server_type: Optional[str] = field(default=None, metadata={"data_key": "parameterServerType"})
    worker_count: Optional[int] = field(default=None, metadata={"data_key": "workerCount"})
    parameter_server_count: Optional[int] = field(default=None, metadata={"data_key": "parameterServerCount"})
    runtime_version: Optional[str] = field(default=None, metadata={"data_key": "runtimeVersion"})
    python_version: Optional[str] = field(default=None, metadata={"data_key": "pythonVersion"})
    region: Optional[str] = None
    job_dir: Optional[str] = field(default=None, metadata={"data_key": "jobDir"})
    python_module: Optional[str] = field(default=None, metadata={"data_key": "pythonModule"})
    package_uris: Optional[List[str]] = field(default=None, metadata={"data_key": "packageUris"})
    args: Optional[List[str]] = None
    hyperparameters: Optional[HyperparameterSpec] = None

    Schema: ClassVar[Type[Schema]] = Schema


@dataclass(frozen=True, base_schema=ProviderSchema)
class JobConfig:
    """Job configuration document rooted at trainingInput."""

    training_input: TrainingInput = field(default_factory=TrainingInput, metadata={"data_key": "trainingInput"})

    Schema: ClassVar[Type[Schema]] = Schema


# ============================================================================
# Job Description (jobs describe)
# ============================================================================


@dataclass(frozen=True, base_schema=ProviderSchema)
class FinalMetric:
    objective_value: Optional[float] = field(default=None, metadata={"data_key": "objectiveValue"})
    training_step: Optional[int] = field(default=None, metadata={"data_key": "trainingStep"})

    Schema: ClassVar[Type[Schema]] = Schema


@dataclass(frozen=True, base_schema=ProviderSchema)
class Trial:
    """One hyperparameter tuning run within a job."""

    trial_id: int = field(metadata={"data_key": "trialId"})
    hyperparameters: Dict[str, Any] = field(default_factory=dict)
    final_metric: Optional[FinalMetric] = field(default=None, metadata={"data_key": "finalMetric"})
    state: Optional[str] = None

    Schema: ClassVar[Type[Schema]] = Schema


@dataclass(frozen=True, base_schema=ProviderSchema)
class TrainingOutput:
    """Results section of a job description."""

    consumed_ml_units: Optional[float] = field(default=None, metadata={"data_key": "consumedMLUnits"})
    trials: List[Trial] = field(default_factory=list)
    is_hyperparameter_tuning_job: bool = field(default=False, metadata={"data_key": "isHyperparameterTuningJob"})
    completed_trial_count: Optional[int] = field(default=None, metadata={"data_key": "completedTrialCount"})
    hyperparameter_metric_tag: Optional[str] = field(default=None, metadata={"data_key": "hyperparameterMetricTag"})

    Schema: ClassVar[Type[Schema]] = Schema


@dataclass(frozen=True, base_schema=ProviderSchema)
class JobStatus:
    """Snapshot of a job as reported by `jobs describe`.

    messages holds the stderr of the describe call (it carries the console
    and log URLs); raw holds the full parsed document.
    """

    job_id: str = field(metadata={"data_key": "jobId"})
    state: JobState
    create_time: Optional[str] = field(default=None, metadata={"data_key": "createTime"})
    start_time: Optional[str] = field(default=None, metadata={"data_key": "startTime"})
    end_time: Optional[str] = field(default=None, metadata={"data_key": "endTime"})
    error_message: Optional[str] = field(default=None, metadata={"data_key": "errorMessage"})
    training_input: Optional[TrainingInput] = field(default=None, metadata={"data_key": "trainingInput"})
    training_output: Optional[TrainingOutput] = field(default=None, metadata={"data_key": "trainingOutput"})
    messages: str = ""
    raw: Dict[str, Any] = field(default_factory=dict)

    Schema: ClassVar[Type[Schema]] = Schema

    @classmethod
    def from_document(cls, document: Dict[str, Any], messages: str = "") -> "JobStatus":
        """Load a parsed describe document.

        Raises:
            marshmallow.ValidationError: If required keys are missing or invalid
        """
        status = cls.Schema().load(document)
        return dataclasses.replace(status, messages=messages, raw=document)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def hyperparameters(self) -> Optional[HyperparameterSpec]:
        return self.training_input.hyperparameters if self.training_input else None

    @property
    def is_tuning(self) -> bool:
        """True when the job was submitted with a hyperparameter spec."""
        return self.hyperparameters is not None

    @property
    def goal(self) -> Optional[str]:
        return self.hyperparameters.goal if self.hyperparameters else None

    @property
    def trials(self) -> List[Trial]:
        return list(self.training_output.trials) if self.training_output else []

    @property
    def trial_ids(self) -> List[int]:
        return [t.trial_id for t in self.trials]

    @property
    def storage(self) -> Optional[str]:
        """Bucket path the job was staged under (parent of jobDir)."""
        if not self.training_input or not self.training_input.job_dir:
            return None
        return posixpath.dirname(self.training_input.job_dir.rstrip("/"))

    @property
    def console_url(self) -> Optional[str]:
        return message_url(self.messages, CONSOLE_URL_PREFIX)

    @property
    def log_url(self) -> Optional[str]:
        return message_url(self.messages, LOG_URL_PREFIX)
