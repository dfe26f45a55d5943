# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Job references and the registry backing the "latest" sentinel.

A job reference is one of:
- LATEST ("latest"): the job most recently registered in this process
- a job id string: resolved to a minimal Job without contacting the provider
- a Job: passed through unchanged
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Union

from cmlctl.core.errors import JobNotFoundError

logger = logging.getLogger(__name__)

LATEST = "latest"


@dataclass
class Job:
    """A training job submitted to Cloud ML.

    Attributes:
        kind: Job kind ("train")
        id: Provider job id
        description: Document returned by `jobs describe` (may be empty)
    """

    kind: str
    id: str
    description: dict[str, Any] = field(default_factory=dict)

    @property
    def is_tuning(self) -> bool:
        training_input = self.description.get("trainingInput") or {}
        return training_input.get("hyperparameters") is not None

    def __str__(self) -> str:
        return self.id


JobRef = Union[Job, str]


class JobRegistry:
    """Single-slot registry of the most recently submitted or observed job.

    Last write wins and no history is kept. The registry lives for the
    process only; "latest" is meaningful within one session.

    Usage:
        registry = JobRegistry()
        registry.register(job)
        registry.resolve("latest")  # -> job
    """

    def __init__(self):
        self._latest: Job | None = None
        self._lock = threading.Lock()

    def register(self, job: Job) -> Job:
        """Store job as the most recent one."""
        with self._lock:
            if self._latest is not None and self._latest.id != job.id:
                logger.debug("Replacing latest job %s with %s", self._latest.id, job.id)
            self._latest = job
        return job

    @property
    def latest(self) -> Job | None:
        with self._lock:
            return self._latest

    def resolve(self, reference: JobRef) -> Job:
        """Resolve a job reference to a Job.

        Raises:
            JobNotFoundError: If "latest" is requested before any registration
            TypeError: If the reference is neither a Job nor a string
        """
        if isinstance(reference, Job):
            return reference
        if not isinstance(reference, str):
            raise TypeError(f"Job reference must be a Job or a job id, got {type(reference).__name__}")
        if reference == LATEST:
            job = self.latest
            if job is None:
                raise JobNotFoundError("No job has been submitted in this session; pass a job id instead of 'latest'")
            return job
        return Job(kind="train", id=reference)
