# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Fire-and-forget status reporter for external job tracking.

This module provides optional reporting of job state changes to an external
API endpoint. If the endpoint is not configured or unreachable, operations
silently continue. The API contract is defined in cmlctl.contract.

Configuration (in cmlctl.yaml):
    reporting:
      status:
        endpoint: "https://status.example.com"
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import requests

from cmlctl.contract import JobCreatePayload, JobStateUpdatePayload

if TYPE_CHECKING:
    from cmlctl.core.registry import Job
    from cmlctl.core.schema import JobStatus, ReportingConfig

logger = logging.getLogger(__name__)


def _iso(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.astimezone()
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class StatusReporter:
    """Fire-and-forget reporter of job state changes.

    Reports to an external API if reporting.status.endpoint is configured.
    Instances are callable with (status, observed_at), so they can be
    passed as the on_status callback of JobController.collect(); only
    changes of state are sent.

    Usage:
        reporter = StatusReporter.from_config(config.reporting)
        controller.collect(job, on_status=reporter)
    """

    api_endpoint: str | None = None
    timeout: float = 5.0
    _last_state: dict[str, str] = field(default_factory=dict, init=False, repr=False)

    @classmethod
    def from_config(cls, reporting: "ReportingConfig | None") -> "StatusReporter":
        """Create reporter from reporting config.

        Returns:
            StatusReporter instance (disabled if no endpoint configured)
        """
        endpoint = None
        if reporting and reporting.status and reporting.status.endpoint:
            endpoint = reporting.status.endpoint.rstrip("/")
            logger.info("Status reporting enabled: %s", endpoint)

        return cls(api_endpoint=endpoint)

    @property
    def enabled(self) -> bool:
        """Check if reporting is enabled."""
        return self.api_endpoint is not None

    def __call__(self, status: "JobStatus", observed_at: datetime) -> bool:
        return self.report(status, observed_at)

    def report(self, status: "JobStatus", observed_at: datetime | None = None) -> bool:
        """Report a job status if its state changed since the last report.

        Returns:
            True if reported successfully, False otherwise
        """
        if not self.enabled:
            return False

        state = status.state.value
        if self._last_state.get(status.job_id) == state:
            return False

        try:
            payload = JobStateUpdatePayload(
                state=state,
                updated_at=_iso(observed_at or datetime.now(timezone.utc)),
                message=status.error_message,
                started_at=status.start_time,
                completed_at=status.end_time,
                console_url=status.console_url,
                consumed_ml_units=status.training_output.consumed_ml_units if status.training_output else None,
            )

            url = f"{self.api_endpoint}/api/jobs/{status.job_id}"
            response = requests.put(url, json=payload.model_dump(exclude_none=True), timeout=self.timeout)

            if response.status_code == 200:
                self._last_state[status.job_id] = state
                logger.debug("Status reported: %s", state)
                return True
            logger.debug("Status report failed: HTTP %d", response.status_code)
            return False

        except requests.exceptions.RequestException as e:
            logger.debug("Status report error (ignored): %s", e)
            return False

    def report_submitted(
        self,
        job: "Job",
        job_name: str,
        project: str | None = None,
        region: str | None = None,
        metadata: dict | None = None,
    ) -> bool:
        """Create the initial job record (called at submission time).

        Returns:
            True if created successfully, False otherwise
        """
        if not self.enabled:
            return False

        try:
            payload = JobCreatePayload(
                job_id=job.id,
                job_name=job_name,
                submitted_at=_iso(datetime.now(timezone.utc)),
                project=project,
                region=region,
                metadata=metadata,
            )

            url = f"{self.api_endpoint}/api/jobs"
            response = requests.post(url, json=payload.model_dump(exclude_none=True), timeout=self.timeout)

            if response.status_code == 201:
                logger.debug("Job record created: %s", job.id)
                return True
            logger.debug("Job record creation failed: HTTP %d", response.status_code)
            return False

        except requests.exceptions.RequestException as e:
            logger.debug("Job record creation error (ignored): %s", e)
            return False
