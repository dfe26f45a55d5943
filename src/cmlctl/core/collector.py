# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Download of job outputs from Google Storage with a metadata sidecar.
"""

import calendar
import logging
import time
from pathlib import Path
from typing import Any, Union

import yaml

from cmlctl.core.arguments import ArgumentsBuilder
from cmlctl.core.errors import ArtifactNotFoundError, InvalidSourceError
from cmlctl.core.executor import CommandExecutor
from cmlctl.core.report import RUN_METADATA_DIR, open_run_view, render_run_view, save_run_view
from cmlctl.core.schema import JobStatus
from cmlctl.logging_utils import FOLDER

logger = logging.getLogger(__name__)

GS_SCHEME = "gs://"
PROPERTIES_FILE = "properties.yaml"
VIEW_SAVE = "save"

TIMESTAMP_FORMATS = ("%Y-%m-%dT%H:%M:%SZ", "%Y-%m-%dT%H:%M:%S.%fZ")

ViewMode = Union[bool, str]


def is_gs_uri(path: str) -> bool:
    return isinstance(path, str) and path.startswith(GS_SCHEME) and len(path) > len(GS_SCHEME)


def provider_timestamp(value: str | None) -> float | None:
    """Convert a provider timestamp (UTC) to epoch seconds.

    Returns None when the value is missing or not in a known format.
    """
    if not value:
        return None
    for fmt in TIMESTAMP_FORMATS:
        try:
            parsed = time.strptime(value, fmt)
        except ValueError:
            continue
        return float(calendar.timegm(parsed))
    logger.debug("Unparseable timestamp %r", value)
    return None


def run_properties(status: JobStatus) -> dict[str, Any]:
    """Collect the sidecar properties for a job status; missing values are dropped."""
    training_input = status.training_input
    training_output = status.training_output
    properties = {
        "cloudml_job": status.job_id,
        "cloudml_state": status.state.value,
        "cloudml_error": status.error_message,
        "cloudml_created": provider_timestamp(status.create_time),
        "cloudml_start": provider_timestamp(status.start_time),
        "cloudml_end": provider_timestamp(status.end_time),
        "cloudml_ml_units": training_output.consumed_ml_units if training_output else None,
        "cloudml_master_type": training_input.master_type if training_input else None,
        "cloudml_console_url": status.console_url,
        "cloudml_log_url": status.log_url,
    }
    return {key: value for key, value in properties.items() if value is not None}


def write_run_properties(run_dir: Path, properties: dict[str, Any]) -> Path:
    """Write the metadata sidecar to <run_dir>/run.d/properties.yaml."""
    path = run_dir / RUN_METADATA_DIR / PROPERTIES_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.safe_dump(properties, f, default_flow_style=False, sort_keys=False)
    return path


class ArtifactCollector:
    """Downloads job outputs with gsutil.

    Usage:
        collector = ArtifactCollector(CommandExecutor("gsutil"))
        collector.download("gs://bucket/runs/job_1/*", "runs/job_1", status)
    """

    def __init__(self, gsutil: CommandExecutor):
        self.gsutil = gsutil

    def download(
        self,
        source: str,
        destination: str | Path,
        status: JobStatus,
        view: ViewMode = False,
        trial: int | None = None,
    ) -> JobStatus:
        """Copy everything under source into destination.

        Args:
            source: gs:// URI (may end in a wildcard)
            destination: Local run directory (created if missing)
            status: Status of the job being collected
            view: True to open the run report, "save" to only write it
            trial: Trial id when a single tuning trial is collected

        Returns:
            status, unchanged

        Raises:
            InvalidSourceError: If source is not a gs:// URI
            ArtifactNotFoundError: If nothing exists at source
            ProviderInvocationError: If the copy fails
        """
        if not is_gs_uri(source):
            raise InvalidSourceError(f"Job directory '{source}' is not a Google Storage URI")

        logger.info("Downloading job from %s...", source)

        # gsutil ls exits non-zero for a URL with no objects
        listing = self.gsutil.execute(ArgumentsBuilder("ls", source).build())
        if not listing.ok:
            raise ArtifactNotFoundError(f"No directory at path '{source}'")

        run_dir = Path(destination)
        run_dir.mkdir(parents=True, exist_ok=True)

        copy_args = ArgumentsBuilder("-m", "cp", "-r", source, str(run_dir)).build()
        self.gsutil.execute(copy_args, echo=True).check(f"copy {source}")

        properties = run_properties(status)
        write_run_properties(run_dir, properties)
        logger.info("%s Job outputs collected in %s", FOLDER, run_dir)

        if view is True or view == VIEW_SAVE:
            html = render_run_view(run_dir, status, properties, trial=trial)
            view_path = save_run_view(run_dir, html)
            if view is True:
                open_run_view(view_path)

        return status
