# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Job lifecycle: submit, describe, cancel, list, stream logs and collect.

Job state lives with the provider. Every transition
(QUEUED -> PREPARING -> RUNNING -> SUCCEEDED/FAILED, or CANCELLING ->
CANCELLED after a cancel) is observed by re-running `jobs describe`; the
controller keeps nothing between calls except the registry's latest job.
"""

import io
import logging
import time
from collections.abc import Callable, Mapping
from datetime import datetime
from pathlib import Path
from typing import Any

import pandas as pd
import yaml
from marshmallow import ValidationError

from cmlctl.core.arguments import ArgumentsBuilder, ml_arguments
from cmlctl.core.background import CollectHandle, collect_steps, spawn_detached
from cmlctl.core.collector import ArtifactCollector, ViewMode
from cmlctl.core.config import (
    DEFAULT_REGION,
    DEFAULT_RUNTIME_VERSION,
    apply_overrides,
    check_runtime_version,
    load_job_config,
)
from cmlctl.core.deployment import stage_deployment
from cmlctl.core.errors import ConfigError, ParseError, TimeoutExceededError
from cmlctl.core.executor import CommandExecutor
from cmlctl.core.registry import LATEST, Job, JobRef, JobRegistry
from cmlctl.core.schema import CONSOLE_URL_PREFIX, LOG_URL_PREFIX, JobState, JobStatus, ToolConfig, message_url
from cmlctl.core.status import StatusReporter
from cmlctl.core.trials import ALL, BEST, TrialSelector, resolve_trial_paths, validate_trial_selector
from cmlctl.logging_utils import CLOUD, LINK, step, success, waiting, warn

logger = logging.getLogger(__name__)

# Seconds between status polls while collecting
POLL_INTERVAL = 30

JOB_ID_PREFIX = "cloudml"

# Token after "--" handed to the generated entrypoint module
PASSTHROUGH_INTERPRETER = "python"

LIST_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S"

StatusCallback = Callable[[JobStatus, datetime], Any]


def unique_job_name(prefix: str = JOB_ID_PREFIX) -> str:
    """Generate a job id; the provider only accepts letters, digits and underscores."""
    return f"{prefix}_{datetime.now().strftime('%Y_%m_%d_%H%M%S')}"


def parse_job_status(stdout: str, stderr: str = "") -> JobStatus:
    """Parse `jobs describe` output.

    Raises:
        ParseError: If the output is not a valid job description
    """
    try:
        document = yaml.safe_load(stdout)
    except yaml.YAMLError as e:
        raise ParseError(f"Could not parse job description: {e}") from e

    if not isinstance(document, dict):
        raise ParseError("Job description is empty or not a mapping")

    try:
        return JobStatus.from_document(document, messages=stderr)
    except (ValidationError, ValueError, TypeError) as e:
        detail = e.messages if isinstance(e, ValidationError) else e
        raise ParseError(f"Invalid job description: {detail}") from e


def parse_job_list(stdout: str) -> pd.DataFrame:
    """Parse the whitespace table printed by `jobs list`.

    The CREATED column is converted to UTC timestamps.

    Raises:
        ParseError: If the table is malformed
    """
    if not stdout.strip():
        return pd.DataFrame(columns=["JOB_ID", "STATUS", "CREATED"])

    try:
        jobs = pd.read_csv(io.StringIO(stdout), sep=r"\s+")
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise ParseError(f"Could not parse job list: {e}") from e

    if "CREATED" not in jobs.columns:
        raise ParseError(f"Job list has no CREATED column (columns: {', '.join(jobs.columns)})")

    try:
        jobs["CREATED"] = pd.to_datetime(jobs["CREATED"], format=LIST_TIME_FORMAT, utc=True)
    except (ValueError, TypeError) as e:
        raise ParseError(f"Could not parse CREATED column: {e}") from e
    return jobs


def trials_frame(status: JobStatus) -> pd.DataFrame | None:
    """Hyperparameter trials as a data frame, one row per trial.

    Nested fields are flattened (hyperparameters.<name>, finalMetric.<field>)
    and fully numeric columns are converted to numbers.
    """
    trials = (status.raw.get("trainingOutput") or {}).get("trials")
    if not trials:
        return None

    df = pd.json_normalize(trials)
    for column in df.columns:
        converted = pd.to_numeric(df[column], errors="coerce")
        if converted.notna().all():
            df[column] = converted
    return df


class JobController:
    """Runs job operations against gcloud/gsutil.

    Collaborators are injectable so tests can script provider responses
    and run the poll loop without sleeping.

    Usage:
        controller = JobController(load_tool_config())
        job = controller.submit("train.py", config="tuning.yml")
        statuses = controller.collect(job, trials="best")
    """

    def __init__(
        self,
        config: ToolConfig | None = None,
        gcloud: CommandExecutor | None = None,
        gsutil: CommandExecutor | None = None,
        registry: JobRegistry | None = None,
        collector: ArtifactCollector | None = None,
        reporter: StatusReporter | None = None,
        sleep: Callable[[float], Any] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or ToolConfig()
        self.gcloud = gcloud or CommandExecutor(self.config.gcloud_binary)
        self.gsutil = gsutil or CommandExecutor(self.config.gsutil_binary)
        self.registry = registry or JobRegistry()
        self.collector = collector or ArtifactCollector(self.gsutil)
        self.reporter = reporter or StatusReporter.from_config(self.config.reporting)
        self._sleep = sleep
        self._clock = clock

    def _ml(self) -> ArgumentsBuilder:
        return ml_arguments(self.config)

    # ------------------------------------------------------------------
    # Provider settings
    # ------------------------------------------------------------------

    def _gcloud_setting(self, name: str) -> str | None:
        result = self.gcloud.execute(("config", "get-value", name))
        value = result.stdout.strip() if result.ok else ""
        return value or None

    def resolve_project(self) -> str | None:
        return self.config.project or self._gcloud_setting("project")

    def resolve_region(self, region: str | None = None) -> str:
        return region or self.config.region or self._gcloud_setting("compute/region") or DEFAULT_REGION

    def resolve_storage(self) -> str:
        """Bucket for staging and outputs; defaults to gs://<project>-cloudml."""
        if self.config.storage:
            return self.config.storage.rstrip("/")
        project = self.resolve_project()
        if not project:
            raise ConfigError("No storage bucket configured and no default project set; set 'storage' in cmlctl.yaml")
        return f"gs://{project}-cloudml"

    def ensure_storage(self, storage: str, region: str) -> None:
        """Create the storage bucket if it does not exist yet."""
        if self.gsutil.execute(("ls", "-b", storage)).ok:
            return
        logger.info("Creating storage bucket %s", storage)
        project = self.resolve_project()
        args = ArgumentsBuilder("mb")
        if project:
            args.add("-p").add(project)
        args.add("-l").add(region).add(storage)
        self.gsutil.execute(args.build()).check(f"create bucket {storage}")

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def submit(
        self,
        entrypoint: str = "train.py",
        flags: Mapping[str, Any] | None = None,
        master_type: str | None = None,
        region: str | None = None,
        config: Mapping[str, Any] | Path | str | None = None,
        dry_run: bool = False,
        application: Path | str | None = None,
        job_id: str | None = None,
        staging_root: Path | str | None = None,
    ) -> Job:
        """Submit a training job.

        Args:
            entrypoint: Training script, relative to application
            flags: Flag overlay passed to the entrypoint
            master_type: Master machine type (forces scaleTier CUSTOM)
            region: Training region
            config: Job config (dict or YAML/JSON path) rooted at trainingInput
            dry_run: Stage and build everything but run no provider command
            application: Application directory (default: current directory)
            job_id: Job id (default: generated)
            staging_root: Where to stage the deployment bundle

        Returns:
            The registered Job

        Raises:
            ConfigError: If the job config is invalid
            UnsupportedVersionError: If the runtime version is too old
            ProviderInvocationError: If submission fails
        """
        step("Dry running training job..." if dry_run else "Submitting training job...", logger)

        job_config = apply_overrides(load_job_config(config), master_type=master_type)
        training_input = job_config["trainingInput"]
        runtime_version = check_runtime_version(
            training_input.get("runtimeVersion") or self.config.runtime_version or DEFAULT_RUNTIME_VERSION
        )

        job_id = job_id or unique_job_name()
        storage = self.resolve_storage()
        region = self.resolve_region(region or training_input.get("region"))
        if not dry_run:
            self.ensure_storage(storage, region)

        bundle = stage_deployment(
            job_id=job_id,
            application=application or Path.cwd(),
            entrypoint=entrypoint,
            job_config=job_config,
            storage=storage,
            flags=flags,
            staging_root=staging_root,
        )

        arguments = (
            self._ml()
            .add("jobs")
            .add("submit")
            .add("training")
            .add(job_id)
            .add("--job-dir={}", f"{storage}/staging")
            .add("--package-path={}", bundle.package)
            .add("--module-name={}", bundle.module_name)
            .add("--runtime-version={}", runtime_version)
            .add("--region={}", region)
            .add("--config={}", bundle.config_path)
            .add("--")
            .add(PASSTHROUGH_INTERPRETER)
        )
        cwd = str(bundle.directory.parent)
        self.gcloud.execute(arguments.build(), dry_run=dry_run, cwd=cwd).check(f"submit job {job_id}")

        # describe output carries the console/log URLs on stderr
        describe = self.gcloud.execute(self._ml().add("jobs").add("describe").add(job_id).build(), dry_run=dry_run)
        description: dict[str, Any] = {}
        if describe.ok:
            try:
                description = yaml.safe_load(describe.stdout) or {}
            except yaml.YAMLError as e:
                logger.warning("Could not parse description of job %s: %s", job_id, e)
        else:
            warn(f"Job {job_id} was submitted but could not be described: {describe.stderr.strip()}", logger)

        self._log_submission(job_id, describe.stderr, dry_run)

        job = Job(kind="train", id=job_id, description=description if isinstance(description, dict) else {})
        self.registry.register(job)

        if not dry_run:
            self.reporter.report_submitted(
                job,
                job_name=entrypoint,
                project=self.config.project,
                region=region,
                metadata={
                    "scale_tier": training_input.get("scaleTier"),
                    "master_type": training_input.get("masterType"),
                    "runtime_version": runtime_version,
                    "tuning": training_input.get("hyperparameters") is not None,
                },
            )
        return job

    def _log_submission(self, job_id: str, messages: str, dry_run: bool) -> None:
        if dry_run:
            success(f"Job '{job_id}' dry run complete (nothing submitted).", logger)
            return
        success(f"Job '{job_id}' successfully submitted.", logger)
        console_url = message_url(messages, CONSOLE_URL_PREFIX)
        log_url = message_url(messages, LOG_URL_PREFIX)
        if console_url:
            logger.info("%s View job in the Cloud Console at: %s", LINK, console_url)
        if log_url:
            logger.info("%s View logs at: %s", LINK, log_url)
        logger.info("Check job status with:     cmlctl status %s", job_id)
        logger.info("Collect job output with:   cmlctl collect %s", job_id)
        logger.info("Stream job logs with:      cmlctl stream-logs %s", job_id)

    def status(self, job: JobRef = LATEST) -> JobStatus:
        """Describe a job.

        Raises:
            ProviderInvocationError: If describe fails
            ParseError: If the description cannot be parsed
        """
        resolved = self.registry.resolve(job)
        result = self.gcloud.execute(self._ml().add("jobs").add("describe").add(resolved.id).build())
        result.check(f"describe job {resolved.id}")
        return parse_job_status(result.stdout, result.stderr)

    def cancel(self, job: JobRef = LATEST) -> Job:
        """Request cancellation; the job moves to CANCELLING, then CANCELLED."""
        resolved = self.registry.resolve(job)
        result = self.gcloud.execute(self._ml().add("jobs").add("cancel").add(resolved.id).build())
        result.check(f"cancel job {resolved.id}")
        success(f"Cancellation requested for job '{resolved.id}'", logger)
        return resolved

    def list_jobs(
        self,
        filter: str | None = None,
        limit: int | None = None,
        page_size: int | None = None,
        sort_by: str | None = None,
        uri: bool = False,
    ) -> pd.DataFrame | list[str]:
        """List jobs.

        Returns:
            DataFrame of JOB_ID/STATUS/CREATED, or the resource URIs when uri is set
        """
        arguments = (
            self._ml()
            .add("jobs")
            .add("list")
            .add("--filter={}", filter)
            .add("--limit={}", limit)
            .add("--page-size={}", page_size)
            .add("--sort-by={}", sort_by)
            .add_flag("--uri", uri)
        )
        result = self.gcloud.execute(arguments.build())
        result.check("list jobs")

        if uri:
            return [line.strip() for line in result.stdout.splitlines() if line.strip()]
        return parse_job_list(result.stdout)

    def stream_logs(
        self,
        job: JobRef = LATEST,
        polling_interval: int = 5,
        task_name: str | None = None,
        allow_multiline_logs: bool = False,
    ) -> None:
        """Stream job logs to the console; blocks until the job ends or the user interrupts."""
        resolved = self.registry.resolve(job)
        arguments = (
            self._stream_logs_arguments(resolved.id, polling_interval)
            .add("--task-name={}", task_name)
            .add_flag("--allow-multiline-logs", allow_multiline_logs)
        )
        self.gcloud.execute(arguments.build(), echo=True).check(f"stream logs of job {resolved.id}")

    def _stream_logs_arguments(self, job_id: str, polling_interval: int) -> ArgumentsBuilder:
        return (
            self._ml()
            .add("jobs")
            .add("stream-logs")
            .add(job_id)
            .add("--polling-interval={}", int(polling_interval))
        )

    def trials(self, job: JobRef | JobStatus = LATEST) -> pd.DataFrame | None:
        """Hyperparameter trials of a job, or None when it has none."""
        status = job if isinstance(job, JobStatus) else self.status(job)
        return trials_frame(status)

    def collect(
        self,
        job: JobRef = LATEST,
        trials: TrialSelector = BEST,
        destination: Path | str = "runs",
        timeout: float | None = None,
        view: ViewMode = False,
        on_status: StatusCallback | None = None,
    ) -> list[JobStatus]:
        """Wait for a job to finish, then download its outputs.

        Polls every POLL_INTERVAL seconds until the job is SUCCEEDED or
        FAILED. Status fetch failures abort the loop.

        Args:
            job: Job reference
            trials: "best", "all", a trial id or ids (tuning jobs only)
            destination: Directory run directories are created in
            timeout: Give up after this many minutes (default: wait forever)
            view: True to open the run report, "save" to write it only
            on_status: Called with (status, observed_at) after every poll

        Returns:
            One status per download

        Raises:
            TimeoutExceededError: If timeout elapses first
        """
        validate_trial_selector(trials)
        resolved = self.registry.resolve(job)
        start = self._clock()
        announced = False
        cancelled_warned = False

        while True:
            status = self.status(resolved)
            if on_status is not None:
                on_status(status, datetime.now())

            if status.is_terminal:
                return self._download(status, trials, str(destination), view)

            if not announced:
                waiting(f"Job '{resolved.id}' is currently {status.state.value} -- please wait...", logger)
                announced = True
            if status.state == JobState.CANCELLED and not cancelled_warned:
                warn(f"Job '{resolved.id}' was cancelled and will not produce outputs", logger)
                cancelled_warned = True

            if timeout is not None and self._clock() - start >= timeout * 60:
                raise TimeoutExceededError(timeout, status.state.value)

            self._sleep(POLL_INTERVAL)

    def _download(self, status: JobStatus, trials: TrialSelector, destination: str, view: ViewMode) -> list[JobStatus]:
        paths = resolve_trial_paths(status, destination, trials)
        # Only a single download that was not requested as "all" may open the report
        single = trials != ALL and len(paths) == 1
        return [
            self.collector.download(p.source, p.destination, status, view=view if single else False, trial=p.trial)
            for p in paths
        ]

    def collect_async(
        self,
        job: JobRef = LATEST,
        destination: Path | str = "runs",
        polling_interval: int = 5,
        view: bool = False,
        log_file: Path | None = None,
    ) -> CollectHandle:
        """Stream logs and collect in a detached process; returns immediately."""
        resolved = self.registry.resolve(job)
        stream_logs = [self.gcloud.binary, *self._stream_logs_arguments(resolved.id, polling_interval).build()]
        steps = collect_steps(
            resolved.id,
            stream_logs,
            Path(destination).resolve(),
            is_tuning=resolved.is_tuning,
            view=view,
        )
        logger.info("%s Job '%s' will be collected in the background", CLOUD, resolved.id)
        return spawn_detached(resolved.id, steps, log_file=log_file)
