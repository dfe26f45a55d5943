# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Trial selection and remote-to-local path resolution.

Job outputs live under `<storage>/runs/<jobId>/`; tuning jobs write one
subdirectory per trial. Downloads land in `<destination>/<jobId>` or, for a
single trial, `<destination>/<jobId>-<trial>` with the trial id zero-padded
to the width of the largest trial id so run directories sort naturally.
"""

import logging
import os
import posixpath
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Union

from cmlctl.core.errors import MissingMetricError, NoTrialsError, ParseError
from cmlctl.core.schema import Goal, JobStatus, Trial

logger = logging.getLogger(__name__)

BEST = "best"
ALL = "all"

TrialSelector = Union[str, int, Sequence[int]]


@dataclass(frozen=True)
class TrialPaths:
    """Source URI and local destination for one download.

    trial is None when the whole job output is downloaded.
    """

    source: str
    destination: str
    trial: int | None = None


def validate_trial_selector(trials: TrialSelector) -> None:
    """Check that a selector is 'best', 'all', an id, or a sequence of ids.

    Raises:
        ValueError: For any other value
    """
    if trials in (BEST, ALL):
        return
    if isinstance(trials, bool):
        raise ValueError("The 'trials' parameter must be numeric, 'best' or 'all'.")
    if isinstance(trials, int):
        return
    if isinstance(trials, Sequence) and not isinstance(trials, str):
        if trials and all(isinstance(t, int) and not isinstance(t, bool) for t in trials):
            return
    raise ValueError("The 'trials' parameter must be numeric, 'best' or 'all'.")


def select_best_trial(status: JobStatus) -> Trial:
    """Pick the trial with the best final objective value.

    Ties go to the trial listed first.

    Raises:
        NoTrialsError: If the job has no trials
        MissingMetricError: If any trial lacks a final metric
    """
    trials = status.trials
    if not trials:
        raise NoTrialsError(f"Job '{status.job_id}' contains no output trials.")

    if any(t.final_metric is None or t.final_metric.objective_value is None for t in trials):
        raise MissingMetricError(
            f"Job '{status.job_id}' is missing final metrics to retrieve best trial, "
            "consider using 'all' or a specific trial instead."
        )

    pick = min if status.goal == Goal.MINIMIZE.value else max
    return pick(trials, key=lambda t: t.final_metric.objective_value)


def _job_output_root(status: JobStatus) -> str:
    storage = status.storage
    if not storage:
        raise ParseError(f"Job '{status.job_id}' has no trainingInput.jobDir; cannot locate its outputs")
    return posixpath.join(storage, "runs", status.job_id)


def _trial_width(status: JobStatus, requested: Sequence[int]) -> int:
    ids = status.trial_ids or list(requested)
    return len(str(max(ids)))


def trial_paths(status: JobStatus, destination: str, trial: int, width: int) -> TrialPaths:
    """Paths for one trial of a tuning job."""
    return TrialPaths(
        source=posixpath.join(_job_output_root(status), str(trial), "*"),
        destination=os.path.join(destination, f"{status.job_id}-{trial:0{width}d}"),
        trial=trial,
    )


def job_paths(status: JobStatus, destination: str) -> TrialPaths:
    """Paths for the whole output of a job."""
    return TrialPaths(
        source=posixpath.join(_job_output_root(status), "*"),
        destination=os.path.join(destination, status.job_id),
    )


def resolve_trial_paths(
    status: JobStatus,
    destination: str,
    trials: TrialSelector = BEST,
    is_tuning: bool | None = None,
) -> list[TrialPaths]:
    """Resolve which outputs to download for a trial selector.

    Args:
        status: Current job status
        destination: Local directory that run directories are created in
        trials: "best", "all", a trial id, or a sequence of trial ids
        is_tuning: Override tuning detection (default: from status)

    Returns:
        One TrialPaths per download, in download order

    Raises:
        NoTrialsError / MissingMetricError: If "best" cannot be determined
    """
    validate_trial_selector(trials)
    if is_tuning is None:
        is_tuning = status.is_tuning

    if not is_tuning:
        return [job_paths(status, destination)]

    if trials == BEST:
        if status.goal is None:
            logger.warning("Job '%s' has no tuning goal; collecting the whole job output", status.job_id)
            return [job_paths(status, destination)]
        best = select_best_trial(status)
        logger.info("Best trial for job '%s' is %d", status.job_id, best.trial_id)
        selected = [best.trial_id]
    elif trials == ALL:
        selected = status.trial_ids
        if not selected:
            logger.warning("Job '%s' has no trials to collect", status.job_id)
            return []
    elif isinstance(trials, int):
        selected = [trials]
    else:
        selected = list(trials)

    width = _trial_width(status, selected)
    return [trial_paths(status, destination, t, width) for t in selected]
