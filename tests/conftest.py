# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Shared fixtures: a scripted executor and provider describe documents."""

from collections.abc import Sequence

import pytest
import yaml

from cmlctl.core.executor import ExecResult
from cmlctl.core.jobs import JobController
from cmlctl.core.registry import JobRegistry
from cmlctl.core.schema import ToolConfig
from cmlctl.core.status import StatusReporter

DESCRIBE_MESSAGES = """\
View job in the Cloud Console at:
https://console.cloud.google.com/ml/jobs/{job_id}?project=my-project

View logs at:
https://console.cloud.google.com/logs?resource=ml.googleapis.com%2Fjob_id%2F{job_id}&project=my-project
"""


class FakeExecutor:
    """Stands in for CommandExecutor, answering calls from a script.

    Responses are matched by the first argument token sequence they start
    with after the command group; unmatched calls get the default result.
    """

    def __init__(self, binary: str = "gcloud", default: ExecResult | None = None):
        self.binary = binary
        self.default = default or ExecResult("", "", 0)
        self.calls: list[dict] = []
        self._responses: list[tuple[tuple[str, ...], list[ExecResult]]] = []

    def respond(self, prefix: Sequence[str], *results: ExecResult) -> "FakeExecutor":
        """Queue results for calls containing prefix; the last one repeats."""
        self._responses.append((tuple(prefix), list(results)))
        return self

    def command_line(self, arguments: Sequence[str]) -> list[str]:
        return [self.binary, *arguments]

    def execute(self, arguments, echo=False, dry_run=False, cwd=None) -> ExecResult:
        arguments = tuple(arguments)
        self.calls.append({"args": arguments, "echo": echo, "dry_run": dry_run, "cwd": cwd})
        if dry_run:
            return ExecResult("", "", 0)
        for prefix, results in self._responses:
            if _contains(arguments, prefix):
                return results.pop(0) if len(results) > 1 else results[0]
        return self.default

    def args_of(self, *tokens: str) -> list[tuple[str, ...]]:
        """Arguments of every call containing tokens in sequence."""
        return [c["args"] for c in self.calls if _contains(c["args"], tokens)]


def _contains(arguments: tuple[str, ...], prefix: tuple[str, ...]) -> bool:
    n = len(prefix)
    return any(arguments[i : i + n] == prefix for i in range(len(arguments) - n + 1))


def ok(stdout: str = "", stderr: str = "") -> ExecResult:
    return ExecResult(stdout, stderr, 0)


def failed(stderr: str = "ERROR", exit_status: int = 1) -> ExecResult:
    return ExecResult("", stderr, exit_status)


def describe_document(
    job_id: str = "cloudml_2018_01_01_120000",
    state: str = "SUCCEEDED",
    trials: list[dict] | None = None,
    goal: str | None = None,
    storage: str = "gs://my-bucket",
) -> dict:
    training_input = {
        "jobDir": f"{storage}/staging",
        "region": "us-central1",
        "runtimeVersion": "1.9",
        "scaleTier": "BASIC",
    }
    document = {
        "jobId": job_id,
        "state": state,
        "createTime": "2018-01-01T12:00:00Z",
        "trainingInput": training_input,
        "trainingOutput": {"consumedMLUnits": 0.12},
    }
    if goal is not None or trials is not None:
        training_input["hyperparameters"] = {"hyperparameterMetricTag": "accuracy", "maxTrials": 3}
        if goal is not None:
            training_input["hyperparameters"]["goal"] = goal
        document["trainingOutput"]["isHyperparameterTuningJob"] = True
    if trials is not None:
        document["trainingOutput"]["trials"] = trials
    if state in ("RUNNING", "SUCCEEDED", "FAILED"):
        document["startTime"] = "2018-01-01T12:01:30Z"
    if state in ("SUCCEEDED", "FAILED"):
        document["endTime"] = "2018-01-01T12:15:00Z"
    return document


def describe(**kwargs) -> ExecResult:
    document = describe_document(**kwargs)
    return ok(yaml.safe_dump(document), DESCRIBE_MESSAGES.format(job_id=document["jobId"]))


def trial(trial_id: int, objective: float | None = None, **hyperparameters) -> dict:
    entry = {"trialId": str(trial_id), "hyperparameters": {k: str(v) for k, v in hyperparameters.items()}}
    if objective is not None:
        entry["finalMetric"] = {"objectiveValue": objective, "trainingStep": "100"}
    return entry


@pytest.fixture
def gcloud():
    return FakeExecutor("gcloud")


@pytest.fixture
def gsutil():
    return FakeExecutor("gsutil")


@pytest.fixture
def tool_config():
    return ToolConfig(project="my-project", region="us-central1", storage="gs://my-bucket")


@pytest.fixture
def controller(tool_config, gcloud, gsutil):
    """Controller wired to fake executors, a fresh registry, and a no-op sleep."""
    sleeps: list[float] = []
    ctl = JobController(
        config=tool_config,
        gcloud=gcloud,
        gsutil=gsutil,
        registry=JobRegistry(),
        reporter=StatusReporter(),
        sleep=sleeps.append,
        clock=lambda: 0.0,
    )
    ctl.sleeps = sleeps
    return ctl


@pytest.fixture
def application(tmp_path):
    """A minimal trainer application directory."""
    app = tmp_path / "app"
    app.mkdir()
    (app / "train.py").write_text("print('training')\n")
    (app / "model").mkdir()
    (app / "model" / "layers.py").write_text("UNITS = 32\n")
    (app / "runs").mkdir()
    (app / "runs" / "old.txt").write_text("stale\n")
    return app
