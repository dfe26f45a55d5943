# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Detached log streaming and collection.

The blocking collect loop ties up the calling terminal. This module runs the
same work in a separate process in its own session instead: stream the job
logs until the job ends, then collect its outputs with the report saved to
disk. The caller gets a handle back immediately.
"""

import logging
import shlex
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class CollectHandle:
    """A detached collection process.

    Attributes:
        job_id: Job being collected
        popen: The subprocess.Popen object
        log_file: File receiving the process output
    """

    job_id: str
    popen: subprocess.Popen
    log_file: Path | None = None

    @property
    def pid(self) -> int:
        return self.popen.pid

    @property
    def is_running(self) -> bool:
        """Check if process is still running."""
        return self.popen.poll() is None

    @property
    def exit_code(self) -> int | None:
        """Get exit code if process has exited, None otherwise."""
        return self.popen.poll()

    def wait(self, timeout: float | None = None) -> int:
        return self.popen.wait(timeout=timeout)

    def terminate(self, timeout: float = 10.0) -> None:
        """Terminate the process gracefully, then kill if needed."""
        if not self.is_running:
            return

        self.popen.terminate()
        try:
            self.popen.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            logger.warning("Collection of %s did not terminate, killing...", self.job_id)
            self.popen.kill()
            self.popen.wait(timeout=5)


def collect_steps(
    job_id: str,
    stream_logs_command: list[str],
    destination: Path,
    is_tuning: bool,
    view: bool = False,
) -> list[str]:
    """Shell steps run by the detached process, in order.

    Tuning jobs are not collected automatically since the trials to fetch
    are a user decision; the process prints the command to run instead.
    """
    steps = [shlex.join(stream_logs_command)]
    if not is_tuning:
        collect = [
            sys.executable, "-m", "cmlctl", "collect", job_id,
            "--destination", str(destination),
            "--view", "save",
        ]
        steps.append(shlex.join(collect))
        if view:
            view_path = destination / job_id / "run.d" / "view.html"
            steps.append(shlex.join([sys.executable, "-m", "webbrowser", view_path.as_uri()]))
    else:
        steps.append('echo ""')
        steps.append(shlex.join(["echo", f"To collect this job, run: cmlctl collect {job_id}"]))
    return steps


def spawn_detached(job_id: str, steps: list[str], log_file: Path | None = None) -> CollectHandle:
    """Run the steps sequentially in a new session and return immediately.

    A step that fails does not stop later steps; stream-logs exits non-zero
    for failed jobs, whose outputs are still collected.
    """
    script = " ; ".join(steps)
    logger.debug("Spawning detached collection: %s", script)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        output = open(log_file, "ab")
    else:
        output = subprocess.DEVNULL

    try:
        popen = subprocess.Popen(
            ["bash", "-c", script],
            stdin=subprocess.DEVNULL,
            stdout=output,
            stderr=subprocess.STDOUT,
            start_new_session=True,
        )
    finally:
        if log_file is not None:
            output.close()

    logger.info("Collecting job %s in background (pid=%d)", job_id, popen.pid)
    return CollectHandle(job_id=job_id, popen=popen, log_file=log_file)
