# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Subprocess execution of the provider CLIs (gcloud, gsutil).

The executor never interprets the exit status; callers decide whether a
non-zero status is fatal, usually through ExecResult.check().
"""

import logging
import shlex
import subprocess
import sys
import threading
from collections.abc import Sequence
from dataclasses import dataclass
from typing import IO, TextIO

from cmlctl.core.errors import ProviderInvocationError

logger = logging.getLogger(__name__)

# Exit status reported when the binary cannot be started at all
EXIT_NOT_FOUND = 127


@dataclass(frozen=True)
class ExecResult:
    """Captured output of one CLI invocation."""

    stdout: str
    stderr: str
    exit_status: int

    @property
    def ok(self) -> bool:
        return self.exit_status == 0

    def check(self, action: str) -> "ExecResult":
        """Raise ProviderInvocationError unless the call succeeded.

        Args:
            action: Short description of the call, used in the error message

        Returns:
            self, for chaining
        """
        if not self.ok:
            raise ProviderInvocationError(action, self.stderr, self.exit_status)
        return self


def _pump(stream: IO[str], sink_name: str, chunks: list[str]) -> None:
    """Forward lines from a pipe to the console while capturing them."""
    for line in iter(stream.readline, ""):
        chunks.append(line)
        # Looked up per line so pytest/rich stream redirection is honoured
        sink: TextIO = getattr(sys, sink_name)
        sink.write(line)
        sink.flush()
    stream.close()


class CommandExecutor:
    """Runs one provider binary with argument lists built by ArgumentsBuilder.

    Usage:
        gcloud = CommandExecutor("gcloud")
        result = gcloud.execute(("ai-platform", "jobs", "describe", job_id))
        result.check("describe job")
    """

    def __init__(self, binary: str, cwd: str | None = None):
        self.binary = binary
        self.cwd = cwd

    def command_line(self, arguments: Sequence[str]) -> list[str]:
        return [self.binary, *arguments]

    def execute(
        self,
        arguments: Sequence[str],
        echo: bool = False,
        dry_run: bool = False,
        cwd: str | None = None,
    ) -> ExecResult:
        """Execute the binary with the given arguments.

        Args:
            arguments: Ordered argument tokens (binary excluded)
            echo: Stream stdout/stderr to the console as they arrive
            dry_run: Log the command and return a synthetic success instead
            cwd: Working directory override for this call

        Returns:
            ExecResult with captured output and exit status
        """
        cmd = self.command_line(arguments)
        if dry_run:
            logger.info("[dry-run] %s", shlex.join(cmd))
            return ExecResult(stdout="", stderr="", exit_status=0)

        logger.debug("Running: %s", shlex.join(cmd))
        workdir = cwd or self.cwd

        try:
            if echo:
                return self._execute_streaming(cmd, workdir)

            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                cwd=workdir,
            )
        except OSError as e:
            logger.debug("Could not start %s: %s", self.binary, e)
            return ExecResult(stdout="", stderr=str(e), exit_status=EXIT_NOT_FOUND)

        if result.returncode != 0:
            logger.debug("%s exited with status %d", self.binary, result.returncode)
        return ExecResult(stdout=result.stdout, stderr=result.stderr, exit_status=result.returncode)

    def _execute_streaming(self, cmd: list[str], workdir: str | None) -> ExecResult:
        proc = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            bufsize=1,
            cwd=workdir,
        )
        out_chunks: list[str] = []
        err_chunks: list[str] = []
        readers = [
            threading.Thread(target=_pump, args=(proc.stdout, "stdout", out_chunks), daemon=True),
            threading.Thread(target=_pump, args=(proc.stderr, "stderr", err_chunks), daemon=True),
        ]
        for reader in readers:
            reader.start()

        try:
            exit_status = proc.wait()
        except KeyboardInterrupt:
            proc.terminate()
            proc.wait(timeout=10)
            raise
        finally:
            for reader in readers:
                reader.join(timeout=5)

        return ExecResult(stdout="".join(out_chunks), stderr="".join(err_chunks), exit_status=exit_status)
