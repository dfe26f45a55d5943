#!/usr/bin/env python3
# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Command-line interface for cmlctl.

Usage:
    cmlctl train train.py --config tuning.yml      # Submit a training job
    cmlctl train train.py --dry-run                # Stage without submitting
    cmlctl status cloudml_2018_01_01_120000        # Describe a job
    cmlctl collect cloudml_2018_01_01_120000       # Wait, then download outputs
    cmlctl trials cloudml_2018_01_01_120000        # Show tuning trials
"""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

import pandas as pd
import yaml
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from cmlctl.core.config import load_tool_config
from cmlctl.core.errors import CloudMLError
from cmlctl.core.jobs import POLL_INTERVAL, JobController
from cmlctl.core.registry import LATEST
from cmlctl.core.schema import JobState, JobStatus
from cmlctl.core.trials import ALL, BEST, TrialSelector
from cmlctl.logging_utils import setup_logging

console = Console()

EXIT_INTERRUPTED = 130

STATE_STYLES = {
    JobState.SUCCEEDED: "bold green",
    JobState.FAILED: "bold red",
    JobState.CANCELLING: "yellow",
    JobState.CANCELLED: "yellow",
}


# ============================================================================
# Argument conversion
# ============================================================================


def parse_trials(value: str) -> TrialSelector:
    """Parse --trials: 'best', 'all', an id, or comma-separated ids."""
    value = value.strip().lower()
    if value in (BEST, ALL):
        return value
    try:
        ids = [int(part) for part in value.split(",") if part.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected 'best', 'all' or trial ids, got '{value}'") from None
    if not ids:
        raise argparse.ArgumentTypeError("no trial ids given")
    return ids[0] if len(ids) == 1 else ids


def parse_view(value: str) -> bool | str:
    value = value.strip().lower()
    if value in ("true", "yes", "1"):
        return True
    if value in ("false", "no", "0"):
        return False
    if value == "save":
        return "save"
    raise argparse.ArgumentTypeError(f"expected true, false or save, got '{value}'")


def parse_flag(value: str) -> tuple[str, Any]:
    """Parse KEY=VALUE; the value is read as YAML so numbers stay numbers."""
    key, sep, raw = value.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"expected KEY=VALUE, got '{value}'")
    try:
        return key, yaml.safe_load(raw) if raw else ""
    except yaml.YAMLError:
        return key, raw


def collect_flags(args: argparse.Namespace) -> dict[str, Any]:
    flags: dict[str, Any] = {}
    if args.flags_file:
        with open(args.flags_file) as f:
            flags.update(yaml.safe_load(f) or {})
    flags.update(dict(args.flag or []))
    return flags


# ============================================================================
# Rendering
# ============================================================================


def _state_text(state: JobState) -> str:
    style = STATE_STYLES.get(state, "cyan")
    return f"[{style}]{state.value}[/]"


def render_status(status: JobStatus) -> Panel:
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Property", style="dim")
    table.add_column("Value")

    output = status.training_output
    rows = [
        ("State", _state_text(status.state)),
        ("Created", status.create_time),
        ("Started", status.start_time),
        ("Ended", status.end_time),
        ("Error", status.error_message),
        ("ML units", output.consumed_ml_units if output else None),
        ("Trials", len(status.trials) if status.is_tuning else None),
        ("Console", status.console_url),
        ("Logs", status.log_url),
    ]
    for name, value in rows:
        if value is not None:
            table.add_row(name, str(value))
    return Panel(table, title=f"Job {status.job_id}", border_style="cyan")


def render_frame(df: pd.DataFrame, title: str) -> Table:
    table = Table(title=title)
    for column in df.columns:
        table.add_column(str(column), style="green" if column == "JOB_ID" else None)
    for row in df.itertuples(index=False):
        table.add_row(*("" if pd.isna(v) else str(v) for v in row))
    return table


# ============================================================================
# Commands
# ============================================================================


def _collect(controller: JobController, job: Any, args: argparse.Namespace) -> int:
    reporter = controller.reporter

    with console.status(f"Waiting for job {job} (polling every {POLL_INTERVAL}s)...") as spinner:

        def on_status(status: JobStatus, observed_at: datetime) -> None:
            spinner.update(f"Job {status.job_id} is {_state_text(status.state)} [dim]({observed_at:%H:%M:%S})[/]")
            reporter.report(status, observed_at)

        statuses = controller.collect(
            job,
            trials=args.trials,
            destination=args.destination,
            timeout=args.timeout,
            view=args.view,
            on_status=on_status,
        )

    for status in statuses:
        console.print(f"[bold green]✅ Collected job {status.job_id}[/] ({_state_text(status.state)})")
    if not statuses:
        console.print("[yellow]Nothing to collect[/]")
    return 0


def cmd_train(controller: JobController, args: argparse.Namespace) -> int:
    job = controller.submit(
        entrypoint=args.entrypoint,
        flags=collect_flags(args),
        master_type=args.master_type,
        region=args.region,
        config=args.config,
        dry_run=args.dry_run,
        application=args.application,
        job_id=args.job_id,
        staging_root=args.staging_root,
    )
    console.print(f"[bold green]✅ Job {job.id} {'staged' if args.dry_run else 'submitted'}[/]")

    if args.dry_run:
        return 0
    if args.collect:
        return _collect(controller, job, args)
    if args.collect_async:
        handle = controller.collect_async(
            job, destination=args.destination, view=args.view is True, log_file=args.log_file
        )
        console.print(f"[dim]📋 Collecting in background (pid {handle.pid})[/]")
    return 0


def cmd_status(controller: JobController, args: argparse.Namespace) -> int:
    status = controller.status(args.job)
    console.print(render_status(status))
    trials = controller.trials(status)
    if trials is not None:
        console.print(render_frame(trials, title=f"Hyperparameter trials (goal: {status.goal or 'none'})"))
    return 0


def cmd_cancel(controller: JobController, args: argparse.Namespace) -> int:
    job = controller.cancel(args.job)
    console.print(f"[yellow]Cancellation requested for job {job.id}[/]")
    return 0


def cmd_list(controller: JobController, args: argparse.Namespace) -> int:
    jobs = controller.list_jobs(
        filter=args.filter,
        limit=args.limit,
        page_size=args.page_size,
        sort_by=args.sort_by,
        uri=args.uri,
    )
    if isinstance(jobs, list):
        for line in jobs:
            console.print(line, highlight=False)
    elif jobs.empty:
        console.print("[dim]No jobs found[/]")
    else:
        console.print(render_frame(jobs, title=f"Jobs ({len(jobs)})"))
    return 0


def cmd_stream_logs(controller: JobController, args: argparse.Namespace) -> int:
    controller.stream_logs(
        args.job,
        polling_interval=args.polling_interval,
        task_name=args.task_name,
        allow_multiline_logs=args.allow_multiline_logs,
    )
    return 0


def cmd_collect(controller: JobController, args: argparse.Namespace) -> int:
    return _collect(controller, args.job, args)


def cmd_trials(controller: JobController, args: argparse.Namespace) -> int:
    status = controller.status(args.job)
    trials = controller.trials(status)
    if trials is None:
        console.print(f"[dim]Job {status.job_id} has no hyperparameter trials[/]")
        return 0
    console.print(render_frame(trials, title=f"Trials of {status.job_id} (goal: {status.goal or 'none'})"))
    return 0


COMMANDS = {
    "train": cmd_train,
    "status": cmd_status,
    "cancel": cmd_cancel,
    "list": cmd_list,
    "stream-logs": cmd_stream_logs,
    "collect": cmd_collect,
    "trials": cmd_trials,
}


# ============================================================================
# Parser
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cmlctl",
        description="cmlctl - Cloud ML training job orchestration",
        epilog="""Examples:
  cmlctl train train.py                          # Submit a training job
  cmlctl train train.py -c tuning.yml --collect  # Submit, wait and download the best trial
  cmlctl list --limit 10                         # Recent jobs
  cmlctl collect JOB_ID --trials all             # Download every trial
""",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every executed command")
    parser.add_argument("--tool-config", type=Path, help="Path to cmlctl.yaml (default: search upwards)")
    parser.add_argument("--log-file", type=Path, help="Also append log records to this file")

    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_job_arg(p):
        p.add_argument("job", nargs="?", default=LATEST, help="Job id (default: latest)")

    def add_collect_args(p, view_default):
        p.add_argument("--trials", type=parse_trials, default=BEST, help="'best', 'all' or trial ids (default: best)")
        p.add_argument("--destination", default="runs", help="Directory for collected runs (default: runs)")
        p.add_argument("--timeout", type=float, help="Give up after this many minutes")
        p.add_argument(
            "--view", type=parse_view, default=view_default, help="Open the run report: true, false or save"
        )

    train = subparsers.add_parser("train", help="Submit a training job")
    train.add_argument("entrypoint", nargs="?", default="train.py", help="Training script (default: train.py)")
    train.add_argument("-c", "--config", type=Path, help="Job config file (YAML or JSON)")
    train.add_argument("--flag", type=parse_flag, action="append", metavar="KEY=VALUE", help="Flag for the script")
    train.add_argument("--flags-file", type=Path, help="YAML file of flags for the script")
    train.add_argument("--master-type", help="Master machine type (forces scaleTier CUSTOM)")
    train.add_argument("--region", help="Training region")
    train.add_argument("--application", type=Path, help="Application directory (default: current directory)")
    train.add_argument("--job-id", help="Job id (default: generated)")
    train.add_argument("--staging-root", type=Path, help="Where to stage the deployment bundle")
    train.add_argument("--dry-run", action="store_true", help="Stage the bundle without submitting")
    mode = train.add_mutually_exclusive_group()
    mode.add_argument("--collect", action="store_true", help="Wait for the job and collect its outputs")
    mode.add_argument("--collect-async", action="store_true", help="Collect in a background process")
    add_collect_args(train, view_default=False)

    status = subparsers.add_parser("status", help="Describe a job")
    add_job_arg(status)

    cancel = subparsers.add_parser("cancel", help="Cancel a job")
    add_job_arg(cancel)

    list_parser = subparsers.add_parser("list", help="List jobs")
    list_parser.add_argument("--filter", help="Provider filter expression")
    list_parser.add_argument("--limit", type=int, help="Maximum number of jobs")
    list_parser.add_argument("--page-size", type=int, help="Jobs per provider page")
    list_parser.add_argument("--sort-by", help="Sort field, e.g. ~createTime")
    list_parser.add_argument("--uri", action="store_true", help="Print resource URIs only")

    logs = subparsers.add_parser("stream-logs", help="Stream job logs")
    add_job_arg(logs)
    logs.add_argument("--polling-interval", type=int, default=5, help="Seconds between log fetches (default: 5)")
    logs.add_argument("--task-name", help="Only show logs of this task, e.g. master-replica-0")
    logs.add_argument("--allow-multiline-logs", action="store_true", help="Keep multi-line log entries together")

    collect = subparsers.add_parser("collect", help="Wait for a job and download its outputs")
    add_job_arg(collect)
    add_collect_args(collect, view_default=False)

    trials = subparsers.add_parser("trials", help="Show hyperparameter tuning trials")
    add_job_arg(trials)

    return parser


def run(argv: list[str] | None = None) -> int:
    """Run the CLI and return the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(logging.DEBUG if args.verbose else logging.INFO, log_file=args.log_file)

    try:
        controller = JobController(load_tool_config(args.tool_config))
        return COMMANDS[args.command](controller, args)
    except CloudMLError as e:
        console.print(f"[bold red]Error:[/] {e}")
        logging.debug("Full traceback:", exc_info=True)
        return e.exit_code
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/]")
        return EXIT_INTERRUPTED
    except Exception as e:
        console.print(f"[bold red]Error:[/] {e}")
        logging.debug("Full traceback:", exc_info=True)
        return 1


def main():
    sys.exit(run())


if __name__ == "__main__":
    main()
