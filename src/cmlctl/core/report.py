# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Static HTML report for a collected run directory.
"""

import logging
import webbrowser
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping

from jinja2 import Environment, FileSystemLoader, select_autoescape

from cmlctl.core.schema import JobStatus

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent.parent / "templates"
VIEW_TEMPLATE = "run_view.html.j2"

# Sidecar directory written next to downloaded artifacts
RUN_METADATA_DIR = "run.d"
VIEW_FILE = "view.html"


def _list_files(run_dir: Path) -> list[tuple[str, int]]:
    files = []
    for path in sorted(run_dir.rglob("*")):
        if path.is_file() and RUN_METADATA_DIR not in path.relative_to(run_dir).parts:
            files.append((str(path.relative_to(run_dir)), path.stat().st_size))
    return files


def render_run_view(
    run_dir: Path,
    status: JobStatus,
    properties: Mapping[str, Any],
    trial: int | None = None,
) -> str:
    """Render the HTML report for a run directory.

    Args:
        run_dir: Local run directory with downloaded artifacts
        status: Job status the artifacts were collected for
        properties: Metadata written to the sidecar
        trial: Trial id when a single tuning trial was collected

    Returns:
        Rendered HTML
    """
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape(["html", "j2"]),
    )
    template = env.get_template(VIEW_TEMPLATE)

    hyperparameters: dict[str, Any] = {}
    if trial is not None:
        match = next((t for t in status.trials if t.trial_id == trial), None)
        if match is not None:
            hyperparameters = dict(match.hyperparameters)

    return template.render(
        job_id=status.job_id,
        trial=trial,
        state=status.state.value,
        error_message=status.error_message,
        console_url=status.console_url,
        log_url=status.log_url,
        properties=properties,
        hyperparameters=hyperparameters,
        files=_list_files(run_dir),
        generated_at=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
    )


def save_run_view(run_dir: Path, html: str) -> Path:
    """Write the report to <run_dir>/run.d/view.html."""
    view_path = run_dir / RUN_METADATA_DIR / VIEW_FILE
    view_path.parent.mkdir(parents=True, exist_ok=True)
    view_path.write_text(html)
    logger.debug("Saved run view to %s", view_path)
    return view_path


def open_run_view(view_path: Path) -> bool:
    """Open a saved report in the default browser."""
    opened = webbrowser.open(view_path.resolve().as_uri())
    if not opened:
        logger.info("Run report saved at %s", view_path)
    return opened
