# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Staging of the deployment bundle uploaded with a training job.

The bundle is a Python package holding a copy of the trainer application,
a generated `cloudml.deploy` entrypoint module, the job configuration and
the flag overlay:

    <staging>/<job_id>/
        setup.py
        cloudml_model/
            __init__.py
            <application files>
            cloudml/__init__.py
            cloudml/deploy.py
            cloudml.yml
            flags.yml
            job.yml

The directory is left on disk after submission.
"""

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml
from jinja2 import Environment, FileSystemLoader

from cmlctl.logging_utils import PACKAGE

logger = logging.getLogger(__name__)

BUNDLE_PACKAGE = "cloudml_model"
ENTRYPOINT_MODULE = "cloudml.deploy"
CONFIG_FILE = "cloudml.yml"
FLAGS_FILE = "flags.yml"
JOB_FILE = "job.yml"

TEMPLATE_DIR = Path(__file__).parent.parent / "templates"

# Never shipped with the application
IGNORED = ("runs", ".git", ".hg", ".svn", "__pycache__", "*.pyc", ".venv", ".ipynb_checkpoints")

SETUP_PY = """\
from setuptools import find_packages, setup

setup(
    name="{package}",
    version="0.1",
    packages=find_packages(),
    include_package_data=True,
    package_data={{"": ["*"]}},
    install_requires=["PyYAML"],
)
"""


@dataclass(frozen=True)
class DeploymentBundle:
    """A staged bundle ready for `jobs submit training`.

    Attributes:
        directory: The bundle package directory
        config_file: Job config file name, relative to directory
    """

    directory: Path
    config_file: str = CONFIG_FILE

    @property
    def package(self) -> str:
        return self.directory.name

    @property
    def module_name(self) -> str:
        return f"{self.package}.{ENTRYPOINT_MODULE}"

    @property
    def config_path(self) -> str:
        """Config path relative to the bundle parent (the submission cwd)."""
        return f"{self.package}/{self.config_file}"


def _write_yaml(path: Path, data: Mapping[str, Any]) -> None:
    with open(path, "w") as f:
        yaml.safe_dump(dict(data), f, default_flow_style=False)


def _spray_init_files(package_dir: Path) -> None:
    for directory in [package_dir, *(p for p in package_dir.rglob("*") if p.is_dir())]:
        init = directory / "__init__.py"
        if not init.exists():
            init.touch()


def render_entrypoint(job_id: str, entrypoint: str) -> str:
    env = Environment(loader=FileSystemLoader(str(TEMPLATE_DIR)))
    return env.get_template("deploy.py.j2").render(job_id=job_id, entrypoint=entrypoint)


def stage_deployment(
    job_id: str,
    application: Path | str,
    entrypoint: str,
    job_config: Mapping[str, Any],
    storage: str,
    flags: Mapping[str, Any] | None = None,
    staging_root: Path | str | None = None,
) -> DeploymentBundle:
    """Stage the trainer application as an uploadable package.

    Args:
        job_id: Job id the bundle is built for
        application: Application directory to ship
        entrypoint: Training script, relative to application
        job_config: Config dict rooted at trainingInput
        storage: Bucket the job writes its outputs to
        flags: Flag overlay passed to the entrypoint as --key=value
        staging_root: Parent directory for bundles (default: a new temp dir)

    Returns:
        DeploymentBundle describing the staged package

    Raises:
        FileNotFoundError: If the application or entrypoint does not exist
    """
    application = Path(application).resolve()
    if not application.is_dir():
        raise FileNotFoundError(f"Application directory not found: {application}")
    if not (application / entrypoint).is_file():
        raise FileNotFoundError(f"Entrypoint '{entrypoint}' not found in {application}")

    if staging_root is None:
        staging_root = tempfile.mkdtemp(prefix="cmlctl_")
    bundle_root = Path(staging_root) / job_id
    package_dir = bundle_root / BUNDLE_PACKAGE
    if package_dir.exists():
        shutil.rmtree(package_dir)

    shutil.copytree(application, package_dir, ignore=shutil.ignore_patterns(*IGNORED))

    deploy_dir = package_dir / "cloudml"
    deploy_dir.mkdir(exist_ok=True)
    (deploy_dir / "deploy.py").write_text(render_entrypoint(job_id, entrypoint))
    _spray_init_files(package_dir)

    _write_yaml(package_dir / CONFIG_FILE, job_config)
    _write_yaml(package_dir / FLAGS_FILE, flags or {})
    _write_yaml(package_dir / JOB_FILE, {"storage": storage})
    (bundle_root / "setup.py").write_text(SETUP_PY.format(package=BUNDLE_PACKAGE))

    file_count = sum(1 for _root, _dirs, files in os.walk(package_dir) for _ in files)
    logger.info("%s Staged %d files for job %s in %s", PACKAGE, file_count, job_id, package_dir)
    return DeploymentBundle(directory=package_dir)
