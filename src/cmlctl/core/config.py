# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Config loading and resolution with cmlctl.yaml integration.

This module provides:
- load_tool_config(): Load cmlctl.yaml (optional) with environment overrides
- get_setting(): Get a single tool setting
- load_job_config(): Load a trainingInput document from a dict, YAML or JSON file
- apply_overrides(): Merge machine type overrides into a job config
- check_runtime_version(): Enforce the minimum supported runtime version
"""

import copy
import dataclasses
import json
import logging
import os
from pathlib import Path
from typing import Any, Mapping

import yaml
from marshmallow import ValidationError

from .errors import ConfigError, UnsupportedVersionError
from .schema import CUSTOM_SCALE_TIER, JobConfig, ToolConfig

logger = logging.getLogger(__name__)

TOOL_CONFIG_NAME = "cmlctl.yaml"

DEFAULT_RUNTIME_VERSION = "1.9"
MIN_RUNTIME_VERSION = "1.4"
DEFAULT_REGION = "us-central1"

# Environment variables that take precedence over cmlctl.yaml
ENV_OVERRIDES = {
    "CMLCTL_GCLOUD": "gcloud_binary",
    "CMLCTL_GSUTIL": "gsutil_binary",
    "CMLCTL_PROJECT": "project",
    "CMLCTL_REGION": "region",
    "CMLCTL_STORAGE": "storage",
}


def find_tool_config() -> Path | None:
    """Locate cmlctl.yaml in the working directory or up to two parents."""
    search_paths = [
        Path.cwd() / TOOL_CONFIG_NAME,
        Path.cwd().parent / TOOL_CONFIG_NAME,
        Path.cwd().parent.parent / TOOL_CONFIG_NAME,
    ]
    for path in search_paths:
        if path.exists():
            return path
    return None


def load_tool_config(path: Path | str | None = None) -> ToolConfig:
    """
    Load tool configuration.

    A missing cmlctl.yaml is not an error: defaults are used (graceful
    degradation). An explicitly given path must exist.

    Args:
        path: Explicit config path (default: search for cmlctl.yaml)

    Returns:
        ToolConfig with environment overrides applied

    Raises:
        ConfigError: If the file exists but is invalid
    """
    if path is not None:
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
    else:
        path = find_tool_config()

    raw_config: dict[str, Any] = {}
    if path is None:
        logger.debug("No %s found - using defaults", TOOL_CONFIG_NAME)
    else:
        with open(path) as f:
            raw_config = yaml.safe_load(f) or {}
        logger.debug("Loaded tool config from %s", path)

    try:
        config = ToolConfig.Schema().load(raw_config)
    except ValidationError as e:
        raise ConfigError(f"Invalid config in {path}: {e.messages}") from e

    overrides = {attr: os.environ[var] for var, attr in ENV_OVERRIDES.items() if os.environ.get(var)}
    if overrides:
        logger.debug("Applying environment overrides: %s", sorted(overrides))
        config = dataclasses.replace(config, **overrides)
    return config


def get_setting(key: str, default: Any = None) -> Any:
    """
    Get a setting from the tool configuration.

    Args:
        key: Setting name (e.g., 'project', 'region')
        default: Default value if not set

    Returns:
        Setting value or default if not found
    """
    value = getattr(load_tool_config(), key, None)
    return default if value is None else value


def _read_document(path: Path) -> Any:
    with open(path) as f:
        if path.suffix.lower() == ".json":
            return json.load(f)
        return yaml.safe_load(f)


def load_job_config(source: Mapping[str, Any] | Path | str | None) -> dict[str, Any]:
    """
    Load and validate a job configuration document.

    The document is rooted at `trainingInput`; a bare document without the
    root is wrapped. Unknown keys are preserved in the returned dict so they
    reach the provider unchanged.

    Args:
        source: Dict, path to a YAML/JSON file, or None for an empty config

    Returns:
        Resolved config dict rooted at trainingInput

    Raises:
        ConfigError: If the file is missing or validation fails
    """
    if source is None:
        document: Any = {}
    elif isinstance(source, Mapping):
        document = copy.deepcopy(dict(source))
    else:
        path = Path(source)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        try:
            document = _read_document(path) or {}
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigError(f"Could not parse {path}: {e}") from e

    if not isinstance(document, dict):
        raise ConfigError(f"Job config must be a mapping, got {type(document).__name__}")

    if "trainingInput" not in document:
        document = {"trainingInput": document}
    if document["trainingInput"] is None:
        document["trainingInput"] = {}

    training_input = document["trainingInput"]
    if not isinstance(training_input, dict):
        raise ConfigError("trainingInput must be a mapping")
    # An unquoted 1.10 has already lost its trailing zero
    version = training_input.get("runtimeVersion")
    if isinstance(version, (int, float)) and not isinstance(version, bool):
        raise ConfigError(f"runtimeVersion must be a quoted string, e.g. '1.10' (got {version!r})")

    validate_job_config(document)
    return document


def validate_job_config(document: Mapping[str, Any]) -> JobConfig:
    """Validate a job configuration dict, returning the typed view."""
    try:
        return JobConfig.Schema().load(document)
    except (ValidationError, ValueError, TypeError) as e:
        detail = e.messages if isinstance(e, ValidationError) else e
        raise ConfigError(f"Invalid job config: {detail}") from e


def apply_overrides(document: Mapping[str, Any], master_type: str | None = None) -> dict[str, Any]:
    """
    Merge a machine type override into a job configuration.

    Custom machine types cannot be combined with a preset scale tier, so the
    scale tier is forced to CUSTOM whenever a master type is present.

    Args:
        document: Config dict rooted at trainingInput
        master_type: Master machine type override

    Returns:
        New config dict with overrides applied
    """
    config = copy.deepcopy(dict(document))
    training_input = config.setdefault("trainingInput", {})

    if master_type is not None:
        training_input["masterType"] = master_type
        logger.debug("Applied master type override: %s", master_type)

    if training_input.get("masterType") and training_input.get("scaleTier") != CUSTOM_SCALE_TIER:
        training_input["scaleTier"] = CUSTOM_SCALE_TIER
        logger.debug("Scale tier set to %s for custom master type", CUSTOM_SCALE_TIER)

    return config


def _version_key(version: str) -> tuple[int, ...]:
    try:
        return tuple(int(part) for part in str(version).strip().split("."))
    except ValueError as e:
        raise UnsupportedVersionError(f"Runtime version {version!r} is not a valid version number") from e


def check_runtime_version(version: str, minimum: str = MIN_RUNTIME_VERSION) -> str:
    """
    Reject runtime versions below the supported floor.

    Components are compared numerically, so 1.10 is newer than 1.9.

    Returns:
        The version, unchanged

    Raises:
        UnsupportedVersionError: If the version is older than minimum
    """
    if _version_key(version) < _version_key(minimum):
        raise UnsupportedVersionError(f"Runtime version {version} is unsupported, use {minimum} or newer.")
    return version
