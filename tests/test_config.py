# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Tests for tool and job configuration loading."""

import json

import pytest
import yaml

from cmlctl.core.config import (
    apply_overrides,
    check_runtime_version,
    get_setting,
    load_job_config,
    load_tool_config,
)
from cmlctl.core.errors import ConfigError, UnsupportedVersionError


class TestToolConfig:
    """Test cmlctl.yaml loading."""

    def test_defaults_without_file(self, tmp_path, monkeypatch):
        """No cmlctl.yaml means defaults (graceful degradation)."""
        monkeypatch.chdir(tmp_path)
        for var in ("CMLCTL_GCLOUD", "CMLCTL_GSUTIL", "CMLCTL_PROJECT", "CMLCTL_REGION", "CMLCTL_STORAGE"):
            monkeypatch.delenv(var, raising=False)

        config = load_tool_config()

        assert config.gcloud_binary == "gcloud"
        assert config.gsutil_binary == "gsutil"
        assert config.project is None
        assert config.reporting is None

    def test_loads_file_from_parent_directory(self, tmp_path, monkeypatch):
        """cmlctl.yaml is found up to two directories above the working directory."""
        (tmp_path / "cmlctl.yaml").write_text(
            yaml.dump(
                {
                    "project": "my-project",
                    "storage": "gs://my-bucket",
                    "reporting": {"status": {"endpoint": "https://status.example.com"}},
                }
            )
        )
        workdir = tmp_path / "a" / "b"
        workdir.mkdir(parents=True)
        monkeypatch.chdir(workdir)
        monkeypatch.delenv("CMLCTL_PROJECT", raising=False)
        monkeypatch.delenv("CMLCTL_STORAGE", raising=False)

        config = load_tool_config()

        assert config.project == "my-project"
        assert config.storage == "gs://my-bucket"
        assert config.reporting.status.endpoint == "https://status.example.com"

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        """CMLCTL_* variables win over file values."""
        path = tmp_path / "cmlctl.yaml"
        path.write_text(yaml.dump({"project": "from-file", "gcloud_binary": "/opt/gcloud"}))
        monkeypatch.setenv("CMLCTL_PROJECT", "from-env")

        config = load_tool_config(path)

        assert config.project == "from-env"
        assert config.gcloud_binary == "/opt/gcloud"

    def test_explicit_missing_path_raises(self, tmp_path):
        """An explicitly named config must exist."""
        with pytest.raises(ConfigError):
            load_tool_config(tmp_path / "missing.yaml")

    def test_invalid_file_raises(self, tmp_path):
        """Schema violations surface as ConfigError."""
        path = tmp_path / "cmlctl.yaml"
        path.write_text(yaml.dump({"reporting": "not-a-mapping"}))

        with pytest.raises(ConfigError):
            load_tool_config(path)

    def test_get_setting_default(self, tmp_path, monkeypatch):
        """get_setting falls back to the default for unset keys."""
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("CMLCTL_REGION", raising=False)

        assert get_setting("region", "us-central1") == "us-central1"


class TestJobConfig:
    """Test job configuration documents."""

    def test_none_gives_empty_training_input(self):
        """No config is an empty trainingInput."""
        assert load_job_config(None) == {"trainingInput": {}}

    def test_bare_document_is_wrapped(self):
        """A document without the trainingInput root is wrapped."""
        config = load_job_config({"scaleTier": "BASIC_GPU"})

        assert config == {"trainingInput": {"scaleTier": "BASIC_GPU"}}

    def test_yaml_file_with_hyperparameters(self, tmp_path):
        """A tuning config loads from YAML and keeps unknown keys."""
        path = tmp_path / "tuning.yml"
        path.write_text(
            yaml.dump(
                {
                    "trainingInput": {
                        "scaleTier": "CUSTOM",
                        "masterType": "standard_gpu",
                        "customField": "kept",
                        "hyperparameters": {
                            "goal": "MAXIMIZE",
                            "hyperparameterMetricTag": "accuracy",
                            "maxTrials": 10,
                            "params": [
                                {"parameterName": "dropout", "type": "DOUBLE", "minValue": 0.1, "maxValue": 0.5},
                                {"parameterName": "units", "type": "DISCRETE", "discreteValues": [32, 64]},
                            ],
                        },
                    }
                }
            )
        )

        config = load_job_config(path)

        assert config["trainingInput"]["customField"] == "kept"
        assert config["trainingInput"]["hyperparameters"]["maxTrials"] == 10

    def test_json_file(self, tmp_path):
        """JSON documents load the same way."""
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"trainingInput": {"region": "europe-west1"}}))

        assert load_job_config(path) == {"trainingInput": {"region": "europe-west1"}}

    @pytest.mark.parametrize("version", [1.8, 2])
    def test_numeric_runtime_version_rejected(self, version):
        """A runtime version given as a number is a ConfigError."""
        with pytest.raises(ConfigError, match="quoted string"):
            load_job_config({"trainingInput": {"runtimeVersion": version}})

    def test_unquoted_runtime_version_1_10_in_yaml(self, tmp_path):
        """An unquoted 1.10 in a YAML file is rejected instead of read as 1.1."""
        path = tmp_path / "job.yml"
        path.write_text("trainingInput:\n  runtimeVersion: 1.10\n")

        with pytest.raises(ConfigError, match=r"quoted string.*got 1\.1\)"):
            load_job_config(path)

    def test_quoted_runtime_version_1_10_in_yaml(self, tmp_path):
        """A quoted 1.10 is kept intact and passes the version floor."""
        path = tmp_path / "job.yml"
        path.write_text("trainingInput:\n  runtimeVersion: '1.10'\n")

        config = load_job_config(path)

        assert config["trainingInput"]["runtimeVersion"] == "1.10"
        check_runtime_version(config["trainingInput"]["runtimeVersion"])

    def test_missing_file_raises(self, tmp_path):
        """A missing config path is a ConfigError."""
        with pytest.raises(ConfigError):
            load_job_config(tmp_path / "missing.yml")

    @pytest.mark.parametrize(
        "param",
        [
            {"parameterName": "lr", "type": "DOUBLE", "minValue": 0.1},
            {"parameterName": "lr", "type": "DOUBLE", "minValue": 0.5, "maxValue": 0.1},
            {"parameterName": "act", "type": "CATEGORICAL"},
            {"parameterName": "units", "type": "DISCRETE", "discreteValues": []},
            {"parameterName": "lr", "type": "FLOAT", "minValue": 0.1, "maxValue": 0.5},
        ],
    )
    def test_invalid_parameter_specs(self, param):
        """Incomplete or inconsistent parameter specs are rejected."""
        document = {"trainingInput": {"hyperparameters": {"goal": "MINIMIZE", "params": [param]}}}

        with pytest.raises(ConfigError):
            load_job_config(document)

    def test_invalid_goal(self):
        """The goal must be MAXIMIZE or MINIMIZE."""
        with pytest.raises(ConfigError):
            load_job_config({"hyperparameters": {"goal": "BIGGER"}})

    def test_non_mapping_training_input(self):
        """trainingInput must itself be a mapping."""
        with pytest.raises(ConfigError):
            load_job_config({"trainingInput": ["scaleTier"]})


class TestOverrides:
    """Test master type override merging."""

    def test_master_type_forces_custom_scale_tier(self):
        """Setting a master type switches the scale tier to CUSTOM."""
        config = apply_overrides({"trainingInput": {"scaleTier": "BASIC"}}, master_type="complex_model_m")

        assert config["trainingInput"] == {"scaleTier": "CUSTOM", "masterType": "complex_model_m"}

    def test_master_type_in_config_forces_custom(self):
        """A master type from the config file also forces CUSTOM."""
        config = apply_overrides({"trainingInput": {"masterType": "standard_gpu"}})

        assert config["trainingInput"]["scaleTier"] == "CUSTOM"

    def test_no_override_leaves_config_alone(self):
        """Without a master type the scale tier is untouched and the input is not mutated."""
        original = {"trainingInput": {"scaleTier": "BASIC"}}

        config = apply_overrides(original)

        assert config == original
        assert config is not original


class TestRuntimeVersion:
    """Test the runtime version floor."""

    @pytest.mark.parametrize("version", ["1.4", "1.9", "1.10", "2.1"])
    def test_supported_versions(self, version):
        """Versions at or above 1.4 pass, compared per component."""
        assert check_runtime_version(version) == version

    @pytest.mark.parametrize("version", ["1.3", "1.0", "0.12"])
    def test_unsupported_versions(self, version):
        """Versions below 1.4 are rejected."""
        with pytest.raises(UnsupportedVersionError):
            check_runtime_version(version)

    def test_garbage_version(self):
        """A non-numeric version is rejected."""
        with pytest.raises(UnsupportedVersionError):
            check_runtime_version("latest")
