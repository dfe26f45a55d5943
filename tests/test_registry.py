# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Tests for job references and the latest-job registry."""

import threading

import pytest

from cmlctl.core.errors import JobNotFoundError
from cmlctl.core.registry import LATEST, Job, JobRegistry


class TestJob:
    """Test the Job record."""

    def test_tuning_detected_from_description(self):
        """A job whose description has hyperparameters is a tuning job."""
        job = Job("train", "job_1", {"trainingInput": {"hyperparameters": {"goal": "MAXIMIZE"}}})

        assert job.is_tuning is True
        assert str(job) == "job_1"

    def test_empty_description_is_not_tuning(self):
        """An id-only job is not treated as a tuning job."""
        assert Job("train", "job_1").is_tuning is False


class TestJobRegistry:
    """Test JobRegistry resolution."""

    def test_latest_before_registration_raises(self):
        """Resolving 'latest' with nothing registered raises JobNotFoundError."""
        with pytest.raises(JobNotFoundError):
            JobRegistry().resolve(LATEST)

    def test_latest_returns_last_registered(self):
        """Last write wins."""
        registry = JobRegistry()
        first = registry.register(Job("train", "job_1"))
        second = registry.register(Job("train", "job_2"))

        assert registry.resolve(LATEST) is second
        assert registry.resolve(LATEST) is not first

    def test_plain_id_synthesizes_job(self):
        """A job id resolves to a minimal Job without registering it."""
        registry = JobRegistry()

        job = registry.resolve("cloudml_2018_01_01_120000")

        assert job == Job(kind="train", id="cloudml_2018_01_01_120000", description={})
        assert registry.latest is None

    def test_job_passes_through(self):
        """A Job reference is returned unchanged."""
        job = Job("train", "job_1", {"jobId": "job_1"})

        assert JobRegistry().resolve(job) is job

    def test_rejects_other_types(self):
        """Only Job objects and strings are references."""
        with pytest.raises(TypeError):
            JobRegistry().resolve(42)

    def test_concurrent_registration_leaves_one_of_the_jobs(self):
        """Concurrent writers never leave the registry in a torn state."""
        registry = JobRegistry()
        jobs = [Job("train", f"job_{i}") for i in range(20)]
        threads = [threading.Thread(target=registry.register, args=(job,)) for job in jobs]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert registry.resolve(LATEST) in jobs
