# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Request payload models for the Status API contract."""

from pydantic import BaseModel, Field


class JobCreatePayload(BaseModel):
    """Payload for POST /api/jobs."""

    job_id: str = Field(..., description="Cloud ML job id")
    job_name: str = Field(..., description="Human-readable job name (the entrypoint)")
    submitted_at: str = Field(..., description="ISO 8601 submission timestamp")
    project: str | None = Field(None, description="Google Cloud project")
    region: str | None = Field(None, description="Training region")
    metadata: dict | None = Field(None, description="Job metadata (scale tier, machine type, tuning)")


class JobStateUpdatePayload(BaseModel):
    """Payload for PUT /api/jobs/{job_id}."""

    state: str = Field(..., description="Provider job state (QUEUED, RUNNING, SUCCEEDED, ...)")
    updated_at: str = Field(..., description="ISO 8601 time the state was observed")
    message: str | None = Field(None, description="Human-readable status message")
    started_at: str | None = Field(None, description="Provider start timestamp")
    completed_at: str | None = Field(None, description="Provider end timestamp")
    console_url: str | None = Field(None, description="Job console URL")
    consumed_ml_units: float | None = Field(None, description="Consumed ML units so far")
