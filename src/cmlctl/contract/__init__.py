# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Shared API contract for the Status API.

This package defines the Pydantic payloads sent to a status endpoint.
It has zero internal imports and only depends on pydantic.

Usage:
    from cmlctl.contract import JobCreatePayload, JobStateUpdatePayload
"""

from cmlctl.contract.requests import JobCreatePayload, JobStateUpdatePayload

__all__ = [
    "JobCreatePayload",
    "JobStateUpdatePayload",
]
