# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
CLI modules for cmlctl.

Available commands:
- train: Submit a training job
- status, cancel, list, stream-logs: Job inspection and control
- collect: Wait for a job and download its outputs
- trials: Show hyperparameter tuning trials
"""
