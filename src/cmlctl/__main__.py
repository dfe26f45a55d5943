# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Allow `python -m cmlctl`."""

from cmlctl.cli.main import main

if __name__ == "__main__":
    main()
