# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Ordered argument lists for provider CLI invocations.

The provider CLIs are positional-subcommand sensitive, so tokens are kept
in exactly the order they were added. Optional flags are added unconditionally
at the call site and silently dropped when their value is missing:

    args = (
        ml_arguments(config)
        .add("jobs")
        .add("list")
        .add("--filter={}", filter)
        .add("--limit={}", limit)
        .build()
    )
"""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from cmlctl.core.schema import ToolConfig

# gcloud command group for training jobs
ML_COMMAND_GROUP = "ai-platform"


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value == "")


class ArgumentsBuilder:
    """Append-only builder for command-line tokens."""

    def __init__(self, *tokens: str):
        self._tokens: list[str] = []
        for token in tokens:
            self.add(token)

    def add(self, token: str | None, *values: Any) -> "ArgumentsBuilder":
        """Append a token.

        Args:
            token: Literal token, or a str.format template when values are given.
                None is ignored.
            *values: Values substituted into the template. If any value is
                None or empty, the token is omitted.

        Returns:
            The builder, for chaining
        """
        if token is None:
            return self
        if values:
            if any(_is_missing(v) for v in values):
                return self
            token = token.format(*values)
        self._tokens.append(str(token))
        return self

    def add_flag(self, flag: str, enabled: bool) -> "ArgumentsBuilder":
        """Append a boolean flag when enabled."""
        return self.add(flag if enabled else None)

    def build(self) -> tuple[str, ...]:
        """Return the tokens added so far, in call order."""
        return tuple(self._tokens)

    def __len__(self) -> int:
        return len(self._tokens)

    def __repr__(self) -> str:
        return f"ArgumentsBuilder({list(self._tokens)!r})"


def ml_arguments(config: "ToolConfig | None" = None) -> ArgumentsBuilder:
    """Create a builder for `gcloud ai-platform` calls.

    Project and account flags come from the tool configuration and are
    omitted when unset, leaving gcloud to use its active configuration.
    """
    builder = ArgumentsBuilder(ML_COMMAND_GROUP)
    if config is not None:
        builder.add("--project={}", config.project)
        builder.add("--account={}", config.account)
    return builder
