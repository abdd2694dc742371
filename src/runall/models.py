"""Command specs, default names and aligned output prefixes.

A ``CommandSpec`` is produced once from the command line and never changes
afterwards. Prefixes share one display width so that output lines from
different commands stay aligned:

    [web]    listening on :8000
    [worker] ready
"""

from __future__ import annotations

from collections.abc import Sequence

from pydantic import BaseModel, ConfigDict

from .errors import NameCountError

__all__ = [
    "CommandSpec",
    "default_names",
    "reconcile_names",
    "build_specs",
    "prefix_width",
    "make_prefix",
    "make_prefixes",
]


class CommandSpec(BaseModel):
    """One command to run.

    Attributes:
        name: Label shown in front of every output line (need not be unique)
        command: Shell command string, passed verbatim to the shell
    """

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
    )

    name: str
    command: str


def default_names(count: int) -> list[str]:
    """Return ``cmd-1`` .. ``cmd-<count>``."""
    return [f"cmd-{i + 1}" for i in range(count)]


def reconcile_names(names: Sequence[str], count: int) -> list[str]:
    """Match a user-supplied name list against the command count.

    A single entry is split on commas, so ``--names a,b,c`` names three
    commands. The split only happens when the list does not already match.

    Raises:
        NameCountError: If the counts still differ after splitting
    """
    result = list(names)
    if len(result) == count:
        return result

    if len(result) == 1:
        result = result[0].split(",")
    if len(result) == count:
        return result

    raise NameCountError(count, len(result))


def build_specs(
    commands: Sequence[str],
    names: Sequence[str] | None = None,
) -> list[CommandSpec]:
    """Pair every command with its name.

    Raises:
        NameCountError: If ``names`` cannot be reconciled with ``commands``
    """
    if names is None:
        resolved = default_names(len(commands))
    else:
        resolved = reconcile_names(names, len(commands))

    return [
        CommandSpec(name=name, command=command)
        for name, command in zip(resolved, commands)
    ]


def prefix_width(specs: Sequence[CommandSpec]) -> int:
    return max((len(spec.name) for spec in specs), default=0)


def make_prefix(name: str, width: int) -> str:
    """``[name]`` right-padded with spaces to ``width`` name characters."""
    return f"[{name}]" + " " * max(0, width - len(name))


def make_prefixes(specs: Sequence[CommandSpec]) -> list[str]:
    width = prefix_width(specs)
    return [make_prefix(spec.name, width) for spec in specs]
