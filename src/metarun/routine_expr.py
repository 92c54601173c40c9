# metarun/routine_expr.py
"""
Parsed form of a routine command string.

A routine string is parsed once into one of the expression types below,
so the resolver dispatches on type instead of re-testing string prefixes
on every recursive call.

    "parallel a b"        -> ParallelExpr(("a", "b"))
    "sequence a b"        -> SequenceExpr(("a", "b"))
    "every test !web"     -> EveryExpr(include=("test",), exclude=("web",))
    "npm i && npm test"   -> ShorthandAndExpr(("npm i", "npm test"))
    "api & worker"        -> ShorthandAmpExpr(("api", "worker"))
    "echo hi"             -> LiteralExpr("echo hi")
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Union

PARALLEL_PREFIX = "parallel "
SEQUENCE_PREFIX = "sequence "
EVERY_PREFIX = "every "
EXCLUDE_MARKER = "!"


@dataclass(frozen=True)
class LiteralExpr:
    command: str


@dataclass(frozen=True)
class ParallelExpr:
    names: tuple[str, ...]


@dataclass(frozen=True)
class SequenceExpr:
    names: tuple[str, ...]


@dataclass(frozen=True)
class EveryExpr:
    include: tuple[str, ...]
    """Routine names to run in every project that defines them."""

    exclude: tuple[str, ...] = ()
    """Project names (given as `!name`) to skip."""


@dataclass(frozen=True)
class ShorthandAndExpr:
    parts: tuple[str, ...]


@dataclass(frozen=True)
class ShorthandAmpExpr:
    parts: tuple[str, ...]


RoutineExpr = Union[
    LiteralExpr, ParallelExpr, SequenceExpr, EveryExpr, ShorthandAndExpr, ShorthandAmpExpr
]


def _split_parts(command: str, separator: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in command.split(separator))


def parse_routine(command: str) -> RoutineExpr:
    """Parse one routine command string. Never fails: anything unrecognised is a literal."""
    if command.startswith(PARALLEL_PREFIX):
        return ParallelExpr(tuple(command[len(PARALLEL_PREFIX):].split()))

    if command.startswith(SEQUENCE_PREFIX):
        return SequenceExpr(tuple(command[len(SEQUENCE_PREFIX):].split()))

    if command.startswith(EVERY_PREFIX):
        include: list[str] = []
        exclude: list[str] = []
        for token in command[len(EVERY_PREFIX):].split():
            if token.startswith(EXCLUDE_MARKER):
                exclude.append(token[len(EXCLUDE_MARKER):])
            else:
                include.append(token)
        return EveryExpr(tuple(include), tuple(exclude))

    if "&&" in command:
        return ShorthandAndExpr(_split_parts(command, "&&"))

    if "&" in command:
        return ShorthandAmpExpr(_split_parts(command, "&"))

    return LiteralExpr(command)


def compile_routines(routines: Mapping[str, str]) -> dict[str, RoutineExpr]:
    """Parse every entry of a routine map up front."""
    return {name: parse_routine(command) for name, command in routines.items()}
