# src/pipeline/conditions.py — v1
"""Step conditions.

Grammar (optionally prefixed with '!' to negate):
  artifact:<name>       artifact present and truthy
  env:<VAR>             variable set and non-empty in the run environment
  env:<VAR>=<value>     variable equals value
  environment:<name>    pipeline environment equals name
  true | false
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING

from shipyard.core.errors import ConfigurationError

if TYPE_CHECKING:
    from shipyard.pipeline.context import PipelineContext

_PREFIXES = ("artifact", "env", "environment")


@dataclass(frozen=True)
class Condition:
    source: str
    key: str
    value: str | None = None
    negate: bool = False


def parse_condition(expression: str) -> Condition:
    """Parse a condition expression.

    Raises:
        ConfigurationError: If the expression is malformed.
    """
    expr = expression.strip()
    negate = expr.startswith("!")
    if negate:
        expr = expr[1:].strip()

    if expr.lower() in ("true", "false"):
        return Condition(source="literal", key=expr.lower(), negate=negate)

    source, sep, rest = expr.partition(":")
    if not sep or source not in _PREFIXES or not rest:
        raise ConfigurationError(f"Invalid step condition: '{expression}'")

    if source == "env" and "=" in rest:
        key, _, value = rest.partition("=")
        return Condition(source=source, key=key.strip(), value=value.strip(), negate=negate)
    return Condition(source=source, key=rest.strip(), negate=negate)


def evaluate_condition(
    expression: str, context: PipelineContext, environment: str = "production",
) -> bool:
    """True when the step guarded by expression should run."""
    cond = parse_condition(expression)
    if cond.source == "literal":
        result = cond.key == "true"
    elif cond.source == "artifact":
        result = bool(context.artifacts.get(cond.key))
    elif cond.source == "environment":
        result = environment == cond.key
    else:
        actual = context.environment.get(cond.key, os.environ.get(cond.key, ""))
        result = actual == cond.value if cond.value is not None else bool(actual)
    return not result if cond.negate else result
