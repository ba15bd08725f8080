"""Kubernetes name and label selector validation.

Mirrors the apimachinery rules closely enough to reject configuration the
API server would refuse.

Example:
    is_qualified_name("example.com/routingHosts".lower())   # True
    parse_label_selector("routable=true,tier in (web, api)")
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

QUALIFIED_NAME_MAX_LENGTH = 63
DNS1123_SUBDOMAIN_MAX_LENGTH = 253
LABEL_VALUE_MAX_LENGTH = 63

_QUALIFIED_NAME_RE = re.compile(r"^([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9]$")
_DNS1123_SUBDOMAIN_RE = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$")
_LABEL_VALUE_RE = re.compile(r"^(([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9])?$")
_SET_RE = re.compile(r"^\s*(\S+)\s+(in|notin)\s+\((.*)\)\s*$")
_EQUALITY_RE = re.compile(r"^\s*([^!=\s]+)\s*(==|!=|=)\s*(\S*)\s*$")


class SelectorOperator(Enum):
    """Operators supported in label selector requirements."""

    EQUALS = "="
    NOT_EQUALS = "!="
    IN = "in"
    NOT_IN = "notin"
    EXISTS = "exists"
    DOES_NOT_EXIST = "!"


@dataclass(frozen=True)
class LabelRequirement:
    """A single parsed requirement of a label selector."""

    key: str
    operator: SelectorOperator
    values: tuple[str, ...] = field(default_factory=tuple)

    def matches(self, labels: dict[str, str]) -> bool:
        """Check whether a label set satisfies this requirement."""
        if self.operator == SelectorOperator.EXISTS:
            return self.key in labels
        if self.operator == SelectorOperator.DOES_NOT_EXIST:
            return self.key not in labels
        if self.operator in (SelectorOperator.EQUALS, SelectorOperator.IN):
            return labels.get(self.key) in self.values
        # NOT_EQUALS / NOT_IN also match when the label is absent
        return labels.get(self.key) not in self.values


def is_qualified_name(value: str) -> bool:
    """Check ``value`` against the Kubernetes qualified name format.

    A qualified name is an optional DNS-1123 subdomain prefix followed by a
    slash and a name of at most 63 alphanumerics, ``-``, ``_`` or ``.``,
    starting and ending with an alphanumeric.
    """
    parts = value.split("/")
    if len(parts) == 1:
        name = parts[0]
    elif len(parts) == 2:
        prefix, name = parts
        if not prefix or len(prefix) > DNS1123_SUBDOMAIN_MAX_LENGTH:
            return False
        if not _DNS1123_SUBDOMAIN_RE.match(prefix):
            return False
    else:
        return False

    if not name or len(name) > QUALIFIED_NAME_MAX_LENGTH:
        return False
    return bool(_QUALIFIED_NAME_RE.match(name))


def is_valid_label_value(value: str) -> bool:
    """Check ``value`` against the Kubernetes label value format (may be empty)."""
    return len(value) <= LABEL_VALUE_MAX_LENGTH and bool(_LABEL_VALUE_RE.match(value))


def _split_requirements(selector: str) -> list[str]:
    """Split on commas that are not inside a parenthesised value set."""
    parts: list[str] = []
    depth = 0
    current: list[str] = []
    for char in selector:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                raise ValueError(f"Unbalanced ')' in label selector: {selector}")
        if char == "," and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(char)
    if depth != 0:
        raise ValueError(f"Unbalanced '(' in label selector: {selector}")
    parts.append("".join(current))
    return parts


def _parse_requirement(text: str) -> LabelRequirement:
    text = text.strip()
    if not text:
        raise ValueError("Empty label selector requirement")

    match = _SET_RE.match(text)
    if match:
        key, op, raw_values = match.groups()
        values = tuple(v.strip() for v in raw_values.split(",") if v.strip())
        if not values:
            raise ValueError(f"Set requirement needs at least one value: {text}")
        operator = SelectorOperator.IN if op == "in" else SelectorOperator.NOT_IN
        return _checked(LabelRequirement(key=key, operator=operator, values=values))

    match = _EQUALITY_RE.match(text)
    if match:
        key, op, value = match.groups()
        operator = SelectorOperator.NOT_EQUALS if op == "!=" else SelectorOperator.EQUALS
        return _checked(LabelRequirement(key=key, operator=operator, values=(value,)))

    if text.startswith("!"):
        return _checked(LabelRequirement(key=text[1:].strip(), operator=SelectorOperator.DOES_NOT_EXIST))

    if " " in text:
        raise ValueError(f"Invalid label selector requirement: {text}")
    return _checked(LabelRequirement(key=text, operator=SelectorOperator.EXISTS))


def _checked(requirement: LabelRequirement) -> LabelRequirement:
    if not is_qualified_name(requirement.key):
        raise ValueError(f"Invalid label key: {requirement.key}")
    for value in requirement.values:
        if not is_valid_label_value(value):
            raise ValueError(f"Invalid label value: {value}")
    return requirement


def parse_label_selector(selector: str) -> list[LabelRequirement]:
    """Parse a label selector string into requirements.

    Supports ``key=value``, ``key==value``, ``key!=value``,
    ``key in (a,b)``, ``key notin (a,b)``, ``key`` and ``!key``, joined by
    commas. An empty selector has no requirements and matches everything.

    Raises:
        ValueError: If the selector is malformed.
    """
    if not selector.strip():
        return []
    return [_parse_requirement(part) for part in _split_requirements(selector)]


def selector_matches(requirements: list[LabelRequirement], labels: dict[str, str]) -> bool:
    """Check whether ``labels`` satisfies every requirement."""
    return all(req.matches(labels) for req in requirements)
