"""Declarative parameter schema.

A processor's parameter contract is a list of ParamDef objects. ParamSchema
wraps the list and derives the plain dicts every caller works with
(defaults, ranges, sections) plus the preset loading helpers.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ParamType(Enum):
    FLOAT = "float"
    INT = "int"
    CHOICE = "choice"
    BOOL = "bool"


@dataclass(frozen=True)
class ParamDef:
    key: str
    type: ParamType
    default: Any
    section: str
    label: str = ""
    range: tuple | None = None        # (min, max) for continuous params
    choices: list[str] | None = None  # allowed values for CHOICE type


class ParamSchema:
    """Derives params dicts and preset handling from a declarative list."""

    def __init__(self, params: list[ParamDef]):
        self._params = params
        self._by_key: dict[str, ParamDef] = {p.key: p for p in params}

    def default_params(self) -> dict:
        return {p.key: p.default for p in self._params}

    def param_ranges(self) -> dict[str, tuple]:
        """Continuous params only (float/int with range)."""
        return {p.key: p.range for p in self._params
                if p.range is not None and p.type in (ParamType.FLOAT, ParamType.INT)}

    def param_sections(self) -> dict[str, list[str]]:
        sections: dict[str, list[str]] = {}
        for p in self._params:
            sections.setdefault(p.section, []).append(p.key)
        return sections

    def choice_values(self) -> dict[str, list[str]]:
        return {p.key: list(p.choices) for p in self._params
                if p.type == ParamType.CHOICE and p.choices}

    def unknown_keys(self, raw: dict) -> list[str]:
        return sorted(k for k in raw if k not in self._by_key)

    def merge(self, raw: dict | None) -> dict:
        """Defaults overlaid with ``raw``. Values are not cast or clamped."""
        merged = self.default_params()
        if raw:
            merged.update({k: v for k, v in raw.items() if k in self._by_key})
        return merged

    def validate_and_clamp(self, raw: dict) -> dict:
        """Cast and clamp a raw params dict (e.g. a preset file).

        Unknown keys and uncastable values are dropped; choice values
        outside the allowed list are dropped.
        """
        result = {}
        for key, value in raw.items():
            p = self._by_key.get(key)
            if p is None:
                continue

            if p.type == ParamType.BOOL:
                result[key] = bool(value)

            elif p.type == ParamType.INT:
                try:
                    v = int(round(value))
                except (TypeError, ValueError):
                    continue
                if p.range:
                    lo, hi = p.range
                    v = max(lo, min(hi, v))
                result[key] = v

            elif p.type == ParamType.FLOAT:
                try:
                    v = float(value)
                except (TypeError, ValueError):
                    continue
                if p.range:
                    lo, hi = p.range
                    v = max(lo, min(hi, v))
                result[key] = v

            elif p.type == ParamType.CHOICE:
                if p.choices and value not in p.choices:
                    continue
                result[key] = value

        return result

    def get(self, key: str) -> ParamDef | None:
        return self._by_key.get(key)

    def __iter__(self):
        return iter(self._params)

    def __len__(self):
        return len(self._params)
