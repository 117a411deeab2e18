"""
Drift comparison helpers for is_up_to_date() implementations.

An adapter declares the fields it is authoritative over as FieldSpecs and
lets compare_fields() decide. The rule is conservative: a field whose
observed value is missing cannot be verified and counts as drift, so drift
is never hidden behind an incomplete observation.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Optional

_MISSING = object()


@dataclass(frozen=True)
class FieldSpec:
    """One authoritative field of a resource kind."""

    name: str                                        # Key in the declared parameters
    observed_name: Optional[str] = None              # Key in the observation, if different
    normalize: Optional[Callable[[Any], Any]] = None
    optional: bool = True                            # Unset desired value means "don't care"

    @property
    def observed_key(self) -> str:
        return self.observed_name or self.name


@dataclass
class DriftReport:
    """Which fields differ and which could not be compared."""

    drifted: List[str] = field(default_factory=list)
    unverifiable: List[str] = field(default_factory=list)

    @property
    def up_to_date(self) -> bool:
        return not self.drifted and not self.unverifiable

    def describe(self) -> str:
        parts = []
        if self.drifted:
            parts.append("drifted: " + ", ".join(self.drifted))
        if self.unverifiable:
            parts.append("unverifiable: " + ", ".join(self.unverifiable))
        return "; ".join(parts) or "up to date"


def compare_fields(params: dict, observed: dict, specs: Iterable[FieldSpec]) -> DriftReport:
    """Compare declared parameters against observed fields."""
    report = DriftReport()
    for field_spec in specs:
        desired = params.get(field_spec.name)
        if desired is None:
            if field_spec.optional:
                continue
            # A required field with no desired value can't be judged
            report.unverifiable.append(field_spec.name)
            continue

        actual = observed.get(field_spec.observed_key, _MISSING)
        if actual is _MISSING or actual is None:
            report.unverifiable.append(field_spec.name)
            continue

        if field_spec.normalize is not None:
            try:
                desired = field_spec.normalize(desired)
                actual = field_spec.normalize(actual)
            except (TypeError, ValueError):
                report.unverifiable.append(field_spec.name)
                continue

        if desired != actual:
            report.drifted.append(field_spec.name)
    return report


def is_up_to_date(params: dict, observed: dict, specs: Iterable[FieldSpec]) -> bool:
    return compare_fields(params, observed, specs).up_to_date


def lowercase(value: Any) -> str:
    return str(value).lower()


def as_int(value: Any) -> int:
    if isinstance(value, bool):
        raise TypeError("boolean is not an integer value")
    return int(value)


def sorted_list(value: Any) -> list:
    return sorted(value)


_TRUE_STRINGS = ("true", "yes", "on", "1")
_FALSE_STRINGS = ("false", "no", "off", "0")


def as_bool(value: Any) -> bool:
    """Parse a boolean flag; strings like "false" are not truthy here."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ValueError(f"not a boolean value: {value!r}")
