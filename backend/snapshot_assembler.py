"""
HomeHorizon - Snapshot Assembler
================================
Builds plan snapshots from intake answers and merges section updates into
existing snapshots.

Everything here is pure: the base snapshot is never modified, and a
rejected update never yields a partially merged snapshot.
"""

from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from plan_constants import PRICE_INPUT_MULTIPLIER
from models import (
    AssumptionDefaults,
    FamilySupport,
    FieldError,
    PlanSnapshot,
    QuickCheckIntake,
    SectionUpdate,
)


class SnapshotValidationError(Exception):
    """A supplied field is outside its declared domain."""

    def __init__(self, errors: List[FieldError]):
        self.errors = errors
        fields = ", ".join(e.field for e in errors) or "snapshot"
        super().__init__(f"Invalid value for {fields}")


# Python attribute name -> JSON alias, for both the snapshot and its
# nested family support entity.
_SNAPSHOT_ALIASES: Dict[str, str] = {
    name: (info.alias or to_camel(name)) for name, info in PlanSnapshot.model_fields.items()
}
_FAMILY_SUPPORT_ALIASES: Dict[str, str] = {
    name: (info.alias or to_camel(name)) for name, info in FamilySupport.model_fields.items()
}
_FAMILY_SUPPORT_KEY = _SNAPSHOT_ALIASES["family_support"]


def _to_alias(key: str, aliases: Dict[str, str]) -> str:
    return aliases.get(key, key)


def _field_errors(exc: ValidationError) -> List[FieldError]:
    errors = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ())) or "snapshot"
        errors.append(FieldError(field=location, message=err.get("msg", "Invalid value")))
    return errors


def merge(base: PlanSnapshot, update: SectionUpdate) -> PlanSnapshot:
    """
    Apply a section update on top of a base snapshot.

    Fields present in the update replace the base values; absent fields are
    kept. The nested family support entity is merged one level deep.

    Raises:
        SnapshotValidationError: unknown field or constraint violation.
    """
    candidate = base.model_dump(by_alias=True)

    for key, value in update.data.items():
        alias = _to_alias(key, _SNAPSHOT_ALIASES)
        if alias == _FAMILY_SUPPORT_KEY and isinstance(value, dict):
            nested = dict(candidate[_FAMILY_SUPPORT_KEY])
            for sub_key, sub_value in value.items():
                nested[_to_alias(sub_key, _FAMILY_SUPPORT_ALIASES)] = sub_value
            candidate[_FAMILY_SUPPORT_KEY] = nested
        else:
            candidate[alias] = value

    try:
        return PlanSnapshot.model_validate(candidate)
    except ValidationError as exc:
        raise SnapshotValidationError(_field_errors(exc)) from exc


def years_until(target_year: int, current_year: int) -> int:
    """Relative purchase year; rejects targets in the past."""
    years = target_year - current_year
    if years < 0:
        raise SnapshotValidationError([
            FieldError(
                field="targetYear",
                message="Target year must be the current year or later",
            )
        ])
    return years


def to_calendar_year(relative_year: Optional[int], current_year: int) -> Optional[int]:
    """Convert an engine-relative year back to a calendar year."""
    if relative_year is None:
        return None
    return current_year + relative_year


def build_snapshot(
    intake: QuickCheckIntake,
    current_year: int,
    defaults: Optional[AssumptionDefaults] = None,
) -> PlanSnapshot:
    """
    Create the first snapshot of a plan from QuickCheck answers.

    The target calendar year becomes a relative year and the price is
    converted from billions into the snapshot unit. Growth and loan assumptions come
    from `defaults`.
    """
    defaults = defaults or AssumptionDefaults()

    values: Dict[str, Any] = {
        "years_to_purchase": years_until(intake.target_year, current_year),
        "target_house_price_n0": intake.target_house_price * PRICE_INPUT_MULTIPLIER,
        "monthly_living_expenses": intake.monthly_living_expenses,
        "user_monthly_income": intake.user_monthly_income or 0.0,
        "initial_savings": intake.initial_savings or 0.0,
        "has_co_applicant": bool(intake.has_co_applicant),
        "target_house_type": intake.target_house_type,
        "target_location": intake.target_location,
    }
    values.update(defaults.model_dump())

    try:
        return PlanSnapshot(**values)
    except ValidationError as exc:
        raise SnapshotValidationError(_field_errors(exc)) from exc
