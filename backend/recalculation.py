"""
HomeHorizon - Recalculation Orchestrator
========================================
Merges a section update into a plan, re-runs the projection and compares
the new earliest purchase year with the previous one.

Stateless and repeatable: identical inputs give identical outcomes, so a
caller can retry immediately with corrected data. Callers are expected to
serialize recalculations per plan.
"""

import logging
from typing import Optional, Union

from plan_constants import SECTION_TITLES
from models import (
    FieldError,
    OutcomeKind,
    PlanSnapshot,
    ProjectionResult,
    RecalculationFailure,
    RecalculationOutcome,
    SectionUpdate,
)
from projection_engine import ComputationError, ProjectionEngine
from snapshot_assembler import SnapshotValidationError, merge

logger = logging.getLogger(__name__)


# =============================================================================
# OUTCOME CLASSIFICATION
# =============================================================================

def classify_outcome(prior: Optional[ProjectionResult], new: ProjectionResult) -> OutcomeKind:
    """Compare two projection results by earliest purchase year."""
    if prior is None:
        return OutcomeKind.INITIAL

    old_year = prior.earliest_purchase_year
    new_year = new.earliest_purchase_year

    if new_year is None:
        return OutcomeKind.NOW_INFEASIBLE if old_year is not None else OutcomeKind.UNCHANGED
    if old_year is None or new_year < old_year:
        return OutcomeKind.IMPROVED
    if new_year > old_year:
        return OutcomeKind.WORSENED
    return OutcomeKind.UNCHANGED


def has_worsened(prior: Optional[ProjectionResult], new: ProjectionResult) -> bool:
    """True when the purchase moved later or became infeasible."""
    return classify_outcome(prior, new) in (OutcomeKind.WORSENED, OutcomeKind.NOW_INFEASIBLE)


def _outcome_message(kind: OutcomeKind, section_title: str, prior: Optional[ProjectionResult],
                     new: ProjectionResult) -> str:
    old_year = prior.earliest_purchase_year if prior else None
    new_year = new.earliest_purchase_year

    if kind == OutcomeKind.IMPROVED:
        if old_year is None:
            headline = f"{section_title}: buying a home is now within reach."
        else:
            headline = f"{section_title}: your purchase moved {old_year - new_year} year(s) earlier."
    elif kind == OutcomeKind.WORSENED:
        headline = f"{section_title}: your purchase was pushed back {new_year - old_year} year(s)."
    elif kind == OutcomeKind.NOW_INFEASIBLE:
        headline = f"{section_title}: the purchase is no longer reachable within the horizon."
    elif kind == OutcomeKind.UNCHANGED:
        headline = f"{section_title}: your earliest purchase year is unchanged."
    else:
        headline = f"{section_title}: projection updated."

    return f"{headline} {new.message}"


# =============================================================================
# ORCHESTRATOR
# =============================================================================

class RecalculationOrchestrator:
    """
    Merge -> project -> classify.

    Example:
        orchestrator = RecalculationOrchestrator()
        outcome = orchestrator.recalculate(prior_result, snapshot, update)
        if outcome.success and outcome.has_worsened:
            ...
    """

    def __init__(self, engine: Optional[ProjectionEngine] = None):
        self.engine = engine or ProjectionEngine()

    def start_plan(self, snapshot: PlanSnapshot) -> ProjectionResult:
        """Initial, non-incremental projection for a newly created plan."""
        return self.engine.project(snapshot)

    def recalculate(
        self,
        prior: Optional[ProjectionResult],
        base: PlanSnapshot,
        update: SectionUpdate,
    ) -> Union[RecalculationOutcome, RecalculationFailure]:
        """
        Apply a section update and re-run the projection.

        Never raises for bad input or bad configuration; both come back as
        a RecalculationFailure carrying the untouched base snapshot.
        """
        section_title = SECTION_TITLES.get(update.section.value, update.section.value)
        prior_year = prior.earliest_purchase_year if prior else None

        # Step 1: Merge
        try:
            updated = merge(base, update)
        except SnapshotValidationError as exc:
            logger.warning(
                f"Rejected {update.section.value} update: "
                f"{', '.join(e.field for e in exc.errors)}"
            )
            return RecalculationFailure(
                section=update.section,
                plan=base,
                earliest_purchase_year=prior_year,
                message=f"{section_title}: some answers are invalid. Please correct them and try again.",
                errors=exc.errors,
            )

        # Step 2: Project
        try:
            result = self.engine.project(updated)
        except ComputationError as exc:
            logger.error(f"Projection failed after {update.section.value} update: {exc}")
            return RecalculationFailure(
                section=update.section,
                plan=base,
                earliest_purchase_year=prior_year,
                message="The projection could not be computed. Please try again later.",
                errors=[FieldError(field="configuration", message=str(exc))],
            )

        # Step 3: Classify
        kind = classify_outcome(prior, result)

        return RecalculationOutcome(
            section=update.section,
            outcome=kind,
            plan=updated,
            earliest_purchase_year=result.earliest_purchase_year,
            previous_purchase_year=prior_year,
            has_worsened=kind in (OutcomeKind.WORSENED, OutcomeKind.NOW_INFEASIBLE),
            message=_outcome_message(kind, section_title, prior, result),
            projection=result,
        )


def recalculate(
    prior: Optional[ProjectionResult],
    base: PlanSnapshot,
    update: SectionUpdate,
    engine: Optional[ProjectionEngine] = None,
) -> Union[RecalculationOutcome, RecalculationFailure]:
    """Convenience wrapper around RecalculationOrchestrator.recalculate."""
    return RecalculationOrchestrator(engine).recalculate(prior, base, update)
