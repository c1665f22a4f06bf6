"""
HomeHorizon - Data Models
=========================
Pydantic models for plan snapshots, projection results and recalculation
outcomes.

These models serve as the contract between:
- Intake / section forms
- Snapshot assembly
- Projection engine
- API responses

Python attributes are snake_case; the JSON shape uses camelCase aliases.
Both spellings are accepted on input.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from plan_constants import (
    DEFAULT_ASSUMPTIONS,
    DEFAULT_DEBT_SERVICE_RATIO,
    DEFAULT_FAMILY_SUPPORT_RECURRING,
    DEFAULT_HORIZON_YEARS,
    DEFAULT_LOAN_TERM_YEARS,
    DEFAULT_PAYMENT_METHOD,
    MAX_ANNUAL_RATE_PCT,
    MAX_LOAN_TERM_YEARS,
    MIN_ANNUAL_RATE_PCT,
    MONEY_EPSILON,
    PaymentMethod,
)


class CamelModel(BaseModel):
    """Immutable base model with camelCase JSON aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def to_response(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# ENUMS
# =============================================================================

class SectionName(str, Enum):
    FAMILY_SUPPORT = "familySupport"
    SPENDING = "spending"
    ASSUMPTIONS = "assumptions"


class OutcomeKind(str, Enum):
    INITIAL = "initial"
    IMPROVED = "improved"
    UNCHANGED = "unchanged"
    WORSENED = "worsened"
    NOW_INFEASIBLE = "now_infeasible"


# =============================================================================
# CONFIGURATION VALUES
# =============================================================================

class AssumptionDefaults(CamelModel):
    """Growth, return and loan defaults applied when a plan is created."""
    pct_salary_growth: float = DEFAULT_ASSUMPTIONS["pct_salary_growth"]
    pct_house_growth: float = DEFAULT_ASSUMPTIONS["pct_house_growth"]
    pct_expense_growth: float = DEFAULT_ASSUMPTIONS["pct_expense_growth"]
    pct_investment_return: float = DEFAULT_ASSUMPTIONS["pct_investment_return"]
    loan_interest_rate: float = DEFAULT_ASSUMPTIONS["loan_interest_rate"]
    loan_term_years: int = DEFAULT_LOAN_TERM_YEARS
    payment_method: PaymentMethod = DEFAULT_PAYMENT_METHOD


class SimulationParameters(CamelModel):
    """
    Fixed engine parameters. Not user-supplied.

    debt_service_ratio: share of monthly household income that may go to
        debt payments (loan plus existing non-housing debt).
    family_support_recurring: when True the family support amount is paid
        every year from its start year; otherwise it is a one-time lump sum.
    """
    horizon_years: int = DEFAULT_HORIZON_YEARS
    debt_service_ratio: float = DEFAULT_DEBT_SERVICE_RATIO
    family_support_recurring: bool = DEFAULT_FAMILY_SUPPORT_RECURRING
    money_epsilon: float = MONEY_EPSILON


# =============================================================================
# PLAN SNAPSHOT - CORE MODEL
# =============================================================================

class FamilySupport(CamelModel):
    """Money a family contributes towards the purchase."""

    model_config = ConfigDict(extra="forbid", allow_inf_nan=False)

    amount: float = Field(default=0.0, ge=0)
    start_year: int = Field(default=0, ge=0, description="Years from now")


class PlanSnapshot(CamelModel):
    """
    Complete set of financial facts known about one household plan.

    Snapshots are never mutated; every section update produces a new one.
    Assumption rates and the loan term are bounded so the yearly
    compounding stays finite. Non-positive loan terms and negative
    interest rates are left to the engine, which reports them as
    configuration errors.
    """

    model_config = ConfigDict(extra="forbid", allow_inf_nan=False)

    years_to_purchase: int = Field(ge=0, description="Years from now until the target purchase")
    target_house_price_n0: float = Field(gt=0, alias="targetHousePriceN0")
    monthly_living_expenses: float = Field(ge=0)

    # Income
    user_monthly_income: float = Field(default=0.0, ge=0)
    initial_savings: float = Field(default=0.0, ge=0)
    has_co_applicant: bool = False
    co_applicant_monthly_income: float = Field(default=0.0, ge=0)

    # Family support
    has_family_support: bool = False
    family_support: FamilySupport = Field(default_factory=FamilySupport)

    # Spending
    monthly_non_housing_debt: float = Field(default=0.0, ge=0)
    current_annual_insurance_premium: float = Field(default=0.0, ge=0)
    current_annual_other_expenses: float = Field(default=0.0, ge=0)

    # Assumptions (percent per year)
    pct_salary_growth: float = Field(
        default=DEFAULT_ASSUMPTIONS["pct_salary_growth"], ge=MIN_ANNUAL_RATE_PCT, le=MAX_ANNUAL_RATE_PCT
    )
    pct_house_growth: float = Field(
        default=DEFAULT_ASSUMPTIONS["pct_house_growth"], ge=MIN_ANNUAL_RATE_PCT, le=MAX_ANNUAL_RATE_PCT
    )
    pct_expense_growth: float = Field(
        default=DEFAULT_ASSUMPTIONS["pct_expense_growth"], ge=MIN_ANNUAL_RATE_PCT, le=MAX_ANNUAL_RATE_PCT
    )
    pct_investment_return: float = Field(
        default=DEFAULT_ASSUMPTIONS["pct_investment_return"], ge=MIN_ANNUAL_RATE_PCT, le=MAX_ANNUAL_RATE_PCT
    )

    # Loan
    loan_interest_rate: float = Field(default=DEFAULT_ASSUMPTIONS["loan_interest_rate"], le=MAX_ANNUAL_RATE_PCT)
    loan_term_years: int = Field(default=DEFAULT_LOAN_TERM_YEARS, le=MAX_LOAN_TERM_YEARS)
    payment_method: PaymentMethod = DEFAULT_PAYMENT_METHOD

    # Descriptive only
    target_house_type: Optional[str] = None
    target_location: Optional[str] = None

    @property
    def household_monthly_income(self) -> float:
        """Income counted for saving and loan servicing."""
        if self.has_co_applicant:
            return self.user_monthly_income + self.co_applicant_monthly_income
        return self.user_monthly_income


# =============================================================================
# INTAKE & SECTION UPDATES
# =============================================================================

class QuickCheckIntake(CamelModel):
    """First answers collected before a plan exists."""
    target_year: int = Field(description="Calendar year of the intended purchase")
    target_house_price: float = Field(gt=0, description="Present-day price in billions")
    monthly_living_expenses: float = Field(ge=0)
    has_co_applicant: Optional[bool] = None
    initial_savings: Optional[float] = Field(default=None, ge=0)
    user_monthly_income: Optional[float] = Field(default=None, ge=0)
    target_house_type: Optional[str] = None
    target_location: Optional[str] = None


class SectionUpdate(CamelModel):
    """
    A partial set of answers for one onboarding section.

    The section name labels the update for messages and history only. Data
    may carry any PlanSnapshot field regardless of section, so a client can
    correct an earlier answer (income, price) from whichever section it is
    on; unknown fields are still rejected by the merge.
    """
    section: SectionName
    data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('section', mode='before')
    @classmethod
    def normalize_section(cls, v):
        if isinstance(v, SectionName):
            return v
        v_lower = str(v).lower().replace("-", "").replace("_", "").replace(" ", "")
        mapping = {
            "familysupport": SectionName.FAMILY_SUPPORT,
            "family": SectionName.FAMILY_SUPPORT,
            "spending": SectionName.SPENDING,
            "assumptions": SectionName.ASSUMPTIONS,
            "assumption": SectionName.ASSUMPTIONS,
        }
        return mapping.get(v_lower, v)


class FieldError(CamelModel):
    """One field-level validation problem."""
    field: str
    message: str


# =============================================================================
# PROJECTION RESULTS
# =============================================================================

class YearPoint(CamelModel):
    """State of the plan at one simulated year."""
    year: int
    house_price: float
    savings: float
    monthly_income: float
    monthly_net_cash_flow: float
    max_loan_principal: float
    required_down_payment: float
    feasible: bool


class ProjectionResult(CamelModel):
    """Output of one engine run. Holds no timestamps or counters."""
    success: bool = True
    earliest_purchase_year: Optional[int] = Field(
        default=None,
        description="Years from now; None when no year within the horizon is viable",
    )
    horizon_years: int
    target_year_feasible: Optional[bool] = None
    trajectory: List[YearPoint] = Field(default_factory=list)
    message: str


# =============================================================================
# RECALCULATION OUTCOMES
# =============================================================================

class RecalculationOutcome(CamelModel):
    """Successful recalculation compared against the previous result."""
    success: bool = True
    section: SectionName
    outcome: OutcomeKind
    plan: PlanSnapshot
    earliest_purchase_year: Optional[int] = None
    previous_purchase_year: Optional[int] = None
    has_worsened: bool
    message: str
    projection: ProjectionResult


class RecalculationFailure(CamelModel):
    """Rejected recalculation. `plan` is the untouched base snapshot."""
    success: bool = False
    section: Optional[SectionName] = None
    plan: PlanSnapshot
    earliest_purchase_year: Optional[int] = None
    has_worsened: bool = False
    message: str
    errors: List[FieldError] = Field(default_factory=list)
