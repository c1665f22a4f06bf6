"""
HomeHorizon - Plan Constants
============================
Default assumptions and fixed simulation parameters.

These are the ONLY source of truth for default growth rates, loan terms
and affordability limits. Snapshots receive the defaults explicitly at
construction time; nothing here is mutated at runtime.

All monetary values in a plan share one fixed unit; QuickCheck collects
house prices in billions and everything else in that unit.
"""

from enum import Enum
from typing import Dict


# =============================================================================
# PAYMENT METHOD ENUM
# =============================================================================

class PaymentMethod(str, Enum):
    BANK_LOAN = "BankLoan"
    CASH = "Cash"


# =============================================================================
# DEFAULT ASSUMPTIONS (percent per year unless noted)
# =============================================================================

DEFAULT_ASSUMPTIONS: Dict[str, float] = {
    "pct_salary_growth": 7.0,
    "pct_house_growth": 10.0,
    "pct_expense_growth": 4.0,
    "pct_investment_return": 11.0,
    "loan_interest_rate": 11.0,
}

DEFAULT_LOAN_TERM_YEARS = 25
DEFAULT_PAYMENT_METHOD = PaymentMethod.BANK_LOAN

# Accepted ranges for user-supplied assumptions
MIN_ANNUAL_RATE_PCT = -100.0
MAX_ANNUAL_RATE_PCT = 100.0
MAX_LOAN_TERM_YEARS = 50


# =============================================================================
# SIMULATION PARAMETERS
# =============================================================================

DEFAULT_HORIZON_YEARS = 30

# Monthly loan payment may not exceed this share of monthly household income
# (non-housing debt payments count against the same ceiling).
DEFAULT_DEBT_SERVICE_RATIO = 0.5

# Family support arrives once at its start year unless configured otherwise.
DEFAULT_FAMILY_SUPPORT_RECURRING = False

# Boundary tolerance for the feasibility test, in snapshot units.
MONEY_EPSILON = 0.01

MONTHS_PER_YEAR = 12


# =============================================================================
# INTAKE UNIT CONVERSION
# =============================================================================

# Billions -> snapshot unit.
PRICE_INPUT_MULTIPLIER = 1000


# =============================================================================
# SECTION NAMES
# =============================================================================

SECTION_TITLES: Dict[str, str] = {
    "familySupport": "Family support",
    "spending": "Outgoing cash flow",
    "assumptions": "Assumptions",
}


def get_defaults_summary() -> Dict[str, object]:
    """Defaults and fixed parameters in JSON-friendly form."""
    return {
        "assumptions": {
            "pctSalaryGrowth": DEFAULT_ASSUMPTIONS["pct_salary_growth"],
            "pctHouseGrowth": DEFAULT_ASSUMPTIONS["pct_house_growth"],
            "pctExpenseGrowth": DEFAULT_ASSUMPTIONS["pct_expense_growth"],
            "pctInvestmentReturn": DEFAULT_ASSUMPTIONS["pct_investment_return"],
            "loanInterestRate": DEFAULT_ASSUMPTIONS["loan_interest_rate"],
            "loanTermYears": DEFAULT_LOAN_TERM_YEARS,
            "paymentMethod": DEFAULT_PAYMENT_METHOD.value,
        },
        "simulation": {
            "horizonYears": DEFAULT_HORIZON_YEARS,
            "debtServiceRatio": DEFAULT_DEBT_SERVICE_RATIO,
            "familySupportRecurring": DEFAULT_FAMILY_SUPPORT_RECURRING,
            "moneyEpsilon": MONEY_EPSILON,
        },
    }
