"""
HomeHorizon - Projection Engine
===============================
Core affordability simulation.

Given a plan snapshot, simulates house price, household cash flow,
savings and the largest serviceable loan year by year, and reports the
earliest year in which savings plus that loan cover the projected price.

The engine is a pure function of its inputs: no I/O, no clock, no state
kept between calls. Callers persist whatever it returns.
"""

from typing import List, Optional, Tuple

import pandas as pd

from plan_constants import MONTHS_PER_YEAR, PaymentMethod
from models import PlanSnapshot, ProjectionResult, SimulationParameters, YearPoint


class ComputationError(Exception):
    """Malformed engine configuration (loan terms, horizon, ratios) or numeric overflow."""


# =============================================================================
# LOAN MATH
# =============================================================================

def max_loan_principal(monthly_payment: float, annual_rate_pct: float, term_years: int) -> float:
    """
    Largest principal a fixed monthly payment can amortize.

    Standard fixed-rate annuity at annual_rate_pct / 12 per month over
    term_years * 12 payments. A zero rate reduces to payment * months.
    """
    if term_years <= 0:
        raise ComputationError(f"Loan term must be positive, got {term_years}")
    if annual_rate_pct < 0:
        raise ComputationError(f"Loan interest rate cannot be negative, got {annual_rate_pct}")
    if monthly_payment <= 0:
        return 0.0

    n_payments = term_years * MONTHS_PER_YEAR
    monthly_rate = annual_rate_pct / 100 / MONTHS_PER_YEAR
    if monthly_rate == 0:
        return monthly_payment * n_payments
    return monthly_payment * (1 - (1 + monthly_rate) ** (-n_payments)) / monthly_rate


# =============================================================================
# PROJECTION ENGINE
# =============================================================================

class ProjectionEngine:
    """
    Multi-year affordability simulation.

    Example:
        engine = ProjectionEngine()
        result = engine.project(snapshot)
        result.earliest_purchase_year  # years from now, or None
    """

    def __init__(self, params: Optional[SimulationParameters] = None):
        self.params = params or SimulationParameters()

    def project(self, snapshot: PlanSnapshot, horizon_years: Optional[int] = None) -> ProjectionResult:
        """
        Run the simulation from year 0 (now) to the horizon, inclusive.

        An infeasible plan is a valid answer: success stays True and
        earliest_purchase_year is None.

        Raises:
            ComputationError: non-positive loan term, negative interest
                rate, negative horizon, debt-service ratio outside (0, 1],
                or inputs so large the arithmetic overflows.
        """
        horizon = self.params.horizon_years if horizon_years is None else horizon_years
        self._check_configuration(snapshot, horizon)

        try:
            trajectory, earliest = self._simulate(snapshot, horizon)
        except ArithmeticError as exc:
            raise ComputationError(f"Projection arithmetic failed: {exc}") from exc

        target_year_feasible = None
        if snapshot.years_to_purchase <= horizon:
            target_year_feasible = trajectory[snapshot.years_to_purchase].feasible

        return ProjectionResult(
            success=True,
            earliest_purchase_year=earliest,
            horizon_years=horizon,
            target_year_feasible=target_year_feasible,
            trajectory=trajectory,
            message=self._build_message(snapshot, earliest, horizon),
        )

    def _simulate(self, snapshot: PlanSnapshot, horizon: int) -> Tuple[List[YearPoint], Optional[int]]:
        """Yearly trajectory and the first feasible year."""
        house_growth = 1 + snapshot.pct_house_growth / 100
        salary_growth = 1 + snapshot.pct_salary_growth / 100
        expense_growth = 1 + snapshot.pct_expense_growth / 100
        investment_return = snapshot.pct_investment_return / 100

        fixed_monthly_outflow = (
            snapshot.monthly_non_housing_debt
            + (snapshot.current_annual_insurance_premium + snapshot.current_annual_other_expenses)
            / MONTHS_PER_YEAR
        )

        trajectory: List[YearPoint] = []
        earliest: Optional[int] = None
        savings = 0.0

        for year in range(horizon + 1):
            # Step 1: House price
            price = snapshot.target_house_price_n0 * house_growth ** year

            # Step 2: Cash flow and savings
            income = snapshot.household_monthly_income * salary_growth ** year
            living = snapshot.monthly_living_expenses * expense_growth ** year
            net_cash_flow = income - living - fixed_monthly_outflow

            if year == 0:
                savings = snapshot.initial_savings
            else:
                savings = self._grow(savings, investment_return) + MONTHS_PER_YEAR * net_cash_flow
            savings += self._family_support_for_year(snapshot, year)

            # Step 3: Serviceable loan
            loan = self._max_loan_for_year(snapshot, income, net_cash_flow)

            # Step 4: Feasibility
            feasible = savings + loan + self.params.money_epsilon >= price
            if feasible and earliest is None:
                earliest = year

            # Step 5: Trajectory point
            trajectory.append(YearPoint(
                year=year,
                house_price=round(price, 2),
                savings=round(savings, 2),
                monthly_income=round(income, 2),
                monthly_net_cash_flow=round(net_cash_flow, 2),
                max_loan_principal=round(loan, 2),
                required_down_payment=round(max(0.0, price - loan), 2),
                feasible=feasible,
            ))

        return trajectory, earliest

    def _check_configuration(self, snapshot: PlanSnapshot, horizon: int) -> None:
        if snapshot.loan_term_years <= 0:
            raise ComputationError(f"Loan term must be positive, got {snapshot.loan_term_years}")
        if snapshot.loan_interest_rate < 0:
            raise ComputationError(
                f"Loan interest rate cannot be negative, got {snapshot.loan_interest_rate}"
            )
        if horizon < 0:
            raise ComputationError(f"Horizon cannot be negative, got {horizon}")
        ratio = self.params.debt_service_ratio
        if not 0 < ratio <= 1:
            raise ComputationError(f"Debt-service ratio must be in (0, 1], got {ratio}")

    @staticmethod
    def _grow(balance: float, rate: float) -> float:
        """Investment return applies to positive balances only."""
        if balance > 0:
            return balance * (1 + rate)
        return balance

    def _family_support_for_year(self, snapshot: PlanSnapshot, year: int) -> float:
        if not snapshot.has_family_support:
            return 0.0
        support = snapshot.family_support
        if self.params.family_support_recurring:
            return support.amount if year >= support.start_year else 0.0
        return support.amount if year == support.start_year else 0.0

    def _max_loan_for_year(self, snapshot: PlanSnapshot, monthly_income: float, net_cash_flow: float) -> float:
        """
        Loan principal serviceable this year.

        The payment is capped by the debt-service ceiling (existing debt
        counts against it) and by the monthly surplus left after expenses.
        """
        if snapshot.payment_method == PaymentMethod.CASH:
            return 0.0
        ceiling = self.params.debt_service_ratio * monthly_income - snapshot.monthly_non_housing_debt
        payment = max(0.0, min(ceiling, net_cash_flow))
        return max_loan_principal(payment, snapshot.loan_interest_rate, snapshot.loan_term_years)

    @staticmethod
    def _build_message(snapshot: PlanSnapshot, earliest: Optional[int], horizon: int) -> str:
        if earliest is None:
            return (
                f"No viable purchase year within the {horizon}-year horizon: savings plus the "
                f"largest serviceable loan stay below the projected house price."
            )

        when = "now" if earliest == 0 else f"in {earliest} year{'s' if earliest != 1 else ''}"
        target = snapshot.years_to_purchase
        if earliest < target:
            relation = f"{target - earliest} year(s) ahead of your target"
        elif earliest == target:
            relation = "right on your target"
        else:
            relation = f"{earliest - target} year(s) after your target"
        return f"You can afford the target house {when}, {relation}."


def project(
    snapshot: PlanSnapshot,
    horizon_years: Optional[int] = None,
    params: Optional[SimulationParameters] = None,
) -> ProjectionResult:
    """Convenience wrapper around ProjectionEngine.project."""
    return ProjectionEngine(params).project(snapshot, horizon_years)


def trajectory_to_dataframe(result: ProjectionResult) -> pd.DataFrame:
    """Trajectory as a DataFrame (camelCase columns) for charts and export."""
    records = [point.model_dump(by_alias=True) for point in result.trajectory]
    return pd.DataFrame(records)


# =============================================================================
# DEMO / TESTING
# =============================================================================

def demo():
    """Demonstrate the projection engine."""

    print("=" * 60)
    print("PROJECTION ENGINE DEMO")
    print("=" * 60)

    snapshot = PlanSnapshot(
        years_to_purchase=5,
        target_house_price_n0=3_000_000,
        monthly_living_expenses=10_000,
        user_monthly_income=30_000,
        initial_savings=200_000,
    )

    result = ProjectionEngine().project(snapshot)

    print("\n--- PLAN ---")
    print(f"Target price today: {snapshot.target_house_price_n0:,.0f}")
    print(f"Monthly income: {snapshot.user_monthly_income:,.0f}")
    print(f"Monthly living expenses: {snapshot.monthly_living_expenses:,.0f}")

    print("\n--- TRAJECTORY ---")
    frame = trajectory_to_dataframe(result)
    print(frame[["year", "housePrice", "savings", "maxLoanPrincipal", "feasible"]].head(10).to_string(index=False))

    print("\n--- RESULT ---")
    print(f"Earliest purchase year: {result.earliest_purchase_year}")
    print(result.message)


if __name__ == "__main__":
    demo()
