"""
Loan maths, per-property analytics and a bank-style borrowing capacity test.

Interest rates here are percent per annum (6.5 means 6.5%), the way lenders
quote them and the way the property forms collect them.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional, Tuple

import numpy as np
from dateutil.relativedelta import relativedelta

from config import DEFAULTS
from models import LoanType, Property
from taxes import compute_tax_breakdown, student_loan_repayment

_REPAYMENT_TRIGGERS = ("loan_balance", "interest_rate", "remaining_term_years")


def compute_amortized_payment(principal: float, annual_rate_percent: float, term_years: float,
                              loan_type: LoanType = LoanType.PRINCIPAL_AND_INTEREST) -> float:
    if principal is None or principal <= 0:
        return 0.0
    monthly_rate = (annual_rate_percent or 0.0) / 100.0 / 12.0
    if loan_type == LoanType.INTEREST_ONLY:
        return principal * monthly_rate
    months = (term_years or 0) * 12
    if months <= 0:
        return principal  # term expired: the whole balance is due
    if monthly_rate == 0:
        return principal / months
    return principal * monthly_rate / (1 - (1 + monthly_rate) ** (-months))


def amortize_year(balance: float, annual_rate_percent: float, monthly_payment: float,
                  months: int = 12) -> Tuple[float, float, float]:
    """Run `months` payments. Returns (new_balance, principal_paid, interest_paid)."""
    monthly_rate = (annual_rate_percent or 0.0) / 100.0 / 12.0
    principal_paid = 0.0
    interest_paid = 0.0
    for _ in range(months):
        if balance <= 0:
            break
        interest = balance * monthly_rate
        payment = min(monthly_payment, balance + interest)
        interest_paid += interest
        principal_paid += payment - interest
        balance = balance + interest - payment
    return max(0.0, balance), principal_paid, interest_paid


def effective_monthly_repayment(prop: Property) -> float:
    if prop.monthly_repayment is not None:
        return prop.monthly_repayment
    return compute_amortized_payment(prop.loan_balance, prop.interest_rate,
                                     prop.remaining_term_years, prop.loan_type)


def update_property(prop: Property, **changes) -> Property:
    """
    Apply field edits. The repayment is re-derived when principal, rate or
    term change, unless the same edit also sets the repayment explicitly.
    A user override survives edits to any other field.
    """
    data = prop.model_dump()
    data.update(changes)
    if "monthly_repayment" not in changes and any(k in changes for k in _REPAYMENT_TRIGGERS):
        data["monthly_repayment"] = compute_amortized_payment(
            data["loan_balance"], data["interest_rate"],
            data["remaining_term_years"], LoanType(data["loan_type"]),
        )
    return Property.model_validate(data)


@dataclass(frozen=True)
class PropertyMetrics:
    equity: float
    loan_to_value: float
    gross_yield: float
    net_yield: float
    annual_rent: float
    annual_expenses: float
    annual_interest: float
    monthly_repayment: float
    monthly_cash_flow: float


def annual_running_costs(prop: Property, annual_rent: float) -> float:
    if not prop.is_investment:
        return 0.0
    mgmt = (prop.management_fee_percent or 0.0) / 100.0 * annual_rent
    vacancy = (prop.vacancy_weeks_per_year or 0.0) / 52.0 * annual_rent
    fixed = (prop.annual_council_rates or 0.0) + (prop.annual_insurance or 0.0) + (prop.annual_maintenance or 0.0)
    return mgmt + vacancy + fixed


def annual_rent(prop: Property) -> float:
    if not prop.is_investment:
        return 0.0
    return (prop.weekly_rent or 0.0) * 52.0


def compute_property_metrics(prop: Property) -> PropertyMetrics:
    value = prop.current_value
    rent = annual_rent(prop)
    expenses = annual_running_costs(prop, rent)
    interest = prop.loan_balance * prop.interest_rate / 100.0

    if prop.is_investment:
        cash_flow = (rent - expenses - interest) / 12.0
    else:
        cash_flow = 0.0

    return PropertyMetrics(
        equity=max(0.0, value - prop.loan_balance),
        loan_to_value=(prop.loan_balance / value) if value > 0 else 0.0,
        gross_yield=(rent / value) if value > 0 else 0.0,
        net_yield=((rent - expenses) / value) if value > 0 else 0.0,
        annual_rent=rent,
        annual_expenses=expenses,
        annual_interest=interest,
        monthly_repayment=effective_monthly_repayment(prop),
        monthly_cash_flow=cash_flow,
    )


def years_held(purchase_date: date, today: Optional[date] = None) -> float:
    held = relativedelta(today or date.today(), purchase_date)
    return held.years + held.months / 12.0 + held.days / 365.25


def property_growth_rate(prop: Property, default: float, bounds: Tuple[float, float],
                         today: Optional[date] = None) -> float:
    """Custom override wins unbounded; otherwise history-implied CAGR, else default, clamped."""
    if prop.custom_annual_growth_rate is not None:
        return prop.custom_annual_growth_rate
    lo, hi = bounds
    rate = default
    if prop.purchase_date and prop.purchase_price and prop.current_value > 0:
        years = years_held(prop.purchase_date, today)
        if years >= 1:
            rate = (prop.current_value / prop.purchase_price) ** (1.0 / years) - 1.0
    return float(np.clip(rate, lo, hi))


# ---------- Serviceability ----------
@dataclass(frozen=True)
class ServiceabilityRules:
    rental_income_haircut: float = DEFAULTS["rental_income_haircut"]
    max_debt_service_ratio: float = DEFAULTS["max_debt_service_ratio"]
    assessment_rate: float = DEFAULTS["assessment_rate"]
    serviceability_buffer: float = DEFAULTS["serviceability_buffer"]
    term_years: int = DEFAULTS["serviceability_term_years"]
    dti_multiple: float = DEFAULTS["dti_multiple"]
    max_lvr: float = DEFAULTS["max_lvr"]

    @property
    def stressed_rate(self) -> float:
        return self.assessment_rate + self.serviceability_buffer


@dataclass(frozen=True)
class Household:
    gross_annual_income: Optional[float] = None
    monthly_living_expenses: Optional[float] = None
    monthly_rent: float = 0.0
    has_student_loan: bool = False


@dataclass(frozen=True)
class BorrowingCapacityResult:
    max_loan: float
    max_purchase_price: float
    monthly_capacity: float
    net_monthly_income: float
    monthly_outgoings: float
    stressed_rate: float
    dti_ceiling: float
    limited_by: str
    notes: list = field(default_factory=list)


def compute_borrowing_capacity(household: Optional[Household], existing_properties: Iterable[Property] = (),
                               rules: ServiceabilityRules = ServiceabilityRules()) -> Optional[BorrowingCapacityResult]:
    """Returns None when income or living expenses are missing."""
    if household is None or household.gross_annual_income is None or household.monthly_living_expenses is None:
        return None
    props = list(existing_properties or [])
    gross = max(0.0, household.gross_annual_income)

    gross_m = gross / 12.0
    tax_m = compute_tax_breakdown(gross).total_tax / 12.0
    hecs_m = student_loan_repayment(gross) / 12.0 if household.has_student_loan else 0.0
    rent_in_m = sum(annual_rent(p) for p in props) / 12.0 * rules.rental_income_haircut
    net_m = gross_m - tax_m - hecs_m + rent_in_m

    rent_out = max(0.0, household.monthly_rent or 0.0)
    existing_m = sum(effective_monthly_repayment(p) for p in props)
    outgoings = household.monthly_living_expenses + rent_out + existing_m

    # rent stops once the new loan is drawn, so it is not held against capacity
    capacity_m = net_m * rules.max_debt_service_ratio - (outgoings - rent_out)

    r = rules.stressed_rate / 100.0 / 12.0
    n = rules.term_years * 12
    if capacity_m <= 0:
        serviceable = 0.0
    elif r == 0:
        serviceable = capacity_m * n
    else:
        serviceable = capacity_m * (1 - (1 + r) ** (-n)) / r

    existing_debt = sum(p.loan_balance for p in props)
    dti = max(0.0, gross * rules.dti_multiple - existing_debt)

    notes = []
    if capacity_m <= 0:
        notes.append("Outgoings exceed the serviceable share of income.")
    limited_by = "serviceability" if serviceable <= dti else "debt-to-income"
    max_loan = max(0.0, min(serviceable, dti))
    return BorrowingCapacityResult(
        max_loan=max_loan,
        max_purchase_price=(max_loan / rules.max_lvr) if rules.max_lvr > 0 else 0.0,
        monthly_capacity=max(0.0, capacity_m),
        net_monthly_income=net_m,
        monthly_outgoings=outgoings,
        stressed_rate=rules.stressed_rate,
        dti_ceiling=dti,
        limited_by=limited_by,
        notes=notes,
    )


def household_from_snapshot(snapshot) -> Household:
    ie = snapshot.income_expense
    return Household(
        gross_annual_income=ie.annual_salary,
        monthly_living_expenses=ie.monthly_expenses,
        monthly_rent=ie.effective_monthly_rent,
        has_student_loan=ie.has_student_loan,
    )
