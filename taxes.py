"""
Australian resident income tax, Medicare levy, LITO, HECS/HELP and super
guarantee for FY 2024-25.

Goal: realistic take-home figures for planning, not a full tax return.
Brackets are nominal; the simulation holds them fixed rather than indexing.
"""

import math
from dataclasses import dataclass
from typing import List, Optional

import numpy as np


@dataclass(frozen=True)
class Band:
    up_to: float  # upper threshold (inclusive) on taxable income; math.inf for top
    rate: float   # marginal rate, e.g., 0.30 for 30%


@dataclass(frozen=True)
class TaxSystem:
    name: str
    bands: List[Band]
    levy_rate: float = 0.0
    levy_threshold: float = 0.0
    levy_shade_in: float = 0.0       # cents per dollar above the threshold
    offset_max: float = 0.0
    offset_threshold: float = 0.0
    offset_phase_out: float = 0.0

    @property
    def tax_free_threshold(self) -> float:
        first = self.bands[0]
        return first.up_to if first.rate == 0 else 0.0

    @property
    def top_rate(self) -> float:
        return self.bands[-1].rate


def _au():
    # 2024-25 resident rates (stage 3), Medicare 2%, LITO 700
    return TaxSystem(
        name="Australia (resident, 2024-25)",
        bands=[
            Band(18_200, 0.0),
            Band(45_000, 0.16),
            Band(135_000, 0.30),
            Band(190_000, 0.37),
            Band(math.inf, 0.45),
        ],
        levy_rate=0.02,
        levy_threshold=29_207,
        levy_shade_in=0.10,
        offset_max=700,
        offset_threshold=37_500,
        offset_phase_out=0.05,
    )


AU_2024_25 = _au()

# HECS/HELP 2024-25: a flat rate applied to the *whole* income once it enters a band
HECS_THRESHOLDS = np.array([
    54_435, 62_850, 66_600, 70_618, 74_855, 79_346, 84_107, 89_154,
    94_504, 100_174, 106_184, 112_556, 119_311, 126_476, 134_056,
    142_097, 150_626,
])
HECS_RATES = np.array([
    0.0, 0.01, 0.02, 0.025, 0.03, 0.035, 0.04, 0.045, 0.05,
    0.055, 0.06, 0.065, 0.07, 0.075, 0.08, 0.085, 0.09, 0.10,
])


@dataclass(frozen=True)
class TaxBreakdown:
    gross_income: float
    taxable_income: float
    income_tax: float
    medicare_levy: float
    low_income_offset: float
    total_tax: float
    net_income: float
    monthly_net: float
    effective_tax_rate: float


@dataclass(frozen=True)
class MarginalBracket:
    lower: float
    upper: float
    marginal_rate: float
    effective_rate: float

    @property
    def range(self) -> str:
        if math.isinf(self.upper):
            return f"${self.lower:,.0f}+"
        return f"${self.lower:,.0f} - ${self.upper:,.0f}"


@dataclass(frozen=True)
class ContributionSplit:
    mandatory: float
    salary_sacrifice: float
    deductible_sacrifice: float
    excess: float
    concessional: float
    cap_usage: float
    excess_sacrifice: float = 0.0   # already inside taxable income
    excess_mandatory: float = 0.0   # employer money over the cap, never taxed as salary


def income_tax(taxable: float, sys: TaxSystem = AU_2024_25) -> float:
    if taxable <= 0:
        return 0.0
    tax = 0.0
    last = 0.0
    for b in sys.bands:
        width = max(0.0, min(taxable, b.up_to) - last)
        tax += width * b.rate
        last = b.up_to
        if taxable <= b.up_to:
            break
    return tax


def medicare_levy(income: float, sys: TaxSystem = AU_2024_25) -> float:
    if income <= sys.levy_threshold:
        return 0.0
    full = income * sys.levy_rate
    if sys.levy_shade_in <= 0:
        return full
    return min(full, (income - sys.levy_threshold) * sys.levy_shade_in)


def low_income_offset(taxable: float, sys: TaxSystem = AU_2024_25) -> float:
    if taxable <= sys.offset_threshold:
        return sys.offset_max
    return max(0.0, sys.offset_max - (taxable - sys.offset_threshold) * sys.offset_phase_out)


def compute_tax_breakdown(annual_gross_income: float, annual_pretax_super: float = 0.0,
                          sys: TaxSystem = AU_2024_25) -> TaxBreakdown:
    gross = max(0.0, float(annual_gross_income or 0.0))
    pretax = max(0.0, float(annual_pretax_super or 0.0))
    taxable = max(0.0, gross - pretax)

    raw_tax = income_tax(taxable, sys)
    # LITO is non-refundable and only offsets income tax, never the levy
    offset = min(low_income_offset(taxable, sys), raw_tax)
    # levy is assessed on gross but can't take more than is left after sacrifice
    levy = min(medicare_levy(gross, sys), taxable - (raw_tax - offset))
    total = max(0.0, raw_tax - offset + levy)

    net = taxable - total
    return TaxBreakdown(
        gross_income=gross,
        taxable_income=taxable,
        income_tax=raw_tax,
        medicare_levy=levy,
        low_income_offset=offset,
        total_tax=total,
        net_income=net,
        monthly_net=net / 12.0,
        effective_tax_rate=(total / gross) if gross > 0 else 0.0,
    )


def get_marginal_bracket(income: float, sys: TaxSystem = AU_2024_25) -> Optional[MarginalBracket]:
    """Bracket containing `income`, or None at or below the tax-free threshold."""
    if income is None or income <= sys.tax_free_threshold:
        return None
    lower = 0.0
    for b in sys.bands:
        if income <= b.up_to:
            return MarginalBracket(
                lower=lower + 1 if lower > 0 else 0.0,
                upper=b.up_to,
                marginal_rate=b.rate,
                effective_rate=compute_tax_breakdown(income, 0.0, sys).effective_tax_rate,
            )
        lower = b.up_to
    return None


def compute_mandatory_contribution(annual_gross_income: float, rate: float) -> float:
    """Employer super guarantee; no cap here, the simulation enforces it."""
    if not annual_gross_income or annual_gross_income <= 0 or rate <= 0:
        return 0.0
    return annual_gross_income * rate


def student_loan_repayment(income: float) -> float:
    if income is None or income <= 0:
        return 0.0
    rate = HECS_RATES[np.searchsorted(HECS_THRESHOLDS, income, side="right")]
    return float(income * rate)


def concessional_split(annual_salary: float, annual_sacrifice: float, sg_rate: float,
                       cap: float) -> ContributionSplit:
    """
    Split a year's before-tax contributions around the concessional cap.

    Sacrifice can't exceed the salary it comes out of. Sacrifice over the
    cap stays in taxable income; employer money over the cap is reported
    separately so the caller can tax it at the top rate.
    """
    mandatory = compute_mandatory_contribution(annual_salary, sg_rate)
    sacrifice = min(max(0.0, annual_sacrifice or 0.0), max(0.0, annual_salary or 0.0))
    total = mandatory + sacrifice
    excess = max(0.0, total - cap)
    deductible = min(sacrifice, max(0.0, cap - mandatory))
    excess_sacrifice = sacrifice - deductible
    return ContributionSplit(
        mandatory=mandatory,
        salary_sacrifice=sacrifice,
        deductible_sacrifice=deductible,
        excess=excess,
        concessional=total - excess,
        cap_usage=(total / cap) if cap > 0 else 0.0,
        excess_sacrifice=excess_sacrifice,
        excess_mandatory=max(0.0, excess - excess_sacrifice),
    )


def net_from_gross(gross: float, sys: TaxSystem = AU_2024_25) -> float:
    return compute_tax_breakdown(gross, 0.0, sys).net_income


def gross_for_net(net_target: float, sys: TaxSystem = AU_2024_25) -> float:
    if net_target <= 0:
        return 0.0
    lo, hi = 0.0, 20_000_000.0
    for _ in range(70):
        mid = (lo + hi) / 2.0
        if net_from_gross(mid, sys) < net_target:
            lo = mid
        else:
            hi = mid
    return hi
