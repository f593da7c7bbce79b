"""
Retirement-readiness metrics and ranked action items.

Readiness is judged at the retirement milestone: the closing balances of
the last working year, i.e. what the person actually retires with.
"""

from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional

from pydantic.alias_generators import to_camel

from config import DEFAULTS
from loans import compute_property_metrics
from models import load_settings, load_snapshot
from simulation import SimulationResult
from taxes import concessional_split

# Display order of action items. Ties never depend on dict/set ordering.
PRIORITY = (
    "increase_savings",
    "rebuild_buffer",
    "use_concessional_cap",
    "fund_bridge_years",
    "review_property_cash_flow",
    "reduce_lvr",
    "retire_later",
    "maintain_buffer",
)


@dataclass
class Metrics:
    can_retire: bool
    final_assets: float
    final_monthly_income: float
    final_annual_income: float
    required_annual_expenses: float
    income_replacement_percent: float
    shortfall: float
    asset_breakdown: Dict[str, float]
    projected_retirement_age: int
    years_to_retirement: int
    assets_at_life_expectancy: float
    depletion_age: Optional[int]
    cap_usage_percent: float
    bridge_years: int

    def to_json_dict(self) -> dict:
        return {to_camel(k): v for k, v in asdict(self).items()}


@dataclass
class Recommendation:
    key: str
    title: str
    detail: str
    rank: int = field(default=0)


def _annuity_factor(rate: float, years: int) -> float:
    # contributions made at the start of each year and grown that same year
    if years <= 0:
        return 0.0
    if rate == 0:
        return float(years)
    return ((1 + rate) ** years - 1) / rate * (1 + rate)


def summarize(result: SimulationResult, snapshot, settings=None) -> Metrics:
    """
    Headline metrics read at the retirement milestone, i.e. the closing
    balances of the last working year (`result.retirement_index`), not the
    last year of the series. The value left at life expectancy is reported
    separately as `assets_at_life_expectancy`.
    """
    snap = load_snapshot(snapshot)
    cfg = load_settings(settings)
    ie = snap.income_expense
    person = snap.person

    idx = result.retirement_index
    years_to_retirement = person.retirement_age - person.current_age
    final_assets = result.total_assets[idx]
    annual_income = final_assets * cfg.safe_withdrawal_rate

    current_annual_expenses = 12.0 * (ie.monthly_expenses + ie.effective_monthly_rent)
    required = current_annual_expenses * (1 + snap.assumptions.inflation_rate) ** years_to_retirement

    depletion_age = None
    for age, short, retired in zip(result.ages, result.shortfall, result.retired):
        if retired and short > 0:
            depletion_age = age
            break

    return Metrics(
        can_retire=annual_income >= required,
        final_assets=final_assets,
        final_monthly_income=annual_income / 12.0,
        final_annual_income=annual_income,
        required_annual_expenses=required,
        income_replacement_percent=(annual_income / current_annual_expenses * 100.0)
        if current_annual_expenses > 0 else 0.0,
        shortfall=max(0.0, required - annual_income),
        asset_breakdown={
            "super": result.super_balance[idx],
            "etf": result.etf_portfolio[idx],
            "property": result.property_equity[idx],
            "buffer": result.buffer_balance[idx],
        },
        projected_retirement_age=person.retirement_age,
        years_to_retirement=years_to_retirement,
        assets_at_life_expectancy=result.total_assets[-1],
        depletion_age=depletion_age,
        cap_usage_percent=result.cap_usage * 100.0,
        bridge_years=max(0, cfg.preservation_age - person.retirement_age),
    )


def extra_monthly_saving(metrics: Metrics, snapshot, settings=None) -> float:
    """Extra monthly ETF saving that would close the income shortfall."""
    snap = load_snapshot(snapshot)
    cfg = load_settings(settings)
    if metrics.shortfall <= 0 or cfg.safe_withdrawal_rate <= 0:
        return 0.0
    port = snap.portfolio
    rate = port.expected_return_override if port.expected_return_override is not None \
        else snap.assumptions.etf_return(port.allocation_preset)
    factor = _annuity_factor(rate, metrics.years_to_retirement)
    if factor <= 0:
        return 0.0
    capital_gap = metrics.shortfall / cfg.safe_withdrawal_rate
    return capital_gap / factor / 12.0


def recommend(metrics: Metrics, result: SimulationResult, snapshot, settings=None) -> List[Recommendation]:
    snap = load_snapshot(snapshot)
    cfg = load_settings(settings)
    ie = snap.income_expense
    found = {}

    if metrics.shortfall > 0:
        monthly = extra_monthly_saving(metrics, snap, cfg)
        found["increase_savings"] = (
            "Increase your savings rate",
            f"You have a ${metrics.shortfall:,.0f} annual income shortfall. "
            f"About ${monthly:,.0f}/month more invested would close it.",
        )

    target = snap.buffer.target_months * ie.monthly_expenses
    if snap.buffer.current_balance < target or any(result.dca_paused):
        found["rebuild_buffer"] = (
            "Rebuild your emergency fund",
            f"Your buffer is below {snap.buffer.target_months:g} months of expenses "
            f"(${target:,.0f}). Investing pauses until it is refilled.",
        )

    split = concessional_split(ie.annual_salary, snap.superannuation.monthly_salary_sacrifice * 12.0,
                               snap.superannuation.guarantee_rate, cfg.concessional_cap)
    headroom = max(0.0, cfg.concessional_cap - split.mandatory - split.salary_sacrifice)
    if headroom > 0:
        found["use_concessional_cap"] = (
            "Use your before-tax super cap",
            f"${headroom:,.0f} of this year's ${cfg.concessional_cap:,.0f} concessional cap is unused "
            f"(about ${headroom / 12:,.0f}/month of salary sacrifice).",
        )

    if metrics.bridge_years > 0:
        liquid = metrics.asset_breakdown["etf"] + metrics.asset_breakdown["buffer"]
        need = metrics.required_annual_expenses * metrics.bridge_years
        if liquid < need:
            found["fund_bridge_years"] = (
                "Fund the years before super unlocks",
                f"Super is locked until {cfg.preservation_age}. Your {metrics.bridge_years} bridge years need "
                f"about ${need:,.0f} outside super; you are projected to have ${liquid:,.0f}.",
            )

    negative = [p.name for p in snap.properties
                if p.is_investment and compute_property_metrics(p).monthly_cash_flow < 0]
    if negative:
        found["review_property_cash_flow"] = (
            "Review negatively geared property",
            f"{', '.join(negative)} costs you money each month after interest and expenses.",
        )

    high_lvr = [p.name for p in snap.properties
                if compute_property_metrics(p).loan_to_value > DEFAULTS["max_lvr"]]
    if high_lvr:
        found["reduce_lvr"] = (
            "Reduce loan-to-value",
            f"{', '.join(high_lvr)} is above {DEFAULTS['max_lvr']:.0%} LVR; extra repayments cut risk and interest.",
        )

    if metrics.shortfall > 0 and snap.person.retirement_age < snap.person.life_expectancy_age:
        found["retire_later"] = (
            "Consider retiring a little later",
            "Each extra working year adds contributions and growth and shortens retirement.",
        )

    if "rebuild_buffer" not in found:
        found["maintain_buffer"] = (
            "Maintain your emergency fund",
            "Keep 3-6 months of expenses in cash so a bad year never forces you to sell investments.",
        )

    out = []
    for key in PRIORITY:
        if key in found:
            title, detail = found[key]
            out.append(Recommendation(key=key, title=title, detail=detail, rank=len(out) + 1))
    return out
