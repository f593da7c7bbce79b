import logging
import time
from dataclasses import asdict, dataclass, field
from typing import List, Optional

import pandas as pd
from pydantic.alias_generators import to_camel

from drawdown import planned_withdrawal
from loans import (
    amortize_year,
    annual_rent,
    annual_running_costs,
    compute_amortized_payment,
    property_growth_rate,
)
from models import (
    FinancialSnapshot,
    IOExpiryPolicy,
    LoanType,
    PlannerSettings,
    Property,
    PropertyIntent,
    load_settings,
    load_snapshot,
)
from taxes import AU_2024_25, compute_tax_breakdown, concessional_split, student_loan_repayment

logger = logging.getLogger(__name__)


@dataclass
class SimulationResult:
    # One entry per simulated year, closing balances (nominal $)
    years: List[int] = field(default_factory=list)
    ages: List[int] = field(default_factory=list)
    super_balance: List[float] = field(default_factory=list)
    etf_portfolio: List[float] = field(default_factory=list)
    property_value: List[float] = field(default_factory=list)
    property_equity: List[float] = field(default_factory=list)
    property_debt: List[float] = field(default_factory=list)
    buffer_balance: List[float] = field(default_factory=list)
    total_assets: List[float] = field(default_factory=list)

    salary: List[float] = field(default_factory=list)
    super_contributions: List[float] = field(default_factory=list)
    etf_contributions: List[float] = field(default_factory=list)
    buffer_contributions: List[float] = field(default_factory=list)
    withdrawals: List[float] = field(default_factory=list)
    shortfall: List[float] = field(default_factory=list)
    dca_paused: List[bool] = field(default_factory=list)
    retired: List[bool] = field(default_factory=list)

    current_age: int = 0
    retirement_age: int = 0
    cap_usage: float = 0.0

    def index_of_age(self, age: int) -> Optional[int]:
        i = age - self.current_age
        return i if 0 <= i < len(self.ages) else None

    @property
    def retirement_index(self) -> int:
        """Closing balances of the last working year: what you retire with."""
        return max(0, min(len(self.ages) - 1, self.retirement_age - 1 - self.current_age))

    def to_frame(self) -> pd.DataFrame:
        data = asdict(self)
        cols = {k: v for k, v in data.items() if isinstance(v, list)}
        return pd.DataFrame(cols)

    def to_json_dict(self) -> dict:
        return {to_camel(k): v for k, v in asdict(self).items()}


@dataclass
class _PropertyState:
    source: Property
    growth: float
    value: float
    balance: float
    rate: float
    loan_type: LoanType
    remaining_term: float
    monthly_payment: float
    io_default_payment: bool
    join_index: int
    joined: bool = False


def _join_index(prop: Property, start_year: int) -> int:
    if prop.intent == PropertyIntent.PLANNED and prop.purchase_date is not None:
        return max(0, prop.purchase_date.year - start_year)
    return 0


def _init_property(prop: Property, snap: FinancialSnapshot, cfg: PlannerSettings, start_year: int) -> _PropertyState:
    growth = property_growth_rate(prop, snap.assumptions.property_growth_default, cfg.property_growth_bounds)
    payment = prop.monthly_repayment
    if payment is None:
        payment = compute_amortized_payment(prop.loan_balance, prop.interest_rate,
                                            prop.remaining_term_years, prop.loan_type)
    return _PropertyState(
        source=prop,
        growth=growth,
        value=prop.current_value,
        balance=prop.loan_balance,
        rate=prop.interest_rate,
        loan_type=prop.loan_type,
        remaining_term=prop.remaining_term_years,
        monthly_payment=payment,
        io_default_payment=prop.loan_type == LoanType.INTEREST_ONLY and prop.monthly_repayment is None,
        join_index=_join_index(prop, start_year),
    )


def _convert_to_pi(ps: _PropertyState, term_years: int):
    ps.loan_type = LoanType.PRINCIPAL_AND_INTEREST
    ps.remaining_term = term_years
    ps.io_default_payment = False
    ps.monthly_payment = compute_amortized_payment(ps.balance, ps.rate, term_years, ps.loan_type)


def _property_year(ps: _PropertyState):
    """Returns (new_balance, cash repaid this year). Pure: does not touch ps."""
    if ps.balance <= 0:
        return 0.0, 0.0
    if ps.loan_type == LoanType.INTEREST_ONLY and ps.io_default_payment:
        interest = ps.balance * ps.rate / 100.0
        return ps.balance, interest
    payment = ps.monthly_payment
    if ps.loan_type == LoanType.PRINCIPAL_AND_INTEREST and ps.remaining_term <= 0:
        payment = ps.balance * (1 + ps.rate / 100.0 / 12.0)  # term over: clear it
    new_balance, principal, interest = amortize_year(ps.balance, ps.rate, payment)
    return new_balance, principal + interest


def _draw(amount: float, pools: dict, order) -> float:
    """Take `amount` from pools in order, never below zero. Returns what could not be funded."""
    remaining = amount
    for name in order:
        if remaining <= 0:
            break
        take = min(pools[name], remaining)
        pools[name] -= take
        remaining -= take
    return max(0.0, remaining)


def run_simulation(snapshot, settings=None) -> SimulationResult:
    """
    Deterministic yearly projection from current age to life expectancy
    (inclusive). Input is validated up front; an invalid snapshot raises
    InvalidSnapshotError before any year is simulated.
    """
    snap = load_snapshot(snapshot)
    cfg = load_settings(settings)
    t0 = time.perf_counter()

    person = snap.person
    ie = snap.income_expense
    sup = snap.superannuation
    port = snap.portfolio
    a = snap.assumptions

    start_year = cfg.calendar_start()
    n_years = person.life_expectancy_age - person.current_age

    super_r = a.super_return(sup.investment_option)
    etf_r = port.expected_return_override if port.expected_return_override is not None \
        else a.etf_return(port.allocation_preset)
    buffer_r = cfg.buffer_interest_rate
    infl = a.inflation_rate

    salary = ie.annual_salary
    monthly_expenses = ie.monthly_expenses
    monthly_rent = ie.effective_monthly_rent
    planned_etf = port.monthly_contribution * 12.0
    sacrifice = sup.monthly_salary_sacrifice * 12.0

    pools = {"super": sup.current_balance, "etf": port.current_value, "buffer": snap.buffer.current_balance}
    props = [_init_property(p, snap, cfg, start_year) for p in snap.properties]

    res = SimulationResult(current_age=person.current_age, retirement_age=person.retirement_age)
    liquid_at_retirement = None
    last_withdrawal = 0.0

    for k in range(n_years + 1):
        age = person.current_age + k
        retired = age >= person.retirement_age
        super_open = age >= cfg.preservation_age

        # 1) Income update
        if k > 0:
            salary *= 1 + ie.wage_growth_rate
            monthly_expenses *= 1 + infl
            monthly_rent *= 1 + infl
        shortfall = 0.0

        # Properties joining this year (planned purchases fund the deposit from liquid pools)
        for ps in props:
            if not ps.joined and ps.join_index <= k:
                ps.joined = True
                if ps.source.intent == PropertyIntent.PLANNED:
                    deposit = max(0.0, ps.value - ps.balance)
                    shortfall += _draw(deposit, pools, ("etf", "buffer"))
        active = [ps for ps in props if ps.joined]

        # Interest-only terms that have run out
        for ps in active:
            if ps.loan_type == LoanType.INTEREST_ONLY and ps.remaining_term <= 0 and ps.balance > 0:
                if cfg.io_expiry_policy == IOExpiryPolicy.PAYOUT:
                    unpaid = _draw(ps.balance, pools, ("etf", "buffer"))
                    ps.balance = unpaid
                if ps.balance > 0:
                    _convert_to_pi(ps, cfg.io_reversion_term_years)

        prop_year = [_property_year(ps) for ps in active]
        repayments = sum(paid for _, paid in prop_year)
        rent_in = 0.0
        running = 0.0
        for ps in active:
            rent = annual_rent(ps.source)
            rent_in += rent
            running += annual_running_costs(ps.source, rent)
        property_net_cost = repayments + running - rent_in

        super_in = etf_in = buffer_in = withdrawal = 0.0
        dca_paused = False

        if not retired:
            # 2) Contribution capping
            split = concessional_split(salary, sacrifice, sup.guarantee_rate, cfg.concessional_cap)
            if k == 0:
                res.cap_usage = split.cap_usage
            tax = compute_tax_breakdown(salary, split.deductible_sacrifice)
            hecs = student_loan_repayment(salary) if ie.has_student_loan else 0.0
            take_home = tax.net_income - split.excess_sacrifice - hecs
            # sacrifice over the cap was taxed as salary; employer money over it pays the top rate
            super_in = (split.concessional * (1 - cfg.contributions_tax_rate) + split.excess_sacrifice
                        + split.excess_mandatory * (1 - AU_2024_25.top_rate))

            surplus = take_home - 12.0 * (monthly_expenses + monthly_rent) - property_net_cost

            # 3) Buffer precedence: refill the emergency fund before investing
            if surplus >= 0:
                target = snap.buffer.target_months * monthly_expenses
                buffer_in = min(surplus, max(0.0, target - pools["buffer"]))
                etf_in = min(planned_etf, surplus - buffer_in)
                dca_paused = buffer_in > 0 and etf_in < planned_etf
            else:
                shortfall += _draw(-surplus, pools, ("buffer", "etf"))
        else:
            if liquid_at_retirement is None:
                liquid_at_retirement = pools["super"] + pools["etf"] + pools["buffer"]
            liquid_now = pools["super"] + pools["etf"] + pools["buffer"]
            withdrawal = planned_withdrawal(
                cfg.drawdown_policy,
                years_retired=age - person.retirement_age,
                liquid_at_retirement=liquid_at_retirement,
                liquid_now=liquid_now,
                last_withdrawal=last_withdrawal,
                annual_expenses=12.0 * (monthly_expenses + monthly_rent),
                inflation_rate=infl,
                settings=cfg,
            )
            last_withdrawal = withdrawal
            need = withdrawal + property_net_cost
            if need >= 0:
                order = ("etf", "super", "buffer") if super_open else ("etf", "buffer")
                shortfall += _draw(need, pools, order)
            else:
                buffer_in = -need  # net rent beyond spending is banked

        # 4) Growth
        pools["super"] = (pools["super"] + super_in) * (1 + super_r) * (1 - sup.annual_fee_rate)
        pools["etf"] = (pools["etf"] + etf_in) * (1 + etf_r) * (1 - port.annual_fee_rate)
        pools["buffer"] = (pools["buffer"] + buffer_in) * (1 + buffer_r)
        for name in pools:
            pools[name] = max(0.0, pools[name])

        # 5) Property update
        for ps, (new_balance, _) in zip(active, prop_year):
            ps.value *= 1 + ps.growth
            ps.balance = new_balance
            ps.remaining_term = max(0.0, ps.remaining_term - 1)

        # 6) Record
        value = sum(ps.value for ps in active)
        debt = sum(ps.balance for ps in active)
        equity = sum(max(0.0, ps.value - ps.balance) for ps in active)
        res.years.append(start_year + k)
        res.ages.append(age)
        res.super_balance.append(pools["super"])
        res.etf_portfolio.append(pools["etf"])
        res.property_value.append(value)
        res.property_equity.append(equity)
        res.property_debt.append(debt)
        res.buffer_balance.append(pools["buffer"])
        res.total_assets.append(pools["super"] + pools["etf"] + equity + pools["buffer"])
        res.salary.append(0.0 if retired else salary)
        res.super_contributions.append(super_in)
        res.etf_contributions.append(etf_in)
        res.buffer_contributions.append(buffer_in)
        res.withdrawals.append(withdrawal)
        res.shortfall.append(shortfall)
        res.dca_paused.append(dca_paused)
        res.retired.append(retired)

    logger.info("[timing] simulation years=%d properties=%d took %.1fms",
                n_years + 1, len(props), (time.perf_counter() - t0) * 1000)
    return res
