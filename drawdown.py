from models import DrawdownPolicy


def guardrails(portfolio: float, start_pct: float, band: float, max_raise: float,
               max_cut: float, last_spend: float) -> float:
    """
    Guyton-Klinger simplified: if current withdrawal rate > start_pct*(1+band) => cut, if < start_pct*(1-band) => raise.
    Returns proposed new gross spend before tax.
    """
    wr = (last_spend or 0.0) / max(portfolio, 1e-9)
    if wr > start_pct * (1 + band):
        return max(0.0, last_spend * (1 - max_cut))
    elif wr < start_pct * (1 - band):
        return last_spend * (1 + max_raise)
    else:
        return last_spend  # stay the course


def planned_withdrawal(policy: DrawdownPolicy, *, years_retired: int, liquid_at_retirement: float,
                       liquid_now: float, last_withdrawal: float, annual_expenses: float,
                       inflation_rate: float, settings) -> float:
    """
    Gross amount to draw this retirement year, before it is checked against
    what the pools can actually fund.

    fixed_percentage: the classic 4% rule. Initial spend = rate x liquid
        assets at retirement, then indexed to inflation every year.
    expenses: draw whatever living costs are this year.
    guardrails: start like fixed_percentage, then raise/cut by the
        Guyton-Klinger bands against the current portfolio.
    """
    rate = settings.safe_withdrawal_rate
    if policy == DrawdownPolicy.EXPENSES:
        return max(0.0, annual_expenses)
    initial = rate * liquid_at_retirement
    if policy == DrawdownPolicy.GUARDRAILS and years_retired > 0:
        return guardrails(
            portfolio=liquid_now,
            start_pct=rate,
            band=settings.guardrail_band,
            max_raise=settings.guardrail_max_raise,
            max_cut=settings.guardrail_max_cut,
            last_spend=last_withdrawal,
        )
    return max(0.0, initial * (1 + inflation_rate) ** years_retired)
