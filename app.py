# app.py
import copy
import logging

import pandas as pd
import plotly.graph_objects as go
import streamlit as st

from config import APP_NAME, DEFAULTS, LOG_LEVEL, SCENARIO_STORE_PATH
from exporters import ScenarioImportError, export_projection, export_scenarios, export_series_csv, make_scenario
from loans import compute_borrowing_capacity, compute_property_metrics, household_from_snapshot, update_property
from models import (
    AllocationPreset,
    Assumptions,
    DrawdownPolicy,
    InvalidSnapshotError,
    IOExpiryPolicy,
    LoanType,
    PlannerSettings,
    Property,
    PropertyIntent,
    PropertyType,
    SuperOption,
    default_snapshot,
    load_snapshot,
)
from returns_presets import ASSUMPTION_PRESETS, TWO_FUND_WEIGHTS
from runner import FAILED, SUPERSEDED, SimulationRunner
from scenarios import ScenarioStore, compare
from taxes import (
    compute_tax_breakdown,
    concessional_split,
    get_marginal_bracket,
    gross_for_net,
    student_loan_repayment,
)
from ui import app_header, inject_css, kpi_card, money, nav_row, small_help, step_header

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("app")

STEPS = ["About you", "Super", "Investments & buffer", "Property", "Results"]

# ------------- Page setup -------------
st.set_page_config(page_title=APP_NAME, page_icon="🪺", layout="wide")
inject_css()
app_header(APP_NAME, "Super, property and ETFs in one deterministic projection, using 2024-25 Australian tax rules.")


@st.cache_resource
def get_runner() -> SimulationRunner:
    return SimulationRunner()


@st.cache_resource
def get_store() -> ScenarioStore:
    return ScenarioStore(SCENARIO_STORE_PATH)


if "plan" not in st.session_state:
    st.session_state.plan = default_snapshot().to_json_dict()
if "step" not in st.session_state:
    st.session_state.step = 1


def go_to(step: int):
    st.session_state.step = max(1, min(len(STEPS), step))
    st.rerun()


def apply_edits(section: str, values: dict) -> bool:
    """Merge form values into the plan; keep the old plan if the result does not validate."""
    new = copy.deepcopy(st.session_state.plan)
    if isinstance(new.get(section), dict):
        new[section].update(values)
    else:
        new[section] = values
    try:
        st.session_state.plan = load_snapshot(new).to_json_dict()
    except InvalidSnapshotError as e:
        st.error(str(e))
        return False
    return True


plan = st.session_state.plan
snap = load_snapshot(plan)

# ------------- Sidebar (settings) -------------
st.sidebar.header("Progress")
st.sidebar.progress(st.session_state.step / len(STEPS), text=f"Step {st.session_state.step} of {len(STEPS)}")
for i, name in enumerate(STEPS, start=1):
    if st.sidebar.button(name, key=f"nav_{i}", use_container_width=True):
        go_to(i)

st.sidebar.header("Retirement rules")
policy_labels = {
    DrawdownPolicy.FIXED_PERCENTAGE: "Safe withdrawal rate (indexed)",
    DrawdownPolicy.EXPENSES: "Draw my living costs",
    DrawdownPolicy.GUARDRAILS: "Guardrails (adjust to markets)",
}
policy = st.sidebar.selectbox(
    "Drawdown policy", list(policy_labels), format_func=policy_labels.get,
    help="How much you take out each year once retired.",
)
swr = st.sidebar.slider(
    "Safe withdrawal rate (%)", 2.0, 6.0, DEFAULTS["safe_withdrawal_rate"] * 100, 0.25,
    help="Share of your retirement assets you can spend each year. 4% is the classic rule of thumb.",
) / 100.0
io_policy = st.sidebar.selectbox(
    "When an interest-only term ends",
    [IOExpiryPolicy.CONVERT, IOExpiryPolicy.PAYOUT],
    format_func=lambda p: "Switch to principal & interest" if p == IOExpiryPolicy.CONVERT else "Pay it out from savings",
)
settings = PlannerSettings(safe_withdrawal_rate=swr, drawdown_policy=policy, io_expiry_policy=io_policy)

step = st.session_state.step

# ------------- Step 1: about you -------------
if step == 1:
    step_header(1, "About you", "Your age, your pay and what you spend. Everything else builds on this.")
    person, ie = plan["person"], plan["incomeExpense"]
    with st.form("step1"):
        c1, c2, c3 = st.columns(3)
        current_age = c1.number_input("Your age", 18, 100, person["currentAge"])
        retirement_age = c2.number_input("Retire at", 19, 100, person["retirementAge"])
        life_expectancy = c3.number_input("Plan until age", 20, 110, person["lifeExpectancyAge"],
                                          help="We project until this age. It's your longevity buffer.")
        c1, c2, c3 = st.columns(3)
        salary = c1.number_input("Annual salary (before tax)", 0, 2_000_000, int(ie["annualSalary"]), step=1000)
        expenses = c2.number_input("Monthly living expenses", 0, 100_000, int(ie["monthlyExpenses"]), step=50,
                                   help="Everything except rent and property loans.")
        wage_growth = c3.slider("Pay rises (%/yr)", 0.0, 10.0, ie["wageGrowthRate"] * 100, 0.1) / 100.0
        c1, c2, c3 = st.columns(3)
        hecs = c1.checkbox("I have a HECS/HELP debt", ie["hasStudentLoan"])
        renting = c2.checkbox("I rent", ie["isRenting"])
        rent = c3.number_input("Monthly rent", 0, 50_000, int(ie["monthlyRent"]), step=50)
        _, submit = nav_row(back_to=None)
    if submit:
        ok = apply_edits("person", {"currentAge": current_age, "retirementAge": retirement_age,
                                    "lifeExpectancyAge": life_expectancy})
        ok = ok and apply_edits("incomeExpense", {
            "annualSalary": salary, "monthlyExpenses": expenses, "wageGrowthRate": wage_growth,
            "hasStudentLoan": hecs, "isRenting": renting, "monthlyRent": rent,
        })
        if ok:
            go_to(2)

    tb = compute_tax_breakdown(snap.income_expense.annual_salary)
    bracket = get_marginal_bracket(snap.income_expense.annual_salary)
    hecs_amt = student_loan_repayment(snap.income_expense.annual_salary) if snap.income_expense.has_student_loan else 0.0
    k = st.columns(4)
    kpi_card(k[0], "Take-home pay (monthly)", money(tb.monthly_net - hecs_amt / 12))
    kpi_card(k[1], "Income tax + Medicare", money(tb.total_tax), f"Effective rate {tb.effective_tax_rate:.1%}")
    kpi_card(k[2], "Marginal rate", f"{bracket.marginal_rate:.0%}" if bracket else "0%",
             bracket.range if bracket else "Below the tax-free threshold")
    kpi_card(k[3], "HECS repayment", money(hecs_amt), "per year")

# ------------- Step 2: super -------------
elif step == 2:
    step_header(2, "Superannuation", "Your employer pays the Super Guarantee. Salary sacrifice comes out before tax.")
    sup = plan["superannuation"]
    options = [o.value for o in SuperOption]
    with st.form("step2"):
        c1, c2, c3 = st.columns(3)
        balance = c1.number_input("Super balance today", 0, 10_000_000, int(sup["currentBalance"]), step=1000)
        sacrifice = c2.number_input("Monthly salary sacrifice", 0, 10_000, int(sup["monthlySalarySacrifice"]), step=50)
        option = c3.selectbox("Investment option", options, index=options.index(sup["investmentOption"]))
        back, submit = nav_row(back_to=1)
    if back:
        go_to(1)
    if submit and apply_edits("superannuation", {"currentBalance": balance, "monthlySalarySacrifice": sacrifice,
                                                 "investmentOption": option}):
        go_to(3)

    split = concessional_split(snap.income_expense.annual_salary, snap.superannuation.monthly_salary_sacrifice * 12,
                               snap.superannuation.guarantee_rate, DEFAULTS["concessional_cap"])
    st.progress(min(1.0, split.cap_usage), text=f"{DEFAULTS['concessional_cap_label']}: {split.cap_usage:.0%} used")
    k = st.columns(3)
    kpi_card(k[0], "Employer contributions", money(split.mandatory), "per year")
    kpi_card(k[1], "Salary sacrifice inside the cap", money(split.deductible_sacrifice))
    kpi_card(k[2], "Over the cap", money(split.excess),
             "Taxed at your marginal rate" if split.excess else "Nothing over the cap", "warn" if split.excess else "ok")

# ------------- Step 3: investments & buffer -------------
elif step == 3:
    step_header(3, "Investments & emergency buffer",
                "Investing pauses while your emergency buffer is below target, so the buffer comes first.")
    port, buf = plan["portfolio"], plan["buffer"]
    presets = [p.value for p in AllocationPreset]
    with st.form("step3"):
        c1, c2, c3 = st.columns(3)
        etf_value = c1.number_input("ETF portfolio today", 0, 10_000_000, int(port["currentValue"]), step=1000)
        etf_monthly = c2.number_input("Monthly ETF investing", 0, 50_000, int(port["monthlyContribution"]), step=50)
        preset = c3.selectbox("Allocation", presets, index=presets.index(port["allocationPreset"]),
                              help=f"TwoFund = {TWO_FUND_WEIGHTS['aus']:.0%} Australian / "
                                   f"{TWO_FUND_WEIGHTS['global']:.0%} global shares.")
        c1, c2, c3 = st.columns(3)
        target_months = c1.slider("Buffer target (months of expenses)", 0, 24, int(buf["targetMonths"]))
        buffer_balance = c2.number_input("Cash buffer today", 0, 1_000_000, int(buf["currentBalance"]), step=500)
        scenario = c3.selectbox("Market assumptions", list(ASSUMPTION_PRESETS),
                                index=list(ASSUMPTION_PRESETS).index(DEFAULTS["assumption_preset"]))
        back, submit = nav_row(back_to=2)
    if back:
        go_to(2)
    if submit:
        ok = apply_edits("portfolio", {"currentValue": etf_value, "monthlyContribution": etf_monthly,
                                       "allocationPreset": preset})
        ok = ok and apply_edits("buffer", {"targetMonths": target_months, "currentBalance": buffer_balance})
        ok = ok and apply_edits("assumptions", Assumptions.from_preset(scenario).model_dump(mode="json", by_alias=True))
        if ok:
            go_to(4)
    target = snap.buffer.target_months * snap.income_expense.monthly_expenses
    small_help(f"Buffer target: {money(target)}. "
               + ("Target met." if snap.buffer.current_balance >= target else
                  f"{money(target - snap.buffer.current_balance)} to go before investing resumes."))

# ------------- Step 4: property -------------
elif step == 4:
    step_header(4, "Property", "Add your home and any investment properties, now or planned.")
    for prop in snap.properties:
        m = compute_property_metrics(prop)
        with st.container(border=True):
            c = st.columns([3, 2, 2, 2, 1])
            c[0].markdown(f"**{prop.name}** ({prop.type.value}, {prop.intent.value})")
            c[1].metric("Equity", money(m.equity))
            c[2].metric("LVR", f"{m.loan_to_value:.0%}")
            c[3].metric("Cash flow / month" if prop.is_investment else "Repayment / month",
                        money(m.monthly_cash_flow if prop.is_investment else m.monthly_repayment))
            if c[4].button("Remove", key=f"rm_{prop.id}"):
                apply_edits("properties", [p for p in plan["properties"] if p["id"] != prop.id])
                st.rerun()
            with st.expander("Edit loan"):
                with st.form(f"loan_{prop.id}"):
                    c1, c2, c3, c4 = st.columns(4)
                    balance = c1.number_input("Loan balance", 0.0, 20_000_000.0, float(prop.loan_balance), step=5000.0)
                    rate = c2.number_input("Interest rate (%)", 0.0, 20.0, float(prop.interest_rate), 0.05)
                    term = c3.number_input("Years left", 0, 40, int(prop.remaining_term_years))
                    repayment = c4.number_input("Monthly repayment", 0.0, 200_000.0,
                                                float(m.monthly_repayment), step=50.0,
                                                help="Recalculated when balance, rate or term change.")
                    saved = st.form_submit_button("Save loan")
                if saved:
                    changes = {k: v for k, v in (("loan_balance", balance), ("interest_rate", rate),
                                                 ("remaining_term_years", term))
                               if v != getattr(prop, k)}
                    if abs(repayment - m.monthly_repayment) > 0.005:
                        changes["monthly_repayment"] = repayment
                    try:
                        edited = update_property(prop, **changes)
                    except ValueError as e:
                        st.error(str(e))
                    else:
                        dumped = edited.model_dump(mode="json", by_alias=True)
                        if apply_edits("properties", [dumped if p["id"] == prop.id else p for p in plan["properties"]]):
                            st.rerun()

    with st.expander("Add a property", expanded=not snap.properties):
        with st.form("add_property", clear_on_submit=True):
            c1, c2, c3 = st.columns(3)
            name = c1.text_input("Name", "Home")
            ptype = c2.selectbox("Type", list(PropertyType), format_func=lambda t: t.value)
            intent = c3.selectbox("Status", list(PropertyIntent), format_func=lambda t: t.value)
            c1, c2, c3, c4 = st.columns(4)
            value = c1.number_input("Value", 0, 20_000_000, 750_000, step=5000)
            loan = c2.number_input("Loan balance", 0, 20_000_000, 600_000, step=5000)
            rate = c3.number_input("Interest rate (%)", 0.0, 20.0, 6.2, 0.05)
            term = c4.number_input("Years left on loan", 0, 40, 30)
            c1, c2, c3 = st.columns(3)
            loan_type = c1.selectbox("Loan type", list(LoanType), format_func=lambda t: t.value)
            weekly_rent = c2.number_input("Weekly rent (investment only)", 0, 20_000, 650, step=10)
            purchase_date = c3.date_input("Purchase date (planned or past)", value=None)
            added = st.form_submit_button("Add property", type="primary")
        if added:
            costs = DEFAULTS["property_costs"]
            fields = dict(name=name, type=ptype, intent=intent, current_value=value, loan_balance=loan,
                          interest_rate=rate, remaining_term_years=term, loan_type=loan_type,
                          purchase_date=purchase_date)
            if ptype == PropertyType.INVESTMENT:
                fields.update(weekly_rent=weekly_rent,
                              management_fee_percent=costs["management_fee_percent"],
                              annual_council_rates=costs["annual_council_rates"],
                              annual_insurance=costs["annual_insurance"],
                              annual_maintenance=costs["annual_maintenance"],
                              vacancy_weeks_per_year=costs["vacancy_weeks"])
            try:
                new_prop = Property(**fields)
            except ValueError as e:
                st.error(str(e))
            else:
                if apply_edits("properties", plan["properties"] + [new_prop.model_dump(mode="json", by_alias=True)]):
                    st.rerun()

    bc = compute_borrowing_capacity(household_from_snapshot(snap), snap.properties)
    if bc is not None:
        k = st.columns(3)
        kpi_card(k[0], "Estimated borrowing power", money(bc.max_loan), f"Limited by {bc.limited_by}")
        kpi_card(k[1], "Max purchase price (80% LVR)", money(bc.max_purchase_price))
        kpi_card(k[2], "Assessed at", f"{bc.stressed_rate:.2f}%", "Bank stress-test rate")
        for note in bc.notes:
            small_help(note)

    with st.form("step4"):
        back, submit = nav_row(back_to=3, next_label="See my results →")
    if back:
        go_to(3)
    if submit:
        go_to(5)

# ------------- Step 5: results -------------
else:
    step_header(5, "Your retirement projection",
                "Nominal dollars, one step per year, from today until your plan-until age.")
    runner = get_runner()
    with st.spinner("Projecting your finances…"):
        outcome = runner.submit(snap, settings).result()
    if outcome.status == SUPERSEDED and runner.latest is not None:
        outcome = runner.latest
    if outcome.status == FAILED or outcome.projection is None:
        st.error("Something went wrong running your projection. Your inputs are safe.")
        if st.button("Try again"):
            st.rerun()
        st.stop()

    proj = outcome.projection
    res, m = proj.result, proj.metrics

    k = st.columns(4)
    kpi_card(k[0], "On track?", "Yes" if m.can_retire else "Not yet", tone="ok" if m.can_retire else "warn",
             note=f"Retiring at {m.projected_retirement_age}")
    kpi_card(k[1], "Assets at retirement", money(m.final_assets), f"in {m.years_to_retirement} years")
    kpi_card(k[2], "Sustainable income", f"{money(m.final_monthly_income)}/mo",
             f"{m.income_replacement_percent:.0f}% of today's spending")
    kpi_card(k[3], "Annual shortfall", money(m.shortfall),
             f"Needs {money(m.required_annual_expenses)}/yr at retirement")
    small_help(f"Drawn from super after {settings.preservation_age} this income is tax-free. Drawn as taxable "
               f"income at today's rates you would need {money(gross_for_net(m.required_annual_expenses))} gross "
               f"to net {money(m.required_annual_expenses)}.")
    if m.depletion_age is not None:
        st.warning(f"Your liquid assets run short from age {m.depletion_age}.")

    # Wealth by pool
    figW = go.Figure()
    for label, series in [("Super", res.super_balance), ("ETFs", res.etf_portfolio),
                          ("Property equity", res.property_equity), ("Buffer", res.buffer_balance)]:
        figW.add_trace(go.Scatter(x=res.ages, y=series, mode="lines", name=label, stackgroup="assets"))
    figW.add_vline(x=m.projected_retirement_age, line_dash="dash", line_color="green")
    figW.update_layout(
        title="Projected assets by pool", xaxis_title="Age", yaxis_title="$ (nominal)",
        hovermode="x unified", margin=dict(l=30, r=20, t=60, b=30)
    )
    st.plotly_chart(figW, use_container_width=True)

    # Cash in and out
    figC = go.Figure()
    figC.add_trace(go.Bar(x=res.ages, y=res.super_contributions, name="Super contributions"))
    figC.add_trace(go.Bar(x=res.ages, y=res.etf_contributions, name="ETF investing"))
    figC.add_trace(go.Bar(x=res.ages, y=res.buffer_contributions, name="Buffer top-ups"))
    figC.add_trace(go.Bar(x=res.ages, y=[-w for w in res.withdrawals], name="Withdrawals"))
    figC.add_trace(go.Scatter(x=res.ages, y=res.shortfall, mode="lines", name="Shortfall", line=dict(dash="dot")))
    figC.update_layout(
        barmode="relative", title="Money in and out each year", xaxis_title="Age", yaxis_title="$ per year",
        hovermode="x unified", margin=dict(l=30, r=20, t=60, b=30)
    )
    st.plotly_chart(figC, use_container_width=True)

    st.markdown("#### What to do next")
    for rec in proj.recommendations:
        st.markdown(f"**{rec.rank}. {rec.title}**  \n{rec.detail}")

    # ------------- Quick what-ifs -------------
    st.markdown("#### Quick what-ifs")
    a, b = st.columns(2)
    more_saving = a.slider("Add to monthly ETF investing", 0, 3000, 500, 50)
    later = b.slider("Retire later (years)", 0, 10, 2)
    if st.button("Run what-ifs"):
        variants = [
            ("More saving", {"portfolio": {"monthlyContribution": snap.portfolio.monthly_contribution + more_saving}}),
            ("Retire later", {"person": {"retirementAge": snap.person.retirement_age + later,
                                         "lifeExpectancyAge": max(snap.person.life_expectancy_age,
                                                                  snap.person.retirement_age + later)}}),
        ]
        try:
            results = compare(snap, variants, settings)
        except InvalidSnapshotError as e:
            st.error(str(e))
        else:
            rows = [{"Scenario": "Current plan", "Assets at retirement": m.final_assets,
                     "Monthly income": m.final_monthly_income, "On track": m.can_retire}]
            for name, p in results.items():
                rows.append({"Scenario": name, "Assets at retirement": p.metrics.final_assets,
                             "Monthly income": p.metrics.final_monthly_income, "On track": p.metrics.can_retire})
            st.dataframe(pd.DataFrame(rows), hide_index=True, use_container_width=True)

    # ------------- Export & saved plans -------------
    st.markdown("#### Export")
    c = st.columns(3)
    name_csv, data_csv = export_series_csv(res)
    c[0].download_button("⬇️ Yearly series (CSV)", data_csv, file_name=name_csv, mime="text/csv")
    name_json, data_json = export_projection(proj)
    c[1].download_button("⬇️ Projection (JSON)", data_json, file_name=name_json, mime="application/json")
    name_plan, data_plan = export_scenarios([make_scenario(snap, "Current plan")])
    c[2].download_button("⬇️ This plan (JSON)", data_plan, file_name=name_plan, mime="application/json")

with st.expander("Saved plans"):
    store = get_store()
    c1, c2 = st.columns([3, 1])
    plan_name = c1.text_input("Plan name", "My plan")
    if c2.button("Save current plan", use_container_width=True) and plan_name.strip():
        store.save(plan_name, snap)
        st.success(f"Saved “{plan_name.strip()}”.")
    for rec in store.list_all():
        c = st.columns([4, 1, 1, 1])
        c[0].markdown(f"**{rec['name']}**  \n<span class='caption'>Last changed {rec['lastModified'][:16]}</span>",
                      unsafe_allow_html=True)
        if c[1].button("Load", key=f"load_{rec['id']}"):
            st.session_state.plan = rec["plannerState"]
            st.rerun()
        if c[2].button("Copy", key=f"dup_{rec['id']}"):
            store.duplicate(rec["id"], f"{rec['name']} (copy)")
            st.rerun()
        if c[3].button("Delete", key=f"del_{rec['id']}"):
            store.delete(rec["id"])
            st.rerun()
    upload = st.file_uploader("Import plans (JSON export)", type=["json"])
    if upload is not None and st.button("Import"):
        try:
            report = store.import_blob(upload.getvalue())
        except ScenarioImportError as e:
            st.error(str(e))
        else:
            st.success(f"Imported {report['imported']}, skipped {report['skipped']}.")
            for err in report["errors"]:
                st.caption(err)

st.markdown("---")
st.caption("Simplified 2024-25 Australian tax and super rules with long-run return estimates. "
           "It's a planning tool, not personal financial advice.")
