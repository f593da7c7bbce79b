"""Tests for the yearly projection engine."""

import pytest

from models import DrawdownPolicy, InvalidSnapshotError, IOExpiryPolicy, PlannerSettings, load_snapshot
from simulation import run_simulation


def super_reference(years, start=50_000, contribution=7_650, r=0.08):
    return start * (1 + r) ** years + contribution * (1 + r) * ((1 + r) ** years - 1) / r


def etf_reference(years, contribution=12_000, r=0.07):
    return contribution * (1 + r) * ((1 + r) ** years - 1) / r


class TestEndToEnd:
    def test_series_cover_current_age_to_life_expectancy(self, snapshot, settings):
        res = run_simulation(snapshot, settings)
        assert res.ages[0] == 30
        assert res.ages[-1] == 90
        assert len(res.years) == len(res.total_assets) == 61
        assert res.years[0] == 2025

    def test_hand_computed_reference_after_30_years(self, snapshot, settings):
        res = run_simulation(snapshot, settings)
        i = res.index_of_age(59)
        assert i == 29
        # SG of 9,000 less 15% contributions tax goes in each year; ETF gets the full $1,000/month
        assert res.super_contributions[0] == pytest.approx(7_650)
        assert res.etf_contributions[0] == pytest.approx(12_000)
        assert res.super_balance[i] == pytest.approx(super_reference(30), rel=1e-9)
        assert res.etf_portfolio[i] == pytest.approx(etf_reference(30), rel=1e-9)
        assert res.total_assets[i] == pytest.approx(super_reference(30) + etf_reference(30), rel=1e-9)

    def test_total_is_sum_of_pools(self, snapshot, settings):
        res = run_simulation(snapshot, settings)
        for k in range(len(res.ages)):
            pools = res.super_balance[k] + res.etf_portfolio[k] + res.property_equity[k] + res.buffer_balance[k]
            assert res.total_assets[k] == pytest.approx(pools)

    def test_deterministic(self, plan, settings):
        first = run_simulation(plan, settings)
        second = run_simulation(plan, settings)
        assert first.to_json_dict() == second.to_json_dict()

    def test_dict_and_model_inputs_agree(self, plan, snapshot, settings):
        assert run_simulation(plan, settings).total_assets == run_simulation(snapshot, settings).total_assets

    def test_retirement_index_is_last_working_year(self, snapshot, settings):
        res = run_simulation(snapshot, settings)
        assert res.ages[res.retirement_index] == 59
        assert not res.retired[res.retirement_index]
        assert res.retired[res.retirement_index + 1]

    def test_frame_has_one_row_per_year(self, snapshot, settings):
        df = run_simulation(snapshot, settings).to_frame()
        assert len(df) == 61
        assert {"years", "ages", "super_balance", "total_assets", "shortfall"} <= set(df.columns)


class TestValidation:
    def test_invalid_snapshot_fails_fast(self, make_plan, settings):
        bad = make_plan(person={"currentAge": 70, "retirementAge": 65, "lifeExpectancyAge": 90})
        with pytest.raises(InvalidSnapshotError, match="retirementAge"):
            run_simulation(bad, settings)

    def test_missing_snapshot(self):
        with pytest.raises(InvalidSnapshotError):
            run_simulation(None)


class TestZeroGrowth:
    def test_all_pools_constant(self, make_plan):
        plan = make_plan(
            incomeExpense={"annualSalary": 0, "monthlyExpenses": 0},
            superannuation={"currentBalance": 50_000},
            portfolio={"currentValue": 10_000, "monthlyContribution": 0, "expectedReturnOverride": 0.0},
            buffer={"targetMonths": 6, "currentBalance": 5_000},
            assumptions={"inflationRate": 0.0, "superReturnByOption": {"HighGrowth": 0.0}},
            properties=[{"name": "Home", "currentValue": 500_000, "loanBalance": 0,
                         "customAnnualGrowthRate": 0.0}],
        )
        settings = PlannerSettings(start_year=2025, buffer_interest_rate=0.0, safe_withdrawal_rate=0.0)
        res = run_simulation(plan, settings)
        n = len(res.ages)
        assert res.super_balance == [50_000] * n
        assert res.etf_portfolio == [10_000] * n
        assert res.buffer_balance == [5_000] * n
        assert res.property_equity == [500_000] * n
        assert res.total_assets == [565_000] * n
        assert not any(res.shortfall)


class TestBufferPrecedence:
    def test_buffer_filled_before_investing(self, make_plan, settings):
        plan = make_plan(buffer={"targetMonths": 24, "currentBalance": 0},
                         portfolio={"currentValue": 5_000})
        res = run_simulation(plan, settings)
        # the whole surplus (60,212 take-home less 34,200 spending) goes to the buffer
        assert res.buffer_contributions[0] == pytest.approx(26_012)
        assert res.etf_contributions[0] == 0
        assert res.dca_paused[0]
        assert res.buffer_balance[0] > 0
        assert res.etf_portfolio[0] == pytest.approx(5_000 * 1.07)

    def test_investing_resumes_once_target_met(self, make_plan, settings):
        plan = make_plan(buffer={"targetMonths": 24, "currentBalance": 0})
        res = run_simulation(plan, settings)
        first_invest = next(k for k, c in enumerate(res.etf_contributions) if c > 0)
        assert first_invest == 2
        assert all(res.dca_paused[:first_invest])
        assert res.buffer_balance[first_invest] >= 24 * 2_850
        assert res.etf_contributions[first_invest] == pytest.approx(12_000)

    def test_full_buffer_invests_immediately(self, make_plan, settings):
        plan = make_plan(buffer={"targetMonths": 3, "currentBalance": 20_000})
        res = run_simulation(plan, settings)
        assert res.buffer_contributions[0] == 0
        assert res.etf_contributions[0] == pytest.approx(12_000)
        assert not res.dca_paused[0]


class TestContributionCap:
    def test_excess_deposited_without_concession(self, make_plan, settings):
        plan = make_plan(incomeExpense={"annualSalary": 100_000},
                         superannuation={"monthlySalarySacrifice": 40_000 / 12})
        res = run_simulation(plan, settings)
        # 27,500 inside the cap is taxed at 15%; the 24,500 excess goes in whole
        assert res.super_contributions[0] == pytest.approx(27_500 * 0.85 + 24_500)
        assert res.cap_usage == pytest.approx(52_000 / 27_500)

    def test_employer_excess_taxed_at_top_rate(self, make_plan, settings):
        res = run_simulation(make_plan(incomeExpense={"annualSalary": 300_000}), settings)
        # SG of 36,000: 27,500 at 15%, the 8,500 over the cap at 45%
        assert res.super_contributions[0] == pytest.approx(27_500 * 0.85 + 8_500 * 0.55)
        assert res.super_contributions[0] < 36_000 * 0.85

    def test_sacrifice_limited_to_salary(self, make_plan, settings):
        plan = make_plan(incomeExpense={"annualSalary": 10_000},
                         superannuation={"monthlySalarySacrifice": 20_000 / 12})
        res = run_simulation(plan, settings)
        # only the 10,000 of salary plus 1,200 SG can reach super
        assert res.super_contributions[0] == pytest.approx((10_000 + 1_200) * 0.85)

    def test_cap_usage_within_cap(self, snapshot, settings):
        assert run_simulation(snapshot, settings).cap_usage == pytest.approx(9_000 / 27_500)


class TestProperties:
    def interest_only(self, make_plan, **extra):
        prop = {"name": "IO unit", "currentValue": 500_000, "loanBalance": 400_000, "interestRate": 6.0,
                "loanType": "interest-only", "remainingTermYears": 2, "customAnnualGrowthRate": 0.0}
        return make_plan(properties=[prop], **extra)

    def test_interest_only_balance_constant_until_expiry(self, make_plan, settings):
        res = run_simulation(self.interest_only(make_plan), settings)
        assert res.property_debt[0] == 400_000
        assert res.property_debt[1] == 400_000

    def test_interest_only_converts_at_expiry(self, make_plan, settings):
        res = run_simulation(self.interest_only(make_plan), settings)
        assert res.property_debt[2] < 400_000
        assert res.property_debt[3] < res.property_debt[2]

    def test_interest_only_payout_policy(self, make_plan):
        plan = self.interest_only(make_plan, portfolio={"currentValue": 1_000_000})
        settings = PlannerSettings(start_year=2025, io_expiry_policy=IOExpiryPolicy.PAYOUT)
        res = run_simulation(plan, settings)
        assert res.property_debt[1] == 400_000
        assert res.property_debt[2] == 0
        assert res.shortfall[2] == 0

    def test_principal_and_interest_amortizes_to_zero(self, make_plan, settings):
        plan = make_plan(properties=[{"currentValue": 300_000, "loanBalance": 100_000, "interestRate": 5.0,
                                      "remainingTermYears": 5, "customAnnualGrowthRate": 0.0}])
        res = run_simulation(plan, settings)
        debt = res.property_debt
        assert all(b < a for a, b in zip(debt[:4], debt[1:5]))
        assert debt[4] == pytest.approx(0, abs=1.0)
        assert debt[10] == pytest.approx(0, abs=1e-6)

    def test_property_value_compounds_at_clamped_default(self, make_plan, settings):
        plan = make_plan(properties=[{"currentValue": 400_000}],
                         assumptions={"propertyGrowthDefault": 0.12})
        res = run_simulation(plan, settings)
        assert res.property_value[0] == pytest.approx(400_000 * 1.08)

    def test_negative_equity_not_counted(self, make_plan, settings):
        plan = make_plan(properties=[{"currentValue": 300_000, "loanBalance": 400_000,
                                      "customAnnualGrowthRate": 0.0, "interestRate": 0.0}])
        res = run_simulation(plan, settings)
        assert res.property_equity[0] == 0
        assert res.total_assets[0] == pytest.approx(res.super_balance[0] + res.etf_portfolio[0]
                                                    + res.buffer_balance[0])

    def test_planned_purchase_joins_in_purchase_year(self, make_plan, settings):
        prop = {"name": "Next place", "intent": "planned-purchase", "purchaseDate": "2028-01-01",
                "currentValue": 500_000, "loanBalance": 400_000, "customAnnualGrowthRate": 0.0}
        base = make_plan(portfolio={"currentValue": 300_000})
        with_purchase = run_simulation(make_plan(portfolio={"currentValue": 300_000}, properties=[prop]), settings)
        without = run_simulation(base, settings)
        assert with_purchase.property_value[:3] == [0, 0, 0]
        assert with_purchase.property_value[3] == 500_000
        assert with_purchase.etf_portfolio[2] == pytest.approx(without.etf_portfolio[2])
        assert with_purchase.etf_portfolio[3] < without.etf_portfolio[3] - 100_000

    def test_snapshot_property_not_mutated(self, make_plan, settings):
        snap = load_snapshot(make_plan(properties=[{"currentValue": 300_000, "loanBalance": 100_000}]))
        run_simulation(snap, settings)
        assert snap.properties[0].loan_balance == 100_000
        assert snap.properties[0].current_value == 300_000


class TestRetirement:
    def test_no_withdrawals_while_working(self, snapshot, settings):
        res = run_simulation(snapshot, settings)
        assert not any(res.withdrawals[:30])
        assert res.salary[30] == 0

    def test_fixed_percentage_of_liquid_assets(self, snapshot, settings):
        res = run_simulation(snapshot, settings)
        i = res.retirement_index
        liquid = res.super_balance[i] + res.etf_portfolio[i] + res.buffer_balance[i]
        assert res.withdrawals[i + 1] == pytest.approx(0.04 * liquid)
        # zero inflation: the same dollar amount every year
        assert res.withdrawals[i + 5] == pytest.approx(0.04 * liquid)

    def test_depletion_flags_shortfall_and_never_goes_negative(self, make_plan):
        plan = make_plan(person={"currentAge": 55, "retirementAge": 60, "lifeExpectancyAge": 90},
                         superannuation={"currentBalance": 10_000},
                         portfolio={"monthlyContribution": 0})
        settings = PlannerSettings(start_year=2025, drawdown_policy=DrawdownPolicy.EXPENSES)
        res = run_simulation(plan, settings)
        assert any(s > 0 for s in res.shortfall)
        for series in (res.super_balance, res.etf_portfolio, res.buffer_balance, res.total_assets):
            assert min(series) >= 0

    def test_super_locked_until_preservation_age(self, make_plan):
        plan = make_plan(person={"currentAge": 45, "retirementAge": 50, "lifeExpectancyAge": 70},
                         superannuation={"currentBalance": 100_000},
                         portfolio={"monthlyContribution": 0})
        settings = PlannerSettings(start_year=2025, drawdown_policy=DrawdownPolicy.EXPENSES)
        res = run_simulation(plan, settings)
        at_50, at_59, at_60 = res.index_of_age(50), res.index_of_age(59), res.index_of_age(60)
        assert res.shortfall[at_50] > 0
        assert res.super_balance[at_59] == pytest.approx(res.super_balance[at_50] * 1.08 ** 9)
        assert res.super_balance[at_60] < res.super_balance[at_59] * 1.08
        assert res.shortfall[at_60] == 0
