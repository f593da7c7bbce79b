"""Shared fixtures.

Canonical plan: age 30 retiring at 60, $75K salary, $2,850/month living costs,
$50K super growing at 8%, $1,000/month into ETFs at 7%, no property, no
inflation or pay rises so every figure can be checked by hand.
"""

import copy

import pytest

from models import PlannerSettings, load_snapshot


def _plan() -> dict:
    return {
        "person": {"currentAge": 30, "retirementAge": 60, "lifeExpectancyAge": 90},
        "incomeExpense": {
            "annualSalary": 75_000,
            "monthlyExpenses": 2_850,
            "wageGrowthRate": 0.0,
            "hasStudentLoan": False,
            "isRenting": False,
            "monthlyRent": 0,
        },
        "superannuation": {
            "currentBalance": 50_000,
            "monthlySalarySacrifice": 0,
            "investmentOption": "HighGrowth",
            "guaranteeRate": 0.12,
        },
        "portfolio": {
            "currentValue": 0,
            "monthlyContribution": 1_000,
            "allocationPreset": "TwoFund",
            "expectedReturnOverride": 0.07,
        },
        "properties": [],
        "buffer": {"targetMonths": 0, "currentBalance": 0},
        "assumptions": {
            "inflationRate": 0.0,
            "superReturnByOption": {"HighGrowth": 0.08},
            "etfReturnByPreset": {"TwoFund": 0.07},
            "propertyGrowthDefault": 0.05,
        },
    }


def merge(base: dict, **sections) -> dict:
    """Copy `base` with section-level edits merged in (lists replace)."""
    out = copy.deepcopy(base)
    for key, edits in sections.items():
        if isinstance(edits, dict) and isinstance(out.get(key), dict):
            out[key].update(edits)
        else:
            out[key] = edits
    return out


@pytest.fixture
def plan() -> dict:
    return _plan()


@pytest.fixture
def make_plan():
    def build(**sections) -> dict:
        return merge(_plan(), **sections)
    return build


@pytest.fixture
def snapshot(plan):
    return load_snapshot(plan)


@pytest.fixture
def settings() -> PlannerSettings:
    return PlannerSettings(start_year=2025)
