import os
from pathlib import Path

APP_NAME = "Nest Egg: Australian Retirement Planner"

# Default settings (AU, FY 2024-25; all nominal unless otherwise noted)
DEFAULTS = {
    # Super
    "concessional_cap": 27_500,
    "concessional_cap_label": "Concessional cap (FY 2024-25)",
    "sg_rate": 0.12,                  # employer super guarantee
    "contributions_tax_rate": 0.15,   # tax on concessional contributions
    "preservation_age": 60,

    # Drawdown
    "safe_withdrawal_rate": 0.04,
    "drawdown_policy": "fixed_percentage",
    "guardrails": {                   # Guyton-Klinger lite
        "band": 0.20,
        "max_raise": 0.10,
        "max_cut": 0.10,
    },

    # Buffer / property
    "buffer_interest_rate": 0.045,    # high-interest savings
    "property_growth_bounds": (0.02, 0.08),
    "io_expiry_policy": "convert",
    "io_reversion_term_years": 25,

    # Serviceability (bank-style)
    "rental_income_haircut": 0.80,
    "max_debt_service_ratio": 0.35,
    "assessment_rate": 6.0,           # % p.a.
    "serviceability_buffer": 3.0,     # % points added to the assessment rate
    "serviceability_term_years": 30,
    "dti_multiple": 6.0,
    "max_lvr": 0.80,

    # Snapshot defaults for a new plan
    "current_age": 30,
    "retirement_age": 65,
    "life_expectancy": 90,
    "salary": 100_000,
    "monthly_expenses": 2_850,        # HEM single household estimate
    "wage_growth": 0.03,
    "super_balance": 50_000,
    "super_option": "HighGrowth",
    "etf_balance": 10_000,
    "etf_monthly": 1_000,
    "allocation_preset": "TwoFund",
    "buffer_months": 6,
    "buffer_balance": 10_000,
    "assumption_preset": "Base",

    # Property running costs for a new investment property
    "property_costs": {
        "management_fee_percent": 7.0,
        "annual_council_rates": 1_800,
        "annual_insurance": 500,
        "annual_maintenance": 2_000,
        "vacancy_weeks": 2,
    },
}

# Where saved plans live between sessions
SCENARIO_STORE_PATH = os.environ.get(
    "NEST_EGG_SCENARIOS", str(Path.home() / ".nest_egg" / "scenarios.json")
)
LOG_LEVEL = os.environ.get("NEST_EGG_LOG_LEVEL", "INFO")
