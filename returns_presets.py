# Simple, opinionated return presets. All are *nominal* long-run estimates,
# after fees inside the fund. These are not promises, just sane defaults
# users can override.

SUPER_RETURNS = {
    "Conservative": 0.05,
    "Balanced": 0.065,
    "Growth": 0.075,
    "HighGrowth": 0.08,
}

ETF_RETURNS = {
    "SingleFund": 0.075,   # one diversified all-in-one fund
    "TwoFund": 0.078,      # 40% Australian / 60% global shares
}

TWO_FUND_WEIGHTS = {"aus": 0.4, "global": 0.6}

ASSUMPTION_PRESETS = {
    "Conservative": {
        "super_return": 0.06,
        "etf_return": 0.065,
        "property_growth": 0.04,
        "inflation": 0.025,
        "wage_growth": 0.025,
    },
    "Base": {
        "super_return": 0.07,
        "etf_return": 0.075,
        "property_growth": 0.05,
        "inflation": 0.03,
        "wage_growth": 0.03,
    },
    "Optimistic": {
        "super_return": 0.08,
        "etf_return": 0.085,
        "property_growth": 0.06,
        "inflation": 0.035,
        "wage_growth": 0.035,
    },
}
