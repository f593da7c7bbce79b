"""
Planner data model and the validation boundary in front of the engine.

Everything the UI hands to the engine passes through `load_snapshot`, which
turns camelCase JSON (or an existing model) into a frozen, fully validated
`FinancialSnapshot`. Unknown keys are rejected rather than carried along.
"""

from datetime import date
from enum import Enum
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from config import DEFAULTS
from returns_presets import ASSUMPTION_PRESETS, ETF_RETURNS, SUPER_RETURNS

SNAPSHOT_VERSION = "1.0"


class InvalidSnapshotError(ValueError):
    """Raised when a snapshot fails validation; carries every field error."""

    def __init__(self, message: str, errors: Optional[list] = None):
        super().__init__(message)
        self.errors = errors or []


class SuperOption(str, Enum):
    CONSERVATIVE = "Conservative"
    BALANCED = "Balanced"
    GROWTH = "Growth"
    HIGH_GROWTH = "HighGrowth"


class AllocationPreset(str, Enum):
    SINGLE_FUND = "SingleFund"
    TWO_FUND = "TwoFund"


class PropertyType(str, Enum):
    OWNER_OCCUPIED = "owner-occupied"
    INVESTMENT = "investment"


class PropertyIntent(str, Enum):
    EXISTING = "existing"
    PLANNED = "planned-purchase"


class LoanType(str, Enum):
    PRINCIPAL_AND_INTEREST = "principal-and-interest"
    INTEREST_ONLY = "interest-only"


class DrawdownPolicy(str, Enum):
    FIXED_PERCENTAGE = "fixed_percentage"
    EXPENSES = "expenses"
    GUARDRAILS = "guardrails"


class IOExpiryPolicy(str, Enum):
    CONVERT = "convert"
    PAYOUT = "payout"


class _Model(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
        allow_inf_nan=False,
    )


class Person(_Model):
    current_age: int = Field(ge=0, le=120)
    retirement_age: int = Field(ge=1, le=120)
    life_expectancy_age: int = Field(ge=1, le=125)

    @model_validator(mode="after")
    def _age_order(self):
        if not self.current_age < self.retirement_age:
            raise ValueError(
                f"retirementAge ({self.retirement_age}) must be greater than currentAge ({self.current_age})"
            )
        if not self.retirement_age <= self.life_expectancy_age:
            raise ValueError(
                f"lifeExpectancyAge ({self.life_expectancy_age}) must be at least retirementAge ({self.retirement_age})"
            )
        return self


class IncomeExpense(_Model):
    annual_salary: float = Field(ge=0)
    monthly_expenses: float = Field(ge=0)
    wage_growth_rate: float = Field(default=DEFAULTS["wage_growth"], ge=-0.5, le=1.0)
    has_student_loan: bool = False
    is_renting: bool = False
    monthly_rent: float = Field(default=0.0, ge=0)

    @property
    def effective_monthly_rent(self) -> float:
        return self.monthly_rent if self.is_renting else 0.0


class Superannuation(_Model):
    current_balance: float = Field(ge=0)
    monthly_salary_sacrifice: float = Field(default=0.0, ge=0)
    investment_option: SuperOption = SuperOption.HIGH_GROWTH
    guarantee_rate: float = Field(default=DEFAULTS["sg_rate"], ge=0, le=1)
    annual_fee_rate: float = Field(default=0.0, ge=0, le=0.1)


class Portfolio(_Model):
    current_value: float = Field(ge=0)
    monthly_contribution: float = Field(default=0.0, ge=0)
    allocation_preset: AllocationPreset = AllocationPreset.TWO_FUND
    expected_return_override: Optional[float] = Field(default=None, ge=-1.0, le=1.0)
    annual_fee_rate: float = Field(default=0.0, ge=0, le=0.1)


class Property(_Model):
    id: str = Field(default_factory=lambda: uuid4().hex)
    name: str = "Property"
    type: PropertyType = PropertyType.OWNER_OCCUPIED
    intent: PropertyIntent = PropertyIntent.EXISTING

    current_value: float = Field(ge=0)
    loan_balance: float = Field(default=0.0, ge=0)
    interest_rate: float = Field(default=6.0, ge=0, le=30)   # % p.a.
    loan_type: LoanType = LoanType.PRINCIPAL_AND_INTEREST
    remaining_term_years: float = Field(default=30, ge=0, le=50)
    monthly_repayment: Optional[float] = Field(default=None, ge=0)  # None = derive

    # Investment-only
    weekly_rent: Optional[float] = Field(default=None, ge=0)
    management_fee_percent: Optional[float] = Field(default=None, ge=0, le=100)
    annual_council_rates: Optional[float] = Field(default=None, ge=0)
    annual_insurance: Optional[float] = Field(default=None, ge=0)
    annual_maintenance: Optional[float] = Field(default=None, ge=0)
    vacancy_weeks_per_year: Optional[float] = Field(default=None, ge=0, le=52)

    # Optional history
    purchase_date: Optional[date] = None
    purchase_price: Optional[float] = Field(default=None, ge=0)
    custom_annual_growth_rate: Optional[float] = Field(default=None, ge=-0.5, le=0.5)

    @property
    def is_investment(self) -> bool:
        return self.type == PropertyType.INVESTMENT


class Buffer(_Model):
    target_months: float = Field(default=DEFAULTS["buffer_months"], ge=0, le=60)
    current_balance: float = Field(default=0.0, ge=0)


class Assumptions(_Model):
    inflation_rate: float = Field(default=0.03, ge=-0.1, le=0.5)
    super_return_by_option: Dict[SuperOption, float] = Field(
        default_factory=lambda: {SuperOption(k): v for k, v in SUPER_RETURNS.items()}
    )
    etf_return_by_preset: Dict[AllocationPreset, float] = Field(
        default_factory=lambda: {AllocationPreset(k): v for k, v in ETF_RETURNS.items()}
    )
    property_growth_default: float = Field(default=0.05, ge=-0.5, le=0.5)

    @classmethod
    def from_preset(cls, name: str) -> "Assumptions":
        """Shift the per-option defaults by how far the preset sits from Base."""
        if name not in ASSUMPTION_PRESETS:
            raise ValueError(f"Unknown assumption preset: {name!r}")
        preset = ASSUMPTION_PRESETS[name]
        base = ASSUMPTION_PRESETS["Base"]
        super_shift = preset["super_return"] - base["super_return"]
        etf_shift = preset["etf_return"] - base["etf_return"]
        return cls(
            inflation_rate=preset["inflation"],
            super_return_by_option={SuperOption(k): v + super_shift for k, v in SUPER_RETURNS.items()},
            etf_return_by_preset={AllocationPreset(k): v + etf_shift for k, v in ETF_RETURNS.items()},
            property_growth_default=preset["property_growth"],
        )

    def super_return(self, option: SuperOption) -> float:
        if option in self.super_return_by_option:
            return self.super_return_by_option[option]
        return SUPER_RETURNS[option.value]

    def etf_return(self, preset: AllocationPreset) -> float:
        if preset in self.etf_return_by_preset:
            return self.etf_return_by_preset[preset]
        return ETF_RETURNS[preset.value]


class FinancialSnapshot(_Model):
    version: str = SNAPSHOT_VERSION
    person: Person
    income_expense: IncomeExpense
    superannuation: Superannuation
    portfolio: Portfolio
    properties: List[Property] = Field(default_factory=list)
    buffer: Buffer = Field(default_factory=Buffer)
    assumptions: Assumptions = Field(default_factory=Assumptions)

    @model_validator(mode="after")
    def _unique_property_ids(self):
        ids = [p.id for p in self.properties]
        if len(ids) != len(set(ids)):
            raise ValueError("property ids must be unique")
        return self

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class PlannerSettings(_Model):
    concessional_cap: float = Field(default=DEFAULTS["concessional_cap"], ge=0)
    contributions_tax_rate: float = Field(default=DEFAULTS["contributions_tax_rate"], ge=0, le=1)
    preservation_age: int = Field(default=DEFAULTS["preservation_age"], ge=0, le=120)
    safe_withdrawal_rate: float = Field(default=DEFAULTS["safe_withdrawal_rate"], ge=0, le=1)
    drawdown_policy: DrawdownPolicy = DrawdownPolicy(DEFAULTS["drawdown_policy"])
    guardrail_band: float = Field(default=DEFAULTS["guardrails"]["band"], ge=0, le=1)
    guardrail_max_raise: float = Field(default=DEFAULTS["guardrails"]["max_raise"], ge=0, le=1)
    guardrail_max_cut: float = Field(default=DEFAULTS["guardrails"]["max_cut"], ge=0, le=1)
    buffer_interest_rate: float = Field(default=DEFAULTS["buffer_interest_rate"], ge=0, le=0.5)
    property_growth_bounds: Tuple[float, float] = DEFAULTS["property_growth_bounds"]
    io_expiry_policy: IOExpiryPolicy = IOExpiryPolicy(DEFAULTS["io_expiry_policy"])
    io_reversion_term_years: int = Field(default=DEFAULTS["io_reversion_term_years"], ge=1, le=40)
    start_year: Optional[int] = Field(default=None, ge=1900, le=3000)

    @model_validator(mode="after")
    def _bounds_ordered(self):
        lo, hi = self.property_growth_bounds
        if lo > hi:
            raise ValueError("property_growth_bounds must be (low, high)")
        return self

    def calendar_start(self) -> int:
        return self.start_year if self.start_year is not None else date.today().year


def _format_errors(err: ValidationError) -> str:
    parts = []
    for e in err.errors():
        loc = ".".join(str(x) for x in e["loc"]) or "snapshot"
        parts.append(f"{loc}: {e['msg']}")
    return "; ".join(parts)


def load_snapshot(data) -> FinancialSnapshot:
    """Validate a snapshot dict (camelCase or snake_case) or pass a model through."""
    if data is None:
        raise InvalidSnapshotError("snapshot is required")
    if isinstance(data, FinancialSnapshot):
        return data
    if not isinstance(data, dict):
        raise InvalidSnapshotError(f"snapshot must be a mapping, got {type(data).__name__}")
    try:
        return FinancialSnapshot.model_validate(data)
    except ValidationError as e:
        raise InvalidSnapshotError(f"Invalid snapshot: {_format_errors(e)}", e.errors()) from e


def default_snapshot() -> FinancialSnapshot:
    """Starting plan for a new user."""
    d = DEFAULTS
    return FinancialSnapshot(
        person=Person(current_age=d["current_age"], retirement_age=d["retirement_age"],
                      life_expectancy_age=d["life_expectancy"]),
        income_expense=IncomeExpense(annual_salary=d["salary"], monthly_expenses=d["monthly_expenses"],
                                     wage_growth_rate=d["wage_growth"]),
        superannuation=Superannuation(current_balance=d["super_balance"],
                                      investment_option=SuperOption(d["super_option"])),
        portfolio=Portfolio(current_value=d["etf_balance"], monthly_contribution=d["etf_monthly"],
                            allocation_preset=AllocationPreset(d["allocation_preset"])),
        buffer=Buffer(target_months=d["buffer_months"], current_balance=d["buffer_balance"]),
        assumptions=Assumptions.from_preset(d["assumption_preset"]),
    )


def load_settings(data=None) -> PlannerSettings:
    if data is None:
        return PlannerSettings()
    if isinstance(data, PlannerSettings):
        return data
    try:
        return PlannerSettings.model_validate(data)
    except ValidationError as e:
        raise InvalidSnapshotError(f"Invalid settings: {_format_errors(e)}", e.errors()) from e
