from datetime import date
from enum import Enum
from typing import List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, confloat, conint


class BookingKind(str, Enum):
    airbnb = "airbnb"
    domestic = "domestic"


class PricingStrategy(str, Enum):
    calculated = "calculated"
    formula = "formula"


class FieldConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    category: str = Field(min_length=1)
    option: str
    value: float = 0.0
    time: Optional[float] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    is_active: bool = True
    label: Optional[str] = None
    display_order: int = 0


class CategoryDefault(BaseModel):
    category: str = Field(min_length=1)
    default_option: Optional[str] = None


class FormulaElementKind(str, Enum):
    field = "field"
    operator = "operator"
    number = "number"


class FormulaElement(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    kind: FormulaElementKind = Field(validation_alias=AliasChoices("kind", "type"))
    value: str = Field(validation_alias=AliasChoices("value", "reference"))
    attribute: Optional[Literal["value", "time", "min", "max"]] = None
    label: Optional[str] = None


class FormulaResultType(str, Enum):
    cost = "cost"
    time = "time"
    percentage = "percentage"


class Formula(BaseModel):
    id: Optional[str] = None
    name: str = Field(min_length=1, max_length=160)
    description: Optional[str] = None
    result_type: FormulaResultType = FormulaResultType.cost
    elements: List[FormulaElement] = Field(default_factory=list)
    is_active: bool = True


class BookingDraft(BaseModel):
    model_config = ConfigDict(extra="forbid", coerce_numbers_to_str=True)

    booking_kind: BookingKind = BookingKind.airbnb
    property_type: str = ""
    bedrooms: str = ""
    bathrooms: str = ""
    toilets: str = ""
    additional_rooms: dict[str, conint(ge=0)] = Field(default_factory=dict)
    property_features: dict[str, bool] = Field(default_factory=dict)
    number_of_floors: conint(ge=0) = 0
    service_type: str = ""
    service_frequency: str = ""
    already_cleaned: Optional[bool] = None
    needs_oven_cleaning: Optional[bool] = None
    oven_type: str = ""
    cleaning_products: str | List[str] | None = None
    equipment_arrangement: Optional[str] = None
    linens_handling: str = ""
    needs_ironing: Optional[bool] = None
    ironing_hours: Optional[confloat(ge=0.0)] = None
    bed_sizes: dict[str, conint(ge=0)] = Field(default_factory=dict)
    selected_date: Optional[date] = None
    selected_time: Optional[str] = None
    flexibility: Optional[str] = None
    same_day_turnaround: bool = False
    estimated_hours: Optional[confloat(ge=0.0)] = None
    short_notice_charge: Optional[confloat(ge=0.0)] = None


class SchedulingRuleType(str, Enum):
    day_pricing = "day_pricing"
    time_surcharge = "time_surcharge"
    cutoff_time = "cutoff_time"
    overtime_window = "overtime_window"
    time_slot = "time_slot"


class SchedulingRule(BaseModel):
    id: Optional[str] = None
    rule_type: SchedulingRuleType
    day_of_week: Optional[conint(ge=0, le=6)] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    modifier_type: Literal["fixed", "percentage"] = "fixed"
    price_modifier: float = 0.0
    label: Optional[str] = None
    is_active: bool = True
    display_order: int = 0


class ModifierDetail(BaseModel):
    type: Literal["additional", "discount"]
    label: str
    amount: float


class FormulaFailure(BaseModel):
    formula: str
    detail: str


class QuoteBreakdown(BaseModel):
    minutes: dict[str, float] = Field(default_factory=dict)
    hourly_rate_contributions: dict[str, float] = Field(default_factory=dict)
    time_multiplier: float = 1.0
    dry_time: float = 0.0
    iron_time: float = 0.0


class QuoteResult(BaseModel):
    config_id: str
    config_version: str
    config_hash: str
    strategy: PricingStrategy
    base_time: float
    calculated_base_time: float
    additional_time: float
    total_hours: float
    hourly_rate: float
    cleaning_cost: float
    short_notice_charge: float
    one_time_costs: float
    additional_charge: float
    discount: float
    total_cost: float
    is_user_override: bool
    modifier_details: List[ModifierDetail] = Field(default_factory=list)
    formula_errors: List[FormulaFailure] = Field(default_factory=list)
    breakdown: Optional[QuoteBreakdown] = None
