import uuid
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, TypeVar
from zoneinfo import ZoneInfo

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)
from pydantic.alias_generators import to_camel

from config import get_settings

HEX_COLOR_PATTERN = r"^#(?:[0-9A-Fa-f]{3}|[0-9A-Fa-f]{6})$"
CENT = Decimal("0.01")
MAX_AMOUNT = Decimal("9999999999.99")


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CardIn(ApiModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    color: str = Field(..., pattern=HEX_COLOR_PATTERN)


class CategoryIn(ApiModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=50)
    color: str = Field(..., pattern=HEX_COLOR_PATTERN)
    is_shared: bool = False


class ExpenseIn(ApiModel):
    amount: Decimal = Field(..., gt=0, le=MAX_AMOUNT)
    date: datetime
    description: Optional[str] = None
    card_id: uuid.UUID
    category_id: uuid.UUID

    @field_validator("date", mode="before")
    @classmethod
    def _accept_calendar_dates(cls, value: object) -> object:
        if isinstance(value, datetime):
            return value
        if isinstance(value, date):
            return datetime.combine(value, time.min)
        if isinstance(value, str) and len(value.strip()) == 10:
            try:
                return datetime.combine(date.fromisoformat(value.strip()), time.min)
            except ValueError as exc:
                raise ValueError("Date must be in YYYY-MM-DD or RFC3339 format") from exc
        return value

    @field_validator("amount")
    @classmethod
    def _round_to_cents(cls, value: Decimal) -> Decimal:
        rounded = value.quantize(CENT, rounding=ROUND_HALF_UP)
        if rounded <= 0:
            raise ValueError("Amount must be at least 0.01")
        return rounded

    @field_validator("date")
    @classmethod
    def _to_local_time(cls, value: datetime) -> datetime:
        # Stored timestamps are naive wall-clock times in the ledger timezone.
        if value.tzinfo is None:
            return value
        local = value.astimezone(ZoneInfo(get_settings().timezone))
        return local.replace(tzinfo=None)

    @field_validator("description")
    @classmethod
    def _blank_description_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None


class FieldViolation(BaseModel):
    field: str
    message: str


SchemaT = TypeVar("SchemaT", bound=BaseModel)


def validate_payload(
    schema: type[SchemaT], payload: object
) -> tuple[Optional[SchemaT], list[FieldViolation]]:
    """Parse ``payload`` into ``schema``.

    Returns the parsed model and an empty list, or ``None`` and one
    violation per failing field.
    """
    try:
        return schema.model_validate(payload), []
    except ValidationError as exc:
        violations = []
        for err in exc.errors():
            field = ".".join(str(part) for part in err["loc"]) or "body"
            violations.append(FieldViolation(field=field, message=err["msg"]))
        return None, violations


class CardOut(ApiModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    color: str
    created_at: datetime
    updated_at: datetime


class CategoryOut(ApiModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    color: str
    is_shared: bool
    created_at: datetime
    updated_at: datetime


class ExpenseOut(ApiModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    amount: float
    date: datetime
    description: Optional[str] = None
    card_id: uuid.UUID
    category_id: uuid.UUID
    card: Optional[CardOut] = None
    category: Optional[CategoryOut] = None
    created_at: datetime
    updated_at: datetime


class Pagination(ApiModel):
    page: int
    limit: int
    total_pages: int
    total_items: int


class CategoryExpenseSum(ApiModel):
    category_id: uuid.UUID
    category_name: str
    color: str
    is_shared: bool
    total_amount: float
    count: int


class CardExpenseSum(ApiModel):
    card_id: uuid.UUID
    card_name: str
    color: str
    total_amount: float
    count: int


class MonthlyExpenseSum(ApiModel):
    year: int
    month: int
    total_amount: float
    count: int


class SharedExpensesSummary(ApiModel):
    total_shared_amount: float = 0.0
    split_amount: float = 0.0
    categories: list[CategoryExpenseSum] = Field(default_factory=list)


class MonthlyReport(ApiModel):
    year: int
    month: int
    total_amount: float
    shared_expenses: SharedExpensesSummary
    by_category: list[CategoryExpenseSum]
    # None when the report is filtered to a single card.
    by_card: Optional[list[CardExpenseSum]] = None


class YearlyReport(ApiModel):
    year: int
    total_amount: float
    monthly_data: list[MonthlyExpenseSum]
    by_category: list[CategoryExpenseSum]
    by_card: Optional[list[CardExpenseSum]] = None
