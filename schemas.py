from pydantic import BaseModel, ConfigDict, Field, constr
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import Generic, List, Optional, TypeVar

T = TypeVar("T")


class CamelModel(BaseModel):
    """Base for API models: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    data: Optional[T] = None
    error: Optional[str] = None
    message: Optional[str] = None


# Couples and members


class CoupleCreate(CamelModel):
    name: Optional[str] = None


class CoupleResponse(CamelModel):
    id: str
    name: str
    created_at: datetime
    updated_at: datetime


class UserCreate(CamelModel):
    name: Optional[str] = None
    role: Optional[str] = None
    couple_id: Optional[str] = None


class UserFromAuth(CamelModel):
    role: Optional[str] = None
    couple_id: Optional[str] = None


class UserUpdate(CamelModel):
    name: Optional[str] = None


class UserResponse(CamelModel):
    id: str
    name: str
    role: str
    couple_id: str
    email: Optional[str] = None
    created_at: datetime
    updated_at: datetime


# Expenses


class ExpenseCreate(CamelModel):
    description: constr(strip_whitespace=True, min_length=1, max_length=500)
    amount: int = Field(gt=0)
    payer_id: str
    expense_year: Optional[int] = Field(default=None, ge=1900, le=9999)
    expense_month: Optional[int] = Field(default=None, ge=1, le=12)
    custom_husband_ratio: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    custom_wife_ratio: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    uses_custom_ratio: bool = False


class ExpenseUpdate(CamelModel):
    description: Optional[constr(strip_whitespace=True, min_length=1, max_length=500)] = None
    amount: Optional[int] = Field(default=None, gt=0)
    payer_id: Optional[str] = None
    expense_year: Optional[int] = Field(default=None, ge=1900, le=9999)
    expense_month: Optional[int] = Field(default=None, ge=1, le=12)


class ExpenseAllocationRatioUpdate(CamelModel):
    custom_husband_ratio: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    custom_wife_ratio: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    uses_custom_ratio: bool


class BulkDeleteRequest(CamelModel):
    ids: List[str]


class BulkDeleteResult(CamelModel):
    deleted_count: int


class ExpenseResponse(CamelModel):
    id: str
    description: str
    amount: int
    payer_id: str
    couple_id: str
    expense_year: int
    expense_month: int
    custom_husband_ratio: Optional[float] = None
    custom_wife_ratio: Optional[float] = None
    uses_custom_ratio: bool = False
    created_at: datetime
    updated_at: datetime


class ExpenseStats(CamelModel):
    total_expenses: int = 0
    total_amount: int = 0
    average_amount: int = 0
    min_amount: int = 0
    max_amount: int = 0


class MonthlyExpenseSummary(CamelModel):
    year: int
    month: int
    total_amount: int = 0
    total_expenses: int = 0
    husband_amount: int = 0
    wife_amount: int = 0


class YearToDate(CamelModel):
    total_amount: int = 0
    total_expenses: int = 0
    monthly_averages: float = 0.0


class MonthlyExpenseStats(CamelModel):
    current_month: MonthlyExpenseSummary
    previous_month: MonthlyExpenseSummary
    year_to_date: YearToDate


# Allocation ratio


class AllocationRatioUpdate(CamelModel):
    husband_ratio: float = Field(ge=0.0, le=1.0)
    wife_ratio: float = Field(ge=0.0, le=1.0)


class AllocationRatioResponse(CamelModel):
    id: str
    husband_ratio: float
    wife_ratio: float
    created_at: datetime
    updated_at: datetime


# Settlements


class SettlementResponse(CamelModel):
    id: str
    expense_id: str
    husband_amount: int
    wife_amount: int
    payer: str
    receiver: str
    settlement_amount: int
    status: str
    created_at: datetime
    updated_at: datetime
    expense_description: Optional[str] = None
    expense_amount: Optional[int] = None
    custom_husband_ratio: Optional[float] = None
    custom_wife_ratio: Optional[float] = None
    uses_custom_ratio: bool = False
