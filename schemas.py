from datetime import date as date_type
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9a-fA-F]{6}$")


class ExpenseIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amount: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    description: str = Field(default="", max_length=500)
    category_id: Optional[str] = Field(default=None, alias="categoryId")
    date: date_type


class BudgetIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    category_id: str = Field(..., alias="categoryId")
    amount: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    # Checked against BudgetPeriod by the service so unknown values are rejected
    # explicitly instead of failing inside the recalculation job.
    period: str


class JobMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str
    user_id: str = Field(..., alias="userId", min_length=1)


class ReportCategory(BaseModel):
    name: str
    amount: float
    percentage: str


class ReportContent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId")
    period: str
    total_spent: float = Field(..., alias="totalSpent")
    categories: list[ReportCategory]
    generated_at: str = Field(..., alias="generatedAt")
