"""
Database Schemas for the Collection Ledger

Each Pydantic model for a stored record corresponds to a MongoDB collection
(lowercased class name). Monetary fields are kept as decimal text in the
database and parsed to float for arithmetic.
"""
from decimal import Decimal
from typing import Dict, List, Optional, Literal, get_args
from pydantic import BaseModel, Field
from datetime import date as DateType

CollectionLine = Literal[
    "monday-morning",
    "monday-evening",
    "tuesday-morning",
    "wednesday-morning",
    "wednesday-evening",
    "thursday-morning",
]
COLLECTION_LINES = get_args(CollectionLine)
LINE_WINDOWS = {
    "morning": "9:00 AM - 12:00 PM",
    "evening": "4:00 PM - 7:00 PM",
}

CustomerStatus = Literal["active", "completed", "overdue"]
PaymentMode = Literal["cash", "gpay", "bank_transfer"]
PaymentStatus = Literal["paid", "partial", "pending"]
ExpenseCategory = Literal["fuel", "food", "transport", "supplies", "maintenance", "other"]

Money = str  # decimal text, e.g. "5500.00"


# Stored records
class Customer(BaseModel):
    customer_number: str
    name: str
    area_name: str
    phone_number: str
    amount_given: Money
    interest_amount: Money
    total_amount: Money
    document_charge: Money = "0.00"
    number_of_weeks: int = 10
    start_date: str
    end_date: str
    collection_line: CollectionLine
    status: CustomerStatus = "active"

class DailyCollection(BaseModel):
    customer_id: str
    collection_date: str
    collection_line: CollectionLine
    due_amount: Money
    amount_paid: Money = "0.00"
    payment_mode: PaymentMode = "cash"
    payment_status: PaymentStatus = "pending"

class DailyEntry(BaseModel):
    entry_date: str
    collection_line: CollectionLine
    target_amount: Money = "0.00"
    total_collected: Money = "0.00"
    expenses: Money = "0.00"
    new_loans_given: int = 0
    new_loans_amount: Money = "0.00"
    document_charges: Money = "0.00"
    completed_loans: int = 0

class Expense(BaseModel):
    date: str
    collection_line: CollectionLine
    category: ExpenseCategory = "other"
    amount: Money
    description: str = ""


# Requests
class CustomerCreate(BaseModel):
    name: str = Field(..., min_length=1)
    customer_number: Optional[str] = None
    area_name: str = Field(..., min_length=1)
    phone_number: str = Field(..., pattern=r"^\d{10}$", description="Phone number must be 10 digits")
    amount_given: Decimal = Field(..., gt=0, decimal_places=2)
    interest_amount: Decimal = Field(0, ge=0, decimal_places=2)
    document_charge: Decimal = Field(0, ge=0, decimal_places=2)
    start_date: DateType
    collection_line: CollectionLine
    number_of_weeks: int = Field(10, ge=1)

class CustomerUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    area_name: Optional[str] = Field(None, min_length=1)
    phone_number: Optional[str] = Field(None, pattern=r"^\d{10}$")
    collection_line: Optional[CollectionLine] = None
    status: Optional[CustomerStatus] = None

class CollectionCreate(BaseModel):
    customer_id: str
    collection_date: DateType
    collection_line: CollectionLine
    due_amount: Decimal = Field(..., ge=0, decimal_places=2)
    amount_paid: Decimal = Field(0, ge=0, decimal_places=2)
    payment_mode: PaymentMode = "cash"
    payment_status: Optional[PaymentStatus] = Field(None, description="Ignored; derived from the amounts")

class CollectionUpdate(BaseModel):
    amount_paid: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    payment_mode: Optional[PaymentMode] = None

class PaymentRequest(BaseModel):
    customer_id: str
    collection_date: DateType
    amount_paid: Decimal = Field(..., ge=0, decimal_places=2)
    payment_mode: PaymentMode = "cash"
    collection_line: Optional[CollectionLine] = None

class DailyEntryCreate(BaseModel):
    entry_date: DateType
    collection_line: CollectionLine
    target_amount: Decimal = Field(0, ge=0, decimal_places=2)
    total_collected: Decimal = Field(0, ge=0, decimal_places=2)
    expenses: Decimal = Field(0, ge=0, decimal_places=2)
    new_loans_given: int = Field(0, ge=0)
    new_loans_amount: Decimal = Field(0, ge=0, decimal_places=2)
    document_charges: Decimal = Field(0, ge=0, decimal_places=2)
    completed_loans: int = Field(0, ge=0)

class DailyEntryUpdate(BaseModel):
    target_amount: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    total_collected: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    expenses: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    new_loans_given: Optional[int] = Field(None, ge=0)
    new_loans_amount: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    document_charges: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    completed_loans: Optional[int] = Field(None, ge=0)

class ExpenseCreate(BaseModel):
    date: DateType
    collection_line: CollectionLine
    category: ExpenseCategory = "other"
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    description: str = ""


# Reports
class SchedulePreview(BaseModel):
    start_date: DateType
    end_date: DateType
    total_amount: float
    weekly_due: float

class LoanProgress(BaseModel):
    total_paid: float
    remaining: float
    is_completed: bool
    completed_weeks: int
    percent: float

class LifetimeIncome(BaseModel):
    interest_earnings: float = 0
    document_charges: float = 0
    new_loans_profit: float = 0

class PeriodStats(BaseModel):
    start_date: DateType
    end_date: DateType
    collection_line: Optional[CollectionLine] = None
    active_loans: int = 0
    completed_loans: int = 0
    amount_collected: float = 0
    target_amount: float = 0
    collection_rate: int = 0
    total_expenses: float = 0
    logged_expenses: float = 0
    total_outstanding: float = 0
    interest_earnings: float = 0
    document_charges: float = 0
    new_loans_profit: float = 0
    collection_profit: float = 0
    total_profit: float = 0
    line_amounts: Dict[str, float] = Field(default_factory=dict)

class TodaySummary(BaseModel):
    active_loans: int
    today_target: float
    amount_collected: float
    collection_rate: int
    new_loans_profit: float
    today_collection_profit: float
    total_profit: float
    today_expenses: float

class EntryRow(BaseModel):
    id: str
    entry_date: str
    collection_line: str
    target_amount: float
    total_collected: float
    expenses: float
    new_loans_given: int
    collection_rate: int

class EntryReport(BaseModel):
    collection_line: Optional[CollectionLine] = None
    records: int
    period_collected: float
    period_target: float
    period_rate: int
    period_expenses: float
    new_loans_in_period: int
    active_loans: int
    completed_loans: int
    total_outstanding: float
    rows: List[EntryRow]

class LineSummary(BaseModel):
    key: CollectionLine
    label: str
    day: str
    window: str
    customers: int
    target: float

class SheetRow(BaseModel):
    customer_id: str
    customer_number: str
    name: str
    area_name: str
    weekly_due: float
    collection_id: Optional[str] = None
    amount_paid: float = 0
    payment_mode: Optional[PaymentMode] = None
    payment_status: PaymentStatus = "pending"

class LineDaySheet(BaseModel):
    collection_date: DateType
    collection_line: CollectionLine
    target_amount: float
    total_collected: float
    rows: List[SheetRow]
