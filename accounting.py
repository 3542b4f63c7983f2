"""
Collection accounting engine.

Turns raw customer, payment, daily entry and expense records into due
amounts, payment status, collection rates and profit figures. Operations
that persist take a `Storage`; the aggregations are pure functions over
record snapshots so reports can be computed for any date range.
"""
import logging
import math
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, get_args

from schemas import (
    COLLECTION_LINES,
    LINE_WINDOWS,
    CollectionCreate,
    CollectionUpdate,
    CustomerCreate,
    CustomerUpdate,
    DailyEntryCreate,
    DailyEntryUpdate,
    EntryReport,
    EntryRow,
    ExpenseCreate,
    LifetimeIncome,
    LineDaySheet,
    LineSummary,
    LoanProgress,
    PaymentMode,
    PeriodStats,
    SchedulePreview,
    SheetRow,
    TodaySummary,
)
from storage import Record, Storage

logger = logging.getLogger(__name__)

# Every loan runs ten weekly installments. The per-customer number_of_weeks
# is stored but never used for dues or targets.
LOAN_TERM_WEEKS = 10
LOAN_TERM_DAYS = LOAN_TERM_WEEKS * 7
EVENING_FROM_HOUR = 16
DEFAULT_LINE = "monday-morning"

PAYMENT_MODES = get_args(PaymentMode)
ENTRY_MONEY_FIELDS = ("target_amount", "total_collected", "expenses", "new_loans_amount", "document_charges")


class LedgerError(Exception):
    pass


class NotFoundError(LedgerError):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInputError(LedgerError):
    def __init__(self, field: str, message: str, location: str = "body"):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message
        self.location = location

    def errors(self) -> List[Dict[str, Any]]:
        return [{"loc": [self.location, self.field], "msg": self.message, "type": "value_error"}]


# -------------------- Money & dates --------------------

def money_text(value: float) -> str:
    return f"{float(value):.2f}"


def amount(value: Any) -> float:
    if value is None or value == "":
        return 0.0
    return float(value)


def _check_money(field: str, value: Any) -> float:
    value = float(value)
    if round(value, 2) != value:
        raise InvalidInputError(field, "Amount must have at most 2 decimal places")
    return value


def iso(day: Any) -> str:
    return day.isoformat() if isinstance(day, date) else str(day)


def _check_choice(field: str, value: Any, choices: Sequence[str]) -> None:
    if value not in choices:
        raise InvalidInputError(field, f"Must be one of: {', '.join(choices)}")


# -------------------- Schedule / derivation --------------------

def total_amount_for(amount_given: float, interest_amount: float) -> float:
    """Principal plus interest. The document charge is collected at signup
    and is not part of the repayable total."""
    return float(amount_given) + float(interest_amount)


def end_date_for(start_date: date) -> date:
    return start_date + timedelta(days=LOAN_TERM_DAYS)


def weekly_due_amount(customer: Record) -> float:
    return amount(customer.get("total_amount")) / LOAN_TERM_WEEKS


def schedule_preview(amount_given: float, interest_amount: float, start_date: date) -> SchedulePreview:
    total = total_amount_for(amount_given, interest_amount)
    return SchedulePreview(
        start_date=start_date,
        end_date=end_date_for(start_date),
        total_amount=total,
        weekly_due=total / LOAN_TERM_WEEKS,
    )


def next_customer_number(store: Storage) -> str:
    return f"C{len(store.list_customers()) + 1:04d}"


def create_loan(store: Storage, payload: CustomerCreate) -> Record:
    """Register a customer and the loan they were given.

    Totals and the end date are derived here once and stored; later edits
    never recompute them.
    """
    number = payload.customer_number or next_customer_number(store)
    if store.find_customer_by_number(number):
        raise InvalidInputError("customer_number", f"Customer number {number} is already in use")
    if payload.number_of_weeks != LOAN_TERM_WEEKS:
        logger.warning(
            "Customer %s registered with %s weeks; dues are still computed over %s weeks",
            number, payload.number_of_weeks, LOAN_TERM_WEEKS,
        )

    total = total_amount_for(payload.amount_given, payload.interest_amount)
    record = {
        "customer_number": number,
        "name": payload.name,
        "area_name": payload.area_name,
        "phone_number": payload.phone_number,
        "amount_given": money_text(payload.amount_given),
        "interest_amount": money_text(payload.interest_amount),
        "total_amount": money_text(total),
        "document_charge": money_text(payload.document_charge),
        "number_of_weeks": payload.number_of_weeks,
        "start_date": iso(payload.start_date),
        "end_date": iso(end_date_for(payload.start_date)),
        "collection_line": payload.collection_line,
        "status": "active",
    }
    customer = store.create_customer(record)
    logger.info("Registered customer %s on %s, total %s", number, payload.collection_line, record["total_amount"])
    return customer


def get_customer(store: Storage, customer_id: str) -> Record:
    customer = store.get_customer(customer_id)
    if not customer:
        raise NotFoundError("Customer not found")
    return customer


def update_customer(store: Storage, customer_id: str, patch: CustomerUpdate) -> Record:
    # Status moves freely between active, completed and overdue.
    changes = {k: v for k, v in patch.model_dump(exclude_unset=True).items() if v is not None}
    if not changes:
        return get_customer(store, customer_id)
    customer = store.update_customer(customer_id, changes)
    if not customer:
        raise NotFoundError("Customer not found")
    logger.info("Updated customer %s: %s", customer["customer_number"], ", ".join(sorted(changes)))
    return customer


def customers_on_line(store: Storage, line: str) -> List[Record]:
    return active_customers(store.list_customers(), line)


def loan_progress(customer: Record, collections: Iterable[Record]) -> LoanProgress:
    paid_rows = [c for c in collections if c.get("customer_id") == customer.get("id")]
    total_paid = sum(amount(c.get("amount_paid")) for c in paid_rows)
    total = amount(customer.get("total_amount"))
    weekly = weekly_due_amount(customer)
    remaining = total - total_paid
    completed_weeks = min(LOAN_TERM_WEEKS, int(total_paid // weekly)) if weekly > 0 else 0
    percent = min(100.0, total_paid / total * 100) if total > 0 else 0.0
    return LoanProgress(
        total_paid=total_paid,
        remaining=remaining,
        is_completed=remaining <= 0,
        completed_weeks=completed_weeks,
        percent=round(percent, 2),
    )


# -------------------- Payments --------------------

def payment_status_for(amount_paid: float, due_amount: float) -> str:
    if amount_paid <= 0:
        return "pending"
    if amount_paid >= due_amount:
        return "paid"
    return "partial"


def record_payment(
    store: Storage,
    customer_id: str,
    collection_date: date,
    amount_paid: float,
    payment_mode: str = "cash",
    collection_line: Optional[str] = None,
) -> Record:
    """Record what a customer paid on a collection date.

    One row per (customer, date): an existing row is updated in place,
    otherwise a new one is created with this week's due. A line given for an
    existing row moves it to that line. The customer's own status is left
    alone even when the loan is paid off.
    """
    amount_paid = _check_money("amount_paid", amount_paid)
    if amount_paid < 0:
        raise InvalidInputError("amount_paid", "Amount paid cannot be negative")
    _check_choice("payment_mode", payment_mode, PAYMENT_MODES)
    if collection_line is not None:
        _check_choice("collection_line", collection_line, COLLECTION_LINES)
    customer = get_customer(store, customer_id)
    day = iso(collection_date)

    existing = store.find_collection(customer_id, day)
    if existing:
        due = amount(existing.get("due_amount"))
        patch = {
            "amount_paid": money_text(amount_paid),
            "payment_mode": payment_mode,
            "payment_status": payment_status_for(amount_paid, due),
        }
        if collection_line is not None:
            patch["collection_line"] = collection_line
        updated = store.update_collection(existing["id"], patch)
        logger.info("Updated payment for %s on %s: %s (%s)", customer["customer_number"], day, patch["amount_paid"], patch["payment_status"])
        return updated

    # status is judged against the stored two-place due
    due = amount(money_text(weekly_due_amount(customer)))
    record = {
        "customer_id": customer_id,
        "collection_date": day,
        "collection_line": collection_line or customer["collection_line"],
        "due_amount": money_text(due),
        "amount_paid": money_text(amount_paid),
        "payment_mode": payment_mode,
        "payment_status": payment_status_for(amount_paid, due),
    }
    created = store.create_collection(record)
    logger.info("Recorded payment for %s on %s: %s (%s)", customer["customer_number"], day, record["amount_paid"], record["payment_status"])
    return created


def add_collection(store: Storage, payload: CollectionCreate) -> Record:
    """Create a collection row as submitted. Unlike record_payment this does
    not look for an existing row for the same customer and date."""
    get_customer(store, payload.customer_id)
    record = {
        "customer_id": payload.customer_id,
        "collection_date": iso(payload.collection_date),
        "collection_line": payload.collection_line,
        "due_amount": money_text(payload.due_amount),
        "amount_paid": money_text(payload.amount_paid),
        "payment_mode": payload.payment_mode,
        "payment_status": payment_status_for(float(payload.amount_paid), float(payload.due_amount)),
    }
    created = store.create_collection(record)
    logger.info("Added collection %s for customer %s on %s", created["id"], payload.customer_id, record["collection_date"])
    return created


def update_collection(store: Storage, collection_id: str, patch: CollectionUpdate) -> Record:
    existing = store.get_collection(collection_id)
    if not existing:
        raise NotFoundError("Daily collection not found")
    changes = patch.model_dump(exclude_unset=True)
    paid = changes.get("amount_paid")
    paid = amount(existing.get("amount_paid")) if paid is None else float(paid)
    update = {
        "amount_paid": money_text(paid),
        "payment_status": payment_status_for(paid, amount(existing.get("due_amount"))),
    }
    if changes.get("payment_mode"):
        update["payment_mode"] = changes["payment_mode"]
    updated = store.update_collection(collection_id, update)
    if not updated:
        raise NotFoundError("Daily collection not found")
    logger.info("Updated collection %s: %s (%s)", collection_id, update["amount_paid"], update["payment_status"])
    return updated


def delete_collection(store: Storage, collection_id: str) -> None:
    if not store.delete_collection(collection_id):
        raise NotFoundError("Daily collection not found")
    logger.info("Deleted collection %s", collection_id)


# -------------------- Daily entries & expenses --------------------

def save_daily_entry(store: Storage, payload: DailyEntryCreate) -> Record:
    data = payload.model_dump()
    data["entry_date"] = iso(payload.entry_date)
    for field in ENTRY_MONEY_FIELDS:
        data[field] = money_text(data[field])
    entry = store.create_daily_entry(data)
    logger.info("Saved daily entry for %s on %s: collected %s", entry["collection_line"], entry["entry_date"], entry["total_collected"])
    return entry


def update_daily_entry(store: Storage, entry_id: str, patch: DailyEntryUpdate) -> Record:
    changes = {k: v for k, v in patch.model_dump(exclude_unset=True).items() if v is not None}
    for field in ENTRY_MONEY_FIELDS:
        if field in changes:
            changes[field] = money_text(changes[field])
    entry = store.update_daily_entry(entry_id, changes) if changes else store.get_daily_entry(entry_id)
    if not entry:
        raise NotFoundError("Daily entry not found")
    logger.info("Updated daily entry %s", entry_id)
    return entry


def record_expenses(store: Storage, payloads: Sequence[ExpenseCreate]) -> List[Record]:
    if not payloads:
        raise InvalidInputError("expenses", "At least one expense is required")
    records = [
        {
            "date": iso(p.date),
            "collection_line": p.collection_line,
            "category": p.category,
            "amount": money_text(p.amount),
            "description": p.description,
        }
        for p in payloads
    ]
    created = store.create_expenses(records)
    logger.info("Recorded %d expenses totalling %s", len(created), money_text(sum(p.amount for p in payloads)))
    return created


# -------------------- Aggregation --------------------

def _on_line(record: Record, line: Optional[str]) -> bool:
    return line is None or record.get("collection_line") == line


def active_customers(customers: Iterable[Record], line: Optional[str] = None) -> List[Record]:
    return [c for c in customers if c.get("status") == "active" and _on_line(c, line)]


def target_amount(customers: Iterable[Record], line: Optional[str] = None) -> float:
    """Weekly dues of the current active roster, whatever period is reported."""
    return sum(weekly_due_amount(c) for c in active_customers(customers, line))


def collection_rate(collected: float, target: float) -> int:
    if target <= 0:
        return 0
    # half-up, so 62.5% shows as 63%
    return int(math.floor(collected / target * 100 + 0.5))


def lifetime_income(customers: Iterable[Record]) -> LifetimeIncome:
    """Interest and document charges over every customer ever registered."""
    customers = list(customers)
    interest = sum(amount(c.get("interest_amount")) for c in customers)
    charges = sum(amount(c.get("document_charge")) for c in customers)
    return LifetimeIncome(interest_earnings=interest, document_charges=charges, new_loans_profit=interest + charges)


def line_amounts(customers: Iterable[Record]) -> Dict[str, float]:
    totals = {line: 0.0 for line in COLLECTION_LINES}
    for c in active_customers(customers):
        if c.get("collection_line") in totals:
            totals[c["collection_line"]] += amount(c.get("amount_given"))
    return totals


def period_stats(
    customers: Sequence[Record],
    collections: Iterable[Record],
    entries: Iterable[Record],
    start_date: date,
    end_date: date,
    line: Optional[str] = None,
    expenses: Iterable[Record] = (),
) -> PeriodStats:
    """Dashboard figures for [start_date, end_date], optionally for one line.

    Collected amounts and expenses are scoped to the period. The target
    comes from today's active roster and the outstanding balance from all
    active customers. Interest and document charges are lifetime figures.
    """
    start, end = iso(start_date), iso(end_date)
    if start > end:
        raise InvalidInputError("startDate", "Start date must not be after end date", location="query")

    collected = sum(
        amount(c.get("amount_paid"))
        for c in collections
        if start <= c.get("collection_date", "") <= end and _on_line(c, line)
    )
    entry_expenses = sum(
        amount(e.get("expenses"))
        for e in entries
        if start <= e.get("entry_date", "") <= end and _on_line(e, line)
    )
    logged_expenses = sum(
        amount(x.get("amount"))
        for x in expenses
        if start <= x.get("date", "") <= end and _on_line(x, line)
    )
    target = target_amount(customers, line)
    income = lifetime_income(customers)
    collection_profit = collected - entry_expenses

    stats = PeriodStats(
        start_date=start_date,
        end_date=end_date,
        collection_line=line,
        active_loans=len(active_customers(customers)),
        completed_loans=sum(1 for c in customers if c.get("status") == "completed"),
        amount_collected=collected,
        target_amount=target,
        collection_rate=collection_rate(collected, target),
        total_expenses=entry_expenses,
        logged_expenses=logged_expenses,
        total_outstanding=sum(amount(c.get("total_amount")) for c in active_customers(customers)),
        interest_earnings=income.interest_earnings,
        document_charges=income.document_charges,
        new_loans_profit=income.new_loans_profit,
        collection_profit=collection_profit,
        total_profit=income.new_loans_profit + collection_profit,
        line_amounts=line_amounts(customers),
    )
    logger.debug("Period %s..%s line=%s: collected %.2f of %.2f", start, end, line or "all", collected, target)
    return stats


def dashboard_stats(store: Storage, start_date: date, end_date: date, line: Optional[str] = None) -> PeriodStats:
    return period_stats(
        store.list_customers(),
        store.list_collections(line=line),
        store.list_daily_entries(iso(start_date), iso(end_date)),
        start_date,
        end_date,
        line=line,
        expenses=store.list_expenses(line=line),
    )


def today_summary(entries: Iterable[Record], customers: Sequence[Record]) -> TodaySummary:
    """Single-day dashboard built from the day's saved entries."""
    entries = list(entries)
    collected = sum(amount(e.get("total_collected")) for e in entries)
    target = sum(amount(e.get("target_amount")) for e in entries)
    spent = sum(amount(e.get("expenses")) for e in entries)
    income = lifetime_income(customers)
    return TodaySummary(
        active_loans=len(active_customers(customers)),
        today_target=target,
        amount_collected=collected,
        collection_rate=collection_rate(collected, target),
        new_loans_profit=income.new_loans_profit,
        today_collection_profit=collected - spent,
        total_profit=income.new_loans_profit + collected - spent,
        today_expenses=spent,
    )


def entry_report(entries: Iterable[Record], customers: Sequence[Record], line: Optional[str] = None) -> EntryReport:
    rows = []
    for e in entries:
        if not _on_line(e, line):
            continue
        target = amount(e.get("target_amount"))
        collected = amount(e.get("total_collected"))
        rows.append(EntryRow(
            id=e["id"],
            entry_date=e["entry_date"],
            collection_line=e["collection_line"],
            target_amount=target,
            total_collected=collected,
            expenses=amount(e.get("expenses")),
            new_loans_given=int(e.get("new_loans_given") or 0),
            collection_rate=collection_rate(collected, target),
        ))
    period_collected = sum(r.total_collected for r in rows)
    period_target = sum(r.target_amount for r in rows)
    active = active_customers(customers)
    return EntryReport(
        collection_line=line,
        records=len(rows),
        period_collected=period_collected,
        period_target=period_target,
        period_rate=collection_rate(period_collected, period_target),
        period_expenses=sum(r.expenses for r in rows),
        new_loans_in_period=sum(r.new_loans_given for r in rows),
        active_loans=len(active),
        completed_loans=sum(1 for c in customers if c.get("status") == "completed"),
        total_outstanding=sum(amount(c.get("total_amount")) for c in active),
        rows=rows,
    )


# -------------------- Collection lines --------------------

def collection_line_label(line: str) -> str:
    day, _, time = line.partition("-")
    return f"{day.capitalize()} {time.capitalize()}".strip()


def current_collection_line(now: datetime) -> str:
    weekday = now.weekday()
    if weekday in (0, 2):
        day = "monday" if weekday == 0 else "wednesday"
        return f"{day}-morning" if now.hour < EVENING_FROM_HOUR else f"{day}-evening"
    if weekday == 1:
        return "tuesday-morning"
    if weekday == 3:
        return "thursday-morning"
    return DEFAULT_LINE


def line_summaries(customers: Sequence[Record]) -> List[LineSummary]:
    summaries = []
    for line in COLLECTION_LINES:
        day, _, time = line.partition("-")
        on_line = active_customers(customers, line)
        summaries.append(LineSummary(
            key=line,
            label=collection_line_label(line),
            day=day.capitalize(),
            window=LINE_WINDOWS[time],
            customers=len(on_line),
            target=sum(weekly_due_amount(c) for c in on_line),
        ))
    return summaries


def line_day_sheet(store: Storage, collection_date: date, line: str) -> LineDaySheet:
    """The collection sheet an agent works from: every active customer on
    the line with their due and what they have paid on that date."""
    _check_choice("collection_line", line, COLLECTION_LINES)
    day = iso(collection_date)
    collections = store.list_collections(date=day, line=line)
    by_customer: Dict[str, Record] = {}
    for c in collections:
        by_customer.setdefault(c["customer_id"], c)

    rows = []
    for customer in customers_on_line(store, line):
        paid = by_customer.get(customer["id"])
        rows.append(SheetRow(
            customer_id=customer["id"],
            customer_number=customer["customer_number"],
            name=customer["name"],
            area_name=customer["area_name"],
            weekly_due=weekly_due_amount(customer),
            collection_id=paid["id"] if paid else None,
            amount_paid=amount(paid.get("amount_paid")) if paid else 0,
            payment_mode=paid.get("payment_mode") if paid else None,
            payment_status=paid.get("payment_status", "pending") if paid else "pending",
        ))
    return LineDaySheet(
        collection_date=collection_date,
        collection_line=line,
        target_amount=sum(r.weekly_due for r in rows),
        total_collected=sum(amount(c.get("amount_paid")) for c in collections),
        rows=rows,
    )
