import logging
import os
from datetime import date, datetime
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import accounting
from accounting import InvalidInputError, NotFoundError
from database import db
from schemas import (
    COLLECTION_LINES,
    CollectionCreate,
    CollectionUpdate,
    CustomerCreate,
    CustomerUpdate,
    DailyEntryCreate,
    DailyEntryUpdate,
    EntryReport,
    ExpenseCreate,
    LineDaySheet,
    LineSummary,
    LoanProgress,
    PaymentRequest,
    PeriodStats,
    SchedulePreview,
    TodaySummary,
)
from storage import MemStorage, MongoStorage, Storage

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Collection Ledger API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# -------------------- Utilities --------------------

_store: Optional[Storage] = None


def get_store() -> Storage:
    global _store
    if _store is None:
        if db is not None:
            _store = MongoStorage(db)
        else:
            logger.warning("DATABASE_URL/DATABASE_NAME not set; using volatile in-memory storage")
            _store = MemStorage()
    return _store


def check_line(line: str) -> str:
    if line not in COLLECTION_LINES:
        raise HTTPException(status_code=400, detail=f"Unknown collection line: {line}")
    return line


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": exc.message})


@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request: Request, exc: InvalidInputError):
    logger.info("Rejected %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=400, content={"detail": exc.errors()})


# -------------------- Health/Test --------------------

@app.get("/")
def read_root():
    return {"message": "Collection Ledger API running"}

@app.get("/test")
def test_database(store: Storage = Depends(get_store)):
    response = {
        "backend": "✅ Running",
        "storage": type(store).__name__,
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if db is not None:
            response["database"] = "✅ Connected"
            response["connection_status"] = "Connected"
            response["collections"] = db.list_collection_names()
    except Exception as e:
        logger.warning("Database status check failed: %s", e)
        response["database"] = f"⚠️ {str(e)[:80]}"
    return response


# -------------------- Customers --------------------

@app.get("/api/customers")
def list_customers(store: Storage = Depends(get_store)):
    return store.list_customers()

@app.post("/api/customers", status_code=201)
def create_customer(payload: CustomerCreate, store: Storage = Depends(get_store)):
    return accounting.create_loan(store, payload)

@app.get("/api/customers/line/{line}")
def list_customers_by_line(line: str, store: Storage = Depends(get_store)):
    return accounting.customers_on_line(store, check_line(line))

@app.get("/api/customers/{customer_id}")
def get_customer(customer_id: str, store: Storage = Depends(get_store)):
    return accounting.get_customer(store, customer_id)

@app.put("/api/customers/{customer_id}")
def update_customer(customer_id: str, payload: CustomerUpdate, store: Storage = Depends(get_store)):
    return accounting.update_customer(store, customer_id, payload)

@app.get("/api/customers/{customer_id}/progress", response_model=LoanProgress)
def customer_progress(customer_id: str, store: Storage = Depends(get_store)):
    customer = accounting.get_customer(store, customer_id)
    return accounting.loan_progress(customer, store.list_collections(customer_id=customer_id))

@app.get("/api/schedule/preview", response_model=SchedulePreview)
def schedule_preview(
    amount_given: float = Query(..., alias="amountGiven", gt=0),
    interest_amount: float = Query(0, alias="interestAmount", ge=0),
    start_date: date = Query(..., alias="startDate"),
):
    return accounting.schedule_preview(amount_given, interest_amount, start_date)


# -------------------- Collections --------------------

@app.get("/api/collections")
def list_collections(
    collection_date: Optional[date] = Query(None, alias="date"),
    line: Optional[str] = None,
    store: Storage = Depends(get_store),
):
    if not collection_date or not line:
        raise HTTPException(status_code=400, detail="Date and line parameters are required")
    return store.list_collections(date=collection_date.isoformat(), line=check_line(line))

@app.post("/api/collections", status_code=201)
def create_collection(payload: CollectionCreate, store: Storage = Depends(get_store)):
    return accounting.add_collection(store, payload)

@app.put("/api/collections/{collection_id}")
def update_collection(collection_id: str, payload: CollectionUpdate, store: Storage = Depends(get_store)):
    return accounting.update_collection(store, collection_id, payload)

@app.delete("/api/collections/{collection_id}")
def delete_collection(collection_id: str, store: Storage = Depends(get_store)):
    accounting.delete_collection(store, collection_id)
    return {"success": True}

@app.get("/api/collections/customer/{customer_id}")
def list_customer_collections(customer_id: str, store: Storage = Depends(get_store)):
    return store.list_collections(customer_id=customer_id)

@app.post("/api/payments")
def record_payment(payload: PaymentRequest, store: Storage = Depends(get_store)):
    return accounting.record_payment(
        store,
        payload.customer_id,
        payload.collection_date,
        payload.amount_paid,
        payment_mode=payload.payment_mode,
        collection_line=payload.collection_line,
    )


# -------------------- Daily entries --------------------

@app.get("/api/entries")
def list_entries(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    store: Storage = Depends(get_store),
):
    return store.list_daily_entries(
        start_date.isoformat() if start_date else None,
        end_date.isoformat() if end_date else None,
    )

@app.get("/api/entries/{entry_date}/{line}")
def get_entry(entry_date: date, line: str, store: Storage = Depends(get_store)):
    entry = store.find_daily_entry(entry_date.isoformat(), check_line(line))
    if not entry:
        raise HTTPException(status_code=404, detail="Daily entry not found")
    return entry

@app.post("/api/entries", status_code=201)
def create_entry(payload: DailyEntryCreate, store: Storage = Depends(get_store)):
    return accounting.save_daily_entry(store, payload)

@app.put("/api/entries/{entry_id}")
def update_entry(entry_id: str, payload: DailyEntryUpdate, store: Storage = Depends(get_store)):
    return accounting.update_daily_entry(store, entry_id, payload)


# -------------------- Expenses --------------------

@app.get("/api/expenses")
def list_expenses(
    expense_date: Optional[date] = Query(None, alias="date"),
    line: Optional[str] = None,
    store: Storage = Depends(get_store),
):
    return store.list_expenses(
        date=expense_date.isoformat() if expense_date else None,
        line=check_line(line) if line else None,
    )

@app.post("/api/expenses", status_code=201)
def create_expenses(payload: List[ExpenseCreate], store: Storage = Depends(get_store)):
    return accounting.record_expenses(store, payload)


# -------------------- Lines --------------------

@app.get("/api/lines", response_model=List[LineSummary])
def list_lines(store: Storage = Depends(get_store)):
    return accounting.line_summaries(store.list_customers())

@app.get("/api/lines/current")
def current_line():
    line = accounting.current_collection_line(datetime.now())
    return {"line": line, "label": accounting.collection_line_label(line)}

@app.get("/api/lines/{line}/sheet", response_model=LineDaySheet)
def line_sheet(
    line: str,
    sheet_date: Optional[date] = Query(None, alias="date"),
    store: Storage = Depends(get_store),
):
    return accounting.line_day_sheet(store, sheet_date or date.today(), check_line(line))


# -------------------- Dashboard --------------------

@app.get("/api/dashboard/stats", response_model=TodaySummary)
def dashboard_today(store: Storage = Depends(get_store)):
    today = date.today().isoformat()
    return accounting.today_summary(store.list_daily_entries(today, today), store.list_customers())

@app.get("/api/dashboard/consolidated-stats", response_model=PeriodStats)
def dashboard_consolidated(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    line: Optional[str] = None,
    store: Storage = Depends(get_store),
):
    today = date.today()
    return accounting.dashboard_stats(
        store,
        start_date or today,
        end_date or today,
        line=check_line(line) if line else None,
    )

@app.get("/api/reports", response_model=EntryReport)
def reports(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    line: Optional[str] = None,
    store: Storage = Depends(get_store),
):
    entries = store.list_daily_entries(
        start_date.isoformat() if start_date else None,
        end_date.isoformat() if end_date else None,
    )
    return accounting.entry_report(entries, store.list_customers(), line=check_line(line) if line else None)
