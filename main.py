import json
import logging
from typing import NoReturn, Optional

from fastapi import Depends, FastAPI, File, Form, Header, HTTPException, Request, UploadFile
from fastapi.responses import Response
from sqlalchemy.orm import Session

from config import get_settings
from database import SessionLocal
from job_queue import enqueue_budget_recalculation, enqueue_monthly_report
from money import cents_to_units
from periods import Period, resolve_period
from receipts import ReceiptStore, receipt_key
from scheduler import SchedulerManager
from schemas import BudgetIn, CategoryIn, ExpenseIn
from services import (
    BudgetService,
    CategoryService,
    ConflictError,
    ExpenseService,
    NotFoundError,
    ReportService,
)

logger = logging.getLogger(__name__)


def _load_app_version() -> str:
    try:
        import tomllib
    except Exception:
        return "unknown"
    try:
        with open("pyproject.toml", "rb") as f:
            data = tomllib.load(f)
        return str(data.get("project", {}).get("version", "unknown"))
    except Exception:
        return "unknown"


APP_VERSION = _load_app_version()

app = FastAPI(title="Finance Tracker", version=APP_VERSION)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_receipt_store() -> ReceiptStore:
    return ReceiptStore(get_settings().receipts_dir)


def get_current_user_id(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
) -> str:
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id


scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    if get_settings().scheduler_enabled:
        scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


def _raise_for(exc: ValueError) -> NoReturn:
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if isinstance(exc, ConflictError):
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    raise HTTPException(status_code=400, detail=str(exc)) from exc


def period_from_request(request: Request) -> Period:
    period_slug = request.query_params.get("period")
    start = request.query_params.get("start")
    end = request.query_params.get("end")
    try:
        return resolve_period(period_slug, start, end)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/api/categories")
def api_categories(
    db: Session = Depends(get_db), user_id: str = Depends(get_current_user_id)
):
    categories = CategoryService(db, user_id).list_all()
    return {
        "categories": [
            {"id": c.id, "name": c.name, "color": c.color} for c in categories
        ]
    }


@app.post("/api/categories")
def api_create_category(
    data: CategoryIn,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    try:
        category = CategoryService(db, user_id).create(data)
    except ValueError as exc:
        _raise_for(exc)
    return {
        "success": True,
        "category": {"id": category.id, "name": category.name, "color": category.color},
    }


@app.get("/api/expenses")
def api_expenses(
    request: Request,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    period = period_from_request(request)
    expenses = ExpenseService(db, user_id).list(period)
    return {
        "expenses": [
            {
                "id": e.id,
                "user_id": e.user_id,
                "category_id": e.category_id,
                "amount": cents_to_units(e.amount_cents),
                "description": e.description,
                "date": e.date.isoformat(),
                "receipt_url": e.receipt_url,
                "category_name": e.category.name if e.category else None,
                "category_color": e.category.color if e.category else None,
            }
            for e in expenses
        ]
    }


@app.post("/api/expenses")
def api_create_expense(
    data: ExpenseIn,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    try:
        expense = ExpenseService(db, user_id).create(data)
    except ValueError as exc:
        _raise_for(exc)
    enqueue_budget_recalculation(db, user_id)
    return {"success": True, "expense": {"id": expense.id}}


@app.get("/api/summary")
def api_summary(
    request: Request,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    period = period_from_request(request)
    return {"summary": ExpenseService(db, user_id).summary(period)}


@app.get("/api/budgets")
def api_budgets(
    db: Session = Depends(get_db), user_id: str = Depends(get_current_user_id)
):
    budgets = BudgetService(db, user_id).list_all()
    return {
        "budgets": [
            {
                "id": b.id,
                "category_id": b.category_id,
                "category_name": b.category.name if b.category else None,
                "category_color": b.category.color if b.category else None,
                "amount": cents_to_units(b.amount_cents),
                "period": b.period.value,
                "current_spent": cents_to_units(b.current_spent_cents),
                "remaining": cents_to_units(b.remaining_cents),
                "percentage_used": b.percentage_used,
            }
            for b in budgets
        ]
    }


@app.post("/api/budgets")
def api_create_budget(
    data: BudgetIn,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    try:
        budget = BudgetService(db, user_id).create(data)
    except ValueError as exc:
        _raise_for(exc)
    enqueue_budget_recalculation(db, user_id)
    return {"success": True, "budget": {"id": budget.id}}


@app.post("/api/schedule-report")
def api_schedule_report(
    db: Session = Depends(get_db), user_id: str = Depends(get_current_user_id)
):
    enqueue_monthly_report(db, user_id)
    return {"success": True, "message": "Report generation scheduled"}


@app.get("/api/reports")
def api_reports(
    db: Session = Depends(get_db), user_id: str = Depends(get_current_user_id)
):
    reports = ReportService(db, user_id).list_all()
    return {
        "reports": [
            {
                "id": r.id,
                "generated_at": r.generated_at.isoformat(),
                "content": json.loads(r.content),
            }
            for r in reports
        ]
    }


@app.post("/api/upload-receipt")
async def api_upload_receipt(
    file: Optional[UploadFile] = File(default=None),
    expense_id: Optional[str] = Form(default=None, alias="expenseId"),
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    store: ReceiptStore = Depends(get_receipt_store),
):
    if file is None or not expense_id:
        raise HTTPException(status_code=400, detail="File and expenseId are required")
    expenses = ExpenseService(db, user_id)
    try:
        expenses.get(expense_id)
    except ValueError as exc:
        _raise_for(exc)

    max_bytes = get_settings().receipt_max_bytes
    data = await file.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise HTTPException(status_code=400, detail="Receipt file too large")

    key = receipt_key(expense_id, file.filename)
    try:
        store.put(key, data, file.content_type)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    url = f"{get_settings().receipts_base_url}/{key}"
    expenses.attach_receipt(expense_id, url)
    logger.info(f"receipt_uploaded: expense_id={expense_id} bytes={len(data)}")
    return {"success": True, "url": url}


@app.get("/receipts/{key}")
def receipt_download(key: str, store: ReceiptStore = Depends(get_receipt_store)):
    receipt = store.get(key)
    if receipt is None:
        raise HTTPException(status_code=404, detail="Not Found")
    return Response(
        content=receipt.data,
        media_type=receipt.content_type,
        headers={"Cache-Control": "public, max-age=31536000"},
    )


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
