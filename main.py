import json
import logging
import time
import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import get_settings
from database import Base, engine, get_db, ping
from errors import LedgerError, MalformedInput, PayloadInvalid
from responses import dump, error, paginated, success
from schemas import (
    CardIn,
    CardOut,
    CategoryIn,
    CategoryOut,
    ExpenseIn,
    ExpenseOut,
    validate_payload,
)
from services import (
    CardService,
    CategoryService,
    ExpenseFilters,
    ExpenseService,
    ReportFilters,
    ReportService,
    local_now,
)

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

MIN_REPORT_YEAR = 2000
MAX_REPORT_YEAR = 2100

app = FastAPI(title="Kakeibo API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)
api = APIRouter(prefix=settings.api_prefix)


@app.on_event("startup")
def startup_event():
    if settings.auto_create_schema:
        Base.metadata.create_all(bind=engine)
        logger.info("Database schema ensured")


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    latency_ms = (time.perf_counter() - started) * 1000
    client = request.client.host if request.client else "-"
    logger.info(
        f"[{request.method}] {request.url.path} {client} "
        f"{response.status_code} {latency_ms:.1f}ms"
    )
    return response


@app.exception_handler(LedgerError)
async def handle_ledger_error(request: Request, exc: LedgerError) -> JSONResponse:
    return error(request, exc.status_code, exc.code, exc.message, exc.details)


@app.exception_handler(SQLAlchemyError)
async def handle_storage_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception(f"storage_error: path={request.url.path}")
    return error(request, 500, "INTERNAL_ERROR", "Storage operation failed", str(exc))


@app.exception_handler(RequestValidationError)
async def handle_request_validation(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return error(
        request, 400, "VALIDATION_ERROR", "Validation failed", jsonable_errors(exc)
    )


@app.exception_handler(StarletteHTTPException)
async def handle_http_error(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    codes = {404: "NOT_FOUND", 405: "METHOD_NOT_ALLOWED"}
    return error(
        request, exc.status_code, codes.get(exc.status_code, "HTTP_ERROR"), str(exc.detail)
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, str]]:
    return [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())),
            "message": str(err.get("msg", "")),
        }
        for err in exc.errors()
    ]


async def read_payload(request: Request, schema):
    raw = await request.body()
    try:
        payload = json.loads(raw)
    except ValueError as exc:
        raise MalformedInput(
            "Invalid request body", code="INVALID_REQUEST", details=str(exc)
        ) from exc
    if not isinstance(payload, dict):
        raise MalformedInput(
            "Invalid request body",
            code="INVALID_REQUEST",
            details="Request body must be a JSON object",
        )
    data, violations = validate_payload(schema, payload)
    if violations:
        raise PayloadInvalid(
            "Validation failed",
            code="VALIDATION_ERROR",
            details=[dump(v) for v in violations],
        )
    return data


def parse_uuid(raw: str, message: str, code: str = "INVALID_UUID") -> uuid.UUID:
    try:
        return uuid.UUID(raw)
    except ValueError as exc:
        raise MalformedInput(message, code=code, details=str(exc)) from exc


def _optional_date(raw: Optional[str]) -> Optional[date]:
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError:
        return None


def _optional_uuid(raw: Optional[str]) -> Optional[uuid.UUID]:
    if not raw:
        return None
    try:
        return uuid.UUID(raw)
    except ValueError:
        return None


def _optional_int(raw: Optional[str]) -> Optional[int]:
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def filters_from_request(request: Request) -> ExpenseFilters:
    params = request.query_params
    return ExpenseFilters(
        start_date=_optional_date(params.get("startDate")),
        end_date=_optional_date(params.get("endDate")),
        card_id=_optional_uuid(params.get("cardId")),
        category_id=_optional_uuid(params.get("categoryId")),
        page=_optional_int(params.get("page")) or 0,
        limit=_optional_int(params.get("limit")) or 0,
    )


def report_filters_from_request(request: Request, *, monthly: bool) -> ReportFilters:
    params = request.query_params
    today = local_now().date()

    year = today.year
    year_raw = params.get("year")
    if year_raw:
        parsed = _optional_int(year_raw)
        if parsed is None or not MIN_REPORT_YEAR <= parsed <= MAX_REPORT_YEAR:
            raise MalformedInput(
                "Invalid year parameter",
                code="INVALID_YEAR",
                details="Year must be a valid number between 2000 and 2100",
            )
        year = parsed

    month = None
    if monthly:
        month = today.month
        month_raw = params.get("month")
        if month_raw:
            parsed = _optional_int(month_raw)
            if parsed is None or not 1 <= parsed <= 12:
                raise MalformedInput(
                    "Invalid month parameter",
                    code="INVALID_MONTH",
                    details="Month must be a number between 1 and 12",
                )
            month = parsed

    card_id = None
    card_raw = params.get("cardId")
    if card_raw:
        card_id = parse_uuid(card_raw, "Invalid card ID format", code="INVALID_CARD_ID")

    return ReportFilters(year=year, month=month, card_id=card_id)


@app.get("/health")
def health(db: Session = Depends(get_db)):
    try:
        ping(db)
    except SQLAlchemyError as exc:
        logger.exception("health_check: database unreachable")
        return JSONResponse(
            status_code=503,
            content={
                "status": "error",
                "message": "Database connection failed",
                "error": str(exc),
            },
        )
    return {"status": "ok", "message": "Kakeibo API is running", "database": "ok"}


@api.get("/cards")
def list_cards(db: Session = Depends(get_db)):
    cards = CardService(db).list_all()
    return success(
        "Cards retrieved successfully",
        dump([CardOut.model_validate(card) for card in cards]),
    )


@api.post("/cards")
async def create_card(request: Request, db: Session = Depends(get_db)):
    data = await read_payload(request, CardIn)
    card = CardService(db).create(data)
    return success(
        "Card created successfully",
        dump(CardOut.model_validate(card)),
        status_code=201,
    )


@api.get("/cards/{card_id}")
def get_card(card_id: str, db: Session = Depends(get_db)):
    card = CardService(db).get(parse_uuid(card_id, "Invalid card ID format"))
    return success("Card retrieved successfully", dump(CardOut.model_validate(card)))


@api.put("/cards/{card_id}")
async def update_card(card_id: str, request: Request, db: Session = Depends(get_db)):
    service = CardService(db)
    card = service.get(parse_uuid(card_id, "Invalid card ID format"))
    data = await read_payload(request, CardIn)
    card = service.update(card.id, data)
    return success("Card updated successfully", dump(CardOut.model_validate(card)))


@api.delete("/cards/{card_id}")
def delete_card(card_id: str, db: Session = Depends(get_db)):
    CardService(db).delete(parse_uuid(card_id, "Invalid card ID format"))
    return success("Card deleted successfully")


@api.get("/categories")
def list_categories(db: Session = Depends(get_db)):
    categories = CategoryService(db).list_all()
    return success(
        "Categories retrieved successfully",
        dump([CategoryOut.model_validate(category) for category in categories]),
    )


@api.post("/categories")
async def create_category(request: Request, db: Session = Depends(get_db)):
    data = await read_payload(request, CategoryIn)
    category = CategoryService(db).create(data)
    return success(
        "Category created successfully",
        dump(CategoryOut.model_validate(category)),
        status_code=201,
    )


@api.get("/categories/{category_id}")
def get_category(category_id: str, db: Session = Depends(get_db)):
    category = CategoryService(db).get(
        parse_uuid(category_id, "Invalid category ID format")
    )
    return success(
        "Category retrieved successfully", dump(CategoryOut.model_validate(category))
    )


@api.put("/categories/{category_id}")
async def update_category(
    category_id: str, request: Request, db: Session = Depends(get_db)
):
    service = CategoryService(db)
    category = service.get(parse_uuid(category_id, "Invalid category ID format"))
    data = await read_payload(request, CategoryIn)
    category = service.update(category.id, data)
    return success(
        "Category updated successfully", dump(CategoryOut.model_validate(category))
    )


@api.delete("/categories/{category_id}")
def delete_category(category_id: str, db: Session = Depends(get_db)):
    CategoryService(db).delete(parse_uuid(category_id, "Invalid category ID format"))
    return success("Category deleted successfully")


@api.get("/expenses")
def list_expenses(request: Request, db: Session = Depends(get_db)):
    result = ExpenseService(db).list(filters_from_request(request))
    return paginated(
        dump([ExpenseOut.model_validate(expense) for expense in result.items]),
        page=result.page,
        limit=result.limit,
        total_pages=result.total_pages,
        total_items=result.total_items,
    )


@api.post("/expenses")
async def create_expense(request: Request, db: Session = Depends(get_db)):
    data = await read_payload(request, ExpenseIn)
    expense = ExpenseService(db).create(data)
    return success(
        "Expense created successfully",
        dump(ExpenseOut.model_validate(expense)),
        status_code=201,
    )


@api.get("/expenses/{expense_id}")
def get_expense(expense_id: str, db: Session = Depends(get_db)):
    expense = ExpenseService(db).get(parse_uuid(expense_id, "Invalid expense ID format"))
    return success(
        "Expense retrieved successfully", dump(ExpenseOut.model_validate(expense))
    )


@api.put("/expenses/{expense_id}")
async def update_expense(
    expense_id: str, request: Request, db: Session = Depends(get_db)
):
    expense_uuid = parse_uuid(expense_id, "Invalid expense ID format")
    service = ExpenseService(db)
    service.get(expense_uuid)
    data = await read_payload(request, ExpenseIn)
    expense = service.update(expense_uuid, data)
    return success(
        "Expense updated successfully", dump(ExpenseOut.model_validate(expense))
    )


@api.delete("/expenses/{expense_id}")
def delete_expense(expense_id: str, db: Session = Depends(get_db)):
    ExpenseService(db).delete(parse_uuid(expense_id, "Invalid expense ID format"))
    return success("Expense deleted successfully")


@api.get("/reports/monthly")
def monthly_report(request: Request, db: Session = Depends(get_db)):
    filters = report_filters_from_request(request, monthly=True)
    report = ReportService(db).monthly_report(filters)
    return success(
        "Monthly report generated successfully", dump(report, exclude_none=True)
    )


@api.get("/reports/yearly")
def yearly_report(request: Request, db: Session = Depends(get_db)):
    filters = report_filters_from_request(request, monthly=False)
    report = ReportService(db).yearly_report(filters)
    return success(
        "Yearly report generated successfully", dump(report, exclude_none=True)
    )


app.include_router(api)


def main():
    import uvicorn

    uvicorn.run("main:app", host=settings.host, port=settings.port, reload=False)


if __name__ == "__main__":
    main()
