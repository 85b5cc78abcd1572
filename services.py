from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import extract, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from config import get_settings
from errors import Conflict, DomainInvalid, NotFound, ReferenceNotFound
from models import Card, Category, EntityKind, Expense, cents_to_amount
from periods import Period, day_bounds, month_period, year_period
from schemas import (
    CardExpenseSum,
    CardIn,
    CategoryExpenseSum,
    CategoryIn,
    ExpenseIn,
    MonthlyExpenseSum,
    MonthlyReport,
    SharedExpensesSummary,
    YearlyReport,
)

logger = logging.getLogger(__name__)

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 20


def local_now() -> datetime:
    return datetime.now(ZoneInfo(get_settings().timezone)).replace(tzinfo=None)


def amount_to_cents(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def has_associated_expenses(
    session: Session, entity_id: uuid.UUID, kind: EntityKind
) -> bool:
    column = Expense.card_id if kind == EntityKind.card else Expense.category_id
    stmt = select(Expense.id).where(column == entity_id).limit(1)
    return session.scalar(stmt) is not None


@dataclass
class ExpenseFilters:
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    card_id: Optional[uuid.UUID] = None
    category_id: Optional[uuid.UUID] = None
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_PAGE_SIZE

    def __post_init__(self) -> None:
        if not self.page or self.page <= 0:
            self.page = DEFAULT_PAGE
        if not self.limit or self.limit <= 0:
            self.limit = DEFAULT_PAGE_SIZE

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def expense_predicates(filters: ExpenseFilters) -> list:
    """WHERE clauses for ``filters``, always built in the same order."""
    start_at, end_before = day_bounds(filters.start_date, filters.end_date)
    predicates = []
    if start_at is not None:
        predicates.append(Expense.date >= start_at)
    if end_before is not None:
        predicates.append(Expense.date < end_before)
    if filters.card_id is not None:
        predicates.append(Expense.card_id == filters.card_id)
    if filters.category_id is not None:
        predicates.append(Expense.category_id == filters.category_id)
    return predicates


@dataclass
class ExpensePage:
    items: list[Expense]
    page: int
    limit: int
    total_items: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_items / self.limit)


class CardService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[Card]:
        stmt = select(Card).order_by(Card.created_at.desc(), Card.id)
        return list(self.session.scalars(stmt).all())

    def get(self, card_id: uuid.UUID) -> Card:
        card = self.session.get(Card, card_id)
        if not card:
            raise NotFound("Card not found", code="CARD_NOT_FOUND")
        return card

    def create(self, data: CardIn) -> Card:
        card = Card(name=data.name, color=data.color)
        self.session.add(card)
        self.session.commit()
        self.session.refresh(card)
        logger.info(f"card_created: id={card.id}")
        return card

    def update(self, card_id: uuid.UUID, data: CardIn) -> Card:
        card = self.get(card_id)
        card.name = data.name
        card.color = data.color
        self.session.commit()
        self.session.refresh(card)
        logger.info(f"card_updated: id={card.id}")
        return card

    def delete(self, card_id: uuid.UUID) -> None:
        card = self.get(card_id)
        if has_associated_expenses(self.session, card.id, EntityKind.card):
            logger.warning(f"card_delete_blocked: id={card.id}")
            raise Conflict(
                "Cannot delete card with associated expenses",
                code="CARD_HAS_EXPENSES",
                details=(
                    "This card has expenses associated with it. Please delete the "
                    "expenses first or reassign them to another card."
                ),
            )
        self.session.delete(card)
        self.session.commit()
        logger.info(f"card_deleted: id={card_id}")


class CategoryService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[Category]:
        stmt = select(Category).order_by(Category.created_at.desc(), Category.id)
        return list(self.session.scalars(stmt).all())

    def get(self, category_id: uuid.UUID) -> Category:
        category = self.session.get(Category, category_id)
        if not category:
            raise NotFound("Category not found", code="CATEGORY_NOT_FOUND")
        return category

    def _ensure_unique_name(
        self, name: str, exclude_id: Optional[uuid.UUID] = None
    ) -> None:
        # Names are unique under Unicode case folding.
        stmt = select(Category.name)
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        wanted = name.casefold()
        if any(
            existing.casefold() == wanted for existing in self.session.scalars(stmt)
        ):
            raise Conflict(
                "Category with this name already exists",
                code="DUPLICATE_CATEGORY",
                details={"name": name},
            )

    def _commit_named(self, name: str) -> None:
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise Conflict(
                "Category with this name already exists",
                code="DUPLICATE_CATEGORY",
                details={"name": name},
            ) from exc

    def create(self, data: CategoryIn) -> Category:
        self._ensure_unique_name(data.name)
        category = Category(name=data.name, color=data.color, is_shared=data.is_shared)
        self.session.add(category)
        self._commit_named(data.name)
        self.session.refresh(category)
        logger.info(f"category_created: id={category.id} shared={category.is_shared}")
        return category

    def update(self, category_id: uuid.UUID, data: CategoryIn) -> Category:
        category = self.get(category_id)
        self._ensure_unique_name(data.name, exclude_id=category.id)
        category.name = data.name
        category.color = data.color
        category.is_shared = data.is_shared
        self._commit_named(data.name)
        self.session.refresh(category)
        logger.info(f"category_updated: id={category.id}")
        return category

    def delete(self, category_id: uuid.UUID) -> None:
        category = self.get(category_id)
        if has_associated_expenses(self.session, category.id, EntityKind.category):
            logger.warning(f"category_delete_blocked: id={category.id}")
            raise Conflict(
                "Cannot delete category with associated expenses",
                code="CATEGORY_HAS_EXPENSES",
                details=(
                    "This category has expenses associated with it. Please delete "
                    "the expenses first or reassign them to another category."
                ),
            )
        self.session.delete(category)
        self.session.commit()
        logger.info(f"category_deleted: id={category_id}")


class ExpenseService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def _get_plain(self, expense_id: uuid.UUID) -> Expense:
        expense = self.session.get(Expense, expense_id)
        if not expense:
            raise NotFound("Expense not found", code="EXPENSE_NOT_FOUND")
        return expense

    def get(self, expense_id: uuid.UUID) -> Expense:
        """Fetch an expense together with its card and category."""
        stmt = (
            select(Expense)
            .options(joinedload(Expense.card), joinedload(Expense.category))
            .where(Expense.id == expense_id)
            .execution_options(populate_existing=True)
        )
        expense = self.session.scalar(stmt)
        if not expense:
            raise NotFound("Expense not found", code="EXPENSE_NOT_FOUND")
        return expense

    def _check_write(self, data: ExpenseIn) -> None:
        if data.date > local_now():
            raise DomainInvalid(
                "Expense date cannot be in the future",
                code="FUTURE_DATE",
                details="Please select a current or past date",
            )
        if self.session.get(Card, data.card_id) is None:
            raise ReferenceNotFound(
                "Card not found", code="CARD_NOT_FOUND", details={"field": "cardId"}
            )
        if self.session.get(Category, data.category_id) is None:
            raise ReferenceNotFound(
                "Category not found",
                code="CATEGORY_NOT_FOUND",
                details={"field": "categoryId"},
            )

    def create(self, data: ExpenseIn) -> Expense:
        self._check_write(data)
        expense = Expense(
            amount_cents=amount_to_cents(data.amount),
            date=data.date,
            description=data.description,
            card_id=data.card_id,
            category_id=data.category_id,
        )
        self.session.add(expense)
        self.session.commit()
        logger.info(f"expense_created: id={expense.id} amount_cents={expense.amount_cents}")
        return self.get(expense.id)

    def update(self, expense_id: uuid.UUID, data: ExpenseIn) -> Expense:
        expense = self._get_plain(expense_id)
        self._check_write(data)
        expense.amount_cents = amount_to_cents(data.amount)
        expense.date = data.date
        expense.description = data.description
        expense.card_id = data.card_id
        expense.category_id = data.category_id
        self.session.commit()
        logger.info(f"expense_updated: id={expense.id}")
        return self.get(expense.id)

    def delete(self, expense_id: uuid.UUID) -> None:
        expense = self._get_plain(expense_id)
        self.session.delete(expense)
        self.session.commit()
        logger.info(f"expense_deleted: id={expense_id}")

    def list(self, filters: ExpenseFilters) -> ExpensePage:
        predicates = expense_predicates(filters)
        total = int(
            self.session.execute(
                select(func.count(Expense.id)).where(*predicates)
            ).scalar_one()
            or 0
        )
        stmt = (
            select(Expense)
            .options(joinedload(Expense.card), joinedload(Expense.category))
            .where(*predicates)
            .order_by(Expense.date.desc(), Expense.created_at.desc())
            .offset(filters.offset)
            .limit(filters.limit)
        )
        items = list(self.session.scalars(stmt).unique().all())
        return ExpensePage(
            items=items, page=filters.page, limit=filters.limit, total_items=total
        )


@dataclass(frozen=True)
class ReportFilters:
    year: int
    month: Optional[int] = None
    card_id: Optional[uuid.UUID] = None


@dataclass
class SharedTotals:
    total_cents: int = 0
    categories: list[CategoryExpenseSum] = field(default_factory=list)

    def summary(self) -> SharedExpensesSummary:
        total = cents_to_amount(self.total_cents)
        return SharedExpensesSummary(
            total_shared_amount=total,
            split_amount=total / 2 if self.total_cents else 0.0,
            categories=self.categories,
        )


def summarize_shared(rows: list) -> SharedExpensesSummary:
    """Fold the shared categories of a category breakdown into a 50/50 split."""
    shared = SharedTotals()
    for row in rows:
        if not row.is_shared:
            continue
        shared.total_cents += int(row.total_cents)
        shared.categories.append(_category_sum(row))
    return shared.summary()


def _category_sum(row) -> CategoryExpenseSum:
    return CategoryExpenseSum(
        category_id=row.category_id,
        category_name=row.name,
        color=row.color,
        is_shared=bool(row.is_shared),
        total_amount=cents_to_amount(int(row.total_cents)),
        count=int(row.count),
    )


class ReportService:
    def __init__(self, session: Session) -> None:
        self.session = session

    @staticmethod
    def _window(period: Period, card_id: Optional[uuid.UUID]) -> list:
        predicates = [
            Expense.date >= period.start_at,
            Expense.date < period.end_before,
        ]
        if card_id is not None:
            predicates.append(Expense.card_id == card_id)
        return predicates

    def _total_cents(self, predicates: list) -> int:
        stmt = select(func.coalesce(func.sum(Expense.amount_cents), 0)).where(
            *predicates
        )
        return int(self.session.execute(stmt).scalar_one() or 0)

    def _category_rows(self, predicates: list) -> list:
        total = func.sum(Expense.amount_cents)
        stmt = (
            select(
                Category.id.label("category_id"),
                Category.name.label("name"),
                Category.color.label("color"),
                Category.is_shared.label("is_shared"),
                total.label("total_cents"),
                func.count(Expense.id).label("count"),
            )
            .select_from(Expense)
            .join(Category, Category.id == Expense.category_id)
            .where(*predicates)
            .group_by(Category.id, Category.name, Category.color, Category.is_shared)
            .order_by(total.desc(), Category.name)
        )
        return list(self.session.execute(stmt).all())

    def _card_breakdown(self, predicates: list) -> list[CardExpenseSum]:
        total = func.sum(Expense.amount_cents)
        stmt = (
            select(
                Card.id.label("card_id"),
                Card.name.label("name"),
                Card.color.label("color"),
                total.label("total_cents"),
                func.count(Expense.id).label("count"),
            )
            .select_from(Expense)
            .join(Card, Card.id == Expense.card_id)
            .where(*predicates)
            .group_by(Card.id, Card.name, Card.color)
            .order_by(total.desc(), Card.name)
        )
        return [
            CardExpenseSum(
                card_id=row.card_id,
                card_name=row.name,
                color=row.color,
                total_amount=cents_to_amount(int(row.total_cents)),
                count=int(row.count),
            )
            for row in self.session.execute(stmt).all()
        ]

    def _month_breakdown(self, year: int, predicates: list) -> list[MonthlyExpenseSum]:
        month = extract("month", Expense.date).label("month")
        stmt = (
            select(
                month,
                func.sum(Expense.amount_cents).label("total_cents"),
                func.count(Expense.id).label("count"),
            )
            .where(*predicates)
            .group_by(month)
            .order_by(month)
        )
        return [
            MonthlyExpenseSum(
                year=year,
                month=int(row.month),
                total_amount=cents_to_amount(int(row.total_cents)),
                count=int(row.count),
            )
            for row in self.session.execute(stmt).all()
        ]

    def monthly_report(self, filters: ReportFilters) -> MonthlyReport:
        if filters.month is None:
            raise DomainInvalid(
                "Month parameter is required for monthly report", code="INVALID_MONTH"
            )
        period = month_period(filters.year, filters.month)
        predicates = self._window(period, filters.card_id)

        category_rows = self._category_rows(predicates)
        by_card = None
        if filters.card_id is None:
            by_card = self._card_breakdown(predicates)

        return MonthlyReport(
            year=filters.year,
            month=filters.month,
            total_amount=cents_to_amount(self._total_cents(predicates)),
            shared_expenses=summarize_shared(category_rows),
            by_category=[_category_sum(row) for row in category_rows],
            by_card=by_card,
        )

    def yearly_report(self, filters: ReportFilters) -> YearlyReport:
        period = year_period(filters.year)
        predicates = self._window(period, filters.card_id)

        by_card = None
        if filters.card_id is None:
            by_card = self._card_breakdown(predicates)

        return YearlyReport(
            year=filters.year,
            total_amount=cents_to_amount(self._total_cents(predicates)),
            monthly_data=self._month_breakdown(filters.year, predicates),
            by_category=[_category_sum(row) for row in self._category_rows(predicates)],
            by_card=by_card,
        )
