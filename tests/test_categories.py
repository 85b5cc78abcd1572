import pytest

from conftest import add_card, add_category, add_expense, yesterday
from errors import Conflict
from models import EntityKind
from schemas import CategoryIn
from services import CategoryService, ExpenseService, has_associated_expenses


def test_category_round_trips_name_color_and_shared_flag(session) -> None:
    category = add_category(session, "Rent", "#F59E0B", shared=True)

    fetched = CategoryService(session).get(category.id)
    assert fetched.name == "Rent"
    assert fetched.color == "#F59E0B"
    assert fetched.is_shared is True


def test_duplicate_category_name_is_rejected(session) -> None:
    add_category(session, "Food")

    with pytest.raises(Conflict) as exc_info:
        add_category(session, "food")
    assert exc_info.value.code == "DUPLICATE_CATEGORY"
    assert len(CategoryService(session).list_all()) == 1


def test_rename_onto_existing_category_is_rejected(session) -> None:
    add_category(session, "Food")
    travel = add_category(session, "Travel")

    with pytest.raises(Conflict, match="already exists"):
        CategoryService(session).update(
            travel.id, CategoryIn(name="Food", color="#000000")
        )


def test_update_keeping_own_name_is_allowed(session) -> None:
    food = add_category(session, "Food", shared=True)

    updated = CategoryService(session).update(
        food.id, CategoryIn(name="Food", color="#123456")
    )

    assert updated.color == "#123456"
    # Full replacement: an omitted flag falls back to its default.
    assert updated.is_shared is False


def test_category_with_expenses_cannot_be_deleted(session) -> None:
    card = add_card(session)
    category = add_category(session)
    expense = add_expense(session, card, category, 800, yesterday())

    assert has_associated_expenses(session, category.id, EntityKind.category)
    with pytest.raises(Conflict) as exc_info:
        CategoryService(session).delete(category.id)
    assert exc_info.value.code == "CATEGORY_HAS_EXPENSES"

    ExpenseService(session).delete(expense.id)
    CategoryService(session).delete(category.id)
    assert CategoryService(session).list_all() == []


def test_duplicate_check_folds_non_ascii_case(session) -> None:
    add_category(session, "Äpfel")

    with pytest.raises(Conflict) as exc_info:
        add_category(session, "äpfel")
    assert exc_info.value.code == "DUPLICATE_CATEGORY"
    assert [c.name for c in CategoryService(session).list_all()] == ["Äpfel"]
