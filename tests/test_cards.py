from datetime import datetime

import pytest

from conftest import add_card, add_category, add_expense, yesterday
from errors import Conflict, NotFound
from models import EntityKind
from schemas import CardIn
from services import CardService, ExpenseService, has_associated_expenses


def test_created_card_has_identifier_and_timestamps(session) -> None:
    card = add_card(session, "Visa", "#3B82F6")

    assert card.id is not None
    assert card.created_at is not None
    assert card.updated_at is not None

    fetched = CardService(session).get(card.id)
    assert (fetched.name, fetched.color) == ("Visa", "#3B82F6")


def test_cards_are_listed_newest_first(session) -> None:
    older = add_card(session, "Old card")
    newer = add_card(session, "New card")
    older.created_at = datetime(2024, 1, 1, 9, 0)
    newer.created_at = datetime(2024, 6, 1, 9, 0)
    session.commit()

    names = [c.name for c in CardService(session).list_all()]
    assert names == ["New card", "Old card"]


def test_card_update_replaces_name_and_color(session) -> None:
    card = add_card(session, "Visa", "#3B82F6")

    updated = CardService(session).update(card.id, CardIn(name="Amex", color="#fff"))

    assert updated.id == card.id
    assert (updated.name, updated.color) == ("Amex", "#fff")


def test_missing_card_raises_not_found(session) -> None:
    card_id = add_card(session).id
    CardService(session).delete(card_id)

    with pytest.raises(NotFound) as exc_info:
        CardService(session).get(card_id)
    assert exc_info.value.code == "CARD_NOT_FOUND"


def test_card_with_expenses_cannot_be_deleted_until_they_are_removed(session) -> None:
    card = add_card(session)
    category = add_category(session)
    expense = add_expense(session, card, category, 1500, yesterday())

    assert has_associated_expenses(session, card.id, EntityKind.card)
    with pytest.raises(Conflict) as exc_info:
        CardService(session).delete(card.id)
    assert exc_info.value.code == "CARD_HAS_EXPENSES"
    assert ExpenseService(session).get(expense.id).card_id == card.id

    ExpenseService(session).delete(expense.id)
    assert not has_associated_expenses(session, card.id, EntityKind.card)
    CardService(session).delete(card.id)
    assert CardService(session).list_all() == []
