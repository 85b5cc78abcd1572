from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, get_db
from schemas import CardIn, CategoryIn, ExpenseIn
from services import CardService, CategoryService, ExpenseService, local_now


@pytest.fixture
def session():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    engine.dispose()


@pytest.fixture
def client():
    from main import app

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        engine.dispose()


def yesterday() -> datetime:
    return local_now().replace(hour=12, minute=0, second=0, microsecond=0) - timedelta(
        days=1
    )


def add_card(session: Session, name: str = "Visa", color: str = "#3B82F6"):
    return CardService(session).create(CardIn(name=name, color=color))


def add_category(
    session: Session, name: str = "Food", color: str = "#10B981", shared: bool = False
):
    return CategoryService(session).create(
        CategoryIn(name=name, color=color, is_shared=shared)
    )


def add_expense(session: Session, card, category, amount, when, description=None):
    return ExpenseService(session).create(
        ExpenseIn(
            amount=amount,
            date=when,
            description=description,
            card_id=card.id,
            category_id=category.id,
        )
    )
