from __future__ import annotations

import copy
import os
import tempfile
from decimal import Decimal

# Settings are read on first import, so the environment goes first
os.environ["ENV_MODE"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"
os.environ["DATA_DIRECTORY"] = tempfile.mkdtemp(prefix="tableside-tests-")

import httpx  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from tableside.core.config import get_settings  # noqa: E402

get_settings.cache_clear()

from tableside import main, tasks  # noqa: E402
from tableside.database import build_engine, build_session_maker, get_db, init_db  # noqa: E402
from tableside.services import restaurants, tables  # noqa: E402
from tableside.services.menu import create_item  # noqa: E402
from tableside.services.notifications import MockNotificationService  # noqa: E402
from tableside.services.payment import MockPaymentService  # noqa: E402
from tableside.services.pricing import (  # noqa: E402
    CatalogItem,
    CustomizationGroup,
    CustomizationOption,
    MenuCatalog,
    SelectionType,
)

PIZZA = {
    "name": "Margherita Pizza",
    "description": "Fresh mozzarella, tomato sauce, basil",
    "price": "10.00",
    "category": "pizza",
    "allergens": ["dairy", "gluten"],
    "customizations": [
        {
            "name": "Crust Type",
            "type": "single",
            "required": True,
            "options": [{"name": "Thin", "price": "0"}, {"name": "Thick", "price": "1.50"}],
        },
        {
            "name": "Toppings",
            "type": "multi",
            "max_selections": 2,
            "options": [
                {"name": "Olives", "price": "0.75"},
                {"name": "Basil", "price": "0.50"},
                {"name": "Mushrooms", "price": "1.00"},
            ],
        },
    ],
}

SALAD = {
    "name": "Caesar Salad",
    "description": "Romaine, parmesan, croutons",
    "price": "5.00",
    "category": "salads",
}


def build_catalog() -> MenuCatalog:
    """Pure catalog used by pricing tests: a $10 pizza, a $5 salad, a sold-out soup."""
    crust = CustomizationGroup(
        id="crust",
        name="Crust Type",
        selection_type=SelectionType.SINGLE,
        required=True,
        options=(
            CustomizationOption("Thin", Decimal("0")),
            CustomizationOption("Thick", Decimal("1.50")),
        ),
    )
    toppings = CustomizationGroup(
        id="toppings",
        name="Toppings",
        selection_type=SelectionType.MULTI,
        max_selections=2,
        options=(
            CustomizationOption("Olives", Decimal("0.75")),
            CustomizationOption("Basil", Decimal("0.50")),
            CustomizationOption("Mushrooms", Decimal("1.00")),
        ),
    )
    return MenuCatalog([
        CatalogItem(
            id="pizza",
            name="Margherita Pizza",
            price=Decimal("10.00"),
            category="pizza",
            allergens=frozenset({"dairy", "gluten"}),
            customizations=(crust, toppings),
        ),
        CatalogItem(id="salad", name="Caesar Salad", price=Decimal("5.00"), category="salads"),
        CatalogItem(
            id="soup", name="Tomato Soup", price=Decimal("6.00"), category="soups", available=False
        ),
    ])


@pytest.fixture()
def pizza_payload() -> dict:
    return copy.deepcopy(PIZZA)


@pytest.fixture()
def catalog() -> MenuCatalog:
    return build_catalog()


@pytest.fixture()
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'tableside.db'}", poolclass=NullPool)
    await init_db(bind=engine)
    yield engine
    await engine.dispose()


@pytest.fixture()
async def db(engine):
    async with build_session_maker(engine)() as session:
        yield session


TABLE_NUMBERS = [f"T{n}" for n in range(1, 13)]


@pytest.fixture()
async def restaurant(db):
    """Trattoria Roma at 8% tax with tables T1..T12 registered."""
    restaurant = await restaurants.create_restaurant(db, "Trattoria Roma", tax_rate=Decimal("0.08"))
    for number in TABLE_NUMBERS:
        await tables.add_table(db, restaurant.id, number, capacity=4)
    return restaurant


@pytest.fixture()
async def menu_items(db, restaurant):
    pizza = await create_item(db, restaurant.id, dict(PIZZA))
    salad = await create_item(db, restaurant.id, dict(SALAD))
    return {"pizza": pizza, "salad": salad}


@pytest.fixture()
def payment_service() -> MockPaymentService:
    return MockPaymentService(failure_rate=0.0, min_latency=0, max_latency=0)


@pytest.fixture()
def notifications(monkeypatch) -> MockNotificationService:
    service = MockNotificationService(failure_rate=0.0, max_latency=0)
    monkeypatch.setattr(tasks, "get_notification_service", lambda: service)
    monkeypatch.setattr(main, "get_notification_service", lambda: service)
    return service


@pytest.fixture()
async def client(engine, payment_service, notifications):
    session_maker = build_session_maker(engine)

    async def override_get_db():
        async with session_maker() as session:
            yield session

    main.app.dependency_overrides[get_db] = override_get_db
    main.app.dependency_overrides[main.get_payment] = lambda: payment_service

    transport = httpx.ASGITransport(app=main.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    main.app.dependency_overrides.clear()


@pytest.fixture()
async def seeded(client):
    """A restaurant with tables T1..T12 and the pizza and salad on its menu, created through the API."""
    response = await client.post("/restaurants", json={"name": "Trattoria Roma", "tax_rate": "0.08"})
    restaurant_id = response.json()["data"]["id"]
    for number in TABLE_NUMBERS:
        await client.post(
            f"/restaurants/{restaurant_id}/tables", json={"table_number": number, "capacity": 4}
        )

    ids = {}
    for key, item in (("pizza", PIZZA), ("salad", SALAD)):
        response = await client.post(f"/restaurants/{restaurant_id}/menu/items", json=item)
        ids[key] = response.json()["data"]["id"]
    return {"restaurant_id": restaurant_id, **ids}
