# backend/modules/promotions/tests/conftest.py

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from decimal import Decimal

from core.database import Base
from modules.promotions.models.promotion_models import *  # noqa: F401,F403
from modules.promotions.schemas.promotion_schemas import (
    CartItem,
    PromotionCalculationRequest,
)
from modules.promotions.services.promotion_calculator import PromotionCalculator
from modules.promotions.services.promotion_lookup_service import PromotionLookupService
from modules.promotions.services.promotion_service import PromotionService
from modules.promotions.services.usage_service import PromotionUsageService

from modules.promotions.tests.factories import ALL_FACTORIES, FIXED_NOW, TENANT_ID


@pytest.fixture
def test_engine():
    """Create a fresh in-memory database for each test"""
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(test_engine):
    """Create a database session for testing"""
    TestingSessionLocal = sessionmaker(
        autocommit=False, autoflush=False, bind=test_engine
    )
    session = TestingSessionLocal()
    for factory_class in ALL_FACTORIES:
        factory_class._meta.sqlalchemy_session = session
    try:
        yield session
    finally:
        for factory_class in ALL_FACTORIES:
            factory_class._meta.sqlalchemy_session = None
        session.close()


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def calculator(db_session, fixed_clock):
    return PromotionCalculator(db_session, clock=fixed_clock)


@pytest.fixture
def lookup(db_session):
    return PromotionLookupService(db_session)


@pytest.fixture
def promotion_service(db_session):
    return PromotionService(db_session)


@pytest.fixture
def usage_service(db_session, fixed_clock):
    return PromotionUsageService(db_session, clock=fixed_clock)


@pytest.fixture
def cart_items():
    """Two burgers and a drink; subtotal 50.00"""
    return [
        CartItem(
            menu_item_id="burger",
            name="Burger",
            unit_price=Decimal("20.00"),
            quantity=2,
            category_id="mains",
        ),
        CartItem(
            menu_item_id="soda",
            name="Soda",
            unit_price=Decimal("10.00"),
            quantity=1,
            category_id="drinks",
        ),
    ]


@pytest.fixture
def make_request(cart_items):
    """Build a calculation request for the test tenant"""

    def _make(**overrides):
        data = {
            "tenant_id": TENANT_ID,
            "user_id": "user-1",
            "cart_items": cart_items,
            "subtotal": Decimal("50.00"),
            "delivery_fee": Decimal("5.00"),
            "tax_amount": Decimal("4.00"),
        }
        data.update(overrides)
        return PromotionCalculationRequest(**data)

    return _make
