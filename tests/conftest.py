from decimal import Decimal
from uuid import uuid4

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from modules.core.authentication import Actor, ActorRole
from modules.orders.constants import PaymentMethod
from modules.orders.dtos import CreateOrderDTO, CreateOrderItemDTO, ShippingInfoDTO
from modules.orders.gateways import SimulatedPaymentGateway
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.products.models import Product, ProductStatus, QualityGrade
from modules.products.repositories.django_repository import ProductDjangoRepository


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture(autouse=True)
def _reset_throttles():
    """Throttle counters live in the cache; start every test from zero."""
    cache.clear()
    yield
    cache.clear()


# ---------------------------------------------------------------------------
# Actors
# ---------------------------------------------------------------------------


@pytest.fixture()
def buyer():
    return Actor(id=uuid4(), role=ActorRole.BUYER)


@pytest.fixture()
def other_buyer():
    return Actor(id=uuid4(), role=ActorRole.BUYER)


@pytest.fixture()
def farmer():
    return Actor(id=uuid4(), role=ActorRole.FARMER)


@pytest.fixture()
def transporter():
    return Actor(id=uuid4(), role=ActorRole.TRANSPORTER)


@pytest.fixture()
def admin():
    return Actor(id=uuid4(), role=ActorRole.ADMIN)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_product(farmer):
    def _make(**overrides):
        fields = {
            "farmer_id": farmer.id,
            "name": "Alphonso Mangoes",
            "images": ["https://cdn.example.com/mangoes.jpg"],
            "price_per_unit": Decimal("250.00"),
            "unit": "kg",
            "available_stock": Decimal("10.00"),
            "quality_grade": QualityGrade.PREMIUM,
            "organic": True,
            "status": ProductStatus.ACTIVE,
        }
        fields.update(overrides)
        return Product.objects.create(**fields)

    return _make


@pytest.fixture()
def product(make_product):
    return make_product()


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


@pytest.fixture()
def gateway():
    return SimulatedPaymentGateway()


@pytest.fixture()
def order_service(gateway):
    return OrderService(
        order_repository=OrderDjangoRepository(),
        product_repository=ProductDjangoRepository(),
        payment_gateway=gateway,
    )


@pytest.fixture()
def shipping():
    return ShippingInfoDTO(
        address="12 Orchard Lane",
        city="Pune",
        state="Maharashtra",
        zip_code="411001",
    )


@pytest.fixture()
def order_dto(product, shipping):
    """Four units of the default product: sub_total 1000.00."""

    def _build(items=None, city=None):
        return CreateOrderDTO(
            shipping=shipping.model_copy(update={"city": city}) if city else shipping,
            payment_method=PaymentMethod.UPI,
            items=items or [CreateOrderItemDTO(product_id=product.id, quantity=4)],
        )

    return _build


@pytest.fixture()
def placed_order(order_service, buyer, order_dto):
    """A freshly created ``pending`` order view."""
    return order_service.create_order(buyer, order_dto())


# ---------------------------------------------------------------------------
# API clients
# ---------------------------------------------------------------------------


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def client_for():
    """Build an APIClient authenticated as the given actor."""

    def _client(actor):
        client = APIClient()
        client.force_authenticate(user=actor)
        return client

    return _client


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid
