# tests/conftest.py
import itertools

import pytest

from db import init_database
from models import DeliveryType, FulfillmentMode, OrderSpec, RunnerAvailability
from services import (
    ClaimCoordinator,
    LocationTracker,
    OrderStore,
    RunnerDirectory,
    StatusMachine,
)


BUYER = "buyer-1"
SELLER = "seller-1"

_runner_counter = itertools.count(1)


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "dispatch.db"
    init_database(db_path=path)
    return path


@pytest.fixture
def store(db_path):
    return OrderStore(db_path)


@pytest.fixture
def runners(db_path):
    return RunnerDirectory(db_path)


@pytest.fixture
def machine(store, runners):
    return StatusMachine(store, runners)


@pytest.fixture
def claims(store, runners):
    return ClaimCoordinator(store, runners)


@pytest.fixture
def tracker(store):
    return LocationTracker(store)


def build_spec(mode=FulfillmentMode.NETWORK, delivery_type=DeliveryType.DELIVERY, **overrides) -> OrderSpec:
    fields = dict(
        buyer_id=BUYER,
        seller_id=SELLER,
        fulfillment_mode=mode,
        delivery_type=delivery_type,
        listing_id=7,
        listing_title="Mini fridge",
        pickup_address="2650 Durant Ave",
        pickup_lat=37.8677,
        pickup_lng=-122.2564,
        delivery_address="Unit 2 room 314" if delivery_type == DeliveryType.DELIVERY else None,
        delivery_lat=37.8660 if delivery_type == DeliveryType.DELIVERY else None,
        delivery_lng=-122.2550 if delivery_type == DeliveryType.DELIVERY else None,
        subtotal_cents=4500,
        tax_cents=394,
        delivery_fee_cents=299,
        total_cents=5193,
    )
    fields.update(overrides)
    return OrderSpec(**fields)


@pytest.fixture
def make_order(store):
    def _make(mode=FulfillmentMode.NETWORK, delivery_type=DeliveryType.DELIVERY, **overrides):
        return store.create_order(build_spec(mode, delivery_type, **overrides))
    return _make


@pytest.fixture
def make_runner(runners):
    def _make(availability=RunnerAvailability.ONLINE, name=None):
        n = next(_runner_counter)
        return runners.register(
            name or f"Runner {n}",
            runner_id=f"runner-{n}",
            availability=availability,
        )
    return _make
