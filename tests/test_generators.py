from generators import OrderGenerator, RunnerGenerator
from generators.geofence import get_zone_for_coordinates, haversine_miles
from models import DeliveryType, OrderStatus, RunnerAvailability
from services import OrderStore, RunnerDirectory


def test_orders_add_up_and_stay_on_campus(db_path):
    generator = OrderGenerator(seed=7, db_path=db_path)

    for spec in generator.generate_batch(25):
        assert spec.total_cents == spec.subtotal_cents + spec.tax_cents + spec.delivery_fee_cents
        assert get_zone_for_coordinates(spec.pickup_lat, spec.pickup_lng) is not None
        if spec.delivery_type == DeliveryType.PICKUP:
            assert spec.delivery_fee_cents == 0
            assert spec.delivery_address is None
        else:
            assert spec.delivery_fee_cents >= OrderGenerator.BASE_DELIVERY_FEE_CENTS


def test_saved_orders_are_pending(db_path):
    generator = OrderGenerator(seed=7, db_path=db_path)
    orders = generator.save_to_db(generator.generate_batch(5))

    store = OrderStore(db_path)
    assert len(store.list_by_status(OrderStatus.PENDING)) == 5
    assert all(o.runner_id is None for o in orders)


def test_runners_are_never_busy(db_path):
    generator = RunnerGenerator(seed=7, db_path=db_path)
    generator.save_to_db(generator.generate_batch(20))

    directory = RunnerDirectory(db_path)
    assert directory.list_by_availability(RunnerAvailability.BUSY) == []
    total = (len(directory.list_by_availability(RunnerAvailability.ONLINE))
             + len(directory.list_by_availability(RunnerAvailability.OFFLINE)))
    assert total == 20


def test_haversine_miles():
    # Berkeley to UW campus, roughly 680 miles
    assert 650 < haversine_miles(37.8719, -122.2585, 47.6553, -122.3035) < 710
