import uuid
import random
from .base import BaseGenerator
from .geofence import get_all_zones, get_zone_weights, random_point_in_zone
from models import DeliveryOrder, DeliveryType, FulfillmentMode, OrderSpec
from services.order_store import OrderStore


class OrderGenerator(BaseGenerator):
    """Generates checkout output: delivery orders for campus listings."""

    LISTING_TITLES = [
        "Mini fridge", "Desk lamp", "Calculus textbook", "Homemade cookies (dozen)",
        "Microwave", "Bike lock", "Graphing calculator", "Futon", "Coffee maker",
        "Box fan", "Rice cooker", "Lab goggles", "Monitor (24in)", "Banana bread",
        "Shower caddy", "Mechanical keyboard",
    ]

    FULFILLMENT_MODES = [
        (FulfillmentMode.NETWORK, 0.65),
        (FulfillmentMode.MERCHANT, 0.35),
    ]

    DELIVERY_TYPES = [
        (DeliveryType.DELIVERY, 0.75),
        (DeliveryType.PICKUP, 0.25),
    ]

    TAX_RATE = 0.0875
    BASE_DELIVERY_FEE_CENTS = 299
    SMALL_ORDER_FEE_CENTS = 99
    SMALL_ORDER_THRESHOLD_CENTS = 1000

    def __init__(self, seed: int | None = 42, db_path=None):
        super().__init__(seed, db_path)
        self.zones = get_all_zones()
        self.store = OrderStore(db_path)

    def _get_delivery_fee_cents(self, subtotal_cents: int, delivery_type: DeliveryType) -> int:
        if delivery_type == DeliveryType.PICKUP:
            return 0
        fee = self.BASE_DELIVERY_FEE_CENTS
        if subtotal_cents < self.SMALL_ORDER_THRESHOLD_CENTS:
            fee += self.SMALL_ORDER_FEE_CENTS
        return fee

    def generate_one(self, buyer_id: str | None = None, seller_id: str | None = None,
                     fulfillment_mode: FulfillmentMode | None = None,
                     delivery_type: DeliveryType | None = None) -> OrderSpec:
        zone = random.choices(self.zones, weights=get_zone_weights())[0]
        pickup_lat, pickup_lng = random_point_in_zone(zone, spread=0.6)
        delivery_lat, delivery_lng = random_point_in_zone(zone)

        delivery_type = delivery_type or self._weighted_choice(self.DELIVERY_TYPES)
        subtotal_cents = random.choice(range(300, 15000, 25))
        tax_cents = round(subtotal_cents * self.TAX_RATE)
        fee_cents = self._get_delivery_fee_cents(subtotal_cents, delivery_type)

        building = random.choice(zone["buildings"])
        is_delivery = delivery_type == DeliveryType.DELIVERY

        return OrderSpec(
            buyer_id=buyer_id or str(uuid.uuid4()),
            seller_id=seller_id or str(uuid.uuid4()),
            fulfillment_mode=fulfillment_mode or self._weighted_choice(self.FULFILLMENT_MODES),
            delivery_type=delivery_type,
            listing_id=random.randint(1, 50000),
            listing_title=random.choice(self.LISTING_TITLES),
            pickup_address=f"{self.fake.street_address()}, {zone['campus']}",
            pickup_lat=pickup_lat,
            pickup_lng=pickup_lng,
            delivery_address=f"{building} room {random.randint(100, 899)}" if is_delivery else None,
            delivery_lat=delivery_lat if is_delivery else None,
            delivery_lng=delivery_lng if is_delivery else None,
            subtotal_cents=subtotal_cents,
            tax_cents=tax_cents,
            delivery_fee_cents=fee_cents,
            total_cents=subtotal_cents + tax_cents + fee_cents,
        )

    def save_to_db(self, records: list[OrderSpec]) -> list[DeliveryOrder]:
        orders = [self.store.create_order(spec) for spec in records]
        print(f"Saved {len(orders)} delivery orders")
        return orders
