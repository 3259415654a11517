"""
Access rules for the delivery lifecycle.

Pure predicates over order and runner state. Claims, transitions and
location access all go through these so the merchant-fulfilled and
network-fulfilled modes cannot drift apart in what they allow.
"""

from models import (
    ActorRole,
    DeliveryOrder,
    FulfillmentMode,
    OrderStatus,
    Runner,
    RunnerAvailability,
    TERMINAL_STATUSES,
)


# Statuses during which the assigned runner may publish a position:
# from claim until the item is in hand.
WRITABLE_LOCATION_STATUSES = frozenset({OrderStatus.ACCEPTED, OrderStatus.PICKED_UP})

PRIVATE_PICKUP_ADDRESS = "Private pickup location"


def is_assigned_runner(actor_id: str, order: DeliveryOrder) -> bool:
    return order.runner_id is not None and actor_id == order.runner_id


def is_party(actor_id: str, role: ActorRole, order: DeliveryOrder) -> bool:
    """Whether the actor, acting in `role`, is involved in this order at all."""
    if role == ActorRole.SYSTEM:
        return True
    if role == ActorRole.BUYER:
        return actor_id == order.buyer_id
    if role == ActorRole.SELLER:
        return actor_id == order.seller_id
    if role == ActorRole.RUNNER:
        return is_assigned_runner(actor_id, order)
    return False


def can_claim(runner: Runner | None, order: DeliveryOrder) -> bool:
    if runner is None:
        return False
    return (
        order.fulfillment_mode == FulfillmentMode.NETWORK
        and order.status == OrderStatus.PENDING
        and order.runner_id is None
        and runner.availability == RunnerAvailability.ONLINE
        and runner.runner_id not in (order.buyer_id, order.seller_id)
    )


def can_transition(actor_id: str, role: ActorRole, order: DeliveryOrder,
                   target: OrderStatus) -> bool:
    """Who may drive `order` to `target`. Graph legality is checked separately."""
    if order.status in TERMINAL_STATUSES:
        return False
    if not is_party(actor_id, role, order):
        return False

    if target == OrderStatus.CANCELLED:
        if role in (ActorRole.BUYER, ActorRole.SYSTEM):
            return True
        if order.fulfillment_mode == FulfillmentMode.NETWORK:
            return role == ActorRole.RUNNER
        return role == ActorRole.SELLER

    if order.fulfillment_mode == FulfillmentMode.NETWORK:
        return role == ActorRole.RUNNER and order.status != OrderStatus.PENDING
    return role == ActorRole.SELLER


def can_write_location(runner_id: str, order: DeliveryOrder) -> bool:
    return (
        order.fulfillment_mode == FulfillmentMode.NETWORK
        and is_assigned_runner(runner_id, order)
        and order.status in WRITABLE_LOCATION_STATUSES
    )


def can_read_location(requester_id: str, order: DeliveryOrder) -> bool:
    # Sellers are not tracking subscribers.
    return requester_id == order.buyer_id or is_assigned_runner(requester_id, order)


def can_view_pickup(viewer_id: str | None, order: DeliveryOrder,
                    runner: Runner | None = None) -> bool:
    """Exact pickup spot is shown to the seller, the assigned runner, and online
    runners browsing a claimable order."""
    if viewer_id is None:
        return False
    if viewer_id == order.seller_id or is_assigned_runner(viewer_id, order):
        return True
    return (
        runner is not None
        and runner.runner_id == viewer_id
        and can_claim(runner, order)
    )


def mask_pickup(order: DeliveryOrder) -> DeliveryOrder:
    return order.model_copy(update={
        "pickup_address": PRIVATE_PICKUP_ADDRESS,
        "pickup_lat": None,
        "pickup_lng": None,
    })


def check_invariants(order: DeliveryOrder) -> list[str]:
    """Return the lifecycle invariants this stored order violates."""
    problems = []
    if order.fulfillment_mode == FulfillmentMode.MERCHANT:
        if order.runner_id is not None:
            problems.append("merchant-fulfilled order has a runner")
    else:
        if order.status == OrderStatus.PENDING and order.runner_id is not None:
            problems.append("pending order already has a runner")
        if order.status not in (OrderStatus.PENDING, OrderStatus.CANCELLED) and order.runner_id is None:
            problems.append(f"{order.status.value} order has no runner")

    stamps = [
        ("created_at", order.created_at),
        ("accepted_at", order.accepted_at),
        ("picked_up_at", order.picked_up_at),
        ("delivered_at", order.delivered_at),
    ]
    previous_name, previous = stamps[0]
    for name, value in stamps[1:]:
        if value is None:
            continue
        if value < previous:
            problems.append(f"{name} precedes {previous_name}")
        previous_name, previous = name, value
    return problems
