import pytest

from models import ActorRole, DeliveryType, FulfillmentMode, OrderStatus, RunnerAvailability
from services import IllegalTransition, StaleState, Unauthorized
from services.status_machine import GRAPHS, NETWORK_DELIVERY_PATH, successors
from tests.conftest import BUYER, SELLER

S = OrderStatus


@pytest.fixture
def claimed(claims, make_order, make_runner):
    """A network delivery order held by an online runner."""
    def _claimed(delivery_type=DeliveryType.DELIVERY):
        runner = make_runner()
        order = make_order(FulfillmentMode.NETWORK, delivery_type)
        return claims.claim(order.id, runner.runner_id).order, runner
    return _claimed


class TestGraphs:
    def test_every_open_status_can_cancel(self):
        for graph in GRAPHS.values():
            for status, following in graph.items():
                if status not in (S.DELIVERED, S.CANCELLED):
                    assert S.CANCELLED in following

    def test_terminal_statuses_have_no_edges(self):
        for graph in GRAPHS.values():
            assert graph[S.DELIVERED] == frozenset()
            assert graph[S.CANCELLED] == frozenset()

    def test_network_pending_only_cancels(self):
        graph = GRAPHS[(FulfillmentMode.NETWORK, DeliveryType.DELIVERY)]
        assert graph[S.PENDING] == frozenset({S.CANCELLED})

    def test_network_pickup_skips_transit(self):
        graph = GRAPHS[(FulfillmentMode.NETWORK, DeliveryType.PICKUP)]
        assert graph[S.ACCEPTED] == frozenset({S.READY, S.CANCELLED})
        assert S.PICKED_UP not in graph


class TestNetworkDelivery:
    def test_full_path(self, machine, runners, claimed):
        order, runner = claimed()
        assert runners.get(runner.runner_id).availability == RunnerAvailability.BUSY

        for target in NETWORK_DELIVERY_PATH[1:]:
            result = machine.transition(order.id, runner.runner_id, ActorRole.RUNNER, target)
            assert result.changed
            assert result.event.status == target
            order = result.order

        assert order.status == S.DELIVERED
        assert order.accepted_at <= order.picked_up_at <= order.delivered_at
        assert result.runner_released is True

        after = runners.get(runner.runner_id)
        assert after.availability == RunnerAvailability.ONLINE
        assert after.total_deliveries == 1
        assert after.total_earnings_cents == order.delivery_fee_cents

        timeline = [e.status for e in machine.store.list_events(order.id)]
        assert timeline == [S.PENDING, *NETWORK_DELIVERY_PATH]

    def test_cannot_skip_steps(self, machine, claimed):
        order, runner = claimed()
        with pytest.raises(IllegalTransition):
            machine.transition(order.id, runner.runner_id, ActorRole.RUNNER, S.DELIVERED)
        assert machine.store.get_order(order.id).status == S.ACCEPTED

    def test_every_non_edge_is_rejected(self, machine, claimed):
        order, runner = claimed()
        for target in set(S) - successors(order) - {order.status}:
            with pytest.raises(IllegalTransition):
                machine.transition(order.id, runner.runner_id, ActorRole.RUNNER, target)

    def test_repeat_request_is_a_no_op(self, machine, claimed):
        order, runner = claimed()
        machine.transition(order.id, runner.runner_id, ActorRole.RUNNER, S.PICKED_UP)

        result = machine.transition(order.id, runner.runner_id, ActorRole.RUNNER, S.PICKED_UP)

        assert not result.changed
        assert result.order.status == S.PICKED_UP
        assert len(machine.store.list_events(order.id)) == 3

    def test_picked_up_at_is_never_rewritten(self, machine, claimed):
        order, runner = claimed()
        picked = machine.transition(order.id, runner.runner_id, ActorRole.RUNNER, S.PICKED_UP).order
        machine.transition(order.id, runner.runner_id, ActorRole.RUNNER, S.ON_THE_WAY)
        done = machine.transition(order.id, runner.runner_id, ActorRole.RUNNER, S.DELIVERED).order

        assert done.picked_up_at == picked.picked_up_at
        assert done.accepted_at == order.accepted_at

    def test_buyer_cannot_drive_delivery(self, machine, claimed):
        order, _ = claimed()
        with pytest.raises(Unauthorized):
            machine.transition(order.id, BUYER, ActorRole.BUYER, S.PICKED_UP)

    def test_other_runner_is_not_a_party(self, machine, claimed, make_runner):
        order, _ = claimed()
        intruder = make_runner()
        with pytest.raises(Unauthorized):
            machine.transition(order.id, intruder.runner_id, ActorRole.RUNNER, S.PICKED_UP)

    def test_pending_accept_goes_through_claims(self, machine, make_order):
        order = make_order()
        with pytest.raises(IllegalTransition):
            machine.transition(order.id, "ops", ActorRole.SYSTEM, S.ACCEPTED)

    def test_estimate_only_on_accept(self, machine, claimed):
        order, runner = claimed()
        with pytest.raises(IllegalTransition):
            machine.transition(order.id, runner.runner_id, ActorRole.RUNNER, S.PICKED_UP,
                               estimated_minutes=10)


class TestNetworkPickup:
    def test_path(self, machine, claimed):
        order, runner = claimed(DeliveryType.PICKUP)

        with pytest.raises(IllegalTransition):
            machine.transition(order.id, runner.runner_id, ActorRole.RUNNER, S.PICKED_UP)

        machine.transition(order.id, runner.runner_id, ActorRole.RUNNER, S.READY)
        done = machine.transition(order.id, runner.runner_id, ActorRole.RUNNER, S.DELIVERED).order
        assert done.status == S.DELIVERED
        assert done.picked_up_at is None


class TestCancellation:
    def test_buyer_cancels_pending_order(self, machine, make_order):
        order = make_order()
        result = machine.transition(order.id, BUYER, ActorRole.BUYER, S.CANCELLED)

        assert result.order.status == S.CANCELLED
        assert result.order.cancelled_at is not None
        assert result.runner_released is None

    def test_nothing_after_cancel(self, machine, make_order):
        order = make_order()
        machine.transition(order.id, BUYER, ActorRole.BUYER, S.CANCELLED)

        with pytest.raises(IllegalTransition):
            machine.transition(order.id, "ops", ActorRole.SYSTEM, S.DELIVERED)

    def test_cancel_retry_succeeds(self, machine, make_order):
        order = make_order()
        machine.transition(order.id, BUYER, ActorRole.BUYER, S.CANCELLED)
        assert not machine.transition(order.id, BUYER, ActorRole.BUYER, S.CANCELLED).changed

    def test_runner_cancel_frees_runner_without_credit(self, machine, runners, claimed):
        order, runner = claimed()
        result = machine.transition(order.id, runner.runner_id, ActorRole.RUNNER, S.CANCELLED)

        assert result.runner_released is True
        assert result.order.runner_id == runner.runner_id
        after = runners.get(runner.runner_id)
        assert after.availability == RunnerAvailability.ONLINE
        assert after.total_deliveries == 0

    def test_system_cancels_in_flight_order(self, machine, claimed):
        order, runner = claimed()
        machine.transition(order.id, runner.runner_id, ActorRole.RUNNER, S.PICKED_UP)
        result = machine.transition(order.id, "ops", ActorRole.SYSTEM, S.CANCELLED)
        assert result.order.status == S.CANCELLED

    def test_seller_cannot_cancel_network_order(self, machine, claimed):
        order, _ = claimed()
        with pytest.raises(Unauthorized):
            machine.transition(order.id, SELLER, ActorRole.SELLER, S.CANCELLED)


class TestMerchantFulfilled:
    @pytest.mark.parametrize("delivery_type", [DeliveryType.DELIVERY, DeliveryType.PICKUP])
    def test_seller_drives_every_step(self, machine, make_order, delivery_type):
        order = make_order(FulfillmentMode.MERCHANT, delivery_type)

        accepted = machine.transition(order.id, SELLER, ActorRole.SELLER, S.ACCEPTED,
                                      estimated_minutes=25).order
        assert accepted.estimated_minutes == 25
        assert accepted.accepted_at is not None

        for target in (S.READY, S.ON_THE_WAY, S.DELIVERED):
            order = machine.transition(order.id, SELLER, ActorRole.SELLER, target).order

        assert order.status == S.DELIVERED
        assert order.runner_id is None

    def test_buyer_cannot_accept(self, machine, make_order):
        order = make_order(FulfillmentMode.MERCHANT)
        with pytest.raises(Unauthorized):
            machine.transition(order.id, BUYER, ActorRole.BUYER, S.ACCEPTED)

    def test_no_picked_up_status(self, machine, make_order):
        order = make_order(FulfillmentMode.MERCHANT)
        machine.transition(order.id, SELLER, ActorRole.SELLER, S.ACCEPTED)
        with pytest.raises(IllegalTransition):
            machine.transition(order.id, SELLER, ActorRole.SELLER, S.PICKED_UP)

    def test_seller_may_cancel(self, machine, make_order):
        order = make_order(FulfillmentMode.MERCHANT)
        assert machine.transition(order.id, SELLER, ActorRole.SELLER, S.CANCELLED).changed


def test_lost_race_surfaces_stale_state(machine, claimed, monkeypatch):
    order, runner = claimed()
    snapshot = machine.store.get_order(order.id)
    machine.transition(order.id, runner.runner_id, ActorRole.RUNNER, S.PICKED_UP)

    # The machine decides on a read taken before the concurrent transition
    monkeypatch.setattr(machine.store, "get_order", lambda order_id: snapshot)
    with pytest.raises(StaleState):
        machine.transition(order.id, "ops", ActorRole.SYSTEM, S.CANCELLED)

    monkeypatch.undo()
    assert machine.store.get_order(order.id).status == S.PICKED_UP
