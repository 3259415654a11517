import pytest
from fastapi.testclient import TestClient

from api.main import app, state
from db import get_cursor
from services.access import PRIVATE_PICKUP_ADDRESS
from services.tracking import DEFAULT_STALE_AFTER_SECONDS
from tests.conftest import BUYER, SELLER, build_spec


@pytest.fixture
def client(db_path):
    state.configure(db_path)
    with TestClient(app) as test_client:
        yield test_client
    state.configure(None)
    state.location_stale_after_seconds = DEFAULT_STALE_AFTER_SECONDS
    state.available_orders_page_size = 20


@pytest.fixture
def new_order(client):
    def _new(**overrides):
        response = client.post("/orders", json=build_spec(**overrides).model_dump(mode="json"))
        assert response.status_code == 201
        return response.json()
    return _new


@pytest.fixture
def online_runner(client):
    def _online(name="Jordan P."):
        runner = client.post("/runners", json={"display_name": name}).json()
        response = client.patch(f"/runners/{runner['runner_id']}/availability", json={"availability": "online"})
        assert response.status_code == 200
        return runner["runner_id"]
    return _online


def test_health(client):
    assert client.get("/").json()["status"] == "ok"


def test_create_and_get_order(client, new_order):
    order = new_order()
    assert order["status"] == "pending"
    assert order["order_number"].startswith("DD")

    seller_view = client.get(f"/orders/{order['id']}", params={"viewer_id": SELLER}).json()
    assert seller_view["pickup_address"] == order["pickup_address"]

    buyer_view = client.get(f"/orders/{order['id']}", params={"viewer_id": BUYER}).json()
    assert buyer_view["pickup_address"] == PRIVATE_PICKUP_ADDRESS
    assert buyer_view["pickup_lat"] is None


def test_invalid_order_is_rejected(client):
    payload = build_spec().model_dump(mode="json")
    payload["total_cents"] = 1
    assert client.post("/orders", json=payload).status_code == 422


def test_missing_order(client):
    response = client.get("/orders/999")
    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "OrderNotFound"


def test_available_orders_show_pickup_to_online_runner(client, new_order, online_runner):
    order = new_order()
    runner_id = online_runner()

    listed = client.get("/orders/available", params={"runner_id": runner_id}).json()
    assert [o["id"] for o in listed] == [order["id"]]
    assert listed[0]["pickup_address"] == order["pickup_address"]


def test_claim_race_and_delivery(client, new_order, online_runner):
    order = new_order()
    r1, r2 = online_runner("R1"), online_runner("R2")

    won = client.post(f"/orders/{order['id']}/claim", json={"runner_id": r1, "estimated_minutes": 12})
    assert won.status_code == 200
    assert won.json()["order"]["runner_id"] == r1

    lost = client.post(f"/orders/{order['id']}/claim", json={"runner_id": r2})
    assert lost.status_code == 409
    assert lost.json()["detail"]["error"] == "OrderUnavailable"

    skipped = client.post(f"/orders/{order['id']}/transition",
                          json={"actor_id": r1, "actor_role": "runner", "target": "delivered"})
    assert skipped.status_code == 409
    assert skipped.json()["detail"]["error"] == "IllegalTransition"

    assert client.get(f"/runners/{r1}").json()["availability"] == "busy"
    assert [o["id"] for o in client.get(f"/runners/{r1}/orders").json()] == [order["id"]]

    for target in ("picked_up", "on_the_way", "delivered"):
        response = client.post(f"/orders/{order['id']}/transition",
                               json={"actor_id": r1, "actor_role": "runner", "target": target})
        assert response.status_code == 200
        assert response.json()["changed"] is True

    again = client.post(f"/orders/{order['id']}/transition",
                        json={"actor_id": r1, "actor_role": "runner", "target": "delivered"})
    assert again.status_code == 200
    assert again.json()["changed"] is False

    events = client.get(f"/orders/{order['id']}/events").json()
    assert [e["status"] for e in events] == ["pending", "accepted", "picked_up", "on_the_way", "delivered"]
    newest = client.get(f"/orders/{order['id']}/events", params={"after_id": events[-2]["id"]}).json()
    assert [e["status"] for e in newest] == ["delivered"]

    runner = client.get(f"/runners/{r1}").json()
    assert runner["availability"] == "online"
    assert runner["total_deliveries"] == 1


def test_repeat_transition_reports_unchanged(client, new_order):
    order = new_order()
    body = {"actor_id": BUYER, "actor_role": "buyer", "target": "cancelled"}
    assert client.post(f"/orders/{order['id']}/transition", json=body).json()["changed"] is True
    assert client.post(f"/orders/{order['id']}/transition", json=body).json()["changed"] is False


def test_stranger_cannot_transition(client, new_order):
    order = new_order()
    response = client.post(f"/orders/{order['id']}/transition",
                           json={"actor_id": "stranger", "actor_role": "buyer", "target": "cancelled"})
    assert response.status_code == 403
    assert response.json()["detail"]["error"] == "Unauthorized"


def test_location_publish_and_read(client, new_order, online_runner):
    order = new_order()
    runner_id = online_runner()
    client.post(f"/orders/{order['id']}/claim", json={"runner_id": runner_id})

    published = client.post(f"/orders/{order['id']}/location",
                            json={"runner_id": runner_id, "lat": 37.87, "lng": -122.259, "speed": 3.5})
    assert published.status_code == 204

    location = client.get(f"/orders/{order['id']}/location", params={"requester_id": BUYER})
    assert location.status_code == 200
    assert location.json()["speed_mps"] == 3.5
    assert location.json()["is_stale"] is False

    refused = client.get(f"/orders/{order['id']}/location", params={"requester_id": SELLER})
    assert refused.status_code == 403
    assert refused.json()["detail"]["error"] == "NotVisible"


def test_location_publish_outside_window(client, new_order):
    order = new_order()
    response = client.post(f"/orders/{order['id']}/location",
                           json={"runner_id": "runner-x", "lat": 37.87, "lng": -122.259})
    assert response.status_code == 403
    assert response.json()["detail"]["error"] == "NotWritable"


def test_runner_cannot_pick_busy(client):
    runner = client.post("/runners", json={"display_name": "Casey"}).json()
    response = client.patch(f"/runners/{runner['runner_id']}/availability", json={"availability": "busy"})
    assert response.status_code == 403


def test_order_history(client, new_order):
    order = new_order()
    assert [o["id"] for o in client.get("/orders", params={"user_id": BUYER}).json()] == [order["id"]]
    assert client.get("/orders", params={"user_id": "x", "role": "system"}).status_code == 400


def test_order_history_skips_corrupt_order(client, db_path, new_order):
    healthy, broken = new_order(), new_order()
    with get_cursor(db_path) as cursor:
        cursor.execute("UPDATE delivery_orders SET status = 'accepted' WHERE id = ?", (broken["id"],))

    history = client.get("/orders", params={"user_id": BUYER})
    assert history.status_code == 200
    assert [o["id"] for o in history.json()] == [healthy["id"]]
    assert client.get(f"/orders/{broken['id']}").status_code == 500


def test_stats_and_config(client, new_order):
    new_order()
    stats = client.get("/stats").json()
    assert stats["delivery_orders"] == 1
    assert stats["status_events"] == 1

    updated = client.patch("/services/config", json={"location_stale_after_seconds": 30})
    assert updated.json()["location_stale_after_seconds"] == 30
    assert client.get("/status").json()["location_stale_after_seconds"] == 30
