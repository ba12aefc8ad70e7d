# tests/test_api.py
# HTTP surface through ASGITransport. Services are placed on app.state
# directly, so the lifespan (database, watchers, scheduler) never runs.

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from incident_desk.main import app

from tests.conftest import ADMIN, IT_TECH, MAN_TECH, PRIMARY, REPORTER, SEG_GUARD, STRANGER

STATE_NAMES = (
    "classification_service",
    "ticket_store",
    "coordinator",
    "event_router",
    "keyword_manager",
    "user_manager",
)


@pytest_asyncio.fixture
async def client(store, classification, coordinator, event_router):
    app.state.classification_service = classification
    app.state.ticket_store = store
    app.state.coordinator = coordinator
    app.state.event_router = event_router
    app.state.keyword_manager = None
    app.state.user_manager = None
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    for name in STATE_NAMES:
        setattr(app.state, name, None)


async def submit(client, text, reporter=REPORTER):
    resp = await client.post("/incidents", json={
        "text": text,
        "reporter_id": reporter,
        "origin_channel": PRIMARY,
    })
    assert resp.status_code == 201
    return resp.json()


@pytest.mark.asyncio
async def test_submit_and_fetch_ticket(client):
    data = await submit(client, "No hay internet en la 1203")

    assert data["needs_clarification"] is False
    assert data["tier"] == "keywords"
    ticket = data["ticket"]
    assert ticket["categories"] == ["it"]
    assert ticket["state"] == "pending"
    assert ticket["phase"] == "0/1"

    resp = await client.get(f"/incidents/{ticket['id']}")
    assert resp.status_code == 200
    assert resp.json()["description"] == "No hay internet en la 1203"


@pytest.mark.asyncio
async def test_unclassified_submission_creates_nothing(client):
    data = await submit(client, "Hola, buenas tardes")

    assert data["ticket"] is None
    assert data["needs_clarification"] is True
    resp = await client.get("/incidents")
    assert resp.json()["count"] == 0


@pytest.mark.asyncio
async def test_unknown_ticket_is_404_with_correlation_id(client):
    resp = await client.get("/incidents/999", headers={"X-Correlation-ID": "req-123"})

    assert resp.status_code == 404
    body = resp.json()
    assert body["error_type"] == "ResourceNotFoundException"
    assert body["correlation_id"] == "req-123"
    assert resp.headers["X-Correlation-ID"] == "req-123"


@pytest.mark.asyncio
async def test_confirmation_flow(client):
    ticket = (await submit(client, "Fuga de agua y se fue el wifi"))["ticket"]
    assert ticket["categories"] == ["it", "man"]
    url = f"/incidents/{ticket['id']}/confirmations"

    first = await client.post(url, json={"user_id": IT_TECH, "channel_id": "it@g.us", "comment": "listo"})
    assert first.status_code == 200
    assert first.json()["status"] == "partial"
    assert first.json()["ticket"]["phase"] == "1/2"

    again = await client.post(url, json={"user_id": IT_TECH, "channel_id": "it@g.us"})
    assert again.status_code == 200
    assert again.json()["status"] == "already_confirmed"

    last = await client.post(url, json={"user_id": MAN_TECH, "team": "MAN"})
    assert last.status_code == 200
    body = last.json()
    assert body["status"] == "completed"
    assert body["ticket"]["state"] == "completed"
    assert body["ticket"]["phase"] == "2/2"
    assert len(body["ticket"]["feedback_history"]) == 2


@pytest.mark.asyncio
async def test_confirmation_by_unassigned_team_is_422(client):
    ticket = (await submit(client, "No hay internet"))["ticket"]

    resp = await client.post(
        f"/incidents/{ticket['id']}/confirmations", json={"user_id": SEG_GUARD, "team": "seg"}
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_cancellation_rules(client):
    ticket = (await submit(client, "No hay internet"))["ticket"]
    url = f"/incidents/{ticket['id']}/cancel"

    denied = await client.post(url, json={"requester_id": STRANGER})
    assert denied.status_code == 403

    ok = await client.post(url, json={"requester_id": ADMIN})
    assert ok.status_code == 200
    assert ok.json()["state"] == "cancelled"
    assert ok.json()["cancelled_at"] is not None

    again = await client.post(url, json={"requester_id": REPORTER})
    assert again.status_code == 409


@pytest.mark.asyncio
async def test_feedback_endpoints(client):
    ticket = (await submit(client, "Fuga de agua"))["ticket"]

    asked = await client.post(
        f"/incidents/{ticket['id']}/feedback-requests", json={"requester_id": REPORTER}
    )
    assert asked.json() == {"ticket_id": ticket["id"], "teams_asked": ["man"]}

    resp = await client.post(f"/incidents/{ticket['id']}/feedback", json={
        "team": "man", "comment": "Esperando pieza", "user_id": MAN_TECH,
    })
    assert resp.status_code == 200
    history = resp.json()["feedback_history"]
    assert history[-1]["kind"] == "feedback_response"
    assert history[-1]["comment"] == "Esperando pieza"


@pytest.mark.asyncio
async def test_list_filters(client):
    it_ticket = (await submit(client, "No hay internet"))["ticket"]
    man_ticket = (await submit(client, "Fuga de agua"))["ticket"]
    await client.post(f"/incidents/{it_ticket['id']}/confirmations", json={"user_id": IT_TECH})

    pending = (await client.get("/incidents", params={"state": "pending"})).json()
    assert [t["id"] for t in pending["tickets"]] == [man_ticket["id"]]

    by_team = (await client.get("/incidents", params={"category": "it"})).json()
    assert [t["id"] for t in by_team["tickets"]] == [it_ticket["id"]]

    bad = await client.get("/incidents", params={"state": "archived"})
    assert bad.status_code == 422


@pytest.mark.asyncio
async def test_inbound_chat_events(client):
    created = await client.post("/incidents/events/messages", json={
        "channel_id": PRIMARY,
        "sender_id": REPORTER,
        "text": "Hubo un robo en el estacionamiento",
        "message_id": "wamid.300",
    })
    assert created.json()["action"] == "reported"
    ticket_id = created.json()["ticket_id"]

    confirmed = await client.post("/incidents/events/messages", json={
        "channel_id": "seg@g.us",
        "sender_id": SEG_GUARD,
        "text": "listo",
        "quoted": {"text": f"*Nueva tarea recibida (ID: {ticket_id}):*"},
    })
    assert confirmed.json() == {"action": "confirmed", "ticket_id": ticket_id, "detail": "completed"}

    edited = await client.post("/incidents/events/edits", json={
        "original_msg_id": "wamid.404",
        "new_text": "fuga de agua",
    })
    assert edited.json()["action"] == "ignored"


@pytest.mark.asyncio
async def test_classify_and_reload(client):
    resp = await client.post("/classification/classify", json={"text": "Avisen a sistemas"})
    assert resp.json()["teams"] == ["it"]
    assert resp.json()["tier"] == "explicit"
    assert resp.json()["needs_clarification"] is False

    denied = await client.post("/classification/reload", json={"requester_id": STRANGER})
    assert denied.status_code == 403

    ok = await client.post("/classification/reload", json={"requester_id": ADMIN})
    assert ok.status_code == 200
    assert ok.json()["user_count"] == 6


@pytest.mark.asyncio
async def test_health_and_root(client):
    health = await client.get("/health")
    assert health.status_code == 200
    assert health.json()["status"] == "healthy"
    assert health.json()["checks"]["reminder_scheduler"] == "stopped"

    root = await client.get("/")
    assert "incidents" in root.json()["modules"]


@pytest.mark.asyncio
async def test_services_missing_is_503():
    app.state.coordinator = None
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        resp = await ac.post("/incidents", json={
            "text": "Fuga", "reporter_id": REPORTER, "origin_channel": PRIMARY,
        })
    assert resp.status_code == 503
