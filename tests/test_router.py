# tests/test_router.py
# Identifier resolution and InboundEventRouter intent dispatch.

from pathlib import Path

import pytest

from incident_desk.classification.application import (
    ClassificationService,
    StaticKeywordProvider,
    StaticUserDirectoryProvider,
)
from incident_desk.classification.infrastructure import KeywordConfigManager
from incident_desk.config import ORIGIN_TEAM
from incident_desk.incidents.application import (
    IdentifierResolver,
    InboundEventRouter,
    RouteAction,
    parse_ticket_id,
)
from incident_desk.incidents.application import messages
from incident_desk.incidents.domain import InboundMessage, QuotedMessage, TicketState

from tests.conftest import IT_TECH, MAN_TECH, PRIMARY, REPORTER, STRANGER, USERS

SHIPPED_KEYWORDS = Path(__file__).resolve().parents[1] / "keywords.yaml"


def test_parse_ticket_id_ignores_markup():
    reminder = "*Recordatorio: tarea incompleta*\n\nFuga en cocina\n\n*(ID: 42)*"
    assert parse_ticket_id(reminder) == 42
    assert parse_ticket_id("RESPUESTA DE RETROALIMENTACIÓN\n...\nID: 7") == 7
    assert parse_ticket_id("*ID:* 15") == 15
    assert parse_ticket_id("id: 3") == 3
    assert parse_ticket_id("Sin identificador") is None
    assert parse_ticket_id(None) is None


@pytest.mark.asyncio
async def test_resolver_falls_back_to_message_ids(store):
    ticket = await store.create("Fuga", REPORTER, ["man"], PRIMARY, original_msg_id="wamid.55")
    resolver = IdentifierResolver(store)

    assert await resolver.extract("Nueva tarea recibida (ID: 9)") == 9
    assert await resolver.extract("sin id", quoted_unique_id=ticket.unique_message_id) == ticket.id
    assert await resolver.extract("sin id", quoted_original_id="wamid.55") == ticket.id
    assert await resolver.extract("sin id", "no-such-uuid", "no-such-wamid") is None


@pytest.mark.asyncio
async def test_every_ticket_message_carries_a_resolvable_id(store, clock):
    ticket = await store.create("Fuga", REPORTER, ["man", "it"], PRIMARY, created_at=clock())
    tz = "America/Hermosillo"
    texts = [
        messages.new_task(ticket),
        messages.report_acknowledged(ticket),
        messages.direct_report_notice(ticket, "Pedro"),
        messages.completed_ack(ticket, "Miguel", tz),
        messages.partial_ack(ticket, "Miguel", clock(), tz),
        messages.already_confirmed(ticket, "man"),
        messages.partial_status(ticket, ["Miguel"], clock()),
        messages.cancelled_ack(ticket, "Pedro"),
        messages.cancelled_notice(ticket, "Pedro"),
        messages.feedback_request(ticket, "man"),
        messages.feedback_request_ack(ticket, ["man"]),
        messages.feedback_request_ack(ticket, []),
        messages.feedback_response(ticket, "man", "En camino"),
        messages.feedback_response_ack(ticket),
        messages.origin_comment_ack(ticket),
        messages.recategorized(ticket, ["man"]),
        messages.reminder(ticket, "man", clock(), tz),
    ]
    assert [parse_ticket_id(text) for text in texts] == [ticket.id] * len(texts)


def reply(channel_id, sender_id, text, quoted_text):
    return InboundMessage(
        channel_id=channel_id,
        sender_id=sender_id,
        text=text,
        quoted=QuotedMessage(text=quoted_text),
    )


@pytest.mark.asyncio
async def test_unquoted_message_in_primary_is_a_report(event_router, store):
    result = await event_router.handle_message(
        InboundMessage(channel_id=PRIMARY, sender_id=REPORTER, text="No hay internet en la 1203", message_id="wamid.1")
    )
    assert result.action == RouteAction.REPORTED
    assert (await store.get_by_id(result.ticket_id)).categories == ["it"]


@pytest.mark.asyncio
async def test_unquoted_message_in_team_channel_is_ignored(event_router, transport):
    result = await event_router.handle_message(
        InboundMessage(channel_id="it@g.us", sender_id=IT_TECH, text="buenos días equipo")
    )
    assert result.action == RouteAction.IGNORED
    assert transport.sent == []


@pytest.mark.asyncio
async def test_unquoted_unclassified_report_needs_clarification(event_router):
    result = await event_router.handle_message(
        InboundMessage(channel_id=PRIMARY, sender_id=REPORTER, text="Hola")
    )
    assert result.action == RouteAction.CLARIFICATION


@pytest.mark.asyncio
async def test_reply_listo_confirms(event_router, store):
    ticket = await store.create("No hay internet", REPORTER, ["it"], PRIMARY)

    result = await event_router.handle_message(
        reply("it@g.us", IT_TECH, "Listo", messages.new_task(ticket))
    )

    assert result.action == RouteAction.CONFIRMED
    assert result.detail == "completed"
    assert (await store.get_by_id(ticket.id)).state == TicketState.COMPLETED


@pytest.mark.asyncio
async def test_reply_cancelar_cancels(event_router, store):
    ticket = await store.create("No hay internet", REPORTER, ["it"], PRIMARY)

    result = await event_router.handle_message(
        reply(PRIMARY, REPORTER, "cancelar", messages.report_acknowledged(ticket))
    )

    assert result.action == RouteAction.CANCELLED
    assert (await store.get_by_id(ticket.id)).state == TicketState.CANCELLED


@pytest.mark.asyncio
async def test_cancel_by_stranger_is_rejected_in_chat(event_router, store, transport):
    ticket = await store.create("No hay internet", REPORTER, ["it"], PRIMARY)

    result = await event_router.handle_message(
        reply(PRIMARY, STRANGER, "cancelar", messages.report_acknowledged(ticket))
    )

    assert result.action == RouteAction.REJECTED
    assert transport.texts_to(PRIMARY) == [messages.PERMISSION_DENIED]
    assert (await store.get_by_id(ticket.id)).state == TicketState.PENDING


@pytest.mark.asyncio
async def test_reply_asking_status_requests_feedback(event_router, store, transport):
    ticket = await store.create("Fuga de agua", REPORTER, ["man"], PRIMARY)

    result = await event_router.handle_message(
        reply(PRIMARY, REPORTER, "¿Cómo va esto?", messages.report_acknowledged(ticket))
    )

    assert result.action == RouteAction.FEEDBACK_REQUESTED
    assert result.outcome == ["man"]
    assert len(transport.texts_to("man@g.us")) == 1


@pytest.mark.asyncio
async def test_reply_in_team_channel_is_feedback(event_router, store):
    ticket = await store.create("Fuga de agua", REPORTER, ["man"], PRIMARY)

    result = await event_router.handle_message(
        reply("man@g.us", MAN_TECH, "Vamos a medio avance", messages.feedback_request(ticket, "man"))
    )

    assert result.action == RouteAction.FEEDBACK_RECORDED
    after = await store.get_by_id(ticket.id)
    assert after.feedback_history[-1].team == "man"
    assert after.state == TicketState.PENDING


@pytest.mark.asyncio
async def test_team_progress_with_request_words_is_feedback(coordinator, store, fanout):
    shipped = ClassificationService(
        StaticKeywordProvider(KeywordConfigManager().load(SHIPPED_KEYWORDS)),
        StaticUserDirectoryProvider(USERS),
    )
    router = InboundEventRouter(coordinator, IdentifierResolver(store), shipped, fanout)
    ticket = await store.create("Fuga de agua", REPORTER, ["man"], PRIMARY)

    update = await router.handle_message(
        reply("man@g.us", MAN_TECH, "Vamos a medio avance", messages.feedback_request(ticket, "man"))
    )
    assert update.action == RouteAction.FEEDBACK_RECORDED
    history = (await store.get_by_id(ticket.id)).feedback_history
    assert [(r.team, r.comment) for r in history] == [("man", "Vamos a medio avance")]

    asked = await router.handle_message(
        reply(PRIMARY, REPORTER, "¿Cuál es el avance?", messages.report_acknowledged(ticket))
    )
    assert asked.action == RouteAction.FEEDBACK_REQUESTED


@pytest.mark.asyncio
async def test_reply_from_origin_is_a_comment(event_router, store):
    ticket = await store.create("Fuga de agua", REPORTER, ["man"], PRIMARY)

    result = await event_router.handle_message(
        reply(PRIMARY, REPORTER, "Gracias, es urgente", messages.report_acknowledged(ticket))
    )

    assert result.action == RouteAction.COMMENT_RECORDED
    assert (await store.get_by_id(ticket.id)).feedback_history[-1].team == ORIGIN_TEAM


@pytest.mark.asyncio
async def test_reply_without_identifiable_ticket(event_router, transport):
    result = await event_router.handle_message(
        reply("it@g.us", IT_TECH, "listo", "un mensaje cualquiera")
    )
    assert result.action == RouteAction.UNIDENTIFIED
    assert transport.texts_to("it@g.us") == [messages.UNIDENTIFIED_TICKET]


@pytest.mark.asyncio
async def test_reply_to_unknown_ticket(event_router, transport):
    result = await event_router.handle_message(
        reply("it@g.us", IT_TECH, "listo", "Nueva tarea recibida (ID: 999)")
    )
    assert result.action == RouteAction.REJECTED
    assert transport.texts_to("it@g.us") == [messages.ticket_not_found("999")]


@pytest.mark.asyncio
async def test_edit_goes_to_reconciliation(event_router, store):
    await event_router.handle_message(
        InboundMessage(channel_id=PRIMARY, sender_id=REPORTER, text="No hay internet", message_id="wamid.2")
    )

    ticket = await event_router.handle_edit("wamid.2", "Hay una fuga de agua")

    assert ticket.categories == ["man"]
