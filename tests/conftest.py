# tests/conftest.py
# Shared fixtures: temp-file SQLite store, recording chat transport,
# static vocabularies and user directory, controllable clock.

from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest
import pytest_asyncio

from incident_desk.classification.application import (
    ClassificationService,
    StaticKeywordProvider,
    StaticUserDirectoryProvider,
)
from incident_desk.classification.domain import KeywordSnapshot, UserDirectorySnapshot
from incident_desk.core import TransportException
from incident_desk.incidents.application import (
    IChatTransport,
    IdentifierResolver,
    InboundEventRouter,
    LifecycleCoordinator,
    NotificationFanout,
)
from incident_desk.incidents.domain import ChannelMap, Delivery
from incident_desk.incidents.infrastructure import SQLAlchemyTicketStore
from incident_desk.infrastructure.database import build_engine, build_session_maker, create_tables


PRIMARY = "incidents@g.us"
TEAM_CHANNELS = {
    "it": "it@g.us",
    "man": "man@g.us",
    "ama": "ama@g.us",
    "rs": "rs@g.us",
    "seg": "seg@g.us",
}

REPORTER = "5216620000001@c.us"
ADMIN = "5216620000002@c.us"
IT_TECH = "5216620000003@c.us"
MAN_TECH = "5216620000004@c.us"
SEG_GUARD = "5216620000005@c.us"
STRANGER = "5216620000006@c.us"

KEYWORDS = KeywordSnapshot(teams={
    "it": {"words": ["internet", "wifi", "computadora", "impresora"], "phrases": ["no hay senal"]},
    "man": {"words": ["fuga", "agua", "foco", "puerta"], "phrases": ["aire acondicionado"]},
    "ama": {"words": ["toallas", "sabanas", "limpieza"], "phrases": []},
    "rs": {"words": ["desayuno", "platos", "charola"], "phrases": []},
    "seg": {"words": ["robo", "pelea", "sospechoso"], "phrases": []},
})

USERS = UserDirectorySnapshot(users={
    REPORTER: {"display_name": "Pedro", "title": "Recepción"},
    ADMIN: {"display_name": "Laura", "title": "Gerente", "role": "admin"},
    IT_TECH: {"display_name": "Carlos", "title": "Técnico", "team": "it"},
    MAN_TECH: {"display_name": "Miguel", "title": "Mantenimiento", "team": "man"},
    SEG_GUARD: {"display_name": "Rosa", "title": "Guardia", "team": "seg"},
    STRANGER: {"display_name": "Ana", "title": "Recepción"},
})

T0 = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)


class FakeTransport(IChatTransport):
    """Records every delivery; channels in ``failing`` raise."""

    def __init__(self, failing=()):
        self.sent: List[Delivery] = []
        self.failing = set(failing)

    async def deliver(self, channel_id: str, text: str, media: Optional[str] = None) -> None:
        if channel_id in self.failing:
            raise TransportException(channel_id, "gateway unavailable")
        self.sent.append(Delivery(channel_id, text, media))

    def texts_to(self, channel_id: str) -> List[str]:
        return [d.text for d in self.sent if d.channel_id == channel_id]

    def clear(self) -> None:
        self.sent.clear()


class FakeClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'incidents.db'}")
    await create_tables(engine)
    yield build_session_maker(engine)
    await engine.dispose()


@pytest_asyncio.fixture
async def store(session_maker):
    return SQLAlchemyTicketStore(session_maker, max_retries=10)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def channels():
    return ChannelMap(primary_channel_id=PRIMARY, team_channels=dict(TEAM_CHANNELS))


@pytest.fixture
def classification():
    return ClassificationService(StaticKeywordProvider(KEYWORDS), StaticUserDirectoryProvider(USERS))


@pytest.fixture
def fanout(transport):
    return NotificationFanout(transport, concurrency=4)


@pytest.fixture
def coordinator(store, classification, fanout, channels, clock):
    return LifecycleCoordinator(
        store,
        classification,
        fanout,
        channels,
        display_timezone="America/Hermosillo",
        clock=clock,
    )


@pytest.fixture
def event_router(coordinator, store, classification, fanout):
    return InboundEventRouter(coordinator, IdentifierResolver(store), classification, fanout)
