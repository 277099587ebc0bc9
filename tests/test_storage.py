import asyncio

import pytest

from mandalamind.schemas.eeg import EegDataCreate
from mandalamind.schemas.mandala import MandalaCreate
from mandalamind.schemas.sessions import SessionCreate, SessionUpdate
from mandalamind.storage import MemStorage, SqlStorage, build_storage


def run(coro):
    return asyncio.run(coro)


def mandala_payload(session_id=None, url="https://example.com/m.png"):
    return MandalaCreate(
        sessionId=session_id,
        imageUrl=url,
        prompt="a calm mandala",
        brainwaveData={"attention": 40, "meditation": 60, "signalQuality": 90, "timestamp": 1.0},
        voiceTranscript="I feel calm",
    )


@pytest.fixture(params=["memory", "sql"])
def any_storage(request):
    if request.param == "memory":
        return MemStorage()
    return build_storage("sql", "sqlite://")


def test_build_storage_selects_backend():
    assert isinstance(build_storage("memory"), MemStorage)
    assert isinstance(build_storage("sql", "sqlite://"), SqlStorage)
    assert isinstance(build_storage("cassandra"), MemStorage)


def test_create_session_defaults(any_storage):
    session = run(any_storage.create_session(SessionCreate(attentionLevel=30)))

    assert session.id
    assert session.isActive is True
    assert session.attentionLevel == 30
    assert session.meditationLevel is None
    assert session.voiceTranscript is None
    assert run(any_storage.get_session(session.id)) == session


def test_create_session_is_always_active(any_storage):
    session = run(any_storage.create_session(SessionCreate(isActive=False)))
    assert session.isActive is True


def test_get_unknown_session(any_storage):
    assert run(any_storage.get_session("missing")) is None


def test_update_session_merges_provided_fields(any_storage):
    session = run(any_storage.create_session(SessionCreate(attentionLevel=30, voiceTranscript="hello")))

    updated = run(any_storage.update_session(session.id, SessionUpdate(meditationLevel=70)))

    assert updated.meditationLevel == 70
    assert updated.attentionLevel == 30
    assert updated.voiceTranscript == "hello"
    assert updated.createdAt == session.createdAt


def test_update_session_ignores_null_active_flag(any_storage):
    session = run(any_storage.create_session(SessionCreate()))
    updated = run(any_storage.update_session(session.id, SessionUpdate(isActive=None)))
    assert updated.isActive is True

    closed = run(any_storage.update_session(session.id, SessionUpdate(isActive=False)))
    assert closed.isActive is False
    assert run(any_storage.get_active_sessions()) == []


def test_update_unknown_session(any_storage):
    assert run(any_storage.update_session("missing", SessionUpdate(aiPrompt="x"))) is None


def test_active_sessions(any_storage):
    first = run(any_storage.create_session(SessionCreate()))
    second = run(any_storage.create_session(SessionCreate()))
    run(any_storage.update_session(first.id, SessionUpdate(isActive=False)))

    active = run(any_storage.get_active_sessions())
    assert [s.id for s in active] == [second.id]


def test_mandala_roundtrip_and_session_lookup(any_storage):
    session = run(any_storage.create_session(SessionCreate()))
    mandala = run(any_storage.create_mandala(mandala_payload(session.id)))

    fetched = run(any_storage.get_mandala(mandala.id))
    assert fetched.brainwaveData["meditation"] == 60
    assert fetched.sessionId == session.id

    assert [m.id for m in run(any_storage.get_mandalas_for_session(session.id))] == [mandala.id]
    assert run(any_storage.get_mandalas_for_session("other")) == []
    assert run(any_storage.get_mandala("missing")) is None


def test_mandala_session_reference_is_not_enforced(any_storage):
    mandala = run(any_storage.create_mandala(mandala_payload("no-such-session")))
    assert run(any_storage.get_mandala(mandala.id)).sessionId == "no-such-session"


def test_recent_mandalas_limit(any_storage):
    for _ in range(5):
        run(any_storage.create_mandala(mandala_payload()))

    assert len(run(any_storage.get_recent_mandalas(3))) == 3
    assert len(run(any_storage.get_recent_mandalas(10))) == 5
    assert run(any_storage.get_recent_mandalas(0)) == []


def test_recent_mandalas_newest_first_in_memory():
    storage = MemStorage()
    ids = [run(storage.create_mandala(mandala_payload())).id for _ in range(4)]

    recent = run(storage.get_recent_mandalas(2))
    assert [m.id for m in recent] == [ids[3], ids[2]]


def test_eeg_data_ordering_and_latest(any_storage):
    session = run(any_storage.create_session(SessionCreate()))
    for attention in (10, 20, 30):
        run(any_storage.add_eeg_data(EegDataCreate(
            sessionId=session.id, attention=attention, meditation=50, signalQuality=90,
            rawData={"attention": attention},
        )))

    samples = run(any_storage.get_eeg_data_for_session(session.id))
    assert [s.attention for s in samples] == [10, 20, 30]
    assert samples[0].rawData == {"attention": 10}

    latest = run(any_storage.get_latest_eeg_data(session.id))
    assert latest.attention == 30
    assert run(any_storage.get_latest_eeg_data("missing")) is None
