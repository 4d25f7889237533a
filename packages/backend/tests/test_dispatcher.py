"""Broadcast dispatcher tests.

Learn: dispatch() must hand the item to exactly the connections bound to
its correlation id at call time, skip channels that closed under it,
and treat a failed send as a disconnect — without ever raising for
transport trouble.
"""

import json

import pytest

from tagrelay.relay.dispatcher import InvalidItemError, Item

from conftest import FakeChannel


def _bound(registry, correlation_id, channel=None):
    channel = channel or FakeChannel()
    ref = registry.register(channel, "10.0.0.1")
    registry.bind(ref, correlation_id)
    return ref, channel


def test_delivers_to_exactly_the_bound_connections(registry, dispatcher):
    _, a = _bound(registry, "job-42")
    _, b = _bound(registry, "job-42")
    _, c = _bound(registry, "job-42")
    _, other = _bound(registry, "job-7")
    unbound = FakeChannel()
    registry.register(unbound, "10.0.0.9")

    payload = {"correlationId": "job-42", "data": "x"}
    assert dispatcher.dispatch(Item("job-42", payload)) == 3

    for ch in (a, b, c):
        assert ch.messages == [payload]
    assert other.sent == []
    assert unbound.sent == []


def test_zero_matches_is_not_an_error(registry, dispatcher):
    _bound(registry, "job-7")
    assert dispatcher.dispatch(Item("job-42", {"correlationId": "job-42"})) == 0
    assert dispatcher.get_stats()["items"] == 1


@pytest.mark.parametrize("correlation_id", ["", "   ", None])
def test_rejects_missing_correlation_id(registry, dispatcher, correlation_id):
    _, ch = _bound(registry, "job-42")

    with pytest.raises(InvalidItemError):
        dispatcher.dispatch(Item(correlation_id, {"data": "x"}))

    assert ch.sent == []
    assert dispatcher.get_stats()["rejected"] == 1


def test_payload_relayed_verbatim(registry, dispatcher):
    _, ch = _bound(registry, "job-42")
    payload = {
        "correlationId": "job-42",
        "lines": [{"sku": "A1", "qty": 2}],
        "note": "ünïcode",
        "copies": 1,
    }
    dispatcher.dispatch(Item("job-42", payload))
    assert json.loads(ch.sent[0]) == payload


def test_closed_channel_is_skipped(registry, dispatcher):
    ref, closed = _bound(registry, "job-42")
    _, open_ch = _bound(registry, "job-42")
    closed.open = False

    assert dispatcher.dispatch(Item("job-42", {"correlationId": "job-42"})) == 1
    assert closed.sent == []
    assert len(open_ch.sent) == 1
    # A skip is a race with disconnect, not a reason to remove
    assert ref in registry
    assert dispatcher.get_stats()["skipped"] == 1


def test_refused_send_removes_connection(registry, dispatcher):
    bad_ref, bad = _bound(registry, "job-42", FakeChannel(accept_sends=False))
    _, good = _bound(registry, "job-42")

    assert dispatcher.dispatch(Item("job-42", {"correlationId": "job-42"})) == 1
    assert bad_ref not in registry
    assert bad.close_calls == 1
    assert len(good.sent) == 1
    assert dispatcher.get_stats()["send_failures"] == 1


def test_raising_send_does_not_stop_the_broadcast(registry, dispatcher):
    bad_ref, _ = _bound(registry, "job-42", FakeChannel(raise_on_send=True))
    _, good = _bound(registry, "job-42")

    assert dispatcher.dispatch(Item("job-42", {"correlationId": "job-42"})) == 1
    assert bad_ref not in registry
    assert len(good.sent) == 1


def test_rebound_connection_only_gets_new_id(registry, dispatcher):
    ref, ch = _bound(registry, "A")
    registry.bind(ref, "B")

    assert dispatcher.dispatch(Item("A", {"correlationId": "A"})) == 0
    assert dispatcher.dispatch(Item("B", {"correlationId": "B"})) == 1
    assert ch.messages == [{"correlationId": "B"}]


def test_stats_accumulate(registry, dispatcher):
    _bound(registry, "job-42")
    _bound(registry, "job-42")
    dispatcher.dispatch(Item("job-42", {"correlationId": "job-42"}))
    dispatcher.dispatch(Item("job-42", {"correlationId": "job-42"}))

    stats = dispatcher.get_stats()
    assert stats["items"] == 2
    assert stats["deliveries"] == 4
