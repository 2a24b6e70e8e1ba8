"""Tests for the delivery engine."""
import threading
import pytest
from prometheus_client import CollectorRegistry
from callbackrelay.core.engine import DeliveryEngine
from callbackrelay.core.errors import InvalidArgument, MissingCorrelationKey, NotFound
from callbackrelay.core.models import CallbackState
from callbackrelay.metrics import Metrics


class TestIngest:
    """Inbound callbacks and push delivery"""

    def test_ingest_without_subscriber_stores_for_polling(self, relay):
        ack = relay.ingest({"actionId": "x1", "value": 42})

        assert ack.action_id == "x1"
        assert ack.stored_for_polling is True
        assert ack.pushed is False
        assert relay.state("x1") == CallbackState.AWAITING_PICKUP

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"value": 1},
            {"actionId": ""},
            {"actionId": None},
            {"actionId": 12},
            ["actionId", "x"],
            None,
        ],
    )
    def test_ingest_rejects_missing_action_id(self, relay, payload):
        with pytest.raises(MissingCorrelationKey) as exc_info:
            relay.ingest(payload)

        assert exc_info.value.status_code == 400
        assert relay.counts() == (0, 0)

    def test_ingest_pushes_to_registered_subscriber(self, relay, make_subscriber):
        handle = make_subscriber()
        relay.register("x2", handle)

        ack = relay.ingest({"actionId": "x2", "value": 7})

        assert ack.pushed is True
        assert handle.received == [{"actionId": "x2", "value": 7}]
        assert "x2" not in relay.registered_action_ids()
        # The stored copy survives the push
        result = relay.consume_one("x2")
        assert result.data == {"actionId": "x2", "value": 7}

    def test_closed_subscriber_is_not_pushed(self, relay, make_subscriber):
        handle = make_subscriber(open=False)
        relay.register("k", handle)

        ack = relay.ingest({"actionId": "k"})

        assert ack.pushed is False
        assert handle.received == []
        assert relay.registered_action_ids() == []
        assert relay.consume_one("k").data == {"actionId": "k"}

    def test_push_failure_is_absorbed(self, relay, make_subscriber):
        handle = make_subscriber()

        def explode(payload):
            raise RuntimeError("socket gone")

        handle.push = explode
        relay.register("k", handle)

        ack = relay.ingest({"actionId": "k"})

        assert ack.pushed is False
        assert relay.stored_action_ids() == ["k"]

    def test_ingest_records_source(self, relay):
        relay.ingest({"actionId": "k"}, source="TronLink/4.0")

        assert relay.snapshot()["callbackMetadata"]["k"]["source"] == "TronLink/4.0"

    def test_reingest_overwrites_stored_result(self, relay):
        relay.ingest({"actionId": "k", "attempt": 1})
        relay.ingest({"actionId": "k", "attempt": 2})

        assert relay.consume_one("k").data["attempt"] == 2


class TestRegister:
    """Subscriber registration and catch-up delivery"""

    def test_last_registration_wins(self, relay, make_subscriber):
        first = make_subscriber("h1")
        second = make_subscriber("h2")

        relay.register("k", first)
        relay.register("k", second)
        relay.ingest({"actionId": "k"})

        assert first.received == []
        assert second.received == [{"actionId": "k"}]

    def test_register_before_event_awaits(self, relay, make_subscriber):
        pushed = relay.register("k", make_subscriber())

        assert pushed is False
        assert relay.state("k") == CallbackState.AWAITING_EVENT

    def test_catch_up_delivery_for_late_subscriber(self, relay, make_subscriber):
        relay.ingest({"actionId": "k", "value": 1})
        handle = make_subscriber()

        pushed = relay.register("k", handle)

        assert pushed is True
        assert handle.received == [{"actionId": "k", "value": 1}]
        assert "k" not in relay.registered_action_ids()
        assert relay.state("k") == CallbackState.AWAITING_PICKUP
        assert relay.consume_one("k").data == {"actionId": "k", "value": 1}

    def test_catch_up_skipped_for_closed_subscriber(self, relay, make_subscriber):
        relay.ingest({"actionId": "k"})

        pushed = relay.register("k", make_subscriber(open=False))

        assert pushed is False
        assert relay.state("k") == CallbackState.AWAITING_PICKUP

    def test_disconnect_removes_registration(self, relay, make_subscriber):
        handle = make_subscriber()
        relay.register("k", handle)

        assert relay.disconnect(handle) == "k"
        assert relay.state("k") == CallbackState.UNKNOWN

    def test_closed_subscriber_with_several_keys_leaves_no_registrations(self, relay, make_subscriber):
        handle = make_subscriber()
        relay.register("a", handle)
        relay.register("b", handle)
        handle.open = False

        # Only one registration is dropped per disconnect
        assert relay.disconnect(handle) == "a"
        assert relay.registered_action_ids() == ["b"]

        ack = relay.ingest({"actionId": "b"})

        assert ack.pushed is False
        assert relay.registered_action_ids() == []
        assert relay.state("b") == CallbackState.AWAITING_PICKUP

    def test_disconnect_unknown_handle_is_noop(self, relay, make_subscriber):
        relay.register("k", make_subscriber("h1"))

        assert relay.disconnect(make_subscriber("h2")) is None
        assert relay.registered_action_ids() == ["k"]


class TestConsume:
    """Pull-path consumption"""

    def test_consume_once_then_not_found(self, relay, clock):
        relay.ingest({"actionId": "x1", "value": 42})
        clock.advance(1.5)

        result = relay.consume_one("x1")
        assert result.data == {"actionId": "x1", "value": 42}
        assert result.age_ms == 1500
        assert result.stored_at.endswith("Z")

        with pytest.raises(NotFound) as exc_info:
            relay.consume_one("x1")
        assert exc_info.value.status_code == 404
        assert "x1" not in exc_info.value.available_action_ids

    def test_not_found_lists_available_keys(self, relay):
        relay.ingest({"actionId": "a"})
        relay.ingest({"actionId": "b"})

        with pytest.raises(NotFound) as exc_info:
            relay.consume_one("zzz")

        assert exc_info.value.available_action_ids == ["a", "b"]

    def test_consume_many_mixed(self, relay):
        relay.ingest({"actionId": "B", "value": 2})

        outcome = relay.consume_many(["A", "B", "C"])

        assert outcome.found == ["B"]
        assert outcome.not_found == ["A", "C"]
        assert outcome.total == 3
        assert outcome.results["B"]["success"] is True
        assert outcome.results["B"]["data"] == {"actionId": "B", "value": 2}
        assert outcome.results["B"]["metadata"]["ageMs"] >= 0
        assert outcome.results["A"] == {"success": False, "message": "No callback found"}
        assert relay.stored_action_ids() == []
        for key in ("A", "B", "C"):
            with pytest.raises(NotFound):
                relay.consume_one(key)

    def test_consume_many_empty_list(self, relay):
        outcome = relay.consume_many([])

        assert outcome.total == 0
        assert outcome.results == {}

    @pytest.mark.parametrize("keys", ["abc", None, {"actionIds": ["a"]}, 5])
    def test_consume_many_requires_sequence(self, relay, keys):
        with pytest.raises(InvalidArgument):
            relay.consume_many(keys)

    def test_concurrent_consumers_single_winner(self, relay):
        relay.ingest({"actionId": "race"})
        barrier = threading.Barrier(8)
        winners = []
        losers = []

        def consume():
            barrier.wait()
            try:
                winners.append(relay.consume_one("race"))
            except NotFound:
                losers.append(True)

        threads = [threading.Thread(target=consume) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(winners) == 1
        assert len(losers) == 7

    def test_pull_before_push_leaves_nothing_to_catch_up(self, relay, make_subscriber):
        relay.ingest({"actionId": "k"})
        relay.consume_one("k")
        handle = make_subscriber()

        assert relay.register("k", handle) is False
        assert handle.received == []


class TestMaintenance:
    """Sweep, reset and diagnostics"""

    def test_sweep_evicts_only_expired(self, relay, clock):
        relay.ingest({"actionId": "old"})
        clock.advance(200)
        relay.ingest({"actionId": "new"})
        clock.advance(100.001)

        assert relay.sweep() == 1
        assert relay.stored_action_ids() == ["new"]

    def test_sweep_keeps_entry_at_exact_window(self, relay, clock):
        relay.ingest({"actionId": "k"})
        clock.advance(300)

        assert relay.sweep() == 0

    def test_sweep_with_explicit_window(self, relay, clock):
        relay.ingest({"actionId": "k"})
        clock.advance(11)

        assert relay.sweep(retention_seconds=10) == 1

    def test_reset_reports_prior_sizes(self, relay, make_subscriber):
        relay.register("a", make_subscriber("h1"))
        relay.register("b", make_subscriber("h2"))
        relay.ingest({"actionId": "c"})

        assert relay.reset() == (2, 1)
        assert relay.counts() == (0, 0)

    def test_snapshot_and_ages(self, relay, clock, make_subscriber):
        relay.register("a", make_subscriber("h1"))
        relay.ingest({"actionId": "b", "v": 1}, source="wallet")
        clock.advance(2)

        snap = relay.snapshot()
        assert snap["activeConnections"] == {"a": "h1"}
        assert snap["storedCallbacks"] == {"b": {"actionId": "b", "v": 1}}
        assert snap["callbackMetadata"]["b"]["source"] == "wallet"
        assert relay.ages() == [
            {"actionId": "b", "ageMs": 2000, "receivedAt": snap["callbackMetadata"]["b"]["received"]}
        ]
        assert relay.oldest()["source"] == "wallet"


def test_engine_records_metrics(clock, make_subscriber):
    metrics = Metrics(registry=CollectorRegistry())
    relay = DeliveryEngine(clock=clock, metrics=metrics)
    relay.register("a", make_subscriber())

    relay.ingest({"actionId": "a"})
    relay.ingest({"actionId": "b"})
    relay.consume_one("a")
    relay.consume_many(["b", "c"])

    registry = metrics.registry
    assert registry.get_sample_value("callbackrelay_callbacks_received_total", {"delivery": "push"}) == 1
    assert registry.get_sample_value("callbackrelay_callbacks_received_total", {"delivery": "stored"}) == 1
    assert registry.get_sample_value("callbackrelay_pushes_total", {"trigger": "ingest"}) == 1
    assert registry.get_sample_value("callbackrelay_polls_total", {"mode": "single", "result": "found"}) == 1
    assert registry.get_sample_value("callbackrelay_polls_total", {"mode": "bulk", "result": "found"}) == 1
    assert registry.get_sample_value("callbackrelay_polls_total", {"mode": "bulk", "result": "not_found"}) == 1
    assert registry.get_sample_value("callbackrelay_stored_callbacks") == 0
