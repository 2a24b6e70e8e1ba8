"""Tests for the subscriber registry."""
from callbackrelay.core.registry import Registry


def test_register_and_lookup(make_subscriber):
    registry = Registry()
    handle = make_subscriber()

    assert registry.register("k", handle) is None
    assert registry.lookup("k") is handle
    assert "k" in registry
    assert len(registry) == 1


def test_register_overwrites_and_returns_previous(make_subscriber):
    registry = Registry()
    first, second = make_subscriber("h1"), make_subscriber("h2")

    registry.register("k", first)
    displaced = registry.register("k", second)

    assert displaced is first
    assert registry.lookup("k") is second
    assert len(registry) == 1


def test_unregister_by_handle_removes_first_match(make_subscriber):
    registry = Registry()
    handle = make_subscriber()
    other = make_subscriber("h2")
    registry.register("a", handle)
    registry.register("b", other)

    assert registry.unregister_by_handle(handle) == "a"
    assert registry.keys() == ["b"]


def test_unregister_by_unknown_handle(make_subscriber):
    registry = Registry()
    registry.register("a", make_subscriber("h1"))

    assert registry.unregister_by_handle(make_subscriber("h2")) is None
    assert len(registry) == 1


def test_lookup_missing():
    assert Registry().lookup("nope") is None


def test_clear_returns_count(make_subscriber):
    registry = Registry()
    registry.register("a", make_subscriber("h1"))
    registry.register("b", make_subscriber("h2"))

    assert registry.clear() == 2
    assert registry.keys() == []
