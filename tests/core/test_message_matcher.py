from __future__ import annotations

import pytest

from commonbot.core.message_matcher import MessageMatcher
from commonbot.core.types import NOT_FOUND, HandlerIndex


async def _handler_a(_ctx) -> None:
    return None


async def _handler_b(_ctx) -> None:
    return None


def _always(_text: str) -> bool:
    return True


def _never(_text: str) -> bool:
    return False


def test_add_matcher_appends_even_for_same_predicate() -> None:
    registry = MessageMatcher()
    registry.add_matcher(_always, _handler_a)
    registry.add_matcher(_always, _handler_b)

    entries = registry.get_matchers()
    assert len(entries) == 2
    assert entries[0].handlers == [_handler_a]
    assert entries[1].handlers == [_handler_b]


def test_add_handler_merges_into_existing_predicate() -> None:
    registry = MessageMatcher()
    registry.add_handler(_always, _handler_a)
    registry.add_handler(_always, _handler_b)
    registry.add_handler(_never, _handler_a)

    assert len(registry) == 2
    assert registry.get_handlers(_always) == [_handler_a, _handler_b]
    assert registry.get_handlers(_never) == [_handler_a]


def test_lookups_use_identity() -> None:
    registry = MessageMatcher()
    registry.add_matcher(_always, _handler_a)

    def lookalike(_text: str) -> bool:
        return True

    assert registry.has_matcher(_always)
    assert not registry.has_matcher(lookalike)
    assert registry.index_of_matcher(lookalike) == -1
    assert registry.get_handlers(lookalike) is None
    assert registry.index_of_handler(_handler_a) == HandlerIndex(0, 0)
    assert registry.index_of_handler(_handler_b) == NOT_FOUND
    assert not registry.has_handler(_handler_b)


def test_remove_handler_drops_empty_entry() -> None:
    registry = MessageMatcher()
    registry.add_handler(_always, _handler_a)
    registry.add_handler(_always, _handler_b)
    registry.add_matcher(_never, _handler_a)

    removed = registry.remove_handler(HandlerIndex(0, 1))
    assert removed is _handler_b
    assert registry.get_handlers(_always) == [_handler_a]

    registry.remove_handler(registry.index_of_handler(_handler_a))
    assert [entry.matcher for entry in registry.get_matchers()] == [_never]


def test_remove_matcher_by_index() -> None:
    registry = MessageMatcher()
    registry.add_matcher(_always, _handler_a)
    registry.add_matcher(_never, _handler_b)

    entry = registry.remove_matcher(0)

    assert entry.matcher is _always
    assert len(registry) == 1
    with pytest.raises(IndexError):
        registry.remove_matcher(5)
    with pytest.raises(IndexError):
        registry.remove_handler(NOT_FOUND)
