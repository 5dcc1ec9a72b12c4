from __future__ import annotations

from typing import Optional

from .types import (
    NOT_FOUND,
    HandlerIndex,
    MatcherEntry,
    MessageHandler,
    MessageMatcherFunc,
)


class MessageMatcher:
    """Ordered registry of predicate -> handlers entries.

    Predicates have no natural key, so entries live in a list and are looked
    up by identity. Firing order follows registration order.
    """

    def __init__(self) -> None:
        self._matchers: list[MatcherEntry] = []

    def add_matcher(
        self, matcher: MessageMatcherFunc, handler: MessageHandler
    ) -> MatcherEntry:
        """Append a new entry even when ``matcher`` is already registered."""
        entry = MatcherEntry(matcher=matcher, handlers=[handler])
        self._matchers.append(entry)
        return entry

    def add_handler(
        self, matcher: MessageMatcherFunc, handler: MessageHandler
    ) -> MatcherEntry:
        """Attach ``handler`` to the first entry for ``matcher``, creating one if absent."""
        index = self.index_of_matcher(matcher)
        if index < 0:
            return self.add_matcher(matcher, handler)
        entry = self._matchers[index]
        entry.handlers.append(handler)
        return entry

    def get_matchers(self) -> list[MatcherEntry]:
        return self._matchers

    def index_of_matcher(self, matcher: MessageMatcherFunc) -> int:
        for index, entry in enumerate(self._matchers):
            if entry.matcher is matcher:
                return index
        return -1

    def has_matcher(self, matcher: MessageMatcherFunc) -> bool:
        return self.index_of_matcher(matcher) >= 0

    def get_handlers(
        self, matcher: MessageMatcherFunc
    ) -> Optional[list[MessageHandler]]:
        index = self.index_of_matcher(matcher)
        if index < 0:
            return None
        return self._matchers[index].handlers

    def index_of_handler(self, handler: MessageHandler) -> HandlerIndex:
        for matcher_index, entry in enumerate(self._matchers):
            for handler_index, candidate in enumerate(entry.handlers):
                if candidate is handler:
                    return HandlerIndex(
                        matcher_index=matcher_index, handler_index=handler_index
                    )
        return NOT_FOUND

    def has_handler(self, handler: MessageHandler) -> bool:
        return self.index_of_handler(handler).found

    def remove_matcher(self, index: int) -> MatcherEntry:
        if index < 0 or index >= len(self._matchers):
            raise IndexError(f"matcher index out of range: {index}")
        return self._matchers.pop(index)

    def remove_handler(self, index: HandlerIndex) -> MessageHandler:
        """Remove one handler; an entry left without handlers is dropped."""
        if not index.found or index.matcher_index >= len(self._matchers):
            raise IndexError(f"handler index out of range: {index}")
        entry = self._matchers[index.matcher_index]
        if index.handler_index >= len(entry.handlers):
            raise IndexError(f"handler index out of range: {index}")
        handler = entry.handlers.pop(index.handler_index)
        if not entry.handlers:
            self._matchers.pop(index.matcher_index)
        return handler

    def __len__(self) -> int:
        return len(self._matchers)
