"""Conversation memories that keep a bounded message history."""

from __future__ import annotations

import copy
import dataclasses
import threading
from collections.abc import Callable
from typing import Protocol

from wanzhi.messages import Message

TokenEstimator = Callable[[str], int]


class Memory(Protocol):
    def append(self, msg: Message) -> None: ...

    def messages(self) -> list[Message]: ...

    def reset(self) -> None: ...


def default_token_estimator(text: str) -> int:
    """Rough token count: one per character."""
    return len(text)


class BufferMemory:
    """Keeps the first system message plus the most recent messages, by count."""

    def __init__(self, max_messages: int = 32) -> None:
        self._max = max_messages if max_messages > 0 else 32
        self._lock = threading.Lock()
        self._messages: list[Message] = []

    def append(self, msg: Message) -> None:
        with self._lock:
            self._messages.append(msg)
            self._trim()

    def messages(self) -> list[Message]:
        with self._lock:
            return [copy.copy(m) for m in self._messages]

    def reset(self) -> None:
        with self._lock:
            self._messages.clear()

    def _trim(self) -> None:
        msgs = self._messages
        if len(msgs) <= self._max:
            return
        keep = msgs[:1] if msgs[0].role == "system" else []
        tail = self._max - len(keep)
        if tail <= 0:
            self._messages = keep[: self._max]
            return
        start = max(len(msgs) - tail, len(keep))
        self._messages = keep + msgs[start:]


class TokenWindowMemory:
    """Keeps the history under a token budget.

    The leading system message and the latest user message are never dropped;
    tool results longer than a quarter of the budget are cut short.
    """

    def __init__(self, max_tokens: int = 4000, estimator: TokenEstimator | None = None) -> None:
        self._max = max_tokens if max_tokens > 0 else 4000
        self._estimate = estimator or default_token_estimator
        self._lock = threading.Lock()
        self._messages: list[Message] = []

    def append(self, msg: Message) -> None:
        with self._lock:
            if msg.role == "tool":
                max_single = self._max // 4
                if max_single > 0 and self._estimate(msg.content) > max_single:
                    if len(msg.content) > max_single:
                        msg = dataclasses.replace(msg, content=msg.content[:max_single])
            self._messages.append(msg)
            self._trim()

    def messages(self) -> list[Message]:
        with self._lock:
            return [copy.copy(m) for m in self._messages]

    def reset(self) -> None:
        with self._lock:
            self._messages.clear()

    def _total(self, msgs: list[Message]) -> int:
        return sum(self._estimate(m.content) for m in msgs)

    def _trim(self) -> None:
        msgs = self._messages
        if self._total(msgs) <= self._max or len(msgs) <= 1:
            return

        protected = {0} if msgs[0].role == "system" else set()
        last_user = next(
            (i for i in range(len(msgs) - 1, -1, -1) if msgs[i].role == "user"), None
        )
        if last_user is not None:
            protected.add(last_user)

        entries = [(m, i in protected) for i, m in enumerate(msgs)]
        while self._total([m for m, _ in entries]) > self._max:
            victim = next((i for i, (_, keep) in enumerate(entries) if not keep), None)
            if victim is None:
                break
            del entries[victim]
        self._messages = [m for m, _ in entries]