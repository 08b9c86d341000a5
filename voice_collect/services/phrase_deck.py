"""Prompt deck: the shuffled phrase order and the cursor walking through it."""

from __future__ import annotations

import json
import logging
import random
from dataclasses import dataclass
from pathlib import Path
from typing import MutableSequence, Sequence, TypeVar, Union

from voice_collect.domain.errors import InvalidTransitionError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Phrase:
    """A prompt as shown to the participant."""

    index: int
    text: str


class SessionComplete:
    """Terminal marker returned once the cursor passes the last phrase."""

    _instance: "SessionComplete | None" = None

    def __new__(cls) -> "SessionComplete":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SESSION_COMPLETE"

    def __bool__(self) -> bool:
        return False


SESSION_COMPLETE = SessionComplete()


def shuffle(source: Sequence[T], rng: random.Random | None = None) -> list[T]:
    """Return a uniformly random permutation of ``source`` (Fisher-Yates)."""

    generator = rng or random
    items: MutableSequence[T] = list(source)
    for i in range(len(items) - 1, 0, -1):
        j = generator.randint(0, i)
        items[i], items[j] = items[j], items[i]
    return list(items)


def load_phrases(path: Path | str) -> list[str]:
    """Read the prompt list; a missing or invalid file yields an empty deck."""

    phrases_path = Path(path)
    try:
        with phrases_path.open("r", encoding="utf-8") as phrases_file:
            data = json.load(phrases_file)
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Could not load phrases from %s: %s", phrases_path, exc)
        return []

    if not isinstance(data, list):
        logger.warning("Phrase file %s must contain a JSON list", phrases_path)
        return []

    phrases = [str(item).strip() for item in data if isinstance(item, str) and item.strip()]
    if not phrases:
        logger.warning("Warning: No phrases configured in %s", phrases_path)
    return phrases


class PhraseDeck:
    """Ordered view over the configured phrases with a forward-only cursor."""

    def __init__(
        self,
        phrases: Sequence[str],
        *,
        rng: random.Random | None = None,
    ) -> None:
        self._phrases = tuple(phrases)
        self._rng = rng
        self._order: list[int] = list(range(len(self._phrases)))
        self._position = 0
        if not self._phrases:
            logger.warning("Phrase deck is empty; the session will complete immediately.")

    def __len__(self) -> int:
        return len(self._order)

    @property
    def order(self) -> list[int]:
        return list(self._order)

    @property
    def position(self) -> int:
        return self._position

    @property
    def remaining(self) -> int:
        return max(len(self._order) - self._position, 0)

    @property
    def is_exhausted(self) -> bool:
        return self._position >= len(self._order)

    def shuffle(self) -> list[int]:
        """Draw a fresh independent order and rewind the cursor."""

        self._order = shuffle(range(len(self._phrases)), self._rng)
        self._position = 0
        return self.order

    def restore(self, order: Sequence[int], position: int) -> None:
        """Adopt a previously persisted order; rejects orders that do not fit the phrase list."""

        candidate = list(order)
        if sorted(candidate) != list(range(len(self._phrases))):
            raise ValueError("Stored phrase order does not match the configured phrases")
        if position < 0 or position > len(candidate):
            raise ValueError(f"Stored position {position} is outside the phrase order")
        self._order = candidate
        self._position = position

    def phrase_at(self, position: int) -> Phrase:
        index = self._order[position]
        return Phrase(index=index, text=self._phrases[index])

    def current(self) -> Union[Phrase, SessionComplete]:
        if self.is_exhausted:
            return SESSION_COMPLETE
        return self.phrase_at(self._position)

    def advance(self) -> None:
        if self.is_exhausted:
            raise InvalidTransitionError("Phrase deck is already exhausted")
        self._position += 1


__all__ = [
    "Phrase",
    "PhraseDeck",
    "SESSION_COMPLETE",
    "SessionComplete",
    "load_phrases",
    "shuffle",
]
