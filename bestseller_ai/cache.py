"""
Response Cache
==============

In-process LRU cache with per-entry TTL. Keys are content-addressed:
a namespace plus the SHA-256 of the JSON-encoded parameters, so identical
inputs always map to the same entry.

``ResponseCache`` adds the AI-specific entry points used by the service
(generation responses, brainstorms, chapters, humanized text).
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 512
DEFAULT_TTL_SECONDS = 60 * 60
MAX_RESPONSE_TTL_SECONDS = 24 * 60 * 60


@dataclass
class CacheStats:
    hits: int
    misses: int
    size: int
    hit_rate: float  # percent, two decimals


@dataclass
class _Slot:
    value: Any
    created_at: float
    expires_at: float


class TTLCache:
    """LRU cache with TTL expiry and a hard entry cap"""

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: OrderedDict[str, _Slot] = OrderedDict()
        self._hits = 0
        self._misses = 0

    @staticmethod
    def make_key(namespace: str, params: dict[str, Any]) -> str:
        raw = json.dumps(params, sort_keys=True, default=str)
        return f"{namespace}_{hashlib.sha256(raw.encode()).hexdigest()}"

    def get(self, namespace: str, params: dict[str, Any]) -> Any | None:
        key = self.make_key(namespace, params)
        slot = self._entries.get(key)
        if slot is None:
            self._misses += 1
            return None

        if self._clock() >= slot.expires_at:
            del self._entries[key]
            self._misses += 1
            return None

        self._entries.move_to_end(key)
        self._hits += 1
        return slot.value

    def set(
        self,
        namespace: str,
        params: dict[str, Any],
        value: Any,
        ttl: float | None = None,
    ) -> None:
        key = self.make_key(namespace, params)
        now = self._clock()
        self._entries[key] = _Slot(
            value=value,
            created_at=now,
            expires_at=now + (self.default_ttl if ttl is None else ttl),
        )
        self._entries.move_to_end(key)

        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Cache full, evicted {evicted[:24]}")

    def has(self, namespace: str, params: dict[str, Any]) -> bool:
        key = self.make_key(namespace, params)
        slot = self._entries.get(key)
        return slot is not None and self._clock() < slot.expires_at

    def delete(self, namespace: str, params: dict[str, Any]) -> None:
        self._entries.pop(self.make_key(namespace, params), None)

    def clear_namespace(self, namespace: str) -> None:
        prefix = f"{namespace}_"
        for key in [k for k in self._entries if k.startswith(prefix)]:
            del self._entries[key]

    def clear(self) -> None:
        self._entries.clear()
        self._hits = 0
        self._misses = 0

    def cleanup(self) -> int:
        """Drop expired entries, returning how many were removed"""
        now = self._clock()
        expired = [k for k, slot in self._entries.items() if now >= slot.expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def stats(self) -> CacheStats:
        total = self._hits + self._misses
        hit_rate = (self._hits / total) * 100 if total else 0.0
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            size=len(self._entries),
            hit_rate=round(hit_rate, 2),
        )

    def __len__(self) -> int:
        return len(self._entries)


@dataclass(frozen=True)
class CacheEntry:
    """A memoized generation result"""

    content: str
    tokens_used: int | None
    provider: str
    model: str


def response_ttl(content: str) -> float:
    """One hour plus a minute per 1000 characters, capped at a day"""
    minutes = 60 + len(content) // 1000
    return min(minutes * 60, MAX_RESPONSE_TTL_SECONDS)


class ResponseCache(TTLCache):
    """AI-specific cache entry points"""

    RESPONSE_NAMESPACE = "ai_response"
    BRAINSTORM_NAMESPACE = "brainstorm"
    CHAPTER_NAMESPACE = "chapter"
    HUMANIZATION_NAMESPACE = "humanization"

    def get_response(self, provider: str, model: str, prompt: str) -> CacheEntry | None:
        return self.get(
            self.RESPONSE_NAMESPACE,
            {"provider": str(provider), "model": model, "prompt": prompt},
        )

    def put_response(
        self,
        provider: str,
        model: str,
        prompt: str,
        content: str,
        tokens_used: int | None = None,
        served_provider: str | None = None,
        served_model: str | None = None,
    ) -> None:
        entry = CacheEntry(
            content=content,
            tokens_used=tokens_used,
            provider=str(served_provider or provider),
            model=served_model or model,
        )
        self.set(
            self.RESPONSE_NAMESPACE,
            {"provider": str(provider), "model": model, "prompt": prompt},
            entry,
            ttl=response_ttl(content),
        )

    def get_brainstorm(self, topic: str, provider: str) -> Any | None:
        return self.get(
            self.BRAINSTORM_NAMESPACE, {"topic": topic, "provider": str(provider)}
        )

    def put_brainstorm(self, topic: str, provider: str, result: Any) -> None:
        self.set(
            self.BRAINSTORM_NAMESPACE,
            {"topic": topic, "provider": str(provider)},
            result,
            ttl=4 * 60 * 60,
        )

    def get_chapter(
        self, chapter_title: str, chapter_number: int, outline: str, provider: str
    ) -> str | None:
        return self.get(
            self.CHAPTER_NAMESPACE,
            self._chapter_params(chapter_title, chapter_number, outline, provider),
        )

    def put_chapter(
        self,
        chapter_title: str,
        chapter_number: int,
        outline: str,
        provider: str,
        content: str,
    ) -> None:
        self.set(
            self.CHAPTER_NAMESPACE,
            self._chapter_params(chapter_title, chapter_number, outline, provider),
            content,
            ttl=8 * 60 * 60,
        )

    def get_humanization(self, content: str, provider: str) -> str | None:
        return self.get(
            self.HUMANIZATION_NAMESPACE, self._humanization_params(content, provider)
        )

    def put_humanization(self, content: str, provider: str, humanized: str) -> None:
        self.set(
            self.HUMANIZATION_NAMESPACE,
            self._humanization_params(content, provider),
            humanized,
            ttl=2 * 60 * 60,
        )

    @staticmethod
    def _chapter_params(
        chapter_title: str, chapter_number: int, outline: str, provider: str
    ) -> dict[str, Any]:
        return {
            "chapter_title": chapter_title,
            "chapter_number": chapter_number,
            "outline": outline,
            "provider": str(provider),
        }

    @staticmethod
    def _humanization_params(content: str, provider: str) -> dict[str, Any]:
        # Hash the content so large bodies never end up in the key material
        return {
            "content_hash": hashlib.sha256(content.encode()).hexdigest(),
            "content_length": len(content),
            "provider": str(provider),
        }
