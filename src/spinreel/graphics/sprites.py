"""Pre-rendered sprite cache.

Two tiers:
    essential: static layers built once at worker startup (wheel faces,
        backgrounds, fonts). Frozen after preload, never evicted.
    volatile: anything built on demand while rendering (rotated faces,
        off-size layers). Bounded LRU, dropped under memory pressure.

Each worker process owns its cache; nothing here is shared across processes.
"""

from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Hashable
import logging

from PIL import Image

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheStats:
    """Snapshot of cache occupancy."""
    essential_count: int
    volatile_count: int
    hits: int
    misses: int
    evictions: int
    approx_bytes: int
    frozen: bool


def _approx_size(value: Any) -> int:
    if isinstance(value, Image.Image):
        return value.width * value.height * len(value.getbands())
    return 0


class SpriteCache:
    """Two-tier cache of pre-rendered layers."""

    def __init__(self, volatile_limit: int = 256) -> None:
        self._essential: dict[Hashable, Any] = {}
        self._volatile: OrderedDict[Hashable, Any] = OrderedDict()
        self._volatile_limit = max(1, volatile_limit)
        self._frozen = False
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        """Close the essential tier; later essential misses land in volatile."""
        self._frozen = True
        logger.debug(f"Sprite cache frozen with {len(self._essential)} essential sprites")

    def get(self, key: Hashable, factory: Callable[[], Any], essential: bool = False) -> Any:
        """Return a cached sprite, building it with ``factory`` on a miss."""
        if key in self._essential:
            self._hits += 1
            return self._essential[key]

        if key in self._volatile:
            self._hits += 1
            self._volatile.move_to_end(key)
            return self._volatile[key]

        self._misses += 1
        value = factory()

        if essential and not self._frozen:
            self._essential[key] = value
        else:
            self._volatile[key] = value
            while len(self._volatile) > self._volatile_limit:
                self._volatile.popitem(last=False)
                self._evictions += 1

        return value

    def clear_volatile(self) -> int:
        """Drop every volatile sprite. Returns the number removed."""
        count = len(self._volatile)
        self._volatile.clear()
        self._evictions += count
        return count

    def clear(self) -> None:
        """Drop everything and reopen the essential tier."""
        self._essential.clear()
        self._volatile.clear()
        self._frozen = False

    def stats(self) -> CacheStats:
        approx = sum(_approx_size(v) for v in self._essential.values())
        approx += sum(_approx_size(v) for v in self._volatile.values())
        return CacheStats(
            essential_count=len(self._essential),
            volatile_count=len(self._volatile),
            hits=self._hits,
            misses=self._misses,
            evictions=self._evictions,
            approx_bytes=approx,
            frozen=self._frozen,
        )
