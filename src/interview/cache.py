import time
from dataclasses import dataclass, field
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar('T')


@dataclass
class TimedValue(Generic[T]):
    """A cached value plus the moment it was last refreshed.

    ttl=None means the value never goes stale once set (used for the blob
    base endpoint, which cannot change for a given store).
    """
    ttl: Optional[float] = None
    clock: Callable[[], float] = time.monotonic
    value: Optional[T] = None
    refreshed_at: Optional[float] = field(default=None)

    def is_fresh(self) -> bool:
        if self.refreshed_at is None:
            return False
        if self.ttl is None:
            return True
        return (self.clock() - self.refreshed_at) < self.ttl

    def get(self) -> Optional[T]:
        return self.value if self.is_fresh() else None

    def set(self, value: T) -> None:
        self.value = value
        self.refreshed_at = self.clock()

    def clear(self) -> None:
        self.value = None
        self.refreshed_at = None
