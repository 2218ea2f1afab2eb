from __future__ import annotations

import dataclasses
import threading
from typing import Generic, Optional, TypeVar

from typing_extensions import final

T = TypeVar("T")


@final
@dataclasses.dataclass
class LatestValue(Generic[T]):
    """
    Single-slot register holding the most recent value of something.

    Reads are a single attribute load and never take the lock, so a reader sees either the
    previous or the new value, never a mix. Writers serialize on the lock only so that
    compare_and_set can be offered alongside set.
    """

    _value: Optional[T] = None
    _lock: threading.Lock = dataclasses.field(default_factory=threading.Lock, repr=False)

    def get(self) -> Optional[T]:
        return self._value

    def set(self, value: Optional[T]) -> None:
        with self._lock:
            self._value = value

    def compare_and_set(self, expected: Optional[T], value: Optional[T]) -> bool:
        with self._lock:
            if self._value is not expected:
                return False
            self._value = value
            return True
