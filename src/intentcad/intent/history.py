from __future__ import annotations

from typing import List, Optional

from loguru import logger

from intentcad.config import settings
from intentcad.intent.model import GeometryIR


class IntentHistory:
    """
    Bounded undo/redo stack of GeometryIR snapshots.

    - push after an undo discards every redo entry
    - past `limit` entries the oldest is evicted and the pointer rebased
    - entries are owned here; callers get the (immutable) IR back, never the stack
    """

    def __init__(self, limit: Optional[int] = None):
        self.limit = limit if limit is not None else settings.history_limit
        self._stack: List[GeometryIR] = []
        self._index = -1

    def __len__(self) -> int:
        return len(self._stack)

    def push(self, ir: GeometryIR) -> None:
        del self._stack[self._index + 1:]
        self._stack.append(ir)
        self._index += 1

        overflow = len(self._stack) - self.limit
        if overflow > 0:
            del self._stack[:overflow]
            self._index = len(self._stack) - 1
            logger.debug(f"History full, evicted {overflow} oldest entr{'y' if overflow == 1 else 'ies'}")

    def undo(self) -> Optional[GeometryIR]:
        if not self.can_undo():
            return None
        self._index -= 1
        return self._stack[self._index]

    def redo(self) -> Optional[GeometryIR]:
        if not self.can_redo():
            return None
        self._index += 1
        return self._stack[self._index]

    def current(self) -> Optional[GeometryIR]:
        if self._index < 0:
            return None
        return self._stack[self._index]

    def can_undo(self) -> bool:
        return self._index > 0

    def can_redo(self) -> bool:
        return self._index < len(self._stack) - 1

    def clear(self) -> None:
        self._stack = []
        self._index = -1
