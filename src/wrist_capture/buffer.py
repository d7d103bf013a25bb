"""Append-only in-memory store for the rows of one capture session."""

from __future__ import annotations

import logging

from .errors import AlreadySealed
from .models import FusedRow

logger = logging.getLogger(__name__)


class SessionBuffer:
    """Ordered container of fused rows owned by a single capture session.

    Unlike a circular stream buffer, nothing is ever dropped: the session is
    short (a few seconds at ~100Hz) and the whole burst is uploaded as one
    dataset. The buffer has exactly two phases:

    1. **Open**: rows are appended by the row assembler in arrival order,
       which is also timestamp order.
    2. **Sealed**: ``seal_and_take()`` hands the full sequence to the caller
       exactly once. Any later append or take raises ``AlreadySealed``.

    An empty buffer at seal time is a valid outcome, not an error.

    Note:
        All access happens on the event loop thread, so no locking is done.
    """

    def __init__(self) -> None:
        self._rows: list[FusedRow] = []
        self._sealed = False

    def append(self, row: FusedRow) -> None:
        """Add a row to the end of the session.

        Raises:
            AlreadySealed: If ``seal_and_take()`` was already called.
        """
        if self._sealed:
            raise AlreadySealed("cannot append to a sealed session buffer")
        self._rows.append(row)

    def seal_and_take(self) -> list[FusedRow]:
        """Seal the buffer and return every row in insertion order.

        Returns:
            The complete row sequence. The buffer gives up its reference to it.

        Raises:
            AlreadySealed: If called a second time.
        """
        if self._sealed:
            raise AlreadySealed("session buffer was already sealed")
        self._sealed = True
        rows, self._rows = self._rows, []
        logger.debug("Session buffer sealed with %d rows", len(rows))
        return rows

    @property
    def is_sealed(self) -> bool:
        return self._sealed

    def __len__(self) -> int:
        return len(self._rows)
