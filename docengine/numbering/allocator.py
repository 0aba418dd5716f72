"""
Sequence Allocator

Produces the next human-readable document number for an owner and kind:
Q-0001, Q-0002, ... for quotes and F-0001, F-0002, ... for invoices.
Past 9999 the number simply grows a fifth digit (Q-10000).

CONCURRENCY:
Looking up the highest number and inserting the next one is a
read-then-write. Two concurrent creations for the same owner would read
the same highest number and both insert it. To rule that out:

1. reserve() holds a per-(owner, kind) asyncio.Lock from the lookup
   until the caller's insert transaction has committed.
2. Storage rejects a duplicate (owner, kind, number) at insert time;
   the engine reports that as ConflictError instead of retrying.

(1) covers every creation going through one engine instance; (2) is what
protects a deployment running several processes against the same store.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
from uuid import UUID

import structlog

from docengine.config import get_settings
from docengine.models.document import DocumentKind, format_number, parse_number
from docengine.services.storage import DocumentStorageInterface


class SequenceAllocator:
    """Allocates monotonic document numbers per owner and kind."""

    def __init__(
        self,
        storage: DocumentStorageInterface,
        padding: Optional[int] = None,
    ):
        self._storage = storage
        self._padding = padding or get_settings().engine.number_padding
        # Locks are dropped once no reservation holds or awaits them.
        self._locks: dict[tuple[UUID, DocumentKind], asyncio.Lock] = {}
        self._users: dict[tuple[UUID, DocumentKind], int] = {}
        self._logger = structlog.get_logger(__name__)

    async def next_number(self, owner_id: UUID, kind: DocumentKind) -> str:
        """
        Next number after the highest stored one.

        Does not reserve anything; use reserve() when the number is
        about to be inserted.
        """
        highest = await self._storage.highest_number(owner_id, kind)
        if highest is None:
            return format_number(kind, 1, self._padding)
        return format_number(kind, parse_number(highest) + 1, self._padding)

    @asynccontextmanager
    async def reserve(
        self,
        owner_id: UUID,
        kind: DocumentKind,
    ) -> AsyncIterator[str]:
        """
        Allocate a number and keep it reserved for the duration of the block.

        The document carrying the number must be committed before the
        block exits; no other reservation for the same owner and kind
        can start meanwhile.

        Usage:
            async with allocator.reserve(owner_id, DocumentKind.QUOTE) as number:
                async with storage.transaction() as tx:
                    await tx.insert_document(quote_with(number))
        """
        key = (owner_id, kind)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                number = await self.next_number(owner_id, kind)
                self._logger.debug(
                    "number_reserved",
                    owner_id=str(owner_id),
                    kind=kind.value,
                    number=number,
                )
                yield number
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]
