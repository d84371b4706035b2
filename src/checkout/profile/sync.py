"""Optimistic profile writes: apply locally, persist the snapshot, undo on failure.

Each buyer has one write lane. A write takes its snapshot only once it holds
the lane, so it always carries every mutation applied before it and the
upstream record never goes backwards. A failed write undoes just its own
mutation; later mutations stay applied and are picked up by the next write.
"""

import asyncio

from checkout.domain import logger
from checkout.profile.port import ProfileStore, ProfileStoreError


class ProfileSync:
    def __init__(self, store: ProfileStore) -> None:
        self._store = store
        self._lanes: dict[str, asyncio.Lock] = {}
        self._pending: dict[str, set[asyncio.Task]] = {}

    def _lane(self, buyer_id: str) -> asyncio.Lock:
        lane = self._lanes.get(buyer_id)
        if lane is None:
            lane = asyncio.Lock()
            self._lanes[buyer_id] = lane
        return lane

    def schedule(self, buyer_id: str, field: str, snapshot, undo, label: str) -> "asyncio.Task[bool]":
        """Queue a write of ``snapshot()`` into ``field``; run ``undo()`` if it fails.

        Returns the task so callers may await confirmation. The mutation is
        already visible locally when this returns.
        """
        task = asyncio.ensure_future(self._persist(buyer_id, field, snapshot, undo, label))
        pending = self._pending.setdefault(buyer_id, set())
        pending.add(task)
        task.add_done_callback(pending.discard)
        return task

    async def _persist(self, buyer_id, field, snapshot, undo, label) -> bool:
        async with self._lane(buyer_id):
            payload = snapshot()
            try:
                await self._store.update_profile(buyer_id, {field: payload})
            except ProfileStoreError as exc:
                undo()
                logger.warning(
                    "profile_write_reverted",
                    buyer_id=buyer_id,
                    field=field,
                    mutation=label,
                    error=str(exc),
                )
                return False

        logger.debug("profile_write_confirmed", buyer_id=buyer_id, field=field, mutation=label, size=len(payload))
        return True

    async def drain(self, buyer_id: str) -> list[bool]:
        """Wait for every write queued so far for ``buyer_id``."""
        pending = list(self._pending.get(buyer_id, ()))
        if not pending:
            return []
        return list(await asyncio.gather(*pending))
