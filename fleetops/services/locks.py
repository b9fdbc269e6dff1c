# fleetops/services/locks.py
import asyncio
import weakref
from contextlib import asynccontextmanager


class TaskLocks:
    """One asyncio.Lock per task id, created on demand.

    A lock lives as long as something holds or waits on it.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()

    def lock_for(self, task_id: int) -> asyncio.Lock:
        lock = self._locks.get(task_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[task_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, task_id: int):
        lock = self.lock_for(task_id)
        async with lock:
            yield


task_locks = TaskLocks()
