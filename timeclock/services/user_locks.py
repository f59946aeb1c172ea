"""Per-user locks serializing evaluate-then-write cycles within a process."""
import asyncio
import weakref


class UserLocks:
    """
    Hands out one asyncio.Lock per user.

    Locks are held weakly, so a user's lock disappears once no coroutine
    holds or awaits it.
    """

    def __init__(self):
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def lock_for(self, user_id: str) -> asyncio.Lock:
        """Get the lock for a user, creating it if needed."""
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock


# Shared by every service instance in the process
user_locks = UserLocks()
