import asyncio
import weakref


class ViewerRegistry:
    """
    In-process record of which viewer identities have seen each post, plus
    the per-post locks that serialise view counting.

    Nothing here is persisted.  A restart (or ``reset``) empties every set,
    after which returning viewers count as new ones again; the stored
    ``unique_viewers`` figure is then recomputed from the fresh set size the
    next time a new viewer arrives.

    Locks are held weakly: a post's lock lives exactly as long as some task
    holds or waits on it, so ``forget``/``reset`` never need to touch them and
    the table does not grow with every post ever viewed.
    """

    def __init__(self) -> None:
        self._viewers: dict[int, set[str]] = {}
        self._locks: weakref.WeakValueDictionary[int, asyncio.Lock] = weakref.WeakValueDictionary()

    def lock_for(self, post_id: int) -> asyncio.Lock:
        """Return the lock guarding view counting for *post_id*."""
        lock = self._locks.get(post_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[post_id] = lock
        return lock

    def add(self, post_id: int, viewer_id: str) -> bool:
        """Register *viewer_id* for *post_id*; True if it was not seen before."""
        viewers = self._viewers.setdefault(post_id, set())
        if viewer_id in viewers:
            return False
        viewers.add(viewer_id)
        return True

    def count(self, post_id: int) -> int:
        return len(self._viewers.get(post_id, ()))

    def forget(self, post_id: int) -> None:
        self._viewers.pop(post_id, None)

    def reset(self) -> None:
        self._viewers.clear()
