import threading
from contextlib import contextmanager


class KeyedLocks:
    """One lock per aggregate key, alive only while someone holds or waits on it.

    Keys are acquired in sorted order so two operations touching the same
    pair of aggregates cannot deadlock.
    """

    def __init__(self):
        self._guard = threading.Lock()
        # key -> [lock, holders and waiters]
        self._locks = {}

    def _acquire(self, key):
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            entry[0].acquire()
        except BaseException:
            self._drop(key)
            raise

    def _drop(self, key, release=False):
        with self._guard:
            entry = self._locks[key]
            if release:
                entry[0].release()
            entry[1] -= 1
            if not entry[1]:
                del self._locks[key]

    def _release(self, key):
        self._drop(key, release=True)

    @contextmanager
    def hold(self, *keys):
        ordered = sorted(set(keys), key=lambda k: (k[0], str(k[1])))
        acquired = []
        try:
            for key in ordered:
                self._acquire(key)
                acquired.append(key)
            yield
        finally:
            for key in reversed(acquired):
                self._release(key)

    def __len__(self):
        return len(self._locks)


ledger_locks = KeyedLocks()
