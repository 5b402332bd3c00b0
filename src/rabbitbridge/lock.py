""" Per-key mutual exclusion. Any caller that needs one in-flight action per
    key, for example one handler at a time per topic, can wrap the action
    with :func:`LockMapper.acquire`.
"""

import abc
import logging
import threading

from .result import Result

logger = logging.getLogger(__name__)


class LockActionError(Exception):
    """ The action run under a key's lock failed. The original exception
        is available as ``__cause__``.
    """

    def __init__(self, key, message):
        super().__init__(message)
        self.key = key



class LockTimeout(LockActionError):
    """ The key's lock could not be acquired within the configured timeout;
        the action was not run.
    """



class Lockable(abc.ABC):
    """ Capability to run an action while holding an exclusive lock
        identified by a string key.
    """

    @abc.abstractmethod
    def acquire(self, key, action):
        """ Return a callable accepting one input. Invoking it runs
            *action* with that input while holding the lock for *key*, and
            returns a :class:`rabbitbridge.result.Result`.
        """



class LockMapper(Lockable):
    """ Map string keys to re-entrant locks. A lock is created the first
        time its key is referenced and is kept for the lifetime of the
        mapper; entries are never removed, so an unbounded key space grows
        the mapping without limit.

        Two actions wrapped with the same key never run concurrently;
        actions for different keys run independently. Re-entrant locking of
        the same key from within an action works, since the locks are
        :class:`threading.RLock` instances, but should not be relied upon.

        If *timeout* is specified, an invocation waits at most that many
        seconds for the lock; if it is not obtained, the result carries a
        :class:`LockTimeout` and the action is not run. The default is to
        wait indefinitely.
    """

    def __init__(self, timeout=None):

        if timeout is not None and timeout < 0:
            raise ValueError('timeout must be None or non-negative')

        self.timeout = timeout
        self._locks = dict()
        self._locks_lock = threading.Lock()


    def acquire(self, key, action):

        key = str(key)

        def locked(input=None):
            lock = self._lock(key)

            if self.timeout is None:
                acquired = lock.acquire()
            else:
                acquired = lock.acquire(timeout=self.timeout)

            if not acquired:
                error = LockTimeout(key, 'timed out waiting for lock: ' + key)
                logger.warning('Lock for key %s not acquired within %s sec',
                               key, self.timeout)
                return Result.failure(error)

            try:
                value = action(input)
            except Exception as e:
                logger.error('Error processing key: %s, error: %r', key, e)
                error = LockActionError(key, 'action failed for key %s: %s' % (key, e))
                error.__cause__ = e
                return Result.failure(error)
            finally:
                lock.release()

            return Result.success(value)

        return locked


    def _lock(self, key):

        try:
            return self._locks[key]
        except KeyError:
            pass

        with self._locks_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock

        return lock


    def keys(self):
        with self._locks_lock:
            return list(self._locks)


    def __contains__(self, key):
        with self._locks_lock:
            return key in self._locks


    def __len__(self):
        with self._locks_lock:
            return len(self._locks)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
