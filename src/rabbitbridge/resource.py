""" Scoped resource lifecycle: initialize a resource, hand it to an
    operation, and dispose of it afterwards no matter how the operation
    ended.
"""

import logging
import threading

logger = logging.getLogger(__name__)


class Resource:
    """ A pairing of an *initializer*, called with no arguments to produce
        the resource, and a *disposer*, called with the resource to release
        it. The :func:`use` method, or the context manager form, guarantees
        that the disposer runs exactly once whenever the initializer
        succeeded.

        If the initializer raises, neither the operation nor the disposer
        is invoked, and the exception propagates unchanged.

        If the operation raises, the disposer still runs. Should the
        disposer also fail, the operation's exception is the one that
        propagates; the disposer's exception is attached to it as the
        *disposal_error* attribute.

        If the operation succeeds but the disposer fails, the operation's
        result is still returned. The disposer's exception is logged and
        available as :attr:`disposal_error`, which reports the outcome of
        the most recent disposal performed by the calling thread.

        A single :class:`Resource` may be used from several threads at once;
        each thread's context-manager entries are tracked separately.
    """

    def __init__(self, initializer, disposer):

        if not callable(initializer) or not callable(disposer):
            raise TypeError('initializer and disposer must be callable')

        self.initializer = initializer
        self.disposer = disposer
        self._local = threading.local()


    @property
    def disposal_error(self):
        return getattr(self._local, 'disposal_error', None)


    @classmethod
    def of(cls, initializer, disposer):
        return cls(initializer, disposer)


    def use(self, operation):
        """ Initialize the resource, return the result of invoking
            *operation* with it, and dispose of it.
        """

        resource = self.initializer()

        try:
            result = operation(resource)
        except BaseException as error:
            self._dispose(resource, error)
            raise

        self._dispose(resource)
        return result


    def _dispose(self, resource, error=None):

        try:
            self.disposer(resource)
        except Exception as disposal_error:
            self._local.disposal_error = disposal_error

            if error is None:
                logger.error('Failed to dispose of %r: %r', resource, disposal_error)
            else:
                logger.error('Failed to dispose of %r after %r: %r',
                             resource, error, disposal_error)
                error.disposal_error = disposal_error
        else:
            self._local.disposal_error = None


    def _active(self):
        try:
            return self._local.active
        except AttributeError:
            active = self._local.active = list()
            return active


    def __enter__(self):
        resource = self.initializer()
        self._active().append(resource)
        return resource


    def __exit__(self, exc_type, exc, tb):
        resource = self._active().pop()
        self._dispose(resource, exc)
        return False


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
