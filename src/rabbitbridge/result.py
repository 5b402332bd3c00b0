""" A minimal success/failure container, for the places where a failure is
    captured and handed back to the caller instead of being raised.
"""


class Result:
    """ The outcome of one operation: either a *value* or an *error*. Use
        :func:`success` and :func:`failure` rather than the constructor.
    """

    __slots__ = ('value', 'error')

    def __init__(self, value=None, error=None):
        self.value = value
        self.error = error


    @classmethod
    def success(cls, value=None):
        return cls(value=value)


    @classmethod
    def failure(cls, error):
        if error is None:
            raise ValueError('a failed Result requires an exception')
        return cls(error=error)


    @property
    def ok(self):
        return self.error is None


    def unwrap(self):
        """ Return the value of a successful result, or raise the error of
            a failed one.
        """

        if self.error is not None:
            raise self.error

        return self.value


    def __bool__(self):
        return self.ok


    def __repr__(self):
        if self.ok:
            return 'Result.success(%r)' % (self.value,)
        else:
            return 'Result.failure(%r)' % (self.error,)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
