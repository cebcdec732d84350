class KFetchError(Exception):
    """
    Base exception for all kfetch-specific errors.
    """
    pass


class FramingError(KFetchError):
    """
    Error raised when a response frame's layout does not match its contents.

    Covers a declared size that disagrees with the buffer, reads that run
    past the end of the buffer and message sets overrunning their frame.
    """
    pass


class TrailingBytesError(FramingError):
    """
    Error raised when bytes remain after every declared field was parsed.
    """
    def __init__(self, remaining):
        self.remaining = remaining

    def __str__(self):
        return "%d unexpected trailing bytes in response" % self.remaining


class CorrelationMismatchError(KFetchError):
    """
    Error raised when a response's correlation id is not the one expected.

    The response belongs to some other request and must not be attributed
    to the one being handled.
    """
    def __init__(self, expected, received):
        self.expected = expected
        self.received = received

    def __str__(self):
        return "Correlation id mismatch: expected %s, received %s" % (
            self.expected, self.received
        )


class RequestFinalizedError(KFetchError):
    """
    Error raised when adding to a request that has already been serialized.
    """
    pass


class BrokerConnectionError(KFetchError):
    """
    This error is raised when a single broker ``Connection`` goes bad.
    """
    def __init__(self, host, port, broker_id=None):
        self.host = host
        self.port = port
        self.broker_id = broker_id

    def __str__(self):
        return "Error connecting to %s:%s" % (self.host, self.port)


class UnhandledResponseError(KFetchError):
    """
    Error raised when a frame arrives for an api with no response class.
    """
    def __init__(self, api):
        self.api = api

    def __str__(self):
        return "No response class for '%s' api" % self.api
