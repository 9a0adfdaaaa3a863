"""Exception types raised across the job queue and collection engine."""


class MediaShelfError(Exception):
    """Base class for expected engine failures."""


class InvalidOperationError(MediaShelfError):
    """Raised when a caller asks for an operation that can never succeed."""


class CollectionIOError(MediaShelfError):
    """Raised when relocating a collection tree fails on disk.

    No registry, tracker or schedule state has been changed when this is raised.
    """

    def __init__(self, message, *, source=None, target=None):
        super().__init__(message)
        self.source = source
        self.target = target


class UnknownJobTypeError(MediaShelfError):
    pass


class JobPayloadError(MediaShelfError, ValueError):
    """Raised when a job payload is missing a required field."""
