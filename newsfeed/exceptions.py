class NewsfeedError(Exception):
    """Base class for errors raised by the newsfeed package."""


class ConfigurationError(NewsfeedError):
    """Raised when an operation is misconfigured (no feeds, unknown label, missing file)."""


class PreconditionError(NewsfeedError):
    """Raised when the stored data does not allow an operation to run (e.g. an empty class)."""


class FeedFetchError(NewsfeedError):
    """Raised when an RSS feed cannot be fetched or parsed."""
