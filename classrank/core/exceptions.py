"""Errors raised by the ranking engine and its persistence layer."""


class ClassrankError(Exception):
    """Base class for every error raised by classrank."""


class ValidationError(ClassrankError, ValueError):
    """Malformed input: non-positive max score, missing identifiers, bad rules."""


class NotFoundError(ClassrankError, LookupError):
    """A referenced leaderboard, badge or student does not exist."""


class ConcurrentModificationError(ClassrankError):
    """A versioned write lost the race against another writer."""

    def __init__(self, aggregate: str, key: str, expected_version: int):
        self.aggregate = aggregate
        self.key = key
        self.expected_version = expected_version
        super().__init__(
            f"{aggregate} {key!r} was modified concurrently (expected version {expected_version})"
        )
