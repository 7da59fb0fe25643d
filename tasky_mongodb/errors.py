# errors.py


class BootstrapError(Exception):
    """Base class for everything the schema bootstrap can report."""


class InvalidSpecError(BootstrapError, ValueError):
    pass


class DuplicateSpecError(BootstrapError):
    def __init__(self, names):
        self.names = sorted(names)
        super().__init__(f"Duplicate collection specs: {', '.join(self.names)}")


class CollectionCreationError(BootstrapError):
    """The server refused to create or modify a collection.

    The driver exception is chained as ``__cause__``.
    """

    def __init__(self, name: str, reason: str):
        self.name = name
        self.reason = reason
        super().__init__(f"Could not set up collection '{name}': {reason}")


class ValidationConflict(BootstrapError):
    """A collection already exists with a validator that differs from ours."""

    def __init__(self, name: str, existing, expected, reason: str = "validator differs"):
        self.name = name
        self.existing = existing
        self.expected = expected
        self.reason = reason
        super().__init__(
            f"Collection '{name}' already has a different validator: {reason} "
            f"(existing required={list(existing.required)}, "
            f"expected required={list(expected.required)})"
        )
