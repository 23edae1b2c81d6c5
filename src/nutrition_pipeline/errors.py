"""Errors raised back to callers of the pipeline."""


class InvalidRequestError(ValueError):
    """Caller input that cannot be processed, with a user-facing message."""


class InvalidImageError(InvalidRequestError):
    """Image payload rejected before any model call."""
