"""Exceptions raised by the bot's collaborators."""


class PeepoBotError(Exception):
    """Base exception for Peepo bot errors."""

    pass


class ContentNotFoundError(PeepoBotError):
    """Raised when no image can be fetched from the content source."""

    pass


class StorageError(PeepoBotError):
    """Raised when the subscription store cannot be read or written."""

    pass
