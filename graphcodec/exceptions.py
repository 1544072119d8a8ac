"""Core graphcodec exceptions.

All errors raised deliberately by the package derive from GraphCodecError so
that users can catch everything emitted by graphcodec with one clause.
"""

__all__ = ['GraphCodecError',
           'TypeResolutionError',
           'InstanceCreationError',
           'MalformedDocumentError',
           'MalformedTextError',
           'ConversionError',
           'UnsupportedPropertyError']


class GraphCodecError(Exception):
    """Base exception for graphcodec package errors.

    Users should be able to use this base class to catch errors
    emitted by graphcodec.
    """


class TypeResolutionError(GraphCodecError):
    """A type reference is insufficient or names an unknown library or type."""


class InstanceCreationError(GraphCodecError):
    """An instance of a resolved type could not be created.

    The underlying cause is chained as ``__cause__``.
    """


class MalformedDocumentError(GraphCodecError):
    """The serialized document does not have the expected structure."""


class MalformedTextError(MalformedDocumentError):
    """Compact text is unbalanced or otherwise cannot be tokenized.

    Attributes:
        position: offset into the scanned text where the problem was detected.
    """
    def __init__(self, message: str, position: int = None):
        if position is not None:
            message = '{} (at offset {})'.format(message, position)
        super().__init__(message)
        self.position = position


class ConversionError(GraphCodecError, ValueError):
    """Scalar text could not be converted to (or from) the declared type."""


class UnsupportedPropertyError(GraphCodecError):
    """A compact-text property has no scalar, array, or fallback binding."""
