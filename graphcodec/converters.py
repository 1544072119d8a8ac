"""Bidirectional text conversion for scalar types.

A type is a *scalar* for the purposes of graphcodec if a Converter exists for
it. Converters are produced by factories registered for classes with
``functools.singledispatch`` semantics, so a factory registered for a base
class (e.g. ``enum.Enum``) serves its subclasses, too.

Classes outside this module can participate in one of two ways:

* Implement the Convertible protocol: a ``from_text(text)`` class method and a
  ``to_text()`` instance method.
* Register a factory with :py:func:`register_converter`.

Converters are looked up through a TypeRegistry, which memoizes them per class.
"""
from __future__ import annotations

__all__ = ['Converter', 'Convertible', 'converter_for', 'register_converter']

import base64
import binascii
import dataclasses
import datetime
import decimal
import enum
import functools
import logging
import pathlib
import typing
import uuid

import numpy

from .exceptions import ConversionError

logger = logging.getLogger(__name__)
logger.debug('Importing {}'.format(__name__))

T = typing.TypeVar('T')


@typing.runtime_checkable
class Convertible(typing.Protocol):
    """Protocol for classes that provide their own text conversion."""
    @classmethod
    def from_text(cls, text: str):
        ...

    def to_text(self) -> str:
        ...


@dataclasses.dataclass(frozen=True)
class Converter(typing.Generic[T]):
    """Convert between text and values of *target*.

    Attributes:
        target: The class handled by the converter.
        parse: Callable producing a value from text, or None if the
            converter can only produce text.
        format: Callable producing text from a value.
    """
    target: type
    parse: typing.Optional[typing.Callable[[str], T]]
    format: typing.Callable[[T], str] = str

    @property
    def can_convert_from_text(self) -> bool:
        return self.parse is not None

    def from_text(self, text: str) -> T:
        if self.parse is None:
            raise ConversionError('{} cannot be converted from text.'.format(self.target.__qualname__))
        if text is None:
            raise ConversionError('Cannot convert None to {}.'.format(self.target.__qualname__))
        try:
            return self.parse(text)
        except ConversionError:
            raise
        except (TypeError, ValueError, KeyError, ArithmeticError, binascii.Error) as e:
            raise ConversionError(
                'Cannot convert {!r} to {}.'.format(text, self.target.__qualname__)) from e

    def to_text(self, value: T) -> str:
        try:
            return self.format(value)
        except (TypeError, ValueError, AttributeError) as e:
            raise ConversionError(
                'Cannot convert {!r} of {} to text.'.format(value, self.target.__qualname__)) from e


def _parse_bool(text: str) -> bool:
    normalized = text.strip().lower()
    if normalized == 'true':
        return True
    if normalized == 'false':
        return False
    raise ConversionError('{!r} is not a valid boolean.'.format(text))


def _parse_base64(text: str) -> bytes:
    return base64.b64decode(text.encode('ascii'), validate=True)


def _format_base64(value) -> str:
    return base64.b64encode(bytes(value)).decode('ascii')


# Factories receive the class being converted, so that subclasses (e.g. enumerations)
# get a converter that produces the subclass.
@functools.singledispatch
def _converter_factory(cls) -> typing.Optional[Converter]:
    # Note: dispatching happens through `_converter_factory.dispatch(cls)`, so
    # this default implementation is registered for `object`.
    if callable(getattr(cls, 'from_text', None)) and callable(getattr(cls, 'to_text', None)):
        return Converter(cls, cls.from_text, lambda value: value.to_text())
    return None


@_converter_factory.register(str)
def _(cls):
    if cls is str:
        return Converter(cls, str, str)
    return Converter(cls, cls, str)


@_converter_factory.register(bool)
def _(cls):
    return Converter(cls, _parse_bool, str)


@_converter_factory.register(int)
def _(cls):
    return Converter(cls, lambda text: cls(text.strip()), str)


@_converter_factory.register(float)
def _(cls):
    return Converter(cls, lambda text: cls(text.strip()), repr)


@_converter_factory.register(complex)
def _(cls):
    return Converter(cls, lambda text: cls(text.strip()), str)


@_converter_factory.register(bytes)
def _(cls):
    return Converter(cls, _parse_base64, _format_base64)


@_converter_factory.register(bytearray)
def _(cls):
    return Converter(cls, lambda text: bytearray(_parse_base64(text)), _format_base64)


@_converter_factory.register(decimal.Decimal)
@_converter_factory.register(uuid.UUID)
@_converter_factory.register(pathlib.PurePath)
def _(cls):
    return Converter(cls, lambda text: cls(text.strip()), str)


@_converter_factory.register(datetime.date)
@_converter_factory.register(datetime.time)
def _(cls):
    # datetime.datetime is a subclass of datetime.date and provides its own fromisoformat.
    return Converter(cls, lambda text: cls.fromisoformat(text.strip()), lambda value: value.isoformat())


@_converter_factory.register(datetime.timedelta)
def _(cls):
    return Converter(cls,
                     lambda text: cls(seconds=float(text.strip())),
                     lambda value: repr(value.total_seconds()))


@_converter_factory.register(enum.Enum)
def _(cls):
    # Enumerations are represented by member name.
    return Converter(cls, lambda text: cls[text.strip()], lambda value: value.name)


@_converter_factory.register(numpy.generic)
def _(cls):
    return Converter(cls, lambda text: cls(text.strip()), str)


@_converter_factory.register(numpy.bool_)
def _(cls):
    # numpy.bool_('False') is True, so parse the text ourselves.
    return Converter(cls, lambda text: cls(_parse_bool(text)), lambda value: str(bool(value)))


def converter_for(cls: type) -> typing.Optional[Converter]:
    """Get a new Converter for *cls*, or None if *cls* is not a scalar type.

    Prefer :py:meth:`TypeRegistry.converter() <graphcodec.registry.TypeRegistry.converter>`,
    which caches the result.
    """
    if not isinstance(cls, type):
        raise TypeError('Expected a class. Got {!r}.'.format(cls))
    factory = _converter_factory.dispatch(cls)
    return factory(cls)


def register_converter(cls: type, factory: typing.Callable[[type], typing.Optional[Converter]]):
    """Register a converter factory for *cls* and its subclasses.

    Registration should happen before the class is first used by a registry,
    because registries cache converters.
    """
    if not isinstance(cls, type):
        raise TypeError('Converters are dispatched on classes, so *cls* must be a `type` object.')
    logger.debug('Registering converter factory for {}.'.format(cls))
    _converter_factory.register(cls, factory)
