"""Convenience functions for common serialization tasks.

These functions use the default registry and default codec options. Create
codec instances directly for anything else.

Flat value lists are written as converted texts joined with ``", "``, e.g.
``serialize_array(1, 2, 3) == '1, 2, 3'``.
"""
from __future__ import annotations

__all__ = ['deserialize_array',
           'deserialize_context',
           'deserialize_entry',
           'deserialize_entry_array',
           'deserialize_enumerable',
           'deserialize_tree_entry',
           'serialize_array',
           'serialize_entry',
           'serialize_entry_enumerable',
           'serialize_entry_properties',
           'serialize_enumerable']

import logging
import typing

import numpy

from . import legacy
from .compact import Apply
from .compact import CompactTextCodec
from .exceptions import ConversionError
from .registry import ArrayType
from .registry import default_registry
from .tree import TreeDeserializer
from .tree import TreeSerializer

logger = logging.getLogger(__name__)
logger.debug('Importing {}'.format(__name__))

VALUE_DELIMITER = ', '


def serialize_entry(entry, deep: bool = False) -> str:
    """Serialize *entry* to tree text, expanding collection-valued properties."""
    serializer = TreeSerializer(primary_properties_only=True, deep_serialization=deep)
    return serializer.to_string(entry)


def deserialize_tree_entry(text: str, cls: type = None):
    return TreeDeserializer().deserialize(text, root_type=cls)


def _text(value) -> str:
    converter = default_registry.converter(type(value))
    if converter is None:
        raise ConversionError('{} is not a scalar type.'.format(type(value).__qualname__))
    return converter.to_text(value)


def serialize_array(*values) -> str:
    return serialize_enumerable(values)


def serialize_enumerable(values: typing.Optional[typing.Iterable]) -> str:
    if values is None:
        return ''
    return VALUE_DELIMITER.join(_text(value) for value in values)


def deserialize_enumerable(text: typing.Optional[str], cls: type) -> typing.Iterator:
    """Generate values of *cls* from text written by :py:func:`serialize_enumerable`."""
    converter = default_registry.converter(cls)
    if converter is None:
        raise ConversionError('{} is not a scalar type.'.format(cls.__qualname__))
    for part in (text or '').split(VALUE_DELIMITER):
        if part:
            yield converter.from_text(part)


def deserialize_array(text: typing.Optional[str], cls: type) -> numpy.ndarray:
    values = list(deserialize_enumerable(text, cls))
    array = ArrayType(cls).allocate(len(values))
    for index, value in enumerate(values):
        array[index] = value
    return array


def serialize_entry_properties(entry) -> typing.Optional[str]:
    return CompactTextCodec().serialize(entry)


def serialize_entry_enumerable(entries: typing.Optional[typing.Iterable]) -> str:
    return CompactTextCodec().serialize_many(entries)


def deserialize_entry(text: str, cls: type, apply: Apply = None):
    return CompactTextCodec().deserialize(text, cls, apply=apply)


def deserialize_entry_array(text: str, cls: type, apply: Apply = None) -> list:
    return list(CompactTextCodec().deserialize_many(text, cls, apply=apply))


def deserialize_context(text: typing.Optional[str]) -> typing.Dict[str, str]:
    return legacy.deserialize_context(text)
