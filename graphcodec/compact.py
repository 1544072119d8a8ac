"""Compact delimited text serialization of records.

A record is written as::

    { "Name" : "Value", "Child" : { "Inner" : "1" }, "Values" : [1; 2; 3] }

Scalar values are quoted. Nested records and arrays follow the separator
without a quote, so a reader distinguishes "the value is text" from "the
value is a nested structure" by the first character after the separator.
Sequences of records are joined with ``", "``, both at the top level and as
the value of a property::

    { "Items" : [{ "A" : "1" }, { "A" : "2" }] }

A mapping is written with its keys as member names when it is the record
itself. A mapping held by a property is a collection, written as an array of
key/value records::

    { "Options" : [{ "Key" : "x", "Value" : "4" }, { "Key" : "y", "Value" : "5" }] }

The format has no escape mechanism. Scalar text containing the member quote
cannot be represented, and neither can array element text containing
brackets, braces, quotes or the item separator. Such values raise
ConversionError when they are serialized. Scalar text that merely starts with
a brace or bracket is still written quoted, so it reads back as text.

Parsing is strict: unterminated quotes, unbalanced braces or brackets,
missing separators, and stray text raise MalformedTextError.

Decoding binds ``(name, value_text)`` pairs onto a new instance of the
target class:

1. ``str`` properties receive the text as is.
2. Scalar properties are converted with the registry's Converter.
3. Array properties (``numpy.ndarray`` with a known element type, or
   sequences of a scalar element type, such as ``list[int]``) are split and
   converted element-wise.
4. Anything else is passed to the caller's *apply* handler, or raises
   UnsupportedPropertyError. :py:func:`bind_nested` returns a handler that
   decodes nested records recursively.

Names that do not match a settable property are ignored.
"""
from __future__ import annotations

__all__ = ['CompactTextCodec',
           'bind_nested',
           'entry_enumerable',
           'entry_properties',
           'scan_entry',
           'split_array']

import collections.abc
import decimal
import functools
import logging
import typing

import numpy

from .descriptors import PropertyDescriptor
from .descriptors import Shape
from .exceptions import ConversionError
from .exceptions import MalformedTextError
from .exceptions import UnsupportedPropertyError
from .registry import TypeRegistry
from .walker import ObjectGraphWalker
from .walker import VisitedSet

logger = logging.getLogger(__name__)
logger.debug('Importing {}'.format(__name__))

MEMBER_QUOTE = '"'
ENTRY_OPEN = '{'
ENTRY_CLOSE = '}'
ARRAY_OPEN = '['
ARRAY_CLOSE = ']'
VALUE_DELIMITER = ', '
ARRAY_DELIMITER = '; '
PROPERTY_SEPARATOR = '" : "'
NESTED_PROPERTY_SEPARATOR = '" : '
ENTRY_KEY = 'Key'
ENTRY_VALUE = 'Value'

_ARRAY_ITEM_SEPARATOR = ARRAY_DELIMITER.strip()
_UNSAFE_ELEMENT_CHARACTERS = frozenset(MEMBER_QUOTE + ENTRY_OPEN + ENTRY_CLOSE + ARRAY_OPEN + ARRAY_CLOSE
                                       + _ARRAY_ITEM_SEPARATOR)

# Element types of array-typed properties, and the dtype of the numpy arrays built for them.
_ARRAY_ELEMENT_DTYPES = {
    numpy.int16: numpy.int16,
    numpy.uint16: numpy.uint16,
    numpy.int32: numpy.int32,
    numpy.uint32: numpy.uint32,
    numpy.int64: numpy.int64,
    numpy.uint64: numpy.uint64,
    numpy.float32: numpy.float32,
    numpy.float64: numpy.float64,
    int: numpy.int64,
    float: numpy.float64,
    bool: numpy.bool_,
    decimal.Decimal: object,
    str: object,
}

Apply = typing.Callable[[typing.Any, PropertyDescriptor, str], None]
"""Fallback handler ``apply(entry, descriptor, value_text)`` for properties without a built-in binding."""


def _skip_whitespace(text: str, position: int) -> int:
    while position < len(text) and text[position].isspace():
        position += 1
    return position


def _find_quote(text: str, position: int) -> int:
    """Find the quote closing the token that opens at *position*."""
    close = text.find(MEMBER_QUOTE, position + 1)
    if close < 0:
        raise MalformedTextError('Unterminated quoted text', position)
    return close


def scan_entry(text: str, start: int = 0) -> typing.Optional[typing.Tuple[int, str]]:
    """Scan one top-level record, starting at *start*.

    Whitespace and entry separators before the record are skipped. Braces
    inside quoted text do not count toward nesting.

    Returns:
        ``(end, interior)``, where *end* is the offset just past the closing
        brace and *interior* is the trimmed text between the braces, or None
        if the next significant character does not open a record.

    Raises:
        MalformedTextError if the record is not terminated.
    """
    position = start
    while position < len(text) and (text[position].isspace() or text[position] == ','):
        position += 1
    if position >= len(text) or text[position] != ENTRY_OPEN:
        return None
    opening = position
    depth = 0
    quoted = False
    for position in range(opening, len(text)):
        character = text[position]
        if character == MEMBER_QUOTE:
            quoted = not quoted
        elif quoted:
            continue
        elif character == ENTRY_OPEN:
            depth += 1
        elif character == ENTRY_CLOSE:
            depth -= 1
            if depth == 0:
                return position + 1, text[opening + 1:position].strip()
    if quoted:
        raise MalformedTextError('Unterminated quoted text in record', opening)
    raise MalformedTextError('Unbalanced braces in record', opening)


def entry_enumerable(text: str) -> typing.Iterator[str]:
    """Generate the interior text of each top-level record in *text*.

    Raises:
        MalformedTextError if *text* contains anything but records and separators.
    """
    position = 0
    while True:
        result = scan_entry(text, position)
        if result is None:
            break
        position, interior = result
        yield interior
    remainder = text[position:].strip().strip(',').strip()
    if remainder:
        raise MalformedTextError('Unexpected text after records', position)


def _scan_array(text: str, opening: int) -> int:
    """Find the bracket closing the array that opens at *opening*."""
    depth = 0
    quoted = False
    for position in range(opening, len(text)):
        character = text[position]
        if character == MEMBER_QUOTE:
            quoted = not quoted
        elif quoted:
            continue
        elif character in (ARRAY_OPEN, ENTRY_OPEN):
            depth += 1
        elif character in (ARRAY_CLOSE, ENTRY_CLOSE):
            depth -= 1
            if depth == 0:
                if character != ARRAY_CLOSE:
                    raise MalformedTextError('Mismatched brackets in array', position)
                return position
            if depth < 0:
                break
    raise MalformedTextError('Unbalanced brackets in array', opening)


def _scan_records(text: str, position: int) -> typing.Tuple[int, typing.List[str]]:
    # One or more sibling records, separated by entry separators.
    records = []
    while True:
        result = scan_entry(text, position)
        if result is None:
            break
        position, interior = result
        records.append(interior)
        following = _skip_whitespace(text, position)
        if following >= len(text) or text[following] != ',':
            break
        following = _skip_whitespace(text, following + 1)
        if following >= len(text) or text[following] != ENTRY_OPEN:
            break
    return position, records


def _wrap(interior: str) -> str:
    return ENTRY_OPEN + ' ' + interior + ' ' + ENTRY_CLOSE if interior else ENTRY_OPEN + ' ' + ENTRY_CLOSE


def entry_properties(interior: str) -> typing.Iterator[typing.Tuple[str, str]]:
    """Generate the ``(name, value_text)`` pairs of one record's interior.

    Quoted values produce their unquoted text. A nested record produces the
    record text; several sibling records under one name produce the records
    joined by ``", "``. An array produces the bracketed text.

    Raises:
        MalformedTextError if the interior does not consist of ``"name" : value``
        pairs separated by commas.
    """
    position = 0
    length = len(interior)
    while True:
        position = _skip_whitespace(interior, position)
        if position >= length:
            return
        if interior[position] != MEMBER_QUOTE:
            raise MalformedTextError('Expected a quoted property name', position)
        close = _find_quote(interior, position)
        name = interior[position + 1:close]

        position = _skip_whitespace(interior, close + 1)
        if position >= length or interior[position] != ':':
            raise MalformedTextError("Expected ':' after property {!r}".format(name), position)
        position = _skip_whitespace(interior, position + 1)
        if position >= length:
            raise MalformedTextError('Missing value of property {!r}'.format(name), position)

        character = interior[position]
        if character == MEMBER_QUOTE:
            close = _find_quote(interior, position)
            value = interior[position + 1:close]
            position = close + 1
        elif character == ENTRY_OPEN:
            position, records = _scan_records(interior, position)
            value = VALUE_DELIMITER.join(_wrap(record) for record in records)
        elif character == ARRAY_OPEN:
            close = _scan_array(interior, position)
            value = interior[position:close + 1]
            position = close + 1
        else:
            raise MalformedTextError('Expected a value for property {!r}'.format(name), position)
        yield name, value

        position = _skip_whitespace(interior, position)
        if position >= length:
            return
        if interior[position] != ',':
            raise MalformedTextError('Expected "," after property {!r}'.format(name), position)
        position += 1


def split_array(text: str) -> typing.List[str]:
    """Split bracketed array text into element texts.

    Elements that are records are returned as record texts. Empty scalar
    elements are dropped.
    """
    text = text.strip()
    if not text.startswith(ARRAY_OPEN) or not text.endswith(ARRAY_CLOSE):
        raise MalformedTextError('Array text must be enclosed in {}{}'.format(ARRAY_OPEN, ARRAY_CLOSE), 0)
    inner = text[1:-1].strip()
    if not inner:
        return []
    if inner.startswith(ENTRY_OPEN):
        return [_wrap(record) for record in entry_enumerable(inner)]
    return [part.strip() for part in inner.split(_ARRAY_ITEM_SEPARATOR) if part.strip()]


def _records(text: str) -> typing.List[str]:
    """Record texts of a property value holding one or more records, bare or in an array."""
    if text.strip().startswith(ARRAY_OPEN):
        return split_array(text)
    return [_wrap(record) for record in entry_enumerable(text)]


class CompactTextCodec:
    """Serialize and deserialize records in the compact text format.

    Args:
        registry: TypeRegistry to use. Defaults to the package default registry.
    """
    def __init__(self, registry: TypeRegistry = None):
        self.walker = ObjectGraphWalker(registry)
        self.registry = self.walker.registry

    # Serialization

    def serialize(self, entry) -> typing.Optional[str]:
        """Render one record.

        Composites render their serializable properties. Mappings render their
        keys as member names.

        Returns:
            The record text, or None if *entry* is None.

        Raises:
            ConversionError if a value cannot be represented.
            TypeError if *entry* is not a composite or a mapping.
        """
        if entry is None:
            return None
        self.registry.begin_operation()
        shape = self.walker.shape_of(entry)
        if shape not in (Shape.COMPOSITE, Shape.KEYED):
            raise TypeError('Expected a record (composite or mapping). Got {!r}.'.format(type(entry)))
        return self._record_text(entry, VisitedSet())

    def serialize_many(self, entries: typing.Iterable) -> str:
        """Render a sequence of records joined with the entry separator."""
        if entries is None:
            return ''
        return VALUE_DELIMITER.join(text for text in map(self.serialize, entries) if text is not None)

    def _record_text(self, entry, visited: VisitedSet) -> str:
        if isinstance(entry, collections.abc.Mapping):
            members = ((str(key), child) for key, child in self.walker.entries(entry, visited))
        else:
            members = ((descriptor.name, child) for descriptor, child in self.walker.properties(entry, visited))
        return self._members_text(members, visited)

    def _members_text(self, members: typing.Iterable[typing.Tuple[str, typing.Any]], visited: VisitedSet) -> str:
        emit = functools.partial(self._value_text, visited)
        parts = []
        for name, child in members:
            if child is None:
                continue
            if MEMBER_QUOTE in name:
                raise ConversionError('Member name {!r} contains the member quote.'.format(name))
            text, nested = self.walker.visit(child, emit, name=name, visited=visited) or (None, False)
            if text is None:
                continue
            if nested:
                parts.append(MEMBER_QUOTE + name + NESTED_PROPERTY_SEPARATOR + text)
            else:
                parts.append(MEMBER_QUOTE + name + PROPERTY_SEPARATOR + text + MEMBER_QUOTE)
        if not parts:
            return ENTRY_OPEN + ' ' + ENTRY_CLOSE
        return ENTRY_OPEN + ' ' + VALUE_DELIMITER.join(parts) + ' ' + ENTRY_CLOSE

    def _value_text(self, visited: VisitedSet, shape: Shape, name: str, value) -> typing.Tuple[str, bool]:
        # Nested values are written without quotes.
        if shape is Shape.SCALAR:
            return self._scalar_text(value), False
        if shape in (Shape.ARRAY, Shape.ORDERED):
            return self._collection_text(value, visited), True
        if shape is Shape.KEYED:
            return self._entries_text(value, visited), True
        return self._record_text(value, visited), True

    def _entries_text(self, value: typing.Mapping, visited: VisitedSet) -> str:
        records = [self._members_text(((ENTRY_KEY, key), (ENTRY_VALUE, child)), visited)
                   for key, child in self.walker.entries(value, visited)]
        return ARRAY_OPEN + VALUE_DELIMITER.join(records) + ARRAY_CLOSE

    def _scalar_text(self, value) -> str:
        text = self.registry.converter(type(value)).to_text(value)
        if MEMBER_QUOTE in text:
            raise ConversionError('Value {!r} contains the member quote and cannot be written.'.format(text))
        return text

    def _element_text(self, value) -> str:
        converter = self.registry.converter(type(value))
        if converter is None:
            raise ConversionError('Cannot mix {} with scalars in one array.'.format(type(value).__qualname__))
        text = converter.to_text(value)
        if any(character in _UNSAFE_ELEMENT_CHARACTERS for character in text):
            raise ConversionError('Array element {!r} contains reserved characters and cannot be written.'.format(text))
        return text

    def _collection_text(self, value, visited: VisitedSet) -> str:
        elements = [element for element in self.walker.elements(value, visited) if element is not None]
        if not elements:
            return ARRAY_OPEN + ARRAY_CLOSE
        if self.walker.shape_of(elements[0]) is Shape.SCALAR:
            return ARRAY_OPEN + ARRAY_DELIMITER.join(self._element_text(element) for element in elements) + ARRAY_CLOSE
        records = []
        for element in elements:
            if self.walker.shape_of(element) not in (Shape.COMPOSITE, Shape.KEYED):
                raise ConversionError('Cannot mix {} with records in one array.'.format(type(element).__qualname__))
            if element in visited:
                continue
            records.append(self._record_text(element, visited))
        return ARRAY_OPEN + VALUE_DELIMITER.join(records) + ARRAY_CLOSE

    # Deserialization

    def deserialize(self, text: str, cls: type, apply: Apply = None):
        """Decode the first record in *text* into a new instance of *cls*.

        Returns:
            The new instance, or None if *text* holds no record.
        """
        for entry in self.deserialize_many(text, cls, apply=apply):
            return entry
        return None

    def deserialize_many(self, text: str, cls: type, apply: Apply = None) -> typing.Iterator:
        """Generate a new instance of *cls* for each record in *text*."""
        self.registry.begin_operation()
        for interior in entry_enumerable(text or ''):
            yield self._bind(cls, interior, apply)

    def deserialize_mapping(self, text: str, factory: typing.Callable[[], typing.MutableMapping] = dict) \
            -> typing.Optional[typing.MutableMapping]:
        """Decode the first record in *text* to a mapping of member names to value texts.

        The whole of *text* is scanned, so trailing garbage is an error.
        """
        records = list(entry_enumerable(text or ''))
        if not records:
            return None
        mapping = factory()
        for name, value in entry_properties(records[0]):
            mapping[name] = value
        return mapping

    def _bind(self, cls: type, interior: str, apply: typing.Optional[Apply]):
        if issubclass(cls, collections.abc.MutableMapping):
            entry = cls()
            for name, value in entry_properties(interior):
                entry[name] = value
            return entry
        entry = self.registry.create(cls, ignore_creation_errors=False)
        for name, value in entry_properties(interior):
            descriptor = self.registry.find_property(cls, name)
            if descriptor is None or not descriptor.settable:
                logger.debug('Ignoring {!r}: no settable property of {}.'.format(name, cls.__qualname__))
                continue
            self._bind_property(entry, descriptor, value, apply)
        return entry

    def _bind_property(self, entry, descriptor: PropertyDescriptor, text: str, apply: typing.Optional[Apply]):
        if descriptor.declared_type is str:
            descriptor.set(entry, text)
            return
        if descriptor.declared_shape is Shape.SCALAR:
            descriptor.set(entry, self.registry.converter(descriptor.declared_type).from_text(text))
            return
        array = self._array_value(descriptor, text)
        if array is not None:
            descriptor.set(entry, array)
            return
        if apply is None:
            raise UnsupportedPropertyError(
                'Property {} of {} has no built-in binding and no handler was provided.'.format(
                    descriptor.name, type(entry).__qualname__))
        apply(entry, descriptor, text)

    def _array_value(self, descriptor: PropertyDescriptor, text: str):
        shape = descriptor.declared_shape
        if shape not in (Shape.ARRAY, Shape.ORDERED) or len(descriptor.element_types) != 1:
            return None
        if not text.strip().startswith(ARRAY_OPEN):
            return None
        element_type = descriptor.element_types[0]
        if shape is Shape.ARRAY:
            dtype = _ARRAY_ELEMENT_DTYPES.get(element_type)
            if dtype is None:
                return None
        elif self.registry.shape_of_type(element_type) is not Shape.SCALAR:
            return None
        converter = self.registry.converter(element_type)
        values = [converter.from_text(part) for part in split_array(text)]
        if shape is Shape.ARRAY:
            return numpy.array(values, dtype=dtype)
        return descriptor.declared_type(values)


def _entry_pairs(codec: CompactTextCodec, text: str) -> typing.Iterator[typing.Tuple[str, typing.Optional[str]]]:
    """Generate the ``(key_text, value_text)`` pairs of a nested mapping.

    Both the array of key/value records and a single record with the keys
    as member names are accepted. A key/value record without a value
    produces None.
    """
    if not text.strip().startswith(ARRAY_OPEN):
        yield from (codec.deserialize_mapping(text) or {}).items()
        return
    for record in split_array(text):
        members = codec.deserialize_mapping(record) or {}
        if ENTRY_KEY not in members:
            raise MalformedTextError('Mapping entry {!r} has no {!r} member'.format(record, ENTRY_KEY))
        yield members[ENTRY_KEY], members.get(ENTRY_VALUE)


def _nested_value(codec: CompactTextCodec, cls: type, text: typing.Optional[str], apply: Apply):
    if text is None:
        return None
    shape = codec.registry.shape_of_type(cls)
    if shape is Shape.COMPOSITE:
        return codec.deserialize(text, cls, apply=apply)
    if shape is Shape.KEYED:
        value = cls()
        for key, item in _entry_pairs(codec, text):
            value[key] = item
        return value
    if shape is Shape.ORDERED and text.strip().startswith(ARRAY_OPEN):
        return cls(split_array(text))
    return codec.registry.create(cls, text)


def bind_nested(codec: CompactTextCodec) -> Apply:
    """Get a fallback handler that decodes nested records recursively.

    The handler decodes properties declared as composites, as mappings, or
    as sequences of composites. Mapping keys and values are decoded by their
    declared types, recursively for composite values. Other properties raise
    UnsupportedPropertyError.
    """
    def apply(entry, descriptor: PropertyDescriptor, text: str):
        shape = descriptor.declared_shape
        declared_type = descriptor.declared_type
        if shape is Shape.COMPOSITE:
            records = _records(text)
            if not records:
                return
            value = codec.deserialize(records[0], declared_type, apply=apply)
        elif shape is Shape.KEYED:
            key_type, value_type = descriptor.element_types if len(descriptor.element_types) == 2 else (str, str)
            value = declared_type()
            for key, item in _entry_pairs(codec, text):
                value[_nested_value(codec, key_type, key, apply)] = _nested_value(codec, value_type, item, apply)
        elif shape in (Shape.ORDERED, Shape.ARRAY) and len(descriptor.element_types) == 1:
            element_type = descriptor.element_types[0]
            items = [codec.deserialize(record, element_type, apply=apply) for record in _records(text)]
            if shape is Shape.ARRAY:
                value = numpy.full(len(items), None, dtype=object)
                for index, item in enumerate(items):
                    value[index] = item
            else:
                value = declared_type(items)
        else:
            raise UnsupportedPropertyError('Cannot decode nested value of {}.{}.'.format(
                type(entry).__qualname__, descriptor.name))
        descriptor.set(entry, value)
    return apply
