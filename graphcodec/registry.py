"""Resolve textual type references to constructible types.

The TypeRegistry is the single owner of the process-wide state used by the
codecs:

* the library resolution cache, mapping library names to Library objects
  (or to None, for names that could not be resolved),
* the scalar Converter cache, and
* the PropertyDescriptor cache.

Type-keyed caches are :py:class:`weakref.WeakKeyDictionary` instances so that
classes defined at run time can still be collected. All caches are append-only
and are written with ``setdefault()``, so concurrent readers may compute the
same entry redundantly, but the first stored value wins.

Type resolution:
    A library name is looked up first literally, then by its short name
    (ignoring qualifiers after the first comma). On a miss, the configured
    LibraryLoader (if any) is asked to locate the library, and the result is
    memoized, whether or not a library was found. Registries fail closed by
    default: with no loader, only registered libraries resolve.

    Libraries and types may be registered explicitly, e.g. for plugins.
    Registered libraries take priority over memoized lookups, and are merged
    into the resolution cache at the start of each codec operation
    (:py:meth:`TypeRegistry.begin_operation`).

Example::

    registry = TypeRegistry()
    registry.register_type(MyRecord, library='myapp')
    assert registry.resolve('myapp, Version=2', 'MyRecord') is MyRecord

"""
from __future__ import annotations

__all__ = ['ArrayType', 'ImportLibraryLoader', 'Library', 'LibraryLoader', 'TypeRegistry', 'default_registry']

import base64
import binascii
import collections
import collections.abc
import dataclasses
import datetime
import decimal
import importlib
import io
import logging
import pathlib
import typing
import uuid
import weakref

import numpy

from . import typeref as _typeref
from .converters import Converter
from .converters import converter_for
from .descriptors import PropertyDescriptor
from .descriptors import Shape
from .descriptors import build_descriptors
from .exceptions import ConversionError
from .exceptions import InstanceCreationError
from .exceptions import TypeResolutionError
from .typeref import ARRAY_SUFFIX
from .typeref import TypeReference
from .typeref import short_name

logger = logging.getLogger(__name__)
logger.debug('Importing {}'.format(__name__))

DEFAULT_LIBRARY = 'builtins'
"""Library assumed when serialized data does not name one."""

DEFAULT_TYPE = 'str'
"""Type assumed when serialized data does not name one."""

_MISSING = object()


@dataclasses.dataclass(frozen=True)
class ArrayType:
    """Handle for a fixed-length, one-dimensional array of *element_type*.

    Arrays are realized as :py:class:`numpy.ndarray`. Arrays of numeric and
    boolean elements use the corresponding numpy dtype. Other element types
    are stored in arrays of ``dtype=object``.
    """
    element_type: type

    @property
    def dtype(self) -> numpy.dtype:
        element_type = self.element_type
        if issubclass(element_type, numpy.generic) and not issubclass(element_type, (numpy.str_, numpy.bytes_)):
            return numpy.dtype(element_type)
        if element_type in (bool, int, float, complex):
            return numpy.dtype(element_type)
        return numpy.dtype(object)

    def allocate(self, length: int) -> numpy.ndarray:
        """Allocate an array with its final length."""
        dtype = self.dtype
        if dtype == numpy.dtype(object):
            return numpy.full(length, None, dtype=object)
        return numpy.zeros(length, dtype=dtype)


TypeHandle = typing.Union[type, ArrayType]


class Library:
    """A named namespace of constructible classes.

    A Library holds explicitly registered classes. A module-backed Library
    additionally resolves (dotted) qualified names by attribute lookup in
    the module, accepting classes only, optionally filtered by *predicate*.
    """
    def __init__(self, name: str,
                 types: typing.Iterable[type] = (),
                 module=None,
                 predicate: typing.Callable[[type], bool] = None):
        if not name:
            raise ValueError('A Library must have a name.')
        self.name = name
        self._types: typing.Dict[str, type] = {}
        self._module = module
        self._predicate = predicate
        for cls in types:
            self.register(cls)

    @classmethod
    def from_module(cls, module, predicate: typing.Callable[[type], bool] = None) -> 'Library':
        return cls(module.__name__, module=module, predicate=predicate)

    def register(self, cls: type, name: str = None):
        if not isinstance(cls, type):
            raise TypeError('Only classes can be registered. Got {!r}.'.format(cls))
        if name is None:
            name = cls.__qualname__
        self._types[name] = cls

    def items(self) -> typing.Iterable[typing.Tuple[str, type]]:
        """Explicitly registered (name, class) pairs."""
        return tuple(self._types.items())

    def get_type(self, type_name: str) -> typing.Optional[type]:
        cls = self._types.get(type_name)
        if cls is not None or self._module is None:
            return cls
        obj = self._module
        for part in type_name.split('.'):
            if not part or part.startswith('<'):
                return None
            obj = getattr(obj, part, None)
            if obj is None:
                return None
        if not isinstance(obj, type):
            return None
        if self._predicate is not None and not self._predicate(obj):
            return None
        return obj

    def __contains__(self, type_name):
        return self.get_type(type_name) is not None

    def __repr__(self):
        return '<Library {!r}: {} registered types>'.format(self.name, len(self._types))


class LibraryLoader(typing.Protocol):
    """Locate a library that has not been registered."""
    def load(self, library_name: str) -> typing.Optional[Library]:
        """Get a Library for *library_name*, or None if it cannot be located."""
        ...


class ImportLibraryLoader:
    """Locate libraries by importing the module of the same name.

    Importing modules named by serialized data executes code chosen by the
    author of the data. Only use this loader with trusted input.
    """
    def __init__(self, predicate: typing.Callable[[type], bool] = None):
        self.predicate = predicate

    def load(self, library_name: str) -> typing.Optional[Library]:
        try:
            module = importlib.import_module(library_name)
        except ImportError as e:
            logger.debug('Could not import {}: {}'.format(library_name, e))
            return None
        return Library.from_module(module, predicate=self.predicate)


def _is_numpy_type(cls) -> bool:
    return issubclass(cls, (numpy.generic, numpy.ndarray))


def _default_libraries() -> typing.List[Library]:
    return [
        Library('builtins', (str, bool, int, float, complex, bytes, bytearray,
                             list, tuple, set, frozenset, dict, object)),
        Library('datetime', (datetime.date, datetime.time, datetime.datetime, datetime.timedelta)),
        Library('decimal', (decimal.Decimal,)),
        Library('uuid', (uuid.UUID,)),
        Library('pathlib', (pathlib.PurePath, pathlib.PurePosixPath, pathlib.PureWindowsPath,
                            pathlib.Path, pathlib.PosixPath, pathlib.WindowsPath)),
        Library('collections', (collections.OrderedDict, collections.deque)),
        Library(_typeref.__name__, (TypeReference,)),
        Library.from_module(numpy, predicate=_is_numpy_type),
    ]


class TypeRegistry:
    """Resolve type references, convert scalars, and create instances.

    Args:
        loader: Optional LibraryLoader consulted for unregistered library names.
        ignore_creation_errors: Default policy for :py:meth:`construct` and
            :py:meth:`create` when an instance cannot be created.
        default_libraries: Register the standard libraries (``builtins``,
            ``datetime``, ``decimal``, ``uuid``, ``pathlib``, ``collections``,
            ``numpy``, and the graphcodec TypeReference library).
    """
    def __init__(self,
                 loader: LibraryLoader = None,
                 ignore_creation_errors: bool = False,
                 default_libraries: bool = True):
        self.loader = loader
        self.ignore_creation_errors = ignore_creation_errors
        # Explicitly registered libraries, by name.
        self._registered: typing.Dict[str, Library] = {}
        # Resolution cache. None records a failed lookup.
        self._libraries: typing.Dict[str, typing.Optional[Library]] = {}
        self._references = weakref.WeakKeyDictionary()
        self._converters = weakref.WeakKeyDictionary()
        self._descriptors = weakref.WeakKeyDictionary()
        self._property_names = weakref.WeakKeyDictionary()
        if default_libraries:
            for library in _default_libraries():
                self.register_library(library)

    # Registration

    def register_library(self, library) -> Library:
        """Register a Library, or a module to be wrapped in a module-backed Library."""
        if not isinstance(library, Library):
            library = Library.from_module(library)
        self._registered[library.name] = library
        self._libraries[library.name] = library
        for type_name, cls in library.items():
            self._references.setdefault(cls, (library.name, type_name))
        logger.debug('Registered library {}.'.format(library.name))
        return library

    def register_type(self, cls: type, library: str = None, name: str = None) -> type:
        """Register a class with a (new or existing) registered library.

        By default, the class is registered by ``__qualname__`` in the library
        named by its ``__module__``.

        Returns *cls*, so the method may be used as a decorator.
        """
        if not isinstance(cls, type):
            raise TypeError('Only classes can be registered. Got {!r}.'.format(cls))
        if library is None:
            library = cls.__module__
        if name is None:
            name = cls.__qualname__
        target = self._registered.get(library)
        if target is None:
            target = self.register_library(Library(library))
        target.register(cls, name)
        self._references[cls] = (target.name, name)
        self._libraries[target.name] = target
        return cls

    def register_properties(self, cls: type, names: typing.Iterable[str]):
        """Declare the serializable property names of *cls* explicitly.

        Must be called before *cls* is first serialized, because descriptor
        tables are computed once.
        """
        names = tuple(names)
        if cls in self._descriptors:
            logger.warning('Descriptors for {} were already computed. Registered names will be ignored.'.format(cls))
        self._property_names[cls] = names

    def begin_operation(self):
        """Merge registered libraries into the resolution cache.

        Called by the codecs at the start of every top-level operation, so that
        registrations take priority over lookups memoized earlier.
        """
        self._libraries.update(self._registered)

    # Resolution

    def get_library(self, library_name: str) -> typing.Optional[Library]:
        """Find a library by literal name, then by short name, then with the loader."""
        if not library_name:
            return None
        library = self._libraries.get(library_name)
        if library is not None:
            return library
        short = short_name(library_name)
        if short in self._libraries:
            return self._libraries[short]
        if self.loader is None:
            logger.debug('No library registered as {}.'.format(short))
            library = None
        else:
            library = self.loader.load(short)
        return self._libraries.setdefault(short, library)

    def resolve(self, library_name: str, type_name: str) -> typing.Optional[TypeHandle]:
        """Get a type handle for the named type, or None if it cannot be found.

        A type name ending in ``[]`` produces an ArrayType over the element type.
        """
        if not library_name or not type_name:
            return None
        library = self.get_library(library_name)
        if library is None:
            return None
        if type_name.endswith(ARRAY_SUFFIX):
            element_type = library.get_type(type_name[:-len(ARRAY_SUFFIX)])
            if element_type is None:
                return None
            return ArrayType(element_type)
        return library.get_type(type_name)

    def resolve_reference(self, reference: TypeReference) -> TypeHandle:
        """Get a type handle for a TypeReference.

        Raises:
            TypeResolutionError if the reference is insufficient or the type cannot be found.
        """
        if not reference.is_sufficient():
            raise TypeResolutionError('Insufficient type reference: {}'.format(reference))
        handle = self.resolve(reference.library_name, reference.type_name)
        if handle is None:
            raise TypeResolutionError('Library or type not found: {}'.format(reference))
        return handle

    def reference_of(self, value_or_type) -> TypeReference:
        """Get the TypeReference with which a value (or class) is written.

        Arrays are referred to by their element type with a ``[]`` suffix.
        """
        if isinstance(value_or_type, ArrayType):
            element = self.reference_of(value_or_type.element_type)
            return TypeReference(element.type_name + ARRAY_SUFFIX, element.library_name)
        if isinstance(value_or_type, numpy.ndarray):
            element = self.reference_of(self.array_element_type(value_or_type))
            return TypeReference(element.type_name + ARRAY_SUFFIX, element.library_name)
        if isinstance(value_or_type, type):
            cls = value_or_type
        else:
            cls = type(value_or_type)
        names = self._references.get(cls)
        if names is None:
            names = (cls.__module__, cls.__qualname__)
        library_name, type_name = names
        return TypeReference(type_name=type_name, library_name=library_name)

    @staticmethod
    def array_element_type(array: numpy.ndarray) -> type:
        """Get the element class of an array.

        Arrays of ``dtype=object`` are described by their first element that is not None.
        """
        if array.dtype != numpy.dtype(object):
            return array.dtype.type
        for element in array.flat:
            if element is not None:
                return type(element)
        return object

    # Type metadata

    def converter(self, cls) -> typing.Optional[Converter]:
        """Get the (memoized) scalar Converter for *cls*, or None."""
        if not isinstance(cls, type):
            return None
        converter = self._converters.get(cls, _MISSING)
        if converter is _MISSING:
            converter = self._converters.setdefault(cls, converter_for(cls))
        return converter

    def descriptors(self, cls: type) -> typing.Tuple[PropertyDescriptor, ...]:
        """Get the (memoized) PropertyDescriptor table for *cls*."""
        descriptors = self._descriptors.get(cls)
        if descriptors is None:
            descriptors = build_descriptors(cls,
                                            names=self._property_names.get(cls),
                                            classify=self.shape_of_type)
            descriptors = self._descriptors.setdefault(cls, descriptors)
        return descriptors

    def find_property(self, cls: type, name: str) -> typing.Optional[PropertyDescriptor]:
        for descriptor in self.descriptors(cls):
            if descriptor.name == name:
                return descriptor
        return None

    def shape_of_type(self, cls) -> Shape:
        """Classify a class (or ArrayType) into exactly one Shape."""
        if isinstance(cls, ArrayType):
            return Shape.ARRAY
        if issubclass(cls, numpy.ndarray):
            return Shape.ARRAY
        if self.converter(cls) is not None:
            return Shape.SCALAR
        if issubclass(cls, collections.abc.Mapping):
            return Shape.KEYED
        if issubclass(cls, collections.abc.Collection):
            return Shape.ORDERED
        return Shape.COMPOSITE

    def shape_of(self, value) -> Shape:
        return self.shape_of_type(type(value))

    # Instances

    def construct(self, reference: TypeReference,
                  payload: str = None,
                  handle: TypeHandle = None,
                  ignore_creation_errors: bool = None):
        """Create a value of the referenced type.

        If the reference declares a constructor parameter, *payload* is decoded
        from base64 and passed to the one-argument constructor, as bytes or
        wrapped in a stream, depending on the parameter type. Otherwise the
        value is created by :py:meth:`create`.

        Args:
            reference: Type of the value.
            payload: Text of the value, or base64 data for a binary constructor.
            handle: Previously resolved handle for *reference*, if available.
            ignore_creation_errors: Override the registry default.

        Returns:
            The new value, or None if creation failed and errors are ignored.

        Raises:
            TypeResolutionError if the type cannot be resolved.
            InstanceCreationError if creation fails and errors are not ignored.
        """
        if ignore_creation_errors is None:
            ignore_creation_errors = self.ignore_creation_errors
        if handle is None:
            handle = self.resolve_reference(reference)
        if isinstance(handle, ArrayType):
            return handle.allocate(0)
        parameter = reference.constructor_parameter
        if parameter is None:
            return self.create(handle, payload, ignore_creation_errors=ignore_creation_errors)

        argument = None
        parameter_type = self.resolve_reference(parameter)
        try:
            if payload:
                data = base64.b64decode(payload.encode('ascii'), validate=True)
                if isinstance(parameter_type, type) and issubclass(parameter_type, io.IOBase):
                    argument = io.BytesIO(data)
                elif parameter_type is bytearray:
                    argument = bytearray(data)
                elif parameter_type is memoryview:
                    argument = memoryview(data)
                else:
                    argument = data
            return handle(argument)
        except (binascii.Error, ValueError, TypeError) as e:
            return self._creation_failed(handle, e, ignore_creation_errors)

    def create(self, cls: type, text: str = None, ignore_creation_errors: bool = None):
        """Create a value of *cls* from text, or with the parameterless constructor.

        Non-empty text that cannot be converted is an error. Empty (or missing)
        text falls back to parameterless construction.
        """
        if ignore_creation_errors is None:
            ignore_creation_errors = self.ignore_creation_errors
        converter = self.converter(cls)
        if converter is not None and converter.can_convert_from_text and text is not None:
            try:
                return converter.from_text(text)
            except ConversionError as e:
                if text.strip():
                    return self._creation_failed(cls, e, ignore_creation_errors)
                logger.debug('Empty text for {}. Using default construction.'.format(cls.__qualname__))
        try:
            return cls()
        except Exception as e:
            return self._creation_failed(cls, e, ignore_creation_errors)

    @staticmethod
    def _creation_failed(cls, error: Exception, ignore_creation_errors: bool):
        message = 'Creation of an instance failed. Type: {} Library: {} Cause: {}'.format(
            getattr(cls, '__qualname__', cls), getattr(cls, '__module__', ''), error)
        if ignore_creation_errors:
            logger.debug(message)
            return None
        raise InstanceCreationError(message) from error


default_registry = TypeRegistry()
"""Registry used by codecs that are not given one explicitly."""
