"""Textual references to constructible types.

A type is named in serialized data by a pair of strings: the *library* that
provides the type and the *type name* within the library. In Python, the
library is usually a module name and the type name is the class
``__qualname__``. A type name ending in ``[]`` refers to a fixed-length array
of the named element type.

Library names may carry a qualifier after the first comma
(e.g. ``myapp.models, Version=2.1``). Such qualifiers are ignored when an exact
match for the full name is not available. See
:py:meth:`TypeRegistry.resolve() <graphcodec.registry.TypeRegistry.resolve>`.
"""
from __future__ import annotations

__all__ = ['TypeReference', 'TypeDictionary', 'ARRAY_SUFFIX']

import dataclasses
import logging
import typing

logger = logging.getLogger(__name__)
logger.debug('Importing {}'.format(__name__))

ARRAY_SUFFIX = '[]'

TypeRepr = typing.Union['TypeReference', typing.Tuple[str, str], type]
"""Represent a type reference.

A TypeReference may be constructed from another TypeReference,
a ``(library_name, type_name)`` pair, or a class.
"""


@dataclasses.dataclass
class TypeReference:
    """Identify a constructible type by library and type name.

    Instances are also used as the values of a serialized type dictionary,
    so the class supports parameterless construction and attribute assignment.

    Attributes:
        type_name: Name of the type within its library.
        library_name: Name of the library providing the type.
        constructor_parameter: Optional reference to the type of the single
            argument of a binary constructor.
        payload: Optional (base64) data for the binary constructor.
    """
    type_name: str = ''
    library_name: str = ''
    constructor_parameter: typing.Optional['TypeReference'] = None
    payload: typing.Optional[str] = None

    def is_sufficient(self) -> bool:
        """Determine whether the names are sufficient to resolve a type."""
        return bool(self.type_name) and bool(self.library_name)

    @property
    def short_library_name(self) -> str:
        """The library name with any qualifiers after the first comma removed."""
        return short_name(self.library_name)

    @property
    def is_array(self) -> bool:
        return self.type_name.endswith(ARRAY_SUFFIX)

    @property
    def element_type_name(self) -> str:
        if self.is_array:
            return self.type_name[:-len(ARRAY_SUFFIX)]
        return self.type_name

    def key(self) -> typing.Tuple[str, str]:
        """Get a hashable key for the named type (ignoring constructor details)."""
        return self.library_name, self.type_name

    def __str__(self):
        type_name = self.type_name or '<Type not set>'
        library_name = self.library_name or '<Library not set>'
        return '{}; {}'.format(type_name, library_name)

    @classmethod
    def copy_from(cls, typeref: TypeRepr) -> 'TypeReference':
        """Create a new TypeReference describing the same type as the source."""
        if isinstance(typeref, TypeReference):
            parameter = typeref.constructor_parameter
            if parameter is not None:
                parameter = cls.copy_from(parameter)
            return cls(type_name=typeref.type_name,
                       library_name=typeref.library_name,
                       constructor_parameter=parameter,
                       payload=typeref.payload)
        if isinstance(typeref, type):
            return cls(type_name=typeref.__qualname__, library_name=str(typeref.__module__))
        if isinstance(typeref, (list, tuple)):
            if len(typeref) != 2 or not all(isinstance(part, str) for part in typeref):
                raise TypeError('Expected a (library_name, type_name) pair. Got {!r}.'.format(typeref))
            library_name, type_name = typeref
            return cls(type_name=type_name, library_name=library_name)
        raise TypeError('Cannot construct a TypeReference from {!r}.'.format(typeref))


TypeDictionary = typing.Dict[str, TypeReference]
"""Per-document mapping of short keys to type references."""


def short_name(library_name: str) -> str:
    """Strip version or other qualifiers after the first comma of a library name."""
    if not library_name:
        return ''
    return library_name.split(',', 1)[0].strip()
