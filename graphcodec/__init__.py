"""Persistence of arbitrary object graphs as text.

Objects are described by a type registry and traversed by a generic graph
walker. Two codecs render the traversal:

* :py:mod:`graphcodec.tree` writes nested ``object``/``properties``/``items``
  XML documents with optional type dictionaries.
* :py:mod:`graphcodec.compact` writes flat ``{ "Name" : "Value" }`` records.

:py:mod:`graphcodec.legacy` upgrades context maps stored in the old tree
encoding, and :py:mod:`graphcodec.helpers` provides one-call conveniences.
"""

__all__ = ['ArrayType',
           'CompactTextCodec',
           'ConversionError',
           'GraphCodecError',
           'GraphCodecSettings',
           'InstanceCreationError',
           'LegacyContextUpgrader',
           'Library',
           'MalformedDocumentError',
           'MalformedTextError',
           'ObjectGraphWalker',
           'Shape',
           'TaggedTreeCodec',
           'TypeReference',
           'TypeRegistry',
           'TypeResolutionError',
           'UnsupportedPropertyError',
           'default_registry',
           'transient_field']

from .compact import CompactTextCodec
from .descriptors import Shape
from .descriptors import transient_field
from .exceptions import ConversionError
from .exceptions import GraphCodecError
from .exceptions import InstanceCreationError
from .exceptions import MalformedDocumentError
from .exceptions import MalformedTextError
from .exceptions import TypeResolutionError
from .exceptions import UnsupportedPropertyError
from .legacy import LegacyContextUpgrader
from .registry import ArrayType
from .registry import Library
from .registry import TypeRegistry
from .registry import default_registry
from .settings import GraphCodecSettings
from .tree import TaggedTreeCodec
from .typeref import TypeReference
from .walker import ObjectGraphWalker
