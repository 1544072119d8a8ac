"""Tagged tree (XML) serialization of object graphs.

Document structure::

    <object name="..." type="Record" assembly="myapp">
        <typedictionary type="dict">...</typedictionary>        (optional)
        <properties>
            <property name="count" type="int">3</property>
            <property name="label">text</property>
            <property name="values" type="int64[]" assembly="numpy">
                <items><item>1</item><item>2</item></items>
            </property>
            <property name="lookup" type="dict">
                <items>
                    <item>
                        <properties>
                            <property name="Key">a</property>
                            <property name="Value" type="int">1</property>
                        </properties>
                    </item>
                </items>
            </property>
            <property name="token" type="Token" assembly="myapp">
                <constructor type="bytes"><binarydata>AAEC</binarydata></constructor>
            </property>
        </properties>
    </object>

The ``type`` attribute is omitted for ``str`` values and the ``assembly``
attribute is omitted for the ``builtins`` library. Readers assume these
defaults when the attributes are absent.

Which properties are written depends on two flags of the TreeSerializer.
Scalar properties are always written. Collection-valued properties are
written when *deep_serialization* or *primary_properties_only* is set.
Composite-valued properties are only written with *deep_serialization*.
Elements of collections are always expanded.

Serialization is best effort: a property that cannot be rendered is logged
and skipped. Deserialization is not: unresolvable types raise
TypeResolutionError, and instances that cannot be created raise
InstanceCreationError unless *ignore_creation_errors* is set.
"""
from __future__ import annotations

__all__ = ['TaggedTreeCodec', 'TreeDeserializer', 'TreeSerializer', 'TreeVocabulary', 'parse_document']

import base64
import collections.abc
import functools
import logging
import typing
from xml.etree import ElementTree

import numpy

from .descriptors import PropertyDescriptor
from .descriptors import Shape
from .exceptions import MalformedDocumentError
from .registry import ArrayType
from .registry import DEFAULT_LIBRARY
from .registry import DEFAULT_TYPE
from .registry import TypeRegistry
from .settings import GraphCodecSettings
from .settings import get_global_settings
from .typeref import TypeDictionary
from .typeref import TypeReference
from .walker import ObjectGraphWalker
from .walker import VisitedSet

logger = logging.getLogger(__name__)
logger.debug('Importing {}'.format(__name__))

XML_DECLARATION = "<?xml version='1.0' encoding='utf-8'?>\n"

Source = typing.Union[str, bytes, ElementTree.Element, ElementTree.ElementTree]


class TreeVocabulary:
    """Tag and attribute names of the tree format.

    Subclass to serialize with a different vocabulary.
    """
    OBJECT = 'object'
    NAME = 'name'
    TYPE = 'type'
    ASSEMBLY = 'assembly'
    PROPERTIES = 'properties'
    PROPERTY = 'property'
    ITEMS = 'items'
    ITEM = 'item'
    INDEX = 'index'
    KEY = 'Key'
    VALUE = 'Value'
    TYPE_DICTIONARY = 'typedictionary'
    GENERIC_TYPE_ARGUMENTS = 'generictypearguments'
    CONSTRUCTOR = 'constructor'
    BINARY_DATA = 'binarydata'

    DEFAULT_TYPE = DEFAULT_TYPE
    DEFAULT_LIBRARY = DEFAULT_LIBRARY


def parse_document(text: typing.Union[str, bytes]) -> ElementTree.Element:
    """Parse XML text to its root Element.

    Raises:
        MalformedDocumentError if the text is not well-formed XML.
    """
    try:
        return ElementTree.fromstring(text)
    except ElementTree.ParseError as e:
        raise MalformedDocumentError('Could not parse document: {}'.format(e)) from e


class _WriteState:
    """State of one top-level serialize call."""
    def __init__(self, use_type_dictionary: bool):
        self.visited = VisitedSet()
        self.type_dictionary: typing.Optional[TypeDictionary] = {} if use_type_dictionary else None
        self._keys: typing.Dict[typing.Tuple[str, str], str] = {}

    def type_key(self, reference: TypeReference) -> str:
        key = self._keys.get(reference.key())
        if key is None:
            key = 't{}'.format(len(self._keys))
            self._keys[reference.key()] = key
            self.type_dictionary[key] = TypeReference(reference.type_name, reference.library_name)
        return key


class TreeSerializer:
    """Serialize object graphs to tagged trees.

    Args:
        registry: TypeRegistry to use. Defaults to the package default registry.
        deep_serialization: Expand composite-valued properties recursively.
        primary_properties_only: Expand collection-valued properties without deep serialization.
        save_root_type: Write the type of the root value. Array roots always carry a type.
        use_type_dictionary: Replace type attributes with keys into a type dictionary
            written as the first child of the root node.
        vocabulary: Tag names to use.
    """
    def __init__(self,
                 registry: TypeRegistry = None,
                 deep_serialization: bool = False,
                 primary_properties_only: bool = False,
                 save_root_type: bool = True,
                 use_type_dictionary: bool = False,
                 vocabulary=TreeVocabulary):
        self.walker = ObjectGraphWalker(registry)
        self.registry = self.walker.registry
        self.deep_serialization = deep_serialization
        self.primary_properties_only = primary_properties_only
        self.save_root_type = save_root_type
        self.use_type_dictionary = use_type_dictionary
        self.vocabulary = vocabulary

    @classmethod
    def from_settings(cls, settings: GraphCodecSettings = None, registry: TypeRegistry = None,
                      vocabulary=TreeVocabulary) -> 'TreeSerializer':
        if settings is None:
            settings = get_global_settings()
        return cls(registry=registry,
                   deep_serialization=settings.deep_serialization,
                   primary_properties_only=settings.primary_properties_only,
                   save_root_type=settings.save_root_type,
                   use_type_dictionary=settings.use_type_dictionary,
                   vocabulary=vocabulary)

    def serialize(self, obj, name: str = None) -> ElementTree.ElementTree:
        """Serialize *obj* to a new document."""
        return ElementTree.ElementTree(self._serialize_root(obj, name))

    def serialize_into(self, obj, name: typing.Optional[str], parent: ElementTree.Element) -> ElementTree.Element:
        """Serialize *obj* and append its root node to *parent*."""
        root = self._serialize_root(obj, name)
        parent.append(root)
        return root

    def to_string(self, obj, name: str = None, xml_declaration: bool = True) -> str:
        """Serialize *obj* to XML text."""
        text = ElementTree.tostring(self._serialize_root(obj, name), encoding='unicode')
        if xml_declaration:
            text = XML_DECLARATION + text
        return text

    def _serialize_root(self, obj, name) -> ElementTree.Element:
        if obj is None:
            raise TypeError('Cannot serialize None.')
        self.registry.begin_operation()
        v = self.vocabulary
        state = _WriteState(self.use_type_dictionary)
        root = ElementTree.Element(v.OBJECT)
        if name is not None:
            root.set(v.NAME, name)
        if self.save_root_type or self.walker.shape_of(obj) is Shape.ARRAY:
            self._set_type_attributes(root, self.registry.reference_of(obj), state)
        self._write_value(root, obj, state)
        if state.type_dictionary:
            root.insert(0, self._type_dictionary_node(state.type_dictionary))
        return root

    def _type_dictionary_node(self, type_dictionary: TypeDictionary) -> ElementTree.Element:
        node = ElementTree.Element(self.vocabulary.TYPE_DICTIONARY)
        state = _WriteState(use_type_dictionary=False)
        self._set_type_attributes(node, self.registry.reference_of(dict), state)
        self._write_value(node, dict(type_dictionary), state)
        return node

    def _set_type_attributes(self, node: ElementTree.Element, reference: TypeReference, state: _WriteState,
                             force: bool = False):
        v = self.vocabulary
        if not force and reference.type_name == v.DEFAULT_TYPE and reference.library_name == v.DEFAULT_LIBRARY:
            return
        if state.type_dictionary is not None:
            node.set(v.TYPE, state.type_key(reference))
            return
        node.set(v.TYPE, reference.type_name)
        if reference.library_name != v.DEFAULT_LIBRARY:
            node.set(v.ASSEMBLY, reference.library_name)

    def _write_value(self, node: ElementTree.Element, value, state: _WriteState, element_types=()):
        emit = functools.partial(self._emit, node, state, element_types)
        return self.walker.visit(value, emit, visited=state.visited)

    def _emit(self, node: ElementTree.Element, state: _WriteState, element_types, shape: Shape, name, value):
        if shape is Shape.SCALAR:
            node.text = self.registry.converter(type(value)).to_text(value)
        elif shape.is_collection:
            self._write_items(node, value, shape, state, element_types)
        elif self._has_binary_constructor(value):
            self._write_constructor(node, value)
        else:
            self._write_composite(node, value, state)
        return node

    def _has_binary_constructor(self, value) -> bool:
        return callable(getattr(type(value), '__bytes__', None))

    def _write_constructor(self, node: ElementTree.Element, value):
        v = self.vocabulary
        parameter = self.registry.reference_of(bytes)
        constructor = ElementTree.SubElement(node, v.CONSTRUCTOR)
        constructor.set(v.TYPE, parameter.type_name)
        if parameter.library_name != v.DEFAULT_LIBRARY:
            constructor.set(v.ASSEMBLY, parameter.library_name)
        binary = ElementTree.SubElement(constructor, v.BINARY_DATA)
        binary.text = base64.b64encode(bytes(value)).decode('ascii')

    def _write_composite(self, node: ElementTree.Element, value, state: _WriteState):
        if not any(descriptor.serializable for descriptor in self.registry.descriptors(type(value))):
            if self.deep_serialization:
                node.text = str(value)
            return
        properties = ElementTree.SubElement(node, self.vocabulary.PROPERTIES)
        for descriptor, child in self.walker.properties(value, state.visited):
            try:
                property_node = self._property_node(descriptor, child, state)
            except Exception as e:
                logger.debug('Skipping property {} of {}: {}'.format(descriptor.name, type(value).__qualname__, e))
                continue
            if property_node is not None:
                properties.append(property_node)

    def _property_node(self, descriptor: PropertyDescriptor, value, state: _WriteState) \
            -> typing.Optional[ElementTree.Element]:
        shape = self.walker.shape_of(value)
        if shape.is_collection:
            if not (self.deep_serialization or self.primary_properties_only):
                return None
        elif shape is Shape.COMPOSITE and not self._has_binary_constructor(value):
            if not self.deep_serialization:
                return None
        v = self.vocabulary
        node = ElementTree.Element(v.PROPERTY)
        node.set(v.NAME, descriptor.name)
        self._set_type_attributes(node, self.registry.reference_of(value), state)
        self._write_value(node, value, state, descriptor.element_types)
        return node

    def _write_items(self, node: ElementTree.Element, collection, shape: Shape, state: _WriteState, element_types):
        v = self.vocabulary
        items = ElementTree.SubElement(node, v.ITEMS)
        if shape is Shape.KEYED:
            key_type, value_type = element_types if len(element_types) == 2 else (None, None)
            for key, child in self.walker.entries(collection, state.visited):
                parts = ElementTree.SubElement(ElementTree.SubElement(items, v.ITEM), v.PROPERTIES)
                self._write_element(ElementTree.SubElement(parts, v.PROPERTY, {v.NAME: v.KEY}), key, key_type, state)
                if child is not None:
                    self._write_element(ElementTree.SubElement(parts, v.PROPERTY, {v.NAME: v.VALUE}),
                                        child, value_type, state)
            return
        declared = self.walker.element_type(collection, element_types)
        element_type = declared[0] if len(declared) == 1 else None
        for element in self.walker.elements(collection, state.visited):
            item = ElementTree.SubElement(items, v.ITEM)
            if element is not None:
                self._write_element(item, element, element_type, state)

    def _write_element(self, node: ElementTree.Element, element, declared_type, state: _WriteState):
        # Elements of the declared type are written without type attributes.
        if declared_type is None:
            self._set_type_attributes(node, self.registry.reference_of(element), state)
        elif type(element) is not declared_type:
            self._set_type_attributes(node, self.registry.reference_of(element), state, force=True)
        self._write_value(node, element, state)


class TreeDeserializer:
    """Reconstruct object graphs from tagged trees.

    Args:
        registry: TypeRegistry to use. Defaults to the package default registry.
        ignore_creation_errors: Resolve values that cannot be created to None
            instead of raising InstanceCreationError.
        vocabulary: Tag names to use.
    """
    def __init__(self,
                 registry: TypeRegistry = None,
                 ignore_creation_errors: bool = False,
                 vocabulary=TreeVocabulary):
        self.walker = ObjectGraphWalker(registry)
        self.registry = self.walker.registry
        self.ignore_creation_errors = ignore_creation_errors
        self.vocabulary = vocabulary

    @classmethod
    def from_settings(cls, settings: GraphCodecSettings = None, registry: TypeRegistry = None,
                      vocabulary=TreeVocabulary) -> 'TreeDeserializer':
        if settings is None:
            settings = get_global_settings()
        return cls(registry=registry,
                   ignore_creation_errors=settings.ignore_creation_errors,
                   vocabulary=vocabulary)

    def deserialize(self, source: Source, root_type=None):
        """Reconstruct the value serialized in *source*.

        Args:
            source: XML text, or an Element or ElementTree. The root node must
                be an ``object`` node or have one as a direct child.
            root_type: Class of the root value, if the document does not name it.

        Returns:
            The reconstructed value, or None for empty text.

        Raises:
            MalformedDocumentError if the source cannot be parsed or has no ``object`` node.
            TypeResolutionError if a referenced type cannot be resolved.
            InstanceCreationError if a value cannot be created (unless ignoring creation errors).
        """
        if source is None or (isinstance(source, (str, bytes)) and not source.strip()):
            return None
        self.registry.begin_operation()
        root = self.find_root(source)
        # The type dictionary is scoped to this call.
        type_dictionary = self.parse_type_dictionary(root)
        if root_type is None or isinstance(root_type, ArrayType) or issubclass(root_type, numpy.ndarray):
            value, element_types = self._get_object(root, type_dictionary)
        else:
            value = self.registry.create(root_type, self._text(root),
                                         ignore_creation_errors=self.ignore_creation_errors)
            element_types = ()
        return self.get_properties(value, root, type_dictionary, element_types)

    def find_root(self, source: Source) -> ElementTree.Element:
        v = self.vocabulary
        if isinstance(source, ElementTree.ElementTree):
            element = source.getroot()
        elif isinstance(source, (str, bytes)):
            element = parse_document(source)
        else:
            element = source
        if element is None:
            raise MalformedDocumentError('Document has no root node.')
        if element.tag == v.OBJECT:
            return element
        root = element.find(v.OBJECT)
        if root is None:
            raise MalformedDocumentError(
                'Invalid node. The specified node or its direct children do not contain a {} tag.'.format(v.OBJECT))
        return root

    def parse_type_dictionary(self, root: ElementTree.Element) -> TypeDictionary:
        """Read the type dictionary of a root node, if it has one."""
        node = root.find(self.vocabulary.TYPE_DICTIONARY)
        if node is None:
            return {}
        value, _ = self._get_object(node, {})
        value = self.get_properties(value, node, {})
        if not isinstance(value, dict) or not all(isinstance(item, TypeReference) for item in value.values()):
            logger.debug('Ignoring type dictionary of unexpected type {}.'.format(type(value)))
            return {}
        return value

    def get_properties(self, value, node: ElementTree.Element, type_dictionary: TypeDictionary, element_types=()):
        """Read the properties (or items) of *node* into *value*.

        Immutable collections are rebuilt, so callers must use the return value.
        """
        if value is None:
            return None
        v = self.vocabulary
        property_nodes = node.findall('{}/{}'.format(v.PROPERTIES, v.PROPERTY))
        if not property_nodes:
            shape = self.walker.shape_of(value)
            if shape.is_collection:
                return self._set_collection_values(value, node, shape, type_dictionary, element_types)
            return value

        cls = type(value)
        for property_node in property_nodes:
            name = property_node.get(v.NAME)
            if not name:
                continue
            info = self._object_info(property_node, type_dictionary)
            handle = self.registry.resolve_reference(info)
            child, child_element_types = self._create(info, handle, property_node)
            descriptor = self.registry.find_property(cls, name)
            if descriptor is not None and not child_element_types:
                child_element_types = descriptor.element_types
            child = self.get_properties(child, property_node, type_dictionary, child_element_types)
            if child is None or descriptor is None or not descriptor.settable:
                logger.debug('Dropping property {} of {}.'.format(name, cls.__qualname__))
                continue
            descriptor.set(value, child)
        return value

    def _object_info(self, node: ElementTree.Element, type_dictionary: TypeDictionary) -> TypeReference:
        v = self.vocabulary
        type_key = node.get(v.TYPE) or v.DEFAULT_TYPE
        reference = type_dictionary.get(type_key)
        if reference is not None and reference.is_sufficient():
            info = TypeReference(reference.type_name, reference.library_name)
        else:
            info = TypeReference(type_key, node.get(v.ASSEMBLY) or v.DEFAULT_LIBRARY)
        constructor = node.find(v.CONSTRUCTOR)
        binary = constructor.find(v.BINARY_DATA) if constructor is not None else None
        if binary is not None:
            info.constructor_parameter = TypeReference(constructor.get(v.TYPE) or v.DEFAULT_TYPE,
                                                       constructor.get(v.ASSEMBLY) or v.DEFAULT_LIBRARY)
            info.payload = binary.text or ''
        else:
            info.payload = self._text(node)
        return info

    def _create(self, info: TypeReference, handle, node: ElementTree.Element):
        # Arrays are allocated with their final length before they are populated.
        if isinstance(handle, ArrayType):
            return handle.allocate(self._array_length(node)), (handle.element_type,)
        value = self.registry.construct(info, payload=info.payload, handle=handle,
                                        ignore_creation_errors=self.ignore_creation_errors)
        return value, ()

    def _get_object(self, node: ElementTree.Element, type_dictionary: TypeDictionary):
        info = self._object_info(node, type_dictionary)
        handle = self.registry.resolve_reference(info)
        return self._create(info, handle, node)

    def _get_element(self, node: ElementTree.Element, declared_type, type_dictionary: TypeDictionary):
        if node.get(self.vocabulary.TYPE) is None and declared_type is not None:
            value = self.registry.create(declared_type, self._text(node),
                                         ignore_creation_errors=self.ignore_creation_errors)
            element_types = ()
        else:
            value, element_types = self._get_object(node, type_dictionary)
        return self.get_properties(value, node, type_dictionary, element_types)

    def _set_collection_values(self, collection, node: ElementTree.Element, shape: Shape,
                               type_dictionary: TypeDictionary, element_types):
        v = self.vocabulary
        item_nodes = node.findall('{}/{}'.format(v.ITEMS, v.ITEM))
        if shape is Shape.KEYED:
            return self._set_mapping_values(collection, item_nodes, type_dictionary, element_types)

        element_type = element_types[0] if len(element_types) == 1 else None
        if element_type is None:
            declared = self.walker.element_type(collection)
            element_type = declared[0] if declared else None
        values = [self._get_element(item, element_type, type_dictionary) for item in item_nodes]
        if shape is Shape.ARRAY:
            for index, element in enumerate(values[:len(collection)]):
                collection[index] = element
            return collection
        if isinstance(collection, collections.abc.MutableSequence):
            collection.extend(values)
            return collection
        if isinstance(collection, collections.abc.MutableSet):
            for element in values:
                collection.add(element)
            return collection
        return type(collection)(values)

    def _set_mapping_values(self, mapping, item_nodes, type_dictionary: TypeDictionary, element_types):
        v = self.vocabulary
        key_type, value_type = element_types if len(element_types) == 2 else (None, None)
        target = mapping if isinstance(mapping, collections.abc.MutableMapping) else {}
        for item in item_nodes:
            key_node = item.find(self._entry_path(v.KEY))
            if key_node is None:
                continue
            key = self._get_element(key_node, key_type, type_dictionary)
            if key is None:
                continue
            value_node = item.find(self._entry_path(v.VALUE))
            value = None
            if value_node is not None:
                value = self._get_element(value_node, value_type, type_dictionary)
            target[key] = value
        if target is not mapping:
            return type(mapping)(target)
        return mapping

    def _entry_path(self, name: str) -> str:
        v = self.vocabulary
        return "{}/{}[@{}='{}']".format(v.PROPERTIES, v.PROPERTY, v.NAME, name)

    def _array_length(self, node: ElementTree.Element) -> int:
        v = self.vocabulary
        return len(node.findall('{}/{}'.format(v.ITEMS, v.ITEM)))

    @staticmethod
    def _text(node: ElementTree.Element) -> str:
        return node.text or ''


class TaggedTreeCodec:
    """Pair a TreeSerializer and a TreeDeserializer configured from settings."""
    def __init__(self, registry: TypeRegistry = None, settings: GraphCodecSettings = None,
                 vocabulary=TreeVocabulary):
        if settings is None:
            settings = get_global_settings()
        self.serializer = TreeSerializer.from_settings(settings, registry=registry, vocabulary=vocabulary)
        self.deserializer = TreeDeserializer.from_settings(settings, registry=registry, vocabulary=vocabulary)

    def serialize(self, obj, name: str = None) -> str:
        return self.serializer.to_string(obj, name)

    def deserialize(self, source: Source, root_type=None):
        return self.deserializer.deserialize(source, root_type=root_type)
