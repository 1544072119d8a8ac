"""Describe the serializable properties of composite types.

Composite values are traversed through a table of PropertyDescriptors that is
computed once per class and then cached by the TypeRegistry. No attribute
discovery happens on instances: the table is derived from the class
definition, in order of preference, from

1. an explicit list of names registered with
   :py:meth:`TypeRegistry.register_properties() <graphcodec.registry.TypeRegistry.register_properties>`,
2. dataclass fields (in declaration order), or
3. class annotations along the MRO (base classes first) followed by
   public ``property`` objects.

Names with a leading underscore are never properties.

Properties can be excluded from serialization with :py:func:`transient_field`
(dataclasses) or by listing their names in a ``__transient__`` class attribute.

The declared annotation of a property (e.g. ``list[int]`` or
``dict[str, Item]``) is reduced to a declared class and a tuple of element
types. Codecs use the element types to avoid writing per-element type
metadata, and to construct elements when reading.
"""
from __future__ import annotations

__all__ = ['PropertyDescriptor', 'Shape', 'transient_field', 'build_descriptors']

import collections.abc
import dataclasses
import enum
import inspect
import logging
import types
import typing

import numpy

logger = logging.getLogger(__name__)
logger.debug('Importing {}'.format(__name__))

SERIALIZE_METADATA_KEY = 'serialize'
TRANSIENT_ATTRIBUTE = '__transient__'

# Abstract collection annotations are constructed with a concrete default.
_CONCRETE_ORIGINS = {
    collections.abc.Sequence: list,
    collections.abc.MutableSequence: list,
    collections.abc.Iterable: list,
    collections.abc.Collection: list,
    collections.abc.Mapping: dict,
    collections.abc.MutableMapping: dict,
    collections.abc.Set: set,
    collections.abc.MutableSet: set,
}

_UNION_ORIGINS = (typing.Union, getattr(types, 'UnionType', typing.Union))


class Shape(enum.Enum):
    """The closed set of value shapes understood by the codecs."""
    SCALAR = 'scalar'
    """A value with a usable text converter."""
    ARRAY = 'array'
    """A fixed-length indexable container (a one-dimensional numpy.ndarray)."""
    ORDERED = 'ordered'
    """An appendable or rebuildable sequence of elements."""
    KEYED = 'keyed'
    """A collection of key-value pairs."""
    COMPOSITE = 'composite'
    """A value described by PropertyDescriptors."""

    @property
    def is_collection(self) -> bool:
        return self in (Shape.ARRAY, Shape.ORDERED, Shape.KEYED)


def transient_field(**kwargs):
    """Declare a dataclass field that is not serialized.

    Accepts the same arguments as :py:func:`dataclasses.field`.
    """
    metadata = dict(kwargs.pop('metadata', None) or {})
    metadata[SERIALIZE_METADATA_KEY] = False
    return dataclasses.field(metadata=metadata, **kwargs)


@dataclasses.dataclass(frozen=True)
class PropertyDescriptor:
    """Describe one serializable property of a composite class.

    Attributes:
        name: Attribute name.
        declared_type: Class of the declared annotation, if known.
        declared_shape: Shape of *declared_type*, if known.
        element_types: Declared element types of collection properties
            (one type for sequences and arrays, key and value types for mappings).
        serializable: False if the property is excluded from serialization.
        settable: False if the property cannot be assigned (read-only property).
        frozen: True for fields of frozen dataclasses, which are assigned
            with :py:func:`object.__setattr__`, as the generated ``__init__`` does.
    """
    name: str
    declared_type: typing.Optional[type] = None
    declared_shape: typing.Optional[Shape] = None
    element_types: typing.Tuple[type, ...] = ()
    serializable: bool = True
    settable: bool = True
    frozen: bool = False

    def get(self, instance):
        return getattr(instance, self.name, None)

    def set(self, instance, value):
        if self.frozen:
            object.__setattr__(instance, self.name, value)
        else:
            setattr(instance, self.name, value)


def analyze_annotation(annotation) -> typing.Tuple[typing.Optional[type], typing.Tuple[type, ...]]:
    """Reduce a type annotation to a declared class and element types.

    Unknown or unusable annotations produce ``(None, ())``.
    """
    if annotation is None or annotation is typing.Any or isinstance(annotation, (str, typing.ForwardRef)):
        return None, ()
    origin = typing.get_origin(annotation)
    args = typing.get_args(annotation)
    if origin is typing.Annotated:
        return analyze_annotation(args[0])
    if origin in _UNION_ORIGINS:
        members = [arg for arg in args if arg is not type(None)]
        if len(members) == 1:
            return analyze_annotation(members[0])
        return None, ()
    if origin is None:
        if isinstance(annotation, type):
            return _CONCRETE_ORIGINS.get(annotation, annotation), ()
        return None, ()
    if not isinstance(origin, type):
        return None, ()
    if issubclass(origin, numpy.ndarray):
        # numpy.typing.NDArray[X] is ndarray[Any, dtype[X]]
        element_types = ()
        if len(args) == 2:
            scalar_args = typing.get_args(args[1])
            if len(scalar_args) == 1 and isinstance(scalar_args[0], type):
                element_types = (scalar_args[0],)
        return numpy.ndarray, element_types
    element_types = []
    for arg in args:
        if arg is Ellipsis:
            continue
        element_type, _ = analyze_annotation(arg)
        if element_type is None:
            # Partially known element types are not useful.
            return _CONCRETE_ORIGINS.get(origin, origin), ()
        element_types.append(element_type)
    return _CONCRETE_ORIGINS.get(origin, origin), tuple(element_types)


def _is_classvar(annotation) -> bool:
    if annotation is typing.ClassVar or typing.get_origin(annotation) is typing.ClassVar:
        return True
    if isinstance(annotation, str):
        return annotation.startswith(('ClassVar', 'typing.ClassVar'))
    return False


def _type_hints(cls) -> typing.Dict[str, typing.Any]:
    try:
        return typing.get_type_hints(cls, include_extras=True)
    except (NameError, TypeError) as e:
        # Forward references we cannot resolve. Fall back to the raw annotations.
        logger.debug('Could not resolve annotations of {}: {}'.format(cls, e))
        hints = {}
        for klass in reversed(cls.__mro__):
            hints.update(inspect.get_annotations(klass))
        return hints


def _return_hint(getter):
    try:
        return typing.get_type_hints(getter, include_extras=True).get('return')
    except (NameError, TypeError):
        return None


def _declared_names(cls) -> typing.List[str]:
    names = []
    for klass in reversed(cls.__mro__):
        if klass is object:
            continue
        for name, annotation in inspect.get_annotations(klass).items():
            if name.startswith('_') or name in names or _is_classvar(annotation):
                continue
            names.append(name)
    for klass in reversed(cls.__mro__):
        for name, attribute in vars(klass).items():
            if isinstance(attribute, property) and not name.startswith('_') and name not in names:
                names.append(name)
    return names


def _is_settable(cls, name: str) -> bool:
    attribute = getattr(cls, name, None)
    if isinstance(attribute, property):
        return attribute.fset is not None
    return True


def _is_frozen(cls) -> bool:
    params = getattr(cls, '__dataclass_params__', None)
    return params is not None and params.frozen


def build_descriptors(cls: type,
                      names: typing.Iterable[str] = None,
                      classify: typing.Callable[[type], Shape] = None) -> typing.Tuple[PropertyDescriptor, ...]:
    """Compute the PropertyDescriptor table for *cls*.

    Args:
        cls: The composite class.
        names: Explicitly registered property names, if any.
        classify: Callable to determine the Shape of a declared class.

    Returns:
        Descriptors in declaration order.
    """
    if not isinstance(cls, type):
        raise TypeError('Expected a class. Got {!r}.'.format(cls))
    hints = _type_hints(cls)
    transient = set(getattr(cls, TRANSIENT_ATTRIBUTE, ()))
    metadata = {}
    if names is not None:
        names = list(names)
    elif dataclasses.is_dataclass(cls):
        names = []
        for field in dataclasses.fields(cls):
            if field.name.startswith('_'):
                continue
            names.append(field.name)
            metadata[field.name] = field.metadata
    else:
        names = _declared_names(cls)

    frozen = _is_frozen(cls)
    descriptors = []
    for name in names:
        annotation = hints.get(name)
        if annotation is None and isinstance(getattr(cls, name, None), property):
            annotation = _return_hint(getattr(cls, name).fget)
        declared_type, element_types = analyze_annotation(annotation)
        declared_shape = None
        if declared_type is not None and classify is not None:
            declared_shape = classify(declared_type)
        serializable = name not in transient and metadata.get(name, {}).get(SERIALIZE_METADATA_KEY, True)
        descriptors.append(PropertyDescriptor(name=name,
                                              declared_type=declared_type,
                                              declared_shape=declared_shape,
                                              element_types=element_types,
                                              serializable=bool(serializable),
                                              settable=_is_settable(cls, name),
                                              frozen=frozen))
    logger.debug('Computed {} property descriptors for {}.'.format(len(descriptors), cls))
    return tuple(descriptors)
