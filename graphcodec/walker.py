"""Generic traversal of object graphs.

The walker classifies values into the closed set of Shapes and enumerates
the children of collections and composites. It never touches wire syntax:
codecs supply an *emit* callback to :py:meth:`ObjectGraphWalker.visit` and
decide how to render (or parse) each shape.

Cycle detection is identity based. A VisitedSet is created for each
top-level codec call and threaded explicitly through the recursion. Only
collections and composites are recorded in the set. A value that has
already been visited is omitted where it would be revisited; no placeholder
is written. Because the set lives for the whole call, a value that is
shared by several parents (without forming a cycle) is also written only
once.
"""
from __future__ import annotations

__all__ = ['ObjectGraphWalker', 'VisitedSet']

import logging
import typing

import numpy

from .descriptors import PropertyDescriptor
from .descriptors import Shape
from .registry import TypeRegistry
from .registry import default_registry

logger = logging.getLogger(__name__)
logger.debug('Importing {}'.format(__name__))

T = typing.TypeVar('T')

Emit = typing.Callable[[Shape, typing.Optional[str], typing.Any], T]
"""Codec callback receiving the shape, the name (if any), and the value."""


class VisitedSet:
    """Identity-based set of values visited during one top-level call.

    Members are keyed by ``id()``. The set holds a reference to each member,
    so identities cannot be recycled while the set is alive.
    """
    def __init__(self):
        self._members: typing.Dict[int, typing.Any] = {}

    def add(self, value):
        self._members[id(value)] = value

    def __contains__(self, value):
        return id(value) in self._members

    def __len__(self):
        return len(self._members)


class ObjectGraphWalker:
    """Classify and traverse values with the help of a TypeRegistry."""
    def __init__(self, registry: TypeRegistry = None):
        if registry is None:
            registry = default_registry
        self.registry = registry

    def shape_of(self, value) -> Shape:
        return self.registry.shape_of(value)

    def _is_revisit(self, value, visited: VisitedSet) -> bool:
        return visited is not None and value in visited and self.shape_of(value) is not Shape.SCALAR

    def properties(self, value, visited: VisitedSet) -> typing.Iterator[typing.Tuple[PropertyDescriptor, typing.Any]]:
        """Generate (descriptor, child) pairs for a composite value.

        Properties are produced in declaration order. Non-serializable
        properties, properties that are None or the empty string, and values
        already in *visited* are skipped. *value* itself is added to *visited*.
        """
        visited.add(value)
        for descriptor in self.registry.descriptors(type(value)):
            if not descriptor.serializable:
                continue
            try:
                child = descriptor.get(value)
            except Exception as e:
                logger.debug('Could not get {}.{}: {}'.format(type(value).__qualname__, descriptor.name, e))
                continue
            if child is None or (isinstance(child, str) and child == ''):
                continue
            if self._is_revisit(child, visited):
                logger.debug('Skipping {}.{}: already visited.'.format(type(value).__qualname__, descriptor.name))
                continue
            yield descriptor, child

    def elements(self, value, visited: VisitedSet = None) -> typing.Iterator:
        """Generate the elements of an array or ordered collection.

        Elements already visited are skipped. For arrays, None is produced in
        their place instead, so that positions are preserved.
        """
        is_array = self.shape_of(value) is Shape.ARRAY
        if visited is not None:
            visited.add(value)
        for element in value:
            if self._is_revisit(element, visited):
                if is_array:
                    yield None
                continue
            yield element

    def entries(self, value: typing.Mapping, visited: VisitedSet = None) -> typing.Iterator[typing.Tuple[typing.Any, typing.Any]]:
        """Generate the (key, value) pairs of a keyed collection.

        Pairs whose key or value has already been visited are skipped.
        """
        if visited is not None:
            visited.add(value)
        for key, child in value.items():
            if self._is_revisit(key, visited) or self._is_revisit(child, visited):
                continue
            yield key, child

    def element_type(self, value, declared: typing.Sequence[type] = ()) -> typing.Tuple[type, ...]:
        """Get the known element type(s) of a collection.

        Declared types (from the annotation of the property holding the
        collection) take precedence. Otherwise, arrays with a specific dtype
        report their scalar type. An empty tuple means the element types are
        unknown.
        """
        if declared:
            return tuple(declared)
        if isinstance(value, numpy.ndarray) and value.dtype != numpy.dtype(object):
            return (value.dtype.type,)
        return ()

    def visit(self, value, emit: Emit, name: str = None, visited: VisitedSet = None):
        """Classify *value* and pass it to *emit*.

        This is the single recursive contract of the walker: codecs call
        ``visit()`` for each value they encounter (from inside *emit*, for
        nested values).

        Returns:
            The result of *emit*, or None if *value* is a collection or
            composite that has already been visited.
        """
        if self._is_revisit(value, visited):
            return None
        shape = self.shape_of(value)
        return emit(shape, name, value)
