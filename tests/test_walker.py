"""Test object graph traversal and cycle detection."""
from __future__ import annotations

import dataclasses
import logging
import typing

import numpy

from graphcodec.descriptors import Shape
from graphcodec.registry import TypeRegistry
from graphcodec.walker import ObjectGraphWalker
from graphcodec.walker import VisitedSet

logger = logging.getLogger(__name__)
logger.debug('Importing {}'.format(__name__))


@dataclasses.dataclass(eq=False)
class Node:
    name: str = ''
    next: typing.Optional[Node] = None
    note: typing.Optional[str] = None


class Faulty:
    @property
    def good(self) -> int:
        return 1

    @property
    def bad(self) -> int:
        raise RuntimeError('Cannot compute.')


def test_visited_set_is_identity_based():
    visited = VisitedSet()
    a = [1, 2]
    b = [1, 2]
    visited.add(a)
    assert a in visited
    assert b not in visited
    assert len(visited) == 1


def test_properties():
    walker = ObjectGraphWalker(TypeRegistry())
    node = Node(name='a', note='')
    visited = VisitedSet()
    properties = [(descriptor.name, value) for descriptor, value in walker.properties(node, visited)]
    # None and empty text are skipped.
    assert properties == [('name', 'a')]
    assert node in visited


def test_cycle():
    walker = ObjectGraphWalker(TypeRegistry())
    a = Node(name='a')
    b = Node(name='b', next=a)
    a.next = b

    visited = VisitedSet()
    names = [descriptor.name for descriptor, _ in walker.properties(a, visited)]
    assert names == ['name', 'next']
    names = [descriptor.name for descriptor, _ in walker.properties(b, visited)]
    # b.next is a, which has been visited.
    assert names == ['name']

    assert walker.visit(a, lambda shape, name, value: shape, visited=visited) is None
    assert walker.visit('a', lambda shape, name, value: shape, visited=visited) is Shape.SCALAR


def test_equal_values_are_not_revisits():
    walker = ObjectGraphWalker(TypeRegistry())
    first = [1]
    second = [1]
    visited = VisitedSet()
    produced = []
    for element in walker.elements([first, second, first], visited):
        produced.append(element)
        visited.add(element)
    # Identical members are only produced once.
    assert [id(element) for element in produced] == [id(first), id(second)]


def test_array_elements_keep_positions():
    walker = ObjectGraphWalker(TypeRegistry())
    shared = Node(name='shared')
    array = numpy.full(3, None, dtype=object)
    array[0] = shared
    array[1] = shared
    array[2] = Node(name='other')
    visited = VisitedSet()
    elements = []
    for element in walker.elements(array, visited):
        elements.append(element)
        if element is not None:
            visited.add(element)
    assert elements[0] is shared
    assert elements[1] is None
    assert elements[2].name == 'other'


def test_entries():
    walker = ObjectGraphWalker(TypeRegistry())
    mapping = {'a': 1, 'b': [2]}
    visited = VisitedSet()
    visited.add(mapping['b'])
    assert list(walker.entries(mapping, visited)) == [('a', 1)]
    assert mapping in visited


def test_getter_errors_are_skipped():
    walker = ObjectGraphWalker(TypeRegistry())
    properties = [(descriptor.name, value) for descriptor, value in walker.properties(Faulty(), VisitedSet())]
    assert properties == [('good', 1)]


def test_element_type():
    walker = ObjectGraphWalker(TypeRegistry())
    assert walker.element_type([1, 2]) == ()
    assert walker.element_type([1, 2], (int,)) == (int,)
    assert walker.element_type(numpy.zeros(2, dtype=numpy.int32)) == (numpy.int32,)
    assert walker.element_type(numpy.full(2, None, dtype=object)) == ()
