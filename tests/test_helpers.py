"""Test the one-call serialization helpers."""
from __future__ import annotations

import dataclasses
import logging
import typing

import numpy
import pytest

from graphcodec import helpers
from graphcodec.compact import bind_nested
from graphcodec.compact import CompactTextCodec
from graphcodec.exceptions import ConversionError
from graphcodec.registry import default_registry

logger = logging.getLogger(__name__)
logger.debug('Importing {}'.format(__name__))


@dataclasses.dataclass(eq=False)
class Entry:
    key: str = ''
    weight: float = 0.0
    aliases: typing.List[str] = dataclasses.field(default_factory=list)
    child: typing.Optional[Entry] = None


default_registry.register_type(Entry)


def test_flat_lists():
    assert helpers.serialize_array(1, 2, 3) == '1, 2, 3'
    assert helpers.serialize_enumerable([0.5, True]) == '0.5, True'
    assert helpers.serialize_enumerable(None) == ''
    assert list(helpers.deserialize_enumerable('1, 2, , 3', int)) == [1, 2, 3]
    assert list(helpers.deserialize_enumerable(None, int)) == []

    array = helpers.deserialize_array('1.5, 2.5', float)
    assert isinstance(array, numpy.ndarray)
    assert array.dtype == numpy.float64
    assert list(array) == [1.5, 2.5]
    assert list(helpers.deserialize_array('a, b', str)) == ['a', 'b']

    with pytest.raises(ConversionError):
        helpers.serialize_array(Entry())
    with pytest.raises(ConversionError):
        list(helpers.deserialize_enumerable('1, 2', Entry))


def test_tree_entry():
    entry = Entry(key='root', weight=1.0, aliases=['r'], child=Entry(key='leaf'))
    shallow = helpers.serialize_entry(entry)
    assert '<property name="aliases" type="list">' in shallow
    assert 'name="child"' not in shallow

    result = helpers.deserialize_tree_entry(helpers.serialize_entry(entry, deep=True))
    assert result.key == 'root'
    assert result.aliases == ['r']
    assert result.child.key == 'leaf'

    result = helpers.deserialize_tree_entry(shallow, Entry)
    assert result.child is None


def test_compact_entries():
    entry = Entry(key='a', weight=2.0, aliases=['x', 'y'])
    text = helpers.serialize_entry_properties(entry)
    assert text == '{ "key" : "a", "weight" : "2.0", "aliases" : [x; y] }'
    result = helpers.deserialize_entry(text, Entry)
    assert result.aliases == ['x', 'y']
    assert result.weight == 2.0

    text = helpers.serialize_entry_enumerable([entry, Entry(key='b', child=Entry(key='c'))])
    entries = helpers.deserialize_entry_array(text, Entry, apply=bind_nested(CompactTextCodec()))
    assert [item.key for item in entries] == ['a', 'b']
    assert entries[1].child.key == 'c'
    assert helpers.serialize_entry_properties(None) is None


def test_context():
    assert helpers.deserialize_context('{ "a" : "1" }') == {'a': '1'}
