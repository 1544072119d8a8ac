"""Test the upgrade of context values stored in the tree format."""
from __future__ import annotations

import logging

import pytest

from graphcodec.compact import CompactTextCodec
from graphcodec.exceptions import MalformedDocumentError
from graphcodec.legacy import LegacyContextUpgrader
from graphcodec.legacy import deserialize_context
from graphcodec.legacy import is_legacy_value
from graphcodec.legacy import legacy_item_texts
from graphcodec.tree import TreeSerializer

logger = logging.getLogger(__name__)
logger.debug('Importing {}'.format(__name__))

LEGACY_LIST = ("<?xml version='1.0' encoding='utf-8'?>\n"
               '<object type="list"><items><item>a</item><item>b</item></items></object>')


def test_is_legacy_value():
    assert is_legacy_value(LEGACY_LIST)
    assert not is_legacy_value('a, b')
    assert not is_legacy_value(' <?xml')
    assert not is_legacy_value(None)


def test_item_texts():
    assert legacy_item_texts(LEGACY_LIST) == ['a', 'b']
    # Only items of object nodes are collected.
    text = '<object><properties><property name="x"><items><item>no</item></items></property></properties></object>'
    assert legacy_item_texts(text) == []
    text = '<object><items><item>1</item><item><object><items><item>2</item></items></object></item></items></object>'
    assert legacy_item_texts(text) == ['1', '2', '2']


def test_upgrade():
    context = {'names': LEGACY_LIST, 'plain': 'value', 'empty': ''}
    upgraded = LegacyContextUpgrader().upgrade(context)
    assert upgraded is context
    assert context == {'names': 'a, b', 'plain': 'value', 'empty': ''}

    # Upgrading again changes nothing.
    LegacyContextUpgrader().upgrade(context)
    assert context['names'] == 'a, b'

    assert LegacyContextUpgrader(separator=';').upgrade_value(LEGACY_LIST) == 'a;b'

    with pytest.raises(MalformedDocumentError):
        LegacyContextUpgrader().upgrade({'broken': '<?xml version="1.0"?><object>'})


def test_written_values_are_recognized():
    value = TreeSerializer().to_string(['x', 'y', 'z'])
    assert is_legacy_value(value)
    assert LegacyContextUpgrader().upgrade_value(value) == 'x, y, z'


def test_deserialize_tree_context():
    stored = TreeSerializer().to_string({'names': LEGACY_LIST, 'count': '3'})
    assert deserialize_context(stored) == {'names': 'a, b', 'count': '3'}


def test_deserialize_compact_context():
    legacy = TreeSerializer(save_root_type=False).to_string(['a', 'b'])
    assert '"' not in legacy
    stored = CompactTextCodec().serialize({'names': legacy, 'mode': 'fast'})
    assert deserialize_context(stored) == {'names': 'a, b', 'mode': 'fast'}
    assert deserialize_context('') == {}
    assert deserialize_context(None) == {}
