"""Upgrade context values stored in the tree format to compact text.

Before the compact text format existed, the values of stored context maps
(``dict[str, str]``) were tree documents of simple collections. Such values
are recognized by their XML declaration. Upgrading replaces a legacy value
with the text of its ``object/items/item`` nodes, joined with ``", "``.

Upgrading is lazy: it happens when a stored context is read with
:py:func:`deserialize_context`, and never rewrites storage by itself.
"""
from __future__ import annotations

__all__ = ['LegacyContextUpgrader', 'deserialize_context', 'is_legacy_value', 'legacy_item_texts']

import logging
import typing
from xml.etree import ElementTree

from .compact import CompactTextCodec
from .registry import TypeRegistry
from .tree import TreeDeserializer
from .tree import TreeVocabulary
from .tree import parse_document

logger = logging.getLogger(__name__)
logger.debug('Importing {}'.format(__name__))

LEGACY_MARKER = '<?xml'
LEGACY_SEPARATOR = ', '


def is_legacy_value(value) -> bool:
    return isinstance(value, str) and value.startswith(LEGACY_MARKER)


def legacy_item_texts(document: typing.Union[str, ElementTree.Element],
                      vocabulary=TreeVocabulary) -> typing.List[str]:
    """Get the text of every ``object/items/item`` node, in document order.

    Matches are found at any depth, including the root node.
    """
    if isinstance(document, ElementTree.Element):
        root = document
    else:
        root = parse_document(document)
    parents = {child: parent for parent in root.iter() for child in parent}
    texts = []
    for item in root.iter(vocabulary.ITEM):
        items = parents.get(item)
        if items is None or items.tag != vocabulary.ITEMS:
            continue
        owner = parents.get(items)
        if owner is None or owner.tag != vocabulary.OBJECT:
            continue
        texts.append(''.join(item.itertext()))
    return texts


class LegacyContextUpgrader:
    """Rewrite legacy tree-encoded values of a context map in place."""
    def __init__(self, separator: str = LEGACY_SEPARATOR, vocabulary=TreeVocabulary):
        self.separator = separator
        self.vocabulary = vocabulary

    def upgrade_value(self, value: str) -> str:
        return self.separator.join(legacy_item_texts(value, self.vocabulary))

    def upgrade(self, context: typing.MutableMapping[str, typing.Any]) -> typing.MutableMapping[str, typing.Any]:
        """Upgrade legacy values of *context*.

        Values that are not legacy documents are left unchanged.

        Returns:
            *context*, for convenience.

        Raises:
            MalformedDocumentError if a legacy value cannot be parsed.
        """
        for key, value in list(context.items()):
            if is_legacy_value(value):
                logger.debug('Upgrading legacy value of {!r}.'.format(key))
                context[key] = self.upgrade_value(value)
        return context


def deserialize_context(text: typing.Optional[str], registry: TypeRegistry = None) -> typing.Dict[str, str]:
    """Read a stored context and upgrade its legacy values.

    The context may be stored as a tree document of a ``dict[str, str]`` or
    as a compact text record.
    """
    if text is None or not text.strip():
        return {}
    if text.lstrip().startswith('<'):
        context = TreeDeserializer(registry).deserialize(text, root_type=dict)
        if context is None:
            context = {}
        context = {str(key): value if value is None or isinstance(value, str) else str(value)
                   for key, value in context.items()}
    else:
        context = CompactTextCodec(registry).deserialize_mapping(text) or {}
    return LegacyContextUpgrader().upgrade(context)
