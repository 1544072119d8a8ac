"""Test package configuration and the settings-based codec constructors."""
from __future__ import annotations

import logging

import pytest

from graphcodec.settings import GraphCodecSettings
from graphcodec.settings import get_global_settings
from graphcodec.settings import set_global_settings
from graphcodec.tree import TaggedTreeCodec
from graphcodec.tree import TreeSerializer

logger = logging.getLogger(__name__)
logger.debug('Importing {}'.format(__name__))


def test_defaults():
    settings = GraphCodecSettings()
    assert not settings.deep_serialization
    assert not settings.primary_properties_only
    assert settings.save_root_type
    assert not settings.use_type_dictionary
    assert not settings.ignore_creation_errors


def test_from_environ():
    environ = {
        'GRAPHCODEC_DEEP_SERIALIZATION': '1',
        'GRAPHCODEC_SAVE_ROOT_TYPE': 'false',
        'GRAPHCODEC_USE_TYPE_DICTIONARY': ' Yes ',
        'UNRELATED': 'true'
    }
    settings = GraphCodecSettings.from_environ(environ)
    assert settings.deep_serialization
    assert not settings.save_root_type
    assert settings.use_type_dictionary
    assert not settings.primary_properties_only

    with pytest.raises(ValueError):
        GraphCodecSettings.from_environ({'GRAPHCODEC_DEEP_SERIALIZATION': 'maybe'})


def test_from_process_environment(monkeypatch):
    monkeypatch.setenv('GRAPHCODEC_IGNORE_CREATION_ERRORS', 'on')
    settings = GraphCodecSettings.from_environ()
    assert settings.ignore_creation_errors


def test_global_settings(monkeypatch):
    monkeypatch.setattr('graphcodec.settings._GLOBAL_SETTINGS', None)
    assert get_global_settings() == GraphCodecSettings()

    set_global_settings(GraphCodecSettings(deep_serialization=True, use_type_dictionary=True))
    serializer = TreeSerializer.from_settings()
    assert serializer.deep_serialization
    assert serializer.use_type_dictionary

    codec = TaggedTreeCodec()
    assert codec.serializer.deep_serialization

    with pytest.raises(TypeError):
        # noinspection PyTypeChecker
        set_global_settings({'deep_serialization': True})
