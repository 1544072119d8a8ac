"""Test scalar text conversion."""
from __future__ import annotations

import datetime
import decimal
import enum
import logging
import pathlib
import uuid

import numpy
import pytest

from graphcodec.converters import Converter
from graphcodec.converters import converter_for
from graphcodec.converters import register_converter
from graphcodec.exceptions import ConversionError

logger = logging.getLogger(__name__)
logger.debug('Importing {}'.format(__name__))


class Color(enum.Enum):
    RED = 1
    GREEN = 2


class Version:
    """Provides its own text conversion."""
    def __init__(self, major=0, minor=0):
        self.major = major
        self.minor = minor

    @classmethod
    def from_text(cls, text: str):
        major, minor = text.split('.')
        return cls(int(major), int(minor))

    def to_text(self) -> str:
        return '{}.{}'.format(self.major, self.minor)


class Celsius:
    def __init__(self, degrees: float):
        self.degrees = degrees


def test_builtin_scalars():
    for value in ('text', 42, -7, 1.5, 0.1, True, False, 1 + 2j):
        converter = converter_for(type(value))
        assert converter is not None
        assert converter.from_text(converter.to_text(value)) == value
        assert type(converter.from_text(converter.to_text(value))) is type(value)

    assert converter_for(float).to_text(0.1) == '0.1'
    assert converter_for(bool).to_text(True) == 'True'
    assert converter_for(bool).from_text('false') is False


def test_library_scalars():
    values = (
        decimal.Decimal('3.14159'),
        uuid.UUID('832df1a2-1f0b-4024-a4ab-4160717b8a8c'),
        pathlib.PurePosixPath('/tmp/data.txt'),
        datetime.date(2020, 2, 29),
        datetime.datetime(2020, 2, 29, 12, 30, 15),
        datetime.time(8, 15),
        datetime.timedelta(hours=1, milliseconds=5),
        Color.GREEN,
    )
    for value in values:
        converter = converter_for(type(value))
        assert converter.from_text(converter.to_text(value)) == value
    assert converter_for(Color).to_text(Color.RED) == 'RED'


def test_bytes():
    data = bytes(range(5))
    converter = converter_for(bytes)
    text = converter.to_text(data)
    assert text == 'AAECAwQ='
    assert converter.from_text(text) == data
    assert converter_for(bytearray).from_text(text) == bytearray(data)

    with pytest.raises(ConversionError):
        converter.from_text('not base64!')


def test_numpy_scalars():
    converter = converter_for(numpy.int32)
    value = converter.from_text('12')
    assert type(value) is numpy.int32
    assert value == 12

    converter = converter_for(numpy.bool_)
    assert converter.from_text('False') == numpy.bool_(False)
    assert converter.to_text(numpy.bool_(True)) == 'True'


def test_conversion_errors():
    with pytest.raises(ConversionError):
        converter_for(int).from_text('twelve')
    with pytest.raises(ConversionError):
        converter_for(bool).from_text('yes')
    with pytest.raises(ConversionError):
        converter_for(Color).from_text('BLUE')
    # ConversionError is also a ValueError.
    with pytest.raises(ValueError):
        converter_for(float).from_text('')


def test_not_scalar():
    assert converter_for(object) is None
    assert converter_for(list) is None
    assert converter_for(dict) is None
    with pytest.raises(TypeError):
        # noinspection PyTypeChecker
        converter_for('int')


def test_protocol():
    converter = converter_for(Version)
    assert converter.to_text(Version(1, 2)) == '1.2'
    version = converter.from_text('3.4')
    assert (version.major, version.minor) == (3, 4)


def test_registration():
    assert converter_for(Celsius) is None
    register_converter(Celsius,
                       lambda cls: Converter(cls, lambda text: cls(float(text)), lambda value: repr(value.degrees)))
    converter = converter_for(Celsius)
    assert converter.to_text(Celsius(21.5)) == '21.5'
    assert converter.from_text('-3.0').degrees == -3.0

    text_only = Converter(Celsius, None)
    assert not text_only.can_convert_from_text
    with pytest.raises(ConversionError):
        text_only.from_text('1')
