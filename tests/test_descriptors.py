"""Test the property tables derived from class definitions."""
from __future__ import annotations

import dataclasses
import logging
import typing

import numpy
import numpy.typing

from graphcodec.descriptors import Shape
from graphcodec.descriptors import analyze_annotation
from graphcodec.descriptors import build_descriptors
from graphcodec.descriptors import transient_field
from graphcodec.registry import TypeRegistry

logger = logging.getLogger(__name__)
logger.debug('Importing {}'.format(__name__))


@dataclasses.dataclass
class Sample:
    name: str = ''
    count: int = 0
    tags: typing.List[str] = dataclasses.field(default_factory=list)
    cache: dict = transient_field(default_factory=dict)
    _private: int = 0


@dataclasses.dataclass(frozen=True)
class Point:
    x: float = 0.0
    y: float = 0.0


class Base:
    label: str
    size: int


class Derived(Base):
    ratio: typing.Optional[float]
    registry: typing.ClassVar[dict] = {}
    __transient__ = ('size',)

    def __init__(self):
        self._area = 0.0

    @property
    def area(self) -> float:
        return self._area


def test_dataclass_descriptors():
    descriptors = build_descriptors(Sample)
    assert [descriptor.name for descriptor in descriptors] == ['name', 'count', 'tags', 'cache']
    name, count, tags, cache = descriptors
    assert name.declared_type is str
    assert count.declared_type is int
    assert tags.declared_type is list
    assert tags.element_types == (str,)
    assert not cache.serializable
    assert all(descriptor.settable for descriptor in descriptors)
    assert not any(descriptor.frozen for descriptor in descriptors)


def test_frozen_dataclass():
    x, y = build_descriptors(Point)
    assert x.frozen
    point = Point()
    x.set(point, 2.5)
    assert point.x == 2.5
    assert y.get(point) == 0.0


def test_annotated_class_descriptors():
    descriptors = build_descriptors(Derived)
    assert [descriptor.name for descriptor in descriptors] == ['label', 'size', 'ratio', 'area']
    label, size, ratio, area = descriptors
    assert label.serializable
    assert not size.serializable
    assert ratio.declared_type is float
    assert area.declared_type is float
    assert not area.settable
    assert ratio.settable


def test_explicit_names():
    descriptors = build_descriptors(Derived, names=['area', 'label'])
    assert [descriptor.name for descriptor in descriptors] == ['area', 'label']


def test_analyze_annotation():
    assert analyze_annotation(int) == (int, ())
    assert analyze_annotation(typing.Optional[int]) == (int, ())
    assert analyze_annotation(typing.Union[int, str]) == (None, ())
    assert analyze_annotation(typing.Any) == (None, ())
    assert analyze_annotation(typing.Dict[str, int]) == (dict, (str, int))
    assert analyze_annotation(typing.Mapping[str, float]) == (dict, (str, float))
    assert analyze_annotation(typing.Sequence[int]) == (list, (int,))
    assert analyze_annotation(typing.Tuple[int, ...]) == (tuple, (int,))
    assert analyze_annotation(list[typing.Any]) == (list, ())
    assert analyze_annotation(numpy.typing.NDArray[numpy.int32]) == (numpy.ndarray, (numpy.int32,))
    assert analyze_annotation(typing.Annotated[int, 'units']) == (int, ())


def test_declared_shapes():
    registry = TypeRegistry()
    descriptors = {descriptor.name: descriptor for descriptor in registry.descriptors(Sample)}
    assert descriptors['name'].declared_shape is Shape.SCALAR
    assert descriptors['tags'].declared_shape is Shape.ORDERED
    assert descriptors['cache'].declared_shape is Shape.KEYED
    assert registry.descriptors(Sample) is registry.descriptors(Sample)
    assert registry.find_property(Sample, 'count') is descriptors['count']
    assert registry.find_property(Sample, 'missing') is None
