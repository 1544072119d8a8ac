"""Test sharing one registry between codecs running in several threads."""
from __future__ import annotations

import concurrent.futures
import dataclasses
import logging
import threading
import typing

import pytest

from graphcodec.compact import CompactTextCodec
from graphcodec.compact import bind_nested
from graphcodec.registry import TypeRegistry
from graphcodec.tree import TreeDeserializer
from graphcodec.tree import TreeSerializer

logger = logging.getLogger(__name__)
logger.debug('Importing {}'.format(__name__))

WORKERS = 8
ROUNDS = 25


@dataclasses.dataclass(eq=False)
class Sample:
    label: str = ''
    count: int = 0
    values: typing.List[float] = dataclasses.field(default_factory=list)
    inner: typing.Optional[Sample] = None


@pytest.fixture
def registry():
    # Descriptors and converters are computed lazily, so the workers race to fill the caches.
    registry = TypeRegistry()
    registry.register_type(Sample)
    return registry


def round_trip(registry: TypeRegistry, index: int):
    sample = Sample(label='s{}'.format(index), count=index, values=[index * 0.5],
                    inner=Sample(label='inner{}'.format(index)))
    text = TreeSerializer(registry, deep_serialization=True).to_string(sample)
    tree = TreeDeserializer(registry).deserialize(text)
    codec = CompactTextCodec(registry)
    compact = codec.deserialize(codec.serialize(sample), Sample, apply=bind_nested(codec))
    return index, tree, compact, registry.descriptors(Sample)


def test_shared_registry(registry):
    barrier = threading.Barrier(WORKERS)

    def work(worker: int):
        barrier.wait(timeout=30)
        return [round_trip(registry, worker * ROUNDS + offset) for offset in range(ROUNDS)]

    with concurrent.futures.ThreadPoolExecutor(max_workers=WORKERS) as executor:
        futures = [executor.submit(work, worker) for worker in range(WORKERS)]
        results = [result for future in futures for result in future.result()]

    assert sorted(index for index, *_ in results) == list(range(WORKERS * ROUNDS))
    descriptors = registry.descriptors(Sample)
    for index, tree, compact, seen in results:
        # The first stored descriptor table is the one every thread sees.
        assert seen is descriptors
        for result in (tree, compact):
            assert type(result) is Sample
            assert result.label == 's{}'.format(index)
            assert result.count == index
            assert result.inner.label == 'inner{}'.format(index)
        assert compact.values == [index * 0.5]
    assert registry.converter(int) is registry.converter(int)
