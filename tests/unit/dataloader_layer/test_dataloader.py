"""
Unit Tests for DataLoader
"""

import asyncio

import pytest

from techtrend_cache.core.exceptions import DataLoaderError
from techtrend_cache.dataloader.loader import DataLoader


class RecordingBatchFn:
    def __init__(self, transform=str.upper):
        self.transform = transform
        self.batches = []
        self.contexts = []

    async def __call__(self, keys, context):
        self.batches.append(list(keys))
        self.contexts.append(context)
        return [self.transform(key) for key in keys]


@pytest.mark.unit
class TestBatching:
    async def test_loads_in_same_tick_share_one_batch(self):
        batch_fn = RecordingBatchFn()
        loader = DataLoader(batch_fn)

        results = await asyncio.gather(loader.load("a"), loader.load("b"), loader.load("c"))

        assert results == ["A", "B", "C"]
        assert batch_fn.batches == [["a", "b", "c"]]
        assert batch_fn.contexts[0].size == 3

    async def test_duplicate_keys_are_coalesced(self):
        batch_fn = RecordingBatchFn()
        loader = DataLoader(batch_fn)

        results = await loader.load_many(["a", "b", "a"])

        assert results == ["A", "B", "A"]
        assert batch_fn.batches == [["a", "b"]]

    async def test_max_batch_size_splits_batches(self):
        batch_fn = RecordingBatchFn()
        loader = DataLoader(batch_fn, max_batch_size=2)

        results = await loader.load_many(["a", "b", "c", "d", "e"])

        assert results == ["A", "B", "C", "D", "E"]
        assert batch_fn.batches == [["a", "b"], ["c", "d"], ["e"]]
        assert loader.batches_dispatched == 3

    async def test_callable_batch_size_is_read_live(self):
        size = {"value": 3}
        batch_fn = RecordingBatchFn()
        loader = DataLoader(batch_fn, max_batch_size=lambda: size["value"])

        await loader.load_many(["a", "b", "c"])
        size["value"] = 1
        await loader.load_many(["d", "e"])

        assert batch_fn.batches == [["a", "b", "c"], ["d"], ["e"]]

    async def test_later_ticks_get_new_batches(self):
        batch_fn = RecordingBatchFn()
        loader = DataLoader(batch_fn)

        await loader.load("a")
        await loader.load("b")

        assert batch_fn.batches == [["a"], ["b"]]


@pytest.mark.unit
class TestErrors:
    async def test_batch_error_rejects_every_caller(self):
        async def broken(keys, context):
            raise RuntimeError("db down")

        loader = DataLoader(broken)
        results = await asyncio.gather(loader.load("a"), loader.load("b"), return_exceptions=True)

        assert all(isinstance(r, RuntimeError) for r in results)

    async def test_wrong_result_length_is_a_loader_error(self):
        async def short(keys, context):
            return keys[:-1]

        loader = DataLoader(short, name="short")

        with pytest.raises(DataLoaderError) as exc_info:
            await loader.load_many(["a", "b"])
        assert exc_info.value.details["loader"] == "short"
