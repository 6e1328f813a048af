"""Tests for badges.predictor: speculative branch → build fetching."""

import asyncio

import pytest

from badges.predictor import BranchPredictor


class FakeTravis:
    def __init__(self, pointer):
        self.pointer = pointer
        self.build_calls: list[str] = []
        self.pointer_calls = 0

    async def fetch_pointer(self):
        self.pointer_calls += 1
        await asyncio.sleep(0)
        return self.pointer

    async def fetch_build(self, build_id):
        self.build_calls.append(build_id)
        await asyncio.sleep(0)
        return {"id": build_id}


@pytest.mark.asyncio
async def test_first_lookup_fetches_pointer_then_build():
    travis = FakeTravis(10)
    predictor = BranchPredictor()

    build = await predictor.resolve("me/repo/main", travis.fetch_pointer, travis.fetch_build)

    assert build == {"id": "10"}
    assert travis.build_calls == ["10"]
    assert predictor.predicted("me/repo/main") == "10"


@pytest.mark.asyncio
async def test_prediction_hit_reuses_speculative_fetch():
    travis = FakeTravis(10)
    predictor = BranchPredictor()
    await predictor.resolve("me/repo/main", travis.fetch_pointer, travis.fetch_build)
    travis.build_calls.clear()

    build = await predictor.resolve("me/repo/main", travis.fetch_pointer, travis.fetch_build)

    assert build == {"id": "10"}
    assert travis.build_calls == ["10"]
    assert travis.pointer_calls == 2


@pytest.mark.asyncio
async def test_speculative_fetch_starts_before_pointer_resolves():
    predictor = BranchPredictor()
    order: list[str] = []
    pointer_gate = asyncio.Event()

    async def fetch_pointer():
        order.append("pointer")
        await pointer_gate.wait()
        return "7"

    async def fetch_build(build_id):
        order.append(f"build {build_id}")
        return build_id

    # Seed the prediction.
    pointer_gate.set()
    await predictor.resolve("k", fetch_pointer, fetch_build)
    pointer_gate.clear()
    order.clear()

    task = asyncio.ensure_future(predictor.resolve("k", fetch_pointer, fetch_build))
    for _ in range(5):
        await asyncio.sleep(0)
    assert "build 7" in order and not task.done()

    pointer_gate.set()
    assert await task == "7"


@pytest.mark.asyncio
async def test_branch_moved_fetches_new_build():
    travis = FakeTravis(10)
    predictor = BranchPredictor()
    await predictor.resolve("me/repo/main", travis.fetch_pointer, travis.fetch_build)

    travis.pointer = 11
    travis.build_calls.clear()
    build = await predictor.resolve("me/repo/main", travis.fetch_pointer, travis.fetch_build)

    assert build == {"id": "11"}
    # One wasted speculative fetch for the old build, then the new one.
    assert travis.build_calls == ["10", "11"]
    assert predictor.predicted("me/repo/main") == "11"


@pytest.mark.asyncio
async def test_branches_are_tracked_separately():
    travis = FakeTravis(10)
    predictor = BranchPredictor()
    await predictor.resolve("me/repo/main", travis.fetch_pointer, travis.fetch_build)

    assert predictor.predicted("me/repo/dev") is None


@pytest.mark.asyncio
async def test_pointer_failure_propagates():
    predictor = BranchPredictor()

    async def fetch_pointer():
        raise ConnectionError("travis down")

    async def fetch_build(build_id):
        return build_id

    with pytest.raises(ConnectionError):
        await predictor.resolve("k", fetch_pointer, fetch_build)
    assert predictor.predicted("k") is None


@pytest.mark.asyncio
async def test_failed_speculation_on_moved_branch_is_ignored():
    predictor = BranchPredictor()
    pointer = "1"

    async def fetch_pointer():
        return pointer

    async def fetch_build(build_id):
        if build_id == "1" and pointer == "2":
            raise RuntimeError("old build gone")
        return build_id

    await predictor.resolve("k", fetch_pointer, fetch_build)
    pointer = "2"

    assert await predictor.resolve("k", fetch_pointer, fetch_build) == "2"
