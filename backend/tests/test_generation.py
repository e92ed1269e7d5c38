"""Generation Tests

测试并发生成：精确计数、单写入者汇总、取消与关系移除。
"""
import asyncio
import random

import pytest

from mtfoundry.models.run_status import GenerationStatus
from mtfoundry.models.schemas import Relation, SeedArtifact
from mtfoundry.services.simulation.errors import (
    DuplicateRelationError,
    NoRelationsError,
    NoSeedSelectedError,
)
from mtfoundry.services.simulation.generation import GenerationCoordinator


def _relation(name: str, target: int, rate: int = 10) -> Relation:
    return Relation(name=name, type=name.replace(" ", ""), target_count=target, base_rate=rate)


@pytest.fixture
def seed():
    return SeedArtifact(name="Cat photo", expected_result="cat", image="data:image/png;base64,AAAA")


@pytest.fixture
def coordinator(broker):
    return GenerationCoordinator(broker=broker, time_unit=0, rng=random.Random(99))


class TestGenerationRun:
    """生成运行"""

    @pytest.mark.asyncio
    async def test_each_relation_reaches_exact_target(self, coordinator, seed):
        relations = [_relation(f"R{i}", target=i + 3) for i in range(10)]
        handle = coordinator.start_run(relations, seed)

        status = await handle.wait()

        assert status == GenerationStatus.COMPLETED
        for rel in relations:
            assert rel.generated_count == rel.target_count
            assert coordinator.stats.mr_counts[rel.name] == rel.target_count
        expected_total = sum(r.target_count for r in relations)
        assert coordinator.stats.total_generated == expected_total
        assert len(coordinator.generated_tests) == expected_total
        assert coordinator.stats.success_rate == 100
        assert not coordinator.is_running

    @pytest.mark.asyncio
    async def test_generated_tests_are_numbered_and_copy_seed(self, coordinator, seed):
        handle = coordinator.start_run([_relation("Rotation", 4), _relation("Greyscale", 3)], seed)
        await handle.wait()

        names = [t.name for t in coordinator.generated_tests]
        assert names == [f"Test {i}" for i in range(1, 8)]
        assert len({t.id for t in coordinator.generated_tests}) == 7
        for test in coordinator.generated_tests:
            assert test.image == seed.image
            assert test.expected_result == "cat"

    @pytest.mark.asyncio
    async def test_per_relation_progress_is_monotonic(self, coordinator, seed, broker):
        relations = [_relation(f"MR{i}", target=6) for i in range(8)]
        handle = coordinator.start_run(relations, seed)
        await handle.wait()

        seen: dict[str, list[int]] = {}
        for event in broker.get_events(prefix="generation.progress"):
            seen.setdefault(event.data["relation"], []).append(event.data["generated_count"])
        assert set(seen) == {r.name for r in relations}
        for counts in seen.values():
            assert counts == list(range(1, 7))

    @pytest.mark.asyncio
    async def test_lifecycle_events(self, coordinator, seed, broker):
        handle = coordinator.start_run([_relation("Rotation", 2)], seed)
        await handle.wait()

        types = [e.event_type for e in broker.get_events()]
        assert types[0] == "generation.started"
        assert types[-1] == "generation.completed"
        assert types.count("generation.progress") == 2

    @pytest.mark.asyncio
    async def test_zero_target_relation_completes_immediately(self, coordinator, seed):
        handle = coordinator.start_run([_relation("Rotation", 0), _relation("Greyscale", 2)], seed)
        await handle.wait()
        assert coordinator.stats.total_generated == 2
        assert coordinator.stats.mr_counts.get("Rotation") is None

    @pytest.mark.asyncio
    async def test_new_run_resets_counts(self, coordinator, seed):
        relations = [_relation("Rotation", 3), _relation("Greyscale", 2)]
        await coordinator.start_run(relations, seed).wait()
        await coordinator.start_run(relations, seed).wait()

        assert coordinator.stats.total_generated == 5
        assert [r.generated_count for r in relations] == [3, 2]
        assert coordinator.generated_tests[0].name == "Test 1"


class TestCallerErrors:
    """调用方错误"""

    def test_no_relations(self, coordinator, seed):
        with pytest.raises(NoRelationsError):
            coordinator.start_run([], seed)
        assert coordinator.current is None

    def test_no_seed(self, coordinator):
        with pytest.raises(NoSeedSelectedError):
            coordinator.start_run([_relation("Rotation", 3)], None)
        assert coordinator.current is None
        assert coordinator.stats.total_generated == 0

    def test_duplicate_relation_names(self, coordinator, seed):
        with pytest.raises(DuplicateRelationError):
            coordinator.start_run([_relation("Rotation", 3), _relation("Rotation", 2)], seed)

    def test_add_relation_rejects_duplicate(self, coordinator):
        coordinator.add_relation(_relation("Rotation", 3))
        with pytest.raises(DuplicateRelationError):
            coordinator.add_relation(_relation("Rotation", 5))

    def test_duplicate_names_differ_only_in_spacing(self, coordinator, seed):
        coordinator.add_relation(_relation("Foo Bar", 3))
        with pytest.raises(DuplicateRelationError):
            coordinator.add_relation(_relation("foobar", 3))
        with pytest.raises(DuplicateRelationError):
            coordinator.start_run([_relation("Foo Bar", 3), _relation("FooBar", 2)], seed)


class TestCancellation:
    """生成取消"""

    @pytest.mark.asyncio
    async def test_cancel_mid_run_freezes_counts(self, broker, seed):
        coordinator = GenerationCoordinator(broker=broker, time_unit=0.001, rng=random.Random(5))
        fast = [_relation("Fast A", target=2, rate=1), _relation("Fast B", target=2, rate=1)]
        slow = [_relation(f"Slow {i}", target=50, rate=100) for i in range(3)]
        handle = coordinator.start_run(fast + slow, seed)

        while any(r.generated_count < r.target_count for r in fast):
            await asyncio.sleep(0.001)
        coordinator.cancel_run()
        status = await handle.wait()

        assert status == GenerationStatus.CANCELLED
        frozen = coordinator.snapshot()
        counts = [r.generated_count for r in fast + slow]
        await asyncio.sleep(0.05)

        assert coordinator.snapshot() == frozen
        assert [r.generated_count for r in fast + slow] == counts
        assert [r.generated_count for r in fast] == [2, 2]
        for rel in slow:
            assert rel.generated_count < rel.target_count
        assert frozen.total_generated == sum(counts) == len(coordinator.generated_tests)
        assert broker.get_events(prefix="generation.cancelled")

    @pytest.mark.asyncio
    async def test_cancel_is_idempotent(self, coordinator, seed):
        coordinator.cancel_run()  # 没有运行时也不报错
        handle = coordinator.start_run([_relation("Rotation", 5)], seed)
        coordinator.cancel_run()
        coordinator.cancel_run()
        assert await handle.wait() == GenerationStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_new_run_supersedes_running_one(self, coordinator, seed):
        relations = [_relation("Rotation", 4), _relation("Greyscale", 3)]
        first = coordinator.start_run(relations, seed)
        second = coordinator.start_run(relations, seed)

        assert first.cancelled
        assert await second.wait() == GenerationStatus.COMPLETED
        await first.wait()
        assert coordinator.stats.total_generated == 7
        assert [r.generated_count for r in relations] == [4, 3]


class TestRemoveRelations:
    """生成中或生成后移除关系"""

    @pytest.mark.asyncio
    async def test_remove_after_generation_discards_contribution(self, coordinator, seed):
        rotation, greyscale = _relation("Rotation", 4), _relation("Greyscale", 3)
        for rel in (rotation, greyscale):
            coordinator.add_relation(rel)
        await coordinator.start_run(coordinator.relations, seed).wait()

        removed = coordinator.remove_relations([rotation.id])

        assert removed == [rotation]
        assert coordinator.stats.total_generated == 3
        assert "Rotation" not in coordinator.stats.mr_counts
        assert all(t.mr_used == "Greyscale" for t in coordinator.generated_tests)
        assert coordinator.stats.success_rate == 100

    @pytest.mark.asyncio
    async def test_remove_everything_zeroes_rate(self, coordinator, seed):
        rel = coordinator.add_relation(_relation("Rotation", 2))
        await coordinator.start_run(coordinator.relations, seed).wait()
        coordinator.remove_relations([rel.id])
        assert coordinator.stats.total_generated == 0
        assert coordinator.stats.success_rate == 0

    @pytest.mark.asyncio
    async def test_remove_during_run_stops_that_producer(self, coordinator, seed):
        rotation = coordinator.add_relation(_relation("Rotation", 30))
        coordinator.add_relation(_relation("Greyscale", 5))
        handle = coordinator.start_run(list(coordinator.relations), seed)

        coordinator.remove_relations([rotation.id])
        await handle.wait()

        assert [r.name for r in coordinator.relations] == ["Greyscale"]
        assert coordinator.stats.total_generated == 5
        assert coordinator.stats.mr_counts == {"Greyscale": 5}
        assert all(t.mr_used == "Greyscale" for t in coordinator.generated_tests)

    def test_remove_is_idempotent(self, coordinator):
        rel = coordinator.add_relation(_relation("Rotation", 2))
        assert coordinator.remove_relations([rel.id]) == [rel]
        assert coordinator.remove_relations([rel.id]) == []

    @pytest.mark.asyncio
    async def test_cancel_single_relation(self, coordinator, seed):
        rotation, greyscale = _relation("Rotation", 30), _relation("Greyscale", 5)
        handle = coordinator.start_run([rotation, greyscale], seed)

        assert coordinator.cancel_relation(rotation.id) is True
        assert coordinator.cancel_relation(rotation.id) is False
        status = await handle.wait()

        assert status == GenerationStatus.COMPLETED
        assert rotation.generated_count == 0
        assert greyscale.generated_count == 5
        assert [r.name for r in coordinator.relations] == ["Rotation", "Greyscale"]

    @pytest.mark.asyncio
    async def test_remove_never_generated_relation_keeps_stats(self, coordinator, seed):
        coordinator.add_relation(_relation("Greyscale", 3))
        await coordinator.start_run(coordinator.relations, seed).wait()
        before = coordinator.snapshot()
        blur = coordinator.add_relation(_relation("Blur", 5))

        coordinator.remove_relations([blur.id])

        assert coordinator.snapshot() == before
        assert len(coordinator.generated_tests) == 3
