"""Outcome Allocator Tests

测试目标划分的舍入规则与划分守恒。
"""
from fractions import Fraction

import pytest

from mtfoundry.services.simulation.allocation import OutcomeAllocator
from mtfoundry.services.simulation.catalog import ReferenceRatio, get_default_catalog


@pytest.fixture
def catalog():
    return get_default_catalog()


class TestSplit:
    """单个关系的通过/失败划分"""

    def test_reference_ratio_scenario(self, catalog):
        """Greyscale 5 个，参考 4/5 → (4, 1)"""
        allocator = OutcomeAllocator({"Greyscale": {"passed": 4, "total": 5}}, catalog=catalog)
        split = allocator.split("Greyscale", 5)
        assert (split.target_passed, split.target_failed) == (4, 1)

    def test_default_ratio_floors(self, catalog):
        allocator = OutcomeAllocator(catalog=catalog)
        assert allocator.split("Rotation", 20).target_passed == 18
        # 0.9 * 5 = 4.5 → floor
        assert allocator.split("Greyscale", 5).target_passed == 4
        # 0.9 * 10 必须是精确的 9，而不是浮点误差下的 8
        assert allocator.split("Noise Injection", 10).target_passed == 9

    def test_reference_ratio_rounds_half_up(self, catalog):
        allocator = OutcomeAllocator({"Rotation": ReferenceRatio(passed=1, total=2)}, catalog=catalog)
        # 3 * 0.5 = 1.5 → 2
        split = allocator.split("Rotation", 3)
        assert (split.target_passed, split.target_failed) == (2, 1)

    def test_reference_lookup_ignores_spacing(self, catalog):
        allocator = OutcomeAllocator({"NoiseInjection": {"passed": 7, "total": 10}}, catalog=catalog)
        assert allocator.reference_ratio("Noise Injection") == Fraction(7, 10)
        split = allocator.split("Noise Injection", 10)
        assert (split.target_passed, split.target_failed) == (7, 3)

    def test_zero_total(self, catalog):
        split = OutcomeAllocator(catalog=catalog).split("Rotation", 0)
        assert (split.total, split.target_passed, split.target_failed) == (0, 0, 0)

    def test_split_always_sums_to_total(self, catalog):
        allocator = OutcomeAllocator(
            {"Rotation": {"passed": 2, "total": 3}, "Greyscale": {"passed": 0, "total": 4}},
            catalog=catalog,
        )
        for name in ("Rotation", "Greyscale", "Unknown"):
            for total in range(1, 40):
                split = allocator.split(name, total)
                assert split.target_passed + split.target_failed == total
                assert 0 <= split.target_passed <= total

    def test_explicit_default_ratio(self, catalog):
        allocator = OutcomeAllocator(catalog=catalog, default_ratio=0.5)
        assert allocator.split("Rotation", 7).target_passed == 3

    def test_invalid_default_ratio_rejected(self, catalog):
        with pytest.raises(ValueError):
            OutcomeAllocator(catalog=catalog, default_ratio=1.5)

    def test_invalid_reference_ratio_rejected(self, catalog):
        with pytest.raises(ValueError):
            OutcomeAllocator({"Rotation": {"passed": 6, "total": 5}}, catalog=catalog)


class TestAllocate:
    """批量分配"""

    def test_two_relation_scenario(self, catalog):
        allocator = OutcomeAllocator({"NoiseInjection": {"passed": 7, "total": 10}}, catalog=catalog)
        splits = {s.relation: s for s in allocator.allocate({"Rotation": 20, "Noise Injection": 10})}
        assert (splits["Rotation"].target_passed, splits["Rotation"].target_failed) == (18, 2)
        assert (splits["Noise Injection"].target_passed, splits["Noise Injection"].target_failed) == (7, 3)

    def test_zero_totals_excluded(self, catalog):
        splits = OutcomeAllocator(catalog=catalog).allocate({"Rotation": 0, "Greyscale": 5})
        assert [s.relation for s in splits] == ["Greyscale"]

    def test_uses_catalog_reference_ratios(self):
        catalog = get_default_catalog()
        catalog.reference_ratios = {"Greyscale": ReferenceRatio(passed=4, total=5)}
        split = OutcomeAllocator(catalog=catalog).split("Greyscale", 5)
        assert split.target_passed == 4
