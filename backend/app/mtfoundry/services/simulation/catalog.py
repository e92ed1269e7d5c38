"""MTFoundry - Relation Catalog

加载蜕变关系目录 (relation_catalog.yaml)。

Features:
- Pydantic schema 验证
- YAML 加载
- 默认值回退
- 环境变量路径覆盖 (MT_CATALOG_PATH)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, model_validator

from mtfoundry.core.config import settings

logger = logging.getLogger(__name__)

# 默认目录文件路径（相对于此模块）
DEFAULT_CATALOG_PATH = Path(__file__).parent / "relation_catalog.yaml"


def normalize_name(name: str) -> str:
    """关系名归一化："Noise Injection" 与 "NoiseInjection" 视为同一关系"""
    return "".join(name.split()).lower()


class RelationDefaults(BaseModel):
    """单个关系的默认配置"""
    description: str = ""
    target_count: int = Field(default=5, ge=0, description="生成目标数量")
    base_rate: int = Field(default=100, ge=0, description="基础生成间隔（时间单位）")


class ReferenceRatio(BaseModel):
    """历史参考通过比例"""
    passed: int = Field(ge=0)
    total: int = Field(gt=0)

    @model_validator(mode="after")
    def _check_bounds(self) -> "ReferenceRatio":
        if self.passed > self.total:
            raise ValueError(f"passed ({self.passed}) exceeds total ({self.total})")
        return self


class RelationCatalog(BaseModel):
    """关系目录主模型"""
    version: str = Field(default="1.0", description="配置版本")
    relations: dict[str, RelationDefaults] = Field(default_factory=dict)
    fallback: RelationDefaults = Field(
        default_factory=lambda: RelationDefaults(target_count=5, base_rate=100),
        description="未知关系的回退值",
    )
    default_pass_ratio: float = Field(default=0.9, ge=0, le=1)
    reference_ratios: dict[str, ReferenceRatio] = Field(default_factory=dict)

    def _find(self, table: dict, name: str):
        key = normalize_name(name)
        for candidate, value in table.items():
            if normalize_name(candidate) == key:
                return candidate, value
        return None, None

    def canonical_name(self, name: str) -> str:
        """返回目录中的显示名；未知关系原样返回（去除首尾空白）"""
        found, _ = self._find(self.relations, name)
        return found or name.strip()

    def lookup(self, name: str) -> RelationDefaults:
        _, defaults = self._find(self.relations, name)
        return defaults or self.fallback

    def reference_ratio(self, name: str) -> Optional[ReferenceRatio]:
        _, ratio = self._find(self.reference_ratios, name)
        return ratio

    def options(self) -> list[str]:
        return list(self.relations)


def get_default_catalog() -> RelationCatalog:
    """内置默认目录（不加载文件）"""
    return RelationCatalog(
        relations={
            "Rotation": RelationDefaults(
                description="Rotate the image by various angles", target_count=20, base_rate=120
            ),
            "Greyscale": RelationDefaults(
                description="Convert image to greyscale", target_count=5, base_rate=40
            ),
            "Noise Injection": RelationDefaults(
                description="Add noise to the image", target_count=10, base_rate=120
            ),
            "Size Adjustment": RelationDefaults(
                description="Scale the image to different sizes", target_count=10, base_rate=40
            ),
        },
        default_pass_ratio=settings.DEFAULT_PASS_RATIO,
    )


def load_catalog(path: Optional[Path] = None) -> RelationCatalog:
    """加载关系目录

    优先级:
    1. 显式传入的 path
    2. 环境变量 MT_CATALOG_PATH
    3. 默认路径 (services/simulation/relation_catalog.yaml)
    4. 内置默认值
    """
    if path is None:
        path = Path(settings.CATALOG_PATH) if settings.CATALOG_PATH else DEFAULT_CATALOG_PATH

    if path.exists():
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
            catalog = RelationCatalog.model_validate(data or {})
            logger.info(f"Relation catalog loaded from {path}")
            return catalog
        except Exception as e:
            logger.warning(f"Failed to load relation catalog from {path}: {e}, using defaults")
            return get_default_catalog()
    else:
        logger.info(f"Relation catalog not found at {path}, using defaults")
        return get_default_catalog()


# 全局缓存（单例模式）
_cached_catalog: Optional[RelationCatalog] = None


def get_catalog(force_reload: bool = False) -> RelationCatalog:
    """获取关系目录（带缓存）"""
    global _cached_catalog
    if _cached_catalog is None or force_reload:
        _cached_catalog = load_catalog()
    return _cached_catalog


def clear_catalog_cache() -> None:
    """清除目录缓存（用于测试）"""
    global _cached_catalog
    _cached_catalog = None
