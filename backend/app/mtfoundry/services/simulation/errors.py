"""MTFoundry - Simulation Errors

调用方错误在任何状态变更之前同步抛出；“无可执行测试”不是异常，
而是 ExecutionStartResult.empty() 返回值。
"""

from __future__ import annotations

from uuid import UUID


class SimulationError(Exception):
    """模拟引擎异常基类"""


class CallerError(SimulationError):
    """调用方错误（前置条件不满足）"""


class NoRelationsError(CallerError):
    def __init__(self):
        super().__init__("At least one metamorphic relation is required")


class NoSeedSelectedError(CallerError):
    def __init__(self):
        super().__init__("A seed test must be selected before generating")


class DuplicateRelationError(CallerError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Relation already in run: {name}")


class ExecutionAlreadyRunningError(CallerError):
    def __init__(self):
        super().__init__("An execution is already running")


class GenerationInProgressError(CallerError):
    def __init__(self):
        super().__init__("Generation is still in progress")


class SuiteNotFoundError(SimulationError):
    def __init__(self, suite_id: UUID):
        self.suite_id = suite_id
        super().__init__(f"Test suite not found: {suite_id}")


class SeedNotFoundError(SimulationError):
    def __init__(self, seed_id: UUID):
        self.seed_id = seed_id
        super().__init__(f"Seed test not found: {seed_id}")


class HistoryEntryNotFoundError(SimulationError):
    def __init__(self, entry_id: UUID):
        self.entry_id = entry_id
        super().__init__(f"History entry not found: {entry_id}")
