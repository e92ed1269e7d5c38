"""蜕变测试模拟引擎

- rate_model: 抖动延迟
- generation: 并发生成（RelationProducer / GenerationCoordinator）
- allocation: 目标划分（OutcomeAllocator）
- execution: 执行调度（ExecutionScheduler）
- history: 执行历史（HistoryRecorder）
"""
from mtfoundry.services.simulation.allocation import OutcomeAllocator
from mtfoundry.services.simulation.cancellation import CancellationToken
from mtfoundry.services.simulation.execution import (
    ExecutionScheduler,
    ExecutionStartResult,
    decide_outcome,
)
from mtfoundry.services.simulation.generation import (
    GenerationCoordinator,
    GenerationHandle,
    RelationProducer,
)
from mtfoundry.services.simulation.history import HistoryRecorder
from mtfoundry.services.simulation.rate_model import jitter

__all__ = [
    "CancellationToken",
    "ExecutionScheduler",
    "ExecutionStartResult",
    "GenerationCoordinator",
    "GenerationHandle",
    "HistoryRecorder",
    "OutcomeAllocator",
    "RelationProducer",
    "decide_outcome",
    "jitter",
]
