"""运行状态枚举定义"""

from enum import Enum


class GenerationStatus(str, Enum):
    """生成运行状态

    状态流转:
        RUNNING → COMPLETED
           ↓
        CANCELLED
    """
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ExecutionState(str, Enum):
    """执行调度器状态

    状态流转:
        IDLE → RUNNING → COMPLETED
                    ↓
                CANCELLED

    COMPLETED / CANCELLED 之后可以再次 start。
    """
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


__all__ = [
    "GenerationStatus",
    "ExecutionState",
]
