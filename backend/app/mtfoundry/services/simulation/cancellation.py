"""Cancellation Token

协作式取消：循环在每个挂起点检查令牌，取消只在下一次恢复时生效。
"""

from __future__ import annotations

import asyncio
from typing import Optional


class CancellationToken:
    """可层级化的取消令牌

    父令牌取消时所有子令牌一并取消；cancel() 幂等。
    """

    def __init__(self, parent: Optional["CancellationToken"] = None):
        self._event = asyncio.Event()
        self._children: list[CancellationToken] = []
        self._parent = parent
        if parent is not None:
            parent._children.append(self)
            if parent.cancelled:
                self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        if self._event.is_set():
            return
        self._event.set()
        for child in self._children:
            child.cancel()

    def child(self) -> "CancellationToken":
        return CancellationToken(parent=self)

    async def sleep(self, seconds: float) -> bool:
        """挂起至多 seconds 秒，提前被取消则立即返回

        Returns:
            恢复时令牌是否已取消
        """
        if self.cancelled:
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=max(seconds, 0.0))
        except asyncio.TimeoutError:
            pass
        return self.cancelled
