"""评估请求的滑动窗口限流。

状态仅保存在进程内存中，进程重启即清空。实例由依赖注入显式创建，
测试可以传入可控时钟构造独立实例。
"""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Callable, Deque, Dict


class AdmissionDenied(RuntimeError):
    """限流拒绝：在任何评估工作开始之前抛出，不做重试。"""

    def __init__(self, actor_id: str, retry_after_seconds: float) -> None:
        super().__init__(
            f"Rate limit exceeded for {actor_id}. "
            "Please wait before submitting another assessment."
        )
        self.actor_id = actor_id
        self.retry_after_seconds = retry_after_seconds


class SlidingWindowRateLimiter:
    """每个请求方在滚动窗口内最多 ``max_requests`` 次请求。"""

    def __init__(
        self,
        max_requests: int = 10,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._requests: Dict[str, Deque[float]] = {}
        # 全局一把锁即可，临界区内没有任何 await
        self._lock = threading.Lock()

    def _prune(self, actor_id: str, now: float) -> Deque[float]:
        timestamps = self._requests.get(actor_id)
        if timestamps is None:
            return deque()
        while timestamps and now - timestamps[0] >= self.window_seconds:
            timestamps.popleft()
        if not timestamps:
            del self._requests[actor_id]
        return timestamps

    def can_admit(self, actor_id: str) -> bool:
        with self._lock:
            timestamps = self._prune(actor_id, self._clock())
            return len(timestamps) < self.max_requests

    def record_request(self, actor_id: str) -> None:
        """记录一次已放行的请求。仅应在 ``can_admit`` 返回 True 后调用。"""

        with self._lock:
            self._requests.setdefault(actor_id, deque()).append(self._clock())

    def remaining(self, actor_id: str) -> int:
        with self._lock:
            timestamps = self._prune(actor_id, self._clock())
            return max(0, self.max_requests - len(timestamps))

    def retry_after(self, actor_id: str) -> float:
        """距离最早一条记录滑出窗口还需等待的秒数。"""

        with self._lock:
            now = self._clock()
            timestamps = self._prune(actor_id, now)
            if len(timestamps) < self.max_requests:
                return 0.0
            return max(0.0, self.window_seconds - (now - timestamps[0]))

    def try_admit(self, actor_id: str) -> bool:
        """原子地检查并记录，供并发评估使用。"""

        with self._lock:
            now = self._clock()
            timestamps = self._prune(actor_id, now)
            if len(timestamps) >= self.max_requests:
                return False
            self._requests.setdefault(actor_id, timestamps).append(now)
            return True
