"""有界重试策略"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from models.errors import AnalysisError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """固定间隔的有界重试：最多 max_attempts 次，失败后等待 delay_s 秒。"""

    max_attempts: int = 2
    delay_s: float = 5.0

    def should_retry(self, error: Exception, attempt: int) -> bool:
        """attempt 从 1 开始计数。只有标记为 retryable 的分析错误会重试。"""
        if attempt >= self.max_attempts:
            return False
        return isinstance(error, AnalysisError) and error.retryable

    def delay_for(self, attempt: int) -> float:
        return self.delay_s


async def call_with_retry(
    func: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    should_continue: Optional[Callable[[], bool]] = None,
) -> T:
    """
    按策略执行异步调用。

    Args:
        func: 每次尝试都会重新调用的无参协程函数
        policy: 重试策略
        sleep: 等待函数（测试时可替换）
        should_continue: 每次重试前检查，返回 False 时放弃重试

    Returns:
        func 的返回值

    Raises:
        最后一次尝试的异常，或不可重试的异常
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return await func()
        except AnalysisError as e:
            if not policy.should_retry(e, attempt):
                raise
            delay = policy.delay_for(attempt)
            logger.warning("第 %d 次分析失败: %s，%.1f 秒后重试", attempt, e, delay)
            await sleep(delay)
            if should_continue is not None and not should_continue():
                logger.info("调用方已取消，不再重试")
                raise
