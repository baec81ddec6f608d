"""
有界重试
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    重试策略

    max_attempts 包含第一次尝试；两次尝试之间的等待时间从 delay 开始，
    每次乘以 backoff，不超过 max_delay
    """
    max_attempts: int = 3
    delay: float = 1.0
    backoff: float = 2.0
    max_delay: float = 10.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts 至少为 1")
        if self.delay < 0 or self.max_delay < 0:
            raise ValueError("等待时间不能为负数")

    def delays(self) -> List[float]:
        """每次重试前的等待时间，共 max_attempts - 1 个"""
        waits = []
        current = self.delay
        for _ in range(self.max_attempts - 1):
            waits.append(min(current, self.max_delay))
            current *= self.backoff
        return waits


async def retry_until(
    attempt: Callable[[], Awaitable[T]],
    accept: Callable[[T], bool],
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
) -> Tuple[T, int]:
    """
    重复执行直到结果被接受或次数用尽

    Args:
        attempt: 每次调用返回一个新的协程
        accept: 判断结果是否满足要求
        policy: 重试策略
        sleep: 等待函数（测试中可替换）

    Returns:
        (最后一次的结果, 实际尝试次数)
    """
    value = await attempt()
    attempts = 1
    for wait in policy.delays():
        if accept(value):
            break
        logger.debug("第 %d 次尝试未通过，%.1f 秒后重试", attempts, wait)
        await sleep(wait)
        value = await attempt()
        attempts += 1
    return value, attempts
