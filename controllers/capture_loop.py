"""采集-分析循环：定时取帧、单飞分析、重试与结果分发"""

import asyncio
import inspect
import logging
import random
from typing import Callable, Optional, Set

from alerts.dispatcher import AlertDispatcher
from capture.frame_source import FrameSource, encode_frame
from controllers.retry import RetryPolicy, call_with_retry
from models.data_models import DetectionResult
from models.errors import AnalysisError, FrameCaptureError, RefusalError

logger = logging.getLogger(__name__)

# 循环状态
IDLE = "idle"
REQUESTING_PERMISSION = "requesting_permission"
ARMED = "armed"
ANALYZING = "analyzing"
STOPPED = "stopped"


async def capture_and_analyze(
    source: FrameSource,
    analyzer: Callable,
    encoder: Callable = encode_frame,
    retry_policy: Optional[RetryPolicy] = None,
    sleep: Callable = asyncio.sleep,
    should_continue: Optional[Callable[[], bool]] = None,
) -> DetectionResult:
    """
    取一帧 -> 编码 -> 调用视觉模型（按重试策略）。

    Args:
        source: 已 acquire 的帧源
        analyzer: 接收图像 data URL 返回 DetectionResult 的函数（同步或协程）
        encoder: 帧编码函数
        retry_policy: 重试策略，默认只尝试一次
        sleep: 重试等待函数
        should_continue: 重试前检查调用方是否仍需要结果

    Raises:
        FrameCaptureError: 未能读取到帧
        AnalysisError: 最后一次尝试仍失败
    """
    frame = await asyncio.to_thread(source.read)
    if frame is None:
        raise FrameCaptureError("未能读取画面")
    image = encoder(frame)

    async def attempt():
        if inspect.iscoroutinefunction(analyzer):
            return await analyzer(image)
        return await asyncio.to_thread(analyzer, image)

    return await call_with_retry(
        attempt, retry_policy or RetryPolicy(max_attempts=1), sleep, should_continue,
    )


class CaptureLoop:
    """
    实时监测循环。每次 start 创建一个新实例，stop 后不可复用。

    状态: idle -> requesting_permission -> armed <-> analyzing -> stopped

    定时器只负责触发分析，不等待分析完成；上一次分析未完成时新的触发直接跳过。
    """

    def __init__(
        self,
        frame_source: FrameSource,
        analyzer: Callable,
        dispatcher: Optional[AlertDispatcher] = None,
        interval_s: float = 10.0,
        warmup_s: float = 3.0,
        retry_policy: Optional[RetryPolicy] = None,
        jitter_s: tuple = (0.5, 1.5),
        encoder: Callable = encode_frame,
        on_result: Optional[Callable[[DetectionResult], None]] = None,
        sleep: Callable = asyncio.sleep,
        rng: Callable[[float, float], float] = random.uniform,
    ):
        self._source = frame_source
        self._analyzer = analyzer
        self._dispatcher = dispatcher
        self.interval_s = interval_s
        self.warmup_s = warmup_s
        self._retry_policy = retry_policy or RetryPolicy()
        self._jitter_s = jitter_s
        self._encoder = encoder
        self._on_result = on_result
        self._sleep = sleep
        self._rng = rng

        self.state = IDLE
        self.current_result: Optional[DetectionResult] = None
        self._in_flight = False
        self._generation = 0
        self._timers = []
        self._ticks: Set[asyncio.Task] = set()

    @property
    def frame_source(self) -> FrameSource:
        return self._source

    @property
    def is_analyzing(self) -> bool:
        return self._in_flight

    @property
    def is_running(self) -> bool:
        return self.state in (ARMED, ANALYZING)

    async def start(self) -> None:
        """获取摄像头并启动定时器；摄像头不可用时抛出 PermissionError。"""
        if self.state != IDLE:
            raise RuntimeError(f"采集循环状态为 {self.state}，不能启动")

        self.state = REQUESTING_PERMISSION
        try:
            await asyncio.to_thread(self._source.acquire)
        except PermissionError:
            self.state = IDLE
            raise

        if self.state == STOPPED:
            # 等待授权期间已被停止
            self._source.release()
            return

        self.state = ARMED
        self._timers = [
            asyncio.create_task(self._after_warmup()),
            asyncio.create_task(self._every_interval()),
        ]
        logger.info("实时监测已启动，%.0f 秒后首次分析，之后每 %.0f 秒一次", self.warmup_s, self.interval_s)

    def stop(self) -> None:
        """取消定时器、释放摄像头、清空当前结果。进行中的请求结果会被丢弃。"""
        for timer in self._timers:
            timer.cancel()
        self._timers = []
        self._generation += 1
        self._source.release()
        self.current_result = None
        self.state = STOPPED
        if self._dispatcher is not None:
            self._dispatcher.reset()
        logger.info("实时监测已停止")

    async def _after_warmup(self):
        await asyncio.sleep(self.warmup_s)
        self._spawn_tick()

    async def _every_interval(self):
        while True:
            await asyncio.sleep(self.interval_s)
            self._spawn_tick()

    def _spawn_tick(self):
        task = asyncio.create_task(self._run_tick())
        self._ticks.add(task)
        task.add_done_callback(self._ticks.discard)

    async def _run_tick(self):
        try:
            await self.analyze_tick()
        except Exception:
            logger.exception("分析过程出现未预期的错误")

    async def analyze_tick(self) -> Optional[DetectionResult]:
        """
        执行一次分析。

        Returns:
            新的检测结果；跳过、失败或已停止时返回 None（保留上一次结果）
        """
        if self._in_flight:
            logger.debug("上一次分析尚未完成，跳过本次触发")
            return None
        if self.state != ARMED:
            return None

        self._in_flight = True
        self.state = ANALYZING
        generation = self._generation
        try:
            low, high = self._jitter_s
            await self._sleep(self._rng(low, high))
            if generation != self._generation:
                return None
            result = await capture_and_analyze(
                self._source, self._analyzer, self._encoder, self._retry_policy, self._sleep,
                should_continue=lambda: generation == self._generation,
            )
        except RefusalError as e:
            logger.warning("模型拒绝分析本帧: %s", e)
            return None
        except AnalysisError as e:
            logger.error("分析失败，保留上一次结果: %s", e)
            return None
        finally:
            self._in_flight = False
            if self.state == ANALYZING:
                self.state = ARMED

        if generation != self._generation:
            logger.debug("监测已停止，丢弃过期的分析结果")
            return None

        self.current_result = result
        logger.info("分析结果: %s (置信度 %s) %s", result.state, result.confidence, list(result.indicators))
        if self._dispatcher is not None:
            self._dispatcher.dispatch(result)
        if self._on_result is not None:
            self._on_result(result)
        return result
