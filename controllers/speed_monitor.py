"""车速监测模块：根据定位推算车速，定期查询道路限速并在超速时告警"""

import asyncio
import logging
import math
import time
from typing import Callable, Optional

from alerts.channels import ToastChannel
from alerts.dispatcher import AlertDispatcher, overspeed_alert
from geo.geometry import haversine_distance_m, mps_to_mph
from geo.position_source import PositionSource
from models.data_models import PositionUpdate, SpeedLimit, SpeedSample

logger = logging.getLogger(__name__)


class SpeedMonitor:
    """
    订阅定位源，维护当前车速和道路限速。

    - 定位读数自带速度时直接换算；否则用相邻两次采样的球面距离除以时间差。
    - 限速最多每 refresh_s 秒查询一次，限速未知时每次更新都会尝试（同一时刻只有一个查询）。
    - 查询失败或附近没有限速标签时保留上一次的限速值。
    """

    def __init__(
        self,
        position_source: PositionSource,
        limit_client,
        dispatcher: AlertDispatcher,
        refresh_s: float = 30.0,
        toasts: Optional[ToastChannel] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._source = position_source
        self._limit_client = limit_client
        self._dispatcher = dispatcher
        self.refresh_s = refresh_s
        self._toasts = toasts
        self._clock = clock

        self.current_speed_mph: Optional[float] = None
        self.speed_limit = SpeedLimit()
        self.last_sample: Optional[SpeedSample] = None
        self._last_lookup_at: Optional[float] = None
        self._lookup_task: Optional[asyncio.Task] = None
        self._running = False

    def start(self) -> None:
        self._running = True
        self._source.subscribe(self.handle_position, self.handle_error)

    def stop(self) -> None:
        self._running = False
        self._source.unsubscribe()
        if self._lookup_task is not None:
            self._lookup_task.cancel()
            self._lookup_task = None

    @property
    def is_overspeed(self) -> bool:
        return (
            self.current_speed_mph is not None
            and self.speed_limit.value_mph is not None
            and self.current_speed_mph > self.speed_limit.value_mph
        )

    def handle_position(self, update: PositionUpdate) -> None:
        """处理一次定位读数（在事件循环线程上调用）。"""
        if not self._running:
            return

        speed = self._speed_from(update)
        if speed is not None:
            self.current_speed_mph = speed
        self.last_sample = SpeedSample(lat=update.lat, lon=update.lon, timestamp_ms=update.timestamp_ms)

        self._maybe_refresh_limit(update.lat, update.lon)
        self._check_overspeed()

    def handle_error(self, error: Exception) -> None:
        logger.warning("定位失败: %s", error)
        if isinstance(error, PermissionError) and self._toasts is not None:
            self._toasts.add("warning", "Location access denied - speed monitoring unavailable")

    def _speed_from(self, update: PositionUpdate) -> Optional[float]:
        if update.speed_mps is not None and not math.isnan(update.speed_mps):
            return max(0.0, round(mps_to_mph(update.speed_mps), 1))

        prev = self.last_sample
        if prev is None:
            return None
        dt = (update.timestamp_ms - prev.timestamp_ms) / 1000.0
        if dt <= 0:
            return None
        distance = haversine_distance_m(prev.lat, prev.lon, update.lat, update.lon)
        return max(0.0, round(mps_to_mph(distance / dt), 1))

    def _maybe_refresh_limit(self, lat: float, lon: float) -> None:
        now = self._clock()
        due = (
            self._last_lookup_at is None
            or now - self._last_lookup_at > self.refresh_s
            or not self.speed_limit.is_known
        )
        if not due or self._lookup_task is not None:
            return
        self._last_lookup_at = now
        self._lookup_task = asyncio.get_running_loop().create_task(self._refresh_limit(lat, lon))

    async def _refresh_limit(self, lat: float, lon: float) -> None:
        try:
            value = await asyncio.to_thread(self._limit_client.lookup, lat, lon)
        except Exception as e:
            logger.warning("限速查询失败，保留上次限速: %s", e)
            return
        finally:
            self._lookup_task = None

        if value is None or not self._running:
            return
        self.speed_limit = SpeedLimit(value_mph=float(round(value)))
        logger.info("当前道路限速 %s mph", self.speed_limit.value_mph)
        self._check_overspeed()

    def _check_overspeed(self) -> None:
        if not self.is_overspeed:
            return
        self._dispatcher.send(overspeed_alert(self.current_speed_mph, self.speed_limit.value_mph))

    def snapshot(self) -> dict:
        return {
            "speed_mph": self.current_speed_mph,
            "limit_mph": self.speed_limit.value_mph,
            "overspeed": self.is_overspeed,
        }
