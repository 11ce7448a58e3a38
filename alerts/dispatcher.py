"""告警分发模块：置信度阈值判断 + 冷却时间 + 多通道扇出"""

import logging
import time
from typing import Callable, List, Optional, Sequence

from alerts.channels import AlertChannel
from models.data_models import Alert, DetectionResult

logger = logging.getLogger(__name__)

IMPAIRMENT_TAG = "impairment-alert"
OVERSPEED_TAG = "overspeed-alert"


def detection_alert(result: DetectionResult) -> Alert:
    """根据检测结果生成告警消息。"""
    label = result.state.upper()
    return Alert(
        title="⚠️ Impairment Detected",
        body=f"{label}: {', '.join(result.indicators)}",
        toast=f"⚠️ {label} detected!",
        speech=f"Warning. {result.state} detected. Please pull over and do not drive.",
        tag=IMPAIRMENT_TAG,
        level="danger",
        state=result.state,
    )


def overspeed_alert(speed_mph: float, limit_mph: float) -> Alert:
    return Alert(
        title="⚠️ Over Speed Limit",
        body=f"Speed {round(speed_mph)}mph > Limit {round(limit_mph)}mph. Slow down.",
        toast="⚠️ Over speed limit - slow down",
        speech="Slow down. You are over the speed limit.",
        tag=OVERSPEED_TAG,
        level="danger",
    )


class AlertDispatcher:
    """
    把告警分发到所有通道。

    冷却时间从上一次打断性告警（提示音/语音）发出时开始计算，与检测周期无关。
    throttle_all 为 True 时所有通道都受冷却限制（超速告警使用）。
    任一通道出错只记录日志，不影响其它通道。
    """

    def __init__(
        self,
        channels: Sequence[AlertChannel],
        confidence_threshold: float = 30,
        cooldown_s: float = 60.0,
        throttle_all: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.channels = list(channels)
        self.confidence_threshold = confidence_threshold
        self.cooldown_s = cooldown_s
        self.throttle_all = throttle_all
        self._clock = clock
        self._last_alert_at: Optional[float] = None

    def should_alert(self, result: DetectionResult) -> bool:
        return result.is_impaired and result.confidence >= self.confidence_threshold

    def dispatch(self, result: DetectionResult) -> List[str]:
        """
        处理一次检测结果。

        Args:
            result: 检测结果

        Returns:
            实际送达的通道名列表；未达到阈值时为空列表
        """
        if not self.should_alert(result):
            self.reset()
            return []
        return self.send(detection_alert(result))

    def send(self, alert: Alert) -> List[str]:
        """扇出一条告警，返回成功送达的通道名。"""
        now = self._clock()
        cooled = self._last_alert_at is None or now - self._last_alert_at > self.cooldown_s
        if cooled:
            self._last_alert_at = now

        delivered: List[str] = []
        for channel in self.channels:
            throttled = self.throttle_all or channel.interruptive
            if throttled and not cooled:
                continue
            try:
                channel.notify(alert)
            except Exception:
                logger.exception("告警通道 %s 发送失败", channel.name)
                continue
            delivered.append(channel.name)
        return delivered

    def reset(self) -> None:
        for channel in self.channels:
            try:
                channel.reset()
            except Exception:
                logger.exception("告警通道 %s 重置失败", channel.name)
