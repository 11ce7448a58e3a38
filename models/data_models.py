"""核心数据模型定义"""

from dataclasses import dataclass, field
from typing import Optional, Tuple

# 驾驶员状态（按优先级排列）
STATE_DRUNK = "drunk"
STATE_SLEEPY = "sleepy"
STATE_DISTRACTED = "distracted"
STATE_NORMAL = "normal"

IMPAIRMENT_STATES = (STATE_DRUNK, STATE_SLEEPY, STATE_DISTRACTED, STATE_NORMAL)


@dataclass(frozen=True)
class RawVisualObservation:
    """视觉模型返回的 JSON 归一化结果，所有字段缺失时默认为 False"""
    eyes_red: bool = False
    eyes_glassy: bool = False
    eyes_half_closed: bool = False
    eyes_closed: bool = False
    face_red: bool = False
    looking_away: bool = False
    confidence: Optional[float] = None


@dataclass(frozen=True)
class DetectionResult:
    """单次分析的驾驶员状态判断结果"""
    is_drunk: bool
    is_sleepy: bool
    is_distracted: bool
    confidence: float
    indicators: Tuple[str, ...]
    state: str

    @property
    def is_impaired(self) -> bool:
        return self.is_drunk or self.is_sleepy or self.is_distracted

    def to_dict(self) -> dict:
        """转换为前端使用的 JSON 结构（camelCase 字段名）。"""
        return {
            "isDrunk": self.is_drunk,
            "isSleepy": self.is_sleepy,
            "isDistracted": self.is_distracted,
            "confidence": self.confidence,
            "indicators": list(self.indicators),
            "state": self.state,
        }


@dataclass(frozen=True)
class PositionUpdate:
    """定位源推送的一次原始位置读数"""
    lat: float
    lon: float
    timestamp_ms: int
    speed_mps: Optional[float] = None


@dataclass(frozen=True)
class SpeedSample:
    """上一次位置采样，用于推算速度"""
    lat: float
    lon: float
    timestamp_ms: int


@dataclass
class SpeedLimit:
    """道路限速，value_mph 为 None 表示未知"""
    value_mph: Optional[float] = None

    @property
    def is_known(self) -> bool:
        return self.value_mph is not None


@dataclass(frozen=True)
class Alert:
    """分发给各提醒通道的一条告警消息"""
    title: str
    body: str
    toast: str
    speech: str
    tag: str
    level: str = "danger"
    state: Optional[str] = None


@dataclass(frozen=True)
class HistoryEntry:
    """最近检测记录"""
    timestamp: float
    source: str
    result: DetectionResult

    def to_dict(self) -> dict:
        data = self.result.to_dict()
        data["timestamp"] = self.timestamp
        data["source"] = self.source
        return data


@dataclass
class MediaUpload:
    """用户上传的图片或视频"""
    filename: str
    content_type: str
    data: bytes = field(repr=False)

    @property
    def is_video(self) -> bool:
        return self.content_type.startswith("video/")

    @property
    def is_image(self) -> bool:
        return self.content_type.startswith("image/")

    @property
    def kind(self) -> str:
        return "video" if self.is_video else "image"
