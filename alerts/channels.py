"""告警通道：画面叠加、系统通知、Toast 消息、提示音、语音播报"""

import datetime
import logging
import queue
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

import numpy as np

from models.data_models import Alert, STATE_DISTRACTED, STATE_DRUNK, STATE_SLEEPY

logger = logging.getLogger(__name__)


class AlertChannel(ABC):
    """告警通道接口。interruptive 为 True 的通道受全局冷却时间限制。"""

    name = "channel"
    interruptive = False

    @abstractmethod
    def notify(self, alert: Alert) -> None:
        ...

    def reset(self) -> None:
        """当前结果不再需要告警时调用，默认无操作。"""


class OverlayChannel(AlertChannel):
    """画面边框颜色，按状态区分：醉驾红、瞌睡橙、分心黄、正常无。"""

    name = "overlay"

    # BGR
    STATE_COLORS = {
        STATE_DRUNK: (0, 0, 255),
        STATE_SLEEPY: (0, 165, 255),
        STATE_DISTRACTED: (0, 255, 255),
    }

    def __init__(self):
        self.state: Optional[str] = None

    def notify(self, alert: Alert) -> None:
        self.show(alert.state)

    def show(self, state: Optional[str]) -> None:
        if state in self.STATE_COLORS:
            self.state = state

    def reset(self) -> None:
        self.state = None

    @property
    def color(self) -> Optional[Tuple[int, int, int]]:
        return self.STATE_COLORS.get(self.state)


class NotificationChannel(AlertChannel):
    """
    系统通知。仅在用户已授权时显示；相同 tag 的通知互相替换而不是堆叠。
    前端轮询 pending() 获取并用浏览器 Notification API 展示。
    """

    name = "notification"

    def __init__(self, permission: str = "default"):
        self.permission = permission
        self._seq = 0
        self._by_tag: Dict[str, dict] = {}
        self._lock = threading.Lock()

    def set_permission(self, permission: str) -> None:
        self.permission = permission

    def notify(self, alert: Alert) -> None:
        if self.permission != "granted":
            logger.debug("通知权限为 %s，跳过系统通知", self.permission)
            return
        with self._lock:
            self._seq += 1
            self._by_tag[alert.tag] = {
                "id": self._seq,
                "title": alert.title,
                "body": alert.body,
                "tag": alert.tag,
            }

    def pending(self, since: int = 0) -> List[dict]:
        """返回 id 大于 since 的通知（每个 tag 只保留最新一条）。"""
        with self._lock:
            items = [n for n in self._by_tag.values() if n["id"] > since]
        return sorted(items, key=lambda n: n["id"])


class ToastChannel(AlertChannel):
    """短暂提示消息，保存在有上限的内存列表中供前端轮询。"""

    name = "toast"

    MAX_ENTRIES = 200

    def __init__(self):
        self._entries: List[dict] = []
        self._seq = 0
        self._lock = threading.Lock()

    def notify(self, alert: Alert) -> None:
        self.add(alert.level, alert.toast)

    def add(self, level: str, message: str) -> None:
        """添加一条消息。level: info / success / warning / danger"""
        with self._lock:
            self._seq += 1
            self._entries.append({
                "id": self._seq,
                "time": datetime.datetime.now().strftime("%H:%M:%S"),
                "level": level,
                "message": message,
            })
            if len(self._entries) > self.MAX_ENTRIES:
                self._entries = self._entries[-self.MAX_ENTRIES:]

    def since(self, last_id: int = 0) -> Tuple[List[dict], int]:
        with self._lock:
            return [e for e in self._entries if e["id"] > last_id], self._seq


def _load_sounddevice():
    """延迟加载 sounddevice（缺少 PortAudio 时导入会失败）"""
    try:
        import sounddevice as sd
        return sd
    except (ImportError, OSError) as e:
        raise ImportError("sounddevice 不可用，请安装 sounddevice 和 PortAudio") from e


def build_beep(sample_rate: int = 44100) -> np.ndarray:
    """两声短促方波提示音：880Hz 然后 660Hz。"""
    def tone(freq, duration):
        t = np.arange(int(sample_rate * duration)) / sample_rate
        wave = np.sign(np.sin(2 * np.pi * freq * t))
        envelope = np.exp(-t * 12.0)
        return 0.4 * wave * envelope

    gap = np.zeros(int(sample_rate * 0.05))
    return np.concatenate([tone(880, 0.25), gap, tone(660, 0.3)]).astype(np.float32)


class AudioChannel(AlertChannel):
    """本机扬声器提示音。"""

    name = "audio"
    interruptive = True

    def __init__(self, sample_rate: int = 44100):
        self.sample_rate = sample_rate
        self._beep = build_beep(sample_rate)

    def notify(self, alert: Alert) -> None:
        sd = _load_sounddevice()
        sd.play(self._beep, self.sample_rate)


def _load_pyttsx3():
    """延迟加载 pyttsx3"""
    try:
        import pyttsx3
        return pyttsx3
    except ImportError as e:
        raise ImportError("pyttsx3 未安装，请运行 pip install pyttsx3 安装") from e


class SpeechChannel(AlertChannel):
    """语音播报。pyttsx3 的 runAndWait 会阻塞，放在独立线程中串行执行。"""

    name = "speech"
    interruptive = True

    def __init__(self, rate: int = 180, volume: float = 1.0):
        self.rate = rate
        self.volume = volume
        self._queue: "queue.Queue[str]" = queue.Queue()
        self._thread = None

    def notify(self, alert: Alert) -> None:
        _load_pyttsx3()
        # 新告警覆盖尚未播报的旧告警
        self._drain()
        self._queue.put(alert.speech)
        if self._thread is None or not self._thread.is_alive():
            self._thread = threading.Thread(target=self._worker, daemon=True)
            self._thread.start()

    def _drain(self):
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break

    def _worker(self):
        try:
            pyttsx3 = _load_pyttsx3()
            engine = pyttsx3.init()
            engine.setProperty("rate", self.rate)
            engine.setProperty("volume", self.volume)
        except Exception:
            logger.exception("语音引擎初始化失败，丢弃待播报内容")
            self._drain()
            return
        while True:
            text = self._queue.get()
            try:
                logger.info("语音播报: %s", text)
                engine.say(text)
                engine.runAndWait()
            except RuntimeError as e:
                logger.warning("语音播报失败: %s", e)
