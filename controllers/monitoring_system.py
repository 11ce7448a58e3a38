"""监测系统主控：协调实时监测、上传分析、车速监测和各告警通道"""

import asyncio
import functools
import logging
import threading
import time
from collections import deque
from typing import Callable, List, Optional

import cv2

from alerts.channels import (
    AudioChannel,
    NotificationChannel,
    OverlayChannel,
    SpeechChannel,
    ToastChannel,
)
from alerts.dispatcher import AlertDispatcher
from capture.frame_source import CameraFrameSource, FrameSource, encode_frame, source_for_upload
from capture.media_upload import validate_upload
from clients.archive_client import ArchiveClient
from clients.vision_client import VisionClient
from config.settings import api_key_from_env, archive_token_from_env, load_config
from controllers.capture_loop import CaptureLoop, capture_and_analyze
from controllers.retry import RetryPolicy
from controllers.speed_monitor import SpeedMonitor
from display.renderer import DisplayRenderer, display_state
from geo.position_source import PushPositionSource
from geo.speed_limit_client import SpeedLimitClient
from models.data_models import DetectionResult, HistoryEntry, MediaUpload, PositionUpdate
from models.errors import AnalysisError, TransportError, ValidationError

logger = logging.getLogger(__name__)


class MonitoringSystem:
    """
    系统主控。所有修改状态的方法都应在事件循环线程上调用。

    实时监测和上传分析互斥：开始监测时清除上传的媒体，上传媒体时先停止监测。
    """

    def __init__(
        self,
        config: Optional[dict] = None,
        vision_client: Optional[VisionClient] = None,
        camera_factory: Optional[Callable[[], FrameSource]] = None,
        position_source: Optional[PushPositionSource] = None,
        limit_client: Optional[SpeedLimitClient] = None,
        archive_client: Optional[ArchiveClient] = None,
        audio_channel=None,
        speech_channel=None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or load_config()
        cfg = self.config

        # 告警通道
        self.overlay = OverlayChannel()
        self.notifications = NotificationChannel()
        self.toasts = ToastChannel()
        self.audio = audio_channel or AudioChannel()
        self.speech = speech_channel or SpeechChannel()

        self.dispatcher = AlertDispatcher(
            [self.overlay, self.notifications, self.toasts, self.audio, self.speech],
            confidence_threshold=cfg["confidence_threshold"],
            cooldown_s=cfg["alert_cooldown_s"],
            clock=clock,
        )
        self.speed_dispatcher = AlertDispatcher(
            [self.notifications, self.toasts, self.audio, self.speech],
            cooldown_s=cfg["speed_alert_cooldown_s"],
            throttle_all=True,
            clock=clock,
        )

        self.vision = vision_client or VisionClient(
            api_key=api_key_from_env(),
            api_url=cfg["vision_api_url"],
            model=cfg["vision_model"],
            max_tokens=cfg["vision_max_tokens"],
            temperature=cfg["vision_temperature"],
            timeout=cfg["request_timeout_s"],
        )
        if archive_client is None and cfg.get("archive_url"):
            archive_client = ArchiveClient(
                cfg["archive_url"], token=archive_token_from_env(), timeout=cfg["request_timeout_s"],
            )
        self.archive = archive_client

        self._camera_factory = camera_factory or (
            lambda: CameraFrameSource(cfg["camera_index"], cfg["frame_width"], cfg["frame_height"])
        )
        self._encoder = functools.partial(
            encode_frame,
            max_width=cfg["frame_width"],
            max_height=cfg["frame_height"],
            quality=cfg["jpeg_quality"],
        )

        self.position_source = position_source or PushPositionSource()
        self.speed_monitor = SpeedMonitor(
            self.position_source,
            limit_client or SpeedLimitClient(
                url=cfg["overpass_url"], radius_m=cfg["speed_limit_radius_m"],
            ),
            self.speed_dispatcher,
            refresh_s=cfg["speed_limit_refresh_s"],
            toasts=self.toasts,
            clock=clock,
        )
        self.speed_monitor.start()

        self.renderer = DisplayRenderer(confidence_threshold=cfg["confidence_threshold"])

        self.capture_loop: Optional[CaptureLoop] = None
        self.camera_error: Optional[str] = None
        self.upload: Optional[MediaUpload] = None
        self.upload_result: Optional[DetectionResult] = None
        self._analyzing_upload = False
        self._history = deque(maxlen=cfg["history_size"])
        self._history_lock = threading.Lock()

    # ---- 实时监测 ----

    @property
    def is_monitoring(self) -> bool:
        return self.capture_loop is not None

    @property
    def is_analyzing(self) -> bool:
        if self._analyzing_upload:
            return True
        return self.capture_loop is not None and self.capture_loop.is_analyzing

    @property
    def current_result(self) -> Optional[DetectionResult]:
        if self.capture_loop is not None:
            return self.capture_loop.current_result
        return self.upload_result

    async def start_monitoring(self) -> None:
        """开始实时监测；摄像头不可用时提示用户并抛出 PermissionError。"""
        if self.capture_loop is not None:
            return
        if self.upload is not None:
            self.clear_media()

        self.camera_error = None
        cfg = self.config
        loop = CaptureLoop(
            self._camera_factory(),
            self.vision.analyze,
            dispatcher=self.dispatcher,
            interval_s=cfg["analysis_interval_s"],
            warmup_s=cfg["warmup_delay_s"],
            retry_policy=RetryPolicy(cfg["retry_attempts"], cfg["retry_delay_s"]),
            jitter_s=(cfg["jitter_min_s"], cfg["jitter_max_s"]),
            encoder=self._encoder,
            on_result=functools.partial(self._record, "live"),
        )
        self.capture_loop = loop
        try:
            await loop.start()
        except PermissionError as e:
            self.capture_loop = None
            self.camera_error = "Failed to access camera. Please grant camera permissions."
            self.toasts.add("danger", "Camera access denied")
            logger.error("摄像头错误: %s", e)
            raise

    def stop_monitoring(self) -> None:
        if self.capture_loop is None:
            return
        self.capture_loop.stop()
        self.capture_loop = None

    # ---- 上传分析 ----

    def load_upload(self, upload: MediaUpload) -> None:
        """接收上传的图片/视频；不合格时提示用户并抛出 ValidationError。"""
        self.stop_monitoring()
        self.clear_media()
        try:
            validate_upload(
                upload,
                max_video_bytes=self.config["max_video_bytes"],
                max_image_bytes=self.config["max_image_bytes"],
            )
        except ValidationError as e:
            self.toasts.add("danger", str(e))
            raise
        self.upload = upload
        self.toasts.add("success", f"{upload.kind.capitalize()} uploaded successfully!")

    def clear_media(self) -> None:
        self.upload = None
        self.upload_result = None
        self.overlay.reset()

    async def analyze_upload(self) -> Optional[DetectionResult]:
        """对上传的媒体做一次分析，失败时提示用户并返回 None。"""
        upload = self.upload
        if upload is None or self._analyzing_upload:
            return None

        self._analyzing_upload = True
        source = source_for_upload(upload, seek_s=self.config["video_seek_s"])
        try:
            await asyncio.to_thread(source.acquire)
            result = await capture_and_analyze(source, self.vision.analyze, self._encoder)
        except AnalysisError as e:
            logger.error("%s 分析失败: %s", upload.kind, e)
            self.toasts.add("danger", f"Failed to analyze {upload.kind}")
            return None
        finally:
            source.release()
            self._analyzing_upload = False

        if self.upload is not upload:
            logger.debug("媒体已被清除，丢弃分析结果")
            return None

        self.upload_result = result
        self._record("upload", result)
        if self.dispatcher.should_alert(result):
            self.overlay.show(result.state)
            self.toasts.add("danger", f"⚠️ {result.state.upper()} detected in {upload.kind}!")
        else:
            self.toasts.add("success", f"{upload.kind.capitalize()} analysis complete - no impairment detected")

        if self.archive is not None and upload.is_image:
            await self._archive_upload(upload)
        return result

    async def _archive_upload(self, upload: MediaUpload) -> None:
        try:
            record = await asyncio.to_thread(self.archive.archive, upload.data, upload.content_type)
        except TransportError as e:
            logger.warning("上传到记录后端失败: %s", e)
            return
        logger.info("记录后端分析结果: %s", record)

    # ---- 定位与通知 ----

    def push_position(self, update: PositionUpdate) -> None:
        self.position_source.push(update)

    def report_position_error(self, message: str, permission_denied: bool = False) -> None:
        error = PermissionError(message) if permission_denied else RuntimeError(message)
        self.position_source.fail(error)

    def set_notification_permission(self, permission: str) -> None:
        self.notifications.set_permission(permission)

    # ---- 状态查询 ----

    def _record(self, source: str, result: DetectionResult) -> None:
        entry = HistoryEntry(timestamp=time.time(), source=source, result=result)
        with self._history_lock:
            self._history.append(entry)

    def history(self) -> List[dict]:
        """最近的检测记录（新的在前）。配置了记录后端时优先使用后端数据。"""
        if self.archive is not None:
            try:
                return self.archive.list_detections()
            except TransportError as e:
                logger.warning("查询记录后端失败，使用本地记录: %s", e)
        # Flask 线程读取，事件循环线程写入
        with self._history_lock:
            entries = list(self._history)
        return [entry.to_dict() for entry in reversed(entries)]

    def snapshot(self) -> dict:
        result = self.current_result
        data = {
            "monitoring": self.is_monitoring,
            "analyzing": self.is_analyzing,
            "camera_error": self.camera_error,
            "media": None if self.upload is None else {
                "filename": self.upload.filename,
                "kind": self.upload.kind,
            },
            "result": None if result is None else result.to_dict(),
            "display_state": display_state(result, self.dispatcher.confidence_threshold),
            "overlay": self.overlay.state,
            "notification_permission": self.notifications.permission,
        }
        data.update(self.speed_monitor.snapshot())
        return data

    def render_preview(self) -> Optional[bytes]:
        """读取实时画面并叠加告警信息，返回 JPEG 字节；未在监测时返回 None。"""
        loop = self.capture_loop
        if loop is None:
            return None
        frame = loop.frame_source.read()
        if frame is None:
            return None
        rendered = self.renderer.render(
            frame,
            loop.current_result,
            overlay_color=self.overlay.color,
            speed_mph=self.speed_monitor.current_speed_mph,
            limit_mph=self.speed_monitor.speed_limit.value_mph,
        )
        ok, jpeg = cv2.imencode(".jpg", rendered, [cv2.IMWRITE_JPEG_QUALITY, 80])
        return jpeg.tobytes() if ok else None

    def shutdown(self) -> None:
        self.stop_monitoring()
        self.speed_monitor.stop()
