"""帧源模块：实时摄像头、上传视频、上传图片，以及帧编码"""

import base64
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from typing import Optional, Tuple

import cv2
import numpy as np

from models.data_models import MediaUpload
from models.errors import FrameCaptureError

logger = logging.getLogger(__name__)


def fit_size(width: int, height: int, max_width: int = 640, max_height: int = 480) -> Tuple[int, int]:
    """等比缩放到不超过 max_width x max_height，不放大。"""
    if width <= 0 or height <= 0:
        return width, height
    scale = min(1.0, max_width / width, max_height / height)
    return max(1, int(round(width * scale))), max(1, int(round(height * scale)))


def encode_frame(
    frame: np.ndarray,
    max_width: int = 640,
    max_height: int = 480,
    quality: int = 90,
) -> str:
    """
    缩放并编码为 JPEG data URL。

    Args:
        frame: BGR 格式的 OpenCV 图像帧
        max_width: 最大宽度
        max_height: 最大高度
        quality: JPEG 质量 (0-100)

    Returns:
        "data:image/jpeg;base64,..." 字符串
    """
    if frame is None or frame.size == 0:
        raise FrameCaptureError("空帧无法编码")

    h, w = frame.shape[:2]
    new_w, new_h = fit_size(w, h, max_width, max_height)
    if (new_w, new_h) != (w, h):
        frame = cv2.resize(frame, (new_w, new_h), interpolation=cv2.INTER_AREA)

    ok, jpeg = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, int(quality)])
    if not ok:
        raise FrameCaptureError("JPEG 编码失败")
    return "data:image/jpeg;base64," + base64.b64encode(jpeg.tobytes()).decode("ascii")


class FrameSource(ABC):
    """帧源接口：acquire 获取设备/文件，read 读取当前帧，release 释放资源。"""

    @abstractmethod
    def acquire(self) -> None:
        """获取资源；摄像头不可用时抛出 PermissionError。"""

    @abstractmethod
    def read(self) -> Optional[np.ndarray]:
        """读取当前帧，失败返回 None。"""

    @abstractmethod
    def release(self) -> None:
        """释放资源，可重复调用。"""

    @property
    @abstractmethod
    def is_active(self) -> bool:
        ...


class CameraFrameSource(FrameSource):
    """基于 cv2.VideoCapture 的实时摄像头。"""

    def __init__(self, camera_index: int = 0, width: int = 640, height: int = 480):
        self.camera_index = camera_index
        self.width = width
        self.height = height
        self._cap = None
        self._lock = threading.Lock()

    def acquire(self) -> None:
        with self._lock:
            if self._cap is not None and self._cap.isOpened():
                return
            cap = cv2.VideoCapture(self.camera_index)
            if not cap.isOpened():
                cap.release()
                raise PermissionError(f"无法打开摄像头 {self.camera_index}，请检查摄像头权限")
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
            self._cap = cap
        logger.info("摄像头 %s 已开启", self.camera_index)

    def read(self) -> Optional[np.ndarray]:
        with self._lock:
            if self._cap is None:
                return None
            ret, frame = self._cap.read()
        return frame if ret else None

    def release(self) -> None:
        with self._lock:
            if self._cap is not None:
                self._cap.release()
                self._cap = None
                logger.info("摄像头 %s 已释放", self.camera_index)

    @property
    def is_active(self) -> bool:
        return self._cap is not None


class VideoFileFrameSource(FrameSource):
    """上传视频：写入临时文件，定位到固定时间点后取一帧。"""

    def __init__(self, upload: MediaUpload, seek_s: float = 2.0):
        self.upload = upload
        self.seek_s = seek_s
        self._path = None
        self._cap = None

    def acquire(self) -> None:
        suffix = os.path.splitext(self.upload.filename)[1] or ".mp4"
        fd, self._path = tempfile.mkstemp(suffix=suffix)
        with os.fdopen(fd, "wb") as f:
            f.write(self.upload.data)

        self._cap = cv2.VideoCapture(self._path)
        if not self._cap.isOpened():
            self.release()
            raise FrameCaptureError(f"无法解码视频: {self.upload.filename}")

    def read(self) -> Optional[np.ndarray]:
        if self._cap is None:
            return None
        self._cap.set(cv2.CAP_PROP_POS_MSEC, self.seek_s * 1000.0)
        ret, frame = self._cap.read()
        if not ret:
            # 视频短于定位时间时取第一帧
            self._cap.set(cv2.CAP_PROP_POS_FRAMES, 0)
            ret, frame = self._cap.read()
        return frame if ret else None

    def release(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None
        if self._path is not None:
            try:
                os.remove(self._path)
            except OSError as e:
                logger.warning("删除临时视频文件失败 %s: %s", self._path, e)
            self._path = None

    @property
    def is_active(self) -> bool:
        return self._cap is not None


class ImageFrameSource(FrameSource):
    """上传图片：解码后作为唯一一帧返回。"""

    def __init__(self, upload: MediaUpload):
        self.upload = upload
        self._frame = None

    def acquire(self) -> None:
        buf = np.frombuffer(self.upload.data, dtype=np.uint8)
        frame = cv2.imdecode(buf, cv2.IMREAD_COLOR) if buf.size else None
        if frame is None:
            raise FrameCaptureError(f"无法解码图片: {self.upload.filename}")
        self._frame = frame

    def read(self) -> Optional[np.ndarray]:
        return None if self._frame is None else self._frame.copy()

    def release(self) -> None:
        self._frame = None

    @property
    def is_active(self) -> bool:
        return self._frame is not None


def source_for_upload(upload: MediaUpload, seek_s: float = 2.0) -> FrameSource:
    if upload.is_video:
        return VideoFileFrameSource(upload, seek_s=seek_s)
    return ImageFrameSource(upload)
