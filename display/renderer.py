"""界面渲染模块 - 在视频帧上绘制告警边框、状态信息和车速面板。"""

from typing import Optional, Tuple

import cv2
import numpy as np

from models.data_models import (
    DetectionResult,
    STATE_DISTRACTED,
    STATE_DRUNK,
    STATE_NORMAL,
    STATE_SLEEPY,
)


def format_speed(v: Optional[float]) -> str:
    """车速/限速取整显示，未知时显示 --。"""
    return "--" if v is None else str(int(round(v)))


def display_state(result: Optional[DetectionResult], threshold: float = 30) -> Optional[str]:
    """
    界面上展示的状态：低于置信度阈值的异常按正常显示。

    Returns:
        状态键；没有结果时返回 None
    """
    if result is None:
        return None
    if result.confidence >= threshold:
        if result.is_drunk:
            return STATE_DRUNK
        if result.is_sleepy:
            return STATE_SLEEPY
        if result.is_distracted:
            return STATE_DISTRACTED
    return STATE_NORMAL


class DisplayRenderer:
    """在视频帧上绘制检测结果和车速信息。"""

    # 状态文字映射
    _STATUS_TEXT = {
        STATE_DRUNK: "疑似酒驾",
        STATE_SLEEPY: "疲劳瞌睡",
        STATE_DISTRACTED: "注意力分散",
        STATE_NORMAL: "正常",
    }

    _STATUS_TEXT_EN = {
        STATE_DRUNK: "DRUNK DETECTED",
        STATE_SLEEPY: "SLEEPY DETECTED",
        STATE_DISTRACTED: "DISTRACTED DETECTED",
        STATE_NORMAL: "NORMAL",
    }

    # BGR
    _STATUS_COLORS = {
        STATE_DRUNK: (0, 0, 220),
        STATE_SLEEPY: (0, 140, 255),
        STATE_DISTRACTED: (0, 200, 220),
        STATE_NORMAL: (0, 170, 0),
    }

    BORDER_THICKNESS = 12

    def __init__(self, font_path: str = "SimHei", confidence_threshold: float = 30):
        """初始化中文字体，字体不存在时回退到 OpenCV 默认英文字体。"""
        self.confidence_threshold = confidence_threshold
        self._pil_font = None
        self._use_pil = False

        try:
            font = self._try_load_font(font_path)
            if font is not None:
                self._pil_font = font
                self._use_pil = True
        except Exception:
            self._use_pil = False

    @staticmethod
    def _try_load_font(font_path: str):
        """尝试加载字体文件，返回 PIL ImageFont 或 None。"""
        from PIL import ImageFont

        try:
            return ImageFont.truetype(font_path, 22)
        except (OSError, IOError):
            pass

        common_paths = [
            "/usr/share/fonts/truetype/simhei/SimHei.ttf",
            "/usr/share/fonts/SimHei.ttf",
            "C:\\Windows\\Fonts\\simhei.ttf",
            "/System/Library/Fonts/STHeiti Medium.ttc",
        ]
        for path in common_paths:
            try:
                return ImageFont.truetype(path, 22)
            except (OSError, IOError):
                continue

        return None

    def render(
        self,
        frame: np.ndarray,
        result: Optional[DetectionResult],
        overlay_color: Optional[Tuple[int, int, int]] = None,
        speed_mph: Optional[float] = None,
        limit_mph: Optional[float] = None,
    ) -> np.ndarray:
        """渲染检测结果到视频帧，返回渲染后的帧图像（不修改原帧）。"""
        output = frame.copy()

        if overlay_color is not None:
            self._draw_border(output, overlay_color)

        state = display_state(result, self.confidence_threshold)
        if state is not None:
            self._draw_status(output, state, result)

        if speed_mph is not None or limit_mph is not None:
            self._draw_speed_hud(output, speed_mph, limit_mph)

        return output

    def _draw_border(self, frame: np.ndarray, color: Tuple[int, int, int]) -> None:
        """沿画面四周绘制告警色边框。"""
        h, w = frame.shape[:2]
        t = self.BORDER_THICKNESS
        cv2.rectangle(frame, (0, 0), (w - 1, h - 1), color, t)

    def _draw_status(self, frame: np.ndarray, state: str, result: DetectionResult) -> None:
        """在左上角绘制状态、置信度和触发原因。"""
        color = self._STATUS_COLORS[state]
        conf_text = f"Confidence: {int(round(result.confidence))}%"
        indicators = ", ".join(result.indicators)

        if self._use_pil:
            lines = [f"状态: {self._STATUS_TEXT[state]}", conf_text]
            if indicators:
                lines.append(indicators)
            self._draw_pil_lines(frame, lines, x=20, y_start=20, color=color)
        else:
            lines = [self._STATUS_TEXT_EN[state], conf_text]
            if indicators:
                lines.append(indicators)
            y = 40
            for text in lines:
                cv2.putText(
                    frame, text, (20, y),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.7, color, 2,
                )
                y += 30

    def _draw_speed_hud(
        self,
        frame: np.ndarray,
        speed_mph: Optional[float],
        limit_mph: Optional[float],
    ) -> None:
        """右下角车速面板，超速时为红色。"""
        h, w = frame.shape[:2]
        over = speed_mph is not None and limit_mph is not None and speed_mph > limit_mph
        color = (38, 38, 220) if over else (74, 163, 22)

        speed_text = f"{format_speed(speed_mph)} mph"
        limit_text = f"LIMIT {format_speed(limit_mph)}"

        x, y = w - 190, h - 80
        cv2.rectangle(frame, (x - 10, y - 35), (w - 20, h - 20), color, 3)
        cv2.putText(frame, speed_text, (x, y), cv2.FONT_HERSHEY_SIMPLEX, 1.0, color, 2)
        cv2.putText(frame, limit_text, (x, y + 35), cv2.FONT_HERSHEY_SIMPLEX, 0.7, color, 2)

    def _draw_pil_lines(
        self,
        frame: np.ndarray,
        lines: list,
        x: int,
        y_start: int,
        color: tuple,
    ) -> None:
        """使用 PIL 在帧上绘制多行文字（BGR color -> RGB fill）。"""
        from PIL import Image, ImageDraw

        img_pil = Image.fromarray(cv2.cvtColor(frame, cv2.COLOR_BGR2RGB))
        draw = ImageDraw.Draw(img_pil)
        fill = (color[2], color[1], color[0])
        y = y_start
        for line in lines:
            draw.text((x, y), line, font=self._pil_font, fill=fill)
            y += 30
        result = cv2.cvtColor(np.array(img_pil), cv2.COLOR_RGB2BGR)
        frame[:] = result
