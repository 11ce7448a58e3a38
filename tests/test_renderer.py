"""DisplayRenderer 单元测试"""

import numpy as np
import pytest

from display.renderer import DisplayRenderer, display_state, format_speed
from models.data_models import (
    DetectionResult,
    STATE_DISTRACTED,
    STATE_DRUNK,
    STATE_NORMAL,
    STATE_SLEEPY,
)


# --------------- helpers ---------------

def _make_frame(w=640, h=480):
    """创建黑色测试帧。"""
    return np.zeros((h, w, 3), dtype=np.uint8)


def _result(state=STATE_NORMAL, confidence=80, indicators=()):
    return DetectionResult(
        is_drunk=state == STATE_DRUNK,
        is_sleepy=state == STATE_SLEEPY,
        is_distracted=state == STATE_DISTRACTED,
        confidence=confidence,
        indicators=tuple(indicators),
        state=state,
    )


@pytest.fixture
def renderer():
    # 使用不存在的字体，强制走 OpenCV 英文字体路径
    r = DisplayRenderer(font_path="__missing_font__.ttf")
    r._use_pil = False
    return r


# --------------- format_speed tests ---------------

class TestFormatSpeed:
    def test_unknown(self):
        assert format_speed(None) == "--"

    def test_rounded(self):
        assert format_speed(44.7) == "45"

    def test_zero(self):
        assert format_speed(0.0) == "0"


# --------------- display_state tests ---------------

class TestDisplayState:
    def test_no_result(self):
        assert display_state(None) is None

    def test_above_threshold(self):
        assert display_state(_result(STATE_SLEEPY, 30)) == STATE_SLEEPY

    def test_below_threshold_shows_normal(self):
        assert display_state(_result(STATE_DRUNK, 29)) == STATE_NORMAL

    def test_precedence(self):
        result = DetectionResult(
            is_drunk=False, is_sleepy=True, is_distracted=True,
            confidence=90, indicators=(), state=STATE_SLEEPY,
        )
        assert display_state(result) == STATE_SLEEPY


# --------------- render tests ---------------

class TestRender:
    def test_does_not_modify_input(self, renderer):
        frame = _make_frame()
        renderer.render(frame, _result(STATE_DRUNK), overlay_color=(0, 0, 255))
        assert not frame.any()

    def test_same_shape(self, renderer):
        out = renderer.render(_make_frame(), _result(STATE_SLEEPY, indicators=["eyes closed"]))
        assert out.shape == (480, 640, 3)
        assert out.dtype == np.uint8

    def test_border_color(self, renderer):
        out = renderer.render(_make_frame(), None, overlay_color=(0, 0, 255))
        assert tuple(out[0, 320]) == (0, 0, 255)
        assert tuple(out[240, 0]) == (0, 0, 255)

    def test_no_result_no_overlay_blank(self, renderer):
        out = renderer.render(_make_frame(), None)
        assert not out.any()

    def test_status_drawn(self, renderer):
        out = renderer.render(_make_frame(), _result(STATE_NORMAL))
        assert out[:120, :400].any()

    def test_speed_hud_drawn(self, renderer):
        out = renderer.render(_make_frame(), None, speed_mph=50, limit_mph=40)
        assert out[380:, 440:].any()
        assert not out[:200, :200].any()

    def test_speed_hud_over_limit_red(self, renderer):
        out = renderer.render(_make_frame(), None, speed_mph=50, limit_mph=40)
        region = out[380:, 440:].reshape(-1, 3)
        assert (region == (38, 38, 220)).all(axis=1).any()

    def test_speed_hud_under_limit_green(self, renderer):
        out = renderer.render(_make_frame(), None, speed_mph=30, limit_mph=40)
        region = out[380:, 440:].reshape(-1, 3)
        assert (region == (74, 163, 22)).all(axis=1).any()
        assert not (region == (38, 38, 220)).all(axis=1).any()
