"""Tests for config loading and the main.py command line entry."""

import asyncio
import json
import logging

import pytest

import main
from config.settings import DEFAULTS, api_key_from_env, load_config
from models.data_models import DetectionResult, STATE_SLEEPY
from models.errors import ValidationError


class TestLoadConfig:
    """Test config.settings.load_config."""

    def test_no_config_path_returns_defaults(self):
        assert load_config(None) == DEFAULTS

    def test_returns_copy(self):
        config = load_config(None)
        config["analysis_interval_s"] = 1
        assert DEFAULTS["analysis_interval_s"] == 10.0

    def test_valid_config_file(self, tmp_path):
        cfg = {
            "analysis_interval_s": 15,
            "confidence_threshold": 50,
            "alert_cooldown_s": 120,
            "vision_model": "gpt-4o-mini",
        }
        cfg_file = tmp_path / "config.json"
        cfg_file.write_text(json.dumps(cfg), encoding="utf-8")

        config = load_config(str(cfg_file))
        assert config["analysis_interval_s"] == 15
        assert config["confidence_threshold"] == 50
        assert config["alert_cooldown_s"] == 120
        assert config["vision_model"] == "gpt-4o-mini"

    def test_missing_config_file_uses_defaults(self, caplog):
        with caplog.at_level(logging.WARNING, logger="config.settings"):
            config = load_config("/nonexistent/path.json")
        assert config == DEFAULTS
        assert "配置文件不存在" in caplog.text

    def test_invalid_json_uses_defaults(self, tmp_path, caplog):
        cfg_file = tmp_path / "bad.json"
        cfg_file.write_text("not valid json {{{", encoding="utf-8")

        with caplog.at_level(logging.WARNING, logger="config.settings"):
            config = load_config(str(cfg_file))
        assert config == DEFAULTS
        assert "配置文件格式错误" in caplog.text

    def test_non_object_uses_defaults(self, tmp_path):
        cfg_file = tmp_path / "list.json"
        cfg_file.write_text("[1, 2, 3]", encoding="utf-8")
        assert load_config(str(cfg_file)) == DEFAULTS

    def test_null_values_in_config_use_defaults(self, tmp_path):
        cfg = {"analysis_interval_s": None, "confidence_threshold": 40}
        cfg_file = tmp_path / "nulls.json"
        cfg_file.write_text(json.dumps(cfg), encoding="utf-8")

        config = load_config(str(cfg_file))
        assert config["analysis_interval_s"] == DEFAULTS["analysis_interval_s"]
        assert config["confidence_threshold"] == 40

    def test_extra_fields_ignored(self, tmp_path):
        cfg = {"confidence_threshold": 35, "unknown_field": 999}
        cfg_file = tmp_path / "extra.json"
        cfg_file.write_text(json.dumps(cfg), encoding="utf-8")

        config = load_config(str(cfg_file))
        assert config["confidence_threshold"] == 35
        assert "unknown_field" not in config

    def test_api_key_from_env(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "  sk-abc  ")
        assert api_key_from_env() == "sk-abc"


# --------------- command line ---------------

class FakeRunner:
    """在当前线程直接执行，代替 EventLoopThread。"""

    def call(self, func, *args):
        return func(*args)

    def run(self, coro):
        return asyncio.run(coro)


class FakeSystem:
    def __init__(self, result=None, reject=False):
        self.result = result
        self.reject = reject
        self.uploads = []

    def load_upload(self, upload):
        if self.reject:
            raise ValidationError("Unsupported file type. Please upload a video or image.")
        self.uploads.append(upload)

    async def analyze_upload(self):
        return self.result


def _sleepy():
    return DetectionResult(
        is_drunk=False, is_sleepy=True, is_distracted=False,
        confidence=85, indicators=("eyes closed",), state=STATE_SLEEPY,
    )


class TestAnalyzeFile:
    def test_prints_result(self, tmp_path, capsys):
        image = tmp_path / "face.jpg"
        image.write_bytes(b"\xff\xd8fake")
        system = FakeSystem(result=_sleepy())

        assert main.analyze_file(system, FakeRunner(), str(image)) == 0
        out = json.loads(capsys.readouterr().out)
        assert out["state"] == "sleepy"
        assert out["isSleepy"] is True
        assert system.uploads[0].content_type == "image/jpeg"
        assert system.uploads[0].filename == "face.jpg"

    def test_missing_file(self, capsys):
        assert main.analyze_file(FakeSystem(), FakeRunner(), "/nonexistent/face.jpg") == 1
        assert "文件不存在" in capsys.readouterr().out

    def test_rejected_upload(self, tmp_path, capsys):
        doc = tmp_path / "notes.txt"
        doc.write_text("hello", encoding="utf-8")
        assert main.analyze_file(FakeSystem(reject=True), FakeRunner(), str(doc)) == 1
        assert "Unsupported file type" in capsys.readouterr().out

    def test_analysis_failure(self, tmp_path, capsys):
        image = tmp_path / "face.png"
        image.write_bytes(b"png")
        assert main.analyze_file(FakeSystem(result=None), FakeRunner(), str(image)) == 1


class TestArguments:
    def test_image_and_video_exclusive(self):
        with pytest.raises(SystemExit):
            main.main(["--image", "a.jpg", "--video", "b.mp4"])
