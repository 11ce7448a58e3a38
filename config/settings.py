"""配置加载模块：默认参数 + JSON 配置文件覆盖 + 环境变量中的密钥"""

import json
import logging
import os

logger = logging.getLogger(__name__)

OPENAI_API_URL = "https://api.openai.com/v1/chat/completions"
OVERPASS_API_URL = "https://overpass-api.de/api/interpreter"

DEFAULTS = {
    # 采集与分析节奏
    "analysis_interval_s": 10.0,
    "warmup_delay_s": 3.0,
    "retry_attempts": 2,
    "retry_delay_s": 5.0,
    "jitter_min_s": 0.5,
    "jitter_max_s": 1.5,
    # 告警
    "confidence_threshold": 30,
    "alert_cooldown_s": 60.0,
    "speed_alert_cooldown_s": 60.0,
    # 限速查询
    "speed_limit_refresh_s": 30.0,
    "speed_limit_radius_m": 60,
    "overpass_url": OVERPASS_API_URL,
    # 摄像头与图像编码
    "camera_index": 0,
    "frame_width": 640,
    "frame_height": 480,
    "jpeg_quality": 90,
    "video_seek_s": 2.0,
    # 上传限制
    "max_video_bytes": 50 * 1024 * 1024,
    "max_image_bytes": 10 * 1024 * 1024,
    # 视觉模型
    "vision_api_url": OPENAI_API_URL,
    "vision_model": "gpt-4o",
    "vision_max_tokens": 200,
    "vision_temperature": 0.3,
    "request_timeout_s": 30.0,
    # 检测记录后端（为空时只保留本地记录）
    "archive_url": None,
    "history_size": 20,
}

API_KEY_ENV = "OPENAI_API_KEY"
ARCHIVE_TOKEN_ENV = "DRIVESAFE_ARCHIVE_TOKEN"


def load_config(config_path=None) -> dict:
    """从 JSON 配置文件加载参数，缺失字段使用默认值。"""
    config = dict(DEFAULTS)

    if config_path is None:
        return config

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        logger.warning("配置文件不存在 %s，使用默认参数", config_path)
        return config
    except json.JSONDecodeError:
        logger.warning("配置文件格式错误 %s，使用默认参数", config_path)
        return config

    if not isinstance(data, dict):
        logger.warning("配置文件顶层不是对象 %s，使用默认参数", config_path)
        return config

    for key in DEFAULTS:
        if key in data and data[key] is not None:
            config[key] = data[key]

    return config


def api_key_from_env() -> str:
    return os.environ.get(API_KEY_ENV, "").strip()


def archive_token_from_env() -> str:
    return os.environ.get(ARCHIVE_TOKEN_ENV, "").strip()
