"""视觉模型输出解析模块，负责从原始文本中提取视觉观察结果"""

import json
import logging
import math
import re

from models.data_models import DetectionResult, RawVisualObservation, STATE_NORMAL
from models.errors import ParseError

logger = logging.getLogger(__name__)

FALLBACK_INDICATOR = "Analysis failed - unable to determine"

# 贪婪匹配第一个 "{" 到最后一个 "}"
_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")

# JSON 字段名 -> RawVisualObservation 字段名
_FLAG_FIELDS = {
    "eyesRed": "eyes_red",
    "eyesGlassy": "eyes_glassy",
    "eyesHalfClosed": "eyes_half_closed",
    "eyesClosed": "eyes_closed",
    "faceRed": "face_red",
    "lookingAway": "looking_away",
}

_TRUE_STRINGS = ("true", "yes")


def fallback_result() -> DetectionResult:
    """解析失败时使用的固定结果：无异常标记，置信度 0。"""
    return DetectionResult(
        is_drunk=False,
        is_sleepy=False,
        is_distracted=False,
        confidence=0,
        indicators=(FALLBACK_INDICATOR,),
        state=STATE_NORMAL,
    )


def strip_code_fences(content: str) -> str:
    """去掉 ```json ... ``` 或 ``` ... ``` 包裹。"""
    text = content.strip()
    if "```json" in text:
        text = re.sub(r"```json\n?", "", text, count=1)
        text = re.sub(r"```\n?$", "", text).strip()
    elif "```" in text:
        text = re.sub(r"```\n?", "", text, count=1)
        text = re.sub(r"```\n?$", "", text).strip()
    return text


def _as_flag(value) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return False


def _as_confidence(value):
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip().rstrip("%"))
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def observation_from_dict(data: dict) -> RawVisualObservation:
    """将解码后的 JSON 对象转换为 RawVisualObservation，缺失字段取默认值。"""
    flags = {attr: _as_flag(data.get(key)) for key, attr in _FLAG_FIELDS.items()}
    return RawVisualObservation(confidence=_as_confidence(data.get("confidence")), **flags)


def parse_observation(content: str) -> RawVisualObservation:
    """
    从模型返回的文本中解析视觉观察结果。

    Args:
        content: choices[0].message.content 原始文本，可能带有代码块或前后说明文字

    Returns:
        RawVisualObservation

    Raises:
        ParseError: 找不到 JSON 对象或解码失败
    """
    if not isinstance(content, str):
        raise ParseError(f"模型输出不是文本: {type(content).__name__}")

    cleaned = strip_code_fences(content)
    match = _JSON_OBJECT_RE.search(cleaned)
    if match is None:
        logger.warning("模型输出中没有 JSON 对象: %r", content)
        raise ParseError("No JSON found in response")

    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        logger.warning("JSON 解码失败 (%s): %r", e, content)
        raise ParseError(f"Invalid JSON in response: {e}") from e

    if not isinstance(data, dict):
        raise ParseError(f"JSON 顶层不是对象: {type(data).__name__}")

    logger.debug("解析结果: %s", data)
    return observation_from_dict(data)
