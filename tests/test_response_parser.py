"""模型输出解析单元测试"""

import pytest

from models.data_models import RawVisualObservation, STATE_NORMAL
from models.errors import ParseError
from parsers.response_parser import (
    FALLBACK_INDICATOR,
    fallback_result,
    observation_from_dict,
    parse_observation,
    strip_code_fences,
)


class TestStripCodeFences:
    def test_json_fence(self):
        assert strip_code_fences('```json\n{"eyesRed": true}\n```') == '{"eyesRed": true}'

    def test_plain_fence(self):
        assert strip_code_fences('```\n{"eyesRed": true}\n```') == '{"eyesRed": true}'

    def test_no_fence_unchanged(self):
        assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'


class TestParseObservation:
    def test_fenced_json(self):
        obs = parse_observation('```json\n{"eyesRed": true, "confidence": 80}\n```')
        assert obs.eyes_red is True
        assert obs.eyes_closed is False
        assert obs.confidence == 80

    def test_prose_around_object(self):
        obs = parse_observation('Here is the analysis: {"lookingAway": true} Hope this helps.')
        assert obs.looking_away is True

    def test_all_fields(self):
        content = (
            '{"eyesRed": true, "eyesGlassy": true, "eyesHalfClosed": true,'
            ' "eyesClosed": true, "faceRed": true, "lookingAway": true, "confidence": 90}'
        )
        obs = parse_observation(content)
        assert obs == RawVisualObservation(
            eyes_red=True, eyes_glassy=True, eyes_half_closed=True,
            eyes_closed=True, face_red=True, looking_away=True, confidence=90.0,
        )

    def test_missing_fields_default_false(self):
        obs = parse_observation("{}")
        assert obs == RawVisualObservation()
        assert obs.confidence is None

    def test_no_json_raises(self):
        with pytest.raises(ParseError):
            parse_observation("I cannot analyze this image.")

    def test_invalid_json_raises(self):
        with pytest.raises(ParseError):
            parse_observation('{"eyesRed": tru}')

    def test_two_objects_raise(self):
        # 贪婪匹配从第一个 { 到最后一个 }
        with pytest.raises(ParseError):
            parse_observation('[{"a": 1}, {"b": 2}]')

    def test_non_string_raises(self):
        with pytest.raises(ParseError):
            parse_observation(None)

    def test_empty_string_raises(self):
        with pytest.raises(ParseError):
            parse_observation("")


class TestFieldCoercion:
    def test_string_flags(self):
        obs = observation_from_dict({"eyesRed": "true", "faceRed": "Yes", "eyesClosed": "no"})
        assert obs.eyes_red is True
        assert obs.face_red is True
        assert obs.eyes_closed is False

    def test_numeric_flag_is_false(self):
        obs = observation_from_dict({"eyesRed": 1})
        assert obs.eyes_red is False

    def test_numeric_string_confidence(self):
        assert observation_from_dict({"confidence": "85"}).confidence == 85.0

    def test_percent_string_confidence(self):
        assert observation_from_dict({"confidence": "85%"}).confidence == 85.0

    def test_garbage_confidence_absent(self):
        assert observation_from_dict({"confidence": "high"}).confidence is None

    def test_bool_confidence_absent(self):
        assert observation_from_dict({"confidence": True}).confidence is None

    def test_nan_confidence_absent(self):
        assert observation_from_dict({"confidence": float("nan")}).confidence is None


class TestFallbackResult:
    def test_fallback_values(self):
        result = fallback_result()
        assert result.is_impaired is False
        assert result.confidence == 0
        assert result.indicators == (FALLBACK_INDICATOR,)
        assert result.state == STATE_NORMAL
