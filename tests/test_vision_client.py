"""VisionClient 单元测试（使用 mock session，不访问网络）"""

from unittest.mock import MagicMock

import pytest
import requests

from clients.vision_client import VisionClient
from models.data_models import STATE_SLEEPY
from models.errors import (
    ConfigurationError,
    EmptyResponseError,
    RefusalError,
    TransportError,
)
from parsers.response_parser import FALLBACK_INDICATOR

IMAGE = "data:image/jpeg;base64,AAAA"


# --------------- helpers ---------------

def _response(status=200, body=None, text=""):
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    if isinstance(body, Exception):
        resp.json.side_effect = body
    else:
        resp.json.return_value = body
    return resp


def _completion(content=None, refusal=None):
    message = {"role": "assistant", "content": content}
    if refusal is not None:
        message["refusal"] = refusal
    return {"choices": [{"message": message, "finish_reason": "stop"}]}


def _client(response=None, error=None, api_key="sk-test"):
    session = MagicMock()
    if error is not None:
        session.post.side_effect = error
    else:
        session.post.return_value = response
    return VisionClient(api_key=api_key, session=session), session


class TestBuildPayload:
    def test_payload_shape(self):
        client, _ = _client()
        payload = client.build_payload(IMAGE)
        assert payload["model"] == "gpt-4o"
        assert payload["response_format"] == {"type": "json_object"}
        assert payload["max_tokens"] == 200
        assert payload["temperature"] == 0.3
        system, user = payload["messages"]
        assert system["role"] == "system"
        assert user["content"][1] == {"type": "image_url", "image_url": {"url": IMAGE}}


class TestRequestContent:
    def test_sends_authorization(self):
        client, session = _client(_response(body=_completion('{"eyesClosed": true}')))
        assert client.request_content(IMAGE) == '{"eyesClosed": true}'
        _, kwargs = session.post.call_args
        assert kwargs["headers"]["Authorization"] == "Bearer sk-test"
        assert kwargs["timeout"] == 30.0

    def test_missing_key(self):
        client, session = _client(api_key="")
        with pytest.raises(ConfigurationError):
            client.request_content(IMAGE)
        session.post.assert_not_called()

    def test_network_error(self):
        client, _ = _client(error=requests.exceptions.ConnectionError("boom"))
        with pytest.raises(TransportError) as exc:
            client.request_content(IMAGE)
        assert exc.value.retryable is True

    def test_http_429(self):
        client, _ = _client(_response(status=429, text="rate limited"))
        with pytest.raises(TransportError) as exc:
            client.request_content(IMAGE)
        assert exc.value.status_code == 429

    def test_body_not_json(self):
        client, _ = _client(_response(body=ValueError("no json")))
        with pytest.raises(TransportError):
            client.request_content(IMAGE)


class TestExtractContent:
    def test_refusal(self):
        with pytest.raises(RefusalError) as exc:
            VisionClient.extract_content(_completion(refusal="I can't help with that"))
        assert exc.value.reason == "I can't help with that"
        assert exc.value.retryable is False

    def test_refusal_wins_over_content(self):
        with pytest.raises(RefusalError):
            VisionClient.extract_content(_completion(content="{}", refusal="no"))

    def test_error_object(self):
        with pytest.raises(TransportError):
            VisionClient.extract_content({"error": {"message": "invalid image"}})

    def test_empty(self):
        with pytest.raises(EmptyResponseError):
            VisionClient.extract_content(_completion(content=""))

    def test_no_choices(self):
        with pytest.raises(EmptyResponseError):
            VisionClient.extract_content({"choices": []})


class TestAnalyze:
    def test_result(self):
        content = '```json\n{"eyesClosed": true, "confidence": 90}\n```'
        client, _ = _client(_response(body=_completion(content)))
        result = client.analyze(IMAGE)
        assert result.state == STATE_SLEEPY
        assert result.confidence == 90
        assert result.indicators == ("eyes closed",)

    def test_unparseable_returns_fallback(self):
        client, _ = _client(_response(body=_completion("Sorry, no face found.")))
        result = client.analyze(IMAGE)
        assert result.confidence == 0
        assert result.indicators == (FALLBACK_INDICATOR,)
