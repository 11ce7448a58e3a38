"""视觉模型 API 客户端，发送图像并把返回内容转换为检测结果"""

import logging
from typing import Optional

import requests

from config.settings import OPENAI_API_URL
from evaluators.impairment_evaluator import ImpairmentEvaluator
from models.data_models import DetectionResult
from models.errors import (
    ConfigurationError,
    EmptyResponseError,
    ParseError,
    RefusalError,
    TransportError,
)
from parsers.response_parser import fallback_result, parse_observation

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a computer vision system that analyzes images and returns structured data "
    "about visual features. Focus only on observable visual characteristics."
)

USER_PROMPT = """Perform computer vision analysis on this image to detect facial and eye characteristics. Return ONLY a JSON object with these visual observations:
{
  "eyesRed": true or false,
  "eyesGlassy": true or false,
  "eyesHalfClosed": true or false,
  "eyesClosed": true or false,
  "faceRed": true or false,
  "lookingAway": true or false,
  "confidence": number 0-100
}

Detect these visual features:
- eyesRed: Are the eyes red in color?
- eyesGlassy: Do the eyes have a glassy/reflective appearance?
- eyesHalfClosed: Are the eyelids partially closed?
- eyesClosed: Are the eyes completely closed?
- faceRed: Is the face flushed or red?
- lookingAway: Is the person looking away from the camera?
- confidence: Your confidence in these visual observations (0-100)

Return ONLY the JSON object."""


class VisionClient:
    """调用 OpenAI 兼容的 chat completions 接口分析单帧图像。"""

    def __init__(
        self,
        api_key: str,
        api_url: str = OPENAI_API_URL,
        model: str = "gpt-4o",
        max_tokens: int = 200,
        temperature: float = 0.3,
        timeout: float = 30.0,
        evaluator: Optional[ImpairmentEvaluator] = None,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = timeout
        self.evaluator = evaluator or ImpairmentEvaluator()
        self._session = session or requests.Session()

    def build_payload(self, image_data_url: str) -> dict:
        """构造请求体：system/user 消息 + 内联 base64 图像，要求返回 JSON 对象。"""
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": USER_PROMPT},
                        {"type": "image_url", "image_url": {"url": image_data_url}},
                    ],
                },
            ],
            "response_format": {"type": "json_object"},
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }

    def request_content(self, image_data_url: str) -> str:
        """
        发送请求并返回 choices[0].message.content。

        Raises:
            ConfigurationError: 未配置 API Key
            TransportError: 网络错误、非 2xx、响应不是 JSON 或包含 error 对象
            RefusalError: 模型拒绝
            EmptyResponseError: 没有内容也没有 refusal
        """
        if not self.api_key:
            raise ConfigurationError("未配置视觉模型 API Key")

        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        try:
            response = self._session.post(
                self.api_url,
                json=self.build_payload(image_data_url),
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise TransportError(f"请求视觉模型失败: {e}") from e

        if not 200 <= response.status_code < 300:
            if response.status_code == 429:
                logger.error("视觉模型限流 (429)，可考虑增大分析间隔")
            elif response.status_code == 400:
                logger.error("请求被拒绝 (400)，可能触发了内容过滤")
            raise TransportError(
                f"视觉模型返回 HTTP {response.status_code}: {response.text[:500]}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise TransportError("视觉模型响应不是 JSON", status_code=response.status_code) from e

        return self.extract_content(body)

    @staticmethod
    def extract_content(body: dict) -> str:
        """从响应体中区分 content / refusal / error / 空响应。"""
        if not isinstance(body, dict):
            raise TransportError("视觉模型响应格式错误")

        choices = body.get("choices") or []
        first = choices[0] if choices and isinstance(choices[0], dict) else {}
        message = first.get("message") or {}

        refusal = message.get("refusal")
        if refusal:
            logger.error("模型拒绝分析: %s", refusal)
            raise RefusalError(str(refusal))

        content = message.get("content")
        if content:
            return content

        error = body.get("error")
        if error:
            detail = error.get("message") if isinstance(error, dict) else error
            raise TransportError(f"视觉模型返回错误: {detail}")

        logger.error("视觉模型返回空内容, finish_reason=%s", first.get("finish_reason"))
        raise EmptyResponseError("视觉模型返回空内容，可能被限流或过滤")

    def analyze(self, image_data_url: str) -> DetectionResult:
        """分析一帧图像；解析失败时返回置信度为 0 的兜底结果而不是抛出异常。"""
        content = self.request_content(image_data_url)
        logger.debug("模型原始输出: %r", content)
        try:
            observation = parse_observation(content)
        except ParseError as e:
            logger.error("解析模型输出失败: %s", e)
            return fallback_result()
        return self.evaluator.evaluate(observation)
