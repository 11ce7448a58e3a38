"""道路限速查询客户端（Overpass API）"""

import logging
from typing import Optional

import requests

from config.settings import OVERPASS_API_URL
from geo.geometry import parse_maxspeed_to_mph
from models.errors import TransportError

logger = logging.getLogger(__name__)


class SpeedLimitClient:
    """查询当前位置附近带 maxspeed 标签的道路。"""

    def __init__(
        self,
        url: str = OVERPASS_API_URL,
        radius_m: int = 60,
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
    ):
        self.url = url
        self.radius_m = radius_m
        self.timeout = timeout
        self._session = session or requests.Session()

    def build_query(self, lat: float, lon: float) -> str:
        return (
            f"[out:json][timeout:10];"
            f"way(around:{self.radius_m},{lat},{lon})[\"maxspeed\"];"
            f"out tags center;"
        )

    def lookup(self, lat: float, lon: float) -> Optional[float]:
        """
        查询限速。

        Returns:
            第一个可解析的限速值 (mph)；附近没有带标签的道路时返回 None

        Raises:
            TransportError: 网络错误、非 2xx 或响应不是 JSON
        """
        try:
            response = self._session.get(
                self.url,
                params={"data": self.build_query(lat, lon)},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise TransportError(f"限速查询失败: {e}") from e

        if not 200 <= response.status_code < 300:
            raise TransportError(f"限速查询返回 HTTP {response.status_code}", status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise TransportError("限速查询响应不是 JSON") from e

        return self.first_limit(data)

    @staticmethod
    def first_limit(data) -> Optional[float]:
        """从 elements 中取第一个可解析的 maxspeed。"""
        elements = data.get("elements") if isinstance(data, dict) else None
        if not isinstance(elements, list):
            return None
        for element in elements:
            tags = element.get("tags") if isinstance(element, dict) else None
            raw = tags.get("maxspeed") if isinstance(tags, dict) else None
            if not raw:
                continue
            mph = parse_maxspeed_to_mph(raw)
            if mph:
                return mph
        return None
