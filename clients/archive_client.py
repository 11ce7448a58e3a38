"""检测记录后端客户端：上传媒体 -> 远程分析 -> 保存记录，以及查询历史记录"""

import logging
from typing import Any, List, Optional

import requests

from models.errors import TransportError

logger = logging.getLogger(__name__)


class ArchiveClient:
    """
    Convex 风格的 HTTP 接口。

    POST {base_url}/api/mutation|action|query  {"path": ..., "args": {...}, "format": "json"}
    响应为 {"status": "success", "value": ...} 或 {"status": "error", "errorMessage": ...}
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._session = session or requests.Session()

    def _headers(self, content_type: str = "application/json") -> dict:
        headers = {"Content-Type": content_type}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _post(self, url: str, **kwargs) -> Any:
        try:
            response = self._session.post(url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise TransportError(f"请求记录后端失败: {e}") from e
        if not 200 <= response.status_code < 300:
            raise TransportError(
                f"记录后端返回 HTTP {response.status_code}: {response.text[:300]}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise TransportError("记录后端响应不是 JSON") from e

    def _call(self, kind: str, path: str, args: Optional[dict] = None) -> Any:
        body = self._post(
            f"{self.base_url}/api/{kind}",
            json={"path": path, "args": args or {}, "format": "json"},
            headers=self._headers(),
        )
        if not isinstance(body, dict) or body.get("status") != "success":
            message = body.get("errorMessage") if isinstance(body, dict) else body
            raise TransportError(f"{path} 调用失败: {message}")
        return body.get("value")

    def generate_upload_url(self) -> str:
        return self._call("mutation", "detections:generateUploadUrl")

    def upload(self, upload_url: str, data: bytes, content_type: str) -> str:
        """上传原始字节，返回 storageId。"""
        body = self._post(upload_url, data=data, headers=self._headers(content_type))
        storage_id = body.get("storageId") if isinstance(body, dict) else None
        if not storage_id:
            raise TransportError("上传响应缺少 storageId")
        return storage_id

    def analyze(self, storage_id: str) -> dict:
        return self._call("action", "detections:analyzeImage", {"storageId": storage_id})

    def archive(self, data: bytes, content_type: str) -> dict:
        """完整的三步流程：获取上传地址 -> 上传 -> 远程分析并保存。"""
        upload_url = self.generate_upload_url()
        storage_id = self.upload(upload_url, data, content_type)
        logger.info("媒体已上传到记录后端: %s", storage_id)
        return self.analyze(storage_id)

    def list_detections(self) -> List[dict]:
        value = self._call("query", "detections:getDetections")
        return value if isinstance(value, list) else []
