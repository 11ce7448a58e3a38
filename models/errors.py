"""异常类型定义

摄像头或定位权限被拒绝时直接使用内置的 PermissionError。
"""


class AnalysisError(Exception):
    """单次视觉分析失败的基类"""

    retryable = False


class TransportError(AnalysisError):
    """网络错误、非 2xx 响应或 API 返回 error 对象"""

    retryable = True

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class EmptyResponseError(AnalysisError):
    """响应成功但既没有内容也没有 refusal"""

    retryable = True


class RefusalError(AnalysisError):
    """模型拒绝分析该图像"""

    def __init__(self, reason: str):
        super().__init__(f"模型拒绝请求: {reason}")
        self.reason = reason


class ParseError(AnalysisError):
    """模型输出中找不到可解析的 JSON 对象"""


class ConfigurationError(AnalysisError):
    """缺少 API Key 等配置"""


class FrameCaptureError(AnalysisError):
    """帧源未能提供图像"""


class ValidationError(Exception):
    """上传文件类型或大小不符合要求"""
