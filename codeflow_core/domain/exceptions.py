"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在服务层或调用方做统一捕获与用户提示。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "STORE_READ_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 thread_id、provider 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、超时等。"""


class ApiError(BusinessError):
    """第三方 API 返回非 2xx/429 错误时抛出。"""


class RateLimitError(BusinessError):
    """Provider 限流错误，本项目不做自动重试。"""


class ValidationError(BusinessError):
    """参数、配置或会话状态校验失败。"""


class BackendError(BusinessError):
    """模型后端调用失败，整轮对话中止。"""


class SecurityError(BusinessError):
    """路径越界或被拒绝的命令，执行前即被拦截。"""


class PatchApplyError(BusinessError):
    """补丁无法应用；文件内容保持不变。"""


class StoreError(BusinessError):
    """会话检查点读写失败。"""
