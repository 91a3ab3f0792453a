"""Provider 异常体系"""


class ProviderError(Exception):
    """Provider 包基础异常"""

    def __init__(self, message: str, recoverable: bool = True) -> None:
        super().__init__(message)
        self.recoverable = recoverable


class ProxyUnreachableError(ProviderError):
    """LiteLLM Proxy 不可达（连接失败、超时等），触发降级"""

    def __init__(self, proxy_url: str, original_error: Exception) -> None:
        super().__init__(
            f"LiteLLM Proxy 不可达: {proxy_url} -- {original_error}",
            recoverable=True,
        )
        self.proxy_url = proxy_url
        self.original_error = original_error


class SummaryFormatError(ProviderError):
    """模型输出无法解析为汇总 JSON 对象"""

    def __init__(self, detail: str) -> None:
        super().__init__(f"invalid summary output: {detail}", recoverable=False)
        self.detail = detail
