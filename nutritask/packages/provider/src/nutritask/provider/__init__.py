"""NutriTask Provider -- 汇总生成的模型调用层

packages/provider 的公开接口导出。
"""

from .client import LiteLLMClient
from .config import ProviderConfig, load_provider_config
from .echo_adapter import EchoMessageAdapter
from .exceptions import ProviderError, ProxyUnreachableError, SummaryFormatError
from .fallback import FallbackManager
from .models import ModelCallResult, TokenUsage
from .summary import LLMSummaryGenerator, build_summary_messages, parse_summary_content

__all__ = [
    "ModelCallResult",
    "TokenUsage",
    "LiteLLMClient",
    "EchoMessageAdapter",
    "FallbackManager",
    "LLMSummaryGenerator",
    "build_summary_messages",
    "parse_summary_content",
    "ProviderConfig",
    "load_provider_config",
    "ProviderError",
    "ProxyUnreachableError",
    "SummaryFormatError",
]
