"""对话后端集成层。

该包下的模块负责：
- 定义客户端抽象接口 (base)。
- 解码流式响应 (stream_decoder)。
- 提供 UniNavigator 后端的具体实现 (uninav_client)。
"""

from typing import Optional

from uninav_core.config.settings import settings
from uninav_core.providers.base import ChatClient
from uninav_core.providers.uninav_client import UniNavClient


def create_client(base_url: Optional[str] = None) -> ChatClient:
    """创建对话客户端，默认使用配置中的 api_base_url。"""

    if base_url:
        return UniNavClient(settings.model_copy(update={"api_base_url": base_url.rstrip("/")}))
    return UniNavClient(settings)
