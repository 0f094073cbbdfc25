"""领域层模型与协议。

包含：
- models: Utterance / ChatRequest / StreamResult 等统一数据模型。
- conversation: 会话模型、KeyValueStore 与 ConversationStore 抽象。
- exceptions: 业务异常类型定义。
"""
