"""Provider 抽象接口。

编排器不直接依赖具体厂商的 HTTP API，而是依赖此处的协议：

- EmbeddingProvider：把文本转换为固定维度的向量。
- GenerationProvider：给定 prompt 返回自然语言文本。

每个厂商实现一个适配器（如 JinaEmbeddingClient、GeminiClient），
负责把各自的响应 JSON 归一化为统一模型，这样可以在不改编排器代码的
前提下替换厂商。
"""

from typing import List, Protocol, Sequence


class EmbeddingProvider(Protocol):
    """Embedding 客户端协议。

    - embed(texts): 返回与输入等长、同序的向量列表。
    - embed_one(text): 单条文本的便捷方法。
    - embed_batched(texts): 分批调用 embed，批次之间短暂停顿以规避限流。
    """

    name: str

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        ...

    async def embed_one(self, text: str) -> List[float]:
        ...

    async def embed_batched(self, texts: Sequence[str]) -> List[List[float]]:
        ...


class GenerationProvider(Protocol):
    """生成模型客户端协议。complete(prompt) 返回模型文本，可能为空字符串。"""

    name: str

    async def complete(self, prompt: str) -> str:
        ...
