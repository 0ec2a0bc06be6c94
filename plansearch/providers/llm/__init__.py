"""LLM provider adapters.

Three concrete implementations of ILLMProvider:
    - AnthropicLLMProvider -- Claude (vision + text)
    - OpenAILLMProvider    -- gpt-4o / gpt-4o-mini, or any OpenAI-compatible API
    - OllamaLLMProvider    -- local models via Ollama (llama3.1 / llava)

main.py picks the first provider with credentials configured and hands it
to the fact extractor and the classification provider.
"""

from plansearch.providers.llm.anthropic_provider import AnthropicLLMProvider
from plansearch.providers.llm.ollama_provider import OllamaLLMProvider
from plansearch.providers.llm.openai_provider import OpenAILLMProvider

__all__ = ["AnthropicLLMProvider", "OllamaLLMProvider", "OpenAILLMProvider"]
