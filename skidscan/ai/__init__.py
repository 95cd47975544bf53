from skidscan.ai.base import BaseAiClient
from skidscan.ai.factory import AiClientFactory
from skidscan.ai.gemini_client import GeminiClient
from skidscan.ai.openai_client import OpenAIClient

__all__ = ["AiClientFactory", "BaseAiClient", "GeminiClient", "OpenAIClient"]
