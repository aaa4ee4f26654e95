"""
LLM Client - Unified interface to the generative search service.
Supports OpenAI-compatible providers (OpenAI, OpenRouter, Ollama) and
Gemini's native generateContent endpoint with search grounding.
"""
from openai import AsyncOpenAI
from typing import Optional
import logging

import httpx

from ..config import get_llm_config

logger = logging.getLogger(__name__)


class LLMClient:
    """Async LLM client returning the raw response text."""

    def __init__(self, config: Optional[dict] = None):
        config = config or get_llm_config()
        self.provider = config["provider"]
        self.model = config["model"]
        self.temperature = config["temperature"]
        self.max_tokens = config["max_tokens"]
        self.base_url = config["base_url"]
        self.api_key = config["api_key"]
        self.client = None
        self._mock = None

        # Use mock client if provider is 'mock'
        if self.provider == "mock":
            from .mock_llm import MockLLMClient
            self._mock = MockLLMClient()
            self.model = self._mock.model
        elif self.provider != "gemini":
            self.client = AsyncOpenAI(
                api_key=self.api_key or "dummy_key",
                base_url=self.base_url
            )

        logger.info(f"Initialized LLMClient with provider={self.provider}, model={self.model}")

    async def chat(
        self,
        messages: list[dict],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        json_mode: bool = False
    ) -> str:
        """
        Send a chat completion request.

        Args:
            messages: List of message dicts with 'role' and 'content'
            temperature: Override default temperature
            max_tokens: Override default max tokens
            json_mode: If True, request JSON response format

        Returns:
            The assistant's response content ("" if the service sent none)
        """
        if self._mock is not None:
            return await self._mock.chat(messages, temperature, max_tokens, json_mode)

        if self.provider == "gemini":
            prompt = "\n\n".join(m["content"] for m in messages)
            return await self._gemini_generate(prompt, json_mode)

        kwargs = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature or self.temperature,
            "max_tokens": max_tokens or self.max_tokens,
        }

        # JSON mode support (not all providers support this)
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await self.client.chat.completions.create(**kwargs)
        except Exception as e:
            # If JSON mode fails, retry without it
            if json_mode and "response_format" in kwargs:
                logger.warning(f"JSON mode rejected by {self.provider}, retrying without it: {e}")
                del kwargs["response_format"]
                response = await self.client.chat.completions.create(**kwargs)
            else:
                raise
        return response.choices[0].message.content or ""

    async def complete(self, prompt: str, json_mode: bool = True) -> str:
        """Single-prompt convenience wrapper around `chat`."""
        return await self.chat([{"role": "user", "content": prompt}], json_mode=json_mode)

    async def _gemini_generate(self, prompt: str, json_mode: bool) -> str:
        """Call Gemini generateContent with Google Search grounding."""
        url = f"{self.base_url}/models/{self.model}:generateContent"
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "tools": [{"google_search": {}}],
        }
        if json_mode:
            payload["generationConfig"] = {"responseMimeType": "application/json"}

        async with httpx.AsyncClient() as client:
            response = await client.post(url, params={"key": self.api_key}, json=payload)
            response.raise_for_status()
            data = response.json()

        candidates = data.get("candidates") or [{}]
        parts = (candidates[0].get("content") or {}).get("parts") or [{}]
        return parts[0].get("text") or "[]"


# Global LLM client instance
llm_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """Get or create the global LLM client."""
    global llm_client
    if llm_client is None:
        llm_client = LLMClient()
    return llm_client
