"""LLM provider backends and the persona generator.

Each provider kind has one backend that turns an OpenAI-style message list
plus a system prompt into text.  :class:`PersonaGenerator` decrypts a
persona's credential, picks the backend for its provider kind and calls it.
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from chorus.config.schema import ProviderConfig, ProvidersSection
from chorus.crypto import CredentialCipher
from chorus.errors import GenerationError, UnsupportedProviderError
from chorus.personas.models import Persona

logger = logging.getLogger(__name__)


class CognitiveBackend(Protocol):
    """Protocol that all LLM backends must satisfy."""

    async def generate_response(
        self,
        messages: list[dict],
        system_prompt: str | None = None,
        max_tokens: int = 1000,
    ) -> str:
        """Generate a text response from messages."""


class Generator(Protocol):
    """Turns a persona and a conversation into reply text."""

    async def generate(self, persona: Persona, context: list[dict[str, str]]) -> str: ...


async def _post_json(url: str, payload: dict, headers: dict[str, str], timeout: float) -> dict:
    try:
        async with httpx.AsyncClient() as client:
            resp = await client.post(url, json=payload, headers=headers, timeout=timeout)
            resp.raise_for_status()
            return resp.json()
    except httpx.HTTPStatusError as exc:
        raise GenerationError(
            f"{url} returned {exc.response.status_code}: {exc.response.text[:500]}"
        ) from exc
    except httpx.HTTPError as exc:
        raise GenerationError(f"Request to {url} failed: {exc}") from exc


class OpenAIBackend:
    """OpenAI Chat Completions backend."""

    API_URL = "https://api.openai.com/v1/chat/completions"

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        temperature: float = 0.7,
        base_url: str = "",
        timeout: float = 120.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._temperature = temperature
        self._url = base_url.rstrip("/") + "/chat/completions" if base_url else self.API_URL
        self._timeout = timeout

    async def generate_response(
        self,
        messages: list[dict],
        system_prompt: str | None = None,
        max_tokens: int = 1000,
    ) -> str:
        """Call the Chat Completions API and return the first choice's text."""
        openai_messages: list[dict] = []
        if system_prompt:
            openai_messages.append({"role": "system", "content": system_prompt})
        for msg in messages:
            openai_messages.append({"role": msg["role"], "content": msg["content"]})

        payload = {
            "model": self._model,
            "messages": openai_messages,
            "temperature": self._temperature,
            "max_tokens": max_tokens,
        }
        headers = {
            "authorization": f"Bearer {self._api_key}",
            "content-type": "application/json",
        }
        data = await _post_json(self._url, payload, headers, self._timeout)

        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as exc:
            raise GenerationError("Malformed OpenAI response") from exc


class AnthropicBackend:
    """Anthropic Messages API backend."""

    API_URL = "https://api.anthropic.com/v1/messages"

    def __init__(
        self,
        api_key: str,
        model: str = "claude-3-opus-20240229",
        temperature: float = 0.7,
        base_url: str = "",
        timeout: float = 120.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._temperature = temperature
        self._url = base_url.rstrip("/") + "/messages" if base_url else self.API_URL
        self._timeout = timeout

    async def generate_response(
        self,
        messages: list[dict],
        system_prompt: str | None = None,
        max_tokens: int = 1000,
    ) -> str:
        """Call the Messages API and join the returned text blocks."""
        anthropic_messages = [
            {"role": msg["role"], "content": msg["content"]}
            for msg in messages
            if msg["role"] in ("user", "assistant")
        ]
        # the conversation has to open with a user turn
        while anthropic_messages and anthropic_messages[0]["role"] != "user":
            anthropic_messages.pop(0)

        payload: dict = {
            "model": self._model,
            "max_tokens": max_tokens,
            "temperature": self._temperature,
            "messages": anthropic_messages,
        }
        if system_prompt:
            payload["system"] = system_prompt

        headers = {
            "x-api-key": self._api_key,
            "anthropic-version": "2023-06-01",
            "content-type": "application/json",
        }
        data = await _post_json(self._url, payload, headers, self._timeout)

        content_blocks = data.get("content", [])
        texts = [block["text"] for block in content_blocks if block.get("type") == "text"]
        return "\n".join(texts)


class GeminiBackend:
    """Google Gemini ``generateContent`` backend."""

    API_ROOT = "https://generativelanguage.googleapis.com/v1beta"

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-pro",
        temperature: float = 0.7,
        base_url: str = "",
        timeout: float = 120.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._temperature = temperature
        self._root = base_url.rstrip("/") if base_url else self.API_ROOT
        self._timeout = timeout

    async def generate_response(
        self,
        messages: list[dict],
        system_prompt: str | None = None,
        max_tokens: int = 1000,
    ) -> str:
        """Call ``generateContent`` and return the first candidate's text."""
        contents = [
            {
                "role": "model" if msg["role"] == "assistant" else "user",
                "parts": [{"text": msg["content"]}],
            }
            for msg in messages
        ]
        payload: dict = {
            "contents": contents,
            "generationConfig": {
                "temperature": self._temperature,
                "maxOutputTokens": max_tokens,
            },
        }
        if system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}

        headers = {
            "x-goog-api-key": self._api_key,
            "content-type": "application/json",
        }
        url = f"{self._root}/models/{self._model}:generateContent"
        data = await _post_json(url, payload, headers, self._timeout)

        try:
            parts = data["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError) as exc:
            raise GenerationError("Malformed Gemini response") from exc
        return "".join(part.get("text", "") for part in parts)


BACKENDS: dict[str, type] = {
    "openai": OpenAIBackend,
    "anthropic": AnthropicBackend,
    "gemini": GeminiBackend,
}


class PersonaGenerator:
    """Dispatches a persona's generation call to its provider backend."""

    def __init__(self, cipher: CredentialCipher, providers: ProvidersSection | None = None) -> None:
        self._cipher = cipher
        self._providers = providers or ProvidersSection()

    def backend_for(self, persona: Persona) -> tuple[CognitiveBackend, ProviderConfig]:
        """Build the backend for *persona* with its decrypted credential.

        Raises:
            UnsupportedProviderError: No backend exists for the provider kind.
            CredentialError: The stored credential cannot be decrypted.
        """
        backend_cls = BACKENDS.get(persona.provider)
        settings = self._providers.for_kind(persona.provider)
        if backend_cls is None or settings is None:
            raise UnsupportedProviderError(persona.provider)

        api_key = self._cipher.decrypt(persona.encrypted_api_key)
        backend = backend_cls(
            api_key=api_key,
            model=persona.model or settings.model,
            temperature=settings.temperature,
            base_url=settings.base_url,
            timeout=settings.timeout_seconds,
        )
        return backend, settings

    async def generate(self, persona: Persona, context: list[dict[str, str]]) -> str:
        backend, settings = self.backend_for(persona)
        logger.debug(
            "Generating as %s via %s (%d context messages)",
            persona.alias,
            persona.provider,
            len(context),
        )
        return await backend.generate_response(
            context,
            system_prompt=persona.system_prompt or None,
            max_tokens=settings.max_tokens,
        )
