"""
OpenAI chat-completion glue shared by all agents.

Every agent talks to the model with a prompt-in, JSON-out contract.
Models occasionally wrap JSON in markdown fences, add prose around it, or
emit slightly malformed JSON, so responses go through extract_json and,
on failure, a single repair round where the model is asked to return the
same content as valid JSON.

Usage:
    llm = get_llm_client()          # None when OPENAI_API_KEY is unset
    if llm:
        data = await llm.complete_json(SYSTEM_PROMPT, user_prompt, agent="normalization")
"""

import json
import logging
import re
import time
from typing import Any, Optional

from jobscout.config import get_settings
from jobscout.middleware.metrics import record_llm_latency

logger = logging.getLogger(__name__)

REPAIR_PROMPT = (
    "The following text was supposed to be valid JSON but could not be parsed. "
    "Return ONLY the corrected JSON with the same content, no explanation.\n\n{content}"
)

_JSON_SPAN = re.compile(r"(\{.*\}|\[.*\])", re.DOTALL)


class LLMUnavailableError(RuntimeError):
    """Raised when an agent needs the LLM but no API key is configured."""


class LLMResponseError(ValueError):
    """Raised when the LLM response cannot be parsed as JSON."""


def extract_json(content: Optional[str]) -> Any:
    """
    Parse JSON from an LLM response.

    Handles markdown code fences and prose surrounding a single JSON
    object or array.

    Raises:
        LLMResponseError: if no JSON value can be recovered
    """
    if not content:
        raise LLMResponseError("Empty LLM response")

    text = content.strip()

    # Handle markdown code blocks
    if text.startswith("```"):
        lines = text.split("\n")
        text = "\n".join(line for line in lines[1:] if not line.strip().startswith("```"))

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    match = _JSON_SPAN.search(text)
    if match:
        try:
            return json.loads(match.group(1))
        except json.JSONDecodeError:
            pass

    raise LLMResponseError(f"Failed to parse LLM response as JSON: {text[:100]}")


class LLMClient:
    """
    Thin wrapper over AsyncOpenAI returning parsed JSON.

    Attributes:
        client: AsyncOpenAI client (or any object exposing chat.completions.create)
        model: Chat model name
    """

    def __init__(self, openai_client: Any, model: str = "gpt-4o-mini"):
        self.client = openai_client
        self.model = model

    async def _complete(self, messages: list, temperature: float, agent: str) -> str:
        start = time.perf_counter()
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
            )
        finally:
            record_llm_latency(agent, time.perf_counter() - start)
        return response.choices[0].message.content or ""

    async def complete_json(
        self,
        system_prompt: str,
        user_prompt: str,
        agent: str = "default",
        temperature: float = 0.1,
    ) -> Any:
        """
        Run a chat completion and parse its JSON payload.

        Raises:
            LLMResponseError: if the response is not JSON even after repair
        """
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        content = await self._complete(messages, temperature, agent)

        try:
            return extract_json(content)
        except LLMResponseError:
            logger.warning(f"Malformed JSON from {agent} agent, requesting repair")

        repaired = await self._complete(
            [{"role": "user", "content": REPAIR_PROMPT.format(content=content)}],
            0.0,
            agent,
        )
        return extract_json(repaired)


# ==============================================================================
# Singleton Pattern for Dependency Injection
# ==============================================================================

_llm_client: Optional[LLMClient] = None


def get_llm_client() -> Optional[LLMClient]:
    """
    Get shared LLMClient instance, or None when no API key is configured.

    Agents treat None as "LLM unavailable" and fall back to their
    deterministic behaviour (or raise, for normalization).
    """
    global _llm_client
    settings = get_settings()
    if not settings.openai_api_key:
        return None

    if _llm_client is None:
        from openai import AsyncOpenAI

        client = AsyncOpenAI(
            api_key=settings.openai_api_key,
            timeout=settings.openai_timeout_seconds,
        )
        _llm_client = LLMClient(openai_client=client, model=settings.openai_model)
        logger.info("Created singleton LLMClient instance")
    return _llm_client
