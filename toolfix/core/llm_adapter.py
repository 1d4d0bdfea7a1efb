"""Completion service: LangChain chat models with Cerebras → Groq failover.

Cerebras is the primary for text-only prompts. On timeout or 5xx, falls back to Groq.
4xx errors fail immediately; a bad request is not retried on the other provider.
Prompts carrying an inline image go straight to the Groq vision model.

Every call runs on a bounded worker pool and is abandoned after LLM_CALL_DEADLINE
seconds, so a hung provider cannot hold a request past the invocation deadline.
The abandoned call is not interrupted: it keeps its pool worker until the
provider client gives up, and calls queued behind it spend part of their own
deadline waiting. Client timeouts are therefore capped at the deadline.
"""

import atexit
import os
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Protocol

import structlog
from httpx import HTTPStatusError, ReadTimeout
from langchain_cerebras import ChatCerebras
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_groq import ChatGroq

logger = structlog.get_logger(__name__)

_MAX_LLM_WORKERS = int(os.environ.get("LLM_POOL_MAX_WORKERS", "16"))
_pool = ThreadPoolExecutor(max_workers=_MAX_LLM_WORKERS, thread_name_prefix="llm")
atexit.register(_pool.shutdown, wait=False)

_ROLE_TO_MESSAGE = {
    "system": SystemMessage,
    "user": HumanMessage,
    "assistant": AIMessage,
}


class LLMError(Exception):
    """Non-retryable LLM error (e.g. 4xx bad request)."""
    pass


class LLMUnavailableError(Exception):
    """Both providers are down, timing out, or the call deadline expired."""
    pass


class CompletionService(Protocol):
    """Anything that turns role-tagged messages into one reply."""

    def complete(self, messages: list[dict]) -> str: ...


def to_langchain_messages(messages: list[dict]) -> list[BaseMessage]:
    """Convert {"role", "content"} dicts to LangChain message objects.

    Content may be a string or a list of OpenAI-style parts
    (``{"type": "text"}`` / ``{"type": "image_url"}``).
    """
    converted = []
    for msg in messages:
        cls = _ROLE_TO_MESSAGE.get(msg["role"])
        if cls is None:
            raise ValueError(f"Unsupported message role: {msg['role']}")
        converted.append(cls(content=msg["content"]))
    return converted


def has_image(messages: list[dict]) -> bool:
    for msg in messages:
        content = msg.get("content")
        if isinstance(content, list) and any(part.get("type") == "image_url" for part in content):
            return True
    return False


class LLMAdapter:
    """Wraps Cerebras + Groq with automatic failover and a per-call deadline."""

    def __init__(self):
        self.cerebras_key = os.environ.get("CEREBRAS_API_KEY", "")
        self.groq_key = os.environ.get("GROQ_API_KEY", "")

        self.cerebras_model_name = os.environ.get("CEREBRAS_MODEL", "gpt-oss-120b")
        self.groq_model_name = os.environ.get("GROQ_MODEL", "openai/gpt-oss-120b")
        self.vision_model_name = os.environ.get("GROQ_VISION_MODEL", "meta-llama/llama-4-scout-17b-16e-instruct")

        self.temperature = float(os.environ.get("LLM_TEMPERATURE", "0.2"))
        self.max_tokens = int(os.environ.get("LLM_MAX_TOKENS", "2048"))
        self.call_deadline = float(os.environ.get("LLM_CALL_DEADLINE", "60"))
        # a provider request must not outlive the deadline that abandons it
        self.timeout = min(int(os.environ.get("LLM_TIMEOUT", "30")), max(1, int(self.call_deadline)))

        self.primary_llm = ChatCerebras(
            api_key=self.cerebras_key,
            model=self.cerebras_model_name,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            timeout=self.timeout,
        )

        self.fallback_llm = ChatGroq(
            api_key=self.groq_key,
            model=self.groq_model_name,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            timeout=self.timeout,
        )

        self.vision_llm = ChatGroq(
            api_key=self.groq_key,
            model=self.vision_model_name,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            timeout=self.timeout,
        )

    def is_healthy(self) -> bool:
        """Check if at least one provider has a key configured.

        Returns:
            True if either Cerebras or Groq API key is set.
        """
        return bool(self.cerebras_key) or bool(self.groq_key)

    def complete(self, messages: list[dict]) -> str:
        """Run one completion and return the reply text.

        Args:
            messages: Role-tagged message dicts, optionally with an inline image part.

        Returns:
            Reply content as a string.

        Raises:
            LLMError: If the provider rejected the request.
            LLMUnavailableError: If no provider answered within the deadline.
        """
        lc_messages = to_langchain_messages(messages)
        if has_image(messages):
            future = _pool.submit(self.invoke_vision, lc_messages)
        else:
            future = _pool.submit(self.invoke_with_failover, lc_messages)

        try:
            response = future.result(timeout=self.call_deadline)
        except FutureTimeout:
            future.cancel()
            logger.error("llm.deadline_exceeded", deadline=self.call_deadline)
            raise LLMUnavailableError(f"Completion exceeded the {self.call_deadline}s deadline")

        content = response.content
        if isinstance(content, list):
            content = "".join(
                part.get("text", "") if isinstance(part, dict) else str(part) for part in content
            )
        return content or ""

    def invoke_vision(self, messages: list[BaseMessage]) -> BaseMessage:
        """Send an image-bearing prompt to the Groq vision model.

        Raises:
            LLMError: On a 4xx from Groq.
            LLMUnavailableError: On any other failure.
        """
        logger.debug("llm.invoke", provider="groq", model=self.vision_model_name, vision=True)
        try:
            return self.vision_llm.invoke(messages)
        except HTTPStatusError as e:
            if 400 <= e.response.status_code < 500:
                logger.error("llm.4xx", status=e.response.status_code, vision=True)
                raise LLMError(f"Groq API rejected request ({e.response.status_code}): {e}")
            logger.error("llm.vision_failed", status=e.response.status_code)
            raise LLMUnavailableError(f"Vision model failed: {e}")
        except Exception as e:
            logger.error("llm.vision_failed", error=str(e))
            raise LLMUnavailableError(f"Vision model failed: {e}")

    def invoke_with_failover(self, messages: list[BaseMessage]) -> BaseMessage:
        """Try Cerebras first, fall back to Groq on timeout/5xx.

        Args:
            messages: List of LangChain message objects to send.

        Returns:
            AI response message from whichever provider succeeds.

        Raises:
            LLMError: If Cerebras returns a 4xx (no fallback attempted).
            LLMUnavailableError: If both providers fail.
        """
        logger.debug("llm.invoke", provider="cerebras", model=self.cerebras_model_name)

        try:
            return self.primary_llm.invoke(messages)

        except HTTPStatusError as e:
            if 400 <= e.response.status_code < 500:
                logger.error("llm.4xx", status=e.response.status_code)
                raise LLMError(f"Cerebras API rejected request ({e.response.status_code}): {e}")

            logger.warning("llm.5xx_fallback", status=e.response.status_code)

        except ReadTimeout:
            logger.warning("llm.timeout_fallback", threshold=self.timeout)

        except Exception as e:
            logger.warning("llm.unknown_fallback", error=str(e))

        logger.info("llm.groq_fallback", model=self.groq_model_name)
        try:
            response = self.fallback_llm.invoke(messages)
            logger.info("llm.groq_ok")
            return response

        except Exception as e:
            logger.error("llm.both_failed", error=str(e))
            raise LLMUnavailableError(f"Both primary and fallback LLMs failed: {e}")
