"""Request/response types for the estimate generator and an OpenAI-backed client."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence, Union

from openai import APIConnectionError, InternalServerError, OpenAI, RateLimitError

from .config import GeneratorConfig
from .errors import GeneratorTransportError, NoJsonFoundError
from .retry import execute_with_retry

LOGGER = logging.getLogger(__name__)

# Auth and request errors fail immediately; only transient failures are retried.
RETRYABLE_ERRORS = (APIConnectionError, RateLimitError, InternalServerError)


@dataclass(frozen=True)
class TextBlock:
    text: str

    def to_dict(self) -> dict:
        return {"kind": "text", "text": self.text}


@dataclass(frozen=True)
class ImageBlock:
    mime_type: str
    payload: str

    def to_dict(self) -> dict:
        return {"kind": "image", "mime_type": self.mime_type, "payload": self.payload}


ContentBlock = Union[TextBlock, ImageBlock]


@dataclass(frozen=True)
class Message:
    role: str
    content: Union[str, Sequence[ContentBlock]]

    def to_dict(self) -> dict:
        if isinstance(self.content, str):
            return {"role": self.role, "content": self.content}
        return {"role": self.role, "content": [block.to_dict() for block in self.content]}


@dataclass(frozen=True)
class GeneratorRequest:
    system_prompt: str
    max_output_tokens: int
    messages: Sequence[Message]

    def to_dict(self) -> dict:
        return {
            "system_prompt": self.system_prompt,
            "max_output_tokens": self.max_output_tokens,
            "messages": [message.to_dict() for message in self.messages],
        }

    @property
    def image_count(self) -> int:
        return sum(
            1
            for message in self.messages
            if not isinstance(message.content, str)
            for block in message.content
            if isinstance(block, ImageBlock)
        )


@dataclass
class GeneratorResponse:
    text_blocks: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def text(self) -> str:
        return "".join(block or "" for block in self.text_blocks)


class Generator(Protocol):
    def generate(self, request: GeneratorRequest) -> GeneratorResponse:
        ...


def generate_text(generator: Generator, request: GeneratorRequest) -> str:
    """Invoke ``generator`` and return its full text, raising on error payloads."""

    LOGGER.debug(
        "Invoking generator with %d message(s), %d image(s), max %d tokens",
        len(request.messages),
        request.image_count,
        request.max_output_tokens,
    )
    try:
        response = generator.generate(request)
    except GeneratorTransportError:
        raise
    except Exception as exc:
        raise GeneratorTransportError(f"Generator call failed: {exc}") from exc
    if response.error:
        raise GeneratorTransportError(f"API error: {response.error}")
    text = response.text
    if not text.strip():
        raise NoJsonFoundError("Empty response")
    return text


def _openai_content(content: Union[str, Sequence[ContentBlock]]):
    if isinstance(content, str):
        return content
    parts = []
    for block in content:
        if isinstance(block, ImageBlock):
            parts.append(
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:{block.mime_type};base64,{block.payload}"},
                }
            )
        else:
            parts.append({"type": "text", "text": block.text})
    return parts


class OpenAIGenerator:
    """Generator backed by the OpenAI chat completions API."""

    def __init__(self, config: GeneratorConfig, client: object | None = None) -> None:
        self.config = config
        self._client = client

    def _get_client(self):
        if self._client is not None:
            return self._client
        api_key = self.config.resolve_api_key()
        if not api_key:
            raise GeneratorTransportError(
                f"Generator API key unavailable; set {self.config.api_key_env} "
                f"or configure api_key_path"
            )
        self._client = OpenAI(api_key=api_key)
        return self._client

    def build_messages(self, request: GeneratorRequest) -> list:
        messages = [{"role": "system", "content": request.system_prompt}]
        for message in request.messages:
            messages.append({"role": message.role, "content": _openai_content(message.content)})
        return messages

    def generate(self, request: GeneratorRequest) -> GeneratorResponse:
        client = self._get_client()
        messages = self.build_messages(request)

        def _call(timeout: float):
            return client.chat.completions.create(
                model=self.config.model,
                max_tokens=request.max_output_tokens,
                messages=messages,
                timeout=timeout,
            )

        try:
            completion = execute_with_retry(
                _call,
                policy=self.config.retry,
                description="estimate generation",
                logger=LOGGER,
                retry_on=RETRYABLE_ERRORS,
            )
        except Exception as exc:
            LOGGER.error("Generator call failed: %s", exc)
            raise GeneratorTransportError(f"Generator call failed: {exc}") from exc

        return self._to_response(completion)

    @staticmethod
    def _to_response(completion: object) -> GeneratorResponse:
        choices = getattr(completion, "choices", None) or []
        blocks: List[str] = []
        for choice in choices:
            message = getattr(choice, "message", None)
            content = getattr(message, "content", None) if message is not None else None
            if isinstance(content, list):
                blocks.extend(
                    part.get("text", "") if isinstance(part, dict) else str(part) for part in content
                )
            elif content:
                blocks.append(content)
        error = None
        if not choices:
            error = "No choices returned"
        elif getattr(choices[0], "finish_reason", None) == "content_filter":
            error = "Response blocked by content filter"
        return GeneratorResponse(text_blocks=blocks, error=error)


__all__ = [
    "TextBlock",
    "ImageBlock",
    "ContentBlock",
    "Message",
    "GeneratorRequest",
    "GeneratorResponse",
    "Generator",
    "OpenAIGenerator",
    "generate_text",
    "RETRYABLE_ERRORS",
]
