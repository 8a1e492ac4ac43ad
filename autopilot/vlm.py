"""vlm.py - Vision-language model clients used by every role.

Two calls are exposed:

    predict(prompt, images)          one-shot prompt with screenshots
    predict_with_context(messages)   full ConversationMemory log

Both return a ModelResult instead of raising, so a flaky backend turns
into a skipped phase rather than a crashed loop.
"""

import asyncio
import base64
import io
import sys
from dataclasses import dataclass
from typing import Any

import anthropic
from PIL import Image

from autopilot.config import AgentConfig


def _log(msg: str) -> None:
    print(f"[vlm] {msg}", file=sys.stderr)


@dataclass(frozen=True)
class ModelResult:
    ok: bool
    text: str = ""
    error: str = ""

    @classmethod
    def success(cls, text: str) -> "ModelResult":
        return cls(ok=True, text=text)

    @classmethod
    def failure(cls, error: str) -> "ModelResult":
        return cls(ok=False, error=error)


def image_to_b64(image: Image.Image, max_dim: int = 1600) -> str:
    """Downscale to fit max_dim and return a base64 PNG."""
    w, h = image.size
    if max(w, h) > max_dim:
        scale = max_dim / max(w, h)
        image = image.resize((int(w * scale), int(h * scale)), Image.LANCZOS)
    if image.mode not in ("RGB", "RGBA", "L"):
        image = image.convert("RGB")
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return base64.standard_b64encode(buf.getvalue()).decode("ascii")


class VisionClient:
    """Retry wrapper shared by the concrete providers."""

    def __init__(self, config: AgentConfig, client: Any = None):
        self.config = config
        self._client = client

    async def predict(self, prompt: str, images: list[Image.Image] | None = None) -> ModelResult:
        parts: list[dict] = [{"type": "image", "image": img} for img in images or []]
        parts.append({"type": "text", "text": prompt})
        return await self._call([{"role": "user", "content": parts}])

    async def predict_with_context(self, messages: list[dict]) -> ModelResult:
        return await self._call(messages)

    async def _call(self, messages: list[dict]) -> ModelResult:
        retries = max(1, self.config.model_retries)
        last_error = ""
        for attempt in range(1, retries + 1):
            try:
                text = await self._create(messages)
                return ModelResult.success(text)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                last_error = str(exc) or type(exc).__name__
                _log(f"Model call failed ({attempt}/{retries}): {last_error}")
                if attempt < retries:
                    wait_seconds = min(2 ** (attempt - 1), 8)
                    _log(f"Retrying model call in {wait_seconds}s")
                    await asyncio.sleep(wait_seconds)
        return ModelResult.failure(f"Model call failed after {retries} attempts: {last_error}")

    async def _create(self, messages: list[dict]) -> str:
        raise NotImplementedError


def _merge_same_role(messages: list[dict]) -> list[dict]:
    merged: list[dict] = []
    for message in messages:
        if merged and merged[-1]["role"] == message["role"]:
            merged[-1]["content"] = merged[-1]["content"] + message["content"]
        else:
            merged.append({"role": message["role"], "content": list(message["content"])})
    return merged


class AnthropicVisionClient(VisionClient):
    """Claude via the Anthropic Messages API."""

    def _get_client(self):
        if self._client is None:
            self._client = anthropic.AsyncAnthropic()
        return self._client

    def _convert(self, messages: list[dict]) -> tuple[str, list[dict]]:
        system_parts: list[str] = []
        converted: list[dict] = []
        for message in messages:
            if message["role"] == "system":
                system_parts.extend(p["text"] for p in message["content"] if p["type"] == "text")
                continue
            content = []
            for part in message["content"]:
                if part["type"] == "image":
                    content.append({
                        "type": "image",
                        "source": {
                            "type": "base64",
                            "media_type": "image/png",
                            "data": image_to_b64(part["image"], self.config.max_image_dim),
                        },
                    })
                else:
                    content.append({"type": "text", "text": part["text"]})
            converted.append({"role": message["role"], "content": content})
        return "\n".join(system_parts), _merge_same_role(converted)

    async def _create(self, messages: list[dict]) -> str:
        system, converted = self._convert(messages)
        kwargs: dict = {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "messages": converted,
        }
        if system:
            kwargs["system"] = system
        response = await self._get_client().messages.create(**kwargs)
        texts = [block.text for block in response.content if getattr(block, "type", "") == "text"]
        if not texts:
            raise RuntimeError("response contained no text blocks")
        return "\n".join(texts)


class OpenAIVisionClient(VisionClient):
    """GPT-4o class models via Chat Completions."""

    def _get_client(self):
        if self._client is None:
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI()
        return self._client

    def _convert(self, messages: list[dict]) -> list[dict]:
        converted: list[dict] = []
        for message in messages:
            if message["role"] in ("system", "assistant"):
                text = "\n".join(p["text"] for p in message["content"] if p["type"] == "text")
                converted.append({"role": message["role"], "content": text})
                continue
            content = []
            for part in message["content"]:
                if part["type"] == "image":
                    b64 = image_to_b64(part["image"], self.config.max_image_dim)
                    content.append({
                        "type": "image_url",
                        "image_url": {"url": f"data:image/png;base64,{b64}"},
                    })
                else:
                    content.append({"type": "text", "text": part["text"]})
            converted.append({"role": "user", "content": content})
        return converted

    async def _create(self, messages: list[dict]) -> str:
        response = await self._get_client().chat.completions.create(
            model=self.config.model,
            max_tokens=self.config.max_tokens,
            messages=self._convert(messages),
        )
        text = response.choices[0].message.content
        if not text:
            raise RuntimeError("empty completion")
        return text.strip()


def build_client(config: AgentConfig) -> VisionClient:
    if config.provider == "openai":
        return OpenAIVisionClient(config)
    return AnthropicVisionClient(config)
