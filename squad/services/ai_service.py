"""
squad.services.ai_service — Generative-AI Collaborator
=======================================================

Thin wrapper around the Gemini ``generateContent`` REST endpoint for the
mentor chat and the image generator.  Stateless: the caller keeps the chat
history.  Any failure is raised as :class:`AIServiceError`; nothing is
retried.

Usage::

    client = GeminiClient.from_config(load_config())
    reply = await client.chat([("user", "hi"), ("model", "yo")], "plan my week")
    png = await client.generate_image("squad on a rooftop", "2K")
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
from collections.abc import Sequence
from typing import Any

import httpx

from squad.config import SquadConfig
from squad.engine.errors import AIServiceError, InvalidInput

logger = logging.getLogger(__name__)

GEMINI_API = "https://generativelanguage.googleapis.com/v1beta"

MENTOR_INSTRUCTION = (
    "You are a wise mentor and strategist for the squad. You provide helpful, "
    "direct, and encouraging advice on coding, fitness, and life. Keep it cool, "
    "slightly gamified."
)
EMPTY_REPLY = "I couldn't generate a response."

IMAGE_RESOLUTIONS = frozenset({"1K", "2K", "4K"})
IMAGE_ASPECT_RATIO = "16:9"

# (role, text) with role "user" or "model"
ChatTurn = tuple[str, str]


class GeminiClient:
    def __init__(
        self,
        api_key: str,
        chat_model: str = "gemini-3-pro-preview",
        image_model: str = "gemini-3-pro-image-preview",
        *,
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_key:
            raise RuntimeError("GEMINI_API_KEY is not set.")
        self.chat_model = chat_model
        self.image_model = image_model
        self._client = client or httpx.AsyncClient(
            base_url=GEMINI_API,
            timeout=timeout,
            headers={"x-goog-api-key": api_key},
        )

    @classmethod
    def from_config(cls, cfg: SquadConfig) -> GeminiClient:
        """Build a client from config models and ``GEMINI_API_KEY``."""
        return cls(
            os.getenv("GEMINI_API_KEY", ""),
            chat_model=cfg.chat_model,
            image_model=cfg.image_model,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _generate(self, model: str, body: dict[str, Any]) -> list[dict[str, Any]]:
        """POST to ``models/{model}:generateContent``; return the first candidate's parts."""
        try:
            resp = await self._client.post(f"/models/{model}:generateContent", json=body)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as exc:
            logger.warning("Gemini request to %s failed: %s", model, exc)
            raise AIServiceError(f"{model} request failed: {exc}") from exc
        except ValueError as exc:
            raise AIServiceError(f"{model} returned malformed JSON") from exc

        candidates = data.get("candidates") or []
        if not candidates:
            raise AIServiceError(f"{model} returned no candidates")
        return (candidates[0].get("content") or {}).get("parts") or []

    async def chat(self, history: Sequence[ChatTurn], message: str) -> str:
        """Send *message* after *history* and return the mentor's reply text."""
        contents = [
            {"role": role, "parts": [{"text": text}]} for role, text in history
        ]
        contents.append({"role": "user", "parts": [{"text": message}]})
        parts = await self._generate(self.chat_model, {
            "systemInstruction": {"parts": [{"text": MENTOR_INSTRUCTION}]},
            "contents": contents,
        })
        text = "".join(p.get("text", "") for p in parts)
        return text or EMPTY_REPLY

    async def generate_image(self, prompt: str, resolution: str = "1K") -> bytes:
        """Render *prompt* at *resolution* (1K/2K/4K, 16:9); return raw image bytes."""
        if resolution not in IMAGE_RESOLUTIONS:
            raise InvalidInput(f"Resolution must be one of {sorted(IMAGE_RESOLUTIONS)}")
        parts = await self._generate(self.image_model, {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "responseModalities": ["IMAGE"],
                "imageConfig": {
                    "imageSize": resolution,
                    "aspectRatio": IMAGE_ASPECT_RATIO,
                },
            },
        })
        for part in parts:
            inline = part.get("inlineData")
            if inline and inline.get("data"):
                try:
                    return base64.b64decode(inline["data"], validate=True)
                except binascii.Error as exc:
                    raise AIServiceError("Image payload is not valid base64") from exc
        raise AIServiceError("No image data returned")
