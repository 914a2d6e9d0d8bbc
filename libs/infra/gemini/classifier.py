"""Gemini-backed vision classifier for collision detection."""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from google import genai
from google.genai import types

from libs.core.application.exceptions import ClassifierError
from libs.core.application.response_parser import parse_response_text
from libs.core.domain.entities import ClassificationResult

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_MIME_TYPE = "image/jpeg"
MAX_ATTEMPTS = 3
BASE_BACKOFF_SEC = 1.0

COLLISION_PROMPT = """COLLISION DETECTION FOR BLIND PERSON - CRITICAL SAFETY!

Look at this camera image carefully. Describe EVERYTHING you see:

1. Is there a PERSON visible? (face, body, hands, legs - ANY part)
2. Is there a VEHICLE? (car, bike, motorcycle, scooter)
3. Are there OBJECTS? (furniture, walls, doors, boxes, anything)
4. How CLOSE are they? (estimate in feet: 5, 10, 15, 20, 25)

RULES:
- If you see a PERSON at ANY distance -> respond "critical"
- If you see a VEHICLE at ANY distance -> respond "critical"
- If you see FURNITURE/OBJECTS close (under 15 feet) -> respond "warning"
- If you see WALLS/BACKGROUND only -> respond "warning"
- ONLY respond "safe" if you see an EMPTY hallway/path with nothing

FORMAT (copy exactly):

SEVERITY: critical
ALERT: I see [WHAT] at approximately [DISTANCE] feet [DIRECTION]

Examples:
SEVERITY: critical
ALERT: I see a person standing at approximately 10 feet ahead

SEVERITY: warning
ALERT: I see a wall at approximately 8 feet ahead

SEVERITY: safe
ALERT: Empty corridor, no people or objects detected
"""


class GeminiVisionClassifier:
    """Classify a camera frame for collision risk with a Gemini model.

    Transient API failures are retried with exponential backoff. After the
    last attempt a ClassifierError is raised so the caller can treat the
    round as unknown state.
    """

    def __init__(
        self,
        api_key: str | None,
        model: str = DEFAULT_MODEL,
        client: Any | None = None,
        max_attempts: int = MAX_ATTEMPTS,
        base_backoff_sec: float = BASE_BACKOFF_SEC,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self._client = client
        self._max_attempts = max(1, max_attempts)
        self._base_backoff_sec = base_backoff_sec
        self._sleep = sleep

        if client is None and not api_key:
            logger.warning("GEMINI_API_KEY not configured; classification will fail")

    async def classify(self, image: str) -> ClassificationResult:
        image_part = _image_part(image)
        last_error: Exception | None = None

        for attempt in range(self._max_attempts):
            try:
                text = await self._generate(image_part)
                logger.debug("Gemini response: %s", text)
                return parse_response_text(text)
            except ClassifierError:
                raise
            except Exception as error:
                last_error = error
                logger.warning(
                    "Error calling Gemini API (attempt %d/%d): %s",
                    attempt + 1,
                    self._max_attempts,
                    error,
                )
            if attempt < self._max_attempts - 1:
                await self._sleep(self._base_backoff_sec * (2**attempt))

        raise ClassifierError(f"Gemini classification failed: {last_error}") from last_error

    async def _generate(self, image_part: types.Part) -> str:
        response = await self._get_client().aio.models.generate_content(
            model=self.model,
            contents=[COLLISION_PROMPT, image_part],
            config=types.GenerateContentConfig(temperature=0.1),
        )
        text = (response.text or "").strip()
        if not text:
            raise ValueError("empty response from model")
        return text

    def _get_client(self) -> Any:
        if self._client is None:
            if not self.api_key:
                raise ClassifierError("Gemini API key not configured")
            self._client = genai.Client(api_key=self.api_key)
        return self._client


def decode_image(image: str) -> tuple[bytes, str]:
    """Split a data URL (or bare base64) into raw bytes and mime type."""
    mime_type = DEFAULT_MIME_TYPE
    payload = image
    if image.startswith("data:"):
        header, _, payload = image.partition(",")
        declared = header[len("data:") :].split(";", 1)[0]
        if declared:
            mime_type = declared
    try:
        return base64.b64decode(payload, validate=True), mime_type
    except (binascii.Error, ValueError) as error:
        raise ClassifierError("Frame is not valid base64 image data") from error


def _image_part(image: str) -> types.Part:
    data, mime_type = decode_image(image)
    return types.Part.from_bytes(data=data, mime_type=mime_type)
