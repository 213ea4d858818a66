"""
Gemini Image Service
Image synthesis (gemini-2.5-flash-image) and photo content analysis
(gemini-2.0-flash) for the generation and validation pipelines.
Documentation: https://ai.google.dev/gemini-api/docs/image-generation
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from google import genai
from google.genai import types

from dreamboat.core.config import settings
from dreamboat.core.database import new_id
from dreamboat.workers.base import SynthesisError

logger = logging.getLogger(__name__)


@dataclass
class SynthesisResponse:
    """Stored output of one synthesis call."""
    result_key: str
    request_id: str


class ImageSynthesizer(Protocol):
    async def generate(self, source_key: str, prompt: str) -> SynthesisResponse:
        ...


class ContentAnalyzer(Protocol):
    async def analyze(self, image_bytes: bytes, criteria_prompt: str) -> str:
        ...


def detect_mime_type(image_bytes: bytes) -> str:
    """Sniff the image container from its magic bytes."""
    if image_bytes.startswith(b'\x89PNG\r\n\x1a\n'):
        return "image/png"
    if image_bytes.startswith(b'RIFF') and image_bytes[8:12] == b'WEBP':
        return "image/webp"
    return "image/jpeg"


# Uploaded selfies trip the default filters on harmless content
SAFETY_SETTINGS = [
    types.SafetySetting(category="HARM_CATEGORY_HARASSMENT", threshold="BLOCK_ONLY_HIGH"),
    types.SafetySetting(category="HARM_CATEGORY_HATE_SPEECH", threshold="BLOCK_ONLY_HIGH"),
    types.SafetySetting(category="HARM_CATEGORY_SEXUALLY_EXPLICIT", threshold="BLOCK_MEDIUM_AND_ABOVE"),
    types.SafetySetting(category="HARM_CATEGORY_DANGEROUS_CONTENT", threshold="BLOCK_ONLY_HIGH"),
]


class GeminiImageService:
    """
    Gemini-backed synthesizer and analyzer.

    Neither method retries; callers wrap them in a RetryExecutor. Provider
    errors (google.genai.errors.APIError, carrying the HTTP code) propagate
    unchanged so the retry policy can inspect them.
    """

    def __init__(self, storage_service, client: Optional[genai.Client] = None):
        self.client = client or genai.Client(api_key=settings.GEMINI_API_KEY)
        self.storage_service = storage_service
        self.model_name = settings.GEMINI_IMAGE_MODEL
        self.vision_model = settings.GEMINI_VISION_MODEL
        logger.info(f"[Gemini] Initialized: image={self.model_name} vision={self.vision_model}")

    async def generate(self, source_key: str, prompt: str) -> SynthesisResponse:
        """
        Render the person in `source_key` into the scene described by `prompt`.

        Args:
            source_key: Storage key of the source photo
            prompt: Fully resolved scenario prompt

        Returns:
            SynthesisResponse with the storage key of the generated image

        Raises:
            SynthesisError: the model answered without an image
        """
        request_id = new_id("req")
        source_bytes = await self.storage_service.download_bytes(source_key)

        logger.info(f"[Gemini] {request_id}: generating from {source_key} ({len(source_bytes)} bytes)")
        logger.debug(f"[Gemini] {request_id}: prompt: {prompt[:100]}...")

        response = await self.client.aio.models.generate_content(
            model=self.model_name,
            contents=[
                types.Part.from_bytes(data=source_bytes, mime_type=detect_mime_type(source_bytes)),
                prompt,
            ],
            config=types.GenerateContentConfig(
                response_modalities=["TEXT", "IMAGE"],
                safety_settings=SAFETY_SETTINGS,
            ),
        )

        image_bytes = self._extract_image(response)
        if image_bytes is None:
            reason = None
            if getattr(response, "candidates", None):
                reason = response.candidates[0].finish_reason
            raise SynthesisError(
                f"No image returned for {request_id}",
                details={"request_id": request_id, "finish_reason": str(reason)},
            )

        result_key = await self.storage_service.upload_bytes(
            image_bytes, f"generated/{request_id}.jpg", "image/jpeg"
        )
        logger.info(f"[Gemini] {request_id}: stored {len(image_bytes)} bytes at {result_key}")
        return SynthesisResponse(result_key=result_key, request_id=request_id)

    @staticmethod
    def _extract_image(response) -> Optional[bytes]:
        parts = getattr(response, "parts", None)
        if not parts and getattr(response, "candidates", None):
            content = response.candidates[0].content
            parts = content.parts if content else None

        for part in parts or []:
            if part.inline_data is not None and part.inline_data.data:
                return part.inline_data.data
        return None

    async def analyze(self, image_bytes: bytes, criteria_prompt: str) -> str:
        """
        Ask the vision model to assess a photo.

        Returns:
            Raw JSON text, decoded by the caller
        """
        response = await self.client.aio.models.generate_content(
            model=self.vision_model,
            contents=[
                types.Content(
                    role="user",
                    parts=[
                        types.Part(text=criteria_prompt),
                        types.Part.from_bytes(data=image_bytes, mime_type=detect_mime_type(image_bytes)),
                    ],
                )
            ],
            config=types.GenerateContentConfig(
                safety_settings=SAFETY_SETTINGS,
                temperature=0.1,
                response_mime_type="application/json",
            ),
        )

        text = response.text or ""
        # Strip markdown fences if the model adds them despite JSON mode
        return text.replace("```json", "").replace("```", "").strip()


__all__ = [
    "SynthesisResponse",
    "ImageSynthesizer",
    "ContentAnalyzer",
    "GeminiImageService",
    "detect_mime_type",
]
