"""Tagging collaborators: describe an image, suggest tags and a file name."""

import asyncio
import base64
import json
from typing import Any, Dict, List, Optional

import requests
from pydantic import ValidationError

from .exceptions import TaggingError
from .image_utils import strip_extension
from .logging_config import get_component_logger
from .models import TaggingResult

GEMINI_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models"
DEFAULT_MODEL = "gemini-2.5-flash"

ANALYSIS_PROMPT = (
    "Analyze this image. 1. A short description. 2. Three relevant tags. "
    "3. Suggest a file name (field 'suggestedName') in snake_case based on the "
    "visual content (e.g. dog_running_beach), WITHOUT a file extension."
)

RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "description": {"type": "STRING"},
        "tags": {"type": "ARRAY", "items": {"type": "STRING"}},
        "suggestedName": {
            "type": "STRING",
            "description": "File name in snake_case without extension",
        },
    },
    "required": ["description", "tags", "suggestedName"],
}


def degraded_result(original_name: str) -> TaggingResult:
    """Stand-in metadata used when tagging fails."""
    return TaggingResult(
        description="",
        tags=["error"],
        suggested_name=strip_extension(original_name),
    )


class StaticTagger:
    """Returns canned demo metadata; used when no API key is configured."""

    def __init__(
        self,
        description: str = "Simulated description: a processed image.",
        tags: Optional[List[str]] = None,
        suggested_name: str = "processed_image_demo",
    ):
        self._result = TaggingResult(
            description=description,
            tags=tags if tags is not None else ["cloud", "simulation", "demo"],
            suggested_name=suggested_name,
        )

    async def analyze(self, image_bytes: bytes, mime_type: str) -> TaggingResult:
        return self._result.model_copy(deep=True)


class GeminiTagger:
    """Calls the Gemini ``generateContent`` REST endpoint with a JSON schema.

    The API key is passed in explicitly; nothing is read from the environment.
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        endpoint: str = GEMINI_ENDPOINT,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        if not api_key:
            raise TaggingError("An API key is required for GeminiTagger")
        self._api_key = api_key
        self._model = model
        self._endpoint = endpoint.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        self._logger = get_component_logger("tagging")

    def build_request(self, image_bytes: bytes, mime_type: str) -> Dict[str, Any]:
        return {
            "contents": [
                {
                    "parts": [
                        {
                            "inline_data": {
                                "mime_type": mime_type,
                                "data": base64.b64encode(image_bytes).decode("ascii"),
                            }
                        },
                        {"text": ANALYSIS_PROMPT},
                    ]
                }
            ],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": RESPONSE_SCHEMA,
            },
        }

    def analyze_sync(self, image_bytes: bytes, mime_type: str) -> TaggingResult:
        """Blocking variant of :meth:`analyze`."""
        url = f"{self._endpoint}/{self._model}:generateContent"
        try:
            response = self._session.post(
                url,
                json=self.build_request(image_bytes, mime_type),
                headers={"x-goog-api-key": self._api_key},
                timeout=self._timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise TaggingError(f"Tagging request failed: {e}") from e

        return self.parse_response(response.json())

    async def analyze(self, image_bytes: bytes, mime_type: str) -> TaggingResult:
        return await asyncio.to_thread(self.analyze_sync, image_bytes, mime_type)

    @staticmethod
    def parse_response(payload: Dict[str, Any]) -> TaggingResult:
        """Extract the JSON answer from a ``generateContent`` response."""
        try:
            text = payload["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise TaggingError("No response from tagging model") from e
        if not text:
            raise TaggingError("No response from tagging model")

        try:
            data = json.loads(text)
            return TaggingResult(
                description=data.get("description", ""),
                tags=data.get("tags", []),
                suggested_name=data.get("suggestedName", ""),
            )
        except (ValueError, AttributeError, ValidationError) as e:
            raise TaggingError(f"Malformed tagging answer: {e}") from e


def create_tagger(api_key: Optional[str], model: str = DEFAULT_MODEL):
    """Gemini when a key is given, otherwise the static demo tagger."""
    if api_key:
        return GeminiTagger(api_key=api_key, model=model)
    get_component_logger("tagging").warning(
        "No tagging API key provided. Returning demo metadata."
    )
    return StaticTagger()
