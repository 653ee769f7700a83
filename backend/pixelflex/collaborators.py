"""
Gemini client for the optional AI steps.

Both calls take a base64 image payload. `enhance` returns a re-rendered image
as base64 (or None when the model answers without an image); `describe`
returns one short sentence. Every failure is raised as EnhancementUnavailable
so callers can degrade without caring about the cause.
"""
import logging
from typing import Optional

import requests

from pixelflex import config
from pixelflex.conversion.errors import EnhancementUnavailable

logger = logging.getLogger("pixelflex.collaborators")

ENHANCE_PROMPT = (
    "Re-render this image with professional studio quality, sharp details, and high fidelity. "
    "Enhance the clarity and remove compression artifacts. Return the enhanced image directly."
)
DESCRIBE_PROMPT = "Briefly describe the visual content of this image in one short sentence."


def _strip_data_url(payload: str) -> str:
    """Accept either raw base64 or a data: URL."""
    if payload.startswith("data:") and "," in payload:
        return payload.split(",", 1)[1]
    return payload


class GeminiClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        enhance_model: Optional[str] = None,
        describe_model: Optional[str] = None,
        timeout: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = config.GEMINI_API_KEY if api_key is None else api_key
        self.base_url = (base_url or config.GEMINI_API_URL).rstrip("/")
        self.enhance_model = enhance_model or config.GEMINI_ENHANCE_MODEL
        self.describe_model = describe_model or config.GEMINI_DESCRIBE_MODEL
        self.timeout = timeout or config.GEMINI_TIMEOUT
        self._session = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _generate(self, model: str, image_b64: str, prompt: str, mime_type: str) -> dict:
        if not self.api_key:
            raise EnhancementUnavailable("No API key configured for Gemini")
        body = {
            "contents": [{
                "parts": [
                    {"inline_data": {"mime_type": mime_type, "data": _strip_data_url(image_b64)}},
                    {"text": prompt},
                ],
            }],
        }
        url = f"{self.base_url}/models/{model}:generateContent"
        try:
            resp = self._session.post(
                url,
                headers={"x-goog-api-key": self.api_key},
                json=body,
                timeout=(5, self.timeout),
            )
            resp.raise_for_status()
            return resp.json()
        except requests.RequestException as e:
            raise EnhancementUnavailable(f"Gemini request to {model} failed: {e}") from e
        except ValueError as e:
            raise EnhancementUnavailable(f"Gemini returned invalid JSON: {e}") from e

    @staticmethod
    def _parts(payload: dict) -> list[dict]:
        candidates = payload.get("candidates") or []
        if not candidates:
            return []
        return (candidates[0].get("content") or {}).get("parts") or []

    def enhance(self, image_b64: str, mime_type: str = "image/png") -> Optional[str]:
        """Return the enhanced image as base64, or None if the model sent no image."""
        payload = self._generate(self.enhance_model, image_b64, ENHANCE_PROMPT, mime_type)
        for part in self._parts(payload):
            inline = part.get("inlineData") or part.get("inline_data")
            if inline and inline.get("data"):
                logger.info("Gemini enhancement returned %s", inline.get("mimeType") or inline.get("mime_type"))
                return inline["data"]
        logger.info("Gemini enhancement returned no image")
        return None

    def describe(self, image_b64: str, mime_type: str = "image/png") -> str:
        payload = self._generate(self.describe_model, image_b64, DESCRIBE_PROMPT, mime_type)
        text = "".join(part.get("text", "") for part in self._parts(payload)).strip()
        return text or "Image analyzed."


# Singleton
_gemini_client: Optional[GeminiClient] = None


def get_gemini_client() -> GeminiClient:
    global _gemini_client
    if _gemini_client is None:
        _gemini_client = GeminiClient()
    return _gemini_client
