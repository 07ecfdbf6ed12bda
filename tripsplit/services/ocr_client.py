import base64
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import requests

from tripsplit.core.config import settings

logger = logging.getLogger(__name__)


@dataclass
class OcrResult:
    text: Optional[str] = None
    language: Optional[str] = None
    error: Optional[str] = None
    attempts: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return bool(self.text) and self.error is None


class OcrClient:
    """
    Client for the OCR HTTP API (OCR.space compatible form contract).

    Language hints are tried one after another (Thai, English, mixed by
    default) until one of them yields non-empty text.
    """

    def __init__(
        self,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        languages: Optional[List[str]] = None,
        timeout: Optional[int] = None,
    ):
        self.api_url = api_url or settings.OCR_API_URL
        self.api_key = api_key if api_key is not None else settings.OCR_API_KEY
        self.languages = languages or list(settings.OCR_LANGUAGES)
        self.timeout = timeout or settings.OCR_TIMEOUT_SECONDS

    def recognize(self, image_bytes: bytes, mime_type: str = "image/jpeg") -> OcrResult:
        if not image_bytes:
            return OcrResult(error="empty image")

        encoded = base64.b64encode(image_bytes).decode("utf-8")
        result = OcrResult()

        for language in self.languages[:3]:
            result.attempts.append(language)
            try:
                text = self._request(encoded, mime_type, language)
            except (requests.RequestException, ValueError) as e:
                logger.warning("OCR request failed for language %s: %s", language, e)
                result.error = str(e)
                continue

            if text and text.strip():
                result.text = text
                result.language = language
                result.error = None
                return result

            result.error = f"no text recognized ({language})"

        logger.info("OCR produced no usable text after %s", ", ".join(result.attempts))
        return result

    def _request(self, encoded: str, mime_type: str, language: str) -> Optional[str]:
        payload = {
            "base64Image": f"data:{mime_type};base64,{encoded}",
            "language": language,
            "isTable": "true",
            "scale": "true",
        }
        if self.api_key:
            payload["apikey"] = self.api_key

        response = requests.post(self.api_url, data=payload, timeout=self.timeout)
        if response.status_code != 200:
            raise ValueError(f"OCR API returned {response.status_code}")

        data = response.json()
        if data.get("IsErroredOnProcessing"):
            message = data.get("ErrorMessage") or "processing error"
            if isinstance(message, list):
                message = "; ".join(str(m) for m in message)
            raise ValueError(str(message))

        parsed = data.get("ParsedResults") or []
        if not parsed:
            return None
        return parsed[0].get("ParsedText")


ocr_client = OcrClient()
