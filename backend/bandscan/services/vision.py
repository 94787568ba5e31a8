"""Feature-extraction client (logo + text detection).

Talks to a Google Vision style ``images:annotate`` endpoint: one inline
base64 image per request, ``LOGO_DETECTION`` and ``TEXT_DETECTION``
features. Transport failures are mapped onto the ``VisionError`` family so
the capture pipeline can categorize them for the user.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from ..config import get_settings

logger = logging.getLogger(__name__)

LOGO_DETECTION = "LOGO_DETECTION"
TEXT_DETECTION = "TEXT_DETECTION"


class VisionError(Exception):
    """The feature-extraction call did not produce a usable response."""


class VisionTimeoutError(VisionError):
    """The feature-extraction call exceeded its time budget."""


class VisionNetworkError(VisionError):
    """The feature-extraction service could not be reached."""


class VisionServiceError(VisionError):
    """The service answered with an HTTP or per-image error."""


@dataclass
class LogoAnnotation:
    """A detected logo with its confidence."""
    description: str
    score: float = 0.0


@dataclass
class VisionResult:
    """Signals extracted from one band photo."""
    logos: List[LogoAnnotation] = field(default_factory=list)
    texts: List[str] = field(default_factory=list)  # First entry is the full text block
    
    @classmethod
    def from_response(cls, response: Dict[str, Any]) -> "VisionResult":
        """Parse one entry of the ``responses`` array."""
        logos = [
            LogoAnnotation(
                description=str(a.get("description", "")).strip(),
                score=float(a.get("score") or 0.0)
            )
            for a in response.get("logoAnnotations") or []
            if str(a.get("description", "")).strip()
        ]
        texts = [
            str(a.get("description", ""))
            for a in response.get("textAnnotations") or []
            if str(a.get("description", "")).strip()
        ]
        return cls(logos=logos, texts=texts)
    
    @property
    def best_logo(self) -> Optional[LogoAnnotation]:
        """Highest-confidence logo; the first one wins ties."""
        best = None
        for logo in self.logos:
            if best is None or logo.score > best.score:
                best = logo
        return best
    
    @property
    def full_text(self) -> str:
        return self.texts[0] if self.texts else ""
    
    @property
    def has_signal(self) -> bool:
        return bool(self.logos) or bool(self.full_text.strip())


class VisionClient:
    """Async client for the feature-extraction service."""
    
    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self.settings = get_settings()
        self._client = client
    
    @property
    def is_configured(self) -> bool:
        return bool(self.settings.vision_api_key) or self._client is not None
    
    def build_request(self, image_base64: str) -> Dict[str, Any]:
        """JSON body requesting logo and text detection for one image."""
        max_results = self.settings.vision_max_results
        return {
            "requests": [
                {
                    "image": {"content": image_base64},
                    "features": [
                        {"type": LOGO_DETECTION, "maxResults": max_results},
                        {"type": TEXT_DETECTION, "maxResults": max_results},
                    ],
                }
            ]
        }
    
    async def annotate(self, image_base64: str) -> VisionResult:
        """
        Run logo and text detection on a base64 JPEG.
        
        Raises:
            VisionTimeoutError: Transport timeout
            VisionNetworkError: Connection-level failure
            VisionServiceError: HTTP error status or per-image error
        """
        start_time = time.time()
        params = {"key": self.settings.vision_api_key} if self.settings.vision_api_key else None
        body = self.build_request(image_base64)
        
        try:
            if self._client is not None:
                response = await self._client.post(self.settings.vision_api_url, params=params, json=body)
            else:
                async with httpx.AsyncClient(timeout=self.settings.vision_timeout_seconds) as client:
                    response = await client.post(self.settings.vision_api_url, params=params, json=body)
            response.raise_for_status()
            data = response.json()
            if not isinstance(data, dict):
                raise ValueError("expected a JSON object")
        except httpx.TimeoutException as e:
            raise VisionTimeoutError(f"Vision request timed out: {e}") from e
        except httpx.HTTPStatusError as e:
            raise VisionServiceError(f"Vision service returned HTTP {e.response.status_code}") from e
        except httpx.TransportError as e:
            raise VisionNetworkError(f"Vision service unreachable: {e}") from e
        except ValueError as e:
            raise VisionServiceError(f"Vision service returned invalid JSON: {e}") from e
        
        responses = data.get("responses") or [{}]
        first = responses[0] or {}
        if first.get("error"):
            error = first["error"]
            raise VisionServiceError(
                f"Vision error {error.get('code', '?')}: {error.get('message', 'unknown')}"
            )
        
        result = VisionResult.from_response(first)
        elapsed_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Vision metrics: logos={len(result.logos)}, "
            f"text_chars={len(result.full_text)}, time={elapsed_ms:.0f}ms"
        )
        return result
