"""Photo compression and quality checks ahead of the vision call.

Camera photos are several megabytes; the feature-extraction request carries
the image inline as base64, so every capture is:
- EXIF-rotated and converted to RGB
- Downscaled to a bounded max dimension
- Re-encoded as JPEG, stepping quality down until the payload fits
- Assessed for blur/contrast so a "no signal" result can say why
"""

import base64
import io
import logging
from dataclasses import dataclass, field
from typing import Optional, Tuple

import cv2
import numpy as np
from PIL import Image, ImageOps

from ..config import get_settings

logger = logging.getLogger(__name__)

# Quality steps tried when the first encode exceeds the payload cap
FALLBACK_JPEG_QUALITIES = [30, 20, 10]


@dataclass
class ImageQuality:
    """Image quality assessment results."""
    blur_score: float  # Laplacian variance - higher = sharper
    contrast_score: float  # Std deviation - higher = more contrast
    is_blurry: bool
    is_low_contrast: bool
    recommendation: Optional[str] = None


@dataclass
class CompressedImage:
    """A capture re-encoded for the vision request."""
    content: bytes
    quality: ImageQuality
    metadata: dict = field(default_factory=dict)
    
    @property
    def base64(self) -> str:
        return base64.b64encode(self.content).decode("ascii")
    
    @property
    def payload_mb(self) -> float:
        """Size of the base64 payload in MB."""
        return (len(self.content) + 2) // 3 * 4 / (1024 * 1024)


class ImageCompressor:
    """Downsamples and compresses captured photos."""
    
    def __init__(self):
        self.settings = get_settings()
    
    def compress(self, image_bytes: bytes) -> CompressedImage:
        """
        Compress a captured photo for the feature-extraction request.
        
        Args:
            image_bytes: Raw photo bytes (any format Pillow reads)
            
        Returns:
            CompressedImage with JPEG bytes, quality assessment and metadata
            
        Raises:
            ValueError: If the payload still exceeds the cap at the lowest quality
        """
        img = Image.open(io.BytesIO(image_bytes))
        original_format = img.format or "UNKNOWN"
        original_dims = img.size
        
        # Phone cameras store orientation in EXIF
        img = ImageOps.exif_transpose(img)
        if img.mode != "RGB":
            img = img.convert("RGB")
        
        # Resize if needed
        w, h = img.size
        max_dim = self.settings.max_image_dimension
        scale = min(1.0, max_dim / max(w, h))
        resized = False
        if scale < 1.0:
            new_w, new_h = max(1, int(w * scale)), max(1, int(h * scale))
            img = img.resize((new_w, new_h), Image.LANCZOS)
            resized = True
            logger.debug(f"Resized capture from {w}x{h} to {new_w}x{new_h}")
        
        jpeg_quality = self.settings.jpeg_quality
        content = self._encode(img, jpeg_quality)
        compressed = CompressedImage(content=content, quality=self._assess_quality(img))
        
        if compressed.payload_mb > self.settings.max_payload_mb:
            for q in FALLBACK_JPEG_QUALITIES:
                if q >= jpeg_quality:
                    continue
                compressed.content = self._encode(img, q)
                jpeg_quality = q
                if compressed.payload_mb <= self.settings.max_payload_mb:
                    break
            
            if compressed.payload_mb > self.settings.max_payload_mb:
                raise ValueError(
                    f"Image too large to send. After compression: {compressed.payload_mb:.1f}MB "
                    f"(max {self.settings.max_payload_mb}MB)."
                )
        
        compressed.metadata = {
            "original_format": original_format,
            "original_size_bytes": len(image_bytes),
            "original_dimensions": original_dims,
            "compressed_size_bytes": len(compressed.content),
            "compressed_dimensions": img.size,
            "resized": resized,
            "jpeg_quality": jpeg_quality,
        }
        
        logger.info(
            f"Capture compressed: {original_format} ({len(image_bytes)/1024:.0f}KB) → "
            f"JPEG ({len(compressed.content)/1024:.0f}KB, q={jpeg_quality})"
        )
        if compressed.quality.recommendation:
            logger.warning(f"Capture quality: {compressed.quality.recommendation}")
        
        return compressed
    
    def _encode(self, img: Image.Image, quality: int) -> bytes:
        out = io.BytesIO()
        img.save(out, format="JPEG", quality=quality, optimize=True)
        return out.getvalue()
    
    def _assess_quality(self, img: Image.Image) -> ImageQuality:
        """Assess blur and contrast of the (already downscaled) capture."""
        gray = cv2.cvtColor(np.array(img), cv2.COLOR_RGB2GRAY)
        
        # Blur detection using Laplacian variance
        blur_score = float(cv2.Laplacian(gray, cv2.CV_64F).var())
        
        # Contrast detection using standard deviation
        contrast_score = float(gray.std())
        
        is_blurry = blur_score < self.settings.blur_threshold
        is_low_contrast = contrast_score < self.settings.contrast_threshold
        
        recommendation = None
        if is_blurry and is_low_contrast:
            recommendation = "The photo looks blurry and dark. Hold steady and add light on the band."
        elif is_blurry:
            recommendation = "The photo looks blurry. Hold the camera steady and tap to focus."
        elif is_low_contrast:
            recommendation = "The photo has low contrast. Try better lighting on the band."
        
        return ImageQuality(
            blur_score=blur_score,
            contrast_score=contrast_score,
            is_blurry=is_blurry,
            is_low_contrast=is_low_contrast,
            recommendation=recommendation
        )
    
    def get_image_info(self, image_bytes: bytes) -> dict:
        """Get basic image information without compressing."""
        pil_image = Image.open(io.BytesIO(image_bytes))
        return {
            "format": pil_image.format,
            "mode": pil_image.mode,
            "width": pil_image.width,
            "height": pil_image.height,
            "size_bytes": len(image_bytes),
            "size_mb": len(image_bytes) / (1024 * 1024)
        }
    
    def validate_image(self, image_bytes: bytes, filename: str) -> Tuple[bool, str]:
        """
        Validate an uploaded capture before compression.
        
        Returns:
            Tuple of (is_valid, error_message)
        """
        ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
        if ext not in self.settings.allowed_extensions:
            allowed = ", ".join(sorted(self.settings.allowed_extensions)).upper()
            return False, f"Invalid file type. Allowed formats: {allowed}"
        
        size_mb = len(image_bytes) / (1024 * 1024)
        if size_mb > self.settings.max_upload_size_mb:
            return False, f"Image exceeds {self.settings.max_upload_size_mb}MB upload limit."
        
        try:
            info = self.get_image_info(image_bytes)
        except Exception as e:
            return False, f"Unable to read image: {str(e)}"
        
        min_dim = self.settings.min_upload_dimension
        if info["width"] < min_dim or info["height"] < min_dim:
            return False, f"Image too small. Minimum dimensions: {min_dim}x{min_dim} pixels."
        
        return True, ""
