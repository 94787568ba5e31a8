"""Tests for the feature-extraction client."""

import asyncio
import json
import httpx
import pytest

from bandscan.services.vision import (
    VisionClient,
    VisionResult,
    VisionTimeoutError,
    VisionNetworkError,
    VisionServiceError,
)


def annotate_with(handler, image="aGVsbG8="):
    """Run VisionClient.annotate against a mock transport."""
    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await VisionClient(client=client).annotate(image)
    return asyncio.run(run())


class TestVisionRequest:
    """Test the request body."""
    
    def test_requests_logo_and_text(self):
        seen = {}
        
        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"responses": [{}]})
        
        annotate_with(handler, image="YmFuZA==")
        entry = seen["body"]["requests"][0]
        assert entry["image"] == {"content": "YmFuZA=="}
        assert [f["type"] for f in entry["features"]] == ["LOGO_DETECTION", "TEXT_DETECTION"]
        assert all(f["maxResults"] == 5 for f in entry["features"])


class TestVisionResponse:
    """Test response parsing."""
    
    def test_parses_logos_and_text(self):
        def handler(request):
            return httpx.Response(200, json={"responses": [{
                "logoAnnotations": [
                    {"description": "Henry Clay", "score": 0.62},
                    {"description": "Padron", "score": 0.91},
                ],
                "textAnnotations": [
                    {"description": "PADRON\n1964"},
                    {"description": "PADRON"},
                ],
            }]})
        
        result = annotate_with(handler)
        assert result.best_logo.description == "Padron"
        assert result.full_text == "PADRON\n1964"
        assert result.has_signal
    
    def test_empty_response(self):
        result = annotate_with(lambda request: httpx.Response(200, json={"responses": [{}]}))
        assert result.logos == []
        assert result.full_text == ""
        assert not result.has_signal
    
    def test_best_logo_tie_keeps_first(self):
        result = VisionResult.from_response({"logoAnnotations": [
            {"description": "A", "score": 0.5},
            {"description": "B", "score": 0.5},
        ]})
        assert result.best_logo.description == "A"
    
    def test_blank_annotations_ignored(self):
        result = VisionResult.from_response({
            "logoAnnotations": [{"description": "  ", "score": 0.9}],
            "textAnnotations": [{"description": ""}],
        })
        assert not result.has_signal


class TestVisionErrors:
    """Test transport and service error mapping."""
    
    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)
        
        with pytest.raises(VisionTimeoutError):
            annotate_with(handler)
    
    def test_network_failure(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)
        
        with pytest.raises(VisionNetworkError):
            annotate_with(handler)
    
    def test_http_error(self):
        with pytest.raises(VisionServiceError):
            annotate_with(lambda request: httpx.Response(500, json={}))
    
    def test_per_image_error(self):
        def handler(request):
            return httpx.Response(200, json={"responses": [
                {"error": {"code": 7, "message": "API key not valid"}}
            ]})
        
        with pytest.raises(VisionServiceError, match="API key not valid"):
            annotate_with(handler)
    
    def test_invalid_json(self):
        with pytest.raises(VisionServiceError):
            annotate_with(lambda request: httpx.Response(200, content=b"not json"))
