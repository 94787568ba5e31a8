"""Tests for API endpoints."""

import pytest
from fastapi.testclient import TestClient
from PIL import Image
import io

from bandscan.api import routes
from bandscan.main import app
from bandscan.services.catalog import CatalogPermissionError, InMemoryCatalog
from bandscan.services.pipeline import ScanPipeline
from bandscan.services.resolver import CatalogResolver
from bandscan.services.vision import LogoAnnotation, VisionNetworkError, VisionResult


class FakeVisionClient:
    """Stands in for the vision service."""

    is_configured = True

    def __init__(self, result):
        self.result = result

    async def annotate(self, image_base64):
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class DeniedCatalog(InMemoryCatalog):
    async def find_equal(self, field_name, value, limit=None):
        raise CatalogPermissionError("denied")

    async def find_prefix(self, field_name, prefix, limit):
        raise CatalogPermissionError("denied")


@pytest.fixture
def client(catalog_file, tmp_path, monkeypatch):
    """Create test client over the sample catalog."""
    routes.catalog.load(catalog_file)
    monkeypatch.setattr(
        routes, "barcode_pipeline",
        ScanPipeline(routes.resolver, routes.vision_client, routes.compressor)
    )
    # No context manager: the lifespan would load the bundled catalog
    yield TestClient(app)
    routes.catalog.load(tmp_path / "missing.json")


@pytest.fixture
def use_vision(monkeypatch):
    def install(result):
        monkeypatch.setattr(routes, "vision_client", FakeVisionClient(result))
    return install


@pytest.fixture
def sample_image_bytes():
    """Create a test image."""
    img = Image.new("RGB", (300, 200), color="white")
    # Add some band-like stripes
    pixels = img.load()
    for i in range(50, 250):
        for j in range(50, 150):
            if (i + j) % 10 < 5:
                pixels[i, j] = (0, 0, 0)

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def post_scan(client, image_bytes, filename="band.png"):
    return client.post(
        "/api/v1/scan",
        files={"image": (filename, image_bytes, "image/png")}
    )


class TestHealthEndpoint:
    """Test /health endpoint."""

    def test_health_returns_200(self, client):
        response = client.get("/api/v1/health")
        assert response.status_code == 200

    def test_health_response_format(self, client, use_vision):
        use_vision(VisionResult())
        data = client.get("/api/v1/health").json()

        assert data["status"] == "healthy"
        assert data["catalog_size"] == 7
        assert data["vision_configured"] is True
        assert "version" in data


class TestRootEndpoint:
    """Test root endpoint."""

    def test_root_contains_version(self, client):
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()

        assert "version" in data
        assert "docs" in data


class TestScanEndpoint:
    """Test /scan endpoint."""

    def test_scan_requires_image(self, client):
        response = client.post("/api/v1/scan")
        assert response.status_code == 422  # Validation error

    def test_scan_rejects_invalid_extension(self, client, sample_image_bytes):
        response = post_scan(client, sample_image_bytes, filename="band.bmp")
        data = response.json()

        assert data["success"] is False
        assert "Allowed formats" in data["message"]

    def test_scan_rejects_non_image(self, client):
        response = post_scan(client, b"not an image", filename="band.png")
        data = response.json()

        assert data["success"] is False
        assert "Unable to read image" in data["message"]

    def test_scan_resolves_logo(self, client, use_vision, sample_image_bytes):
        use_vision(VisionResult(logos=[LogoAnnotation("Henry Clay", 0.92)]))
        data = post_scan(client, sample_image_bytes).json()

        assert data["success"] is True
        assert data["outcome"] == "resolved"
        assert data["cigar"]["id"] == "hc-war-hawk"
        assert data["cigar"]["origin"] == "Dominican Republic"

    def test_scan_falls_back_with_prefill(self, client, use_vision, sample_image_bytes):
        use_vision(VisionResult(texts=["SOME UNKNOWN\nBAND TEXT"]))
        data = post_scan(client, sample_image_bytes).json()

        assert data["success"] is True
        assert data["outcome"] == "fallback"
        assert data["prefill"] == "Some Unknown Band Text"
        assert data["ocr_clues"] == "SOME UNKNOWN\nBAND TEXT"
        assert data["cigar"] is None

    def test_scan_reports_network_failure(self, client, use_vision, sample_image_bytes):
        use_vision(VisionNetworkError("connection refused"))
        data = post_scan(client, sample_image_bytes).json()

        assert data["success"] is False
        assert data["outcome"] == "failed"
        assert data["error_category"] == "network"
        assert data["message"]

    def test_scan_reports_no_signal(self, client, use_vision, sample_image_bytes):
        use_vision(VisionResult())
        data = post_scan(client, sample_image_bytes).json()

        assert data["error_category"] == "no_signal"
        assert data["prefill"] is None


class TestResolveEndpoint:
    """Test /resolve endpoint."""

    def test_resolves_exact_name(self, client):
        response = client.post("/api/v1/resolve", json={"text": "HENRY CLAY WAR HAWK"})
        data = response.json()

        assert data["success"] is True
        assert data["cigar"]["name"] == "Henry Clay War Hawk"

    def test_miss_reports_error(self, client):
        data = client.post("/api/v1/resolve", json={"text": "Zino Platinum"}).json()

        assert data["success"] is False
        assert data["cigar"] is None
        assert data["error"]

    def test_empty_text_rejected(self, client):
        response = client.post("/api/v1/resolve", json={"text": ""})
        assert response.status_code == 422

    def test_permission_denied(self, client, monkeypatch):
        monkeypatch.setattr(routes, "resolver", CatalogResolver(DeniedCatalog()))
        response = client.post("/api/v1/resolve", json={"text": "Henry Clay"})
        assert response.status_code == 403


class TestCandidatesEndpoint:
    """Test /candidates endpoint."""

    def test_preview(self, client):
        data = client.post("/api/v1/candidates", json={"text": "HENRY CLAY\nWAR HAWK"}).json()

        assert data["normalized"] == "Henry Clay War Hawk"
        assert data["tokens"] == ["HENRY", "CLAY", "WAR", "HAWK"]
        assert data["candidates"] == ["Henry Clay War Hawk", "Henry Clay", "War Hawk"]
        assert [s["brand"] for s in data["splits"]] == [
            ["HENRY"],
            ["HENRY", "CLAY"],
            ["HENRY", "CLAY", "WAR"],
        ]


class TestSearchEndpoint:
    """Test /search endpoint."""

    def test_prefix_search(self, client):
        data = client.get("/api/v1/search", params={"q": "Arturo"}).json()

        assert data["total"] == 2
        assert {r["id"] for r in data["results"]} == {"af-hemingway", "af-don-carlos"}

    def test_blank_query(self, client):
        data = client.get("/api/v1/search", params={"q": "  "}).json()
        assert data["total"] == 0


class TestBarcodeEndpoint:
    """Test /barcode endpoint."""

    def test_routes_to_prefill(self, client):
        data = client.post("/api/v1/barcode", json={"value": " 0123456789012 "}).json()
        assert data["prefill"] == "0123456789012"

    def test_blank_value_rejected(self, client):
        response = client.post("/api/v1/barcode", json={"value": "   "})
        assert response.status_code == 400

    def test_repeat_within_cooldown_ignored(self, client):
        first = client.post("/api/v1/barcode", json={"value": "0123456789012"})
        second = client.post("/api/v1/barcode", json={"value": "0123456789012"})

        assert first.status_code == 200
        assert second.status_code == 429

    def test_ignored_while_scan_in_progress(self, client, monkeypatch):
        monkeypatch.setattr(routes, "scans_in_flight", 1)
        response = client.post("/api/v1/barcode", json={"value": "0123456789012"})
        assert response.status_code == 429

    def test_scan_releases_barcode_guard(self, client, use_vision, sample_image_bytes):
        use_vision(VisionResult())
        post_scan(client, sample_image_bytes)

        assert routes.scans_in_flight == 0
        response = client.post("/api/v1/barcode", json={"value": "0123456789012"})
        assert response.status_code == 200
