"""API route definitions."""

import time
from fastapi import APIRouter, UploadFile, File, HTTPException, Query
from typing import Optional
import logging

from ..models import (
    ScanOutcomeType,
    CigarOut,
    TextRequest,
    ResolveResponse,
    BrandVariantOut,
    CandidatesResponse,
    ScanResponse,
    SearchResponse,
    BarcodeRequest,
    BarcodeResponse,
    ErrorResponse,
    HealthResponse,
)
from ..services import (
    CigarRecord,
    InMemoryCatalog,
    CatalogSearch,
    CatalogResolver,
    CatalogPermissionError,
    ImageCompressor,
    VisionClient,
    ScanPipeline,
    StaticCamera,
    Resolved,
    Fallback,
    normalize,
    tokenize,
    build_text_candidates,
    brand_variant_splits,
)
from ..config import get_settings
from .. import __version__

logger = logging.getLogger(__name__)
router = APIRouter()

# Initialize services
settings = get_settings()
catalog = InMemoryCatalog()
resolver = CatalogResolver(catalog)
catalog_search = CatalogSearch(catalog, limit=settings.search_limit)
compressor = ImageCompressor()
vision_client = VisionClient()

# Barcode routing shares one guard across requests (cooldown)
barcode_pipeline = ScanPipeline(resolver, vision_client, compressor)
scans_in_flight = 0


def _cigar_out(record: Optional[CigarRecord]) -> Optional[CigarOut]:
    if record is None:
        return None
    return CigarOut(
        id=record.id,
        name=record.name,
        name_insensitive=record.name_insensitive,
        brand=record.brand,
        manufacturer=record.manufacturer,
        origin=record.origin,
        wrapper=record.wrapper,
        strength=record.strength,
        binder=record.binder,
        filler=record.filler,
        vitola=record.vitola,
        rating=record.rating,
        review_count=record.review_count,
        description=record.description,
        image_url=record.image_url,
        extra=dict(record.extra),
    )


@router.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check():
    """Check API health, catalog size and vision configuration."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        catalog_size=len(catalog),
        vision_configured=vision_client.is_configured
    )


@router.post(
    "/scan",
    response_model=ScanResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid input"},
    },
    tags=["Scanning"]
)
async def scan_band(
    image: UploadFile = File(..., description="Photo of the cigar band"),
):
    """
    Identify a cigar from a band photo.
    
    The photo is compressed, sent for logo and text detection, and the
    detected signals are resolved against the catalog. The outcome is
    either a resolved cigar, a manual-search pre-fill, or a failure.
    """
    global scans_in_flight
    start_time = time.time()
    
    try:
        image_bytes = await image.read()
    except Exception as e:
        logger.error(f"Failed to read uploaded image: {e}")
        raise HTTPException(status_code=400, detail="Failed to read uploaded image")
    
    is_valid, error_msg = compressor.validate_image(image_bytes, image.filename or "unknown")
    if not is_valid:
        return ScanResponse(success=False, message=error_msg)
    
    pipeline = ScanPipeline(resolver, vision_client, compressor)
    scans_in_flight += 1
    try:
        outcome = await pipeline.scan(StaticCamera(image_bytes))
    finally:
        scans_in_flight -= 1
    total_time = int((time.time() - start_time) * 1000)
    logger.info(f"Scan finished ({total_time}ms): {type(outcome).__name__}")
    
    if outcome is None:
        return ScanResponse(
            success=False,
            message="Scan was cancelled.",
            processing_time_ms=total_time
        )
    
    if isinstance(outcome, Resolved):
        return ScanResponse(
            success=True,
            outcome=ScanOutcomeType.RESOLVED,
            cigar=_cigar_out(outcome.record),
            processing_time_ms=total_time
        )
    
    if isinstance(outcome, Fallback):
        return ScanResponse(
            success=True,
            outcome=ScanOutcomeType.FALLBACK,
            prefill=outcome.prefill,
            ocr_clues=outcome.ocr_clues,
            message="No exact match. Search the catalog instead.",
            processing_time_ms=total_time
        )
    
    return ScanResponse(
        success=False,
        outcome=ScanOutcomeType.FAILED,
        prefill=outcome.prefill,
        error_category=outcome.category.value,
        message=outcome.message,
        processing_time_ms=total_time
    )


@router.post(
    "/resolve",
    response_model=ResolveResponse,
    responses={
        403: {"model": ErrorResponse, "description": "Catalog read denied"},
    },
    tags=["Matching"]
)
async def resolve_text(request: TextRequest):
    """Resolve band text (or a typed name) to a single catalog cigar."""
    try:
        record = await resolver.resolve_to_cigar(request.text)
    except CatalogPermissionError as e:
        logger.error(f"Catalog read denied: {e}")
        raise HTTPException(status_code=403, detail="Cannot read the cigar catalog")
    
    return ResolveResponse(
        success=record is not None,
        query=request.text,
        cigar=_cigar_out(record),
        error=None if record is not None else "No matching cigar found"
    )


@router.post("/candidates", response_model=CandidatesResponse, tags=["Matching"])
async def preview_candidates(request: TextRequest):
    """Show the normalized text, tokens, candidates and brand/variant splits for OCR text."""
    tokens = tokenize(request.text)
    return CandidatesResponse(
        normalized=normalize(request.text),
        tokens=tokens,
        candidates=build_text_candidates(request.text),
        splits=[
            BrandVariantOut(brand=list(s.brand), variant=list(s.variant))
            for s in brand_variant_splits(tokens, settings.max_brand_tokens)
        ]
    )


@router.get("/search", response_model=SearchResponse, tags=["Search"])
async def search_catalog(q: str = Query("", description="Name prefix to search for")):
    """Manual catalog search (the fallback destination)."""
    try:
        records = await catalog_search.search(q)
    except CatalogPermissionError as e:
        logger.error(f"Catalog read denied: {e}")
        raise HTTPException(status_code=403, detail="Cannot read the cigar catalog")
    
    return SearchResponse(
        query=q,
        total=len(records),
        results=[_cigar_out(r) for r in records]
    )


@router.post(
    "/barcode",
    response_model=BarcodeResponse,
    responses={
        429: {"model": ErrorResponse, "description": "Barcode ignored (scan in progress or cooldown)"},
    },
    tags=["Search"]
)
async def route_barcode(request: BarcodeRequest):
    """
    Turn a decoded barcode into a manual-search pre-fill.

    Barcodes are ignored while a band scan is running and for a short
    cooldown after the previous barcode.
    """
    value = request.value.strip()
    if not value:
        raise HTTPException(status_code=400, detail="Empty barcode value")

    if scans_in_flight:
        logger.debug(f"Barcode {value!r} ignored: {scans_in_flight} scan(s) in progress")
        raise HTTPException(status_code=429, detail="Barcode ignored while a scan is in progress")

    if not barcode_pipeline.handle_barcode(value):
        raise HTTPException(status_code=429, detail="Barcode ignored during cooldown")

    return BarcodeResponse(prefill=value)
