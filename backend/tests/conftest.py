"""Shared fixtures: a small cigar catalog."""

import json

import pytest

from bandscan.services.catalog import CigarRecord, InMemoryCatalog


CATALOG_DOCUMENTS = [
    {"id": "hc-war-hawk", "name": "Henry Clay War Hawk", "brand": "Henry Clay", "origin": "Dominican Republic"},
    {"id": "af-hemingway", "name": "Arturo Fuente Hemingway Short Story", "brand": "Arturo Fuente"},
    {"id": "af-don-carlos", "name": "Arturo Fuente Don Carlos Robusto", "brand": "Arturo Fuente"},
    {"id": "padron-1964", "name": "Padron 1964 Anniversary Exclusivo", "brand": "Padron"},
    {"id": "padron-1926", "name": "Padron 1926 Serie No 9", "brand": "Padron"},
    {"id": "monte-2", "name": "Montecristo NO 2", "brand": "Montecristo", "vitola": "Torpedo"},
    {"id": "upmann-no4", "name": "No.4 Reserva", "name_insensitive": "no.4 reserva", "brand": "H. Upmann"},
]


@pytest.fixture
def catalog_records():
    """Catalog records in insertion order."""
    return [CigarRecord.from_document(doc["id"], doc) for doc in CATALOG_DOCUMENTS]


@pytest.fixture
def catalog(catalog_records):
    """In-memory catalog holding the sample records."""
    return InMemoryCatalog(catalog_records)


@pytest.fixture
def catalog_file(tmp_path):
    """The sample catalog exported as JSON."""
    path = tmp_path / "cigars.json"
    path.write_text(json.dumps({"cigars": CATALOG_DOCUMENTS}))
    return path
