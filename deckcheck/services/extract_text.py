import asyncio
import math

import fitz  # PyMuPDF
from google.cloud import storage
from deckcheck.config import GCS_BUCKET


def _blob_location(storage_path: str) -> tuple[str, str]:
    """(bucket, object path) from gs://bucket/path, or GCS_BUCKET for a bare object path."""
    if storage_path.startswith("gs://"):
        bucket_name, _, object_path = storage_path[len("gs://"):].partition("/")
        object_path = object_path.lstrip("/")
        if not bucket_name or not object_path:
            raise ValueError(f"Invalid GCS URI: {storage_path}")
        return bucket_name, object_path
    return GCS_BUCKET, storage_path.lstrip("/")


def _download_blob_sync(storage_path: str) -> bytes:
    bucket_name, object_path = _blob_location(storage_path)
    client = storage.Client()
    bucket = client.bucket(bucket_name)
    blob = bucket.blob(object_path)
    return blob.download_as_bytes()


async def download_blob(storage_path: str) -> bytes:
    """Download an uploaded deck from GCS into memory (blocking SDK runs in a thread)."""
    return await asyncio.to_thread(_download_blob_sync, storage_path)


def _extract_pdf_text_sync(pdf_bytes: bytes) -> tuple[str, int]:
    doc = None
    try:
        doc = fitz.open(stream=pdf_bytes, filetype="pdf")
        page_count = len(doc)
        full_text = "".join(page.get_text() for page in doc)
    except Exception as e:
        raise Exception(f"Failed to open PDF: {str(e)}")
    finally:
        if doc:
            doc.close()
    return full_text, page_count


async def extract_pdf_text(pdf_bytes: bytes) -> tuple[str, int]:
    """Full document text and reported page count."""
    return await asyncio.to_thread(_extract_pdf_text_sync, pdf_bytes)


def split_text_into_pages(full_text: str, page_count: int) -> list[str]:
    """
    Split full document text into *page_count* pages of equal character length.

    This is approximate: boundaries are character offsets, not the PDF's visual
    page boundaries. Pages whose slice is blank get a placeholder.
    """
    if page_count <= 0:
        return []
    chars_per_page = math.ceil(len(full_text) / page_count)
    pages = []
    for i in range(page_count):
        start = i * chars_per_page
        end = min((i + 1) * chars_per_page, len(full_text))
        page_text = full_text[start:end].strip()
        pages.append(page_text or f"[Page {i + 1} - No text extracted]")
    return pages


def count_words(text: str) -> int:
    """Whitespace-delimited, non-empty tokens."""
    return len([w for w in text.split() if w])


async def extract_pages(pdf_bytes: bytes) -> list[str]:
    """Ordered page texts for a PDF."""
    full_text, page_count = await extract_pdf_text(pdf_bytes)
    return split_text_into_pages(full_text, page_count)
