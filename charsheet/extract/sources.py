"""
sources.py

Raw source readers: PDF bytes -> text, character URL -> parsed HTML.

The only suspension points of an import live here (file read, network fetch,
markup parse); each blocking call runs in a worker thread so the event loop
stays free.
"""

from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path
from typing import List, Optional

import fitz  # PyMuPDF
import requests
from bs4 import BeautifulSoup

from charsheet.errors import InvalidInput, SourceFetchFailure

logger = logging.getLogger(__name__)

PDF_MIME_TYPES = ("application/pdf", "application/x-pdf")
PDF_MAGIC = b"%PDF-"

CHARACTER_URL_RE = re.compile(
    r"^https?://[^\s/]+(?:/[^\s?#]*)?/characters/(\d+)(?:[/?#][^\s]*)?$", re.I
)


# ---------- input validation ----------


def validate_pdf_upload(
    filename: Optional[str],
    content_type: Optional[str],
    size: int,
    max_bytes: int,
) -> None:
    """Reject non-PDF or oversized uploads before they reach the extractor."""
    is_pdf_name = bool(filename) and filename.lower().endswith(".pdf")
    is_pdf_mime = bool(content_type) and any(
        m in content_type.lower() for m in PDF_MIME_TYPES
    )
    if content_type and not is_pdf_mime:
        raise InvalidInput(f"Please upload a PDF file (got {content_type})")
    if not is_pdf_mime and not is_pdf_name:
        raise InvalidInput("Please upload a PDF file")
    if size <= 0:
        raise InvalidInput("The uploaded file is empty")
    if size > max_bytes:
        raise InvalidInput(
            f"File is too large ({size} bytes); the limit is {max_bytes} bytes"
        )


def parse_character_url(url: str) -> str:
    """Return the numeric character id from a .../characters/<digits> URL."""
    m = CHARACTER_URL_RE.match((url or "").strip())
    if not m:
        raise InvalidInput("Please enter a valid character URL (.../characters/<id>)")
    return m.group(1)


# ---------- PDF ----------


def read_pdf_text(data: bytes) -> str:
    """Concatenate the text of all pages, one page per block, newline separated."""
    doc = fitz.open(stream=data, filetype="pdf")
    try:
        pages: List[str] = []
        for i in range(doc.page_count):
            pages.append(doc.load_page(i).get_text("text"))
        return "\n".join(pages)
    finally:
        doc.close()


async def load_pdf_text(path: Path, max_bytes: int, content_type: Optional[str] = None) -> str:
    path = Path(path)
    try:
        size = path.stat().st_size
    except OSError as e:
        raise SourceFetchFailure(f"Cannot read {path.name}: {e}") from e
    validate_pdf_upload(path.name, content_type, size, max_bytes)

    try:
        data = await asyncio.to_thread(path.read_bytes)
    except OSError as e:
        raise SourceFetchFailure(f"Cannot read {path.name}: {e}") from e
    if not data.startswith(PDF_MAGIC):
        raise InvalidInput(f"{path.name} is not a PDF document")

    try:
        text = await asyncio.to_thread(read_pdf_text, data)
    except (RuntimeError, ValueError) as e:
        # PyMuPDF raises RuntimeError subclasses on broken documents
        raise SourceFetchFailure(f"Could not decode {path.name}: {e}") from e
    logger.info("read %d characters of text from %s", len(text), path.name)
    return text


# ---------- remote profile page ----------


def _http_get(url: str, timeout_s: float, user_agent: str) -> str:
    r = requests.get(url, timeout=timeout_s, headers={"User-Agent": user_agent})
    r.raise_for_status()
    return r.text


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


async def fetch_character_document(
    url: str, timeout_s: float, user_agent: str
) -> BeautifulSoup:
    character_id = parse_character_url(url)
    logger.info("fetching character %s", character_id)
    try:
        html = await asyncio.to_thread(_http_get, url, timeout_s, user_agent)
    except requests.RequestException as e:
        raise SourceFetchFailure(f"Failed to fetch character {character_id}: {e}") from e
    return await asyncio.to_thread(parse_html, html)
