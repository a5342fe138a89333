"""Lightweight PDF pre-check run before Ghostscript.

Reads the page count and detects password-locked files so they fail fast
with a clear message instead of a cryptic Ghostscript error.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF-"


@dataclass(frozen=True)
class PdfPrecheck:
    page_count: Optional[int] = None
    is_encrypted: bool = False
    is_locked: bool = False
    error: Optional[str] = None


def has_pdf_header(header: bytes) -> bool:
    return header[:5] == PDF_MAGIC


def precheck_pdf(pdf_path: Path) -> PdfPrecheck:
    """Inspect a PDF without modifying it.

    Parse problems are reported in ``error`` and never raised; Ghostscript is
    more forgiving than PyPDF2 and gets the final say.
    """
    try:
        reader = PdfReader(str(pdf_path), strict=False)
        if reader.is_encrypted:
            try:
                unlocked = bool(reader.decrypt(""))
            except Exception as e:
                logger.warning(f"[DIAGNOSTICS] Could not test empty password on {pdf_path.name}: {e}")
                return PdfPrecheck(is_encrypted=True, error=str(e))
            if not unlocked:
                return PdfPrecheck(is_encrypted=True, is_locked=True)
            return PdfPrecheck(page_count=len(reader.pages), is_encrypted=True)
        return PdfPrecheck(page_count=len(reader.pages))
    except PdfReadError as e:
        logger.warning(f"[DIAGNOSTICS] PDF read error for {pdf_path.name}: {e}")
        return PdfPrecheck(error=f"PDF read error: {e}")
    except Exception as e:
        logger.warning(f"[DIAGNOSTICS] Analysis error for {pdf_path.name}: {e}")
        return PdfPrecheck(error=f"Analysis error: {e}")
