# signal_compiler/ingest.py
from __future__ import annotations

import re
from pathlib import Path
from typing import List, Optional, Sequence

from .contracts import LoadedDocument, PackFile
from .exceptions import NoArtifactsError
from .io_utils import PathLike, sha256_bytes
from .logging_utils import get_logger

LOGGER = get_logger(__name__)

# Page objects are "/Type /Page"; the page tree root is "/Type /Pages".
_PDF_PAGE_RE = re.compile(rb"/Type\s*/Page(?![A-Za-z])")


def count_pdf_pages(data: bytes) -> Optional[int]:
    """
    Best-effort page count from raw PDF bytes. Compressed object streams hide
    page objects, so 0 matches is reported as unknown (None).
    """
    if not data.startswith(b"%PDF"):
        return None
    n = len(_PDF_PAGE_RE.findall(data))
    return n or None


def locate(pack_file: PackFile, search_roots: Sequence[PathLike]) -> Optional[Path]:
    """First search root that contains the file wins."""
    for root in search_roots:
        candidate = Path(root) / pack_file.file
        if candidate.is_file():
            return candidate
    return None


def load_document(pack_file: PackFile, path: Path) -> LoadedDocument:
    data = path.read_bytes()
    page_count = count_pdf_pages(data) if pack_file.media_type == "application/pdf" else None
    return LoadedDocument(
        doc_id=pack_file.doc_id,
        name=pack_file.name,
        path=path,
        data=data,
        sha256=sha256_bytes(data),
        media_type=pack_file.media_type,
        page_count=page_count,
    )


def load_pack_documents(
    pack_id: str,
    pack_files: Sequence[PackFile],
    search_roots: Sequence[PathLike],
) -> List[LoadedDocument]:
    """
    Resolve and read a pack's declared files, in declaration order.

    Missing or unreadable files are logged and skipped. Fails closed only when
    nothing at all could be loaded.
    """
    docs: List[LoadedDocument] = []
    for pf in pack_files:
        path = locate(pf, search_roots)
        if path is None:
            LOGGER.warning(f"Artifact not found for {pack_id}: {pf.file} (searched {list(map(str, search_roots))})")
            continue
        try:
            doc = load_document(pf, path)
        except OSError as e:
            LOGGER.warning(f"Artifact unreadable for {pack_id}: {path}: {e}")
            continue
        LOGGER.info(f"Loaded {pf.name} ({doc.size} bytes, sha256={doc.sha256[:12]})")
        docs.append(doc)

    if not docs:
        raise NoArtifactsError(
            f"No documents found for pack '{pack_id}'. "
            f"Copy the pack files into one of: {', '.join(map(str, search_roots))}"
        )
    return docs
