# signal_compiler/contracts.py
from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

from signal_schemas.schemas_run import DocumentInput
from signal_schemas.schemas_signal import Conflict, Drop, NextCheck, Signal


# ---- Canonical identifiers ----
# doc_id is the short, stable key the model quotes as `source` (minus extension).
# Pack ids double as file names in the run store.
DocId = str
PackId = str

PACK_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


@dataclass(frozen=True)
class PackFile:
    """One declared document of a pack, before it is located on disk."""
    doc_id: DocId
    name: str          # label shown to the model, e.g. "weekly-pack.pdf"
    file: str          # file name searched for under the search roots
    media_type: str = "application/pdf"


@dataclass(frozen=True)
class LoadedDocument:
    """
    Raw bytes as sent to inference, hashed at load time.

    sha256 is what the model actually saw; filenames are not stable across packs.
    """
    doc_id: DocId
    name: str
    path: Path
    data: bytes = field(repr=False)
    sha256: str
    media_type: str = "application/pdf"
    page_count: Optional[int] = None

    @property
    def size(self) -> int:
        return len(self.data)

    def to_input(self) -> DocumentInput:
        return DocumentInput(
            doc_id=self.doc_id,
            filename=self.path.name,
            sha256=self.sha256,
            type=self.media_type,
            page_count=self.page_count,
        )


@dataclass(frozen=True)
class VerifiedOutput:
    """Verifier output plus the parts of the response that pass through untouched."""
    signals: Sequence[Signal]
    drops: Sequence[Drop]
    conflicts: Sequence[Conflict] = ()
    next_checks: Sequence[NextCheck] = ()
