# signal_compiler/traceability.py
from __future__ import annotations

import re
from typing import List, Sequence

from signal_schemas.schemas_run import EvidenceEntry
from signal_schemas.schemas_signal import Conflict, Signal


class TraceabilityError(ValueError):
    """Fail-closed traceability error."""


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise TraceabilityError(msg)


_EXTENSION_RE = re.compile(r"\.[A-Za-z0-9]+$")


def doc_id_from_source(source: str) -> str:
    """
    'weekly-pack.pdf' -> 'weekly-pack'. The extension match is case-insensitive
    ('.PDF' goes too); only the last suffix is removed.
    """
    s = source.strip()
    stripped = _EXTENSION_RE.sub("", s)
    return stripped or s


def index_evidence(
    signals: Sequence[Signal],
    conflicts: Sequence[Conflict],
) -> List[EvidenceEntry]:
    """
    Flatten every quote into addressable citations: ev_1, ev_2, ...

    Order: each accepted signal's spans in order, then each conflict claim
    that carries a non-empty quote. No deduplication; a quote cited twice is
    two entries. Determinism guarantee: identical input, identical ids.
    """
    entries: List[EvidenceEntry] = []

    def emit(*, cited_by: str, source: str, quote: str, page=None, line=None, bbox=None) -> None:
        entries.append(
            EvidenceEntry(
                id=f"ev_{len(entries) + 1}",
                doc_id=doc_id_from_source(source),
                quote=quote,
                page=page,
                line=line,
                bbox=bbox,
                cited_by=cited_by,
            )
        )

    for sig in signals:
        _require(len(sig.evidence) > 0, f"Signal {sig.id} reached the indexer without evidence.")
        for span in sig.evidence:
            emit(
                cited_by=sig.id,
                source=span.source,
                quote=span.quote,
                page=span.page,
                line=span.line,
                bbox=span.bbox,
            )

    for conflict in conflicts:
        for claim in conflict.claims:
            if not claim.quote.strip():
                continue
            emit(cited_by=conflict.id, source=claim.source, quote=claim.quote, page=claim.page)

    return entries


def evidence_for(entries: Sequence[EvidenceEntry], cited_by: str) -> List[EvidenceEntry]:
    """Entries cited by one signal or conflict, in index order."""
    return [e for e in entries if e.cited_by == cited_by]
