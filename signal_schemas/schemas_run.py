# signal_schemas/schemas_run.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .schemas_signal import Conflict, Drop, NextCheck, Signal


class DocumentInput(BaseModel):
    """What the model actually saw: identity is the content hash, not the filename."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    doc_id: str = Field(..., min_length=1)
    filename: str
    sha256: str = Field(..., pattern=r"^[0-9a-f]{64}$")
    type: str = Field(default="application/pdf", description="media type")
    page_count: Optional[int] = Field(default=None, ge=0)


class EvidenceEntry(BaseModel):
    """One citation. Two findings quoting the same text get two entries."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(..., pattern=r"^ev_\d+$", description="ev_1, ev_2, ...")
    doc_id: str
    quote: str = Field(..., min_length=1)
    page: Optional[int] = None
    line: Optional[int] = None
    bbox: Optional[Tuple[float, float, float, float]] = None
    cited_by: str = Field(..., description="id of the signal or conflict citing this quote")


class RunMeta(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    run_id: str = Field(..., min_length=1)
    pack_id: str = Field(..., min_length=1)
    model: str = Field(..., min_length=1)
    config_hash: str = Field(..., min_length=1)
    created_at: datetime


class RunRecord(BaseModel):
    """Unit of persistence: one per successful compile, latest-only per pack."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    run_meta: RunMeta
    inputs: List[DocumentInput] = Field(..., min_length=1)
    signals: List[Signal] = Field(default_factory=list)
    conflicts: List[Conflict] = Field(default_factory=list)
    drops: List[Drop] = Field(default_factory=list)
    next_checks: List[NextCheck] = Field(default_factory=list)
    evidence: List[EvidenceEntry] = Field(default_factory=list)


class SignalPack(BaseModel):
    """Compile response. `_cached` is only present when served from the run store."""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    case_id: str
    processed_at: datetime
    run_id: str
    signals: List[Signal] = Field(default_factory=list)
    drops: List[Drop] = Field(default_factory=list)
    conflicts: List[Conflict] = Field(default_factory=list)
    next_checks: List[NextCheck] = Field(default_factory=list)
    cached: Optional[bool] = Field(default=None, alias="_cached")

    @classmethod
    def from_run(cls, record: RunRecord, case_id: Optional[str] = None, cached: bool = False) -> "SignalPack":
        return cls(
            case_id=case_id or record.run_meta.pack_id,
            processed_at=record.run_meta.created_at,
            run_id=record.run_meta.run_id,
            signals=list(record.signals),
            drops=list(record.drops),
            conflicts=list(record.conflicts),
            next_checks=list(record.next_checks),
            cached=True if cached else None,
        )

    def to_response(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
