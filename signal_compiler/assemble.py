# signal_compiler/assemble.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Sequence

from signal_schemas.schemas_run import DocumentInput, RunMeta, RunRecord

from .contracts import VerifiedOutput
from .io_utils import sha256_text
from .traceability import index_evidence

CONFIG_HASH_LEN = 12
RUN_ID_TIME_FORMAT = "%Y%m%dT%H%M%SZ"


def config_hash(prompt_text: str) -> str:
    """Short digest of the exact prompt wording in force for a run."""
    return sha256_text(prompt_text)[:CONFIG_HASH_LEN]


def _as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def make_run_id(pack_id: str, timestamp: datetime) -> str:
    # Second resolution: two runs of one pack in the same second share an id.
    return f"{_as_utc(timestamp).strftime(RUN_ID_TIME_FORMAT)}_{pack_id}"


def assemble_run(
    pack_id: str,
    inputs: Sequence[DocumentInput],
    verified: VerifiedOutput,
    model_id: str,
    prompt_text: str,
    timestamp: datetime,
) -> RunRecord:
    """
    Build the immutable run record for one successful compile.

    Either returns a fully validated record or raises; no partial records.
    """
    if not inputs:
        raise ValueError(f"Cannot assemble a run for '{pack_id}' without inputs")

    created_at = _as_utc(timestamp)
    signals = list(verified.signals)
    conflicts = list(verified.conflicts)

    return RunRecord(
        run_meta=RunMeta(
            run_id=make_run_id(pack_id, created_at),
            pack_id=pack_id,
            model=model_id,
            config_hash=config_hash(prompt_text),
            created_at=created_at,
        ),
        inputs=list(inputs),
        signals=signals,
        conflicts=conflicts,
        drops=list(verified.drops),
        next_checks=sorted(verified.next_checks, key=lambda c: c.priority),
        evidence=index_evidence(signals, conflicts),
    )
