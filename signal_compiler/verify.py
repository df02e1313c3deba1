# signal_compiler/verify.py
from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from signal_schemas.schemas_signal import CandidateSignal, Drop, DropReason, Signal

from .logging_utils import get_logger

LOGGER = get_logger(__name__)

MISSING_EVIDENCE_FIX = "manual review required"


class VerificationError(ValueError):
    """Fail-closed verifier error."""


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise VerificationError(msg)


def missing_evidence_detail(candidate: CandidateSignal) -> Optional[str]:
    """
    Returns None when the candidate carries usable evidence, otherwise a
    human-readable reason. A quote of only whitespace counts as empty.
    """
    spans = candidate.evidence
    if not spans:
        return "Signal extracted but no evidence quote provided"

    empty = [i for i, span in enumerate(spans, start=1) if not span.quote.strip()]
    if empty:
        return (
            f"Signal extracted but {len(empty)} of {len(spans)} evidence spans "
            f"have an empty quote (span {', '.join(str(i) for i in empty)})"
        )
    return None


def demote_to_drop(candidate: CandidateSignal, detail: str) -> Drop:
    return Drop(
        id=f"D_{candidate.id}",
        what=candidate.summary,
        reason=DropReason.MISSING_EVIDENCE,
        detail=detail,
        would_fix=MISSING_EVIDENCE_FIX,
    )


def verify_evidence(
    candidate_signals: Sequence[CandidateSignal],
    candidate_drops: Sequence[Drop],
) -> Tuple[List[Signal], List[Drop]]:
    """
    No claim without a quote.

    Accepted candidates are promoted unchanged to `Signal`. Every rejected
    candidate becomes exactly one MISSING_EVIDENCE drop with id "D_<signal id>".
    Drops the model reported itself follow the synthesized ones, unchanged.
    """
    candidate_ids = [c.id for c in candidate_signals]
    _require(len(candidate_ids) == len(set(candidate_ids)), f"Duplicate signal ids: {candidate_ids}")
    reserved = {f"D_{cid}" for cid in candidate_ids} & {d.id for d in candidate_drops}
    _require(not reserved, f"Drop ids reserved for demoted signals: {sorted(reserved)}")

    accepted: List[Signal] = []
    demoted: List[Drop] = []

    for candidate in candidate_signals:
        detail = missing_evidence_detail(candidate)
        if detail is not None:
            LOGGER.warning(f"Signal {candidate.id} has no usable evidence - moving to drops: {detail}")
            demoted.append(demote_to_drop(candidate, detail))
            continue
        accepted.append(Signal.model_validate(candidate.model_dump()))

    drops = demoted + list(candidate_drops)

    LOGGER.info(
        f"{len(accepted)} signals verified, {len(demoted)} demoted, "
        f"{len(drops)} drops total"
    )
    return accepted, drops
