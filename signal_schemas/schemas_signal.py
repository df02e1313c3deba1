# signal_schemas/schemas_signal.py
from __future__ import annotations

from collections import Counter
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ---- Closed taxonomies ----
# New categories require a code change here; the model is never allowed to invent one.

class SignalType(str, Enum):
    CASH_DISCREPANCY = "liquidity.cash_discrepancy"
    COVENANT_BREACH = "liquidity.covenant_breach"
    NEAR_TERM_OUTFLOWS = "liquidity.near_term_outflows"
    QUALITY_NONCONFORMANCE = "quality.nonconformance"
    AR_AT_RISK = "sales.ar_at_risk"
    INVENTORY_DISCREPANCY = "ops.inventory_discrepancy"
    RECEIPT_DISCREPANCY = "ops.receipt_discrepancy"
    BORDER_DELAY = "logistics.border_delay"
    UNHEDGED_PAYABLE = "fx.unhedged_payable"

    @property
    def category(self) -> str:
        return self.value.split(".", 1)[0]


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """0 is most severe."""
        return _SEVERITY_ORDER.index(self)


_SEVERITY_ORDER = [Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW]


class DropReason(str, Enum):
    MISSING_EVIDENCE = "MISSING_EVIDENCE"
    AMBIGUOUS = "AMBIGUOUS"
    REFERENCED_NOT_ATTACHED = "REFERENCED_NOT_ATTACHED"


class ConflictType(str, Enum):
    CASH_DEFINITION = "liquidity.cash_definition"
    CASH_AMOUNT = "liquidity.cash_amount"
    ETA = "logistics.eta"
    QUANTITY = "logistics.quantity"
    CONFORMANCE = "quality.conformance"
    PAYMENT_TERMS = "sales.payment_terms"
    INVENTORY_COUNT = "ops.inventory_count"


class ConflictFlag(str, Enum):
    VALUE_DATE_MISMATCH = "VALUE_DATE_MISMATCH"
    DEFINITION_UNKNOWN = "DEFINITION_UNKNOWN"
    BLOCKER = "BLOCKER"


class CashDefinition(str, Enum):
    LEDGER = "ledger"
    AVAILABLE = "available"
    RESTRICTED = "restricted"
    UNRESTRICTED = "unrestricted"
    INTERNAL_REPORTED = "internal_reported"
    UNKNOWN = "unknown"


class NextCheckTemplate(str, Enum):
    CASH_RECONCILIATION = "cash_reconciliation"
    COVENANT_THRESHOLD_CHECK = "covenant_threshold_check"
    ETA_CONFIRMATION = "eta_confirmation"
    QUANTITY_VERIFICATION = "quantity_verification"
    QUALITY_RETEST = "quality_retest"
    PAYMENT_STATUS = "payment_status"
    RESTRICTED_CLASSIFICATION = "restricted_classification"


# Canonical question per template. Placeholders are filled from NextCheck.slots.
NEXT_CHECK_TEMPLATES: Dict[NextCheckTemplate, str] = {
    NextCheckTemplate.CASH_RECONCILIATION: (
        "Reconcile {internal_source} cash of {internal_value} against the bank "
        "{bank_definition} balance of {bank_value} and enumerate restricted items."
    ),
    NextCheckTemplate.COVENANT_THRESHOLD_CHECK: (
        "Is {metric} at or above the covenant threshold of {threshold} under the "
        "{covenant_definition} definition?"
    ),
    NextCheckTemplate.ETA_CONFIRMATION: (
        "Confirm the {milestone} ETA for {shipment} with {authoritative_source}."
    ),
    NextCheckTemplate.QUANTITY_VERIFICATION: (
        "Verify the {item} quantity: {claimed_quantity} claimed vs {observed_quantity} observed."
    ),
    NextCheckTemplate.QUALITY_RETEST: (
        "Retest {lot} against {standard} and confirm pass or fail."
    ),
    NextCheckTemplate.PAYMENT_STATUS: (
        "Confirm the payment status of {invoice} with {counterparty}."
    ),
    NextCheckTemplate.RESTRICTED_CLASSIFICATION: (
        "Does {item} count toward {metric} under the covenant definition?"
    ),
}


class _KeepMissing(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def render_template_question(template: NextCheckTemplate, slots: Dict[str, Any]) -> str:
    """Fill the canonical question for `template`; unknown placeholders stay visible."""
    return NEXT_CHECK_TEMPLATES[template].format_map(_KeepMissing(slots))


def _token(v: Any, *, upper: bool = False) -> Any:
    # Only trims/case-folds. Anything still outside the enum fails validation.
    if isinstance(v, str):
        v = v.strip()
        return v.upper() if upper else v.lower()
    return v


def _none_to_list(v: Any) -> Any:
    return [] if v is None else v


# ---- Evidence ----

class CandidateEvidenceSpan(BaseModel):
    """
    An evidence span as returned by the model. The quote may be empty here;
    the verifier decides whether the owning finding survives.
    """
    model_config = ConfigDict(extra="ignore")

    source: str = Field(..., min_length=1, description="document the quote was copied from")
    quote: str = ""
    page: Optional[int] = Field(default=None, ge=1)
    line: Optional[int] = Field(default=None, ge=1)
    bbox: Optional[Tuple[float, float, float, float]] = Field(
        default=None, description="[x, y, width, height], normalized 0-1 (scans)"
    )

    @field_validator("quote", mode="before")
    @classmethod
    def quote_none_as_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("bbox")
    @classmethod
    def bbox_normalized(cls, v: Optional[Tuple[float, float, float, float]]):
        if v is not None and any(x < 0.0 or x > 1.0 for x in v):
            raise ValueError(f"bbox values must be within [0, 1]: {v}")
        return v


class EvidenceSpan(CandidateEvidenceSpan):
    """Accepted span: the quote is verbatim source text and never blank."""
    model_config = ConfigDict(extra="forbid")

    quote: str = Field(..., min_length=1, pattern=r"\S")


# ---- Findings ----

class CandidateSignal(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1)
    type: SignalType
    summary: str = Field(..., min_length=1)
    severity: Severity
    severity_reason: Optional[str] = Field(default=None, description="calibration rule applied")
    owner: str = Field(..., min_length=1, description="responsible role, e.g. 'Treasury'")

    evidence: List[CandidateEvidenceSpan] = Field(default_factory=list)

    recommended_check: str
    value: Optional[Union[int, float, str]] = None
    unit: Optional[str] = None
    blocker_for: List[str] = Field(default_factory=list)

    @field_validator("type", "severity", mode="before")
    @classmethod
    def normalize_tokens(cls, v: Any) -> Any:
        return _token(v)

    @field_validator("evidence", "blocker_for", mode="before")
    @classmethod
    def null_as_empty(cls, v: Any) -> Any:
        return _none_to_list(v)


class Signal(CandidateSignal):
    """A finding that passed evidence verification."""
    model_config = ConfigDict(extra="forbid")

    evidence: List[EvidenceSpan] = Field(..., min_length=1)


# ---- Drops / conflicts / next checks ----
# These cross the trust boundary unchanged, so unknown keys are ignored rather than stored.

class Drop(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1)
    what: str
    reason: DropReason
    detail: str = ""
    would_fix: str = ""

    @field_validator("reason", mode="before")
    @classmethod
    def normalize_reason(cls, v: Any) -> Any:
        return _token(v, upper=True)


class ConflictClaim(BaseModel):
    model_config = ConfigDict(extra="ignore")

    source: str = Field(..., min_length=1)
    value: str
    quote: str = ""
    page: Optional[int] = Field(default=None, ge=1)
    definition: Optional[CashDefinition] = None
    value_date: Optional[date] = None

    @field_validator("value", mode="before")
    @classmethod
    def value_as_text(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("quote", mode="before")
    @classmethod
    def quote_none_as_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("definition", mode="before")
    @classmethod
    def normalize_definition(cls, v: Any) -> Any:
        return _token(v)


class Conflict(BaseModel):
    """Sources disagree on one topic. No claim is marked authoritative."""
    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1)
    type: ConflictType
    topic: str
    claims: List[ConflictClaim] = Field(..., min_length=1)
    flags: List[ConflictFlag] = Field(default_factory=list)
    how_to_resolve: str = ""

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v: Any) -> Any:
        return _token(v)

    @field_validator("flags", mode="before")
    @classmethod
    def normalize_flags(cls, v: Any) -> Any:
        v = _none_to_list(v)
        if isinstance(v, list):
            return [_token(x, upper=True) for x in v]
        return v

    @field_validator("flags")
    @classmethod
    def flags_as_set(cls, v: List[ConflictFlag]) -> List[ConflictFlag]:
        # set semantics, first occurrence keeps its position
        return list(dict.fromkeys(v))


class NextCheck(BaseModel):
    model_config = ConfigDict(extra="ignore")

    priority: int = Field(..., ge=1, description="1 = first")
    owner: str = Field(..., min_length=1)
    template: NextCheckTemplate
    question: str = ""
    done_when: str
    slots: Dict[str, Union[int, float, str]] = Field(default_factory=dict)

    @field_validator("template", mode="before")
    @classmethod
    def normalize_template(cls, v: Any) -> Any:
        return _token(v)

    @field_validator("slots", mode="before")
    @classmethod
    def slots_none_as_empty(cls, v: Any) -> Any:
        return {} if v is None else v

    @model_validator(mode="after")
    def fill_question(self) -> "NextCheck":
        if not self.question.strip():
            self.question = render_template_question(self.template, self.slots)
        return self


# ---- Raw model response ----

class CandidateResponse(BaseModel):
    """The shape the inference call must parse into before anything is trusted."""
    model_config = ConfigDict(extra="ignore")

    signals: List[CandidateSignal] = Field(default_factory=list)
    conflicts: List[Conflict] = Field(default_factory=list)
    drops: List[Drop] = Field(default_factory=list)
    next_checks: List[NextCheck] = Field(default_factory=list)

    @field_validator("signals", "conflicts", "drops", "next_checks", mode="before")
    @classmethod
    def null_as_empty(cls, v: Any) -> Any:
        return _none_to_list(v)

    @model_validator(mode="after")
    def ids_unique(self) -> "CandidateResponse":
        # Ids key evidence citations and demotions; collisions are rejected, never repaired.
        signal_ids = [s.id for s in self.signals]
        conflict_ids = [c.id for c in self.conflicts]
        drop_ids = [d.id for d in self.drops]

        for kind, ids in (("signal", signal_ids), ("conflict", conflict_ids), ("drop", drop_ids)):
            dupes = _duplicates(ids)
            if dupes:
                raise ValueError(f"Duplicate {kind} ids: {dupes}")

        shared = sorted(set(signal_ids) & set(conflict_ids))
        if shared:
            raise ValueError(f"Ids used by both a signal and a conflict: {shared}")

        reserved = sorted({f"D_{sid}" for sid in signal_ids} & set(drop_ids))
        if reserved:
            raise ValueError(f"Drop ids reserved for demoted signals: {reserved}")
        return self


def _duplicates(ids: List[str]) -> List[str]:
    return sorted(i for i, n in Counter(ids).items() if n > 1)
