# signal_compiler/prompt.py
from __future__ import annotations

import json
from typing import Dict

from signal_schemas.schemas_signal import (
    ConflictFlag,
    ConflictType,
    DropReason,
    NEXT_CHECK_TEMPLATES,
    Severity,
    SignalType,
)


# Severity calibration per signal type. Enforced by instruction only; the
# verifier does not re-grade severities.
SEVERITY_RULES: Dict[SignalType, Dict[str, str]] = {
    SignalType.COVENANT_BREACH: {
        "threshold": "Any",
        "rule": "CRITICAL if covenant breach is possible; HIGH if >80% of threshold consumed",
    },
    SignalType.CASH_DISCREPANCY: {
        "threshold": ">5% or >$10,000",
        "rule": "HIGH if discrepancy >5% of reported value or >$10,000; MEDIUM otherwise",
    },
    SignalType.QUALITY_NONCONFORMANCE: {
        "threshold": "Any failed test parameter",
        "rule": "CRITICAL if safety-related; HIGH if customer-facing; MEDIUM if internal-only",
    },
    SignalType.INVENTORY_DISCREPANCY: {
        "threshold": ">2% or >$5,000",
        "rule": "HIGH if >2% variance or >$5,000; MEDIUM if 1-2%; LOW if <1%",
    },
    SignalType.BORDER_DELAY: {
        "threshold": ">24h delay",
        "rule": (
            "HIGH if delay >24h and affects production; MEDIUM if >24h without "
            "production impact; LOW if <24h"
        ),
    },
}


_OUTPUT_EXAMPLE = {
    "signals": [
        {
            "id": "S1",
            "type": "liquidity.cash_discrepancy",
            "summary": "<one-line claim>",
            "severity": "high",
            "severity_reason": "<calibration rule applied>",
            "owner": "Treasury",
            "value": 0,
            "unit": "USD",
            "evidence": [{"source": "<document name>", "quote": "<verbatim text>", "page": 1}],
            "recommended_check": "<what to verify>",
            "blocker_for": [],
        }
    ],
    "drops": [
        {
            "id": "D1",
            "what": "<claim that could not be grounded>",
            "reason": "REFERENCED_NOT_ATTACHED",
            "detail": "<why>",
            "would_fix": "<input that would ground it>",
        }
    ],
    "conflicts": [
        {
            "id": "C1",
            "type": "liquidity.cash_definition",
            "topic": "<human label>",
            "claims": [
                {
                    "source": "<document name>",
                    "value": "<value as written>",
                    "quote": "<verbatim text>",
                    "page": 1,
                    "definition": "ledger",
                    "value_date": "2026-01-25",
                }
            ],
            "flags": ["VALUE_DATE_MISMATCH"],
            "how_to_resolve": "<how to settle it without picking a winner>",
        }
    ],
    "next_checks": [
        {
            "priority": 1,
            "owner": "Treasury",
            "template": "cash_reconciliation",
            "question": "<template question with slots filled>",
            "done_when": "<definition of done>",
            "slots": {"internal_source": "<...>", "internal_value": "<...>"},
        }
    ],
}


def _bullets(values) -> str:
    return "\n".join(f"- {v}" for v in values)


def _severity_table() -> str:
    return "\n".join(
        f"- {t.value} ({r['threshold']}): {r['rule']}" for t, r in SEVERITY_RULES.items()
    )


def _template_catalog() -> str:
    return "\n".join(f"- {t.value}: {q}" for t, q in NEXT_CHECK_TEMPLATES.items())


SIGNAL_COMPILER_PROMPT = f"""You are a Signal Compiler for executive documents. Extract evidence-backed signals that help executives make decisions.

## HARD RULES

1. NO SIGNAL WITHOUT EVIDENCE. Every signal includes at least one exact quote from a source document. If you cannot quote it, do not emit it as a signal.
2. NO INVENTED NUMBERS. Values come directly from the text. Never infer or calculate.
3. SURFACE CONFLICTS. When sources disagree on the same metric, emit a conflict listing every claim. Do not pick a winner.
4. EXPLAIN DROPS. Claims you cannot ground (e.g. referenced attachments that are missing) go to drops with a reason.
5. QUOTE EXACTLY. "quote" is copied verbatim from the source, character for character.

## SIGNAL TYPES

{_bullets(t.value for t in SignalType)}

## SEVERITY LEVELS

{_bullets(s.value for s in Severity)}

Calibration (state the rule you applied in severity_reason):
{_severity_table()}

## OWNERS

- CFO: covenant breaches, major financial decisions
- Treasury: cash positions, FX, liquidity
- COO: operations, logistics, inventory
- QA: quality issues
- Sales: AR, customer disputes

## CONFLICT TYPES AND FLAGS

{_bullets(t.value for t in ConflictType)}

Flags: {", ".join(f.value for f in ConflictFlag)}
Cash definitions: ledger, available, restricted, unrestricted, internal_reported, unknown

## DROP REASONS

{_bullets(r.value for r in DropReason)}

## NEXT CHECK TEMPLATES

Use only these template ids. Put case-specific values in "slots".
{_template_catalog()}

## OUTPUT FORMAT

Return ONLY a single JSON object with exactly this structure (values are placeholders):

{json.dumps(_OUTPUT_EXAMPLE, indent=2)}

## DOCUMENTS TO ANALYZE

Analyze ALL of the following documents and cross-reference them. Use the document name shown in each header as the evidence "source".
"""


def document_header(name: str) -> str:
    return f"\n\n--- Document: {name} ---\n"
