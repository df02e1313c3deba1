"""Pytest configuration and shared fixtures."""

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import pytest

from signal_compiler.catalog import PackCatalog
from signal_compiler.compile import DeadlinePolicy, SignalCompiler
from signal_compiler.contracts import LoadedDocument
from signal_compiler.llm import InferenceGateway
from signal_compiler.store import FileRunStore

FIXED_NOW = datetime(2026, 1, 26, 9, 30, 0, tzinfo=timezone.utc)

DEMO_FILES = [
    ("weekly-pack.pdf", "Weekly_Pack_W04.pdf"),
    ("email-thread.pdf", "Email_Thread_Covenant.pdf"),
    ("meeting-notes.pdf", "Meeting_Notes_Cash_Risk.pdf"),
    ("qa-report-scan.pdf", "QA_Lab_Report_Scan.pdf"),
    ("bank-statement-scan.pdf", "Bank_Statement_Scan.pdf"),
]


def signal_dict(signal_id: str, *, quotes: Optional[Sequence[str]] = ("Cash on hand (USD) 85,240",),
                severity: str = "high", signal_type: str = "liquidity.cash_discrepancy") -> Dict[str, Any]:
    """Candidate signal as the model would return it. quotes=None omits evidence entirely."""
    d: Dict[str, Any] = {
        "id": signal_id,
        "type": signal_type,
        "summary": f"Summary for {signal_id}",
        "severity": severity,
        "owner": "Treasury",
        "recommended_check": "Reconcile cash under bank covenant definition",
    }
    if quotes is not None:
        d["evidence"] = [{"source": "weekly-pack.pdf", "quote": q, "page": 1} for q in quotes]
    return d


def conflict_dict(conflict_id: str = "C1") -> Dict[str, Any]:
    return {
        "id": conflict_id,
        "type": "liquidity.cash_definition",
        "topic": "Cash position",
        "claims": [
            {"source": "weekly-pack.pdf", "value": "85,240", "quote": "Cash on hand (USD) 85,240", "page": 1,
             "definition": "internal_reported"},
            {"source": "bank-statement-scan.pdf", "value": 62184.09, "quote": "Closing Ledger Balance: 62,184.09",
             "definition": "ledger", "value_date": "2026-01-25"},
            {"source": "meeting-notes.pdf", "value": "about 60k", "quote": ""},
        ],
        "flags": ["VALUE_DATE_MISMATCH", "BLOCKER"],
        "how_to_resolve": "Clarify which definition matches the covenant",
    }


def response_dict(signals: List[Dict[str, Any]], drops: Optional[List[Dict[str, Any]]] = None,
                  conflicts: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    return {
        "signals": signals,
        "drops": drops or [],
        "conflicts": conflicts or [],
        "next_checks": [
            {
                "priority": 1,
                "owner": "Treasury",
                "template": "cash_reconciliation",
                "question": "What is the reconciled cash position under the covenant definition?",
                "done_when": "Single number with evidence span and definition note",
                "slots": {"internal_source": "weekly pack", "internal_value": 85240},
            }
        ],
    }


class FakeGateway(InferenceGateway):
    """Scripted inference: returns `response`, raises `error`, or stalls for `delay` seconds."""

    model_id = "fake-model"

    def __init__(self, response: Union[str, Dict[str, Any], None] = None,
                 error: Optional[Exception] = None, delay: float = 0.0) -> None:
        self.response = response
        self.error = error
        self.delay = delay
        self.calls: List[Dict[str, Any]] = []

    async def infer(self, prompt_text: str, documents: Sequence[LoadedDocument], deadline: float) -> str:
        self.calls.append({"prompt": prompt_text, "documents": list(documents), "deadline": deadline})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if isinstance(self.response, str):
            return self.response
        return json.dumps(self.response)


@pytest.fixture
def artifacts_dir(tmp_path: Path) -> Path:
    """Five small PDF-looking files, one page each."""
    root = tmp_path / "demo-artifacts"
    root.mkdir()
    for i, (_, file_name) in enumerate(DEMO_FILES, start=1):
        (root / file_name).write_bytes(b"%PDF-1.4\n1 0 obj << /Type /Page >> endobj\n% doc " + str(i).encode())
    return root


@pytest.fixture
def catalog() -> PackCatalog:
    return PackCatalog.from_mapping(
        {
            "packs": {
                "demo_pack": {
                    "name": "Demo pack",
                    "case_id": "demo_case",
                    "files": [{"name": name, "file": file_name} for name, file_name in DEMO_FILES],
                },
                "other_pack": {
                    "files": [{"name": "notes.pdf", "file": "Other_Notes.pdf"}],
                },
            }
        }
    )


@pytest.fixture
def store(tmp_path: Path) -> FileRunStore:
    return FileRunStore(tmp_path / "runs")


@pytest.fixture
def make_compiler(catalog: PackCatalog, store: FileRunStore, artifacts_dir: Path) -> Callable[..., SignalCompiler]:
    def _make(gateway: InferenceGateway, **kwargs: Any) -> SignalCompiler:
        kwargs.setdefault("search_roots", [artifacts_dir])
        kwargs.setdefault("clock", lambda: FIXED_NOW)
        kwargs.setdefault("deadline", DeadlinePolicy(base_s=5.0, per_mb_s=0.0, max_s=5.0))
        return SignalCompiler(catalog=catalog, store=store, gateway=gateway, **kwargs)

    return _make
