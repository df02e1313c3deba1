# signal_compiler/render_report_md.py
from __future__ import annotations

from collections import Counter
from typing import Any, List, Optional, Sequence

from signal_schemas.schemas_run import EvidenceEntry, RunRecord
from signal_schemas.schemas_signal import Conflict, Drop, NextCheck, Severity, Signal, SignalType

from .traceability import evidence_for


def _md_escape(s: Any) -> str:
    return str(s).replace("\n", " ").strip()


def _cell(s: Any) -> str:
    if s is None or s == "":
        return "-"
    return _md_escape(s).replace("|", "\\|")


def _table(headers: Sequence[str], rows: Sequence[Sequence[Any]]) -> List[str]:
    out = ["| " + " | ".join(headers) + " |", "|" + "|".join("---" for _ in headers) + "|"]
    for row in rows:
        out.append("| " + " | ".join(_cell(c) for c in row) + " |")
    return out


def _location(page: Optional[int], line: Optional[int] = None) -> str:
    parts = []
    if page is not None:
        parts.append(f"p.{page}")
    if line is not None:
        parts.append(f"l.{line}")
    return ", ".join(parts)


def _render_summary(record: RunRecord) -> List[str]:
    md = ["## Summary", ""]

    by_severity = Counter(s.severity for s in record.signals)
    md.extend(_table(["Severity", "Count"], [[sev.value.capitalize(), by_severity.get(sev, 0)] for sev in Severity]))
    md.append("")

    by_category = Counter(s.type.category for s in record.signals)
    categories = sorted({t.category for t in SignalType})
    md.extend(_table(["Category", "Count"], [[c, by_category.get(c, 0)] for c in categories]))
    md.append("")

    md.append(f"- signals: {len(record.signals)}")
    md.append(f"- conflicts: {len(record.conflicts)}")
    md.append(f"- drops: {len(record.drops)}")
    md.append(f"- next checks: {len(record.next_checks)}")
    md.append(f"- evidence citations: {len(record.evidence)}")
    md.append("")
    return md


def _render_inputs(record: RunRecord) -> List[str]:
    md = ["## Inputs", ""]
    rows = [
        [d.doc_id, d.filename, d.type, d.page_count, f"`{d.sha256[:16]}`"]
        for d in record.inputs
    ]
    md.extend(_table(["Doc", "File", "Type", "Pages", "SHA-256"], rows))
    md.append("")
    return md


def _render_quotes(entries: Sequence[EvidenceEntry]) -> List[str]:
    out: List[str] = []
    for e in entries:
        loc = _location(e.page, e.line)
        where = f"{e.doc_id}, {loc}" if loc else e.doc_id
        out.append(f"- `{e.id}` ({where}): \"{_md_escape(e.quote)}\"")
    return out


def _render_signal(sig: Signal, entries: Sequence[EvidenceEntry]) -> List[str]:
    md = [f"### {sig.id} [{sig.severity.value.upper()}] {_md_escape(sig.summary)}", ""]
    md.append(f"- type: `{sig.type.value}`")
    md.append(f"- owner: {_md_escape(sig.owner)}")
    if sig.value is not None:
        unit = f" {sig.unit}" if sig.unit else ""
        md.append(f"- value: {sig.value}{unit}")
    if sig.severity_reason:
        md.append(f"- severity reason: {_md_escape(sig.severity_reason)}")
    md.append(f"- recommended check: {_md_escape(sig.recommended_check)}")
    if sig.blocker_for:
        md.append(f"- blocks: {', '.join(sig.blocker_for)}")
    md.append("")
    md.append("Evidence:")
    md.append("")
    md.extend(_render_quotes(entries))
    md.append("")
    return md


def _render_signals(record: RunRecord) -> List[str]:
    md = ["## Signals", ""]
    if not record.signals:
        return md + ["_No verified signals._", ""]

    # Most severe first; ties keep model order.
    for sig in sorted(record.signals, key=lambda s: s.severity.rank):
        md.extend(_render_signal(sig, evidence_for(record.evidence, sig.id)))
    return md


def _render_conflict(conflict: Conflict) -> List[str]:
    md = [f"### {conflict.id} {_md_escape(conflict.topic)}", ""]
    md.append(f"- type: `{conflict.type.value}`")
    if conflict.flags:
        md.append(f"- flags: {', '.join(f'`{f.value}`' for f in conflict.flags)}")
    md.append("")
    rows = [
        [
            c.source,
            c.value,
            c.definition.value if c.definition else None,
            c.value_date.isoformat() if c.value_date else None,
            c.page,
            c.quote,
        ]
        for c in conflict.claims
    ]
    md.extend(_table(["Source", "Value", "Definition", "Value date", "Page", "Quote"], rows))
    md.append("")
    md.append(f"Resolution: {_md_escape(conflict.how_to_resolve) or '-'}")
    md.append("")
    return md


def _render_conflicts(conflicts: Sequence[Conflict]) -> List[str]:
    md = ["## Conflicts", ""]
    if not conflicts:
        return md + ["_No conflicts._", ""]
    for c in conflicts:
        md.extend(_render_conflict(c))
    return md


def _render_drops(drops: Sequence[Drop]) -> List[str]:
    md = ["## Drops", ""]
    if not drops:
        return md + ["_No drops._", ""]
    md.extend(
        _table(
            ["ID", "Reason", "What", "Detail", "Would fix"],
            [[d.id, d.reason.value, d.what, d.detail, d.would_fix] for d in drops],
        )
    )
    md.append("")
    return md


def _render_next_checks(checks: Sequence[NextCheck]) -> List[str]:
    md = ["## Next Checks", ""]
    if not checks:
        return md + ["_No next checks._", ""]
    for check in sorted(checks, key=lambda c: c.priority):
        md.append(f"{check.priority}. **{_md_escape(check.question)}**")
        md.append(f"   - owner: {_md_escape(check.owner)}")
        md.append(f"   - template: `{check.template.value}`")
        md.append(f"   - done when: {_md_escape(check.done_when)}")
        if check.slots:
            slots = ", ".join(f"{k}=`{_md_escape(v)}`" for k, v in check.slots.items())
            md.append(f"   - slots: {slots}")
    md.append("")
    return md


def render_report_markdown(record: RunRecord) -> str:
    """Pure projection of a stored run; never touches inference."""
    meta = record.run_meta

    md: List[str] = []
    md.append(f"# Signal Report: `{meta.pack_id}`")
    md.append("")
    md.append(f"- run_id: `{meta.run_id}`")
    md.append(f"- model: `{meta.model}`")
    md.append(f"- config_hash: `{meta.config_hash}`")
    md.append(f"- created_at: `{meta.created_at.isoformat()}`")
    md.append("")

    md.extend(_render_summary(record))
    md.extend(_render_inputs(record))
    md.extend(_render_signals(record))
    md.extend(_render_conflicts(record.conflicts))
    md.extend(_render_drops(record.drops))
    md.extend(_render_next_checks(record.next_checks))

    return "\n".join(md).rstrip() + "\n"
