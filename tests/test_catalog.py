"""Tests for the pack catalog."""

from pathlib import Path

import pytest

from signal_compiler.catalog import PackCatalog
from signal_compiler.exceptions import ConfigurationError, UnknownPackError

PACKS_YAML = """\
packs:
  agrinova_w04_2026:
    name: AgriNova W04 2026
    case_id: agrinova_w04
    files:
      - name: weekly-pack.pdf
        file: Weekly_Pack_W04.pdf
      - name: email-thread.pdf
        file: Email_Thread_Covenant.pdf
  scratch:
    files:
      - file: Notes.PDF
"""


@pytest.fixture
def packs_file(tmp_path: Path) -> Path:
    p = tmp_path / "packs.yaml"
    p.write_text(PACKS_YAML, encoding="utf-8")
    return p


def test_from_yaml(packs_file: Path) -> None:
    catalog = PackCatalog.from_yaml(packs_file)

    assert catalog.pack_ids == ["agrinova_w04_2026", "scratch"]
    pack = catalog.get("agrinova_w04_2026")
    assert pack.name == "AgriNova W04 2026"
    assert pack.case_id == "agrinova_w04"
    assert [f.doc_id for f in pack.files] == ["weekly-pack", "email-thread"]
    assert [f.file for f in catalog.resolve("agrinova_w04_2026")] == ["Weekly_Pack_W04.pdf", "Email_Thread_Covenant.pdf"]


def test_defaults(packs_file: Path) -> None:
    pack = PackCatalog.from_yaml(packs_file).get("scratch")

    assert pack.name == "scratch"
    assert pack.case_id == "scratch"
    assert pack.files[0].name == "Notes.PDF"
    assert pack.files[0].doc_id == "Notes"
    assert pack.files[0].media_type == "application/pdf"


def test_list_packs(packs_file: Path) -> None:
    summaries = PackCatalog.from_yaml(packs_file).list_packs()

    assert [(s.id, s.file_count) for s in summaries] == [("agrinova_w04_2026", 2), ("scratch", 1)]


def test_unknown_pack_lists_known_ids(packs_file: Path) -> None:
    catalog = PackCatalog.from_yaml(packs_file)

    with pytest.raises(UnknownPackError) as exc_info:
        catalog.get("missing")

    assert exc_info.value.to_dict() == {
        "error": "UnknownPack",
        "detail": exc_info.value.message,
        "known_packs": ["agrinova_w04_2026", "scratch"],
    }


def test_shipped_catalog_loads() -> None:
    root = Path(__file__).resolve().parents[1]
    catalog = PackCatalog.from_yaml(root / "packs.yaml")

    assert "agrinova_w04_2026" in catalog.pack_ids
    assert len(catalog.get("agrinova_w04_2026").files) == 5


@pytest.mark.parametrize(
    "data",
    [
        None,
        {"packs": []},
        {"packs": {"p": {"files": []}}},
        {"packs": {"p": {"files": [{"name": "x.pdf"}]}}},
        {"packs": {"p": {"files": ["x.pdf"]}}},
        {"packs": {"p": {"files": [{"file": "a.pdf", "doc_id": "d"}, {"file": "b.pdf", "doc_id": "d"}]}}},
        {"packs": {"agrinova w04": {"files": [{"file": "a.pdf"}]}}},
        {"packs": {"../escape": {"files": [{"file": "a.pdf"}]}}},
    ],
    ids=["not-a-mapping", "packs-not-mapping", "no-files", "file-key-missing", "file-not-mapping", "duplicate-doc-id", "pack-id-with-space", "pack-id-with-path"],
)
def test_invalid_catalogs(data) -> None:
    with pytest.raises(ConfigurationError):
        PackCatalog.from_mapping(data)


def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        PackCatalog.from_yaml(tmp_path / "nope.yaml")


def test_invalid_yaml(tmp_path: Path) -> None:
    p = tmp_path / "bad.yaml"
    p.write_text("packs: [unclosed", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        PackCatalog.from_yaml(p)
