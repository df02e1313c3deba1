# signal_compiler/catalog.py
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Tuple

import yaml

from .contracts import PACK_ID_RE, PackFile
from .exceptions import ConfigurationError, UnknownPackError
from .io_utils import PathLike
from .traceability import doc_id_from_source


@dataclass(frozen=True)
class PackSummary:
    id: str
    name: str
    file_count: int


@dataclass(frozen=True)
class PackDefinition:
    pack_id: str
    name: str
    case_id: str
    files: Tuple[PackFile, ...]

    def summary(self) -> PackSummary:
        return PackSummary(id=self.pack_id, name=self.name, file_count=len(self.files))


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise ConfigurationError(msg)


def _parse_file(pack_id: str, idx: int, raw: Any) -> PackFile:
    _require(isinstance(raw, dict), f"Pack {pack_id}: file #{idx} must be a mapping.")
    _require("file" in raw, f"Pack {pack_id}: file #{idx} missing key: file")
    file_name = str(raw["file"])
    name = str(raw.get("name") or file_name)
    return PackFile(
        doc_id=str(raw.get("doc_id") or doc_id_from_source(name)),
        name=name,
        file=file_name,
        media_type=str(raw.get("media_type") or "application/pdf"),
    )


def _parse_pack(pack_id: str, raw: Any) -> PackDefinition:
    _require(
        bool(PACK_ID_RE.match(pack_id)) and ".." not in pack_id,
        f"Invalid pack id {pack_id!r}: use letters, digits, '_', '-' or '.' (it names the run file).",
    )
    _require(isinstance(raw, dict), f"Pack {pack_id} must be a mapping.")
    files_raw = raw.get("files")
    _require(isinstance(files_raw, list) and len(files_raw) > 0, f"Pack {pack_id} must declare a non-empty files list.")

    files = tuple(_parse_file(pack_id, i, f) for i, f in enumerate(files_raw, start=1))
    doc_ids = [f.doc_id for f in files]
    _require(len(doc_ids) == len(set(doc_ids)), f"Pack {pack_id} has duplicate doc_ids: {doc_ids}")

    return PackDefinition(
        pack_id=pack_id,
        name=str(raw.get("name") or pack_id),
        case_id=str(raw.get("case_id") or pack_id),
        files=files,
    )


class PackCatalog:
    """Named, ordered document bundles. Declaration order is preserved."""

    def __init__(self, packs: Mapping[str, PackDefinition]) -> None:
        self._packs: Dict[str, PackDefinition] = dict(packs)

    @classmethod
    def from_mapping(cls, data: Any) -> "PackCatalog":
        _require(isinstance(data, dict), "Pack catalog must be a mapping.")
        packs_raw = data.get("packs")
        _require(isinstance(packs_raw, dict), "Pack catalog must contain a 'packs' mapping.")
        return cls({str(pid): _parse_pack(str(pid), raw) for pid, raw in packs_raw.items()})

    @classmethod
    def from_yaml(cls, path: PathLike) -> "PackCatalog":
        p = Path(path)
        if not p.exists():
            raise ConfigurationError(f"Pack catalog not found: {p}")
        try:
            data = yaml.safe_load(p.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {p}: {e}", e) from e
        return cls.from_mapping(data)

    @property
    def pack_ids(self) -> List[str]:
        return list(self._packs)

    def list_packs(self) -> List[PackSummary]:
        return [p.summary() for p in self._packs.values()]

    def get(self, pack_id: str) -> PackDefinition:
        try:
            return self._packs[pack_id]
        except KeyError:
            raise UnknownPackError(pack_id, self.pack_ids) from None

    def resolve(self, pack_id: str) -> List[PackFile]:
        return list(self.get(pack_id).files)
