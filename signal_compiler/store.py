# signal_compiler/store.py
from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from signal_schemas.schemas_run import RunRecord

from .contracts import PACK_ID_RE
from .exceptions import PersistenceError, RunStoreError
from .io_utils import PathLike, read_json, write_json
from .logging_utils import get_logger

LOGGER = get_logger(__name__)


def _check_pack_id(pack_id: str) -> str:
    if not isinstance(pack_id, str) or not PACK_ID_RE.match(pack_id) or ".." in pack_id:
        raise RunStoreError(f"Invalid pack id for run store: {pack_id!r}")
    return pack_id


class RunStore(ABC):
    """pack_id -> latest RunRecord. Each successful save replaces the previous latest."""

    @abstractmethod
    def save(self, pack_id: str, record: RunRecord) -> None:
        """Persist `record` as the latest run of `pack_id`. Raises PersistenceError."""

    @abstractmethod
    def load_latest(self, pack_id: str) -> Optional[RunRecord]:
        """Latest run for `pack_id`, or None if the pack never completed a run."""

    @abstractmethod
    def exists(self, pack_id: str) -> bool:
        """Whether a latest run is stored for `pack_id`."""


class FileRunStore(RunStore):
    """
    One JSON file per pack under `root`: <root>/<pack_id>.json.

    Writes go through a temp file + rename, so readers never see a partial record.
    Concurrent saves for one pack are last-writer-wins.
    """

    def __init__(self, root: PathLike) -> None:
        self.root = Path(root)

    def path_for(self, pack_id: str) -> Path:
        return self.root / f"{_check_pack_id(pack_id)}.json"

    def save(self, pack_id: str, record: RunRecord) -> None:
        try:
            path = self.path_for(pack_id)
        except RunStoreError as e:
            raise PersistenceError(str(e), e) from e
        try:
            write_json(path, record.model_dump(mode="json"))
        except OSError as e:
            raise PersistenceError(f"Could not persist run for '{pack_id}' to {path}: {e}", e) from e
        LOGGER.info(f"Saved run {record.run_meta.run_id} -> {path}")

    def load_latest(self, pack_id: str) -> Optional[RunRecord]:
        path = self.path_for(pack_id)
        if not path.exists():
            return None
        try:
            return RunRecord.model_validate(read_json(path))
        except (ValueError, OSError) as e:
            # pydantic ValidationError is a ValueError
            raise RunStoreError(f"Stored run for '{pack_id}' is unreadable: {e}", e) from e

    def exists(self, pack_id: str) -> bool:
        return self.path_for(pack_id).is_file()
