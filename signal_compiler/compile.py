# signal_compiler/compile.py
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional, Sequence

from signal_schemas.schemas_run import RunRecord, SignalPack
from signal_schemas.schemas_signal import CandidateResponse

from .assemble import assemble_run
from .catalog import PackCatalog, PackDefinition
from .contracts import LoadedDocument, VerifiedOutput
from .exceptions import (
    InferenceError,
    InferenceTimeoutError,
    InferenceTransportError,
    NoArtifactsError,
    PersistenceError,
    RunStoreError,
)
from .extract import parse_candidate_response
from .ingest import load_pack_documents
from .io_utils import PathLike
from .llm import InferenceGateway, inference_deadline
from .logging_utils import get_logger
from .prompt import SIGNAL_COMPILER_PROMPT
from .store import RunStore
from .verify import verify_evidence

LOGGER = get_logger(__name__)


class CompileState(str, Enum):
    LOADING_INPUTS = "LOADING_INPUTS"
    INFERRING = "INFERRING"
    VERIFYING = "VERIFYING"
    ASSEMBLING = "ASSEMBLING"
    PERSISTING = "PERSISTING"
    FALLBACK_LOOKUP = "FALLBACK_LOOKUP"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass(frozen=True)
class DeadlinePolicy:
    """Inference deadline in seconds: min(max_s, base_s + per_mb_s * payload MB)."""
    base_s: float = 60.0
    per_mb_s: float = 10.0
    max_s: float = 180.0

    def for_documents(self, documents: Sequence[LoadedDocument]) -> float:
        return inference_deadline(documents, self.base_s, self.per_mb_s, self.max_s)


@dataclass
class CompileResult:
    pack: SignalPack
    record: RunRecord
    cached: bool
    states: List[CompileState] = field(default_factory=list)

    @property
    def state(self) -> CompileState:
        return self.states[-1]


class _StateTrace:
    def __init__(self, pack_id: str) -> None:
        self.pack_id = pack_id
        self.states: List[CompileState] = []

    def enter(self, state: CompileState) -> None:
        self.states.append(state)
        LOGGER.info(f"[{self.pack_id}] -> {state.value}")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SignalCompiler:
    """
    One compile request per call; no state is shared between calls except the
    run store's latest slot per pack.

    LOADING_INPUTS -> INFERRING -> VERIFYING -> ASSEMBLING -> PERSISTING -> DONE
    INFERRING --(timeout|failure)--> FALLBACK_LOOKUP -> DONE | FAILED
    """

    def __init__(
        self,
        catalog: PackCatalog,
        store: RunStore,
        gateway: InferenceGateway,
        search_roots: Sequence[PathLike],
        prompt_text: str = SIGNAL_COMPILER_PROMPT,
        deadline: DeadlinePolicy = DeadlinePolicy(),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.catalog = catalog
        self.store = store
        self.gateway = gateway
        self.search_roots = list(search_roots)
        self.prompt_text = prompt_text
        self.deadline = deadline
        self.clock = clock

    async def compile(self, pack_id: str) -> CompileResult:
        # Unknown packs fail before any state is entered: nothing is loaded or written.
        pack = self.catalog.get(pack_id)
        trace = _StateTrace(pack_id)
        started = time.perf_counter()

        trace.enter(CompileState.LOADING_INPUTS)
        try:
            documents = load_pack_documents(pack_id, pack.files, self.search_roots)
        except NoArtifactsError:
            trace.enter(CompileState.FAILED)
            raise

        trace.enter(CompileState.INFERRING)
        try:
            candidate = await self.infer(documents)
        except InferenceError as err:
            LOGGER.warning(f"[{pack_id}] Live compilation failed ({err.kind}): {err}. Checking run store...")
            return self._fallback(pack, err, trace)

        trace.enter(CompileState.VERIFYING)
        signals, drops = verify_evidence(candidate.signals, candidate.drops)
        verified = VerifiedOutput(
            signals=signals,
            drops=drops,
            conflicts=candidate.conflicts,
            next_checks=candidate.next_checks,
        )

        trace.enter(CompileState.ASSEMBLING)
        record = assemble_run(
            pack_id=pack_id,
            inputs=[d.to_input() for d in documents],
            verified=verified,
            model_id=self.gateway.model_id,
            prompt_text=self.prompt_text,
            timestamp=self.clock(),
        )

        trace.enter(CompileState.PERSISTING)
        try:
            self.store.save(pack_id, record)
        except PersistenceError as e:
            LOGGER.error(f"[{pack_id}] Run {record.run_meta.run_id} not persisted: {e}")

        trace.enter(CompileState.DONE)
        duration_ms = int((time.perf_counter() - started) * 1000)
        LOGGER.info(
            f"[{pack_id}] Completed in {duration_ms}ms - {len(record.signals)} signals, "
            f"{len(record.conflicts)} conflicts, {len(record.drops)} drops"
        )
        return CompileResult(
            pack=SignalPack.from_run(record, case_id=pack.case_id),
            record=record,
            cached=False,
            states=trace.states,
        )

    async def infer(self, documents: Sequence[LoadedDocument]) -> CandidateResponse:
        """Time-boxed model call; every failure mode surfaces as an InferenceError."""
        deadline = self.deadline.for_documents(documents)
        try:
            raw = await asyncio.wait_for(
                self.gateway.infer(self.prompt_text, documents, deadline),
                timeout=deadline,
            )
        except asyncio.TimeoutError as e:
            raise InferenceTimeoutError(f"Inference exceeded {deadline:.0f}s deadline", e) from e
        except InferenceError:
            raise
        except Exception as e:
            raise InferenceTransportError(f"Inference gateway failed: {e}", e) from e

        return parse_candidate_response(raw)

    def _fallback(self, pack: PackDefinition, err: InferenceError, trace: _StateTrace) -> CompileResult:
        trace.enter(CompileState.FALLBACK_LOOKUP)
        cached: Optional[RunRecord]
        try:
            cached = self.store.load_latest(pack.pack_id)
        except RunStoreError as e:
            LOGGER.error(f"[{pack.pack_id}] Cached run unreadable, ignoring it: {e}")
            cached = None

        if cached is None:
            trace.enter(CompileState.FAILED)
            LOGGER.error(f"[{pack.pack_id}] No cached run; surfacing {err.kind}")
            raise err

        trace.enter(CompileState.DONE)
        LOGGER.info(f"[{pack.pack_id}] Using cached run {cached.run_meta.run_id}")
        return CompileResult(
            pack=SignalPack.from_run(cached, case_id=pack.case_id, cached=True),
            record=cached,
            cached=True,
            states=trace.states,
        )
