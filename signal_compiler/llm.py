# signal_compiler/llm.py
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence

from google import genai
from google.genai import types
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from .contracts import LoadedDocument
from .exceptions import ConfigurationError, InferenceMalformedResponseError, InferenceTransportError
from .logging_utils import get_logger
from .prompt import document_header
from .settings import Settings

LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class GenerationConfig:
    """
    Near-deterministic defaults; the response must be a single JSON object.
    """
    temperature: float = 0.1
    response_mime_type: str = "application/json"
    max_attempts: int = 1            # 1 = no retries
    retry_wait_s: float = 1.0


class InferenceGateway(ABC):
    """Opaque model call: prompt + documents -> raw response text."""

    model_id: str = "unknown"

    @abstractmethod
    async def infer(
        self,
        prompt_text: str,
        documents: Sequence[LoadedDocument],
        deadline: float,
    ) -> str:
        """
        Raises InferenceTransportError / InferenceMalformedResponseError.
        The caller enforces `deadline` (seconds); implementations may pass it on.
        """


class GeminiGateway(InferenceGateway):
    """Sends the prompt and every document inline (bytes + media type) in one request."""

    def __init__(self, api_key: str, model: str, gen: GenerationConfig = GenerationConfig()) -> None:
        self.model_id = model
        self.gen = gen
        # Without a key every call fails, which the orchestrator turns into a fallback.
        self.client = genai.Client(api_key=api_key.strip()) if api_key and api_key.strip() else None
        LOGGER.info(f"Initialized Gemini gateway with model {self.model_id}")

    def build_parts(self, prompt_text: str, documents: Sequence[LoadedDocument]) -> List[types.Part]:
        parts = [types.Part.from_text(text=prompt_text)]
        for doc in documents:
            parts.append(types.Part.from_text(text=document_header(doc.name)))
            parts.append(types.Part.from_bytes(data=doc.data, mime_type=doc.media_type))
        return parts

    async def _generate(self, parts: List[types.Part], deadline: float) -> str:
        if self.client is None:
            raise InferenceTransportError("Gemini API key not configured (SIGNAL_COMPILER_GEMINI_API_KEY)")
        config = types.GenerateContentConfig(
            temperature=self.gen.temperature,
            response_mime_type=self.gen.response_mime_type,
            http_options=types.HttpOptions(timeout=int(deadline * 1000)),
        )
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model_id,
                contents=parts,
                config=config,
            )
        except Exception as e:
            raise InferenceTransportError(f"Gemini generation failed: {e}", e) from e

        text = response.text
        if not text or not text.strip():
            raise InferenceMalformedResponseError("Empty response from Gemini")
        return text

    async def infer(
        self,
        prompt_text: str,
        documents: Sequence[LoadedDocument],
        deadline: float,
    ) -> str:
        parts = self.build_parts(prompt_text, documents)
        LOGGER.info(f"Sending {len(parts)} parts to Gemini ({self.model_id})...")

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.gen.max_attempts),
            wait=wait_fixed(self.gen.retry_wait_s),
            retry=retry_if_exception_type(InferenceTransportError),
            reraise=True,
        ):
            with attempt:
                text = await self._generate(parts, deadline)

        LOGGER.info(f"Received response ({len(text)} chars)")
        return text


class ReplayGateway(InferenceGateway):
    """Serves a recorded raw model response from disk (offline demos and tests)."""

    def __init__(self, path: str) -> None:
        self.path = Path(path)
        self.model_id = f"replay:{self.path.name}"

    async def infer(
        self,
        prompt_text: str,
        documents: Sequence[LoadedDocument],
        deadline: float,
    ) -> str:
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise InferenceTransportError(f"Replay response unavailable: {self.path}: {e}", e) from e
        LOGGER.info(f"Replaying {self.path} ({len(text)} chars) for {len(documents)} documents")
        return text


def create_gateway(settings: Settings) -> InferenceGateway:
    provider = settings.llm_provider.strip().lower()
    if provider == "gemini":
        return GeminiGateway(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            gen=GenerationConfig(
                temperature=settings.gemini_temperature,
                max_attempts=settings.inference_max_attempts,
            ),
        )
    if provider == "replay":
        if not settings.replay_path:
            raise ConfigurationError("replay_path required when llm_provider='replay'")
        return ReplayGateway(settings.replay_path)
    raise ConfigurationError(f"Unsupported llm_provider: {settings.llm_provider}")


def payload_megabytes(documents: Sequence[LoadedDocument]) -> float:
    return sum(d.size for d in documents) / (1024 * 1024)


def inference_deadline(
    documents: Sequence[LoadedDocument],
    base_s: float,
    per_mb_s: float,
    max_s: float,
) -> float:
    """min(max, base + per_mb * MB) seconds, scaled to what is being sent."""
    deadline = base_s + per_mb_s * payload_megabytes(documents)
    return min(max_s, deadline)
