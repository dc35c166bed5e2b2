"""Answer generators used to synthesise responses from retrieved context."""

from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Any, Optional

from docqa.config import get_settings, heavy_dependencies_enabled

LOGGER = logging.getLogger(__name__)

DEFAULT_STUB_RESPONSE = (
    "The answer model is not configured. Please try again later."
)


@dataclass(slots=True)
class LLMStatus:
    """Structured status information about the configured generator."""

    model_loaded: bool
    model_name: str
    device: str
    error: Optional[str] = None


class LLMError(RuntimeError):
    """Base exception raised for generator issues."""


class LLMNotReadyError(LLMError):
    """Raised when the model cannot be loaded or is unavailable."""


class LLMGenerationError(LLMError):
    """Raised when text generation fails unexpectedly."""


class LLM:
    """Common interface exposed by answer generators."""

    def generate(self, prompt: str, max_tokens: int, temperature: float) -> str:
        """Generate a response for the provided prompt."""

        raise NotImplementedError

    @property
    def model_loaded(self) -> bool:
        return False

    @property
    def model_name(self) -> str:
        return "stub"

    @property
    def device(self) -> str:
        return "cpu"

    @property
    def last_error(self) -> Optional[str]:
        return None

    def status(self) -> LLMStatus:
        """Return structured diagnostic information for health checks."""

        return LLMStatus(
            model_loaded=self.model_loaded,
            model_name=self.model_name,
            device=self.device,
            error=self.last_error,
        )


class LLMStub(LLM):
    """Returns a fixed message when no model is configured."""

    def __init__(self, message: str = DEFAULT_STUB_RESPONSE, *, reason: str | None = None) -> None:
        self._message = message
        self._reason = reason or "LLM stub is active (model not configured)."

    def generate(self, prompt: str, max_tokens: int, temperature: float) -> str:
        return self._message

    @property
    def last_error(self) -> Optional[str]:
        return self._reason


class TransformersLLM(LLM):
    """Lazy-loading wrapper around a Hugging Face causal language model."""

    def __init__(self, model_path: str, *, device: str | None = None) -> None:
        self._model_path = model_path
        self._requested_device = (device or os.getenv("LLM_DEVICE", "auto")).strip().lower()
        self._device = "cpu"
        self._model: Any = None
        self._tokenizer: Any = None
        self._load_error: Optional[Exception] = None
        self._lock = threading.RLock()

    @property
    def model_loaded(self) -> bool:
        return self._model is not None

    @property
    def model_name(self) -> str:
        return self._model_path

    @property
    def device(self) -> str:
        return self._device

    @property
    def last_error(self) -> Optional[str]:
        return str(self._load_error) if self._load_error is not None else None

    def _ensure_loaded(self) -> None:
        if self._model is not None:
            return
        with self._lock:
            if self._model is not None:
                return
            started = time.perf_counter()
            try:
                import torch
                from transformers import AutoModelForCausalLM, AutoTokenizer

                use_cuda = self._requested_device in {"auto", "cuda", "gpu"} and torch.cuda.is_available()
                self._device = "cuda" if use_cuda else "cpu"
                self._tokenizer = AutoTokenizer.from_pretrained(self._model_path)
                model = AutoModelForCausalLM.from_pretrained(
                    self._model_path,
                    torch_dtype="auto" if use_cuda else torch.float32,
                )
                self._model = model.to(self._device)
            except Exception as error:
                self._load_error = error
                LOGGER.exception("Failed to load LLM from %s", self._model_path)
                raise LLMNotReadyError(f"Model {self._model_path} could not be loaded") from error
            LOGGER.info(
                "Loaded LLM %s on %s in %.1fs",
                self._model_path,
                self._device,
                time.perf_counter() - started,
            )

    def generate(self, prompt: str, max_tokens: int, temperature: float) -> str:  # pragma: no cover
        self._ensure_loaded()
        effective_max_tokens = max_tokens if max_tokens and max_tokens > 0 else 256
        try:
            inputs = self._tokenizer(prompt, return_tensors="pt", truncation=True).to(self._device)
            output_ids = self._model.generate(
                **inputs,
                max_new_tokens=effective_max_tokens,
                do_sample=temperature > 0.0,
                temperature=temperature if temperature > 0.0 else None,
                pad_token_id=self._tokenizer.pad_token_id or self._tokenizer.eos_token_id,
            )
            generated = output_ids[0, inputs["input_ids"].shape[1]:]
            return self._tokenizer.decode(generated, skip_special_tokens=True).strip()
        except Exception as error:
            LOGGER.exception("LLM generation failed")
            raise LLMGenerationError("LLM generation failed") from error


_GLOBAL_LLM: Optional[LLM] = None


def get_llm() -> LLM:
    """Return the configured generator, or a stub when no model is available."""

    global _GLOBAL_LLM

    if _GLOBAL_LLM is not None:
        return _GLOBAL_LLM

    model_path = os.getenv("LLM_MODEL_PATH", "").strip()
    if not model_path:
        LOGGER.warning("LLM_MODEL_PATH is not configured; using stub responses.")
        _GLOBAL_LLM = LLMStub(reason="LLM_MODEL_PATH is not configured.")
    elif not heavy_dependencies_enabled():
        LOGGER.warning("INSTALL_HEAVY is disabled; using stub responses.")
        _GLOBAL_LLM = LLMStub(reason="INSTALL_HEAVY is disabled.")
    else:
        _GLOBAL_LLM = TransformersLLM(model_path)
    LOGGER.info(
        "Answer generator initialised",
        extra={
            "provider": type(_GLOBAL_LLM).__name__,
            "max_tokens": get_settings().llm_max_tokens,
        },
    )
    return _GLOBAL_LLM


def reset_llm_cache() -> None:
    """Forget the cached generator (primarily for testing)."""

    global _GLOBAL_LLM
    _GLOBAL_LLM = None


def get_llm_status() -> LLMStatus:
    return get_llm().status()


__all__ = [
    "DEFAULT_STUB_RESPONSE",
    "LLM",
    "LLMError",
    "LLMGenerationError",
    "LLMNotReadyError",
    "LLMStatus",
    "LLMStub",
    "TransformersLLM",
    "get_llm",
    "get_llm_status",
    "reset_llm_cache",
]
