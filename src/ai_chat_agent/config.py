"""Configuration helpers for the AI chat agent."""

from __future__ import annotations

import os
from dataclasses import dataclass
from importlib import import_module
from typing import Optional, Sequence, Tuple

DEFAULT_ENDPOINT = "https://llm.api.cloud.yandex.net/v1"
DEFAULT_TEMPERATURE = 0.3
DEFAULT_MAX_INPUT_TOKENS = 2000
DEFAULT_CHARS_PER_TOKEN = 4
DEFAULT_MAX_OUTPUT_TOKENS = 800
DEFAULT_REQUEST_TIMEOUT = 30.0

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True, slots=True)
class ModelSpec:
    """A selectable backend model and the temperatures it accepts."""

    display_name: str
    endpoint_id: str
    allowed_temperatures: Tuple[float, ...]

    def __post_init__(self) -> None:
        if not self.allowed_temperatures:
            raise ValueError(
                f"Model '{self.display_name}' must allow at least one "
                "temperature."
            )

    def allows(self, temperature: float) -> bool:
        return any(
            abs(candidate - temperature) < 1e-9
            for candidate in self.allowed_temperatures
        )

    def nearest_temperature(self, temperature: float) -> float:
        """Snap an arbitrary temperature to the closest allowed value."""

        return min(
            self.allowed_temperatures,
            key=lambda candidate: abs(candidate - temperature),
        )


def build_model_catalog(folder_id: str) -> Tuple[ModelSpec, ...]:
    """Return the static catalog of models hosted in a Yandex Cloud folder."""

    return (
        ModelSpec(
            display_name="Qwen3 235B",
            endpoint_id=f"gpt://{folder_id}/qwen3-235b-a22b-fp8/latest",
            allowed_temperatures=(0.0, 0.3, 0.6, 1.0),
        ),
        ModelSpec(
            display_name="GPT OSS 120B",
            endpoint_id=f"gpt://{folder_id}/gpt-oss-120b/latest",
            allowed_temperatures=(0.0, 0.3, 0.7, 1.0),
        ),
        ModelSpec(
            display_name="YandexGPT Pro",
            endpoint_id=f"gpt://{folder_id}/yandexgpt/latest",
            allowed_temperatures=(0.0, 0.3, 0.6, 1.0),
        ),
    )


def find_model(
    catalog: Sequence[ModelSpec],
    prefix: str,
    fallback: Optional[ModelSpec] = None,
) -> Optional[ModelSpec]:
    """Return the first catalog entry whose name starts with ``prefix``."""

    for spec in catalog:
        if spec.display_name.startswith(prefix):
            return spec
    return fallback


def resolve_model(catalog: Sequence[ModelSpec], name: str) -> ModelSpec:
    """Find a model by display name (case-insensitive, prefix allowed)."""

    normalized = name.strip().casefold()
    if not normalized:
        raise ValueError("Model name is required.")
    for spec in catalog:
        if spec.display_name.casefold() == normalized:
            return spec
    for spec in catalog:
        if spec.display_name.casefold().startswith(normalized):
            return spec
    choices = ", ".join(spec.display_name for spec in catalog)
    raise ValueError(f"Unknown model '{name}'. Available: {choices}")


@dataclass(slots=True)
class ModelSettings:
    """Holds model-related configuration for the runtime."""

    provider: str
    endpoint: Optional[str]
    api_key: str
    api_version: Optional[str]
    default_model_id: str
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS


@dataclass(slots=True)
class AppSettings:
    """Top-level application settings loaded from environment variables."""

    model: ModelSettings
    catalog: Tuple[ModelSpec, ...]
    initial_model: ModelSpec
    initial_temperature: float
    chain_of_thought: bool
    max_input_tokens: int
    chars_per_token: int
    request_timeout: float

    @property
    def max_input_length(self) -> int:
        """Character threshold above which user input gets summarized."""

        return self.max_input_tokens * self.chars_per_token

    @classmethod
    def load(cls) -> "AppSettings":
        """Load settings from the environment or .env file."""
        _ensure_dotenv()
        provider = os.getenv("MAF_MODEL_PROVIDER", "openai")
        endpoint = os.getenv("MAF_MODEL_ENDPOINT", DEFAULT_ENDPOINT)
        if endpoint is not None and not endpoint.strip():
            endpoint = None
        api_key = os.getenv("MAF_MODEL_API_KEY")
        if not api_key:
            raise RuntimeError(
                "MAF_MODEL_API_KEY environment variable is required."
            )
        api_version = os.getenv("MAF_MODEL_API_VERSION")
        folder_id = os.getenv("MAF_FOLDER_ID", "").strip()
        if not folder_id:
            raise RuntimeError("MAF_FOLDER_ID environment variable is required.")
        catalog = build_model_catalog(folder_id)

        model_name = os.getenv("MAF_MODEL", "").strip()
        if model_name:
            try:
                initial_model = resolve_model(catalog, model_name)
            except ValueError as exc:
                raise RuntimeError(f"MAF_MODEL: {exc}") from exc
        else:
            initial_model = catalog[0]

        temperature = _float_env("MAF_TEMPERATURE", DEFAULT_TEMPERATURE)
        if not initial_model.allows(temperature):
            allowed = ", ".join(
                str(value) for value in initial_model.allowed_temperatures
            )
            raise RuntimeError(
                f"MAF_TEMPERATURE {temperature} is not allowed for "
                f"{initial_model.display_name} (allowed: {allowed})"
            )

        chain_of_thought = (
            os.getenv("MAF_CHAIN_OF_THOUGHT", "false").strip().lower()
            in _TRUE_VALUES
        )
        max_input_tokens = _positive_int_env(
            "MAF_MAX_INPUT_TOKENS", DEFAULT_MAX_INPUT_TOKENS
        )
        chars_per_token = _positive_int_env(
            "MAF_CHARS_PER_TOKEN", DEFAULT_CHARS_PER_TOKEN
        )
        max_output_tokens = _positive_int_env(
            "MAF_MAX_OUTPUT_TOKENS", DEFAULT_MAX_OUTPUT_TOKENS
        )
        request_timeout = _float_env(
            "MAF_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT
        )
        if request_timeout <= 0:
            raise RuntimeError("MAF_REQUEST_TIMEOUT must be positive")

        return cls(
            model=ModelSettings(
                provider=provider,
                endpoint=endpoint,
                api_key=api_key,
                api_version=api_version,
                default_model_id=initial_model.endpoint_id,
                max_output_tokens=max_output_tokens,
            ),
            catalog=catalog,
            initial_model=initial_model,
            initial_temperature=temperature,
            chain_of_thought=chain_of_thought,
            max_input_tokens=max_input_tokens,
            chars_per_token=chars_per_token,
            request_timeout=request_timeout,
        )


def _positive_int_env(name: str, default: int) -> int:
    raw = os.getenv(name, str(default))
    try:
        value = int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer") from exc
    if value < 1:
        raise RuntimeError(f"{name} must be at least 1")
    return value


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, str(default))
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number") from exc


def _ensure_dotenv() -> None:
    """Load dotenv variables and provide a helpful error if missing."""

    try:
        dotenv_module = import_module("dotenv")
    except ModuleNotFoundError as exc:  # pragma: no cover - optional dep
        raise RuntimeError(
            "python-dotenv is required. Install with `pip install "
            "python-dotenv`."
        ) from exc

    load_dotenv = getattr(dotenv_module, "load_dotenv")
    load_dotenv()
