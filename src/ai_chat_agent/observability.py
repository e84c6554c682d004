"""Tracing helpers for the chat agent runtime."""

from __future__ import annotations

import logging
import os
from typing import Optional

from agent_framework.observability import setup_observability

logger = logging.getLogger(__name__)

_initialized = False


def _env_flag(name: str, default: str) -> bool:
    raw = os.getenv(name, default).strip().lower()
    return raw in {"1", "true", "yes", "on"}


def initialize_tracing(
    *,
    endpoint: Optional[str] = None,
    enable_sensitive_data: Optional[bool] = None,
) -> bool:
    """Configure OpenTelemetry tracing for model calls; idempotent.

    Prompts and completions are only exported when sensitive-data capture
    is enabled (``MAF_TRACING_CAPTURE_SENSITIVE``, off by default since
    transcripts may contain personal data).
    """

    global _initialized
    if _initialized:
        return False

    otlp_endpoint = (endpoint or os.getenv("MAF_OTLP_ENDPOINT", "")).strip()
    if not otlp_endpoint:
        logger.info("Tracing skipped because no OTLP endpoint is configured.")
        return False

    capture_sensitive = (
        enable_sensitive_data
        if enable_sensitive_data is not None
        else _env_flag("MAF_TRACING_CAPTURE_SENSITIVE", "false")
    )
    try:
        setup_observability(
            otlp_endpoint=otlp_endpoint,
            enable_sensitive_data=capture_sensitive,
        )
    except Exception as exc:  # pragma: no cover - exporter misconfiguration
        logger.warning("Tracing initialization failed: %s", exc)
        return False

    _initialized = True
    logger.info("Tracing initialized with OTLP endpoint %s", otlp_endpoint)
    return True
