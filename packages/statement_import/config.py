"""Named configuration for the import pipeline.

:class:`ImportConfig` bundles the knobs of every stage so a session (or a
test) can swap rules and tolerances without touching pipeline code.
``ImportConfig.from_env()`` layers ``STATEMENT_IMPORT_*`` environment
variables over the defaults; entrypoints load ``.env`` first.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation

from .classifier import ClassifierConfig
from .duplicates import DuplicatePolicy
from .normalizers import NormalizerConfig
from .validation import ValidationLimits

DEFAULT_PREVIEW_LIMIT = 10

ENV_DUPLICATE_WINDOW_DAYS = "STATEMENT_IMPORT_DUPLICATE_WINDOW_DAYS"
ENV_DUPLICATE_SIMILARITY = "STATEMENT_IMPORT_DUPLICATE_SIMILARITY"
ENV_FALLBACK_CATEGORY = "STATEMENT_IMPORT_FALLBACK_CATEGORY"
ENV_MAX_AMOUNT = "STATEMENT_IMPORT_MAX_AMOUNT"
ENV_PREVIEW_LIMIT = "STATEMENT_IMPORT_PREVIEW_LIMIT"


@dataclass(frozen=True, slots=True)
class ImportConfig:
    normalizer: NormalizerConfig = field(default_factory=NormalizerConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    duplicates: DuplicatePolicy = field(default_factory=DuplicatePolicy)
    limits: ValidationLimits = field(default_factory=ValidationLimits)
    preview_limit: int = DEFAULT_PREVIEW_LIMIT

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ImportConfig:
        """Build a config from ``environ`` (``os.environ`` by default).

        Unset or blank variables keep their defaults; malformed values raise
        ``ValueError`` naming the variable.
        """

        env = os.environ if environ is None else environ
        cfg = cls()

        window = _env_int(env, ENV_DUPLICATE_WINDOW_DAYS, minimum=0)
        similarity = (env.get(ENV_DUPLICATE_SIMILARITY) or "").strip().lower()
        if window is not None or similarity:
            try:
                dup = DuplicatePolicy(
                    date_window_days=cfg.duplicates.date_window_days if window is None else window,
                    similarity=similarity or cfg.duplicates.similarity,  # type: ignore[arg-type]
                )
            except ValueError as exc:
                raise ValueError(f"{ENV_DUPLICATE_SIMILARITY}: {exc}") from None
            cfg = replace(cfg, duplicates=dup)

        fallback = (env.get(ENV_FALLBACK_CATEGORY) or "").strip()
        if fallback:
            cfg = replace(cfg, classifier=replace(cfg.classifier, fallback_category=fallback))

        max_amount = (env.get(ENV_MAX_AMOUNT) or "").strip()
        if max_amount:
            try:
                value = Decimal(max_amount)
            except InvalidOperation:
                raise ValueError(f"{ENV_MAX_AMOUNT} must be a decimal number") from None
            if not value.is_finite() or value <= 0:
                raise ValueError(f"{ENV_MAX_AMOUNT} must be a positive number")
            cfg = replace(cfg, limits=replace(cfg.limits, max_amount=value))

        preview = _env_int(env, ENV_PREVIEW_LIMIT, minimum=1)
        if preview is not None:
            cfg = replace(cfg, preview_limit=preview)

        return cfg


def _env_int(env: Mapping[str, str], name: str, *, minimum: int) -> int | None:
    raw = (env.get(name) or "").strip()
    if not raw:
        return None
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}")
    return value


__all__ = [
    "DEFAULT_PREVIEW_LIMIT",
    "ImportConfig",
]
