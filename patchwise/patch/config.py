"""Tunable thresholds for the patch engine."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import dotenv_values, find_dotenv

MAX_PATCH_SIZE_BYTES: int = 1 * 1024 * 1024  # 1 MB
MAX_FILE_SIZE_BYTES: int = 10 * 1024 * 1024  # 10 MB

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def _parse_ratio(name: str, raw: str) -> float:
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number between 0 and 1, got {raw!r}") from None
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"{name} must be between 0 and 1, got {value}")
    return value


@dataclass(frozen=True)
class PatchConfig:
    """Matching thresholds and size limits.

    Attributes:
        allow_fuzzy: Enable whitespace-insensitive and similarity-based matching.
            Exact and trailing-whitespace matching are always on.
        fuzzy_threshold: Minimum mean line similarity for a fuzzy block match.
        anchor_fuzzy_threshold: Minimum similarity for a fuzzy ``@@`` anchor match.
        substring_min_length: Shortest anchor allowed to match as a substring.
        substring_min_ratio: Anchor length as a fraction of the line it is found in.
        max_patch_bytes: Largest diff accepted.
        max_file_bytes: Largest file produced.
    """

    allow_fuzzy: bool = True
    fuzzy_threshold: float = 0.95
    anchor_fuzzy_threshold: float = 0.8
    substring_min_length: int = 6
    substring_min_ratio: float = 0.3
    max_patch_bytes: int = MAX_PATCH_SIZE_BYTES
    max_file_bytes: int = MAX_FILE_SIZE_BYTES

    def __post_init__(self) -> None:
        for name in ("fuzzy_threshold", "anchor_fuzzy_threshold", "substring_min_ratio"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be between 0 and 1, got {value}")
        if self.substring_min_length < 1:
            raise ValueError("substring_min_length must be at least 1")

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        dotenv_path: Optional[str | Path] = None,
    ) -> "PatchConfig":
        """Build a config from ``PATCHWISE_*`` variables.

        Values from a ``.env`` file are read first and overridden by the
        process environment (or ``environ`` when given). Recognised keys are
        ``PATCHWISE_FUZZY`` and ``PATCHWISE_FUZZY_THRESHOLD``.
        """

        values = {}
        if dotenv_path is not None:
            values.update({k: v for k, v in dotenv_values(dotenv_path).items() if v is not None})
        elif environ is None:
            found = find_dotenv(usecwd=True)
            if found:
                values.update({k: v for k, v in dotenv_values(found).items() if v is not None})
        values.update(os.environ if environ is None else environ)

        kwargs = {}
        if "PATCHWISE_FUZZY" in values:
            kwargs["allow_fuzzy"] = _parse_bool("PATCHWISE_FUZZY", values["PATCHWISE_FUZZY"])
        if "PATCHWISE_FUZZY_THRESHOLD" in values:
            kwargs["fuzzy_threshold"] = _parse_ratio(
                "PATCHWISE_FUZZY_THRESHOLD", values["PATCHWISE_FUZZY_THRESHOLD"]
            )
        return cls(**kwargs)


DEFAULT_CONFIG = PatchConfig()
