"""Chain configuration with environment overrides."""

from __future__ import annotations

from dataclasses import dataclass
from os import environ
from typing import Mapping

from .digest import DEFAULT_ALGORITHM, DigestAlgorithm

ENV_PREFIX = "PROVCHAIN_"


@dataclass(frozen=True)
class ChainConfig:
    """Limits and digest choice applied to a chain."""

    max_length: int | None = None
    algorithm: str = DEFAULT_ALGORITHM.value

    @property
    def digest_algorithm(self) -> DigestAlgorithm:
        return DigestAlgorithm.parse(self.algorithm)

    def validate(self) -> None:
        if self.max_length is not None:
            if isinstance(self.max_length, bool) or not isinstance(self.max_length, int):
                raise ValueError("max_length must be an integer")
            if self.max_length <= 0:
                raise ValueError("max_length must be > 0")
        DigestAlgorithm.parse(self.algorithm)


def _coerce_int(value: str, field: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid integer for {field}: {value}") from exc


def _get_env(env: Mapping[str, str], key: str) -> str | None:
    return env.get(f"{ENV_PREFIX}{key}")


def load_config(env: Mapping[str, str] | None = None) -> ChainConfig:
    source: Mapping[str, str] = environ if env is None else env

    max_length_raw = _get_env(source, "MAX_LENGTH")
    max_length = (
        _coerce_int(max_length_raw, "max_length")
        if max_length_raw is not None and max_length_raw.strip()
        else ChainConfig.max_length
    )
    algorithm = (_get_env(source, "ALGORITHM") or ChainConfig.algorithm).strip().lower()

    cfg = ChainConfig(max_length=max_length, algorithm=algorithm)
    cfg.validate()
    return cfg


__all__ = ["ChainConfig", "ENV_PREFIX", "load_config"]
