"""Market configuration — deployment parameters for the service layer.

Parameters are read from <config_dir>/market_params.json, then any
POWORTH_* environment variable overrides the file. A .env file next to
the parameters (or an explicit env_file) is loaded first, without
clobbering variables already set in the process environment.

    reserve_minimum     minimum vault balance retained after settlement
    default_min_stake   min_stake used when create_topic is given none
    vault_prefix        vault account name is "<prefix>:<topic_id>"
    protocol_version    reported by status()
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv


PARAMS_FILE = "market_params.json"
ENV_PREFIX = "POWORTH_"

# Rent-exempt floor for an empty account on the reference ledger.
DEFAULT_RESERVE_MINIMUM = 890_880
# 0.01 of a 1e9-unit token
DEFAULT_MIN_STAKE = 10_000_000


@dataclass(frozen=True)
class MarketConfig:
    reserve_minimum: int = DEFAULT_RESERVE_MINIMUM
    default_min_stake: int = DEFAULT_MIN_STAKE
    vault_prefix: str = "vault"
    protocol_version: str = "0.1.0"

    def __post_init__(self) -> None:
        if self.reserve_minimum < 0:
            raise ValueError("reserve_minimum must be non-negative")
        if self.default_min_stake < 0:
            raise ValueError("default_min_stake must be non-negative")
        if not self.vault_prefix:
            raise ValueError("vault_prefix must not be empty")

    def vault_account(self, topic_id: int) -> str:
        return f"{self.vault_prefix}:{topic_id}"

    @staticmethod
    def from_dict(data: dict[str, Any]) -> MarketConfig:
        known = {
            "reserve_minimum": int,
            "default_min_stake": int,
            "vault_prefix": str,
            "protocol_version": str,
        }
        unknown = set(data) - set(known)
        if unknown:
            raise ValueError(f"Unknown market parameters: {', '.join(sorted(unknown))}")
        return MarketConfig(**{k: known[k](v) for k, v in data.items()})

    @staticmethod
    def from_config_dir(
        config_dir: Path,
        env_file: Optional[Path] = None,
    ) -> MarketConfig:
        """Load parameters from a config directory plus environment overrides.

        A missing parameters file yields the defaults.
        """
        params_path = config_dir / PARAMS_FILE
        data: dict[str, Any] = {}
        if params_path.exists():
            data = json.loads(params_path.read_text(encoding="utf-8"))

        dotenv_path = env_file if env_file is not None else config_dir / ".env"
        if dotenv_path.exists():
            load_dotenv(dotenv_path, override=False)

        return MarketConfig.from_dict(data).with_env_overrides()

    def with_env_overrides(self) -> MarketConfig:
        overrides: dict[str, Any] = {}
        for name, cast in (
            ("reserve_minimum", int),
            ("default_min_stake", int),
            ("vault_prefix", str),
        ):
            raw = os.getenv(ENV_PREFIX + name.upper())
            if raw is not None and raw != "":
                overrides[name] = cast(raw)
        return replace(self, **overrides) if overrides else self
