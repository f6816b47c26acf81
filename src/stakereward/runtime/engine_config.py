# src/stakereward/runtime/engine_config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

Json = Dict[str, Any]


def _as_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


def _as_bool(v: Any, default: bool) -> bool:
    if v is None:
        return bool(default)
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    return bool(default)


@dataclass(frozen=True)
class EngineConfig:
    node_id: str
    mode: str  # "dev" | "testnet" | "prod"

    # Single SQLite DB file for reward records + token custody.
    db_path: str

    # Optional YAML/JSON seed applied at boot ("" = none).
    seed_path: str

    api_host: str
    api_port: int

    log_level: str
    metrics_enabled: bool


_ALLOWED_MODES = {"dev", "testnet", "prod"}
_ALLOWED_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def validate_engine_config(cfg: EngineConfig) -> None:
    """Fail-fast validation for operator config."""

    if not isinstance(cfg.node_id, str) or not cfg.node_id.strip():
        raise ValueError("node_id must be a non-empty string")

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {_ALLOWED_MODES}; got: {cfg.mode!r}")

    if int(cfg.api_port) <= 0 or int(cfg.api_port) > 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")

    if not isinstance(cfg.db_path, str) or not cfg.db_path.strip():
        raise ValueError("db_path must be a non-empty string")

    if str(cfg.log_level or "").strip().upper() not in _ALLOWED_LOG_LEVELS:
        raise ValueError(f"log_level must be one of {_ALLOWED_LOG_LEVELS}; got: {cfg.log_level!r}")

    if cfg.seed_path:
        if not Path(cfg.seed_path).is_file():
            raise ValueError(f"seed_path does not exist or is not a file: {cfg.seed_path!r}")
        if mode == "prod":
            raise ValueError("seed_path is a dev/testnet bootstrap and is refused in prod mode")


def default_engine_config() -> EngineConfig:
    return EngineConfig(
        node_id="local-node",
        # Without an explicit config file we never fall into a permissive posture.
        mode="prod",
        db_path="./data/stakereward.db",
        seed_path="",
        api_host="127.0.0.1",
        api_port=8080,
        log_level="INFO",
        metrics_enabled=False,
    )


def read_engine_config_file(path: str) -> EngineConfig:
    p = Path(path)
    raw = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("engine config must be a JSON object")

    d = default_engine_config()

    cfg = EngineConfig(
        node_id=_as_str(raw.get("node_id"), d.node_id),
        mode=_as_str(raw.get("mode"), d.mode).strip().lower(),
        db_path=_as_str(raw.get("db_path"), d.db_path),
        seed_path=str(raw.get("seed_path") or d.seed_path),
        api_host=_as_str(raw.get("api_host"), d.api_host),
        api_port=_as_int(raw.get("api_port"), d.api_port),
        log_level=_as_str(raw.get("log_level"), d.log_level).strip().upper(),
        metrics_enabled=_as_bool(raw.get("metrics_enabled"), d.metrics_enabled),
    )

    validate_engine_config(cfg)
    return cfg


def load_engine_config(*, config_path: Optional[str] = None) -> EngineConfig:
    p = config_path or os.environ.get("STAKEREWARD_CONFIG_PATH")
    if p:
        return read_engine_config_file(p)

    cfg = default_engine_config()
    validate_engine_config(cfg)
    return cfg


def apply_engine_config_to_env(cfg: EngineConfig) -> None:
    validate_engine_config(cfg)
    os.environ["STAKEREWARD_NODE_ID"] = cfg.node_id
    os.environ["STAKEREWARD_MODE"] = (cfg.mode or "prod").strip().lower()
    os.environ["STAKEREWARD_DB_PATH"] = cfg.db_path
    os.environ["STAKEREWARD_SEED_PATH"] = cfg.seed_path
    os.environ["STAKEREWARD_API_HOST"] = cfg.api_host
    os.environ["STAKEREWARD_API_PORT"] = str(int(cfg.api_port))
    os.environ["STAKEREWARD_LOG_LEVEL"] = cfg.log_level
    os.environ["STAKEREWARD_METRICS_ENABLED"] = "1" if cfg.metrics_enabled else "0"
