from __future__ import annotations

import json
import os
from dataclasses import replace
from pathlib import Path

import pytest

from stakereward.runtime.engine_config import (
    apply_engine_config_to_env,
    default_engine_config,
    load_engine_config,
    read_engine_config_file,
    validate_engine_config,
)


def test_defaults_are_production_safe(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("STAKEREWARD_CONFIG_PATH", raising=False)
    cfg = load_engine_config()
    assert cfg == default_engine_config()
    assert cfg.mode == "prod"
    assert cfg.metrics_enabled is False


def test_config_file_overrides_and_env_export(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    p = tmp_path / "engine.json"
    p.write_text(
        json.dumps(
            {
                "node_id": "node-a",
                "mode": "TESTNET",
                "db_path": str(tmp_path / "r.db"),
                "api_port": "9001",
                "log_level": "debug",
                "metrics_enabled": "on",
            }
        ),
        encoding="utf-8",
    )
    monkeypatch.setenv("STAKEREWARD_CONFIG_PATH", str(p))

    cfg = load_engine_config()
    assert cfg.node_id == "node-a"
    assert cfg.mode == "testnet"
    assert cfg.api_port == 9001
    assert cfg.log_level == "DEBUG"
    assert cfg.metrics_enabled is True

    for k in ("STAKEREWARD_NODE_ID", "STAKEREWARD_DB_PATH", "STAKEREWARD_API_PORT", "STAKEREWARD_METRICS_ENABLED"):
        monkeypatch.delenv(k, raising=False)
    apply_engine_config_to_env(cfg)
    assert os.environ["STAKEREWARD_NODE_ID"] == "node-a"
    assert os.environ["STAKEREWARD_API_PORT"] == "9001"
    assert os.environ["STAKEREWARD_METRICS_ENABLED"] == "1"


@pytest.mark.parametrize(
    "raw,msg",
    [
        ({"mode": "yolo"}, "mode"),
        ({"api_port": 70000}, "api_port"),
        ({"log_level": "LOUD"}, "log_level"),
        ({"mode": "dev", "seed_path": "/nonexistent/seed.yaml"}, "seed_path"),
    ],
)
def test_invalid_config_fails_fast(tmp_path: Path, raw: dict, msg: str) -> None:
    p = tmp_path / "engine.json"
    p.write_text(json.dumps(raw), encoding="utf-8")
    with pytest.raises(ValueError, match=msg):
        read_engine_config_file(str(p))


def test_seed_file_refused_in_prod(tmp_path: Path) -> None:
    seed = tmp_path / "seed.yaml"
    seed.write_text("tokens: []\n", encoding="utf-8")
    cfg = default_engine_config()
    with pytest.raises(ValueError, match="prod"):
        validate_engine_config(replace(cfg, seed_path=str(seed)))


def test_config_must_be_object(tmp_path: Path) -> None:
    p = tmp_path / "engine.json"
    p.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ValueError):
        read_engine_config_file(str(p))
