# motionwatch/common/config.py
from __future__ import annotations
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

DEFAULT_CONFIG_PATH = "config/config.yaml"
DEFAULT_DIFF_COMMAND = "compare -metric AE -fuzz {fuzz}% {before} {after} null:"
DEFAULT_SNAPSHOT_URL = "http://127.0.0.1:8080/0/action/snapshot"


def load_yaml(path: str | Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data if isinstance(data, dict) else {}


def _section(cfg: Dict[str, Any], name: str) -> Dict[str, Any]:
    return cfg.get(name, {}) or {}


def _as_bool(raw: Any) -> bool:
    if isinstance(raw, str):
        return raw.strip().lower() in {"1", "true", "yes", "on"}
    return bool(raw)


@dataclass
class Settings:
    # daemon
    daemon_command: List[str] = field(default_factory=lambda: ["motion", "-c", "./motion.conf"])
    restart_on_exit: bool = False
    max_restarts: int = 3
    restart_delay_sec: float = 2.0
    # comparison
    diff_command: str = DEFAULT_DIFF_COMMAND
    scene_fuzz: int = 20
    reference_fuzz: int = 30
    # reference / snapshot
    snapshot_url: Optional[str] = DEFAULT_SNAPSHOT_URL
    snapshot_timeout_sec: float = 5.0
    # alert
    alert_command: List[str] = field(default_factory=list)
    # frames
    max_groups: int = 0
    # operator input
    console_enabled: bool = True
    keyboard_device: Optional[str] = None
    keyboard_grab: bool = True
    keyboard_setref_key: str = "KEY_R"
    # telemetry
    redis_url: Optional[str] = None
    telemetry_stream: str = "motionwatch.telemetry"
    # runtime
    log_level: str = "INFO"
    shutdown_grace_sec: float = 10.0


def settings_from_dict(cfg: Dict[str, Any]) -> Settings:
    """YAML value first, then environment fallback, then default."""
    daemon    = _section(cfg, "daemon")
    diff      = _section(cfg, "diff")
    reference = _section(cfg, "reference")
    snapshot  = _section(cfg, "snapshot")
    alert     = _section(cfg, "alert")
    frames    = _section(cfg, "frames")
    keyboard  = _section(cfg, "keyboard")
    console   = _section(cfg, "console")
    telemetry = _section(cfg, "telemetry")
    runtime   = _section(cfg, "runtime")

    command = daemon.get("command", os.getenv("MW_DAEMON_CMD", "motion"))
    conf = daemon.get("config", os.getenv("MW_DAEMON_CONF", "./motion.conf"))
    daemon_command = shlex.split(str(command))
    if conf:
        daemon_command += ["-c", str(conf)]

    alert_cmd = alert.get("command", os.getenv("MW_ALERT_CMD", ""))

    return Settings(
        daemon_command=daemon_command,
        restart_on_exit=_as_bool(daemon.get("restart_on_exit", os.getenv("MW_RESTART_ON_EXIT", False))),
        max_restarts=int(daemon.get("max_restarts", os.getenv("MW_MAX_RESTARTS", 3))),
        restart_delay_sec=float(daemon.get("restart_delay_sec", 2.0)),
        diff_command=str(diff.get("command", os.getenv("MW_DIFF_CMD", DEFAULT_DIFF_COMMAND))),
        scene_fuzz=int(diff.get("fuzz_percent", os.getenv("MW_SCENE_FUZZ", 20))),
        reference_fuzz=int(reference.get("fuzz_percent", os.getenv("MW_REFERENCE_FUZZ", 30))),
        snapshot_url=snapshot.get("url", os.getenv("MW_SNAPSHOT_URL", DEFAULT_SNAPSHOT_URL)) or None,
        snapshot_timeout_sec=float(snapshot.get("timeout_sec", 5.0)),
        alert_command=shlex.split(str(alert_cmd)) if alert_cmd else [],
        max_groups=int(frames.get("max_groups", os.getenv("MW_MAX_GROUPS", 0))),
        console_enabled=_as_bool(console.get("enabled", True)),
        keyboard_device=keyboard.get("device", os.getenv("MW_KEYBOARD_DEVICE")) or None,
        keyboard_grab=_as_bool(keyboard.get("grab", True)),
        keyboard_setref_key=str(keyboard.get("setref_key", "KEY_R")),
        redis_url=telemetry.get("redis_url", os.getenv("MW_REDIS_URL")) or None,
        telemetry_stream=str(telemetry.get("stream", "motionwatch.telemetry")),
        log_level=str(runtime.get("log_level", os.getenv("LOG_LEVEL", "INFO"))),
        shutdown_grace_sec=float(runtime.get("shutdown_grace_sec", 10.0)),
    )


def load_settings(config_path: str | Path | None = None) -> Settings:
    path = Path(config_path or os.getenv("MOTIONWATCH_CONFIG", DEFAULT_CONFIG_PATH))
    return settings_from_dict(load_yaml(path))
