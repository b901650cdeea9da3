from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

MAX_SENSORS = 25
DEFAULT_CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"


@dataclass
class RobotParams:
    wheel_base: float
    max_accel: float
    max_speed: float
    body_size: float
    axis_offset: float = 0.0
    start_x: float = 125.0
    start_y: float = 125.0
    start_theta: float = 0.0


@dataclass
class SandboxParams:
    step_budget: int = 50
    max_call_depth: int = 100


@dataclass
class SensorSpec:
    x: float
    y: float
    name: str = ""


@dataclass
class SensorLayout:
    mode: str = "point"
    area_window: int = 5
    sensors: list[SensorSpec] = field(default_factory=list)


@dataclass
class RunParams:
    frame_s: float
    max_dt_s: float
    duration_s: float
    realtime: bool
    reload_period_s: float
    field_width: int = 800
    field_height: int = 600
    background: tuple[int, int, int] = (240, 240, 240)
    map_image: str | None = None


def _parse_layout(raw: dict[str, Any]) -> SensorLayout:
    mode = str(raw.get("mode", "point"))
    if mode not in ("point", "area"):
        raise ValueError(f"sensor mode must be 'point' or 'area', got {mode!r}")

    entries = raw.get("sensors") or []
    if not isinstance(entries, list):
        raise ValueError("sensors must be a list")
    if len(entries) > MAX_SENSORS:
        raise ValueError(f"at most {MAX_SENSORS} sensors are supported, got {len(entries)}")

    specs: list[SensorSpec] = []
    for i, item in enumerate(entries):
        if not isinstance(item, dict):
            raise ValueError("sensor entry must be a mapping")
        specs.append(
            SensorSpec(
                x=float(item["x"]),
                y=float(item["y"]),
                name=str(item.get("name", f"Light Sensor {i + 1}")),
            )
        )
    return SensorLayout(mode=mode, area_window=int(raw.get("area_window", 5)), sensors=specs)


def _parse_run(raw: dict[str, Any]) -> RunParams:
    raw = dict(raw)
    bg = raw.pop("background", None)
    params = RunParams(**raw)
    if bg is not None:
        if not isinstance(bg, (list, tuple)) or len(bg) != 3:
            raise ValueError("background must be an [r, g, b] triple")
        params.background = (int(bg[0]), int(bg[1]), int(bg[2]))
    return params


class ConfigManager:
    def __init__(self, config_dir: Path = DEFAULT_CONFIG_DIR):
        self.config_dir = config_dir
        self.paths = {
            "robot": config_dir / "robot.yaml",
            "sandbox": config_dir / "sandbox.yaml",
            "sensors": config_dir / "sensors.yaml",
            "run": config_dir / "run.yaml",
        }
        self._last_mtimes: dict[str, float] = {}
        self._last_check_s = 0.0

    def load_all(self) -> tuple[RobotParams, SandboxParams, SensorLayout, RunParams]:
        robot_raw = self._load_yaml("robot")
        sandbox_raw = self._load_yaml("sandbox")
        sensors_raw = self._load_yaml("sensors")
        run_raw = self._load_yaml("run")
        return (
            RobotParams(**robot_raw),
            SandboxParams(**sandbox_raw),
            _parse_layout(sensors_raw),
            _parse_run(run_raw),
        )

    def maybe_reload(
        self,
        now_s: float,
    ) -> tuple[bool, tuple[RobotParams, SandboxParams, SensorLayout, RunParams] | None]:
        run_raw = self._load_yaml("run", record=False)
        reload_period_s = float(run_raw.get("reload_period_s", 0.25))
        if now_s - self._last_check_s < reload_period_s:
            return False, None

        self._last_check_s = now_s
        changed = False
        for key, path in self.paths.items():
            mtime = os.path.getmtime(path)
            old = self._last_mtimes.get(key)
            if old is None:
                self._last_mtimes[key] = mtime
                continue
            if mtime > old:
                self._last_mtimes[key] = mtime
                changed = True

        if not changed:
            return False, None

        return True, self.load_all()

    def _load_yaml(self, name: str, record: bool = True) -> dict[str, Any]:
        path = self.paths[name]
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"Config {path} is not a mapping")

        if record:
            self._last_mtimes[name] = os.path.getmtime(path)
        return data
