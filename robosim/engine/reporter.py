from __future__ import annotations

import csv
import json
import logging
import math
from pathlib import Path
from typing import Callable

from .types import TickTelemetry

SEVERITY_LEVELS = {
    "info": logging.INFO,
    "user": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class ConsoleLog:
    """Log sink for kernel and script messages.

    Messages go to the ``robosim.console`` logger, are kept in ``messages`` and are
    forwarded to any subscribed listeners (the trace writer, a live viewer).
    """

    def __init__(self, logger_name: str = "robosim.console", keep: int = 500):
        self.logger = logging.getLogger(logger_name)
        self.keep = keep
        self.messages: list[tuple[str, str]] = []
        self._listeners: list[Callable[[str, str], None]] = []

    def subscribe(self, listener: Callable[[str, str], None]) -> None:
        self._listeners.append(listener)

    def report(self, message: str, severity: str = "info") -> None:
        level = SEVERITY_LEVELS.get(severity, logging.INFO)
        text = f"User: {message}" if severity == "user" else message
        self.logger.log(level, "%s", text)

        self.messages.append((severity, message))
        if len(self.messages) > self.keep:
            del self.messages[: len(self.messages) - self.keep]
        for listener in self._listeners:
            listener(message, severity)

    def user_messages(self) -> list[str]:
        return [m for sev, m in self.messages if sev == "user"]

    def clear(self) -> None:
        self.messages.clear()


class TraceWriter:
    def __init__(self, out_dir: Path):
        self.out_dir = out_dir
        self.out_dir.mkdir(parents=True, exist_ok=True)

        self.trace_path = out_dir / "trace.csv"
        self.events_path = out_dir / "events.csv"

        self._trace_f = self.trace_path.open("w", newline="", encoding="utf-8")
        self._events_f = self.events_path.open("w", newline="", encoding="utf-8")
        self._trace = csv.writer(self._trace_f)
        self._events = csv.writer(self._events_f)

        self._trace.writerow(
            [
                "time_ms",
                "dt_s",
                "x",
                "y",
                "theta_rad",
                "motor_left",
                "motor_right",
                "left_target",
                "left_current",
                "right_target",
                "right_current",
                "state",
                "collided",
                "readings",
            ]
        )
        self._events.writerow(["time_ms", "severity", "message"])

        self.ticks = 0
        self.distance = 0.0
        self.max_wheel_speed = 0.0
        self.collisions = 0
        self.fault: str | None = None
        self.last: TickTelemetry | None = None

    def on_tick(self, out: TickTelemetry) -> None:
        if self.last is not None:
            self.distance += math.hypot(out.pose.x - self.last.pose.x, out.pose.y - self.last.pose.y)
        self.max_wheel_speed = max(
            self.max_wheel_speed,
            abs(out.left.current),
            abs(out.right.current),
        )
        if out.collided:
            self.collisions += 1
        if out.fault is not None:
            self.fault = out.fault.describe()
        self.ticks += 1
        self.last = out

        self._trace.writerow(
            [
                f"{out.time_ms:.3f}",
                f"{out.dt_s:.6f}",
                f"{out.pose.x:.6f}",
                f"{out.pose.y:.6f}",
                f"{out.pose.theta:.6f}",
                f"{out.motor.left:.4f}",
                f"{out.motor.right:.4f}",
                f"{out.left.target:.4f}",
                f"{out.left.current:.4f}",
                f"{out.right.target:.4f}",
                f"{out.right.current:.4f}",
                out.state.value,
                int(out.collided),
                " ".join(_fmt_reading(r) for r in out.readings),
            ]
        )

    def report(self, message: str, severity: str = "info") -> None:
        time_ms = self.last.time_ms if self.last else 0.0
        self._events.writerow([f"{time_ms:.3f}", severity, message])

    def close(self) -> None:
        self._trace_f.close()
        self._events_f.close()

    def write_report(self, out_dir: Path, duration_s: float) -> Path:
        report_path = out_dir / "report.json"
        last = self.last
        summary = {
            "duration_s": duration_s,
            "ticks": self.ticks,
            "distance_px": round(self.distance, 4),
            "max_wheel_speed_px_s": self.max_wheel_speed,
            "collisions": self.collisions,
            "final_state": last.state.value if last else "idle",
            "fault": self.fault,
            "final_pose": {
                "x": last.pose.x if last else 0.0,
                "y": last.pose.y if last else 0.0,
                "theta_rad": last.pose.theta if last else 0.0,
            },
        }
        report_path.write_text(json.dumps(summary, indent=2), encoding="utf-8")
        return report_path


def _fmt_reading(value: float) -> str:
    if isinstance(value, float):
        return f"{value:.4f}"
    return str(value)
