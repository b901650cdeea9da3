from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum

from .errors import SimError

TWO_PI = 2.0 * math.pi


def wrap_angle(theta: float) -> float:
    """Wrap a heading into [0, 2*pi)."""
    wrapped = theta % TWO_PI
    # Float modulo can land exactly on 2*pi for tiny negative inputs.
    if wrapped >= TWO_PI:
        wrapped = 0.0
    return wrapped


@dataclass
class Pose:
    x: float = 0.0
    y: float = 0.0
    theta: float = 0.0


@dataclass
class WheelState:
    target: float = 0.0
    current: float = 0.0


@dataclass
class MotorCommand:
    left: float = 0.0
    right: float = 0.0


@dataclass
class Sensor:
    id: int
    x: float
    y: float
    name: str


class ExecutionState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUSPENDED = "suspended"
    FINISHED = "finished"
    FAILED = "failed"


@dataclass(frozen=True)
class DelayWait:
    resume_at_ms: float


@dataclass(frozen=True)
class ButtonWait:
    button: int


@dataclass
class ButtonState:
    names: tuple[str, ...] = ("SW1", "SW2", "SW3")
    pressed: list[bool] = field(default_factory=lambda: [False, False, False])

    def read(self, n: int) -> bool:
        """1-indexed read; unknown buttons read as released."""
        index = n - 1
        if 0 <= index < len(self.pressed):
            return self.pressed[index]
        return False

    def valid(self, n: int) -> bool:
        return 1 <= n <= len(self.pressed)

    def set(self, n: int, value: bool) -> bool:
        if not self.valid(n):
            return False
        self.pressed[n - 1] = bool(value)
        return True


@dataclass
class TickTelemetry:
    time_ms: float
    dt_s: float
    pose: Pose
    left: WheelState
    right: WheelState
    motor: MotorCommand
    state: ExecutionState
    readings: list[float]
    collided: bool = False
    fault: SimError | None = None
