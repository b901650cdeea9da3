from __future__ import annotations

import math
from typing import Callable, Protocol

from .motor import MotorBuffer
from .types import ButtonState, ButtonWait, DelayWait

Suspension = DelayWait | ButtonWait


class LogSink(Protocol):
    def report(self, message: str, severity: str = "info") -> None: ...


class HostFunction:
    """Script-visible handle for one host call; the interpreter dispatches on ``name``."""

    __slots__ = ("name",)

    def __init__(self, name: str):
        self.name = name

    def __repr__(self) -> str:
        return f"<host function {self.name}>"


class HostApi:
    """The fixed set of calls a robot script can make.

    Every call either returns a value or returns a suspension (``DelayWait`` /
    ``ButtonWait``) for the sandbox to park on. Nothing here blocks.
    """

    NAMES = (
        "motor",
        "setWheelSpeeds",
        "analogRead",
        "getSensorCount",
        "log",
        "SW",
        "waitSW",
        "delay",
    )

    def __init__(
        self,
        motor: MotorBuffer,
        buttons: ButtonState,
        read_sensor: Callable[[int], float],
        sensor_count: Callable[[], int],
        log_sink: LogSink,
    ):
        self.motor_buffer = motor
        self.buttons = buttons
        self._read_sensor = read_sensor
        self._sensor_count = sensor_count
        self.log_sink = log_sink
        self.now_ms = 0.0
        self._dispatch: dict[str, Callable[..., object]] = {
            "motor": self.motor,
            "setWheelSpeeds": self.set_wheel_speeds,
            "analogRead": self.analog_read,
            "getSensorCount": self.get_sensor_count,
            "log": self.log,
            "SW": self.sw,
            "waitSW": self.wait_sw,
            "delay": self.delay,
        }

    def functions(self) -> dict[str, HostFunction]:
        return {name: HostFunction(name) for name in self.NAMES}

    def call(self, name: str, args: tuple, kwargs: dict) -> object:
        try:
            fn = self._dispatch[name]
        except KeyError:
            raise NameError(f"{name} is not defined") from None
        return fn(*args, **kwargs)

    def motor(self, left: float, right: float) -> None:
        self.motor_buffer.set_normalized(_number(left, "motor"), _number(right, "motor"))

    def set_wheel_speeds(self, left: float, right: float) -> None:
        self.motor_buffer.set_physical(
            _number(left, "setWheelSpeeds"),
            _number(right, "setWheelSpeeds"),
        )

    def analog_read(self, index: int) -> float:
        i = _index(index)
        if i is None:
            return 0
        return self._read_sensor(i)

    def get_sensor_count(self) -> int:
        return self._sensor_count()

    def log(self, message: object = "") -> None:
        self.log_sink.report(str(message), "user")

    def sw(self, n: int) -> bool:
        i = _index(n)
        if i is None:
            return False
        return self.buttons.read(i)

    def wait_sw(self, n: int) -> ButtonWait | None:
        i = _index(n)
        # Unknown buttons never suspend.
        if i is None or not self.buttons.valid(i):
            return None
        if self.buttons.read(i):
            return None
        return ButtonWait(button=i)

    def delay(self, ms: float) -> DelayWait:
        duration = _number(ms, "delay", finite=False)
        if not duration >= 0:
            duration = 0.0
        return DelayWait(resume_at_ms=self.now_ms + duration)


def _number(value: object, fn: str, finite: bool = True) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"{fn}() expects numbers, got {type(value).__name__}")
    v = float(value)
    if finite and not math.isfinite(v):
        raise TypeError(f"{fn}() expects finite numbers, got {v!r}")
    return v


def _index(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return int(value)
    return None

