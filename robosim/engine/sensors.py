from __future__ import annotations

import itertools
import logging
import math

from .config import MAX_SENSORS, SensorLayout
from .errors import ConfigError
from .field import EnvironmentField
from .host_api import LogSink
from .types import Pose, Sensor

logger = logging.getLogger(__name__)

POINT_MODE = "point"
AREA_MODE = "area"
DEFAULT_MOUNT = (20.0, 0.0)


class SensorModel:
    """Light sensors mounted on the robot body.

    Mount offsets are relative to the robot center in the unrotated body frame. A
    reading rotates the offset by the heading, translates it to the robot center and
    samples the current field snapshot there.
    """

    def __init__(
        self,
        field: EnvironmentField,
        body_size: float,
        mode: str = POINT_MODE,
        area_window: int = 5,
        log_sink: LogSink | None = None,
    ):
        if mode not in (POINT_MODE, AREA_MODE):
            raise ValueError(f"unknown sensor mode {mode!r}")
        self.field = field
        self.half_extent = body_size / 2.0
        self.mode = mode
        self.area_window = area_window
        self.log_sink = log_sink
        self.sensors: list[Sensor] = []
        self._ids = itertools.count(1)

    @classmethod
    def from_layout(
        cls,
        layout: SensorLayout,
        field: EnvironmentField,
        body_size: float,
    ) -> "SensorModel":
        model = cls(field, body_size, mode=layout.mode, area_window=layout.area_window)
        model.load_layout(layout)
        return model

    def load_layout(self, layout: SensorLayout) -> None:
        self.mode = layout.mode
        self.area_window = layout.area_window
        self.sensors = []
        for spec in layout.sensors:
            self.add_sensor(spec.x, spec.y, spec.name or None)

    def set_field(self, field: EnvironmentField) -> None:
        self.field = field

    def count(self) -> int:
        return len(self.sensors)

    def world_point(self, sensor: Sensor, pose: Pose) -> tuple[float, float]:
        c = math.cos(pose.theta)
        s = math.sin(pose.theta)
        wx = pose.x + sensor.x * c - sensor.y * s
        wy = pose.y + sensor.x * s + sensor.y * c
        return wx, wy

    def world_points(self, pose: Pose) -> list[tuple[float, float]]:
        return [self.world_point(sensor, pose) for sensor in self.sensors]

    def read(self, index: int, pose: Pose) -> float:
        if not isinstance(index, int) or index < 0 or index >= len(self.sensors):
            return 0
        wx, wy = self.world_point(self.sensors[index], pose)
        if self.mode == AREA_MODE:
            return self.field.sample_area(wx, wy, self.area_window)
        return self.field.sample_at(wx, wy)

    def read_all(self, pose: Pose) -> list[float]:
        return [self.read(i, pose) for i in range(len(self.sensors))]

    # --- configuration edits; these come from user input and never raise ---

    def add_sensor(
        self,
        x: float = DEFAULT_MOUNT[0],
        y: float = DEFAULT_MOUNT[1],
        name: str | None = None,
    ) -> Sensor | None:
        try:
            if len(self.sensors) >= MAX_SENSORS:
                raise ConfigError(f"Maximum sensors ({MAX_SENSORS}) reached!")
            mx = self._check_coord(x)
            my = self._check_coord(y)
        except ConfigError as exc:
            self._notify(exc.describe(), "warning")
            return None

        sensor = Sensor(
            id=next(self._ids),
            x=mx,
            y=my,
            name=name or f"Light Sensor {len(self.sensors) + 1}",
        )
        self.sensors.append(sensor)
        self._notify(f"{sensor.name} added at ({sensor.x:.1f}, {sensor.y:.1f})", "info")
        return sensor

    def remove_sensor(self, sensor_id: int) -> bool:
        before = len(self.sensors)
        self.sensors = [s for s in self.sensors if s.id != sensor_id]
        if len(self.sensors) == before:
            self._notify(ConfigError(f"no sensor with id {sensor_id}").describe(), "warning")
            return False
        self._notify("Sensor deleted.", "info")
        return True

    def move_sensor(self, sensor_id: int, x: float | None = None, y: float | None = None) -> bool:
        sensor = next((s for s in self.sensors if s.id == sensor_id), None)
        try:
            if sensor is None:
                raise ConfigError(f"no sensor with id {sensor_id}")
            nx = sensor.x if x is None else self._check_coord(x)
            ny = sensor.y if y is None else self._check_coord(y)
        except ConfigError as exc:
            self._notify(exc.describe(), "warning")
            return False

        sensor.x = nx
        sensor.y = ny
        self._notify(f"{sensor.name} updated to ({sensor.x:.1f}, {sensor.y:.1f})", "info")
        return True

    def _notify(self, message: str, severity: str) -> None:
        if self.log_sink is not None:
            self.log_sink.report(message, severity)
        else:
            logger.log(logging.WARNING if severity == "warning" else logging.INFO, "%s", message)

    def _check_coord(self, value: float) -> float:
        try:
            v = float(value)
        except (TypeError, ValueError):
            raise ConfigError(f"sensor position {value!r} is not a number") from None
        if math.isnan(v) or abs(v) > self.half_extent:
            raise ConfigError(
                f"Position must be between {-self.half_extent:g} and {self.half_extent:g}!"
            )
        return v
