from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from .config import RobotParams, RunParams, SandboxParams, SensorLayout
from .errors import CollisionFault, ConfigError, SimError, ValidationError
from .field import EnvironmentField
from .host_api import HostApi, LogSink
from .motor import MotorBuffer
from .physics import DifferentialDrive
from .reporter import ConsoleLog
from .sandbox import ScriptSandbox
from .sensors import SensorModel
from .types import ButtonState, ExecutionState, Pose, TickTelemetry

logger = logging.getLogger(__name__)


class TelemetrySink(Protocol):
    def on_tick(self, telemetry: TickTelemetry) -> None: ...


class Simulation:
    """Owns the simulation context and advances it once per host tick.

    Order inside ``tick``: script batch, wheel targets, integration, collision check,
    field refresh, telemetry. Scripts see the pose committed by the previous tick.
    """

    def __init__(
        self,
        robot: RobotParams,
        field: EnvironmentField,
        sensors: SensorModel,
        sandbox: SandboxParams | None = None,
        max_dt_s: float = 0.05,
        log_sink: LogSink | None = None,
    ):
        sandbox = sandbox or SandboxParams()
        self.robot = robot
        self.field = field
        self.max_dt_s = max_dt_s
        self.log_sink = log_sink or ConsoleLog()

        self.drive = DifferentialDrive(robot)
        self.motor = MotorBuffer(robot.max_speed)
        self.buttons = ButtonState()
        self.sensors = sensors
        self.sensors.set_field(field)
        self.sensors.log_sink = self.log_sink
        self.pose = self.start_pose()

        self.host = HostApi(
            motor=self.motor,
            buttons=self.buttons,
            read_sensor=lambda index: self.sensors.read(index, self.pose),
            sensor_count=self.sensors.count,
            log_sink=self.log_sink,
        )
        self.sandbox = ScriptSandbox(
            self.host,
            step_budget=sandbox.step_budget,
            max_call_depth=sandbox.max_call_depth,
        )

        self.telemetry_sinks: list[TelemetrySink] = []
        self.last_fault: SimError | None = None
        self._last_ms: float | None = None
        self._pending_field: EnvironmentField | None = None

    @classmethod
    def from_config(
        cls,
        robot: RobotParams,
        sandbox: SandboxParams,
        layout: SensorLayout,
        run: RunParams,
        map_path: Path | None = None,
        log_sink: LogSink | None = None,
    ) -> "Simulation":
        size = (run.field_width, run.field_height)
        image = map_path or (Path(run.map_image) if run.map_image else None)
        if image is not None:
            field = EnvironmentField.from_image(image, size=size)
        else:
            field = EnvironmentField.blank(*size, color=run.background)
        sensors = SensorModel.from_layout(layout, field, robot.body_size)
        return cls(robot, field, sensors, sandbox=sandbox, max_dt_s=run.max_dt_s, log_sink=log_sink)

    # --- run control ---

    @property
    def state(self) -> ExecutionState:
        return self.sandbox.state

    @property
    def running(self) -> bool:
        return self.sandbox.active

    def start(self, source: str) -> bool:
        self.stop()
        try:
            self.sandbox.start(source)
        except ValidationError as exc:
            self.last_fault = exc
            self.log_sink.report(exc.describe(), "error")
            return False

        self.last_fault = None
        self.drive.reset()
        self.log_sink.report("Syntax check passed. Starting execution...", "info")
        return True

    def stop(self) -> None:
        self.sandbox.stop()

    def reset_pose(self) -> None:
        self.stop()
        self.drive.reset()
        self.pose = self.start_pose()
        self.log_sink.report("Robot position reset.", "info")

    def start_pose(self) -> Pose:
        return Pose(self.robot.start_x, self.robot.start_y, self.robot.start_theta)

    # --- the loop ---

    def tick(self, timestamp_ms: float) -> TickTelemetry:
        if self._last_ms is None:
            dt_s = 0.0
        else:
            dt_s = min(self.max_dt_s, max(0.0, (timestamp_ms - self._last_ms) / 1000.0))
        self._last_ms = timestamp_ms

        fault: SimError | None = None
        collided = False

        if self.sandbox.active:
            state = self.sandbox.step(timestamp_ms)
            if state is ExecutionState.FAILED:
                fault = self.sandbox.error
                self.log_sink.report(fault.describe(), "error")
            elif state is ExecutionState.FINISHED:
                self.log_sink.report("Program finished.", "info")

        if self.sandbox.active:
            self.drive.set_targets(*self.motor.wheel_targets())
            tentative = self.drive.step(self.pose, dt_s)
            if self.in_bounds(tentative):
                self.pose = tentative
            else:
                collided = True
                fault = CollisionFault("Robot hit the wall!")
                self.sandbox.stop()
                self.log_sink.report(fault.describe(), "error")

        if fault is not None:
            self.last_fault = fault

        if self._pending_field is not None:
            self.field = self._pending_field
            self.sensors.set_field(self.field)
            self._pending_field = None

        left, right = self.drive.wheels()
        telemetry = TickTelemetry(
            time_ms=timestamp_ms,
            dt_s=dt_s,
            pose=Pose(self.pose.x, self.pose.y, self.pose.theta),
            left=left,
            right=right,
            motor=self.motor.snapshot(),
            state=self.sandbox.state,
            readings=self.sensors.read_all(self.pose),
            collided=collided,
            fault=fault,
        )
        for sink in self.telemetry_sinks:
            sink.on_tick(telemetry)
        return telemetry

    def in_bounds(self, pose: Pose) -> bool:
        size = self.robot.body_size
        half = size / 2.0
        return self.field.contains_box(pose.x - half, pose.y - half, size, size)

    # --- external inputs and configuration ---

    def press_button(self, n: int) -> bool:
        if not self._set_button(n, True):
            return False
        self.log_sink.report(f"SW{n} Pressed", "info")
        return True

    def release_button(self, n: int) -> bool:
        return self._set_button(n, False)

    def _set_button(self, n: int, value: bool) -> bool:
        if not self.buttons.set(n, value):
            self._config_error(ConfigError(f"no button SW{n}"))
            return False
        return True

    def set_field(self, field: EnvironmentField) -> None:
        """Queue a new field snapshot; it is swapped in after the next integration."""
        self._pending_field = field

    def set_field_bounds(self, width: int, height: int) -> bool:
        if width <= 0 or height <= 0:
            self._config_error(ConfigError(f"field size must be positive, got {width}x{height}"))
            return False
        base = self._pending_field or self.field
        self._pending_field = base.resized(width, height)
        return True

    def add_sensor(self, x: float = 20.0, y: float = 0.0, name: str | None = None):
        return self.sensors.add_sensor(x, y, name)

    def remove_sensor(self, sensor_id: int) -> bool:
        return self.sensors.remove_sensor(sensor_id)

    def move_sensor(self, sensor_id: int, x: float | None = None, y: float | None = None) -> bool:
        return self.sensors.move_sensor(sensor_id, x, y)

    def apply_config(self, robot: RobotParams, sandbox: SandboxParams, layout: SensorLayout) -> None:
        """Hot-reload robot geometry, script budget and sensor layout."""
        self.robot = robot
        self.drive.update_params(robot)
        self.motor.max_speed = robot.max_speed
        self.sensors.half_extent = robot.body_size / 2.0
        self.sensors.load_layout(layout)
        self.sandbox.step_budget = sandbox.step_budget
        self.sandbox.max_call_depth = sandbox.max_call_depth
        logger.info("configuration reloaded (%d sensors)", self.sensors.count())

    def _config_error(self, exc: ConfigError) -> None:
        self.log_sink.report(exc.describe(), "warning")
