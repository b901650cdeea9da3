from __future__ import annotations

import pytest

from robosim.engine.config import RobotParams, SandboxParams
from robosim.engine.field import EnvironmentField
from robosim.engine.host_api import HostApi
from robosim.engine.motor import MotorBuffer
from robosim.engine.reporter import ConsoleLog
from robosim.engine.sensors import SensorModel
from robosim.engine.simulator import Simulation
from robosim.engine.types import ButtonState

DEFAULT_MOUNTS = ((20.0, -10.0), (20.0, 0.0), (20.0, 10.0))


@pytest.fixture
def robot_params() -> RobotParams:
    return RobotParams(wheel_base=44.0, max_accel=400.0, max_speed=220.0, body_size=50.0)


@pytest.fixture
def field() -> EnvironmentField:
    return EnvironmentField.blank(800, 600, color=(240, 240, 240))


@pytest.fixture
def console() -> ConsoleLog:
    return ConsoleLog()


@pytest.fixture
def host(console) -> HostApi:
    readings = [10, 20, 30]
    return HostApi(
        motor=MotorBuffer(220.0),
        buttons=ButtonState(),
        read_sensor=lambda i: readings[i] if 0 <= i < len(readings) else 0,
        sensor_count=lambda: len(readings),
        log_sink=console,
    )


@pytest.fixture
def make_sim(robot_params, field, console):
    def _make(
        surface: EnvironmentField | None = None,
        mounts=DEFAULT_MOUNTS,
        step_budget: int = 50,
        **robot_overrides,
    ) -> Simulation:
        surface = surface or field
        params = RobotParams(**{**robot_params.__dict__, **robot_overrides})
        sensors = SensorModel(surface, params.body_size)
        for x, y in mounts:
            sensors.add_sensor(x, y)
        return Simulation(
            params,
            surface,
            sensors,
            sandbox=SandboxParams(step_budget=step_budget),
            log_sink=console,
        )

    return _make
