from __future__ import annotations

import math
import time

import pytest

from robosim.engine.errors import CollisionFault, ValidationError
from robosim.engine.field import EnvironmentField
from robosim.engine.types import ExecutionState, Pose

IDLE_LOOP = "while True:\n    delay(10)\n"


def ticks(sim, start_ms: float, stop_ms: float, step_ms: float = 10.0):
    t = start_ms
    outs = []
    while t <= stop_ms:
        outs.append(sim.tick(t))
        t += step_ms
    return outs


def test_first_tick_has_no_dt_and_later_dt_is_clamped(make_sim):
    sim = make_sim()
    assert sim.tick(5000.0).dt_s == 0.0
    assert sim.tick(5016.0).dt_s == pytest.approx(0.016)
    assert sim.tick(9000.0).dt_s == pytest.approx(0.05)
    assert sim.tick(8000.0).dt_s == 0.0


def test_start_reports_and_runs(make_sim, console):
    sim = make_sim()
    assert sim.start("motor(100, 100)\n" + IDLE_LOOP)
    assert sim.state is ExecutionState.RUNNING
    assert console.messages[-1] == ("info", "Syntax check passed. Starting execution...")

    outs = ticks(sim, 0, 1000, 50)
    assert outs[-1].motor.left == 100.0
    assert sim.pose.x > 125.0 + 150.0
    assert sim.pose.y == pytest.approx(125.0)
    assert sim.pose.theta == pytest.approx(0.0)


def test_syntax_error_never_starts(make_sim, console):
    sim = make_sim()
    assert not sim.start("motor(100, 100\n")
    assert sim.state is ExecutionState.IDLE
    assert isinstance(sim.last_fault, ValidationError)
    severity, message = console.messages[-1]
    assert severity == "error" and message.startswith("Syntax Error (Line 1)")

    ticks(sim, 0, 500, 50)
    assert sim.pose == Pose(125.0, 125.0, 0.0)


def test_analog_read_out_of_range_returns_zero(make_sim, console):
    sim = make_sim()
    sim.start("log(analogRead(99))\nlog(analogRead(-1))\nlog(analogRead(1))\nlog(getSensorCount())\n")
    sim.tick(0.0)
    assert console.user_messages() == ["0", "0", "60", "3"]
    assert sim.state is ExecutionState.FINISHED


def test_collision_stops_run_and_keeps_pose_inside(make_sim, console):
    sim = make_sim(start_x=760.0)
    sim.start("motor(100, 100)\n" + IDLE_LOOP)
    collided = None
    for out in ticks(sim, 0, 3000, 50):
        if out.collided:
            collided = out
            break
    assert collided is not None
    assert isinstance(collided.fault, CollisionFault)
    assert isinstance(sim.last_fault, CollisionFault)
    assert sim.state is ExecutionState.IDLE
    assert sim.pose.x + 25.0 <= 800.0
    assert sim.motor.snapshot().left == 0.0
    assert ("error", "Collision Error: Robot hit the wall!") in console.messages

    # Frozen once stopped; the wheel state is left as it was.
    frozen = Pose(sim.pose.x, sim.pose.y, sim.pose.theta)
    left, _ = sim.drive.wheels()
    assert left.current > 0.0
    ticks(sim, 3100, 3500, 50)
    assert sim.pose == frozen


def test_delay_logs_once_after_elapsed_time(make_sim, console):
    sim = make_sim()
    sim.start("delay(100)\nlog('done')\n")
    sim.tick(0.0)
    for t in range(10, 100, 10):
        sim.tick(float(t))
        assert sim.state is ExecutionState.SUSPENDED
        assert console.user_messages() == []

    sim.tick(100.0)
    assert console.user_messages() == ["done"]
    ticks(sim, 110, 500)
    assert console.user_messages() == ["done"]
    assert ("info", "Program finished.") in console.messages


def test_wait_sw_released_on_press_tick(make_sim, console):
    sim = make_sim()
    sim.start("waitSW(2)\nlog('released')\n")
    ticks(sim, 0, 200)
    assert sim.state is ExecutionState.SUSPENDED
    assert console.user_messages() == []

    assert sim.press_button(2)
    assert ("info", "SW2 Pressed") in console.messages
    assert console.user_messages() == []
    sim.tick(210.0)
    assert console.user_messages() == ["released"]


def test_stop_during_suspension_never_resumes(make_sim, console):
    sim = make_sim()
    sim.start("motor(50, 50)\nwaitSW(1)\ndelay(100)\nlog('resumed')\nmotor(100, 100)\n")
    sim.tick(0.0)
    assert sim.state is ExecutionState.SUSPENDED

    sim.stop()
    assert sim.state is ExecutionState.IDLE
    sim.press_button(1)
    ticks(sim, 10, 1000)
    assert sim.state is ExecutionState.IDLE
    assert console.user_messages() == []
    assert sim.motor.snapshot().left == 0.0


def test_motor_frozen_while_not_running(make_sim):
    sim = make_sim()
    sim.start("motor(100, 100)\n" + IDLE_LOOP)
    ticks(sim, 0, 500, 50)
    sim.stop()
    moved = Pose(sim.pose.x, sim.pose.y, sim.pose.theta)
    outs = ticks(sim, 550, 1500, 50)
    assert sim.pose == moved
    assert all(out.state is ExecutionState.IDLE for out in outs)


def test_finished_program_zeroes_motor(make_sim):
    sim = make_sim()
    sim.start("motor(100, 100)\n")
    out = sim.tick(0.0)
    assert out.state is ExecutionState.FINISHED
    assert out.motor.left == 0.0
    ticks(sim, 50, 500, 50)
    assert sim.pose == Pose(125.0, 125.0, 0.0)


def test_runtime_fault_is_reported(make_sim, console):
    sim = make_sim()
    sim.start("motor(50, 50)\ndelay(20)\nundefined_call()\n")
    ticks(sim, 0, 100)
    assert sim.state is ExecutionState.FAILED
    assert sim.last_fault.line == 3
    assert ("error", "Runtime Error (Line 3): NameError: name 'undefined_call' is not defined") in console.messages


@pytest.mark.parametrize(
    "expr",
    ["sum(range(10 ** 12))", "max(range(10 ** 15))", "'a'.ljust(10 ** 10)", "list(range(10 ** 9))"],
)
def test_runaway_builtin_faults_within_one_tick(make_sim, console, expr):
    sim = make_sim()
    sim.start(f"motor(50, 50)\nx = {expr}\nlog('after')\n")
    started = time.perf_counter()
    sim.tick(0.0)
    assert time.perf_counter() - started < 1.0
    assert sim.state is ExecutionState.FAILED
    assert sim.last_fault.line == 2
    assert console.user_messages() == []
    assert sim.motor.command.left == 0.0


def test_restart_resets_wheels(make_sim):
    sim = make_sim()
    sim.start("motor(100, 100)\n" + IDLE_LOOP)
    ticks(sim, 0, 500, 50)
    sim.start(IDLE_LOOP)
    left, right = sim.drive.wheels()
    assert (left.current, right.current, left.target, right.target) == (0.0, 0.0, 0.0, 0.0)


def test_reset_pose(make_sim, console):
    sim = make_sim()
    sim.start("motor(-40, 60)\n" + IDLE_LOOP)
    ticks(sim, 0, 500, 50)
    assert sim.pose != Pose(125.0, 125.0, 0.0)

    sim.reset_pose()
    assert sim.state is ExecutionState.IDLE
    assert sim.pose == Pose(125.0, 125.0, 0.0)
    assert console.messages[-1] == ("info", "Robot position reset.")


def test_rotation_in_place_follows_sensors(make_sim):
    sim = make_sim(mounts=((20.0, 0.0),))
    sim.start("setWheelSpeeds(-50, 50)\n" + IDLE_LOOP)
    ticks(sim, 0, 2000, 50)
    assert sim.pose.x == pytest.approx(125.0)
    assert sim.pose.y == pytest.approx(125.0)
    wx, wy = sim.sensors.world_points(sim.pose)[0]
    assert math.hypot(wx - 125.0, wy - 125.0) == pytest.approx(20.0)


def test_telemetry_sinks_receive_every_tick(make_sim):
    class Sink:
        def __init__(self):
            self.seen = []

        def on_tick(self, out):
            self.seen.append(out)

    sim = make_sim()
    sink = Sink()
    sim.telemetry_sinks.append(sink)
    outs = ticks(sim, 0, 90)
    assert sink.seen == outs
    assert [len(o.readings) for o in outs] == [3] * 10


def test_invalid_buttons_are_config_errors(make_sim, console):
    sim = make_sim()
    assert not sim.press_button(4)
    assert not sim.release_button(0)
    assert console.messages[-1] == ("warning", "Config Error: no button SW0")
    sim.tick(0.0)


def test_release_button(make_sim):
    sim = make_sim()
    sim.press_button(1)
    assert sim.buttons.read(1)
    sim.release_button(1)
    assert not sim.buttons.read(1)


def test_field_swap_happens_after_integration(make_sim):
    sim = make_sim()
    dark = EnvironmentField.blank(800, 600, color=(0, 0, 0))
    sim.set_field(dark)
    assert sim.sensors.read(1, sim.pose) == 60
    out = sim.tick(0.0)
    assert sim.field is dark
    assert out.readings == [1020, 1020, 1020]


def test_set_field_bounds(make_sim, console):
    sim = make_sim()
    assert not sim.set_field_bounds(0, 100)
    assert console.messages[-1][0] == "warning"
    assert sim.field.width == 800

    assert sim.set_field_bounds(400, 300)
    assert sim.field.width == 800
    sim.tick(0.0)
    assert (sim.field.width, sim.field.height) == (400, 300)
    assert sim.sensors.field is sim.field


def test_shrunk_field_collides_sooner(make_sim):
    sim = make_sim()
    sim.set_field_bounds(200, 200)
    sim.tick(0.0)
    sim.start("motor(100, 100)\n" + IDLE_LOOP)
    ticks(sim, 50, 3000, 50)
    assert isinstance(sim.last_fault, CollisionFault)
    assert sim.pose.x + 25.0 <= 200.0


def test_sensor_edits_pass_through(make_sim):
    sim = make_sim(mounts=())
    assert sim.sensors.count() == 0
    sensor = sim.add_sensor(10, 5)
    assert sim.sensors.count() == 1
    assert sim.add_sensor(99, 0) is None
    assert sim.move_sensor(sensor.id, y=-5)
    assert sim.sensors.sensors[0].y == -5.0
    assert sim.remove_sensor(sensor.id)
    assert sim.sensors.count() == 0


def test_sensor_edits_report_to_console(make_sim, console):
    sim = make_sim()
    assert not sim.move_sensor(1, x=999)
    assert console.messages[-1] == ("warning", "Config Error: Position must be between -25 and 25!")

    assert sim.move_sensor(1, x=15, y=-5)
    assert console.messages[-1] == ("info", "Light Sensor 1 updated to (15.0, -5.0)")

    assert sim.remove_sensor(2)
    assert console.messages[-1] == ("info", "Sensor deleted.")
    assert not sim.remove_sensor(2)
    assert console.messages[-1] == ("warning", "Config Error: no sensor with id 2")

    for _ in range(30):
        sim.add_sensor()
    assert sim.sensors.count() == 25
    assert console.messages[-1] == ("warning", "Config Error: Maximum sensors (25) reached!")
