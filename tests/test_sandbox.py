from __future__ import annotations

import pytest

from robosim.engine.errors import ValidationError
from robosim.engine.sandbox import ScriptSandbox
from robosim.engine.types import ButtonWait, DelayWait, ExecutionState


def test_start_validates_before_anything_changes(host):
    sandbox = ScriptSandbox(host)
    sandbox.start("while True:\n    delay(10)\n")
    sandbox.step(0.0)
    assert sandbox.state is ExecutionState.SUSPENDED

    with pytest.raises(ValidationError):
        sandbox.start("motor(1,\n")
    # The old run is untouched by a rejected start.
    assert sandbox.state is ExecutionState.SUSPENDED
    assert sandbox.program is not None


def test_step_budget_bounds_each_batch(host):
    sandbox = ScriptSandbox(host, step_budget=50)
    sandbox.start("x = 0\nwhile True:\n    x += 1\n")
    assert sandbox.step(0.0) is ExecutionState.RUNNING
    assert sandbox.program.steps == 50
    sandbox.step(16.0)
    assert sandbox.program.steps == 100


def test_natural_end_finishes_and_zeroes_motor(host):
    sandbox = ScriptSandbox(host)
    sandbox.start("motor(60, 60)\nlog('bye')\n")
    assert sandbox.step(0.0) is ExecutionState.FINISHED
    assert sandbox.program is None
    assert host.motor_buffer.command.left == 0.0
    assert not sandbox.active


def test_fault_halts_immediately(host, console):
    sandbox = ScriptSandbox(host)
    sandbox.start("motor(50, 50)\nlog('before')\nboom()\nlog('after')\n")
    assert sandbox.step(0.0) is ExecutionState.FAILED
    assert sandbox.error.line == 3
    assert sandbox.error.describe() == "Runtime Error (Line 3): NameError: name 'boom' is not defined"
    assert console.user_messages() == ["before"]
    assert host.motor_buffer.command.left == 0.0

    assert sandbox.step(100.0) is ExecutionState.FAILED
    assert console.user_messages() == ["before"]


def test_delay_resumes_at_deadline(host, console):
    sandbox = ScriptSandbox(host)
    sandbox.start("delay(100)\nlog('done')\n")
    assert sandbox.step(1000.0) is ExecutionState.SUSPENDED
    assert sandbox.suspension == DelayWait(1100.0)

    assert sandbox.step(1099.9) is ExecutionState.SUSPENDED
    assert console.user_messages() == []
    assert sandbox.step(1100.0) is ExecutionState.FINISHED
    assert console.user_messages() == ["done"]


def test_wait_sw_resumes_on_press(host, console):
    sandbox = ScriptSandbox(host)
    sandbox.start("waitSW(3)\nlog('go')\n")
    sandbox.step(0.0)
    assert sandbox.suspension == ButtonWait(3)

    host.buttons.set(1, True)
    assert sandbox.step(10.0) is ExecutionState.SUSPENDED
    host.buttons.set(3, True)
    assert sandbox.step(20.0) is ExecutionState.FINISHED
    assert console.user_messages() == ["go"]


@pytest.mark.parametrize("start_state_ms", [None, 0.0])
def test_stop_is_safe_in_any_state(host, start_state_ms):
    sandbox = ScriptSandbox(host)
    sandbox.stop()
    assert sandbox.state is ExecutionState.IDLE

    sandbox.start("motor(80, 80)\nwaitSW(1)\nmotor(90, 90)\n")
    if start_state_ms is not None:
        sandbox.step(start_state_ms)
        assert sandbox.state is ExecutionState.SUSPENDED
        assert host.motor_buffer.command.left == 80.0
    sandbox.stop()
    sandbox.stop()
    assert sandbox.state is ExecutionState.IDLE
    assert sandbox.suspension is None
    assert host.motor_buffer.command.left == 0.0

    host.buttons.set(1, True)
    assert sandbox.step(50.0) is ExecutionState.IDLE
    assert host.motor_buffer.command.left == 0.0


def test_restart_runs_fresh_program(host, console):
    sandbox = ScriptSandbox(host)
    sandbox.start("log('first')\ndelay(1000)\nlog('first again')\n")
    sandbox.step(0.0)
    sandbox.start("log('second')\n")
    sandbox.step(5000.0)
    assert console.user_messages() == ["first", "second"]
    assert sandbox.state is ExecutionState.FINISHED


def test_budget_must_be_positive(host):
    with pytest.raises(ValueError):
        ScriptSandbox(host, step_budget=0)
