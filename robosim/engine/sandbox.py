from __future__ import annotations

import logging

from .errors import RuntimeFault
from .host_api import HostApi, Suspension
from .interpreter import PROGRAM_END, Interpreter
from .types import ButtonWait, DelayWait, ExecutionState

logger = logging.getLogger(__name__)


class ScriptSandbox:
    """Runs one robot script at a time in step-budgeted batches.

    States: IDLE -> RUNNING on ``start``; RUNNING <-> SUSPENDED around ``delay`` and
    ``waitSW``; RUNNING -> FINISHED at the end of the program; RUNNING -> FAILED on a
    fault. ``stop`` returns to IDLE from anywhere. FINISHED and FAILED keep the program
    torn down until the next ``start``.
    """

    def __init__(self, host: HostApi, step_budget: int = 50, max_call_depth: int = 100):
        if step_budget < 1:
            raise ValueError("step_budget must be at least 1")
        self.host = host
        self.step_budget = step_budget
        self.max_call_depth = max_call_depth
        self.state = ExecutionState.IDLE
        self.suspension: Suspension | None = None
        self.error: RuntimeFault | None = None
        self.program: Interpreter | None = None

    @property
    def active(self) -> bool:
        return self.state in (ExecutionState.RUNNING, ExecutionState.SUSPENDED)

    def start(self, source: str) -> None:
        """Validate and arm ``source``. Raises ValidationError with nothing changed."""
        program = Interpreter(source, self.host, max_call_depth=self.max_call_depth)
        self.stop()
        self.program = program
        self.error = None
        self.state = ExecutionState.RUNNING
        logger.debug("script armed (%d statements at top level)", len(program.tree.body))

    def stop(self) -> None:
        if self.program is not None:
            self.program.close()
            self.program = None
        self.suspension = None
        self.state = ExecutionState.IDLE
        self.host.motor_buffer.zero()

    def step(self, now_ms: float) -> ExecutionState:
        if self.state is ExecutionState.SUSPENDED:
            if not self._ready(now_ms):
                return self.state
            self.suspension = None
            self.state = ExecutionState.RUNNING

        if self.state is not ExecutionState.RUNNING or self.program is None:
            return self.state

        self.host.now_ms = now_ms
        for _ in range(self.step_budget):
            try:
                out = self.program.step()
            except RuntimeFault as exc:
                self.error = exc
                self._halt(ExecutionState.FAILED)
                break
            if out is PROGRAM_END:
                self._halt(ExecutionState.FINISHED)
                break
            if out is not None:
                self.suspension = out
                self.state = ExecutionState.SUSPENDED
                break
        return self.state

    def _ready(self, now_ms: float) -> bool:
        reason = self.suspension
        if isinstance(reason, DelayWait):
            return now_ms >= reason.resume_at_ms
        if isinstance(reason, ButtonWait):
            return self.host.buttons.read(reason.button)
        return True

    def _halt(self, state: ExecutionState) -> None:
        if self.program is not None:
            self.program.close()
            self.program = None
        self.suspension = None
        self.state = state
        self.host.motor_buffer.zero()
