from __future__ import annotations

from .types import MotorCommand

MOTOR_RANGE = 100.0


def _clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


class MotorBuffer:
    """Holds the latest MotorCommand written by the script.

    The command is stored in normalized units (-100..100). ``set_physical`` accepts
    wheel speeds in px/s and converts through ``max_speed`` so both entry points write
    the same state.
    """

    def __init__(self, max_speed: float):
        self.max_speed = max_speed
        self.command = MotorCommand()

    def set_normalized(self, left: float, right: float) -> None:
        self.command = MotorCommand(
            left=_clamp(float(left), -MOTOR_RANGE, MOTOR_RANGE),
            right=_clamp(float(right), -MOTOR_RANGE, MOTOR_RANGE),
        )

    def set_physical(self, left_px_s: float, right_px_s: float) -> None:
        scale = MOTOR_RANGE / self.max_speed
        self.set_normalized(float(left_px_s) * scale, float(right_px_s) * scale)

    def zero(self) -> None:
        self.command = MotorCommand()

    def wheel_targets(self) -> tuple[float, float]:
        scale = self.max_speed / MOTOR_RANGE
        return self.command.left * scale, self.command.right * scale

    def snapshot(self) -> MotorCommand:
        return MotorCommand(self.command.left, self.command.right)
