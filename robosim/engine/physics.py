from __future__ import annotations

import math

from .config import RobotParams
from .types import Pose, WheelState, wrap_angle


def _clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def _approach(current: float, target: float, max_delta: float) -> float:
    diff = target - current
    if abs(diff) <= max_delta:
        return target
    return current + math.copysign(max_delta, diff)


class DifferentialDrive:
    """Kinematic differential drive with acceleration-limited wheels.

    The wheel axle sits ``axis_offset`` px ahead of the body center along the heading;
    the axle point is what the wheels move, and the body center is recovered from it
    after the heading update. With ``axis_offset == 0`` this is the plain unicycle model.

    Screen y grows downward, so a faster left wheel increases theta and turns the robot
    clockwise on screen.
    """

    def __init__(self, params: RobotParams):
        self.params = params
        self.left = WheelState()
        self.right = WheelState()

    def update_params(self, params: RobotParams) -> None:
        self.params = params
        self.set_targets(self.left.target, self.right.target)

    def reset(self) -> None:
        self.left = WheelState()
        self.right = WheelState()

    def set_targets(self, v_left: float, v_right: float) -> None:
        limit = self.params.max_speed
        self.left.target = _clamp(v_left, -limit, limit)
        self.right.target = _clamp(v_right, -limit, limit)

    def step(self, pose: Pose, dt_s: float) -> Pose:
        if dt_s <= 0:
            return Pose(pose.x, pose.y, pose.theta)

        p = self.params
        max_delta = p.max_accel * dt_s
        self.left.current = _approach(self.left.current, self.left.target, max_delta)
        self.right.current = _approach(self.right.current, self.right.target, max_delta)

        v_l = self.left.current
        v_r = self.right.current
        v = (v_r + v_l) / 2.0
        omega = (v_l - v_r) / p.wheel_base

        c = math.cos(pose.theta)
        s = math.sin(pose.theta)
        axle_x = pose.x + p.axis_offset * c
        axle_y = pose.y + p.axis_offset * s

        axle_x += v * c * dt_s
        axle_y += v * s * dt_s
        theta = pose.theta + omega * dt_s

        x = axle_x - p.axis_offset * math.cos(theta)
        y = axle_y - p.axis_offset * math.sin(theta)
        return Pose(x, y, wrap_angle(theta))

    def wheels(self) -> tuple[WheelState, WheelState]:
        return (
            WheelState(self.left.target, self.left.current),
            WheelState(self.right.target, self.right.current),
        )
