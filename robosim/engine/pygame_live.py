from __future__ import annotations

import math

from .field import EnvironmentField
from .types import MotorCommand, TickTelemetry


class PygameLiveViewer:
    """Live renderer fed by the simulation's telemetry each tick.

    Keys 1-3 hold SW1-SW3 down while pressed. The viewer is optional: without a
    display it disables itself and every call becomes a no-op.
    """

    def __init__(self, field: EnvironmentField, body_size: float = 50.0, panel_h: int = 90):
        self.enabled = False
        self._quit = False
        self.body_size = body_size
        self.panel_h = panel_h
        self.path: list[tuple[float, float]] = []
        self.lines: list[tuple[str, str]] = []
        self.button_events: list[tuple[int, bool]] = []
        self._field: EnvironmentField | None = None
        self._field_surface = None

        try:
            import pygame

            self.pygame = pygame
            pygame.init()
            self.screen = pygame.display.set_mode((field.width, field.height + panel_h))
            pygame.display.set_caption("Robot Simulation")
            self.clock = pygame.time.Clock()
            self.font = pygame.font.SysFont("monospace", 16)
            self.enabled = True
        except Exception:
            self.enabled = False

    def should_close(self) -> bool:
        return self._quit

    def report(self, message: str, severity: str = "info") -> None:
        self.lines.append((severity, message))
        del self.lines[:-3]

    def poll_buttons(self) -> list[tuple[int, bool]]:
        """Return (button, pressed) edges collected since the last call."""
        events, self.button_events = self.button_events, []
        return events

    def on_tick(self, out: TickTelemetry) -> None:
        if not self.enabled:
            return
        self.path.append((out.pose.x, out.pose.y))

    def draw(self, out: TickTelemetry, field: EnvironmentField, sensor_points: list[tuple[float, float]]) -> None:
        if not self.enabled:
            return

        pg = self.pygame
        keys = {pg.K_1: 1, pg.K_2: 2, pg.K_3: 3}
        for ev in pg.event.get():
            if ev.type == pg.QUIT:
                self._quit = True
            elif ev.type in (pg.KEYDOWN, pg.KEYUP) and ev.key in keys:
                self.button_events.append((keys[ev.key], ev.type == pg.KEYDOWN))

        if field is not self._field:
            self._field = field
            self._field_surface = pg.surfarray.make_surface(field.pixels.transpose(1, 0, 2))

        fg = (30, 34, 40)
        path_c = (74, 164, 255)
        bot_c = (70, 130, 180)
        head_c = (255, 92, 92)
        sensor_c = (255, 60, 60)

        self.screen.fill((228, 233, 240))
        self.screen.blit(self._field_surface, (0, 0))

        if len(self.path) > 1:
            pg.draw.lines(self.screen, path_c, False, [(int(x), int(y)) for x, y in self.path], 2)

        x, y, th = out.pose.x, out.pose.y, out.pose.theta
        half = self.body_size / 2.0
        corners = []
        for lx, ly in ((half, half), (half, -half), (-half, -half), (-half, half)):
            wx = x + lx * math.cos(th) - ly * math.sin(th)
            wy = y + lx * math.sin(th) + ly * math.cos(th)
            corners.append((int(wx), int(wy)))
        pg.draw.polygon(self.screen, bot_c, corners)
        hx = x + half * math.cos(th)
        hy = y + half * math.sin(th)
        pg.draw.line(self.screen, head_c, (int(x), int(y)), (int(hx), int(hy)), 3)
        for sx, sy in sensor_points:
            pg.draw.circle(self.screen, sensor_c, (int(sx), int(sy)), 3)

        top = field.height + 6
        status = f"t={out.time_ms / 1000.0:7.2f}s  {out.state.value:<9}  x={x:7.1f} y={y:7.1f} th={th:5.2f}"
        self.screen.blit(self.font.render(status, True, fg), (10, top))
        self._draw_motor(10, top + 22, out.motor)
        for i, (severity, message) in enumerate(self.lines):
            color = (200, 40, 40) if severity == "error" else fg
            self.screen.blit(self.font.render(message[:90], True, color), (260, top + 22 + 18 * i))

        pg.display.flip()
        self.clock.tick(120)

    def close(self) -> None:
        if not self.enabled:
            return
        self.pygame.quit()

    def _draw_motor(self, x: int, y: int, cmd: MotorCommand) -> None:
        pg = self.pygame
        for row, (label, value) in enumerate((("L", cmd.left), ("R", cmd.right))):
            by = y + row * 22
            w, h = 160, 12
            center = x + 20 + w // 2
            frac = max(-1.0, min(1.0, value / 100.0))
            fill_w = int((w // 2) * abs(frac))
            pg.draw.rect(self.screen, (170, 175, 188), (x + 20, by, w, h), border_radius=4)
            left = center if frac >= 0 else center - fill_w
            pg.draw.rect(self.screen, (110, 200, 120), (left, by, fill_w, h), border_radius=4)
            self.screen.blit(self.font.render(label, True, (30, 34, 40)), (x, by - 3))
