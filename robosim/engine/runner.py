from __future__ import annotations

import argparse
import logging
import time
from pathlib import Path

from .config import DEFAULT_CONFIG_DIR, ConfigManager
from .pygame_live import PygameLiveViewer
from .reporter import ConsoleLog, TraceWriter
from .simulator import Simulation

logger = logging.getLogger(__name__)

PRESS_HOLD_S = 0.1


def parse_press(text: str) -> tuple[int, float]:
    """Parse ``N@T`` (button N pressed at T seconds of simulated time)."""
    try:
        button, at = text.split("@", 1)
        return int(button), float(at)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected N@SECONDS, got {text!r}") from None


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Headless line-follower robot simulator")
    p.add_argument("--script", required=True, type=str, help="robot program to run")
    p.add_argument("--map", default=None, type=str, help="field image (png/bmp/jpg)")
    p.add_argument("--config-dir", default=str(DEFAULT_CONFIG_DIR), type=str)
    p.add_argument("--out", default="output/run", type=str)
    p.add_argument("--duration", default=None, type=float)
    p.add_argument("--no-realtime", action="store_true")
    p.add_argument("--live", action="store_true", help="open the pygame viewer")
    p.add_argument(
        "--press",
        action="append",
        default=[],
        type=parse_press,
        metavar="N@T",
        help="press button N at T seconds (repeatable)",
    )
    p.add_argument("-v", "--verbose", action="store_true")
    return p


def _button_schedule(presses: list[tuple[int, float]]) -> list[tuple[float, int, bool]]:
    events = []
    for button, at in presses:
        events.append((at, button, True))
        events.append((at + PRESS_HOLD_S, button, False))
    return sorted(events, key=lambda e: e[0])


def main() -> None:
    args = _build_arg_parser().parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )

    cfg = ConfigManager(Path(args.config_dir).resolve())
    robot, sandbox, layout, run = cfg.load_all()
    if args.duration is not None:
        run.duration_s = args.duration
    if args.no_realtime:
        run.realtime = False

    console = ConsoleLog()
    map_path = Path(args.map).resolve() if args.map else None
    sim = Simulation.from_config(robot, sandbox, layout, run, map_path=map_path, log_sink=console)

    out_dir = Path(args.out).resolve()
    writer = TraceWriter(out_dir)
    console.subscribe(writer.report)
    sim.telemetry_sinks.append(writer)

    viewer = PygameLiveViewer(sim.field, body_size=robot.body_size) if args.live else None
    if viewer is not None:
        if viewer.enabled:
            console.subscribe(viewer.report)
            sim.telemetry_sinks.append(viewer)
        else:
            logger.warning("pygame display unavailable, running headless")
            viewer = None

    source = Path(args.script).read_text(encoding="utf-8")
    schedule = _button_schedule(args.press)

    t = 0.0
    sim_start = time.perf_counter()
    started = sim.start(source)

    while started and t <= run.duration_s:
        wall_loop_start = time.perf_counter()

        while schedule and schedule[0][0] <= t:
            _, button, pressed = schedule.pop(0)
            if pressed:
                sim.press_button(button)
            else:
                sim.release_button(button)
        if viewer is not None:
            for button, pressed in viewer.poll_buttons():
                if pressed:
                    sim.press_button(button)
                else:
                    sim.release_button(button)

        out = sim.tick(t * 1000.0)

        if viewer is not None:
            viewer.draw(out, sim.field, sim.sensors.world_points(sim.pose))
            if viewer.should_close():
                sim.stop()
                break

        changed, new_cfg = cfg.maybe_reload(t)
        if changed and new_cfg is not None:
            robot, sandbox, layout, new_run = new_cfg
            sim.apply_config(robot, sandbox, layout)
            sim.max_dt_s = new_run.max_dt_s
            console.report("Configuration reloaded.", "info")

        if not sim.running and viewer is None:
            break

        t += run.frame_s
        if run.realtime:
            elapsed = time.perf_counter() - wall_loop_start
            sleep_s = run.frame_s - elapsed
            if sleep_s > 0:
                time.sleep(sleep_s)

    writer.close()
    report_path = writer.write_report(out_dir, t)
    sim_elapsed = time.perf_counter() - sim_start
    if viewer is not None:
        viewer.close()

    print(f"Simulation complete in {sim_elapsed:.3f}s (sim time {t:.3f}s, {sim.state.value})")
    if sim.last_fault is not None:
        print(f"Fault: {sim.last_fault.describe()}")
    print(f"Trace: {writer.trace_path}")
    print(f"Events: {writer.events_path}")
    print(f"Report: {report_path}")


if __name__ == "__main__":
    main()
