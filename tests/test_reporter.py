from __future__ import annotations

import csv
import json
import logging

import pytest

from robosim.engine.reporter import ConsoleLog, TraceWriter


def test_console_log_levels_and_listeners(caplog):
    log = ConsoleLog()
    heard = []
    log.subscribe(lambda message, severity: heard.append((severity, message)))

    with caplog.at_level(logging.INFO, logger="robosim.console"):
        log.report("hello", "user")
        log.report("Robot position reset.")
        log.report("Collision Error: Robot hit the wall!", "error")

    assert [r.getMessage() for r in caplog.records] == [
        "User: hello",
        "Robot position reset.",
        "Collision Error: Robot hit the wall!",
    ]
    assert caplog.records[-1].levelno == logging.ERROR
    assert heard == log.messages
    assert log.user_messages() == ["hello"]

    log.clear()
    assert log.messages == []


def test_console_log_keeps_recent_messages():
    log = ConsoleLog(keep=3)
    for i in range(5):
        log.report(str(i), "user")
    assert log.user_messages() == ["2", "3", "4"]


def test_trace_writer_outputs(tmp_path, make_sim, console):
    out_dir = tmp_path / "run"
    writer = TraceWriter(out_dir)
    console.subscribe(writer.report)
    sim = make_sim()
    sim.telemetry_sinks.append(writer)

    sim.start("motor(100, 100)\ndelay(200)\nlog('half way')\nmotor(0, 0)\n")
    t = 0.0
    while t <= 500.0:
        sim.tick(t)
        t += 50.0
    writer.close()
    report_path = writer.write_report(out_dir, t / 1000.0)

    with writer.trace_path.open(encoding="utf-8") as f:
        rows = list(csv.DictReader(f))
    assert len(rows) == 11
    assert rows[0]["state"] == "suspended"
    assert rows[-1]["state"] == "finished"
    assert len(rows[0]["readings"].split()) == 3
    assert float(rows[-1]["x"]) > 125.0

    with writer.events_path.open(encoding="utf-8") as f:
        events = list(csv.DictReader(f))
    messages = [e["message"] for e in events]
    assert messages[0] == "Syntax check passed. Starting execution..."
    assert "half way" in messages
    assert messages[-1] == "Program finished."

    report = json.loads(report_path.read_text(encoding="utf-8"))
    assert report["ticks"] == 11
    assert report["final_state"] == "finished"
    assert report["collisions"] == 0
    assert report["fault"] is None
    assert report["distance_px"] > 0.0
    assert report["max_wheel_speed_px_s"] <= 220.0
    assert report["final_pose"]["x"] == pytest.approx(float(rows[-1]["x"]), abs=1e-5)


def test_trace_writer_records_fault(tmp_path, make_sim):
    writer = TraceWriter(tmp_path)
    sim = make_sim(start_x=770.0)
    sim.telemetry_sinks.append(writer)
    sim.start("motor(100, 100)\nwhile True:\n    delay(10)\n")
    t = 0.0
    while t <= 2000.0:
        sim.tick(t)
        t += 50.0
    writer.close()
    report = json.loads(writer.write_report(tmp_path, 2.0).read_text(encoding="utf-8"))
    assert report["collisions"] == 1
    assert report["fault"] == "Collision Error: Robot hit the wall!"
    assert report["final_state"] == "idle"
