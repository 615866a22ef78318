import json
import subprocess
import sys

import pytest

from nebrabreath import cli


def run_cmd(args):
    python = sys.executable
    result = subprocess.run([python, "-m", "nebrabreath", *args], capture_output=True, text=True)
    return result.returncode, result.stdout, result.stderr


@pytest.fixture
def no_logging_setup(monkeypatch):
    """In-process main() calls must not attach handlers to the test runner's root logger."""
    calls = []
    monkeypatch.setattr(cli, "setup_logging", lambda **kwargs: calls.append(kwargs))
    return calls


def json_lines(text):
    return [json.loads(line) for line in text.splitlines() if line.strip()]


def test_help_exits_zero():
    code, out, err = run_cmd(["--help"])
    assert code == 0
    assert "NebraBreath CLI" in out


def test_catalog_subprocess_exits_zero():
    code, out, err = run_cmd(["catalog"])
    assert code == 0
    assert "sigh" in out


def test_no_command_prints_help(capsys):
    assert cli.main([]) == 2
    assert "NebraBreath CLI" in capsys.readouterr().out


def test_logging_flags_after_subcommand():
    parser = cli.build_parser()
    args = parser.parse_args(["simulate", "--technique", "box", "--seconds", "4",
                              "--log-level", "DEBUG", "--log-format", "json", "--log-mode", "perf"])
    assert args.command == "simulate"
    assert args.log_level == "DEBUG"
    assert args.log_format == "json"
    assert args.log_mode == "perf"


def test_logging_flags_after_other_subcommand():
    parser = cli.build_parser()
    args = parser.parse_args(["log", "--log-file", "custom.log", "--json"])
    assert args.command == "log"
    assert args.log_file.endswith("custom.log")
    assert args.json is True


def test_technique_and_preset_are_exclusive():
    parser = cli.build_parser()
    with pytest.raises(SystemExit):
        parser.parse_args(["simulate", "--technique", "box", "--preset", "panic", "--seconds", "1"])


def test_log_mode_defaults_to_settings(no_logging_setup, capsys):
    assert cli.main(["presets"]) == 0
    assert no_logging_setup[0]["log_mode"] == "normal"


def test_catalog_json_sorted_by_rank(no_logging_setup, capsys):
    assert cli.main(["catalog", "--json", "--filter", "pas"]) == 0
    rows = json.loads(capsys.readouterr().out)
    assert [row["id"] for row in rows[:3]] == ["sigh", "coherent", "heart_flow"]
    assert rows[0]["rank"] == 1


def test_presets_text(no_logging_setup, capsys):
    assert cli.main(["presets"]) == 0
    out = capsys.readouterr().out
    assert "panic" in out
    assert "sigh 40s -> long_exhale 20s" in out


def test_simulate_box_cycle(no_logging_setup, capsys):
    assert cli.main(["simulate", "--technique", "box", "--seconds", "16", "--no-ticks"]) == 0
    events = json_lines(capsys.readouterr().out)
    names = [e["event"] for e in events]

    assert "SECOND_TICK" not in names
    steps = [e["data"]["action"] for e in events if e["event"] == "STEP_START"]
    assert steps == ["Inhale", "Hold", "Exhale", "Hold"]
    snapshot = next(e for e in events if e["event"] == "SNAPSHOT")
    assert snapshot["data"]["cycle_count"] == 1
    assert snapshot["data"]["total_elapsed_seconds"] == 16
    assert names[-2:] == ["SESSION_END", "SESSION_RESET"]


def test_simulate_preset_completes(no_logging_setup, capsys):
    assert cli.main(["simulate", "--preset", "panic", "--seconds", "90", "--no-ticks"]) == 0
    events = json_lines(capsys.readouterr().out)
    complete = [e for e in events if e["event"] == "PRESET_COMPLETE"]
    assert len(complete) == 1
    assert complete[0]["data"]["total_seconds"] == 60
    end = next(e for e in events if e["event"] == "SESSION_END")
    assert end["data"]["durationSeconds"] == 60
    assert end["data"]["presetId"] == "panic"


def test_simulate_unknown_technique_exits_1(no_logging_setup, capsys):
    assert cli.main(["simulate", "--technique", "nope", "--seconds", "1"]) == 1
    assert "Unknown technique" in capsys.readouterr().err


def test_bad_settings_file_exits_1(no_logging_setup, tmp_path, capsys):
    path = tmp_path / "settings.json"
    path.write_text("{broken", encoding="utf-8")
    assert cli.main(["presets", "--settings", str(path)]) == 1


def test_custom_catalog(no_logging_setup, catalog, tmp_path, capsys):
    path = catalog.save(tmp_path / "catalog.json")
    assert cli.main(["presets", "--json", "--catalog", str(path)]) == 0
    assert [p["id"] for p in json.loads(capsys.readouterr().out)] == ["ab", "solo"]


def test_log_text_shows_week_and_total(no_logging_setup, tmp_path, capsys):
    from nebrabreath.services.daily_log import DailyLogStore

    path = tmp_path / "daily.json"
    DailyLogStore({}, path=path).log_seconds("sigh", 150)

    assert cli.main(["log", "--daily-log", str(path)]) == 0
    out = capsys.readouterr().out
    assert "Last 7 days:" in out
    assert "Total: 2 min" in out


def test_log_json_and_reset(no_logging_setup, tmp_path, capsys):
    from nebrabreath.services.daily_log import DailyLogStore

    path = tmp_path / "daily.json"
    DailyLogStore({}, path=path).log_seconds("sigh", 45)

    assert cli.main(["log", "--json", "--daily-log", str(path)]) == 0
    report = json.loads(capsys.readouterr().out)
    assert report["techSeconds"] == {"sigh": 45}
    assert report["compliance"]["doneCount"] == 1
    assert len(report["week"]) == 7
    assert report["totalMinutes"] == 0

    assert cli.main(["log", "--reset", "--daily-log", str(path)]) == 0
    assert not path.exists()


def test_run_headless_writes_health_and_daily_log(tmp_path):
    import os

    daily = tmp_path / "daily.json"
    health = tmp_path / "health.jsonl"
    env = dict(os.environ, HOME=str(tmp_path / "home"), QT_QPA_PLATFORM="offscreen")
    result = subprocess.run(
        [sys.executable, "-m", "nebrabreath", "run", "--technique", "box", "--seconds", "2.5",
         "--daily-log", str(daily), "--health-file", str(health), "--log-file", str(tmp_path / "run.log")],
        capture_output=True, text=True, env=env, timeout=60,
    )
    assert result.returncode == 0, result.stderr
    assert "Inhale" in result.stdout
    sessions = [json.loads(line) for line in health.read_text(encoding="utf-8").splitlines()]
    assert len(sessions) == 1
    assert sessions[0]["techniqueId"] == "box"
    assert sessions[0]["durationSeconds"] >= 1
    assert daily.exists()
