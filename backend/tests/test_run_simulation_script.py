import json
from datetime import date

import pytest

from scripts import run_simulation
from simulator.distributions import MealPeriod


def test_parser_defaults():
    args = run_simulation.build_parser().parse_args([])
    assert args.date is None
    assert args.count is None
    assert args.multiplier == 1.0
    assert args.period is None
    assert args.summarize_only is False


def test_parser_full_options():
    args = run_simulation.build_parser().parse_args(
        [
            "--date",
            "2026-03-14",
            "--count",
            "25",
            "--refund-percentage",
            "10",
            "--period",
            "lunch",
            "--period",
            "dinner",
            "--multiplier",
            "1.5",
            "--merchant-id",
            "MID1",
            "--seed",
            "7",
        ]
    )
    assert args.date == date(2026, 3, 14)
    assert args.count == 25
    assert args.refund_percentage == 10.0
    assert args.period == [MealPeriod.LUNCH, MealPeriod.DINNER]
    assert args.merchant_id == "MID1"
    assert args.seed == 7


def test_count_auto_means_automatic_volume():
    assert run_simulation.build_parser().parse_args(["--count", "auto"]).count is None


@pytest.mark.parametrize("argv", [["--count", "lots"], ["--period", "brunch"], ["--refund-percentage", "101"]])
def test_parser_rejects_bad_values(argv):
    with pytest.raises(SystemExit):
        run_simulation.build_parser().parse_args(argv)


def test_main_prints_tally(monkeypatch, capsys):
    async def _fake_run(settings, credentials, business_date, **kwargs):
        return {"merchant_id": credentials.merchant_id, "settled": 3, "count": kwargs["count"]}

    monkeypatch.setattr(run_simulation, "run_merchant_day", _fake_run)
    monkeypatch.setattr(
        run_simulation,
        "resolve_merchant",
        lambda settings, merchant_id=None: type("Creds", (), {"merchant_id": merchant_id or "MID1"})(),
    )

    assert run_simulation.main(["--count", "3", "--merchant-id", "MID7"]) == 0
    printed = json.loads(capsys.readouterr().out)
    assert printed == {"count": 3, "merchant_id": "MID7", "settled": 3}


def test_main_reports_unknown_merchant(monkeypatch, capsys):
    def _missing(settings, merchant_id=None):
        raise ValueError("Merchant not found: MID9")

    monkeypatch.setattr(run_simulation, "resolve_merchant", _missing)

    assert run_simulation.main(["--merchant-id", "MID9"]) == 1
    assert "Merchant not found" in capsys.readouterr().out


def test_script_help_runs_standalone():
    import subprocess
    import sys
    from pathlib import Path

    script_path = Path(__file__).resolve().parents[1] / "scripts" / "run_simulation.py"
    proc = subprocess.run([sys.executable, str(script_path), "--help"], capture_output=True, text=True, check=False)

    assert proc.returncode == 0
    assert "--summarize-only" in proc.stdout
