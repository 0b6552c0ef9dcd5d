"""Tests for the command line interface."""

import json
import re

import pytest

from payroll_pipeline.cli import PayrollCli
from payroll_pipeline.config import Settings


@pytest.fixture
def cli(tmp_path) -> PayrollCli:
    settings = Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path}/cli.db",
        engine_version="test",
        host="127.0.0.1",
        port=8000,
        debug=False,
        log_level="WARNING",
    )
    return PayrollCli(settings)


class TestLoanSchedule:
    def test_prints_schedule(self, cli, capsys):
        exit_code = cli.run(["loan-schedule", "--principal", "10000000", "--rate", "12", "--tenure", "12"])

        out = capsys.readouterr().out
        assert exit_code == 0
        assert "EMI: Rs 8,884.88" in out
        assert "Total interest: Rs 6,618.53" in out
        assert "Rs 8,884.85" in out  # final installment

    def test_invalid_rate(self, cli, capsys):
        exit_code = cli.run(["loan-schedule", "--principal", "100000", "--rate", "75", "--tenure", "12"])

        assert exit_code == 1
        assert "Invalid annual_rate" in capsys.readouterr().err


class TestRunCommands:
    def test_trigger_then_status(self, cli, capsys):
        assert cli.run(["init-db"]) == 0
        assert cli.run(["trigger", "--month", "4", "--year", "2025"]) == 0
        out = capsys.readouterr().out
        run_id = re.search(r"Payroll run (\S+) queued for 2025-04", out).group(1)

        assert cli.run(["status", run_id]) == 0
        body = json.loads(capsys.readouterr().out)
        assert body["status"] == "PENDING"
        assert body["period"] == "2025-04"
        assert body["job"]["state"] == "waiting"

        assert cli.run(["trigger", "--month", "4", "--year", "2025"]) == 1
        assert "already exists" in capsys.readouterr().err

    def test_status_of_unknown_run(self, cli, capsys):
        cli.run(["init-db"])

        exit_code = cli.run(["status", "00000000-0000-0000-0000-000000000000"])

        assert exit_code == 1
        assert "not found" in capsys.readouterr().err

    def test_resume_pending_run_is_already_waiting(self, cli, capsys):
        cli.run(["init-db"])
        cli.run(["trigger", "--month", "5", "--year", "2025"])
        run_id = re.search(r"Payroll run (\S+) queued", capsys.readouterr().out).group(1)

        assert cli.run(["resume", run_id]) == 0
        assert capsys.readouterr().out.strip() == f"payroll-{run_id}-validation: already waiting"


def test_no_command_prints_help(cli, capsys):
    assert cli.run([]) == 1
    assert "usage: payroll-pipeline" in capsys.readouterr().out
