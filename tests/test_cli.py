import json
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from voting_deployer import cli
from voting_deployer.config import Settings
from voting_deployer.errors import DeploymentError
from voting_deployer.recorder import VOTING_SYSTEM_CHECKS, StepEvent

from conftest import FakeFactory, make_handle


@pytest.fixture
def settings(tmp_path):
    return Settings(
        network="localhost",
        rpc_url="http://127.0.0.1:8545",
        chain_id=31337,
        explorer=None,
        artifacts_dir=tmp_path / "artifacts",
        deployments_dir=tmp_path / "deployments",
    )


@pytest.fixture(autouse=True)
def workdir(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    return tmp_path


class TestMain:

    def test_success(self, monkeypatch, settings, make_context, capsys, workdir):
        context = make_context(FakeFactory(make_handle()))
        monkeypatch.setattr(cli, "load_settings", lambda: settings)
        monkeypatch.setattr(cli, "connect", lambda s: context)

        assert cli.main() == 0

        out = capsys.readouterr().out
        assert "[OK] VotingSystem deployed successfully!" in out
        assert "Voting Status: Closed" in out
        assert "[SUCCESS] Deployment completed successfully!" in out
        for i, step in enumerate(cli.NEXT_STEPS, 1):
            assert f"{i}. {step}" in out

        record = json.loads((settings.deployments_dir / "localhost_deployment.json").read_text())
        assert record["electionName"] == "Presidential Election 2024"

        logs = list((workdir / "logs").glob("deployment_log_*.log"))
        assert len(logs) == 1
        assert "Deployment completed successfully!" in logs[0].read_text(encoding="utf-8")

    def test_failure_exit_code(self, monkeypatch, settings, capsys):
        monkeypatch.setattr(cli, "load_settings", lambda: settings)
        monkeypatch.setattr(cli, "connect", lambda s: MagicMock())
        monkeypatch.setattr(
            cli, "deploy",
            MagicMock(side_effect=DeploymentError("boom", cause=ValueError("nonce too low"))),
        )

        assert cli.main() == 1

        err = capsys.readouterr().err
        assert "[ERROR] Deployment failed: boom" in err
        assert "Caused by: ValueError: nonce too low" in err

    def test_bad_configuration(self, monkeypatch, capsys):
        def bad_settings():
            raise ValueError("Unknown network 'nowhere'")
        monkeypatch.setattr(cli, "load_settings", bad_settings)

        assert cli.main() == 1
        assert "Unknown network" in capsys.readouterr().err

    def test_unwritable_log_directory(self, monkeypatch, workdir, capsys):
        (workdir / "logs").write_text("a file, not a directory")
        load_settings = MagicMock()
        monkeypatch.setattr(cli, "load_settings", load_settings)

        assert cli.main() == 1

        assert "[ERROR] Deployment failed:" in capsys.readouterr().err
        load_settings.assert_not_called()

    def test_streams_restored(self, monkeypatch, settings):
        stdout, stderr = sys.stdout, sys.stderr
        monkeypatch.setattr(cli, "load_settings", lambda: settings)
        monkeypatch.setattr(cli, "connect", lambda s: MagicMock())
        monkeypatch.setattr(cli, "deploy", MagicMock(side_effect=DeploymentError("boom")))

        cli.main()

        assert sys.stdout is stdout
        assert sys.stderr is stderr

    def test_explorer_link(self, monkeypatch, settings, make_context, capsys):
        context = make_context(FakeFactory(make_handle()))
        context.explorer_url = "https://sepolia.etherscan.io/tx/"
        monkeypatch.setattr(cli, "load_settings", lambda: settings)
        monkeypatch.setattr(cli, "connect", lambda s: context)

        cli.main()

        handle_hash = "0x" + "01" * 32
        assert f"Explorer: https://sepolia.etherscan.io/tx/{handle_hash}" in capsys.readouterr().out


class TestConsoleReporter:

    def test_voting_status(self, capsys):
        values = {
            "owner": "0x" + "f3" * 20,
            "electionName": "E",
            "votingOpen": True,
            "candidateCount": 3,
            "totalVotes": 12,
        }
        cli.ConsoleReporter().on_step(
            StepEvent("verified", "Contract verification", {"values": values, "checks": VOTING_SYSTEM_CHECKS})
        )

        out = capsys.readouterr().out
        assert "Voting Status: Open" in out
        assert "Total Candidates: 3" in out
        assert "Total Votes: 12" in out

    def test_balance_in_ether(self, capsys):
        cli.ConsoleReporter().on_step(
            StepEvent("deployer", "Deployer account", {"address": "0xabc", "balance": 2 * 10**18})
        )

        assert "Balance: 2 ETH" in capsys.readouterr().out

    def test_unknown_step_ignored(self, capsys):
        cli.ConsoleReporter().on_step(StepEvent("something-else", "x"))

        assert capsys.readouterr().out == ""


def test_start_log_header(tmp_path):
    stdout, stderr = sys.stdout, sys.stderr
    try:
        log_file = cli.start_log(tmp_path / "logs")
    finally:
        sys.stdout, sys.stderr = stdout, stderr

    assert Path(log_file).read_text(encoding="utf-8").startswith("VotingSystem Deployment Log\n")
