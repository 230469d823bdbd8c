import json
from types import SimpleNamespace

import pytest
from click.testing import CliRunner

import cli as cli_module
from cli import _load_ledger_rows, cli

ROWS = [
    {"agent_id": "agent-1", "symbol": "BTC", "price": 50000, "executed_at": "2024-05-01T10:00:00Z",
     "meta": {"position_id": "P1", "action": "OPEN_LONG", "collateral": 1000, "leverage": 5}},
    {"agent_id": "agent-1", "symbol": "BTC", "price": 55000, "executed_at": "2024-05-02T10:00:00Z",
     "realized_pnl": 500, "meta": {"position_id": "P1", "action": "CLOSE"}},
    {"agent_id": "agent-2", "symbol": "ETH", "price": 3000, "executed_at": "2024-05-03T10:00:00Z",
     "meta": json.dumps({"position_id": "P2", "action": "OPEN_SHORT", "collateral": 300})},
]


@pytest.fixture(autouse=True)
def quiet_console(monkeypatch):
    monkeypatch.setenv("LOGGING__CONSOLE_ENABLED", "false")
    monkeypatch.setenv("LOGGING__FILE_ENABLED", "false")


@pytest.fixture
def jsonl_export(tmp_path):
    path = tmp_path / "ledger.jsonl"
    path.write_text("\n".join(json.dumps(row) for row in ROWS) + "\n", encoding="utf-8")
    return path


def test_load_rows_accepts_array_and_jsonl(tmp_path, jsonl_export):
    array_path = tmp_path / "ledger.json"
    array_path.write_text(json.dumps(ROWS), encoding="utf-8")
    empty_path = tmp_path / "empty.json"
    empty_path.write_text("", encoding="utf-8")

    assert _load_ledger_rows(array_path) == ROWS
    assert _load_ledger_rows(jsonl_export) == ROWS
    assert _load_ledger_rows(empty_path) == []


def test_ledger_command_lists_positions(jsonl_export):
    result = CliRunner().invoke(cli, ["ledger", str(jsonl_export)])

    assert result.exit_code == 0, result.output
    assert "P1" in result.output
    assert "P2" in result.output
    assert "CLOSED" in result.output
    assert "2 position(s)" in result.output


def test_ledger_command_filters_by_status_and_agent(jsonl_export):
    result = CliRunner().invoke(cli, ["ledger", str(jsonl_export), "--status", "open", "--agent", "agent-2"])

    assert result.exit_code == 0, result.output
    assert "P2" in result.output
    assert "SHORT" in result.output
    assert "1 position(s)" in result.output


def test_ledger_command_rejects_bad_export(tmp_path):
    path = tmp_path / "broken.jsonl"
    path.write_text("{not json}\n", encoding="utf-8")

    result = CliRunner().invoke(cli, ["ledger", str(path)])

    assert result.exit_code == 1


@pytest.fixture
def recording_container(monkeypatch, test_settings):
    """Swap the CLI's container and connection wrapper for ones that record call order."""
    calls = []

    class RecordingContainer:
        def settings(self):
            return test_settings

        def market_data_service(self):
            calls.append("market_data_service")
            return SimpleNamespace(load=None)

        def account_store(self):
            calls.append("account_store")
            return SimpleNamespace(initialize=None)

    async def no_connection(container, action):
        calls.append("connect")
        if "account_store" in calls:
            return SimpleNamespace(error="not loaded", snapshot=None)
        return []

    monkeypatch.setattr(cli_module, "AppContainer", RecordingContainer)
    monkeypatch.setattr(cli_module, "configure_logging", lambda settings: calls.append("configure_logging"))
    monkeypatch.setattr(cli_module, "_with_connection", no_connection)
    return calls


def test_markets_configures_logging_before_building_services(recording_container, test_settings):
    result = CliRunner().invoke(cli, ["markets", "--top", "3"])

    assert result.exit_code == 0, result.output
    assert recording_container == ["configure_logging", "market_data_service", "connect"]
    assert test_settings.market_data.top_k == 3


def test_account_configures_logging_before_building_store(recording_container):
    result = CliRunner().invoke(cli, ["account", "0xabc"])

    assert result.exit_code == 1
    assert "not loaded" in result.output
    assert recording_container == ["configure_logging", "account_store", "connect"]


@pytest.mark.parametrize("top", ["0", "-2"])
def test_markets_rejects_non_positive_top(recording_container, top):
    result = CliRunner().invoke(cli, ["markets", "--top", top])

    assert result.exit_code == 2
    assert recording_container == []
