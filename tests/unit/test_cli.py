"""Unit tests for the command-line interface."""

from __future__ import annotations

import json
import sys
from unittest.mock import Mock, patch

import pytest

from copy_monitor import cli, constants
from copy_monitor.eject import EjectResult


def run_cli(monkeypatch, *argv):
    monkeypatch.setattr(sys, "argv", ["copy-monitor", *argv])
    return cli.main()


class TestQuote:

    def test_quote_text(self, monkeypatch, capsys):
        assert run_cli(monkeypatch, "quote", "movies", "--items", "3") == 0

        out = capsys.readouterr().out
        assert "3 movies x 100" in out
        assert "Total: 300 (per_item)" in out

    def test_quote_json(self, monkeypatch, capsys):
        assert run_cli(monkeypatch, "quote", "series", "--size-gb", "8", "--json") == 0

        data = json.loads(capsys.readouterr().out)
        assert data["price"] == 400
        assert data["method"] == constants.METHOD_PER_GB

    def test_quote_uses_config(self, monkeypatch, capsys, mock_config_file):
        assert run_cli(monkeypatch, "--config", str(mock_config_file), "quote", "movies", "-n", "2") == 0

        assert "Total: 240" in capsys.readouterr().out

    def test_quote_rejects_negative(self, monkeypatch, capsys):
        assert run_cli(monkeypatch, "quote", "movies", "--items", "-1") == 1

        assert "Error" in capsys.readouterr().out

    def test_unknown_type_rejected_by_parser(self, monkeypatch):
        with pytest.raises(SystemExit):
            run_cli(monkeypatch, "quote", "music")


def test_classify(monkeypatch, capsys):
    assert run_cli(monkeypatch, "classify", "/m/Hollywood/Heat.mkv", "/m/Show.S01E02.mkv") == 0

    lines = capsys.readouterr().out.splitlines()
    assert lines[0].startswith("Foreign Movies")
    assert lines[1].split()[:2] == ["Series", "series"]


def test_no_command_prints_help(monkeypatch, capsys):
    assert run_cli(monkeypatch) == 1


class TestDevices:

    @patch("copy_monitor.cli.DeviceRegistry")
    def test_list_empty(self, mock_registry, monkeypatch, capsys):
        mock_registry.return_value.scan.return_value = {}

        assert run_cli(monkeypatch, "devices") == 0

        assert "No removable devices" in capsys.readouterr().out

    @patch("copy_monitor.cli.DeviceRegistry")
    def test_list_json(self, mock_registry, monkeypatch, capsys, make_device):
        dev = make_device("/dev/sdb1", "/media/usb", type=constants.DEVICE_FLASH)
        mock_registry.return_value.scan.return_value = {dev.id: dev}

        assert run_cli(monkeypatch, "devices", "--json") == 0

        data = json.loads(capsys.readouterr().out)
        assert data[0]["id"] == "/dev/sdb1"
        assert data[0]["type"] == constants.DEVICE_FLASH

    @patch("copy_monitor.cli.eject")
    @patch("copy_monitor.cli.DeviceRegistry")
    def test_eject(self, mock_registry, mock_eject, monkeypatch, capsys):
        mock_eject.return_value = EjectResult(False, "Device not found")

        assert run_cli(monkeypatch, "eject", "/dev/sdz1") == 1

        mock_eject.assert_called_once_with(mock_registry.return_value.get.return_value, timeout=30.0)
        assert "Device not found" in capsys.readouterr().out


def test_print_event_text(capsys):
    cli._print_event(
        constants.EVENT_COPY_PROGRESS,
        {"name": "x.mkv", "current_size": 1024, "speed": 1024, "progress": 0.5, "remaining": 65},
        False,
    )

    assert capsys.readouterr().out.strip() == "[copy-progress] x.mkv 1.00 KB 1.00 KB/s 50% eta 1:05"


def test_print_event_json(capsys):
    cli._print_event(constants.EVENT_COPY_ABORTED, {"name": "x.mkv", "error": "device disconnected"}, True)

    assert json.loads(capsys.readouterr().out) == {
        "event": constants.EVENT_COPY_ABORTED,
        "name": "x.mkv",
        "error": "device disconnected",
    }
