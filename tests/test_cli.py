"""Tests for the command line runner."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
import main as cli


def run_cli(monkeypatch, *args):
    monkeypatch.setattr(sys, "argv", ["main.py", *args])
    return cli.main()


class TestExitStatus:
    """Exit status follows halt state and faults."""

    def test_clean_halt(self, monkeypatch, capsys):
        assert run_cli(monkeypatch, "--inline", "LD V0, 42; end: JP end", "--quiet") == 0
        assert "V0=42" in capsys.readouterr().out

    def test_fault(self, monkeypatch, capsys):
        assert run_cli(monkeypatch, "--inline", "DW 0x8008", "--quiet") == 1
        assert "Unknown opcode" in capsys.readouterr().out

    def test_missing_rom(self, monkeypatch, tmp_path):
        assert run_cli(monkeypatch, "--rom", str(tmp_path / "none.ch8"), "--quiet") == 1


class TestKeys:
    """--keys answers key waits in order."""

    def test_keys_delivered_per_wait(self, monkeypatch, capsys):
        status = run_cli(
            monkeypatch, "--inline", "LD V0, K; LD V1, K; end: JP end",
            "--keys", "A,3", "--quiet",
        )
        out = capsys.readouterr().out
        assert status == 0
        assert "V0=10" in out
        assert "V1=3" in out

    def test_unanswered_wait(self, monkeypatch):
        assert run_cli(monkeypatch, "--inline", "LD V0, K; end: JP end", "--quiet") == 1

    def test_invalid_key(self, monkeypatch):
        with pytest.raises(SystemExit):
            run_cli(monkeypatch, "--inline", "CLS", "--keys", "G")

    def test_parse_keys(self):
        assert cli.parse_keys("1, a,F") == [1, 0xA, 0xF]
