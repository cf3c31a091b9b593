"""Tests for the proxmox-mpc command line."""

import json

import pytest

from proxmox_mpc.cli import main


class TestCli:
    def test_no_command(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main([]) == 1
        assert "usage" in capsys.readouterr().out

    def test_tools_json(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["tools", "--json"]) == 0

        tools = json.loads(capsys.readouterr().out)
        assert tools[0]["name"] == "createVM"
        assert tools[0]["inputSchema"]["required"] == ["name", "node", "memory", "cores"]

    def test_prompts(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["prompts"]) == 0

        assert "troubleshoot" in capsys.readouterr().out

    def test_render(self, capsys: pytest.CaptureFixture[str]) -> None:
        code = main(
            ["render", "troubleshoot", "--context", '{"issue": "VM failed", "context": {"vmid": 100}}']
        )

        out = capsys.readouterr().out
        assert code == 0
        assert "VM failed" in out
        assert "vmid: 100" in out

    def test_render_strict_failure(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["render", "plan", "--strict"]) == 1
        assert "missing variables" in capsys.readouterr().err

    def test_render_bad_context(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["render", "plan", "--context", "[1, 2]"]) == 1
        assert "--context must be a JSON object" in capsys.readouterr().err
