"""Tests for the command-line entry point and main menu."""

from __future__ import annotations

import io
import json
from pathlib import Path

import pytest
from loguru import logger
from rich.console import Console

from usb_deploy_helper import main as main_module
from usb_deploy_helper.domain import RemovableDevice
from usb_deploy_helper.services import tools
from usb_deploy_helper.storage.exceptions import EnumerationError


class ScriptedPrompt:
    def __init__(self, *answers):
        self.answers = list(answers)

    def __call__(self, question):
        if not self.answers:
            raise EOFError
        return self.answers.pop(0)


@pytest.fixture(autouse=True)
def reset_logger():
    yield
    logger.remove()


@pytest.fixture
def console():
    return Console(file=io.StringIO(), width=160)


@pytest.fixture
def base_args(tmp_path):
    return ["--log-dir", str(tmp_path / "logs"), "--config", str(tmp_path / "settings.json")]


@pytest.fixture
def device():
    return RemovableDevice(index=1, device_path="/dev/sdb", model="Stick", size_bytes=8 * 1024**3)


@pytest.fixture
def mock_scan(mocker, device):
    return mocker.patch(
        "usb_deploy_helper.main.scan_removable_devices", return_value=[device]
    )


class TestParser:
    """Test build_parser()."""

    def test_defaults(self):
        args = main_module.build_parser().parse_args([])
        assert args.list is False
        assert args.debug is False
        assert args.config is None

    def test_paths(self):
        args = main_module.build_parser().parse_args(["--config", "/tmp/s.json", "--list", "--json"])
        assert args.config == Path("/tmp/s.json")
        assert args.json is True

    def test_version(self, capsys):
        with pytest.raises(SystemExit):
            main_module.build_parser().parse_args(["--version"])
        assert "usb-deploy-helper" in capsys.readouterr().out


class TestListMode:
    """Test --list."""

    def test_table(self, base_args, console, mock_scan):
        assert main_module.main([*base_args, "--list"], console=console) == 0
        assert "Stick" in console.file.getvalue()

    def test_json(self, base_args, console, mock_scan, capsys):
        assert main_module.main([*base_args, "--list", "--json"], console=console) == 0
        data = json.loads(capsys.readouterr().out)
        assert data[0]["device_path"] == "/dev/sdb"
        assert data[0]["risk_status"] == "Ready"

    def test_enumeration_error(self, mocker, base_args, console):
        mocker.patch(
            "usb_deploy_helper.main.scan_removable_devices",
            side_effect=EnumerationError("lsblk", "not installed"),
        )
        assert main_module.main([*base_args, "--list"], console=console) == 2
        assert "Cannot list drives" in console.file.getvalue()


class TestSaveConfig:
    """Test --save-config."""

    def test_writes_defaults_merged_with_file(self, tmp_path, console):
        settings_file = tmp_path / "settings.json"
        settings_file.write_text(json.dumps({"tools_dir": "/srv/usb-tools"}))
        args = ["--log-dir", str(tmp_path / "logs"), "--config", str(settings_file), "--save-config"]

        assert main_module.main(args, console=console, prompt=ScriptedPrompt()) == 0

        saved = json.loads(settings_file.read_text())
        assert saved["tools_dir"] == "/srv/usb-tools"
        assert saved["confirmation_token"] == "ERASE"
        assert "Settings written to" in console.file.getvalue()


class TestInteractiveMenu:
    """Test the interactive main menu."""

    def test_quit(self, base_args, console):
        assert main_module.main(base_args, console=console, prompt=ScriptedPrompt("q")) == 0

    def test_unknown_option(self, base_args, console):
        main_module.main(base_args, console=console, prompt=ScriptedPrompt("9", "q"))
        assert "Unknown option: '9'" in console.file.getvalue()

    def test_show_drives(self, base_args, console, mock_scan):
        main_module.main(base_args, console=console, prompt=ScriptedPrompt("3", "q"))
        mock_scan.assert_called_once_with()
        assert "Removable drives" in console.file.getvalue()

    def test_end_of_input(self, base_args, console):
        assert main_module.main(base_args, console=console, prompt=ScriptedPrompt()) == 130

    def test_deploy_rufus(self, mocker, base_args, console, device):
        mocker.patch.object(main_module.drives, "select_target_device", return_value=device)
        deploy = mocker.patch.object(main_module.tools, "deploy", return_value=0)

        main_module.main(base_args, console=console, prompt=ScriptedPrompt("1", "q"))

        config, tool_name, target = deploy.call_args.args
        assert tool_name == "rufus"
        assert target is device
        assert config.confirmation_token == "ERASE"
        assert "Rufus finished." in console.file.getvalue()

    def test_deploy_cancelled(self, mocker, base_args, console):
        mocker.patch.object(main_module.drives, "select_target_device", return_value=None)
        deploy = mocker.patch.object(main_module.tools, "deploy")

        main_module.main(base_args, console=console, prompt=ScriptedPrompt("2", "q"))

        deploy.assert_not_called()

    def test_deploy_tool_missing(self, mocker, base_args, console, device):
        mocker.patch.object(main_module.drives, "select_target_device", return_value=device)
        mocker.patch.object(
            main_module.tools,
            "deploy",
            side_effect=tools.ToolNotFoundError("Ventoy", "set ventoy_path"),
        )

        assert main_module.main(base_args, console=console, prompt=ScriptedPrompt("2", "q")) == 0
        assert "Ventoy not found: set ventoy_path" in console.file.getvalue()

    def test_deploy_nonzero_exit(self, mocker, base_args, console, device):
        mocker.patch.object(main_module.drives, "select_target_device", return_value=device)
        mocker.patch.object(main_module.tools, "deploy", return_value=1)

        main_module.main(base_args, console=console, prompt=ScriptedPrompt("2", "q"))
        assert "Ventoy exited with status 1." in console.file.getvalue()

    def test_downloads(self, mocker, base_args, console, tmp_path):
        mocker.patch.object(
            main_module.tools,
            "download_tool",
            side_effect=[
                tmp_path / "rufus.exe",
                tools.ToolDownloadError("https://example.com/v.zip", "HTTP 404"),
            ],
        )

        main_module.main(base_args, console=console, prompt=ScriptedPrompt("4", "q"))

        text = console.file.getvalue()
        assert "Saved" in text
        assert "HTTP 404" in text

    def test_downloads_with_unusable_tools_dir(self, tmp_path):
        """Test that a local write failure is reported and the menu keeps running."""
        not_a_dir = tmp_path / "tools"
        not_a_dir.write_text("")
        settings_file = tmp_path / "settings.json"
        settings_file.write_text(json.dumps({"tools_dir": str(not_a_dir)}))
        console = Console(file=io.StringIO(), width=400)
        args = ["--log-dir", str(tmp_path / "logs"), "--config", str(settings_file)]

        assert main_module.main(args, console=console, prompt=ScriptedPrompt("4", "q")) == 0

        text = console.file.getvalue()
        assert text.count("Download of") == 2
        assert "Saved" not in text
