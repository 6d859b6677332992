import subprocess
from unittest.mock import Mock

import pytest

from fwfetch import environment

pytestmark = [pytest.mark.unit]


class TestFwupAvailable:
    """Probing for the fwup tool."""

    def test_not_on_path(self, mocker):
        mocker.patch.object(environment.shutil, "which", return_value=None)
        run = mocker.patch.object(environment.subprocess, "run")

        assert environment.fwup_available() is False
        run.assert_not_called()

    def test_version_ok(self, mocker):
        mocker.patch.object(environment.shutil, "which", return_value="/usr/bin/fwup")
        run = mocker.patch.object(
            environment.subprocess,
            "run",
            return_value=Mock(returncode=0, stdout="1.10.2\n"),
        )

        assert environment.fwup_available() is True
        args, kwargs = run.call_args
        assert args[0] == ["/usr/bin/fwup", "--version"]
        assert kwargs["timeout"] == 10

    def test_nonzero_exit(self, mocker):
        mocker.patch.object(environment.shutil, "which", return_value="/usr/bin/fwup")
        mocker.patch.object(
            environment.subprocess, "run", return_value=Mock(returncode=1, stdout="")
        )
        assert environment.fwup_available() is False

    @pytest.mark.parametrize(
        "error",
        [OSError("exec format error"), subprocess.TimeoutExpired("fwup", 10)],
    )
    def test_probe_failure(self, mocker, error):
        mocker.patch.object(environment.shutil, "which", return_value="/usr/bin/fwup")
        mocker.patch.object(environment.subprocess, "run", side_effect=error)
        assert environment.fwup_available() is False

    def test_custom_command(self, mocker):
        which = mocker.patch.object(environment.shutil, "which", return_value=None)
        environment.fwup_available("fwup-dev")
        which.assert_called_once_with("fwup-dev")
