"""Tests for GPU process control with psutil mocked out."""

from unittest.mock import MagicMock, patch

import psutil
import pytest

from hwnow.errors import (
    ProcessControlError,
    ProcessNotFoundError,
    ProtectedProcessError,
    ValidationError,
)
from hwnow.gpu.control import (
    PosixProcessController,
    WindowsProcessController,
    create_process_controller,
    normalize_priority,
)
from hwnow.gpu.protection import ProcessProtection


def _process(name="blender", nice=0):
    proc = MagicMock()
    proc.name.return_value = name
    proc.nice.return_value = nice
    return proc


@pytest.fixture
def posix():
    return PosixProcessController(ProcessProtection(platform="linux"), elevated=lambda: False)


class TestNormalizePriority:
    @pytest.mark.parametrize("raw,expected", [
        ("High", "high"),
        (" realtime ", "realtime"),
        ("abovenormal", "above_normal"),
        ("idle", "low"),
    ])
    def test_accepted(self, raw, expected):
        assert normalize_priority(raw) == expected

    def test_unknown_rejected(self):
        with pytest.raises(ValidationError, match="Valid options"):
            normalize_priority("turbo")


class TestProcessActions:
    def test_kill(self, posix):
        proc = _process()
        with patch("psutil.Process", return_value=proc):
            posix.kill(4242)
        proc.kill.assert_called_once()

    def test_suspend_and_resume(self, posix):
        proc = _process()
        with patch("psutil.Process", return_value=proc):
            posix.suspend(4242)
            posix.resume(4242)
        proc.suspend.assert_called_once()
        proc.resume.assert_called_once()

    def test_missing_process(self, posix):
        with patch("psutil.Process", side_effect=psutil.NoSuchProcess(4242)):
            with pytest.raises(ProcessNotFoundError):
                posix.kill(4242)

    def test_access_denied_while_acting(self, posix):
        proc = _process()
        proc.kill.side_effect = psutil.AccessDenied(4242)
        with patch("psutil.Process", return_value=proc):
            with pytest.raises(ProcessControlError, match="Permission denied"):
                posix.kill(4242)

    def test_protected_process_never_touched(self, posix):
        proc = _process(name="Xorg")
        with patch("psutil.Process", return_value=proc):
            with pytest.raises(ProtectedProcessError):
                posix.kill(1500)
        proc.kill.assert_not_called()

    def test_process_exits_between_lookup_and_action(self, posix):
        proc = _process()
        proc.suspend.side_effect = psutil.NoSuchProcess(4242)
        with patch("psutil.Process", return_value=proc):
            with pytest.raises(ProcessNotFoundError):
                posix.suspend(4242)


class TestPriority:
    def test_lowering_priority_needs_no_privileges(self, posix):
        proc = _process(nice=0)
        with patch("psutil.Process", return_value=proc):
            assert posix.set_priority(4242, "below_normal") == "below_normal"
        proc.nice.assert_called_with(5)

    def test_raising_priority_needs_root(self, posix):
        proc = _process(nice=0)
        with patch("psutil.Process", return_value=proc):
            with pytest.raises(ProcessControlError, match="root"):
                posix.set_priority(4242, "high")

    def test_root_may_raise_priority(self):
        controller = PosixProcessController(ProcessProtection(platform="linux"), elevated=lambda: True)
        proc = _process(nice=0)
        with patch("psutil.Process", return_value=proc):
            controller.set_priority(4242, "realtime")
        proc.nice.assert_called_with(-20)

    def test_invalid_priority_checked_first(self, posix):
        with patch("psutil.Process") as process_cls:
            with pytest.raises(ValidationError):
                posix.set_priority(4242, "ludicrous")
        process_cls.assert_not_called()

    def test_windows_priority_class(self):
        controller = WindowsProcessController(
            ProcessProtection(platform="win32"), elevated=lambda: False
        )
        proc = _process(name="game.exe")
        with patch("psutil.Process", return_value=proc), \
                patch("psutil.HIGH_PRIORITY_CLASS", 128, create=True):
            controller.set_priority(4242, "high")
        proc.nice.assert_called_with(128)

    def test_windows_realtime_needs_admin(self):
        controller = WindowsProcessController(
            ProcessProtection(platform="win32"), elevated=lambda: False
        )
        with patch("psutil.Process", return_value=_process(name="game.exe")):
            with pytest.raises(ProcessControlError, match="administrator"):
                controller.set_priority(4242, "realtime")


class TestFactory:
    def test_platform_selection(self):
        assert isinstance(create_process_controller(platform="win32"), WindowsProcessController)
        assert isinstance(create_process_controller(platform="linux"), PosixProcessController)

    def test_configured_names_protected(self):
        controller = create_process_controller(["trainer"], platform="linux")
        with patch("psutil.Process", return_value=_process(name="trainer")):
            with pytest.raises(ProtectedProcessError):
                controller.kill(7777)
