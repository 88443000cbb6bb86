"""Tests for post-transaction environment notifications"""

import subprocess
from unittest.mock import MagicMock

from pkgsys.core import environment
from pkgsys.core.config import SystemConfig
from pkgsys.core.environment import SystemEnvironment, is_running_kernel

from conftest import FakePresenter


def kernels_output(monkeypatch, stdout, returncode=0):
    run = MagicMock(return_value=subprocess.CompletedProcess([], returncode, stdout, ""))
    monkeypatch.setattr(subprocess, 'run', run)
    return run


def test_is_running_kernel():
    assert is_running_kernel("6.6.58-1.mga9", "6.6.58-1.mga9-desktop")
    assert not is_running_kernel("6.6.60-1.mga9", "6.6.58-1.mga9-desktop")


class TestKernelChange:

    def setup_method(self):
        self.presenter = FakePresenter()
        self.env = SystemEnvironment(SystemConfig(), self.presenter)

    def test_newest_by_install_time(self, monkeypatch):
        kernels_output(monkeypatch, "1700000000 6.6.58-1.mga9\n1710000000 6.6.60-1.mga9\n")
        assert self.env.newest_kernel() == "6.6.60-1.mga9"

    def test_reboot_suggested(self, monkeypatch):
        kernels_output(monkeypatch, "1700000000 6.6.58-1.mga9\n1710000000 6.6.60-1.mga9\n")
        monkeypatch.setattr(environment, 'get_running_kernel', lambda: "6.6.58-1.mga9-desktop")

        self.env.inform_about_kernel_change()
        assert len(self.presenter.messages) == 1
        assert "6.6.60-1.mga9" in self.presenter.messages[0]

    def test_running_newest(self, monkeypatch):
        kernels_output(monkeypatch, "1710000000 6.6.60-1.mga9\n")
        monkeypatch.setattr(environment, 'get_running_kernel', lambda: "6.6.60-1.mga9-desktop")

        self.env.inform_about_kernel_change()
        assert self.presenter.messages == []

    def test_no_kernel(self, monkeypatch):
        kernels_output(monkeypatch, "no package provides kernel\n", returncode=1)
        self.env.inform_about_kernel_change()
        assert self.presenter.messages == []

    def test_root_passed(self, monkeypatch):
        run = kernels_output(monkeypatch, "")
        env = SystemEnvironment(SystemConfig(root="/mnt"), self.presenter)
        env.newest_kernel()
        assert run.call_args[0][0][:3] == ['rpm', '--root', '/mnt']


class FakeEntryPoint:
    def __init__(self, name, obj=None, error=None):
        self.name = name
        self.value = f"agents:{name}"
        self._obj = obj
        self._error = error
        self.loads = 0

    def load(self):
        self.loads += 1
        if self._error:
            raise self._error
        return self._obj


class TestAgents:

    def test_new_agents_loaded_once(self, monkeypatch):
        snmp = FakeEntryPoint('snmp', obj=object())
        monkeypatch.setattr(environment, 'entry_points', lambda group: [snmp])
        env = SystemEnvironment(SystemConfig(), FakePresenter())

        env.register_new_agents()
        env.register_new_agents()
        assert 'snmp' in env.agents
        assert snmp.loads == 1

    def test_broken_agent_skipped(self, monkeypatch, caplog):
        broken = FakeEntryPoint('broken', error=ImportError("no module named agents"))
        ok = FakeEntryPoint('ok', obj=object())
        monkeypatch.setattr(environment, 'entry_points', lambda group: [broken, ok])
        env = SystemEnvironment(SystemConfig(), FakePresenter())

        env.register_new_agents()
        assert list(env.agents) == ['ok']
        assert "Failed to load agent broken" in caplog.text
