"""Tests for CLI"""

from types import SimpleNamespace

import pytest

from pkgsys.cli import main as cli
from pkgsys.cli.main import EXIT_CANCELED, build_config, create_parser
from pkgsys.core.config import Stage, SystemConfig, UiMode, reset_config_cache
from pkgsys.core.transaction import PackageSystem

from conftest import FakeBackend, FakeEnvironment, FakeLock, FakePresenter


class TestParser:
    """Tests for argument parser."""

    def test_version_flag(self):
        parser = create_parser()
        with pytest.raises(SystemExit):
            parser.parse_args(['--version'])

    def test_install_command(self):
        parser = create_parser()
        args = parser.parse_args(['install', 'firefox', 'vim'])
        assert args.command == 'install'
        assert args.packages == ['firefox', 'vim']
        assert args.remove == []

    def test_install_alias_with_removal(self):
        parser = create_parser()
        args = parser.parse_args(['i', 'postfix', '-r', 'sendmail'])
        assert args.command == 'i'
        assert args.packages == ['postfix']
        assert args.remove == ['sendmail']

    def test_remove_aliases(self):
        parser = create_parser()
        for alias in ('remove', 'erase', 'e'):
            args = parser.parse_args([alias, 'vim'])
            assert args.command == alias
            assert args.packages == ['vim']

    def test_query_commands(self):
        parser = create_parser()
        args = parser.parse_args(['av', '--provides', 'webclient'])
        assert args.command == 'av'
        assert args.provides is True
        args = parser.parse_args(['q', 'bash'])
        assert args.names == ['bash']

    def test_global_options(self):
        parser = create_parser()
        args = parser.parse_args(['--root', '/mnt', '--stage', 'initial',
                                  '--ui', 'popup', '--yes', 'install', 'foo'])
        assert args.root == '/mnt'
        assert args.stage == 'initial'
        assert args.ui == 'popup'
        assert args.yes is True

    def test_bad_stage_rejected(self):
        parser = create_parser()
        with pytest.raises(SystemExit):
            parser.parse_args(['--stage', 'third', 'install', 'foo'])


class TestBuildConfig:

    def test_overrides(self, monkeypatch):
        monkeypatch.setattr(cli, 'load_config', lambda: SystemConfig())
        args = create_parser().parse_args(['--root', '/mnt', '--stage', 'continue',
                                           '--ui', 'popup', '-y', 'q', 'bash'])
        config = build_config(args)
        assert config.root == '/mnt'
        assert config.stage is Stage.CONTINUE
        assert config.ui_mode is UiMode.POPUP
        assert config.auto_confirm is True

    def test_cached_config_untouched(self, monkeypatch):
        base = SystemConfig()
        monkeypatch.setattr(cli, 'load_config', lambda: base)
        build_config(create_parser().parse_args(['--root', '/mnt', 'q', 'bash']))
        assert base.root == '/'


@pytest.fixture
def wired(monkeypatch):
    """Run main() against in-memory collaborators."""
    backend = FakeBackend()
    presenter = FakePresenter()

    def for_system(config, presenter_, audit=None):
        return PackageSystem(backend, backend, presenter, FakeEnvironment(),
                             FakeLock(), config)

    monkeypatch.setattr(cli, 'check_dependencies', lambda: [])
    monkeypatch.setattr(cli, 'load_config', lambda: SystemConfig())
    monkeypatch.setattr(cli, 'AuditLogger', lambda: SimpleNamespace(close=lambda: None))
    monkeypatch.setattr(PackageSystem, 'for_system', staticmethod(for_system))
    return backend, presenter


class TestMain:

    def setup_method(self):
        reset_config_cache()

    def test_no_command(self, capsys):
        assert cli.main([]) == 1

    def test_install(self, wired, capsys):
        backend, _ = wired
        assert cli.main(['--nocolor', 'install', 'foo']) == 0
        assert backend.marked_install == ['foo']
        assert "Transaction completed" in capsys.readouterr().out

    def test_failure_exit_code(self, wired, capsys):
        backend, _ = wired
        backend.unremovable = {'foo'}
        assert cli.main(['--nocolor', 'remove', 'foo']) == 1
        assert "selection_failed" in capsys.readouterr().err

    def test_declined_license_exit_code(self, wired):
        backend, presenter = wired
        backend.licenses = {'foo': "EULA"}
        presenter.answer = False
        assert cli.main(['install', 'foo']) == EXIT_CANCELED

    def test_available(self, wired, capsys):
        backend, _ = wired
        backend.available = {'foo'}
        assert cli.main(['--nocolor', 'av', 'foo']) == 0
        assert cli.main(['--nocolor', 'av', 'foo', 'bar']) == 1
        assert "bar: not available" in capsys.readouterr().out

    def test_missing_dependencies(self, monkeypatch, capsys):
        monkeypatch.setattr(cli, 'check_dependencies', lambda: [('python3-solv', 'dependency resolution')])
        assert cli.main(['install', 'foo']) == 1
        assert "python3-solv" in capsys.readouterr().err

    def test_popup_without_whiptail(self, wired, monkeypatch, capsys):
        monkeypatch.setattr(cli.WhiptailPresenter, 'available', staticmethod(lambda binary='whiptail': False))
        assert cli.main(['--ui', 'popup', 'install', 'foo']) == 1
        assert "whiptail" in capsys.readouterr().err
