"""Tests for repository definitions"""

from pathlib import Path

import pytest

from pkgsys.core.repos import Repository, load_repositories


def write(directory: Path, name: str, text: str):
    (directory / name).write_text(text)


class TestLoadRepositories:

    def test_missing_directory(self, tmp_path):
        assert load_repositories(tmp_path / "nope") == []

    def test_sorted_by_priority_then_name(self, tmp_path):
        write(tmp_path, "updates.yaml", "baseurl: /srv/updates\npriority: 10\n")
        write(tmp_path, "release.yaml", "baseurl: /srv/release\n")
        write(tmp_path, "extra.yaml", "baseurl: /srv/extra\n")

        repos = load_repositories(tmp_path)
        assert [r.name for r in repos] == ['updates', 'extra', 'release']

    def test_fields(self, tmp_path):
        write(tmp_path, "a.yaml",
              "name: core-release\n"
              "baseurl: file:///srv/mirror/core/release\n"
              "enabled: false\n"
              "type: synthesis\n")

        repo, = load_repositories(tmp_path)
        assert repo.name == 'core-release'
        assert repo.enabled is False
        assert repo.type == 'synthesis'
        assert repo.path == Path('/srv/mirror/core/release')
        assert repo.metadata_file() == Path('/srv/mirror/core/release/media_info/synthesis.hdlist.cz')

    def test_malformed_files_skipped(self, tmp_path, caplog):
        write(tmp_path, "bad.yaml", "baseurl: [unclosed\n")
        write(tmp_path, "list.yaml", "- one\n- two\n")
        write(tmp_path, "notype.yaml", "baseurl: /srv\ntype: deb\n")
        write(tmp_path, "nourl.yaml", "name: x\n")
        write(tmp_path, "good.yaml", "baseurl: /srv/good\n")

        repos = load_repositories(tmp_path)
        assert [r.name for r in repos] == ['good']
        assert "Failed to load repository" in caplog.text

    def test_duplicate_names(self, tmp_path):
        write(tmp_path, "a.yaml", "name: core\nbaseurl: /srv/a\n")
        write(tmp_path, "b.yaml", "name: core\nbaseurl: /srv/b\n")

        repos = load_repositories(tmp_path)
        assert len(repos) == 1
        assert repos[0].baseurl == '/srv/a'


class TestRepository:

    def test_remote_rejected(self):
        repo = Repository(name='web', baseurl='https://mirror.example.org/core')
        with pytest.raises(ValueError):
            repo.path

    def test_rpmmd_metadata(self, tmp_path):
        (tmp_path / "repodata").mkdir()
        (tmp_path / "repodata" / "abc-primary.xml.zst").write_bytes(b"")
        repo = Repository(name='r', baseurl=str(tmp_path))
        assert repo.metadata_file().name == 'abc-primary.xml.zst'

    def test_solv_metadata(self):
        repo = Repository(name='cached', baseurl='/var/cache/pkgsys', type='solv')
        assert repo.metadata_file() == Path('/var/cache/pkgsys/cached.solv')

    @pytest.mark.parametrize('value,expected', [
        ('"no"', False), ("'false'", False), ('off', False),
        ('"yes"', True), ('true', True), ('1', True), ('0', False),
    ])
    def test_enabled_values(self, tmp_path, value, expected):
        write(tmp_path, "r.yaml", f"baseurl: /srv/r\nenabled: {value}\n")
        repo, = load_repositories(tmp_path)
        assert repo.enabled is expected
