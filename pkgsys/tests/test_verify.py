"""Tests for commit verification"""

from pkgsys.core.backend import CommitResult
from pkgsys.core.verify import CommitVerdict, verify_commit


class TestVerifyCommit:

    def test_success(self):
        result = verify_commit(CommitResult(successful=2), ['foo'])
        assert result.succeeded
        assert result.verdict is CommitVerdict.SUCCEEDED

    def test_no_result(self):
        result = verify_commit(None, ['foo'])
        assert result.verdict is CommitVerdict.COMMIT_FAILED
        assert not result.succeeded

    def test_failed_packages(self):
        result = verify_commit(CommitResult(failed=['bar']), ['foo'])
        assert result.verdict is CommitVerdict.COMMIT_FAILED
        assert result.failed == ('bar',)

    def test_failed_wins_over_remaining(self):
        result = verify_commit(CommitResult(failed=['bar'], remaining=['foo']), ['foo'])
        assert result.verdict is CommitVerdict.COMMIT_FAILED

    def test_requested_package_remaining(self):
        result = verify_commit(CommitResult(successful=5, remaining=['foo', 'other']), ['foo', 'baz'])
        assert result.verdict is CommitVerdict.PACKAGE_REMAINED
        assert result.remaining == ('foo',)

    def test_remaining_only_matters_for_requested(self):
        result = verify_commit(CommitResult(remaining=['other'], src_remaining=['foo']), ['foo'])
        assert result.succeeded
