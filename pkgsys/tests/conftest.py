"""In-memory collaborators for orchestrator tests."""

from typing import Dict, List, Optional

import pytest

from pkgsys.core.backend import (
    CommitResult, LockService, Presenter, RepositoryService,
    RuntimeEnvironment, SelectorResult, SolverService,
)
from pkgsys.core.config import Stage, SystemConfig, UiMode


class FakeLock(LockService):
    def __init__(self, available: bool = True):
        self.available = available
        self.checks = 0

    def check(self) -> bool:
        self.checks += 1
        return self.available


class FakeBackend(RepositoryService, SolverService):
    """Repository and solver service recording every call."""

    def __init__(self, repos: Optional[Dict[str, bool]] = None):
        # repository name -> enabled
        self.repos = {'core': True} if repos is None else repos
        self.flags = {'ignoreAlreadyRecommended': False, 'onlyRequires': False}
        self.licenses: Dict[str, str] = {}
        self.confirmed: List[str] = []
        self.available = set()
        self.providers: Dict[str, List[str]] = {}
        self.uninstallable = set()
        self.unremovable = set()
        self.solve_ok = True
        self.any_to_install = True
        self.commit_result: Optional[CommitResult] = CommitResult(successful=1)
        self.commit_error: Optional[Exception] = None
        self.target_ok = True
        self.last_error = ""

        self.calls: List[str] = []
        self.marked_install: List[str] = []
        self.marked_remove: List[str] = []
        self.set_flags_calls: List[dict] = []
        self.start_cache_calls = 0
        self.target_init_calls = 0
        self.flags_during_solve: Optional[dict] = None

    # RepositoryService

    def list_repositories(self, enabled_only: bool) -> List[str]:
        return [name for name, enabled in self.repos.items() if enabled or not enabled_only]

    def start_cache(self, force: bool):
        self.calls.append('start_cache')
        self.start_cache_calls += 1

    def target_init(self, root: str, rebuild: bool) -> bool:
        self.calls.append('target_init')
        self.target_init_calls += 1
        return self.target_ok

    # SolverService

    def get_flags(self):
        self.calls.append('get_flags')
        return dict(self.flags)

    def set_flags(self, flags):
        self.calls.append('set_flags')
        self.set_flags_calls.append(dict(flags))
        self.flags.update(flags)

    def licenses_to_confirm(self, names):
        self.calls.append('licenses_to_confirm')
        return {n: self.licenses[n] for n in names if n in self.licenses}

    def mark_license_confirmed(self, name):
        self.confirmed.append(name)

    def reset_selection(self):
        self.calls.append('reset_selection')
        self.marked_install.clear()
        self.marked_remove.clear()

    def mark_install(self, name) -> bool:
        self.calls.append(f'mark_install:{name}')
        if name in self.uninstallable:
            self.last_error = f"nothing provides {name}"
            return False
        self.marked_install.append(name)
        return True

    def mark_remove(self, name) -> bool:
        self.calls.append(f'mark_remove:{name}')
        if name in self.unremovable:
            self.last_error = f"{name} is not installed"
            return False
        self.marked_remove.append(name)
        return True

    def solve(self, filter_conflicts) -> bool:
        self.calls.append('solve')
        self.flags_during_solve = dict(self.flags)
        if not self.solve_ok:
            self.last_error = "package foo requires bar, but none of the providers can be installed"
        return self.solve_ok

    def is_any_to_install(self) -> bool:
        return self.any_to_install

    def commit(self, medium):
        self.calls.append('commit')
        if self.commit_error:
            raise self.commit_error
        return self.commit_result

    def is_available(self, capability) -> bool:
        return capability in self.available or capability in self.providers

    def package_available(self, name) -> bool:
        return name in self.available

    def what_provides(self, capability):
        return list(self.providers.get(capability, []))


class FakePresenter(Presenter):
    def __init__(self):
        self.answer = True
        self.selector_result = SelectorResult.CANCEL
        self.printed: List[str] = []
        self.questions: List[str] = []
        self.rich_questions: List[tuple] = []
        self.messages: List[str] = []
        self.errors: List[str] = []
        self.update_messages: List[list] = []
        self.selector_calls: List[tuple] = []

    def print(self, text):
        self.printed.append(text)

    def yes_no(self, question) -> bool:
        self.questions.append(question)
        return self.answer

    def any_question_rich_text(self, heading, text, width, height,
                               yes_label="Yes", no_label="No") -> bool:
        self.rich_questions.append((heading, text, width, height, yes_label, no_label))
        return self.answer

    def message(self, text):
        self.messages.append(text)

    def error(self, text):
        self.errors.append(text)

    def show_update_messages(self, messages):
        self.update_messages.append(list(messages))

    def run_package_selector(self, enable_repo_mgr, mode):
        self.selector_calls.append((enable_repo_mgr, mode))
        return self.selector_result

    @property
    def prompted(self) -> bool:
        return bool(self.questions or self.rich_questions)


class FakeEnvironment(RuntimeEnvironment):
    def __init__(self):
        self.agents_registered = 0
        self.kernel_informed = 0

    def register_new_agents(self):
        self.agents_registered += 1

    def inform_about_kernel_change(self):
        self.kernel_informed += 1


@pytest.fixture
def config():
    return SystemConfig(stage=Stage.NORMAL, ui_mode=UiMode.COMMANDLINE, arch='x86_64')


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def presenter():
    return FakePresenter()


@pytest.fixture
def environment():
    return FakeEnvironment()


@pytest.fixture
def lock():
    return FakeLock()
