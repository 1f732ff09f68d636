"""Tests for BootstrapDriver: the whole run lifecycle and its cleanup guarantees."""

import asyncio
import json
import shutil
import subprocess
import time

import pytest

from macstrap.credentials import StaticPrompt
from macstrap.driver import BootstrapDriver, run_bootstrap
from macstrap.errors import (
    EmptySecret,
    EntryPointMissing,
    FetchFailed,
    PromptCancelled,
    ProvisionerFailed,
)
from macstrap.models import RunStatus

from .helpers import CopyFetcher, FailingFetcher, write_script

SECRET = "Tr0ub4dor&3"
REPO = "https://example.invalid/dotfiles.git"


@pytest.fixture
def template(temp_dir):
    """A repository template directory, filled in by each test."""
    repo = temp_dir / "repo"
    repo.mkdir()
    return repo


def workspaces_left(settings):
    return list(settings.workspace_root.iterdir())


def make_driver(observer, settings, fetcher, secret=SECRET):
    return BootstrapDriver(
        observer,
        prompt=StaticPrompt(secret),
        fetcher=fetcher,
        settings=settings,
    )


@pytest.mark.asyncio
async def test_successful_run(template, settings, observer):
    """Test a run answering a password and a confirmation succeeds and cleans up."""
    write_script(template / "bootstrap.py", """
        import sys
        sys.stdout.write("Password:")
        sys.stdout.flush()
        sys.stdin.readline()
        sys.stdout.write("Continue? (y/N) ")
        sys.stdout.flush()
        if sys.stdin.readline().strip() != "y":
            sys.exit(9)
        print("provisioned")
    """)
    fetcher = CopyFetcher(template)
    driver = make_driver(observer, settings, fetcher)

    result = await driver.run(REPO)

    assert result.status == RunStatus.SUCCEEDED
    assert result.success
    assert result.exit_code == 0
    assert result.error is None
    assert result.warnings == []
    assert fetcher.calls == [REPO]
    assert driver.session.responses == ["password", "confirm-default-no"]
    assert workspaces_left(settings) == []
    assert not result.workspace.exists()

    text = observer.text
    assert "Starting bootstrap process..." in text
    assert f"Cloning repository: {REPO}" in text
    assert "Found bootstrap.py, making it executable" in text
    assert "provisioned" in text
    assert "✓ Bootstrap completed successfully!" in text
    assert "Cleaned up temporary files" in text
    assert SECRET not in text


@pytest.mark.asyncio
async def test_cancelled_prompt_creates_nothing(template, settings, observer):
    """Test cancelling the password prompt spawns nothing and creates no workspace."""
    fetcher = CopyFetcher(template)
    prompt = StaticPrompt(None)
    driver = BootstrapDriver(observer, prompt=prompt, fetcher=fetcher, settings=settings)

    result = await driver.run(REPO)

    assert result.status == RunStatus.FAILED
    assert isinstance(result.error, PromptCancelled)
    assert prompt.calls == 1
    assert fetcher.calls == []
    assert driver.session is None
    assert workspaces_left(settings) == []
    assert "ERROR: Password prompt cancelled" in observer.text


@pytest.mark.asyncio
async def test_empty_password_creates_nothing(template, settings, observer):
    """Test an empty password aborts before the workspace exists."""
    fetcher = CopyFetcher(template)
    driver = make_driver(observer, settings, fetcher, secret="")

    result = await driver.run(REPO)

    assert isinstance(result.error, EmptySecret)
    assert fetcher.calls == []
    assert workspaces_left(settings) == []


@pytest.mark.asyncio
async def test_fetch_failure_removes_partial_workspace(settings, observer):
    """Test a failed clone spawns nothing and removes the partial checkout."""
    fetcher = FailingFetcher()
    driver = make_driver(observer, settings, fetcher)

    result = await driver.run(REPO)

    assert result.status == RunStatus.FAILED
    assert isinstance(result.error, FetchFailed)
    assert fetcher.calls == [REPO]
    assert driver.session is None
    assert workspaces_left(settings) == []
    assert "ERROR: Failed to clone repository" in observer.text


@pytest.mark.asyncio
async def test_missing_entry_point(template, settings, observer):
    """Test a repository without the script fails with EntryPointMissing."""
    (template / "README.md").write_text("no script here")
    driver = make_driver(observer, settings, CopyFetcher(template))

    result = await driver.run(REPO)

    assert isinstance(result.error, EntryPointMissing)
    assert result.error.entry_point == "bootstrap.py"
    assert driver.session is None
    assert workspaces_left(settings) == []
    assert "bootstrap.py not found in repository" in observer.text


@pytest.mark.asyncio
async def test_nonzero_exit_is_provisioner_failure(template, settings, observer):
    """Test a failing script yields ProvisionerFailed and still cleans up."""
    write_script(template / "bootstrap.py", """
        import sys
        print("step 2 failed")
        sys.exit(4)
    """)
    driver = make_driver(observer, settings, CopyFetcher(template))

    result = await driver.run(REPO)

    assert result.status == RunStatus.FAILED
    assert isinstance(result.error, ProvisionerFailed)
    assert result.error.code == 4
    assert result.exit_code == 4
    assert workspaces_left(settings) == []
    assert "✗ Bootstrap failed with exit code 4" in observer.text
    assert "Cleaned up temporary files" in observer.text


@pytest.mark.asyncio
async def test_killed_child_still_cleans_up(template, settings, observer):
    """Test a script killed by a signal fails and leaves no workspace behind."""
    write_script(template / "bootstrap.py", """
        import os, signal, time
        print("about to die", flush=True)
        os.kill(os.getpid(), signal.SIGKILL)
        time.sleep(60)
    """)
    driver = make_driver(observer, settings, CopyFetcher(template))

    started = time.monotonic()
    result = await driver.run(REPO)

    assert time.monotonic() - started < 20
    assert isinstance(result.error, ProvisionerFailed)
    assert result.exit_code < 0
    assert workspaces_left(settings) == []


@pytest.mark.asyncio
async def test_idempotent_provisioner_runs_twice(template, settings, observer, temp_dir):
    """Test two runs both succeed and each idempotent step does its work once."""
    state = temp_dir / "state"
    state.mkdir()
    write_script(template / "bootstrap.py", f"""
        import json, os, sys
        STATE = {str(state)!r}

        def step(name):
            done = os.path.join(STATE, name + ".done")
            if os.path.exists(done):
                print(name + " already done")
                return
            counts_path = os.path.join(STATE, "counts.json")
            counts = json.load(open(counts_path)) if os.path.exists(counts_path) else {{}}
            counts[name] = counts.get(name, 0) + 1
            json.dump(counts, open(counts_path, "w"))
            open(done, "w").close()
            print(name + " installed")

        sys.stdout.write("Password:")
        sys.stdout.flush()
        sys.stdin.readline()
        for name in ["homebrew", "packages", "symlinks", "extensions"]:
            step(name)
    """)
    fetcher = CopyFetcher(template)

    first = await make_driver(observer, settings, fetcher).run(REPO)
    second = await make_driver(observer, settings, fetcher).run(REPO)

    assert first.success and second.success
    counts = json.loads((state / "counts.json").read_text())
    assert counts == {"homebrew": 1, "packages": 1, "symlinks": 1, "extensions": 1}
    assert "homebrew already done" in observer.text
    assert workspaces_left(settings) == []


@pytest.mark.asyncio
async def test_cleanup_failure_is_only_a_warning(template, settings, observer, monkeypatch):
    """Test a workspace that cannot be removed does not change a successful result."""
    write_script(template / "bootstrap.py", """
        print("ok")
    """)
    driver = make_driver(observer, settings, CopyFetcher(template))

    def broken_rmtree(path, *args, **kwargs):
        raise PermissionError(13, "Permission denied", str(path))

    monkeypatch.setattr("macstrap.workspace.shutil.rmtree", broken_rmtree)
    result = await driver.run(REPO)
    monkeypatch.undo()

    assert result.status == RunStatus.SUCCEEDED
    assert len(result.warnings) == 1
    assert "Permission denied" in str(result.warnings[0])
    assert "Warning: Could not clean up" in observer.text

    shutil.rmtree(result.workspace)


@pytest.mark.asyncio
async def test_cancelled_run_reaps_child_then_cleans_up(template, settings, observer):
    """Test cancelling mid-run kills the script and removes the workspace."""
    write_script(template / "bootstrap.py", """
        import time
        print("long download started", flush=True)
        time.sleep(60)
    """)
    driver = make_driver(observer, settings, CopyFetcher(template))

    task = asyncio.create_task(driver.run(REPO))
    deadline = time.monotonic() + 10
    while "long download started" not in observer.text:
        assert time.monotonic() < deadline
        await asyncio.sleep(0.05)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert driver.session.child.returncode is not None
    assert workspaces_left(settings) == []



def test_run_bootstrap_sync_wrapper(template, settings, observer):
    """Test the synchronous wrapper runs a whole bootstrap."""
    write_script(template / "bootstrap.py", """
        print("synchronous")
    """)

    result = run_bootstrap(
        REPO,
        observer,
        prompt=StaticPrompt(SECRET),
        fetcher=CopyFetcher(template),
        settings=settings,
    )

    assert result.success
    assert "synchronous" in observer.text
    assert workspaces_left(settings) == []


@pytest.mark.asyncio
async def test_concurrent_drivers_use_separate_workspaces(template, settings):
    """Test two drivers running side by side do not share state."""
    from macstrap.observers import BufferObserver

    write_script(template / "bootstrap.py", """
        import os
        print("cwd=" + os.path.basename(os.getcwd()), flush=True)
    """)
    first_observer, second_observer = BufferObserver(), BufferObserver()
    first = make_driver(first_observer, settings, CopyFetcher(template))
    second = make_driver(second_observer, settings, CopyFetcher(template))

    results = await asyncio.gather(first.run(REPO), second.run(REPO))

    assert all(result.success for result in results)
    assert results[0].workspace != results[1].workspace
    assert f"cwd={results[0].workspace.name}" in first_observer.text
    assert f"cwd={results[1].workspace.name}" in second_observer.text
    assert workspaces_left(settings) == []


@pytest.mark.asyncio
@pytest.mark.requires_git
@pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")
async def test_run_from_local_git_repository(template, settings, observer):
    """Test the default git fetcher clones a real repository."""
    write_script(template / "bootstrap.py", """
        print("from git")
    """)
    git = ["git", "-c", "user.name=macstrap", "-c", "user.email=macstrap@example.com"]
    subprocess.run(git + ["init", "-q", str(template)], check=True)
    subprocess.run(git + ["-C", str(template), "add", "."], check=True)
    subprocess.run(git + ["-C", str(template), "commit", "-q", "-m", "init"], check=True)

    driver = BootstrapDriver(observer, prompt=StaticPrompt(SECRET), settings=settings)
    result = await driver.run(str(template))

    assert result.success, observer.text
    assert "from git" in observer.text
    assert workspaces_left(settings) == []


@pytest.mark.asyncio
@pytest.mark.requires_git
@pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")
async def test_unreachable_git_source(temp_dir, settings, observer):
    """Test cloning a missing repository fails with FetchFailed."""
    driver = BootstrapDriver(observer, prompt=StaticPrompt(SECRET), settings=settings)

    result = await driver.run(str(temp_dir / "missing-repo"))

    assert isinstance(result.error, FetchFailed)
    assert workspaces_left(settings) == []
