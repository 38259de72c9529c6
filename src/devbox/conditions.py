# conditions.py
# Condition checks: read-only queries of system state.
#
# Every factory returns a zero-argument predicate. Predicates must never
# mutate anything: calling one twice with no external change gives the same
# answer, which is what makes reruns safe. A predicate raises
# ConditionUnevaluable only when the check itself is impossible (missing
# inspection tool, unknown user), never to mean "not satisfied".

import getpass
import os
import pwd
import shutil
import subprocess
from typing import Callable

from devbox.errors import ConditionUnevaluable

Condition = Callable[[], bool]


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def check(step_id: str, predicate: Condition) -> bool:
    """
    Evaluate a predicate on behalf of a step.

    Any crash inside the predicate is reported as ConditionUnevaluable
    naming the step; a crashing check tells us nothing about the state.
    """
    try:
        return bool(predicate())
    except ConditionUnevaluable as exc:
        raise ConditionUnevaluable(f"Step '{step_id}': {exc}") from exc
    except Exception as exc:
        raise ConditionUnevaluable(
            f"Step '{step_id}': condition could not be evaluated: {exc}"
        ) from exc


def _require_tool(name: str) -> str:
    path = shutil.which(name)
    if path is None:
        raise ConditionUnevaluable(f"'{name}' is not available to inspect system state.")
    return path


# ---------------------------------------------------------------------------
# Built-in conditions
# ---------------------------------------------------------------------------


def never() -> Condition:
    """A condition that never holds: the step runs every time."""
    return lambda: False


def command(name: str) -> Condition:
    return lambda: shutil.which(name) is not None


def path_exists(path: str) -> Condition:
    return lambda: os.path.lexists(path)


def directory(path: str) -> Condition:
    return lambda: os.path.isdir(path)


def file_contains(path: str, text: str) -> Condition:
    """True when some line of the file contains text (grep -qF). Missing file is False."""

    def _check() -> bool:
        if not os.path.isfile(path):
            return False
        with open(path, encoding="utf-8", errors="replace") as fh:
            return any(text in line for line in fh)

    return _check


def symlink(link: str, target: str) -> Condition:
    return lambda: os.path.islink(link) and os.readlink(link) == target


def apt_installed(packages: list[str]) -> Condition:
    """True when every package is installed according to dpkg."""

    def _check() -> bool:
        dpkg_query = _require_tool("dpkg-query")
        proc = subprocess.run(
            [dpkg_query, "-W", "-f=${Package} ${Status}\n", *packages],
            capture_output=True,
            text=True,
            check=False,
        )
        installed = {
            line.split()[0]
            for line in proc.stdout.splitlines()
            if line.strip().endswith("install ok installed")
        }
        return all(package.split(":")[0] in installed for package in packages)

    return _check


def git_config(key: str, value: str) -> Condition:
    """True when the global git config has key set to exactly value."""

    def _check() -> bool:
        git = _require_tool("git")
        proc = subprocess.run(
            [git, "config", "--global", "--get", key],
            capture_output=True,
            text=True,
            check=False,
        )
        # Exit status 1 means the key is unset.
        if proc.returncode == 1:
            return False
        if proc.returncode != 0:
            raise ConditionUnevaluable(f"git config failed: {proc.stderr.strip()}")
        return proc.stdout.strip() == value

    return _check


def login_shell(program: str, user: str | None = None) -> Condition:
    """True when the user's login shell is the named program (e.g. 'zsh')."""

    def _check() -> bool:
        name = user or getpass.getuser()
        try:
            entry = pwd.getpwnam(name)
        except KeyError as exc:
            raise ConditionUnevaluable(f"Unknown user '{name}'.") from exc
        return os.path.basename(entry.pw_shell) == program

    return _check
