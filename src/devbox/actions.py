# actions.py
# Action implementations: the side-effecting half of every step.
#
# Each factory returns a zero-argument callable. The engine treats these as
# opaque: it never inspects partial effects, so an action is free to fail
# halfway. Reruns stay safe because every step is condition-gated.

import getpass
import os
import shutil
import subprocess
import sys
import tarfile
import tempfile
import threading
from collections import deque
from typing import IO, Callable

import httpx

from devbox.errors import ActionError, CommandError

Action = Callable[[], None]

GITHUB_API = "https://api.github.com"
GITHUB_DOWNLOAD = "https://github.com"

RELEASE_INSTALLERS = ("deb", "extract", "binary")

STDERR_TAIL_LINES = 5


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _privileged(argv: list[str], sudo: bool) -> list[str]:
    return ["sudo", *argv] if sudo else list(argv)


def _feed(stream: IO[str], text: str) -> None:
    try:
        stream.write(text)
        stream.close()
    except BrokenPipeError:
        # The process exited before reading all of it; its exit status says why.
        pass


def _run(argv: list[str], input_text: str | None = None) -> None:
    """
    Run a command with inherited stdout. stderr is relayed line by line as it
    arrives and its tail is kept for the error. Raises CommandError on non-zero exit.
    """
    try:
        proc = subprocess.Popen(
            argv,
            stdin=subprocess.PIPE if input_text is not None else None,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
        )
    except FileNotFoundError as exc:
        raise ActionError(f"Executable not found: {argv[0]}") from exc

    feeder = None
    if input_text is not None:
        feeder = threading.Thread(target=_feed, args=(proc.stdin, input_text), daemon=True)
        feeder.start()

    tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)
    for line in proc.stderr:
        sys.stderr.write(line)
        tail.append(line)
    proc.stderr.close()

    if feeder is not None:
        feeder.join()
    returncode = proc.wait()
    if returncode != 0:
        raise CommandError(argv, returncode, "".join(tail))


def _http_client(timeout: float) -> httpx.Client:
    return httpx.Client(timeout=timeout, follow_redirects=True)


def _ensure_parent(path: str) -> None:
    parent = os.path.dirname(os.path.abspath(path))
    os.makedirs(parent, exist_ok=True)


# ---------------------------------------------------------------------------
# Network primitives
# ---------------------------------------------------------------------------


def fetch_text(url: str, timeout: float) -> str:
    with _http_client(timeout) as client:
        response = client.get(url)
        response.raise_for_status()
        return response.text


def download(url: str, dest: str, timeout: float) -> str:
    """Stream url to dest. Returns dest."""
    with _http_client(timeout) as client:
        with client.stream("GET", url) as response:
            response.raise_for_status()
            with open(dest, "wb") as fh:
                for chunk in response.iter_bytes():
                    fh.write(chunk)
    return dest


def latest_release_tag(repo: str, timeout: float, token: str | None = None) -> str:
    """Tag name of the latest GitHub release of owner/name."""
    headers = {"Accept": "application/vnd.github+json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    with _http_client(timeout) as client:
        response = client.get(f"{GITHUB_API}/repos/{repo}/releases/latest", headers=headers)
        response.raise_for_status()
        tag = response.json().get("tag_name")
    if not tag:
        raise ActionError(f"No release tag found for {repo}.")
    return tag


# ---------------------------------------------------------------------------
# Process actions
# ---------------------------------------------------------------------------


def command(argv: list[str], sudo: bool = False) -> Action:
    return lambda: _run(_privileged(argv, sudo))


def shell(script: str, sudo: bool = False, interpreter: str = "bash") -> Action:
    return lambda: _run(_privileged([interpreter, "-c", script], sudo))


def apt_install(packages: list[str], sudo: bool = False) -> Action:
    return lambda: _run(_privileged(["apt-get", "install", "-y", *packages], sudo))


def remote_script(
    url: str,
    timeout: float,
    interpreter: str = "sh",
    args: list[str] | None = None,
) -> Action:
    """Fetch an installer script and pipe it into an interpreter (curl ... | sh)."""

    def _action() -> None:
        script = fetch_text(url, timeout)
        _run([interpreter, "-s", "--", *(args or [])], input_text=script)

    return _action


def git_clone(repo: str, dest: str) -> Action:
    def _action() -> None:
        _ensure_parent(dest)
        _run(["git", "clone", repo, dest])

    return _action


def git_config(key: str, value: str) -> Action:
    return lambda: _run(["git", "config", "--global", key, value])


def login_shell(program: str, user: str | None = None, sudo: bool = False) -> Action:
    """Make program the user's login shell (chsh -s)."""

    def _action() -> None:
        path = shutil.which(program)
        if path is None:
            raise ActionError(f"'{program}' is not installed.")
        _run(_privileged(["chsh", "-s", path, user or getpass.getuser()], sudo))

    return _action


def github_release(
    repo: str,
    asset: str,
    install: str,
    dest: str,
    timeout: float,
    member: str | None = None,
    sudo: bool = False,
    token: str | None = None,
) -> Action:
    """
    Download an asset of the latest GitHub release and install it.

    `asset` is a template over {tag} and {version} (tag without a leading 'v').
    install = "deb"     -> dpkg -i the downloaded package (dest unused)
    install = "extract" -> untar the archive into dest
    install = "binary"  -> copy `member` out of the tarball into dest with mode 0755
    """
    if install not in RELEASE_INSTALLERS:
        raise ValueError(f"Unknown release installer '{install}'.")
    if install == "binary" and not member:
        raise ValueError("The 'binary' installer needs a tarball member name.")

    def _action() -> None:
        tag = latest_release_tag(repo, timeout, token)
        name = asset.format(tag=tag, version=tag.removeprefix("v"))
        url = f"{GITHUB_DOWNLOAD}/{repo}/releases/download/{tag}/{name}"

        with tempfile.TemporaryDirectory(prefix="devbox-") as workdir:
            archive = download(url, os.path.join(workdir, name), timeout)

            if install == "deb":
                _run(_privileged(["dpkg", "-i", archive], sudo))
            elif install == "extract":
                _run(_privileged(["mkdir", "-p", dest], sudo))
                _run(_privileged(["tar", "-C", dest, "-xzf", archive], sudo))
            else:
                binary = os.path.join(workdir, os.path.basename(member))
                with tarfile.open(archive) as tar:
                    source = tar.extractfile(member)
                    if source is None:
                        raise ActionError(f"'{member}' is not a regular file in {name}.")
                    with source, open(binary, "wb") as fh:
                        shutil.copyfileobj(source, fh)
                _run(_privileged(["install", "-m", "0755", binary, dest], sudo))

    return _action


# ---------------------------------------------------------------------------
# File actions
# ---------------------------------------------------------------------------


def append_line(path: str, line: str) -> Action:
    def _action() -> None:
        _ensure_parent(path)
        prefix = ""
        if os.path.isfile(path) and os.path.getsize(path) > 0:
            with open(path, "rb") as fh:
                fh.seek(-1, os.SEEK_END)
                if fh.read(1) != b"\n":
                    prefix = "\n"
        with open(path, "a", encoding="utf-8") as fh:
            fh.write(f"{prefix}{line}\n")

    return _action


def substitute(path: str, old: str, new: str) -> Action:
    """Literal in-place replacement, like sed 's/old/new/'. No match is a no-op."""

    def _action() -> None:
        with open(path, encoding="utf-8") as fh:
            text = fh.read()
        if old not in text:
            return
        with open(path, "w", encoding="utf-8") as fh:
            fh.write(text.replace(old, new))

    return _action


def symlink(target: str, link: str) -> Action:
    """ln -sf target link, creating the link's parent directory."""

    def _action() -> None:
        _ensure_parent(link)
        if os.path.isdir(link) and not os.path.islink(link):
            raise ActionError(f"{link} is a directory; refusing to replace it with a symlink.")
        if os.path.lexists(link):
            os.remove(link)
        os.symlink(target, link)

    return _action
