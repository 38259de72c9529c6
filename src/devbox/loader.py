# loader.py
# Step files: steps declared as TOML data.
#
# A step file holds an optional top-level `notice` and a list of [[step]]
# tables. Condition and action tables are discriminated by `kind`; each spec
# model knows how to build the callable the engine runs. Paths accept `~`
# and $VARS, expanded when the step is built.

import os
import tomllib
from importlib import resources
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from devbox import actions, conditions
from devbox.config import Settings
from devbox.errors import StepFileError
from devbox.models import Step
from devbox.registry import StepRegistry

BUNDLED_STEPS = "ubuntu.toml"


def _expand(path: str) -> str:
    return os.path.expandvars(os.path.expanduser(path))


class _Spec(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------


class NeverCondition(_Spec):
    kind: Literal["never"] = "never"

    def build(self) -> conditions.Condition:
        return conditions.never()


class CommandCondition(_Spec):
    kind: Literal["command"]
    name: str

    def build(self) -> conditions.Condition:
        return conditions.command(self.name)


class PathCondition(_Spec):
    kind: Literal["path"]
    path: str

    def build(self) -> conditions.Condition:
        return conditions.path_exists(_expand(self.path))


class DirectoryCondition(_Spec):
    kind: Literal["directory"]
    path: str

    def build(self) -> conditions.Condition:
        return conditions.directory(_expand(self.path))


class FileContainsCondition(_Spec):
    kind: Literal["file_contains"]
    path: str
    text: str

    def build(self) -> conditions.Condition:
        return conditions.file_contains(_expand(self.path), self.text)


class SymlinkCondition(_Spec):
    kind: Literal["symlink"]
    link: str
    target: str

    def build(self) -> conditions.Condition:
        return conditions.symlink(_expand(self.link), _expand(self.target))


class AptInstalledCondition(_Spec):
    kind: Literal["apt_installed"]
    packages: list[str] = Field(..., min_length=1)

    def build(self) -> conditions.Condition:
        return conditions.apt_installed(self.packages)


class GitConfigCondition(_Spec):
    kind: Literal["git_config"]
    key: str
    value: str

    def build(self) -> conditions.Condition:
        return conditions.git_config(self.key, self.value)


class LoginShellCondition(_Spec):
    kind: Literal["login_shell"]
    program: str
    user: str | None = None

    def build(self) -> conditions.Condition:
        return conditions.login_shell(self.program, self.user)


ConditionSpec = Annotated[
    Union[
        NeverCondition,
        CommandCondition,
        PathCondition,
        DirectoryCondition,
        FileContainsCondition,
        SymlinkCondition,
        AptInstalledCondition,
        GitConfigCondition,
        LoginShellCondition,
    ],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


class CommandAction(_Spec):
    kind: Literal["command"]
    argv: list[str] = Field(..., min_length=1)
    sudo: bool = False

    def build(self, settings: Settings) -> actions.Action:
        return actions.command(self.argv, sudo=self.sudo and settings.use_sudo)


class ShellAction(_Spec):
    kind: Literal["shell"]
    script: str
    sudo: bool = False

    def build(self, settings: Settings) -> actions.Action:
        return actions.shell(self.script, sudo=self.sudo and settings.use_sudo)


class AptInstallAction(_Spec):
    kind: Literal["apt_install"]
    packages: list[str] = Field(..., min_length=1)

    def build(self, settings: Settings) -> actions.Action:
        return actions.apt_install(self.packages, sudo=settings.use_sudo)


class RemoteScriptAction(_Spec):
    kind: Literal["remote_script"]
    url: str
    interpreter: str = "sh"
    args: list[str] = Field(default_factory=list)

    def build(self, settings: Settings) -> actions.Action:
        return actions.remote_script(
            self.url, settings.http_timeout, interpreter=self.interpreter, args=self.args
        )


class GitCloneAction(_Spec):
    kind: Literal["git_clone"]
    repo: str
    dest: str

    def build(self, settings: Settings) -> actions.Action:
        return actions.git_clone(self.repo, _expand(self.dest))


class GitConfigAction(_Spec):
    kind: Literal["git_config"]
    key: str
    value: str

    def build(self, settings: Settings) -> actions.Action:
        return actions.git_config(self.key, self.value)


class LoginShellAction(_Spec):
    kind: Literal["login_shell"]
    program: str
    user: str | None = None

    def build(self, settings: Settings) -> actions.Action:
        return actions.login_shell(self.program, self.user, sudo=settings.use_sudo)


class GithubReleaseAction(_Spec):
    kind: Literal["github_release"]
    repo: str = Field(..., pattern=r"^[\w.-]+/[\w.-]+$")
    asset: str = Field(..., description="File name template over {tag} and {version}.")
    install: Literal["deb", "extract", "binary"]
    dest: str = ""
    member: str | None = None

    def build(self, settings: Settings) -> actions.Action:
        if self.install != "deb" and not self.dest:
            raise ValueError(f"The '{self.install}' installer needs a dest.")
        return actions.github_release(
            self.repo,
            self.asset,
            self.install,
            _expand(self.dest),
            settings.http_timeout,
            member=self.member,
            sudo=settings.use_sudo,
            token=settings.github_token,
        )


class SymlinkAction(_Spec):
    kind: Literal["symlink"]
    target: str
    link: str

    def build(self, settings: Settings) -> actions.Action:
        return actions.symlink(_expand(self.target), _expand(self.link))


class AppendLineAction(_Spec):
    kind: Literal["append_line"]
    path: str
    line: str

    def build(self, settings: Settings) -> actions.Action:
        return actions.append_line(_expand(self.path), self.line)


class SubstituteAction(_Spec):
    kind: Literal["substitute"]
    path: str
    old: str
    new: str

    def build(self, settings: Settings) -> actions.Action:
        return actions.substitute(_expand(self.path), self.old, self.new)


ActionSpec = Annotated[
    Union[
        CommandAction,
        ShellAction,
        AptInstallAction,
        RemoteScriptAction,
        GitCloneAction,
        GitConfigAction,
        LoginShellAction,
        GithubReleaseAction,
        SymlinkAction,
        AppendLineAction,
        SubstituteAction,
    ],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class StepSpec(_Spec):
    id: str = Field(..., min_length=1)
    description: str
    depends_on: list[str] = Field(default_factory=list)
    condition: ConditionSpec = Field(default_factory=NeverCondition)
    action: ActionSpec
    postcondition: ConditionSpec | None = None
    verify: bool = Field(default=False, description="Re-check the condition after the action.")

    def build(self, settings: Settings) -> Step:
        condition = self.condition.build()
        if self.postcondition is not None:
            postcondition = self.postcondition.build()
        else:
            postcondition = condition if self.verify else None
        return Step(
            id=self.id,
            description=self.description,
            depends_on=tuple(self.depends_on),
            condition=condition,
            action=self.action.build(settings),
            postcondition=postcondition,
        )


class StepFile(_Spec):
    notice: str | None = Field(default=None, description="Shown after a successful run.")
    steps: list[StepSpec] = Field(default_factory=list, alias="step")


def parse_step_file(text: str, source: str = "<string>") -> StepFile:
    """Parse and validate a TOML step document. Raises StepFileError."""
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise StepFileError(f"{source}: invalid TOML: {exc}") from exc
    try:
        return StepFile.model_validate(data)
    except ValidationError as exc:
        raise StepFileError(f"{source}: {exc}") from exc


def read_step_file(path: str | os.PathLike) -> StepFile:
    try:
        with open(path, encoding="utf-8") as fh:
            text = fh.read()
    except (OSError, UnicodeDecodeError) as exc:
        raise StepFileError(f"Cannot read step file {path}: {exc}") from exc
    return parse_step_file(text, str(path))


def bundled_step_file() -> StepFile:
    """The step file shipped with the package (Ubuntu developer machine)."""
    text = (resources.files("devbox") / "steps" / BUNDLED_STEPS).read_text(encoding="utf-8")
    return parse_step_file(text, BUNDLED_STEPS)


def build_registry(document: StepFile, settings: Settings) -> StepRegistry:
    """Build every declared step and register it in file order."""
    registry = StepRegistry()
    for spec in document.steps:
        try:
            step = spec.build(settings)
        except ValueError as exc:
            raise StepFileError(f"Step '{spec.id}': {exc}") from exc
        registry.register(step)
    return registry
