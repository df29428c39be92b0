import os
import subprocess
from collections.abc import Callable

import pytest

import common


class RecordingRunner:
    """Stand-in for common.run_command that records commands instead of running them."""

    def __init__(self) -> None:
        self.commands: list[str] = []
        self.calls: list[dict] = []
        self._hooks: list[tuple[str, Callable[[str], object]]] = []

    def on(self, keyword: str, hook: Callable[[str], object]) -> None:
        self._hooks.append((keyword, hook))

    def count(self, keyword: str) -> int:
        return sum(keyword in command for command in self.commands)

    def __call__(
        self,
        command: str,
        ignore_error: bool = False,
        capture: bool = False,
        echo: bool = True,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        dry_run: bool | None = None,
    ) -> subprocess.CompletedProcess[str] | None:
        self.commands.append(command)
        self.calls.append({"command": command, "cwd": cwd, "env": env})
        for keyword, hook in self._hooks:
            if keyword in command:
                result = hook(command)
                if isinstance(result, subprocess.CompletedProcess):
                    return result
        return subprocess.CompletedProcess(command, 0, "", "")


def fake_archive(command: str) -> None:
    """Simulate the tar and xz invocations issued by common.compress."""
    tokens = command.split()
    if tokens[0] == "tar":
        path = tokens[tokens.index("-cf") + 1]
        with open(path, "w") as file:
            file.write("tar")
    elif tokens[0] == "xz":
        path = tokens[-1]
        with open(path) as src, open(f"{path}.xz", "w") as dst:
            dst.write(src.read() + ".xz")
        os.remove(path)


@pytest.fixture
def runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture(autouse=True)
def no_dry_run():
    common.command_dry_run.set(False)
    yield
    common.command_dry_run.set(False)
