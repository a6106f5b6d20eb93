"""Shared test fixtures for nativepack."""

from __future__ import annotations

import zipfile
from collections.abc import Callable
from pathlib import Path

import pytest

from nativepack.config import PackagerSettings
from nativepack.core.errors import ToolExecutionError
from nativepack.core.params import ParamStore
from nativepack.core.process import COMMAND_NOT_FOUND
from nativepack.models.build import ExecResult


# ---------------------------------------------------------------------------
# Fake tool runner: records commands and creates the artifacts a real tool
# would leave behind
# ---------------------------------------------------------------------------


class FakeRunner:
    """Drop-in replacement for ``ToolRunner`` that never starts a process.

    ``exit_codes`` and ``outputs`` are keyed by the base name of the
    executable, e.g. ``"iscc.exe"`` or ``"dpkg-deb"``.
    """

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.cwds: list[Path | None] = []
        self.probes: list[list[str]] = []
        self.exit_codes: dict[str, int] = {}
        self.outputs: dict[str, str] = {
            "iscc.exe": "Inno Setup 6.2.2 Command-Line Compiler",
            "candle.exe": "Windows Installer XML Toolset Compiler version 3.11.2.4516",
            "light.exe": "Windows Installer XML Toolset Linker version 3.11.2.4516",
        }
        self.certificates: list[str] = []

    def run(self, command, cwd=None, *, probe_only=False, timeout=None) -> ExecResult:
        args = [str(part) for part in command]
        self.calls.append(args)
        self.cwds.append(Path(cwd) if cwd is not None else None)
        if probe_only:
            self.probes.append(args)
        name = Path(args[0]).name
        exit_code = self.exit_codes.get(name, 0)
        output = self.outputs.get(name, "")
        if exit_code != 0 and not (probe_only and exit_code != COMMAND_NOT_FOUND):
            raise ToolExecutionError(args, exit_code, output, cwd=str(cwd) if cwd else None)
        if exit_code == 0 and not probe_only:
            self._produce(name, args)
        return ExecResult(command=args, exit_code=exit_code, output=output)

    def process_output(self, args) -> tuple[int, list[str]]:
        argv = [str(part) for part in args]
        self.calls.append(argv)
        return 0, list(self.certificates)

    def commands(self, name: str) -> list[list[str]]:
        """Recorded non-probe invocations of the tool *name*."""
        return [c for c in self.calls if Path(c[0]).name == name and c not in self.probes]

    @staticmethod
    def _produce(name: str, args: list[str]) -> None:
        target: Path | None = None
        if name == "iscc.exe":
            out_dir = next(a[2:] for a in args if a.startswith("/o"))
            target = Path(out_dir) / "Hello-1.0.exe"
        elif name == "light.exe":
            target = Path(args[args.index("-out") + 1])
        elif name == "candle.exe":
            target = Path(args[args.index("-out") + 1])
        elif name == "dpkg-deb":
            target = Path(args[-1]) / f"{Path(args[2]).name}_1.0_amd64.deb"
        elif name == "rpmbuild":
            rpm_dir = next(a.split(" ", 1)[1] for a in args if a.startswith("%_rpmdir "))
            target = Path(rpm_dir) / "hello-1.0-1.x86_64.rpm"
        elif name in ("pkgbuild", "productbuild"):
            target = Path(args[-1])
        if target is not None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(b"artifact")


@pytest.fixture
def fake_runner() -> FakeRunner:
    """Provide a recording tool runner."""
    return FakeRunner()


@pytest.fixture
def packager_settings() -> PackagerSettings:
    """Settings isolated from the developer's environment and .env file."""
    return PackagerSettings(_env_file=None, verbose=False, debug=False)


# ---------------------------------------------------------------------------
# Application inputs
# ---------------------------------------------------------------------------


@pytest.fixture
def make_jar() -> Callable[..., Path]:
    """Factory fixture: write a jar with an optional manifest."""

    def _factory(
        path: Path,
        main_class: str | None = "com.example.Hello",
        class_path: str | None = None,
        manifest: bool = True,
    ) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(path, "w") as archive:
            if manifest:
                lines = ["Manifest-Version: 1.0"]
                if main_class:
                    lines.append(f"Main-Class: {main_class}")
                if class_path:
                    lines.append(f"Class-Path: {class_path}")
                archive.writestr("META-INF/MANIFEST.MF", "\r\n".join(lines) + "\r\n\r\n")
            archive.writestr("com/example/Hello.class", b"\xca\xfe\xba\xbe")
        return path

    return _factory


@pytest.fixture
def app_input(tmp_path: Path, make_jar) -> Path:
    """An input directory with a main jar, a library jar and a license."""
    input_dir = tmp_path / "input"
    make_jar(input_dir / "hello.jar", class_path="lib/dep.jar")
    make_jar(input_dir / "lib" / "dep.jar", manifest=False)
    (input_dir / "LICENSE.txt").write_text("Free to use.\n", encoding="utf-8")
    return input_dir


@pytest.fixture
def resource_dir(tmp_path: Path) -> Path:
    """An empty drop-in resource directory."""
    path = tmp_path / "drop-in"
    path.mkdir()
    return path


@pytest.fixture
def store(tmp_path: Path, app_input: Path, resource_dir: Path) -> ParamStore:
    """A parameter store describing the sample application."""
    return ParamStore({
        "input": str(app_input),
        "build-root": tmp_path / "build",
        "resource-dir": resource_dir,
        "version": "1.0",
    })


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    return tmp_path / "out"
