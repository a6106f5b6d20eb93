"""Closed error taxonomy for the packaging pipeline.

Callers of ``Bundler.validate`` and ``Bundler.execute`` only ever observe the
kinds defined here. Anything else raised inside a bundler is wrapped into
``ConfigurationError`` (during validation) or ``PackagingError`` (during
execution) before it leaves the bundler.
"""

from __future__ import annotations


class PackagerError(RuntimeError):
    """Base class for every error that carries user-facing advice.

    Parameters
    ----------
    message:
        Short description of what went wrong.
    advice:
        Actionable remediation shown to the user next to the message.
    """

    default_advice = "Re-run with --verbose for more detail."

    def __init__(self, message: str, advice: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.advice = advice or self.default_advice

    def __str__(self) -> str:
        return self.message


class ConfigurationError(PackagerError):
    """A precondition was violated before any external side effect occurred."""

    default_advice = "Adjust the packaging parameters and try again."

    @classmethod
    def wrap(cls, exc: BaseException) -> ConfigurationError:
        """Wrap an unexpected fault raised during validation."""
        if isinstance(exc, ConfigurationError):
            return exc
        cause = exc.__cause__
        if isinstance(cause, ConfigurationError):
            return cause
        return cls(f"{type(exc).__name__}: {exc}")


class UnsupportedPlatformError(PackagerError):
    """The requested artifact kind cannot be produced on this host."""

    default_advice = "Run the packager on a host of the target platform."


class PackagingError(PackagerError):
    """Failure during or after image assembly, signing or tool invocation."""

    default_advice = (
        "Inspect the tool output above; re-run with --verbose to keep the "
        "working directory."
    )

    @classmethod
    def wrap(cls, exc: BaseException) -> PackagingError:
        """Wrap an unexpected fault raised during execution."""
        if isinstance(exc, PackagingError):
            return exc
        return cls(f"{type(exc).__name__}: {exc}")


class ResourceMissingError(PackagingError):
    """A required named resource could not be located by any branch."""

    default_advice = (
        "Place the resource in the --resource-dir directory or reinstall "
        "nativepack."
    )


class ToolExecutionError(PackagingError):
    """An external packaging tool exited unsuccessfully."""

    def __init__(
        self,
        command: list[str],
        exit_code: int,
        output: str = "",
        *,
        cwd: str | None = None,
    ) -> None:
        where = cwd or "unspecified directory"
        super().__init__(
            f"Exec failed with code {exit_code} command {command} in {where}",
            "Check that the tool is installed and on PATH; its output is "
            "attached to this error.",
        )
        self.command = list(command)
        self.exit_code = exit_code
        self.output = output


class ParameterCycleError(PackagerError):
    """A parameter default transitively fetched its own id."""

    default_advice = "Seed one of the parameters in the cycle explicitly."

    def __init__(self, chain: list[str]) -> None:
        super().__init__(
            "Cyclic parameter dependency: " + " -> ".join(chain)
        )
        self.chain = list(chain)


class ParameterTypeError(TypeError):
    """A stored value is neither raw text nor an instance of the declared type."""
