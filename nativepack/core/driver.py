"""Pipeline driver: selects bundlers and runs builds to completion.

The driver is the only caller that turns the error taxonomy into data.
``build`` never raises; every failure is recorded in the returned
:class:`~nativepack.models.build.BuildOutcome` together with the state
transitions the build went through.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from pathlib import Path

from nativepack.bundlers import BUNDLER_ORDER, BUNDLER_REGISTRY, Bundler
from nativepack.config import PackagerSettings, settings as default_settings
from nativepack.core import standard_params as sp
from nativepack.core.errors import PackagerError, PackagingError, ToolExecutionError
from nativepack.core.fileutils import delete_recursive
from nativepack.core.params import ParamStore
from nativepack.core.pipeline_machine import PipelineMachine
from nativepack.core.platform import Platform
from nativepack.core.process import ToolRunner
from nativepack.models.build import BuildOutcome, BuildRequest
from nativepack.models.pipeline import BundleType

logger = logging.getLogger(__name__)


class PipelineDriver:
    """Runs bundlers against parameter stores.

    Parameters
    ----------
    settings:
        Process-wide defaults seeded into stores that lack them.
    runner:
        Tool runner handed to every bundler.  Tests inject a fake.
    registry:
        Bundler id -> class.  Defaults to the built-in registry.
    host:
        Platform bundlers are checked against.  Defaults to the real host.
    """

    def __init__(
        self,
        settings: PackagerSettings | None = None,
        runner: ToolRunner | None = None,
        registry: Mapping[str, type[Bundler]] | None = None,
        *,
        host: Platform | None = None,
    ) -> None:
        self.settings = settings or default_settings
        self.runner = runner or ToolRunner(
            echo=self.settings.echo_tool_output,
            timeout=self.settings.tool_timeout_seconds,
        )
        self.registry = dict(registry) if registry is not None else dict(BUNDLER_REGISTRY)
        self.host = host or Platform.current()

    # ------------------------------------------------------------------
    # Bundler selection
    # ------------------------------------------------------------------

    def bundler(self, bundler_id: str, host: Platform | None = None) -> Bundler:
        """Instantiate the registered bundler *bundler_id*."""
        try:
            cls = self.registry[bundler_id]
        except KeyError:
            raise KeyError(
                f"Unknown bundler {bundler_id!r}. "
                f"Registered bundlers: {sorted(self.registry)}"
            ) from None
        return cls(self.runner, settings=self.settings, host=host or self.host)

    def bundlers(self, host: Platform | None = None) -> list[Bundler]:
        """Every registered bundler, in listing order."""
        ordered = [bid for bid in BUNDLER_ORDER if bid in self.registry]
        ordered += sorted(bid for bid in self.registry if bid not in ordered)
        return [self.bundler(bid, host) for bid in ordered]

    def select(
        self,
        kind: BundleType | str,
        platform: Platform | None = None,
        runtime_installer: bool = False,
    ) -> list[Bundler]:
        """Bundlers of *kind* that are supported on *platform*.

        *kind* is a :class:`BundleType` or a bundler id such as ``"deb"``.
        """
        selected = []
        for bundler in self.bundlers(platform):
            if isinstance(kind, BundleType) or kind in {t.value for t in BundleType}:
                matches = bundler.bundle_type is BundleType(kind)
            else:
                matches = bundler.id == kind
            if matches and bundler.supported(runtime_installer):
                selected.append(bundler)
        return selected

    # ------------------------------------------------------------------
    # Builds
    # ------------------------------------------------------------------

    def seed(self, store: ParamStore) -> ParamStore:
        """Copy settings into *store* where it has no entry of its own."""
        if sp.VERBOSE.id not in store and self.settings.verbose:
            store[sp.VERBOSE.id] = True
        if sp.BUILD_ROOT.id not in store and self.settings.build_root is not None:
            store[sp.BUILD_ROOT.id] = Path(self.settings.build_root)
        if sp.DROP_IN_RESOURCES_ROOT.id not in store and self.settings.resource_dir is not None:
            store[sp.DROP_IN_RESOURCES_ROOT.id] = Path(self.settings.resource_dir)
        return store

    def build(self, bundler: Bundler, store: ParamStore, output_dir: Path) -> BuildOutcome:
        """Validate and execute *bundler*; never raises."""
        self.seed(store)
        temporary_root = sp.BUILD_ROOT.id not in store
        machine = PipelineMachine(bundler.id)
        try:
            bundler.validate(store, machine)
            artifact = bundler.execute(store, Path(output_dir), machine)
        except Exception as exc:
            error = exc if isinstance(exc, PackagerError) else PackagingError.wrap(exc)
            machine.fail(str(error))
            logger.error("%s: %s", bundler.id, error.message)
            return BuildOutcome(
                bundler_id=bundler.id,
                succeeded=False,
                error_kind=type(error).__name__,
                message=error.message,
                advice=error.advice,
                exit_code=_exit_code(error),
                transitions=machine.history,
            )
        finally:
            if temporary_root and sp.BUILD_ROOT.id in store:
                self._discard_build_root(bundler, store)

        return BuildOutcome(
            bundler_id=bundler.id,
            succeeded=True,
            artifact=artifact,
            transitions=machine.history,
        )

    def build_batch(
        self, requests: Iterable[BuildRequest], base: ParamStore | None = None
    ) -> list[BuildOutcome]:
        """Run every request on its own store; failures do not stop the batch."""
        outcomes: list[BuildOutcome] = []
        for index, request in enumerate(requests):
            store = base.copy() if base is not None else ParamStore()
            for key, value in request.params.items():
                store[key] = value
            if sp.BUILD_ROOT.id not in store and self.settings.build_root is not None:
                store[sp.BUILD_ROOT.id] = (
                    Path(self.settings.build_root) / f"{index}-{request.bundler_id}"
                )
            try:
                bundler = self.bundler(request.bundler_id)
            except KeyError as exc:
                outcomes.append(BuildOutcome(
                    bundler_id=request.bundler_id,
                    succeeded=False,
                    error_kind="ConfigurationError",
                    message=str(exc.args[0]),
                    advice="Run `nativepack bundlers` to list the available bundlers.",
                ))
                continue
            outcomes.append(self.build(bundler, store, request.output_dir))
        return outcomes

    def _discard_build_root(self, bundler: Bundler, store: ParamStore) -> None:
        build_root = store[sp.BUILD_ROOT.id]
        if bundler.keep_work_dirs(store):
            logger.info("Kept build root %s", Path(build_root).absolute())
            return
        try:
            delete_recursive(Path(build_root))
        except OSError as exc:
            logger.warning("Could not delete build root %s: %s", build_root, exc)


def _exit_code(error: BaseException) -> int | None:
    """Exit code of the tool failure behind *error*, if any."""
    current: BaseException | None = error
    while current is not None:
        if isinstance(current, ToolExecutionError):
            return current.exit_code
        current = current.__cause__
    return None
