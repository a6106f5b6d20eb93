"""Abstract bundler with an enforced packaging lifecycle.

Every concrete bundler inherits from :class:`Bundler` and implements
``check``, ``transform`` and ``package``.  The ``validate()`` and
``execute()`` wrappers are **not overridable**; they enforce the canonical
ordering:

    validate -> prepare_image -> transform -> package -> cleanup

and guarantee that only the error kinds of ``nativepack.core.errors`` leave
a bundler.
"""

from __future__ import annotations

import abc
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import ClassVar, final

from pydantic import BaseModel, ConfigDict

from nativepack.config import PackagerSettings, settings as default_settings
from nativepack.core import standard_params as sp
from nativepack.core.errors import (
    ConfigurationError,
    PackagingError,
    UnsupportedPlatformError,
)
from nativepack.core.fileutils import copy_recursive, delete_recursive, newest_file, writable_output_dir
from nativepack.core.image import EXCLUDED_FILES, AppImageBuilder
from nativepack.core.params import ParamSpec, ParamStore
from nativepack.core.pipeline_machine import PipelineMachine
from nativepack.core.platform import Platform
from nativepack.core.process import ToolRunner
from nativepack.core.resources import ResourceResolver
from nativepack.models.pipeline import BundleType, PipelineState
from nativepack.models.resources import ResourceRequest

logger = logging.getLogger(__name__)


class WorkImage(BaseModel):
    """The application image a bundler packages.

    ``work_dir`` is the per-bundler directory owned by this build; cleanup
    removes it.  ``predefined`` marks an image supplied by the user.  Such
    an ``image_dir`` lies outside ``work_dir`` unless it was copied in, so
    cleanup never touches the user's directory.
    """

    model_config = ConfigDict(frozen=True)

    image_dir: Path
    work_dir: Path
    predefined: bool = False


# Parameters every bundler understands.
COMMON_PARAMS: list[ParamSpec] = [
    sp.APP_NAME,
    sp.APP_RESOURCES,
    sp.APP_RESOURCES_LIST,
    sp.SOURCE_DIR,
    sp.MAIN_JAR,
    sp.MAIN_CLASS,
    sp.CLASSPATH,
    sp.MODULE,
    sp.ICON,
    sp.VERSION,
    sp.VENDOR,
    sp.IDENTIFIER,
    sp.PREFERENCES_ID,
    sp.ARGUMENTS,
    sp.JVM_OPTIONS,
    sp.JVM_PROPERTIES,
    sp.USER_JVM_OPTIONS,
    sp.SINGLETON,
    sp.SECONDARY_LAUNCHERS,
    sp.PREDEFINED_RUNTIME_IMAGE,
    sp.BUILD_ROOT,
    sp.VERBOSE,
    sp.DROP_IN_RESOURCES_ROOT,
]

# Parameters every installer bundler adds.
INSTALLER_PARAMS: list[ParamSpec] = [
    sp.PREDEFINED_APP_IMAGE,
    sp.DESCRIPTION,
    sp.COPYRIGHT,
    sp.TITLE,
    sp.CATEGORY,
    sp.LICENSE_FILE,
    sp.INSTALLER_NAME,
    sp.INSTALL_DIR,
    sp.FILE_ASSOCIATIONS,
]


class Bundler(abc.ABC):
    """Abstract base for all platform bundlers.

    Subclasses **must** implement:
        * ``id`` / ``name`` / ``description``: identity shown by the CLI.
        * ``package(store, image, output_dir)``: invoke the tool and return
          the artifact.

    Subclasses **may** override:
        * ``check(store)``: bundler specific validation.
        * ``transform(store, image)``: signing, template rendering.
        * ``params()``: the descriptors the bundler recognizes.

    Subclasses **must not** override ``validate()`` or ``execute()``.

    Parameters
    ----------
    runner:
        Starts external tools.  Tests inject a fake.
    settings:
        Process-wide settings; ``debug`` keeps working directories.
    host:
        Platform the packager runs on.  Defaults to the real host.
    """

    bundle_type: ClassVar[BundleType] = BundleType.INSTALLER
    # None means the bundler runs on any host.
    platform: ClassVar[Platform | None] = None
    supports_runtime_installer: ClassVar[bool] = False

    def __init__(
        self,
        runner: ToolRunner | None = None,
        *,
        settings: PackagerSettings | None = None,
        host: Platform | None = None,
    ) -> None:
        self.settings = settings or default_settings
        self.runner = runner or ToolRunner(
            echo=self.settings.echo_tool_output,
            timeout=self.settings.tool_timeout_seconds,
        )
        self.host = host or Platform.current()

    # ------------------------------------------------------------------
    # Identity: subclasses implement these
    # ------------------------------------------------------------------

    @property
    @abc.abstractmethod
    def id(self) -> str:
        """Registry id, e.g. ``'exe'``."""
        ...

    @property
    @abc.abstractmethod
    def name(self) -> str:
        ...

    @property
    @abc.abstractmethod
    def description(self) -> str:
        ...

    def params(self) -> list[ParamSpec]:
        """Descriptors this bundler recognizes."""
        specs = list(COMMON_PARAMS)
        if self.bundle_type is BundleType.INSTALLER:
            specs += INSTALLER_PARAMS
        return specs

    def supported(self, runtime_installer: bool = False) -> bool:
        """Whether this bundler can run on the current host."""
        if runtime_installer and not self.supports_runtime_installer:
            return False
        return self.platform is None or self.platform is self.host

    @property
    def image_platform(self) -> Platform:
        """Layout used for the application image."""
        return self.platform or self.host

    # ------------------------------------------------------------------
    # Hooks: subclasses override these
    # ------------------------------------------------------------------

    def check(self, store: ParamStore) -> None:
        """Bundler specific validation; raise ``ConfigurationError``."""

    def transform(self, store: ParamStore, image: WorkImage) -> None:
        """Sign, render templates or otherwise prepare *image* for packaging."""

    @abc.abstractmethod
    def package(self, store: ParamStore, image: WorkImage, output_dir: Path) -> Path:
        """Produce the artifact in *output_dir* and return its path."""
        ...

    # ------------------------------------------------------------------
    # Lifecycle: NOT overridable
    # ------------------------------------------------------------------

    @final
    def validate(self, store: ParamStore, machine: PipelineMachine | None = None) -> bool:
        """Check that *store* can be packaged.  **Do not override.**

        Raises ``UnsupportedPlatformError`` or ``ConfigurationError``; any
        other fault is wrapped into ``ConfigurationError``.
        """
        try:
            if not self.supported(bool(sp.RUNTIME_INSTALLER.fetch_from(store))):
                raise UnsupportedPlatformError(
                    f"Bundler {self.id} is not supported on {self.host.value}"
                )
            predefined = sp.PREDEFINED_APP_IMAGE.fetch_from(store)
            if predefined is not None:
                _require_predefined_image(predefined)
            else:
                sp.validate_main_class_info(store)
                if not sp.APP_NAME.fetch_from(store):
                    raise ConfigurationError(
                        "The application name could not be determined",
                        "Specify the application name with --name or a main class.",
                    )
                runtime = sp.PREDEFINED_RUNTIME_IMAGE.fetch_from(store)
                if runtime is not None and not runtime.exists():
                    raise ConfigurationError(
                        f"Specified runtime image {runtime} does not exist",
                        f"Pass an existing runtime directory to "
                        f"{sp.PREDEFINED_RUNTIME_IMAGE.id}.",
                    )
            self.check(store)
        except (UnsupportedPlatformError, ConfigurationError) as exc:
            if machine is not None:
                machine.fail(str(exc))
            raise
        except Exception as exc:
            if machine is not None:
                machine.fail(str(exc))
            logger.debug("%s validation fault", self.id, exc_info=True)
            raise ConfigurationError.wrap(exc) from exc
        if machine is not None:
            machine.transition(PipelineState.VALIDATED)
        return True

    @final
    def execute(
        self,
        store: ParamStore,
        output_dir: Path,
        machine: PipelineMachine | None = None,
    ) -> Path:
        """Run the packaging lifecycle.  **Do not override.**

        Ordering:
            1. check the output directory
            2. ``prepare_image(store)``
            3. ``transform(store, image)``
            4. ``package(store, image, output_dir)``
            5. cleanup, always

        ``ConfigurationError`` and ``PackagingError`` pass through; anything
        else is wrapped into ``PackagingError``.
        """
        if machine is None:
            machine = PipelineMachine(self.id)
        if machine.state is PipelineState.UNVALIDATED:
            machine.transition(PipelineState.VALIDATED, "validated by caller")

        output_dir = Path(output_dir)
        image: WorkImage | None = None
        logger.info("Running bundler %s", self.id)
        try:
            writable_output_dir(output_dir)
            image = self.prepare_image(store)
            machine.transition(PipelineState.IMAGE_ASSEMBLED, str(image.image_dir))
            self.transform(store, image)
            machine.transition(PipelineState.TRANSFORMED)
            artifact = self.package(store, image, output_dir)
            machine.transition(PipelineState.PACKAGED, str(artifact))
        except (ConfigurationError, PackagingError) as exc:
            machine.fail(str(exc))
            logger.error("%s failed: %s", self.id, exc)
            raise
        except Exception as exc:
            machine.fail(str(exc))
            logger.error("%s failed: %s", self.id, exc, exc_info=True)
            raise PackagingError.wrap(exc) from exc
        finally:
            if image is not None:
                self.cleanup(store, image)

        machine.transition(PipelineState.CLEANED_UP)
        logger.info("%s artifact: %s", self.id, artifact)
        return artifact

    # ------------------------------------------------------------------
    # Lifecycle helpers
    # ------------------------------------------------------------------

    def prepare_image(self, store: ParamStore) -> WorkImage:
        """Use the predefined image or assemble a fresh one."""
        predefined = sp.PREDEFINED_APP_IMAGE.fetch_from(store)
        if predefined is not None:
            _require_predefined_image(predefined)
            logger.debug("Using app image from %s", predefined)
            return self.adopt_predefined_image(store, predefined)

        work_dir = self.work_dir(store)
        try:
            image_dir = AppImageBuilder(
                store, work_dir, self.image_platform, self.resolver(store)
            ).build()
        except Exception:
            self.cleanup(store, WorkImage(image_dir=work_dir, work_dir=work_dir))
            raise
        return WorkImage(image_dir=image_dir, work_dir=work_dir)

    def adopt_predefined_image(self, store: ParamStore, predefined: Path) -> WorkImage:
        """Package *predefined* in place; staging files go to a fresh work dir."""
        return WorkImage(image_dir=predefined, work_dir=self.work_dir(store), predefined=True)

    def copy_predefined_image(self, store: ParamStore, predefined: Path) -> WorkImage:
        """Copy *predefined* into a working directory named after the app."""
        work_dir = self.work_dir(store)
        name = sp.APP_NAME.fetch_from(store) or predefined.name
        image_dir = work_dir / name
        copy_recursive(predefined, image_dir, excludes=EXCLUDED_FILES)
        return WorkImage(image_dir=image_dir, work_dir=work_dir, predefined=True)

    def work_dir(self, store: ParamStore) -> Path:
        """Fresh per-bundler directory below ``images-root``."""
        path = sp.IMAGES_ROOT.fetch_from(store) / self.id
        if path.exists():
            delete_recursive(path)
        path.mkdir(parents=True)
        return path

    def keep_work_dirs(self, store: ParamStore) -> bool:
        return bool(sp.VERBOSE.fetch_from(store)) or self.settings.debug

    @final
    def cleanup(self, store: ParamStore, image: WorkImage) -> None:
        """Remove the working directory unless it must be kept."""
        if self.keep_work_dirs(store):
            logger.info("Kept working directory %s", image.work_dir.absolute())
            return
        try:
            delete_recursive(image.work_dir)
        except OSError as exc:
            logger.warning("Could not delete working directory %s: %s", image.work_dir, exc)

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def resolver(self, store: ParamStore) -> ResourceResolver:
        return ResourceResolver(verbose=bool(sp.VERBOSE.fetch_from(store)))

    def render_template(
        self,
        store: ParamStore,
        *,
        public_name: str,
        category: str,
        default_name: str,
        mapping: Mapping[str, str | None],
        dest: Path,
        custom_file: Path | None = None,
    ) -> Path:
        """Resolve a text template, render *mapping* into it and write *dest*."""
        text = self.resolver(store).preprocess_text_resource(
            ResourceRequest(
                public_name=public_name,
                category=category,
                default_name=default_name,
                custom_file=custom_file,
                drop_in_root=sp.DROP_IN_RESOURCES_ROOT.fetch_from(store),
            ),
            mapping,
        )
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_text(text, encoding="utf-8")
        return dest

    def newest_artifact(self, output_dir: Path, suffix: str) -> Path:
        """Pick the tool output with the newest modification time."""
        artifact = newest_file(output_dir, suffix)
        if artifact is None:
            raise PackagingError(
                f"{self.name} produced no {suffix} file in {output_dir}",
                "Inspect the tool output above for errors.",
            )
        return artifact

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id!r}>"


# ------------------------------------------------------------------
# Validation helpers shared by the installer bundlers
# ------------------------------------------------------------------


def _require_predefined_image(path: Path) -> None:
    if not path.exists():
        raise ConfigurationError(
            f"Specified app image directory {sp.PREDEFINED_APP_IMAGE.id}: "
            f"{path} does not exist",
            f"Pass an existing application image directory to "
            f"{sp.PREDEFINED_APP_IMAGE.id}.",
        )


def check_no_newlines(store: ParamStore, specs: Iterable[ParamSpec]) -> None:
    """Trim each single-line value in place, then reject inner newlines."""
    for spec in specs:
        value = spec.fetch_from(store)
        if value is None:
            continue
        if value != value.strip():
            value = value.strip()
            store[spec.id] = value
        if "\n" in value or "\r" in value:
            raise ConfigurationError(
                f"Parameter '{spec.id}' cannot contain a newline.",
                f"Change the value of '{spec.id}' so that it does not contain "
                "any newlines.",
            )


def check_license_files(store: ParamStore) -> None:
    """Every license file must be part of the application resources."""
    if sp.LICENSE_FILE.id not in store:
        return
    resources = sp.APP_RESOURCES_LIST.fetch_from(store) or []
    for license_file in sp.LICENSE_FILE.fetch_from(store) or []:
        if not any(rfs.contains(license_file) for rfs in resources):
            raise ConfigurationError(
                f"Specified license file is missing: {license_file}",
                f"Make sure that {license_file} is in the input directory.",
            )


def check_file_associations(store: ParamStore) -> None:
    """Each file association may name at most one content type."""
    for index, association in enumerate(sp.FILE_ASSOCIATIONS.fetch_from(store) or []):
        content_types = sp.FA_CONTENT_TYPE.fetch_from(ParamStore(association)) or []
        if len(content_types) > 1:
            raise ConfigurationError(
                f"More than one content type was specified for file "
                f"association {index}",
                "Specify at most one content type per file association.",
            )


def _match_license(store: ParamStore) -> tuple[Path, str] | None:
    licenses = sp.LICENSE_FILE.fetch_from(store) or []
    for rfs in sp.APP_RESOURCES_LIST.fetch_from(store) or []:
        for license_file in licenses:
            if rfs.contains(license_file):
                return rfs.base_directory, Path(license_file).as_posix()
    return None


def find_license_file(store: ParamStore) -> Path | None:
    """Absolute path of the first configured license file, if any."""
    match = _match_license(store)
    return match[0] / match[1] if match else None


def license_resource_name(store: ParamStore) -> str | None:
    """Path of that license relative to its resource set, as POSIX text."""
    match = _match_license(store)
    return match[1] if match else None
