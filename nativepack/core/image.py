"""Application image assembly.

An application image is a self-contained directory holding a launcher, the
application jars, an optional runtime and a ``.cfg`` file the launcher
reads.  The layout depends on the target platform:

========  ================================  ===================  =================================
Platform  Launcher                          App files            Runtime
========  ================================  ===================  =================================
Linux     ``<name>/bin/<name>``             ``lib/app/``         ``lib/runtime/``
Windows   ``<name>/<name>.exe``             ``app/``             ``runtime/``
macOS     ``<name>.app/Contents/MacOS/``    ``Contents/Java/``   ``Contents/PlugIns/Java.runtime/``
========  ================================  ===================  =================================
"""

from __future__ import annotations

import logging
import os
from fnmatch import fnmatch
from pathlib import Path, PurePosixPath

from pydantic import BaseModel, ConfigDict

from nativepack.core import standard_params as sp
from nativepack.core.errors import ConfigurationError
from nativepack.core.fileutils import copy_file, copy_recursive, delete_recursive, make_executable
from nativepack.core.params import ParamStore
from nativepack.core.platform import Platform
from nativepack.core.resources import ResourceResolver
from nativepack.models.resources import ResourceRequest

logger = logging.getLogger(__name__)

# Never copied into an image.
EXCLUDED_FILES: tuple[str, ...] = ("*.diz",)

LAUNCHER_TEMPLATE = "launcher.template"
INFO_PLIST_TEMPLATE = "Info.plist.template"


class ImageLayout(BaseModel):
    """Where each part of an application image lives."""

    model_config = ConfigDict(frozen=True)

    image_dir: Path
    launcher_dir: Path
    app_dir: Path
    runtime_dir: Path
    resources_dir: Path
    launcher_suffix: str = ""
    runtime_location: str = ""

    def launcher(self, name: str) -> Path:
        return self.launcher_dir / f"{name}{self.launcher_suffix}"

    def cfg_file(self, name: str) -> Path:
        return self.app_dir / f"{name}.cfg"

    @classmethod
    def for_platform(cls, root: Path, name: str, platform: Platform) -> ImageLayout:
        root = Path(root)
        if platform is Platform.WINDOWS:
            image = root / name
            return cls(
                image_dir=image,
                launcher_dir=image,
                app_dir=image / "app",
                runtime_dir=image / "runtime",
                resources_dir=image,
                launcher_suffix=".exe",
                runtime_location="$ROOTDIR\\runtime",
            )
        if platform is Platform.MAC:
            image = root / f"{name}.app"
            contents = image / "Contents"
            return cls(
                image_dir=image,
                launcher_dir=contents / "MacOS",
                app_dir=contents / "Java",
                runtime_dir=contents / "PlugIns" / "Java.runtime",
                resources_dir=contents / "Resources",
                runtime_location="$ROOTDIR/PlugIns/Java.runtime",
            )
        image = root / name
        return cls(
            image_dir=image,
            launcher_dir=image / "bin",
            app_dir=image / "lib" / "app",
            runtime_dir=image / "lib" / "runtime",
            resources_dir=image / "lib",
            runtime_location="$ROOTDIR/lib/runtime",
        )


class AppImageBuilder:
    """Assembles an application image from a parameter store.

    Parameters
    ----------
    store:
        Parameters of the build.
    root:
        Directory the image directory is created in.
    platform:
        Target layout.  Defaults to the host platform.
    resolver:
        Used to locate the launcher and ``Info.plist`` templates.
    """

    def __init__(
        self,
        store: ParamStore,
        root: Path,
        platform: Platform | None = None,
        resolver: ResourceResolver | None = None,
    ) -> None:
        self.store = store
        self.root = Path(root)
        self.platform = platform or Platform.current()
        self.resolver = resolver or ResourceResolver(
            verbose=bool(sp.VERBOSE.fetch_from(store))
        )
        name = sp.APP_NAME.fetch_from(store)
        if not name:
            raise ConfigurationError(
                "The application name could not be determined",
                "Specify the application name with --name or a main class.",
            )
        self.name = name
        self.layout = ImageLayout.for_platform(self.root, name, self.platform)

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    def build(self) -> Path:
        """Create the image and return its directory."""
        layout = self.layout
        if layout.image_dir.exists():
            delete_recursive(layout.image_dir)
        for directory in (layout.launcher_dir, layout.app_dir, layout.runtime_dir,
                          layout.resources_dir):
            directory.mkdir(parents=True, exist_ok=True)

        self.copy_runtime()
        self.copy_app_files()
        self.copy_icon()
        self.write_launcher(self.name)
        self.write_cfg_file(self.store, layout.cfg_file(self.name))
        if self.platform is Platform.MAC:
            self.write_info_plist()

        for launcher_params in sp.SECONDARY_LAUNCHERS.fetch_from(self.store) or []:
            launcher_store = self.store.overlay(launcher_params)
            launcher_name = sp.APP_NAME.fetch_from(launcher_store)
            logger.debug("Adding secondary launcher %s", launcher_name)
            self.write_launcher(launcher_name, launcher_store)
            self.write_cfg_file(launcher_store, layout.cfg_file(launcher_name))

        logger.info("Assembled %s image at %s", self.platform.value, layout.image_dir)
        return layout.image_dir

    def copy_runtime(self) -> None:
        runtime = sp.PREDEFINED_RUNTIME_IMAGE.fetch_from(self.store)
        if runtime is None:
            return
        if not runtime.exists():
            raise ConfigurationError(
                f"Specified runtime image {runtime} does not exist",
                f"Pass an existing runtime directory to {sp.PREDEFINED_RUNTIME_IMAGE.id}.",
            )
        copy_recursive(runtime, self.layout.runtime_dir, excludes=EXCLUDED_FILES)

    def copy_app_files(self) -> None:
        for rfs in sp.APP_RESOURCES_LIST.fetch_from(self.store) or []:
            for rel in sorted(rfs.included_files):
                if any(fnmatch(PurePosixPath(rel).name, pattern) for pattern in EXCLUDED_FILES):
                    continue
                src = rfs.base_directory / rel
                if src.is_file():
                    copy_file(src, self.layout.app_dir / rel)

    def copy_icon(self) -> None:
        icon = sp.ICON.fetch_from(self.store)
        if icon is None:
            return
        if not icon.is_file():
            logger.warning("Icon %s does not exist, using the default", icon)
            return
        suffix = {Platform.WINDOWS: ".ico", Platform.MAC: ".icns"}.get(self.platform, ".png")
        copy_file(icon, self.layout.resources_dir / f"{self.name}{suffix}")

    def write_launcher(self, name: str, store: ParamStore | None = None) -> Path:
        store = store or self.store
        launcher = self.layout.launcher(name)
        launcher.parent.mkdir(parents=True, exist_ok=True)
        relative_app = os.path.relpath(self.layout.app_dir, self.layout.launcher_dir)
        text = self.resolver.preprocess_text_resource(
            ResourceRequest(
                public_name=f"{name}.launcher",
                category="launcher script",
                default_name=LAUNCHER_TEMPLATE,
                drop_in_root=sp.DROP_IN_RESOURCES_ROOT.fetch_from(store),
            ),
            {
                "APPLICATION_NAME": name,
                "APPLICATION_CFG": f"{relative_app}/{name}.cfg".replace("\\", "/"),
            },
        )
        launcher.write_text(text, encoding="utf-8")
        make_executable(launcher)
        return launcher

    def write_info_plist(self) -> Path:
        store = self.store
        plist = self.layout.image_dir / "Contents" / "Info.plist"
        identifier = sp.IDENTIFIER.fetch_from(store) or self.name
        text = self.resolver.preprocess_text_resource(
            ResourceRequest(
                public_name="Info.plist",
                category="Application Info.plist",
                default_name=INFO_PLIST_TEMPLATE,
                drop_in_root=sp.DROP_IN_RESOURCES_ROOT.fetch_from(store),
            ),
            {
                "DEPLOY_LAUNCHER_NAME": self.name,
                "DEPLOY_ICON_FILE": f"{self.name}.icns",
                "DEPLOY_BUNDLE_IDENTIFIER": identifier,
                "DEPLOY_BUNDLE_NAME": self.name,
                "DEPLOY_BUNDLE_COPYRIGHT": sp.COPYRIGHT.fetch_from(store),
                "DEPLOY_BUNDLE_SHORT_VERSION": sp.VERSION.fetch_from(store),
                "DEPLOY_BUNDLE_CATEGORY": sp.CATEGORY.fetch_from(store),
            },
        )
        plist.write_text(text, encoding="utf-8")
        return plist

    # ------------------------------------------------------------------
    # Launcher configuration
    # ------------------------------------------------------------------

    def write_cfg_file(self, store: ParamStore, cfg_file: Path) -> Path:
        """Write the launcher configuration read at application start."""
        cfg_file.parent.mkdir(parents=True, exist_ok=True)
        cfg_file.write_text(render_cfg(store, self.layout.runtime_location), encoding="utf-8")
        return cfg_file


def render_cfg(store: ParamStore, runtime_location: str) -> str:
    """Render the ``[Application]``/``[JVMOptions]``/``[ArgOptions]`` config."""
    from nativepack import __version__

    lines = [
        "[Application]",
        f"app.name={sp.APP_NAME.fetch_from(store)}",
        f"app.version={sp.VERSION.fetch_from(store)}",
        f"app.preferences.id={sp.PREFERENCES_ID.fetch_from(store)}",
        f"app.runtime={runtime_location}",
        f"app.identifier={sp.IDENTIFIER.fetch_from(store)}",
        "app.classpath=" + os.pathsep.join(
            entry for entry in _split_classpath(sp.CLASSPATH.fetch_from(store) or "")
        ),
        "app.application.instance="
        + ("single" if sp.SINGLETON.fetch_from(store) else "multiple"),
    ]

    module = sp.MODULE.fetch_from(store)
    if module is not None:
        lines.append(f"app.mainmodule={module}")
    else:
        main_jar = sp.MAIN_JAR.fetch_from(store)
        if main_jar is not None and main_jar.included_files:
            lines.append(f"app.mainjar={PurePosixPath(sorted(main_jar.included_files)[0]).name}")
        main_class = sp.MAIN_CLASS.fetch_from(store)
        if main_class is not None:
            lines.append("app.mainclass=" + main_class.replace(".", "/"))
    lines.append(f"packager.version={__version__}")

    lines += ["", "[JVMOptions]"]
    lines += list(sp.JVM_OPTIONS.fetch_from(store) or [])
    for key, value in (sp.JVM_PROPERTIES.fetch_from(store) or {}).items():
        lines.append(f"-D{key}={value}")

    lines += ["", "[ArgOptions]"]
    for arg in sp.ARGUMENTS.fetch_from(store) or []:
        if arg.endswith("=") and arg.count("=") == 1:
            lines.append(arg[:-1] + "\\=")
        else:
            lines.append(arg)
    return "\n".join(lines) + "\n"


def _split_classpath(classpath: str) -> list[str]:
    return [entry for entry in classpath.replace(";", " ").replace(":", " ").split() if entry]
