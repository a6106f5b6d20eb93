"""Linux installer bundlers: Debian ``.deb`` and RPM ``.rpm`` packages."""

from __future__ import annotations

import logging
import platform as host_platform
import re
from pathlib import Path

from nativepack.bundlers.base import (
    Bundler,
    WorkImage,
    check_license_files,
    check_no_newlines,
    find_license_file,
    license_resource_name,
)
from nativepack.core import standard_params as sp
from nativepack.core.errors import ConfigurationError, ToolExecutionError
from nativepack.core.fileutils import (
    copy_file,
    copy_recursive,
    delete_recursive,
    folder_size,
    make_executable,
)
from nativepack.core.params import ParamSpec, ParamStore
from nativepack.core.platform import Platform

logger = logging.getLogger(__name__)

BUNDLE_NAME_PATTERN = re.compile(r"^[a-z][a-z\d\+\-\.]+$")
DEFAULT_INSTALL_DIR = "/opt"

_DEB_ARCH = {"x86_64": "amd64", "amd64": "amd64", "aarch64": "arm64", "i686": "i386", "i386": "i386"}


def _default_bundle_name(store: ParamStore) -> str:
    name = (sp.APP_NAME.fetch_from(store) or "").lower()
    name = re.sub(r"[ _]", "-", name)
    return re.sub(r"[^a-z\d\+\-\.]", "", name)


# ------------------------------------------------------------------
# Linux parameters
# ------------------------------------------------------------------

BUNDLE_NAME: ParamSpec[str] = ParamSpec(
    "linux-bundle-name",
    str,
    default=_default_bundle_name,
    converter=lambda text, store: text.strip(),
    name="Bundle Name",
    description="Package name; lower case letters, digits, '+', '-' and '.'.",
)

MAINTAINER: ParamSpec[str] = ParamSpec(
    "linux-deb-maintainer",
    str,
    default=lambda store: f"{sp.VENDOR.fetch_from(store)} <unknown@unknown>",
    converter=lambda text, store: text,
    name="Maintainer",
    description="Maintainer field of the Debian control file.",
)

LICENSE_TYPE: ParamSpec[str] = ParamSpec(
    "linux-rpm-license-type",
    str,
    default=lambda store: "Unknown",
    converter=lambda text, store: text,
    name="License Type",
    description="License field of the RPM spec file.",
)

PACKAGE_DEPENDENCIES: ParamSpec[list] = ParamSpec(
    "linux-package-deps",
    list,
    default=lambda store: [],
    converter=lambda text, store: [dep.strip() for dep in text.split(",") if dep.strip()],
    name="Package Dependencies",
    description="Packages the installed application requires.",
)

LINUX_PARAMS: list[ParamSpec] = [
    BUNDLE_NAME,
    LICENSE_TYPE,
    PACKAGE_DEPENDENCIES,
]


def deb_architecture() -> str:
    machine = host_platform.machine().lower()
    return _DEB_ARCH.get(machine, machine)


def install_root(store: ParamStore) -> str:
    """Absolute installation directory without a trailing separator."""
    directory = sp.INSTALL_DIR.fetch_from(store) or DEFAULT_INSTALL_DIR
    return "/" + directory.strip("/")


class _LinuxBundler(Bundler):
    """Shared staging and validation of the Linux packages."""

    platform = Platform.LINUX
    # probe run during validation; (command, advice)
    required_tool: tuple[list[str], str] = ([], "")

    def params(self) -> list[ParamSpec]:
        return super().params() + LINUX_PARAMS

    def check(self, store: ParamStore) -> None:
        check_no_newlines(store, [sp.APP_NAME, sp.VERSION, sp.DESCRIPTION, sp.VENDOR])
        check_license_files(store)
        bundle_name = BUNDLE_NAME.fetch_from(store) or ""
        if not BUNDLE_NAME_PATTERN.match(bundle_name):
            raise ConfigurationError(
                f"Invalid value \"{bundle_name}\" for the package name.",
                f"Set the {BUNDLE_NAME.id} parameter to a valid Linux package "
                "name. Only lower case letters, digits, '+', '-' and '.' are "
                "allowed, and it must start with a letter.",
            )
        command, advice = self.required_tool
        try:
            self.runner.run(command, probe_only=True)
        except ToolExecutionError as exc:
            raise ConfigurationError(
                f"Can not find {command[0]}.", advice
            ) from exc

    def staging_dir(self, store: ParamStore, image: WorkImage) -> Path:
        return image.work_dir / f"{self.id}-staging"

    def stage_image(self, image: WorkImage, app_root: Path) -> Path:
        if app_root.exists():
            delete_recursive(app_root)
        copy_recursive(image.image_dir, app_root)
        return app_root

    def installed_launcher(self, store: ParamStore, image: WorkImage) -> str:
        fs_name = sp.APP_FS_NAME.fetch_from(store)
        return f"{install_root(store)}/{fs_name}/bin/{sp.APP_NAME.fetch_from(store)}"

    def write_desktop_file(self, store: ParamStore, image: WorkImage, app_root: Path) -> Path:
        fs_name = sp.APP_FS_NAME.fetch_from(store)
        icon_path = ""
        if sp.ICON.fetch_from(store) is not None:
            # the image keeps the icon in lib/ under the application name
            icon_path = f"{install_root(store)}/{fs_name}/lib/{sp.APP_NAME.fetch_from(store)}.png"
        return self.render_template(
            store,
            public_name=f"{fs_name}.desktop",
            category="Menu shortcut descriptor",
            default_name="template.desktop",
            mapping={
                "APPLICATION_NAME": sp.APP_NAME.fetch_from(store),
                "APPLICATION_DESCRIPTION": sp.DESCRIPTION.fetch_from(store),
                "APPLICATION_LAUNCHER": self.installed_launcher(store, image),
                "APPLICATION_ICON": icon_path,
                "DEPLOY_BUNDLE_CATEGORY": sp.CATEGORY.fetch_from(store),
            },
            dest=app_root / f"{fs_name}.desktop",
        )

    def desktop_commands(self, store: ParamStore) -> tuple[str, str]:
        """Shell lines registering and removing the menu entry."""
        fs_name = sp.APP_FS_NAME.fetch_from(store)
        desktop = f"{install_root(store)}/{fs_name}/{fs_name}.desktop"
        return (
            f"xdg-desktop-menu install {desktop} || true",
            f"xdg-desktop-menu uninstall {desktop} || true",
        )


# ------------------------------------------------------------------
# Debian
# ------------------------------------------------------------------


class DebBundler(_LinuxBundler):
    """Debian package built with ``dpkg-deb``."""

    required_tool = (
        ["dpkg-deb", "--version"],
        "Install the dpkg package.",
    )

    @property
    def id(self) -> str:
        return "deb"

    @property
    def name(self) -> str:
        return "DEB Installer"

    @property
    def description(self) -> str:
        return "Debian packages, via dpkg-deb."

    def params(self) -> list[ParamSpec]:
        return super().params() + [MAINTAINER]

    def check(self, store: ParamStore) -> None:
        version = sp.VERSION.fetch_from(store) or ""
        if not version[:1].isdigit():
            raise ConfigurationError(
                f"Version [{version}] is not valid for a Debian package.",
                "Debian package versions must start with a digit.",
            )
        super().check(store)

    def package_root(self, store: ParamStore, image: WorkImage) -> Path:
        return self.staging_dir(store, image) / BUNDLE_NAME.fetch_from(store)

    def transform(self, store: ParamStore, image: WorkImage) -> None:
        root = self.package_root(store, image)
        app_root = root / install_root(store).lstrip("/") / sp.APP_FS_NAME.fetch_from(store)
        self.stage_image(image, app_root)
        self.write_desktop_file(store, image, app_root)

        bundle_name = BUNDLE_NAME.fetch_from(store)
        license_file = find_license_file(store)
        if license_file is not None:
            copy_file(license_file, root / "usr" / "share" / "doc" / bundle_name / "copyright")

        deps = PACKAGE_DEPENDENCIES.fetch_from(store) or []
        install, uninstall = self.desktop_commands(store)
        debian = root / "DEBIAN"
        self.render_template(
            store,
            public_name=f"{sp.APP_FS_NAME.fetch_from(store)}.control",
            category="DEB control file",
            default_name="template.control",
            mapping={
                "APPLICATION_PACKAGE": bundle_name,
                "APPLICATION_VERSION": sp.VERSION.fetch_from(store),
                "APPLICATION_SECTION": "misc",
                "APPLICATION_MAINTAINER": MAINTAINER.fetch_from(store),
                "APPLICATION_ARCH": deb_architecture(),
                "APPLICATION_INSTALLED_SIZE": str(folder_size(app_root) // 1024),
                "APPLICATION_SUMMARY": sp.TITLE.fetch_from(store) or bundle_name,
                "APPLICATION_DESCRIPTION": sp.DESCRIPTION.fetch_from(store),
                "PACKAGE_DEPENDENCIES": f"Depends: {', '.join(deps)}" if deps else "",
            },
            dest=debian / "control",
        )
        for script, default_name, commands in (
            ("postinst", "template.postinst", install),
            ("prerm", "template.prerm", uninstall),
        ):
            make_executable(self.render_template(
                store,
                public_name=f"{sp.APP_FS_NAME.fetch_from(store)}.{script}",
                category=f"DEB {script} script",
                default_name=default_name,
                mapping={"DESKTOP_COMMANDS": commands},
                dest=debian / script,
            ))

    def package(self, store: ParamStore, image: WorkImage, output_dir: Path) -> Path:
        output_dir = Path(output_dir)
        root = self.package_root(store, image)
        logger.info("Generating DEB for installer to: %s", output_dir.absolute())
        self.runner.run(
            ["dpkg-deb", "--build", str(root), str(output_dir.absolute())],
            cwd=root.parent,
        )
        return self.newest_artifact(output_dir, ".deb")


# ------------------------------------------------------------------
# RPM
# ------------------------------------------------------------------


class RpmBundler(_LinuxBundler):
    """RPM package built with ``rpmbuild``."""

    required_tool = (
        ["rpmbuild", "--version"],
        "Install the rpm-build package.",
    )

    @property
    def id(self) -> str:
        return "rpm"

    @property
    def name(self) -> str:
        return "RPM Bundle"

    @property
    def description(self) -> str:
        return "Redhat Package Manager (RPM) bundler."

    def spec_file(self, store: ParamStore, image: WorkImage) -> Path:
        return self.staging_dir(store, image) / "SPECS" / f"{BUNDLE_NAME.fetch_from(store)}.spec"

    def transform(self, store: ParamStore, image: WorkImage) -> None:
        staging = self.staging_dir(store, image)
        fs_name = sp.APP_FS_NAME.fetch_from(store)
        app_root = self.stage_image(image, staging / "SOURCES" / fs_name)
        self.write_desktop_file(store, image, app_root)

        prefix = install_root(store)
        license_line = ""
        license_name = license_resource_name(store)
        if license_name is not None:
            # license files are app resources, so they land in lib/app
            license_line = f"%doc {prefix}/{fs_name}/lib/app/{license_name}"

        deps = PACKAGE_DEPENDENCIES.fetch_from(store) or []
        install, uninstall = self.desktop_commands(store)
        self.render_template(
            store,
            public_name=f"{fs_name}.spec",
            category="RPM spec file",
            default_name="template.spec",
            mapping={
                "APPLICATION_PACKAGE": BUNDLE_NAME.fetch_from(store),
                "APPLICATION_FS_NAME": fs_name,
                "APPLICATION_VERSION": sp.VERSION.fetch_from(store),
                "APPLICATION_VENDOR": sp.VENDOR.fetch_from(store),
                "APPLICATION_LICENSE_TYPE": LICENSE_TYPE.fetch_from(store),
                "APPLICATION_LICENSE_FILE": license_line,
                "APPLICATION_SUMMARY": sp.TITLE.fetch_from(store) or fs_name,
                "APPLICATION_DESCRIPTION": sp.DESCRIPTION.fetch_from(store),
                "INSTALLATION_DIRECTORY": prefix,
                "PACKAGE_DEPENDENCIES": f"Requires: {', '.join(deps)}" if deps else "",
                "DESKTOP_COMMANDS_INSTALL": install,
                "DESKTOP_COMMANDS_UNINSTALL": uninstall,
            },
            dest=self.spec_file(store, image),
        )

    def package(self, store: ParamStore, image: WorkImage, output_dir: Path) -> Path:
        output_dir = Path(output_dir)
        staging = self.staging_dir(store, image)
        logger.info("Generating RPM for installer to: %s", output_dir.absolute())
        self.runner.run(
            [
                "rpmbuild", "-bb", str(self.spec_file(store, image).absolute()),
                "--define", f"%_sourcedir {(staging / 'SOURCES').absolute()}",
                "--define", f"%_rpmdir {output_dir.absolute()}",
                "--define", f"%_topdir {staging.absolute()}",
                "--define", "%_rpmfilename %%{NAME}-%%{VERSION}-%%{RELEASE}.%%{ARCH}.rpm",
            ],
            cwd=staging,
        )
        return self.newest_artifact(output_dir, ".rpm")
