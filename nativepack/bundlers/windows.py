"""Windows installer bundlers: Inno Setup ``.exe`` and WiX ``.msi``."""

from __future__ import annotations

import hashlib
import logging
import os
import re
import shutil
import uuid
from pathlib import Path
from uuid import UUID

from nativepack.bundlers.base import (
    Bundler,
    WorkImage,
    check_file_associations,
    check_license_files,
    check_no_newlines,
    find_license_file,
)
from nativepack.core import standard_params as sp
from nativepack.core.errors import ConfigurationError, ToolExecutionError
from nativepack.core.fileutils import copy_file, ensure_rtf
from nativepack.core.params import ParamSpec, ParamStore
from nativepack.core.platform import Platform, is_64bit
from nativepack.models.resources import ResourceRequest

logger = logging.getLogger(__name__)


def _parse_shortcut(text: str | None, store: ParamStore) -> bool:
    # a bare --win-shortcut flag does not enable the shortcut
    if text is None or str(text).strip().lower() == "null":
        return False
    return sp.parse_bool(text)


def _find_on_path(executable: str, extra_dirs: tuple[str, ...] = ()):
    def default(store: ParamStore) -> str | None:
        found = shutil.which(executable)
        if found:
            return found
        for directory in extra_dirs:
            candidate = Path(directory) / executable
            if candidate.is_file():
                return str(candidate)
        return None

    return default


# ------------------------------------------------------------------
# Windows parameters
# ------------------------------------------------------------------

MENU_HINT: ParamSpec[bool] = ParamSpec(
    "win-menu",
    bool,
    default=lambda store: False,
    converter=lambda text, store: sp.parse_flag(text),
    name="Menu Hint",
    description="Add the application to the system menu.",
)

SHORTCUT_HINT: ParamSpec[bool] = ParamSpec(
    "win-shortcut",
    bool,
    default=lambda store: False,
    converter=_parse_shortcut,
    name="Shortcut Hint",
    description="Create a desktop shortcut for the application.",
)

MENU_GROUP: ParamSpec[str] = ParamSpec(
    "win-menu-group",
    str,
    default=lambda store: "Unknown",
    converter=lambda text, store: text,
    name="Menu Group",
    description="The start menu group the application is placed in.",
)

PER_USER_INSTALL: ParamSpec[bool] = ParamSpec(
    "win-per-user-install",
    bool,
    default=lambda store: False,
    converter=lambda text, store: sp.parse_flag(text),
    name="Per-user Install",
    description="Install for the current user instead of system wide.",
)

INSTALLDIR_CHOOSER: ParamSpec[bool] = ParamSpec(
    "win-dir-chooser",
    bool,
    default=lambda store: False,
    converter=lambda text, store: sp.parse_flag(text),
    name="Installation Directory Chooser",
    description="Let the user choose the installation directory.",
)

UPGRADE_UUID: ParamSpec[UUID] = ParamSpec(
    "win-upgrade-uuid",
    UUID,
    default=lambda store: uuid.uuid4(),
    converter=lambda text, store: UUID(text),
    name="Upgrade UUID",
    description="Identifier shared by successive versions of the installer.",
)

REGISTRY_NAME: ParamSpec[str] = ParamSpec(
    "win.registryName",
    str,
    default=lambda store: re.sub(r"[^\w.\-]", "", sp.APP_NAME.fetch_from(store) or ""),
    converter=lambda text, store: text,
    name="Registry Name",
    description="Name used for registry keys.",
)

INSTALLER_FILE_NAME: ParamSpec[str] = ParamSpec(
    "win.installerName",
    str,
    default=lambda store: f"{sp.INSTALLER_NAME.fetch_from(store)}-{sp.VERSION.fetch_from(store)}",
    converter=lambda text, store: text,
    name="Installer File Name",
    description="File name of the installer, without extension.",
)

ISCC_EXECUTABLE: ParamSpec[str] = ParamSpec(
    "win.exe.iscc.exe",
    str,
    default=_find_on_path(
        "iscc.exe",
        ("C:\\Program Files (x86)\\Inno Setup 5", "C:\\Program Files\\Inno Setup 5"),
    ),
    name="Inno Setup Compiler",
    description="Path to the Inno Setup compiler.",
)

CANDLE_EXECUTABLE: ParamSpec[str] = ParamSpec(
    "win.msi.candle.exe",
    str,
    default=_find_on_path("candle.exe", tuple(
        str(Path(os.environ.get(var, "")) / "bin") for var in ("WIX", "WIX_HOME") if os.environ.get(var)
    )),
    name="WiX Compiler",
    description="Path to the WiX candle compiler.",
)

LIGHT_EXECUTABLE: ParamSpec[str] = ParamSpec(
    "win.msi.light.exe",
    str,
    default=_find_on_path("light.exe", tuple(
        str(Path(os.environ.get(var, "")) / "bin") for var in ("WIX", "WIX_HOME") if os.environ.get(var)
    )),
    name="WiX Linker",
    description="Path to the WiX light linker.",
)

WINDOWS_PARAMS: list[ParamSpec] = [
    MENU_HINT,
    SHORTCUT_HINT,
    MENU_GROUP,
    PER_USER_INSTALL,
    INSTALLDIR_CHOOSER,
    UPGRADE_UUID,
]

# Values that end up on a single line of an installer script.
SINGLE_LINE_PARAMS: list[ParamSpec] = [
    sp.APP_NAME,
    sp.COPYRIGHT,
    sp.DESCRIPTION,
    MENU_GROUP,
    sp.TITLE,
    sp.VENDOR,
    sp.VERSION,
]

MAX_COPYRIGHT_LENGTH = 100
MAX_APP_IDENTIFIER_LENGTH = 126
MIN_INNO_SETUP_VERSION = 5.0
MIN_WIX_VERSION = 3.0


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def innosetup_escape(value: str) -> str:
    """Quote *value* when it holds a quote or surrounding whitespace."""
    if '"' in value or value.strip() != value:
        return '"' + value.replace('"', '""') + '"'
    return value


def remove_quotes(value: str) -> str:
    if len(value) > 2 and value.startswith('"') and value.endswith('"'):
        value = value[1:-1]
    return value.replace('"', "-")


def app_identifier(store: ParamStore) -> str:
    """Installer product id, truncated to what Inno Setup accepts."""
    identifier = str(UPGRADE_UUID.fetch_from(store))
    if len(identifier) > MAX_APP_IDENTIFIER_LENGTH:
        logger.error("App identifier is longer than %d characters and was truncated",
                     MAX_APP_IDENTIFIER_LENGTH)
        identifier = identifier[:MAX_APP_IDENTIFIER_LENGTH]
    return identifier


def force_menu_shortcut(store: ParamStore) -> None:
    """With neither shortcut requested the user could not find the app."""
    if not MENU_HINT.fetch_from(store) and not SHORTCUT_HINT.fetch_from(store):
        logger.info("At least one type of shortcut is required; enabling the menu shortcut")
        store[MENU_HINT.id] = True


def registry_entries(store: ParamStore, system_wide: bool) -> str:
    """Inno Setup ``[Registry]`` lines for the configured file associations."""
    root = "Root: HKCR; Subkey: \"" if system_wide else "Root: HKCU; Subkey: \"Software\\Classes\\"
    reg_name = REGISTRY_NAME.fetch_from(store)
    app_name = sp.APP_NAME.fetch_from(store)
    lines: list[str] = []
    for index, association in enumerate(sp.FILE_ASSOCIATIONS.fetch_from(store) or []):
        fa_store = store.overlay(association)
        description = sp.FA_DESCRIPTION.fetch_from(fa_store)
        icon = sp.FA_ICON.fetch_from(fa_store)
        extensions = sp.FA_EXTENSIONS.fetch_from(fa_store)
        entry = f"{reg_name}File" + (f".{index}" if index > 0 else "")

        if extensions is None:
            logger.debug("Creating association with null extension")
        else:
            for ext in extensions:
                lines.append(
                    f'{root}.{ext}"; ValueType: string; ValueName: ""; '
                    f'ValueData: "{entry}"; Flags: uninsdeletevalue'
                )
        if extensions:
            for mime in sp.FA_CONTENT_TYPE.fetch_from(fa_store) or []:
                lines.append(
                    f'{root}Mime\\Database\\Content Type\\{mime}"; ValueType: string; '
                    f'ValueName: "Extension"; ValueData: ".{extensions[0]}"; '
                    "Flags: uninsdeletevalue"
                )
        lines.append(
            f'{root}{entry}"; ValueType: string; ValueName: ""; '
            f'ValueData: "{remove_quotes(description)}"; Flags: uninsdeletekey'
        )
        if icon is not None and icon.exists():
            lines.append(
                f'{root}{entry}\\DefaultIcon"; ValueType: string; ValueName: ""; '
                f'ValueData: "{{app}}\\{icon.name}"'
            )
        lines.append(
            f'{root}{entry}\\shell\\open\\command"; ValueType: string; ValueName: ""; '
            f'ValueData: """{{app}}\\{app_name}"" ""%1"""'
        )
    if not lines:
        return ""
    return "ChangesAssociations=yes\r\n\r\n[Registry]\r\n" + "".join(
        line + "\r\n" for line in lines
    )


def secondary_launcher_lines(store: ParamStore) -> str:
    out: list[str] = []
    for launcher in sp.SECONDARY_LAUNCHERS.fetch_from(store) or []:
        launcher_store = ParamStore(launcher)
        name = sp.APP_NAME.fetch_from(launcher_store)
        if MENU_HINT.fetch_from(launcher_store):
            out.append(
                f'Name: "{{group}}\\{name}"; Filename: "{{app}}\\{name}.exe"; '
                f'IconFilename: "{{app}}\\{name}.ico"\r\n'
            )
        if SHORTCUT_HINT.fetch_from(launcher_store):
            out.append(
                f'Name: "{{commondesktop}}\\{name}"; Filename: "{{app}}\\{name}.exe"; '
                f'IconFilename: "{{app}}\\{name}.ico"\r\n'
            )
    return "".join(out)


def _single_line(store: ParamStore, spec: ParamSpec) -> str:
    value = spec.fetch_from(store) or ""
    if "\r" in value or "\n" in value:
        raise ConfigurationError(
            f"Configuration parameter {spec.id} cannot contain multiple lines of text",
            f"Change the value of '{spec.id}' so that it fits on one line.",
        )
    return innosetup_escape(value)


class _WindowsBundler(Bundler):
    """Shared validation and image preparation of the Windows installers."""

    platform = Platform.WINDOWS

    def params(self) -> list[ParamSpec]:
        return super().params() + WINDOWS_PARAMS

    def check(self, store: ParamStore) -> None:
        check_no_newlines(store, SINGLE_LINE_PARAMS)
        check_file_associations(store)
        check_license_files(store)

    def adopt_predefined_image(self, store: ParamStore, predefined: Path) -> WorkImage:
        return self.copy_predefined_image(store, predefined)

    def copy_license(self, store: ParamStore, image: WorkImage) -> Path | None:
        """Copy the first license next to the image, converted to RTF."""
        license_file = find_license_file(store)
        if license_file is None:
            return None
        dest = image.image_dir.parent / license_file.name
        copy_file(license_file, dest)
        ensure_rtf(dest)
        return dest

    def copy_association_icons(self, store: ParamStore, image: WorkImage) -> None:
        for association in sp.FILE_ASSOCIATIONS.fetch_from(store) or []:
            icon = sp.FA_ICON.fetch_from(store.overlay(association))
            if icon is not None and icon.exists():
                copy_file(icon, image.image_dir / icon.name)

    def tool_version(self, executable: str | None, pattern: str) -> float:
        """Probe *executable* with ``/?`` and parse its version, 0 if unknown."""
        if not executable:
            return 0.0
        try:
            result = self.runner.run([executable, "/?"], probe_only=True)
        except ToolExecutionError as exc:
            logger.debug("Version probe of %s failed: %s", executable, exc)
            return 0.0
        match = re.search(pattern, result.output)
        version = float(match.group(1)) if match else 0.0
        logger.debug("Detected [%s] version [%s]", executable, version)
        return version


# ------------------------------------------------------------------
# Inno Setup
# ------------------------------------------------------------------


class ExeBundler(_WindowsBundler):
    """Windows ``.exe`` installer built with Inno Setup."""

    @property
    def id(self) -> str:
        return "exe"

    @property
    def name(self) -> str:
        return "EXE Installer"

    @property
    def description(self) -> str:
        return "Microsoft Windows EXE Installer, via Inno Setup."

    def params(self) -> list[ParamSpec]:
        return super().params() + [ISCC_EXECUTABLE]

    def check(self, store: ParamStore) -> None:
        super().check(store)
        if len(sp.COPYRIGHT.fetch_from(store) or "") > MAX_COPYRIGHT_LENGTH:
            raise ConfigurationError(
                "The copyright string is too long for InnoSetup.",
                f"Provide a copyright string shorter than {MAX_COPYRIGHT_LENGTH} "
                "characters.",
            )
        version = self.tool_version(
            ISCC_EXECUTABLE.fetch_from(store), r"Inno Setup (\d+.?\d*)"
        )
        if version < MIN_INNO_SETUP_VERSION:
            logger.error("Detected Inno Setup version %s; version %s or newer is required",
                         version, MIN_INNO_SETUP_VERSION)
            raise ConfigurationError(
                "Can not find Inno Setup Compiler (iscc.exe).",
                "Download Inno Setup 5 or later from http://www.jrsoftware.org "
                "and add it to the PATH.",
            )

    def project_file(self, store: ParamStore, image: WorkImage) -> Path:
        return image.image_dir.parent / f"{sp.APP_NAME.fetch_from(store)}.iss"

    def post_image_script(self, store: ParamStore, image: WorkImage) -> Path:
        return image.image_dir.parent / f"{sp.APP_NAME.fetch_from(store)}-post-image.wsf"

    def transform(self, store: ParamStore, image: WorkImage) -> None:
        force_menu_shortcut(store)
        self.copy_license(store, image)
        self.copy_association_icons(store, image)
        self.write_project_file(store, image)

        script = self.resolver(store).fetch_resource(
            ResourceRequest(
                public_name=self.post_image_script(store, image).name,
                category="script to run after application image is populated",
                drop_in_root=sp.DROP_IN_RESOURCES_ROOT.fetch_from(store),
                required=False,
            ),
            self.post_image_script(store, image),
        )
        if script is not None:
            logger.info("Running WSH script on application image [%s]", script)
            self.runner.run(["wscript", script.name], cwd=script.parent)

    def project_mapping(self, store: ParamStore) -> dict[str, str]:
        system_wide = not PER_USER_INSTALL.fetch_from(store)
        licenses = sp.LICENSE_FILE.fetch_from(store) or []
        app_name = sp.APP_NAME.fetch_from(store)
        return {
            "PRODUCT_APP_IDENTIFIER": innosetup_escape(app_identifier(store)),
            "INSTALLER_NAME": _single_line(store, sp.APP_NAME),
            "APPLICATION_VENDOR": _single_line(store, sp.VENDOR),
            "APPLICATION_VERSION": _single_line(store, sp.VERSION),
            "INSTALLER_FILE_NAME": _single_line(store, INSTALLER_FILE_NAME),
            "LAUNCHER_NAME": innosetup_escape(app_name),
            "APPLICATION_LAUNCHER_FILENAME": innosetup_escape(f"{app_name}.exe"),
            "APPLICATION_DESKTOP_SHORTCUT": "returnTrue" if SHORTCUT_HINT.fetch_from(store) else "returnFalse",
            "APPLICATION_MENU_SHORTCUT": "returnTrue" if MENU_HINT.fetch_from(store) else "returnFalse",
            "APPLICATION_GROUP": _single_line(store, MENU_GROUP),
            "APPLICATION_COMMENTS": _single_line(store, sp.TITLE),
            "APPLICATION_COPYRIGHT": _single_line(store, sp.COPYRIGHT),
            "APPLICATION_LICENSE_FILE": innosetup_escape(Path(licenses[0]).name if licenses else ""),
            "DISABLE_DIR_PAGE": "No" if INSTALLDIR_CHOOSER.fetch_from(store) else "Yes",
            "APPLICATION_INSTALL_ROOT": "{pf}" if system_wide else "{localappdata}",
            "APPLICATION_INSTALL_PRIVILEGE": "admin" if system_wide else "lowest",
            "ARCHITECTURE_BIT_MODE": "x64" if is_64bit() else "",
            "RUN_FILENAME": _single_line(store, sp.APP_NAME),
            "APPLICATION_DESCRIPTION": _single_line(store, sp.DESCRIPTION),
            "SECONDARY_LAUNCHERS": secondary_launcher_lines(store),
            "FILE_ASSOCIATIONS": registry_entries(store, system_wide),
        }

    def write_project_file(self, store: ParamStore, image: WorkImage) -> Path:
        project = self.project_file(store, image)
        return self.render_template(
            store,
            public_name=project.name,
            category="Inno Setup project file",
            default_name="template.iss",
            mapping=self.project_mapping(store),
            dest=project,
        )

    def package(self, store: ParamStore, image: WorkImage, output_dir: Path) -> Path:
        output_dir = Path(output_dir)
        logger.info("Generating EXE for installer to: %s", output_dir.absolute())
        iscc = ISCC_EXECUTABLE.fetch_from(store)
        if not iscc:
            raise ConfigurationError(
                "Can not find Inno Setup Compiler (iscc.exe).",
                "Download Inno Setup 5 or later and add it to the PATH.",
            )
        project = self.project_file(store, image)
        self.runner.run(
            [iscc, "/q", f"/o{output_dir.absolute()}", str(project.absolute())],
            cwd=project.parent,
        )
        return self.newest_artifact(output_dir, ".exe")


# ------------------------------------------------------------------
# WiX
# ------------------------------------------------------------------


def _wix_id(prefix: str, rel: str) -> str:
    digest = hashlib.sha1(rel.encode("utf-8")).hexdigest()[:8]
    return f"{prefix}{re.sub(r'[^A-Za-z0-9_.]', '_', rel)[:40]}_{digest}"


def wix_components(image_dir: Path) -> tuple[str, str]:
    """Directory tree of ``<Component>`` entries and the matching refs."""
    refs: list[str] = []

    def walk(directory: Path, depth: int) -> list[str]:
        indent = "  " * depth
        out: list[str] = []
        for path in sorted(directory.iterdir()):
            rel = path.relative_to(image_dir).as_posix()
            if path.is_dir():
                out.append(f'{indent}<Directory Id="{_wix_id("d_", rel)}" Name="{path.name}">\n')
                out += walk(path, depth + 1)
                out.append(f"{indent}</Directory>\n")
            elif path.is_file():
                component = _wix_id("c_", rel)
                refs.append(f'      <ComponentRef Id="{component}"/>\n')
                out.append(
                    f'{indent}<Component Id="{component}" Guid="*">\n'
                    f'{indent}  <File Id="{_wix_id("f_", rel)}" Source="{path}" KeyPath="yes"/>\n'
                    f"{indent}</Component>\n"
                )
        return out

    return "".join(walk(image_dir, 5)), "".join(refs)


class MsiBundler(_WindowsBundler):
    """Windows ``.msi`` installer built with the WiX toolset."""

    @property
    def id(self) -> str:
        return "msi"

    @property
    def name(self) -> str:
        return "MSI Installer"

    @property
    def description(self) -> str:
        return "Microsoft Windows MSI Installer, via WiX."

    def params(self) -> list[ParamSpec]:
        return super().params() + [CANDLE_EXECUTABLE, LIGHT_EXECUTABLE]

    def check(self, store: ParamStore) -> None:
        super().check(store)
        version = sp.VERSION.fetch_from(store) or ""
        if not re.fullmatch(r"\d+(\.\d+){0,2}", version):
            raise ConfigurationError(
                f"Version string is not compatible with MSI rules [{version}].",
                "Use a version of the form major.minor.build with numeric parts.",
            )
        for spec in (CANDLE_EXECUTABLE, LIGHT_EXECUTABLE):
            found = self.tool_version(spec.fetch_from(store), r"version (\d+\.\d+)")
            if found < MIN_WIX_VERSION:
                raise ConfigurationError(
                    "Can not find WiX tools (light.exe, candle.exe).",
                    "Download WiX 3.0 or later from http://wixtoolset.org and "
                    "add it to the PATH.",
                )

    def project_file(self, store: ParamStore, image: WorkImage) -> Path:
        return image.image_dir.parent / f"{sp.APP_NAME.fetch_from(store)}.wxs"

    def transform(self, store: ParamStore, image: WorkImage) -> None:
        force_menu_shortcut(store)
        license_file = self.copy_license(store, image)
        self.copy_association_icons(store, image)
        system_wide = not PER_USER_INSTALL.fetch_from(store)
        app_name = sp.APP_NAME.fetch_from(store)
        files, refs = wix_components(image.image_dir)
        self.render_template(
            store,
            public_name=self.project_file(store, image).name,
            category="WiX project file",
            default_name="template.wxs",
            mapping={
                "PRODUCT_GUID": str(uuid.uuid4()),
                "PRODUCT_UPGRADE_CODE": str(UPGRADE_UUID.fetch_from(store)),
                "APPLICATION_NAME": app_name,
                "APPLICATION_VENDOR": sp.VENDOR.fetch_from(store),
                "APPLICATION_VERSION": sp.VERSION.fetch_from(store),
                "APPLICATION_DESCRIPTION": sp.DESCRIPTION.fetch_from(store),
                "APPLICATION_GROUP": MENU_GROUP.fetch_from(store),
                "INSTALL_SCOPE": "perMachine" if system_wide else "perUser",
                "PLATFORM": "x64" if is_64bit() else "x86",
                "PROGRAM_FILES": "ProgramFiles64Folder" if is_64bit() else "ProgramFilesFolder",
                "LICENSE_FILE": str(license_file) if license_file else "",
                "MENU_SHORTCUT": "yes" if MENU_HINT.fetch_from(store) else "no",
                "DESKTOP_SHORTCUT": "yes" if SHORTCUT_HINT.fetch_from(store) else "no",
                "LAUNCHER_FILE": f"{app_name}.exe",
                # inserted last so paths in the file list are never rewritten
                "APPLICATION_FILES": files,
                "APPLICATION_COMPONENT_REFS": refs,
            },
            dest=self.project_file(store, image),
        )

    def package(self, store: ParamStore, image: WorkImage, output_dir: Path) -> Path:
        output_dir = Path(output_dir)
        project = self.project_file(store, image)
        wixobj = project.with_suffix(".wixobj")
        self.runner.run(
            [CANDLE_EXECUTABLE.fetch_from(store) or "candle.exe", "-nologo",
             str(project.absolute()), "-ext", "WixUtilExtension",
             "-out", str(wixobj.absolute())],
            cwd=project.parent,
        )
        msi = output_dir / f"{INSTALLER_FILE_NAME.fetch_from(store)}.msi"
        self.runner.run(
            [LIGHT_EXECUTABLE.fetch_from(store) or "light.exe", "-nologo", "-spdb",
             "-ext", "WixUIExtension", "-ext", "WixUtilExtension",
             "-out", str(msi.absolute()), str(wixobj.absolute())],
            cwd=project.parent,
        )
        return self.newest_artifact(output_dir, ".msi")
