"""Catalog of the parameters shared by every bundler.

Platform specific parameters live next to their bundlers in
``nativepack.bundlers``.  Each entry here is a module-level
:class:`~nativepack.core.params.ParamSpec`; the ids are the keys accepted
on the command line through ``--param KEY=VALUE``.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
import zipfile
from datetime import datetime
from pathlib import Path

from nativepack.core.errors import ConfigurationError
from nativepack.core.params import ParamSpec, ParamStore
from nativepack.models.files import MainClassInfo, RelativeFileSet

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Converters
# ------------------------------------------------------------------


def parse_bool(text: str | None) -> bool:
    """Parse a boolean the lenient way command line flags are written."""
    return str(text).strip().lower() in ("true", "yes", "1", "on")


def parse_flag(text: str | None) -> bool:
    """Like :func:`parse_bool`, but a bare flag (``None``/``"null"``) is true."""
    if text is None or str(text).strip().lower() == "null":
        return True
    return parse_bool(text)


def split_string_with_escapes(text: str) -> list[str]:
    """Split on unquoted whitespace.

    Double quotes group words and are dropped; a backslash makes the next
    character literal.
    """
    tokens: list[str] = []
    current: list[str] = []
    quoted = escaped = pending = False
    for char in text:
        if escaped:
            current.append(char)
            escaped = False
        elif char == "\\":
            escaped = pending = True
        elif char == '"':
            quoted = not quoted
            pending = True
        elif not quoted and char.isspace():
            if pending:
                tokens.append("".join(current))
            current, pending = [], False
        else:
            current.append(char)
            pending = True
    if pending:
        tokens.append("".join(current))
    return tokens


def parse_properties(text: str) -> dict[str, str]:
    """Parse ``key=value`` (or ``key: value``) lines, skipping comments."""
    result: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line[0] in "#!":
            continue
        match = re.match(r"([^=:\s]+)\s*[=:\s]\s*(.*)$", line)
        if match:
            result[match.group(1)] = match.group(2)
        else:
            result[line] = ""
    return result


def _split_list(pattern: str):
    def convert(text: str, store: ParamStore) -> list[str]:
        return [part for part in re.split(pattern, text) if part]

    return convert


def _path(text: str, store: ParamStore) -> Path:
    return Path(text)


def _identity(text: str, store: ParamStore) -> str:
    return text


def app_resources_list_from_string(text: str, store: ParamStore) -> list[RelativeFileSet]:
    """Turn ``a.jar:lib/;more/*`` into one file set per entry.

    An entry ending in a separator or ``/*`` contributes every regular file
    below that directory; any other entry contributes the single file.
    """
    result: list[RelativeFileSet] = []
    for entry in re.split(r"[:;]", text):
        if not entry:
            continue
        path = Path(entry)
        if path.name == "*" or entry.endswith(("/", "\\")):
            root = path.parent if path.name == "*" else path
            result.append(RelativeFileSet.walk(root))
        else:
            result.append(RelativeFileSet.from_paths(path.parent, [path]))
    return result


def _strip_trailing_separator(text: str, store: ParamStore) -> str:
    if text.endswith((os.sep, "/")) and len(text) > 1:
        return text[:-1]
    return text


def _default_app_resources(store: ParamStore) -> RelativeFileSet | None:
    source = SOURCE_DIR.fetch_from(store)
    if source is None:
        return None
    return RelativeFileSet.walk(Path(source))


def _default_app_resources_list(store: ParamStore) -> list[RelativeFileSet]:
    resources = APP_RESOURCES.fetch_from(store)
    return [resources] if resources is not None else []


def _locate_main_jar(text: str, store: ParamStore) -> RelativeFileSet:
    roots = [rfs.base_directory for rfs in APP_RESOURCES_LIST.fetch_from(store) or []]
    for root in roots:
        candidate = root / text
        if candidate.exists():
            return RelativeFileSet.from_paths(root, [candidate])
    candidate = Path(text)
    if (candidate.is_absolute() or not roots) and candidate.exists():
        return RelativeFileSet.from_paths(candidate.parent, [candidate])
    raise ConfigurationError(
        f"The configured main jar does not exist {text} in the input directory",
        "The input directory must contain the main jar; use --input to "
        "point at it.",
    )


def _main_class_default(store: ParamStore) -> str | None:
    if RUNTIME_INSTALLER.fetch_from(store):
        return None
    extract_main_class_info(store)
    value = store.get(MAIN_CLASS.id)
    return value if isinstance(value, str) else None


def _main_jar_default(store: ParamStore) -> RelativeFileSet | None:
    extract_main_class_info(store)
    value = store.get(MAIN_JAR.id)
    return value if isinstance(value, RelativeFileSet) else None


def _classpath_default(store: ParamStore) -> str:
    extract_main_class_info(store)
    value = store.get(CLASSPATH.id)
    return value if isinstance(value, str) else ""


def _app_name_default(store: ParamStore) -> str | None:
    main_class = MAIN_CLASS.fetch_from(store)
    if main_class is None:
        return None
    return main_class.rsplit(".", 1)[-1]


_FS_UNSAFE = re.compile(r"\s|[\\/?:*<>|]")


def _identifier_default(store: ParamStore) -> str | None:
    main_class = MAIN_CLASS.fetch_from(store)
    if main_class is None:
        return None
    idx = main_class.rfind(".")
    return main_class[:idx] if idx >= 1 else main_class


def _working_dir(name: str):
    def default(store: ParamStore) -> Path:
        path = BUILD_ROOT.fetch_from(store) / name
        path.mkdir(parents=True, exist_ok=True)
        return path

    return default


# ------------------------------------------------------------------
# Application contents
# ------------------------------------------------------------------

APP_RESOURCES: ParamSpec[RelativeFileSet] = ParamSpec(
    "app-resources",
    RelativeFileSet,
    default=_default_app_resources,
    name="Resources",
    description="All of the files to place in the resources directory.",
)

APP_RESOURCES_LIST: ParamSpec[list] = ParamSpec(
    "app-resources-list",
    list,
    default=_default_app_resources_list,
    converter=app_resources_list_from_string,
    name="Resources List",
    description="A list of file sets to place in the resources directory.",
)

SOURCE_DIR: ParamSpec[str] = ParamSpec(
    "input",
    str,
    converter=_strip_trailing_separator,
    name="Input Directory",
    description="Directory containing the files to package.",
)

MAIN_JAR: ParamSpec[RelativeFileSet] = ParamSpec(
    "main-jar",
    RelativeFileSet,
    default=_main_jar_default,
    converter=_locate_main_jar,
    name="Main Jar",
    description="The main jar of the application, relative to the input.",
)

CLASSPATH: ParamSpec[str] = ParamSpec(
    "classpath",
    str,
    default=_classpath_default,
    converter=lambda text, store: text.replace(os.pathsep, " "),
    name="Main Jar Classpath",
    description="The classpath from the main jar manifest.",
)

MAIN_CLASS: ParamSpec[str] = ParamSpec(
    "main-class",
    str,
    default=_main_class_default,
    converter=_identity,
    name="Main Class",
    description="The main class of the application.",
)

MODULE: ParamSpec[str] = ParamSpec(
    "module",
    str,
    converter=_identity,
    name="Main Module",
    description="Main module and optional main class, as module[/class].",
)

ADD_MODULES: ParamSpec[list] = ParamSpec(
    "add-modules",
    list,
    default=lambda store: [],
    converter=lambda text, store: list(dict.fromkeys(p for p in text.split(",") if p)),
    name="Add Modules",
    description="Modules to add to the runtime image.",
)

LIMIT_MODULES: ParamSpec[list] = ParamSpec(
    "limit-modules",
    list,
    default=lambda store: [],
    converter=lambda text, store: list(dict.fromkeys(p for p in text.split(",") if p)),
    name="Limit Modules",
    description="Limit the universe of observable modules.",
)

PREDEFINED_APP_IMAGE: ParamSpec[Path] = ParamSpec(
    "app-image",
    Path,
    converter=_path,
    name="Predefined Application Image",
    description="An already built application image to package as is.",
)

PREDEFINED_RUNTIME_IMAGE: ParamSpec[Path] = ParamSpec(
    "runtime-image",
    Path,
    converter=_path,
    name="Predefined Runtime Image",
    description="A runtime image to copy into the application image.",
)

RUNTIME_INSTALLER: ParamSpec[bool] = ParamSpec(
    "runtime-installer",
    bool,
    default=lambda store: False,
    converter=lambda text, store: parse_bool(text),
    name="Runtime Installer",
    description="Package a bare runtime image instead of an application.",
)

# ------------------------------------------------------------------
# Application metadata
# ------------------------------------------------------------------

APP_NAME: ParamSpec[str] = ParamSpec(
    "name",
    str,
    default=_app_name_default,
    converter=_identity,
    name="Application Name",
    description="The name of the application.",
)

APP_FS_NAME: ParamSpec[str] = ParamSpec(
    "name.fs",
    str,
    default=lambda store: _FS_UNSAFE.sub("", APP_NAME.fetch_from(store) or ""),
    converter=_identity,
    name="File System Name",
    description="The application name with file system unsafe characters removed.",
)

ICON: ParamSpec[Path] = ParamSpec(
    "icon",
    Path,
    converter=_path,
    name="Icon",
    description="The main icon of the application bundle.",
)

VENDOR: ParamSpec[str] = ParamSpec(
    "vendor",
    str,
    default=lambda store: "Unknown",
    converter=_identity,
    name="Vendor",
    description="The vendor of the application.",
)

CATEGORY: ParamSpec[str] = ParamSpec(
    "category",
    str,
    default=lambda store: "Unknown",
    converter=_identity,
    name="Category",
    description="The category or group of the application.",
)

DESCRIPTION: ParamSpec[str] = ParamSpec(
    "description",
    str,
    default=lambda store: APP_NAME.fetch_from(store) if APP_NAME.id in store else "none",
    converter=_identity,
    name="Description",
    description="A longer description of the application.",
)

COPYRIGHT: ParamSpec[str] = ParamSpec(
    "copyright",
    str,
    default=lambda store: f"Copyright (C) {datetime.now().year}",
    converter=_identity,
    name="Copyright",
    description="The copyright for the application.",
)

TITLE: ParamSpec[str] = ParamSpec(
    "title",
    str,
    default=lambda store: APP_NAME.fetch_from(store),
    converter=_identity,
    name="Title",
    description="A title for the application.",
)

VERSION: ParamSpec[str] = ParamSpec(
    "version",
    str,
    default=lambda store: "1.0",
    converter=_identity,
    name="Version",
    description="The version of this application.",
)

IDENTIFIER: ParamSpec[str] = ParamSpec(
    "identifier",
    str,
    default=_identifier_default,
    converter=_identity,
    name="Identifier",
    description="A machine readable identifier, usually a reversed domain name.",
)

PREFERENCES_ID: ParamSpec[str] = ParamSpec(
    "preferences-id",
    str,
    default=lambda store: (IDENTIFIER.fetch_from(store) or "").replace(".", "/"),
    converter=_identity,
    name="Preferences ID",
    description="The preferences node used by the application.",
)

LICENSE_FILE: ParamSpec[list] = ParamSpec(
    "license-file",
    list,
    default=lambda store: [],
    converter=_split_list(r","),
    name="License",
    description="License files, relative to the application resources.",
)

INSTALLER_NAME: ParamSpec[str] = ParamSpec(
    "installer-name",
    str,
    default=lambda store: APP_NAME.fetch_from(store),
    converter=_identity,
    name="Installer Name",
    description="Base file name of the produced installer.",
)

INSTALL_DIR: ParamSpec[str] = ParamSpec(
    "install-dir",
    str,
    converter=_identity,
    name="Installation Directory",
    description="Where the installer places the application.",
)

# ------------------------------------------------------------------
# Launch configuration
# ------------------------------------------------------------------

ARGUMENTS: ParamSpec[list] = ParamSpec(
    "arguments",
    list,
    default=lambda store: [],
    converter=lambda text, store: split_string_with_escapes(text),
    name="Command Line Arguments",
    description="Default arguments passed to the main class.",
)

JVM_OPTIONS: ParamSpec[list] = ParamSpec(
    "jvm-args",
    list,
    default=lambda store: [],
    converter=lambda text, store: text.split("\n\n"),
    name="JVM Options",
    description="Options passed to the runtime when the application starts.",
)

JVM_PROPERTIES: ParamSpec[dict] = ParamSpec(
    "jvm-properties",
    dict,
    default=lambda store: {},
    converter=lambda text, store: parse_properties(text),
    name="JVM System Properties",
    description="System properties set when the application starts.",
)

USER_JVM_OPTIONS: ParamSpec[dict] = ParamSpec(
    "user-jvm-args",
    dict,
    default=lambda store: {},
    converter=lambda text, store: parse_properties(text),
    name="User JVM Options",
    description="Runtime options the user may override.",
)

STRIP_NATIVE_COMMANDS: ParamSpec[bool] = ParamSpec(
    "strip-native-commands",
    bool,
    default=lambda store: False,
    converter=lambda text, store: parse_bool(text),
    name="Strip Native Executables",
    description="Remove native commands from the runtime image.",
)

SINGLETON: ParamSpec[bool] = ParamSpec(
    "singleton",
    bool,
    default=lambda store: False,
    converter=lambda text, store: parse_bool(text),
    name="Singleton",
    description="Only allow one running instance of the application.",
)

ECHO_MODE: ParamSpec[bool] = ParamSpec(
    "echo-mode",
    bool,
    default=lambda store: False,
    converter=lambda text, store: parse_bool(text),
    name="Echo Mode",
    description="Echo the output of external tools.",
)

SECONDARY_LAUNCHERS: ParamSpec[list] = ParamSpec(
    "secondary-launchers",
    list,
    default=lambda store: [],
    name="Secondary Launchers",
    description="Parameter maps for additional launchers.",
)

FILE_ASSOCIATIONS: ParamSpec[list] = ParamSpec(
    "file-associations",
    list,
    default=lambda store: [],
    name="File Associations",
    description="Parameter maps describing file associations.",
)

FA_EXTENSIONS: ParamSpec[list] = ParamSpec(
    "fileAssociation.extension",
    list,
    converter=_split_list(r"[,\s]+"),
    name="File Association Extension",
    description="File extensions to associate with the application.",
)

FA_CONTENT_TYPE: ParamSpec[list] = ParamSpec(
    "fileAssociation.contentType",
    list,
    converter=_split_list(r"[,\s]+"),
    name="File Association Content Type",
    description="MIME types to associate with the application.",
)

FA_DESCRIPTION: ParamSpec[str] = ParamSpec(
    "fileAssociation.description",
    str,
    default=lambda store: f"{APP_NAME.fetch_from(store)} File",
    name="File Association Description",
    description="Description shown for associated files.",
)

FA_ICON: ParamSpec[Path] = ParamSpec(
    "fileAssociation.icon",
    Path,
    default=lambda store: ICON.fetch_from(store),
    converter=_path,
    name="File Association Icon",
    description="Icon shown for associated files.",
)

# ------------------------------------------------------------------
# Build environment
# ------------------------------------------------------------------

BUILD_ROOT: ParamSpec[Path] = ParamSpec(
    "build-root",
    Path,
    default=lambda store: Path(tempfile.mkdtemp(prefix="nativepack")),
    converter=_path,
    name="Build Root",
    description="Working directory for intermediate files.",
)

IMAGES_ROOT: ParamSpec[Path] = ParamSpec(
    "images-root",
    Path,
    default=_working_dir("images"),
    name="Images Root",
    description="Directory that receives assembled images.",
)

CONFIG_ROOT: ParamSpec[Path] = ParamSpec(
    "config-root",
    Path,
    default=_working_dir("config"),
    name="Config Root",
    description="Directory that receives rendered configuration files.",
)

VERBOSE: ParamSpec[bool] = ParamSpec(
    "verbose",
    bool,
    default=lambda store: False,
    converter=lambda text, store: parse_flag(text),
    name="Verbose",
    description="Log resource lookups and keep working directories.",
)

DROP_IN_RESOURCES_ROOT: ParamSpec[Path] = ParamSpec(
    "resource-dir",
    Path,
    default=lambda store: Path("."),
    converter=_path,
    name="Drop-in Resources Root",
    description="Directory searched first for overriding resources.",
)


def standard_params() -> list[ParamSpec]:
    """Every descriptor defined in this module, in declaration order."""
    return [value for value in globals().values() if isinstance(value, ParamSpec)]


# ------------------------------------------------------------------
# Main class discovery
# ------------------------------------------------------------------


def read_jar_manifest(jar: Path) -> dict[str, str] | None:
    """Return the main attributes of *jar*'s manifest, or ``None``."""
    with zipfile.ZipFile(jar) as archive:
        try:
            data = archive.read("META-INF/MANIFEST.MF")
        except KeyError:
            return None
    attributes: dict[str, str] = {}
    last_key: str | None = None
    for line in data.decode("utf-8", errors="replace").splitlines():
        if not line:
            break  # end of the main section
        if line.startswith(" ") and last_key is not None:
            attributes[last_key] += line[1:]
            continue
        key, sep, value = line.partition(":")
        if sep:
            last_key = key.strip()
            attributes[last_key] = value.strip()
    return attributes


def extract_main_class_info(store: ParamStore) -> MainClassInfo | None:
    """Sniff jar manifests and fill ``main-class``, ``main-jar``, ``classpath``.

    Only ids absent from *store* are written.  When ``main-jar`` is given
    only that jar is scanned; otherwise the ``classpath`` entries, otherwise
    every jar of ``app-resources-list`` in order.  The first jar carrying a
    manifest wins.
    """
    has_main_class = MAIN_CLASS.id in store
    has_main_jar = MAIN_JAR.id in store
    has_classpath = CLASSPATH.id in store
    if (has_main_class and has_main_jar and has_classpath) or MODULE.id in store:
        return None
    if RUNTIME_INSTALLER.id in store and RUNTIME_INSTALLER.fetch_from(store):
        return None

    candidates: list[tuple[Path, str]] = []
    if has_main_jar:
        main_jar = MAIN_JAR.fetch_from(store)
        if main_jar is not None:
            candidates += [(main_jar.base_directory, f) for f in sorted(main_jar.included_files)]
    elif has_classpath:
        resources = APP_RESOURCES.fetch_from(store)
        if resources is not None:
            for entry in (CLASSPATH.fetch_from(store) or "").split():
                candidates.append((resources.base_directory, entry))
    else:
        for rfs in APP_RESOURCES_LIST.fetch_from(store) or []:
            candidates += [(rfs.base_directory, f) for f in sorted(rfs.included_files)]

    for base, name in candidates:
        if not name.lower().endswith(".jar"):
            continue
        jar = base / name
        if not jar.exists():
            continue
        try:
            attributes = read_jar_manifest(jar)
        except (OSError, zipfile.BadZipFile) as exc:
            logger.warning("Could not read manifest of %s: %s", jar, exc)
            continue
        if attributes is None:
            continue

        info = MainClassInfo(
            main_class=None if has_main_class else attributes.get("Main-Class"),
            main_jar=None if has_main_jar else RelativeFileSet.from_paths(base, [jar]),
            classpath=None if has_classpath else attributes.get("Class-Path", ""),
        )
        if info.main_class is not None:
            store[MAIN_CLASS.id] = info.main_class
        if info.main_jar is not None:
            store[MAIN_JAR.id] = info.main_jar
        if info.classpath is not None:
            store[CLASSPATH.id] = info.classpath
        logger.debug("Main class info from %s: %s", jar, info)
        return info
    return None


def validate_main_class_info(store: ParamStore) -> None:
    """Raise ``ConfigurationError`` when no main class can be determined."""
    has_main_jar = MAIN_JAR.id in store
    has_classpath = CLASSPATH.id in store
    if (MAIN_CLASS.id in store and has_main_jar and has_classpath) or any(
        spec.id in store for spec in (MODULE, PREDEFINED_APP_IMAGE)
    ):
        return
    if RUNTIME_INSTALLER.id in store and RUNTIME_INSTALLER.fetch_from(store):
        return

    extract_main_class_info(store)

    if MAIN_CLASS.id not in store:
        if has_main_jar:
            main_jar = MAIN_JAR.fetch_from(store)
            jar_names = ", ".join(sorted(main_jar.included_files)) if main_jar else "?"
            raise ConfigurationError(
                f"A main class was not specified nor was one found in the jar {jar_names}",
                f"Specify a main class or ensure that the jar {jar_names} "
                "specifies one in the manifest.",
            )
        if has_classpath:
            raise ConfigurationError(
                "A main class was not specified nor was one found in the "
                "supplied classpath",
                "Specify a main class or ensure that the classpath has a jar "
                "containing one in the manifest.",
            )
        raise ConfigurationError(
            "An application class was not specified nor was one found in "
            "the supplied application resources",
            "Specify an application class or ensure that the application "
            "resources contain a jar with one in the manifest.",
        )


# Keys a secondary launcher properties file may set.
SECONDARY_LAUNCHER_KEYS = (
    "main-class", "module", "name", "version", "icon", "arguments",
    "jvm-args", "user-jvm-args", "singleton", "win-menu", "win-shortcut",
)


def load_secondary_launcher(path: Path) -> dict[str, str]:
    """Read a secondary launcher definition from a properties file.

    Values are kept as text; the store converts them on first fetch.  A
    ``module`` together with a ``main-class`` becomes ``module/main-class``.
    """
    props = parse_properties(Path(path).read_text(encoding="utf-8"))
    launcher = {key: props[key] for key in SECONDARY_LAUNCHER_KEYS if props.get(key)}
    if "module" in launcher and "main-class" in launcher:
        launcher["module"] = f"{launcher['module']}/{launcher.pop('main-class')}"
    launcher.setdefault("name", Path(path).stem)
    return launcher
