"""macOS installer bundlers: ``.pkg`` and Mac App Store packages."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path

from nativepack.bundlers.base import Bundler, WorkImage, check_license_files, check_no_newlines
from nativepack.core import standard_params as sp
from nativepack.core.errors import ConfigurationError, ToolExecutionError
from nativepack.core.fileutils import copy_file
from nativepack.core.params import ParamSpec, ParamStore
from nativepack.core.platform import Platform
from nativepack.core.process import ToolRunner
from nativepack.models.resources import ResourceRequest

logger = logging.getLogger(__name__)

DEFAULT_ENTITLEMENTS = "MacAppStore.entitlements"
DEFAULT_INHERIT_ENTITLEMENTS = "MacAppStore_Inherit.entitlements"

_ALIAS = re.compile(r'"alis"<blob>="([^"]+)"')


def find_signing_key(
    runner: ToolRunner, name: str, keychain: str | None = None
) -> str | None:
    """Look up a signing certificate whose common name starts with *name*."""
    args = ["security", "find-certificate", "-c", name, "-a"]
    if keychain:
        args.append(keychain)
    try:
        exit_code, lines = runner.process_output(args)
    except ToolExecutionError as exc:
        logger.debug("Certificate lookup unavailable: %s", exc)
        return None
    if exit_code != 0:
        return None
    matches = [m.group(1) for line in lines for m in [_ALIAS.search(line)] if m]
    if len(matches) > 1:
        logger.warning("Multiple certificates match %r, using %s", name, matches[0])
    return matches[0] if matches else None


# ------------------------------------------------------------------
# macOS parameters
# ------------------------------------------------------------------

SIGN_BUNDLE: ParamSpec[bool] = ParamSpec(
    "mac-sign",
    bool,
    converter=lambda text, store: sp.parse_flag(text),
    name="Sign Bundle",
    description="Request that the bundle be signed.",
)

SIGNING_KEY_USER: ParamSpec[str] = ParamSpec(
    "mac-signing-key-user-name",
    str,
    converter=lambda text, store: text,
    name="Signing Key User Name",
    description="User portion of the certificate common names to sign with.",
)

SIGNING_KEYCHAIN: ParamSpec[str] = ParamSpec(
    "mac-signing-keychain",
    str,
    converter=lambda text, store: text,
    name="Signing Keychain",
    description="Keychain searched for signing identities.",
)

MAC_BUNDLE_IDENTIFIER: ParamSpec[str] = ParamSpec(
    "mac-bundle-identifier",
    str,
    default=lambda store: sp.IDENTIFIER.fetch_from(store),
    converter=lambda text, store: text,
    name="Bundle Identifier",
    description="CFBundleIdentifier of the application.",
)

BUNDLE_ID_SIGNING_PREFIX: ParamSpec[str] = ParamSpec(
    "mac-bundle-signing-prefix",
    str,
    default=lambda store: (MAC_BUNDLE_IDENTIFIER.fetch_from(store) or "") + ".",
    converter=lambda text, store: text,
    name="Bundle Signing Prefix",
    description="Prefix applied to the identifiers of signed components.",
)

DEVELOPER_ID_APP_SIGNING_KEY: ParamSpec[str] = ParamSpec(
    "mac.signing-key-developer-id-app",
    str,
    converter=lambda text, store: text,
    name="Developer ID Application Key",
    description="Identity used to sign the application outside the App Store.",
)

DEVELOPER_ID_INSTALLER_SIGNING_KEY: ParamSpec[str] = ParamSpec(
    "mac.signing-key-developer-id-installer",
    str,
    converter=lambda text, store: text,
    name="Developer ID Installer Key",
    description="Identity used to sign the installer package.",
)

MAC_APP_STORE_APP_SIGNING_KEY: ParamSpec[str] = ParamSpec(
    "mac.signing-key-app",
    str,
    converter=lambda text, store: text,
    name="App Store Application Key",
    description="Identity used to sign the application for the App Store.",
)

MAC_APP_STORE_PKG_SIGNING_KEY: ParamSpec[str] = ParamSpec(
    "mac.signing-key-pkg",
    str,
    converter=lambda text, store: text,
    name="App Store Installer Key",
    description="Identity used to sign the App Store package.",
)

MAC_APP_STORE_ENTITLEMENTS: ParamSpec[Path] = ParamSpec(
    "mac-app-store-entitlements",
    Path,
    converter=lambda text, store: Path(text),
    name="App Store Entitlements",
    description="Entitlements file used instead of the bundled default.",
)

INSTALLER_SUFFIX: ParamSpec[str] = ParamSpec(
    "mac.app-store.installerName.suffix",
    str,
    default=lambda store: "-MacAppStore",
    converter=lambda text, store: text,
    name="Installer Name Suffix",
    description="Appended to the installer name of App Store packages.",
)

# Certificate common name prefix of each signing key id.
SIGNING_KEY_PREFIXES: dict[str, str] = {
    DEVELOPER_ID_APP_SIGNING_KEY.id: "Developer ID Application: ",
    DEVELOPER_ID_INSTALLER_SIGNING_KEY.id: "Developer ID Installer: ",
    MAC_APP_STORE_APP_SIGNING_KEY.id: "3rd Party Mac Developer Application: ",
    MAC_APP_STORE_PKG_SIGNING_KEY.id: "3rd Party Mac Developer Installer: ",
}

MAC_PARAMS: list[ParamSpec] = [
    SIGN_BUNDLE,
    SIGNING_KEY_USER,
    SIGNING_KEYCHAIN,
    MAC_BUNDLE_IDENTIFIER,
    BUNDLE_ID_SIGNING_PREFIX,
]


def sign_app_bundle(
    runner: ToolRunner,
    store: ParamStore,
    app_dir: Path,
    identity: str,
    prefix: str | None = None,
    entitlements: Path | None = None,
    inherit_entitlements: Path | None = None,
) -> None:
    """Sign nested executables and libraries, then the bundle itself."""
    base = ["codesign", "-s", identity, "-vvvv", "--force", "--timestamp"]
    if prefix:
        base += ["--prefix", prefix]
    keychain = SIGNING_KEYCHAIN.fetch_from(store)
    if keychain:
        base += ["--keychain", keychain]

    nested = sorted(
        path for path in app_dir.rglob("*")
        if path.is_file() and not path.is_symlink()
        and (path.suffix in (".dylib", ".jnilib") or os.access(path, os.X_OK))
    )
    for path in nested:
        args = list(base)
        if inherit_entitlements is not None:
            args += ["--entitlements", str(inherit_entitlements)]
        runner.run(args + [str(path)])

    args = list(base)
    if entitlements is not None:
        args += ["--entitlements", str(entitlements)]
    runner.run(args + [str(app_dir)])


class _MacBundler(Bundler):
    platform = Platform.MAC
    signing_keys: tuple[ParamSpec[str], ...] = ()

    def params(self) -> list[ParamSpec]:
        return super().params() + MAC_PARAMS

    def check(self, store: ParamStore) -> None:
        self.lookup_signing_keys(store)
        check_no_newlines(store, [sp.APP_NAME, sp.VERSION])
        check_license_files(store)

    def lookup_signing_keys(self, store: ParamStore) -> None:
        """Fill absent signing keys from the keychain of ``mac-signing-key-user-name``.

        The lookup runs ``security`` through this bundler's runner.  A key
        that is not found is stored as ``None`` so it is searched only once.
        """
        user = SIGNING_KEY_USER.fetch_from(store)
        if not user:
            return
        keychain = SIGNING_KEYCHAIN.fetch_from(store)
        for spec in self.signing_keys:
            if spec.id not in store:
                store[spec.id] = find_signing_key(
                    self.runner, SIGNING_KEY_PREFIXES[spec.id] + user, keychain
                )


# ------------------------------------------------------------------
# pkg
# ------------------------------------------------------------------


class MacPkgBundler(_MacBundler):
    """Installer package built with ``pkgbuild`` and ``productbuild``."""

    signing_keys = (DEVELOPER_ID_APP_SIGNING_KEY, DEVELOPER_ID_INSTALLER_SIGNING_KEY)

    @property
    def id(self) -> str:
        return "mac.pkg"

    @property
    def name(self) -> str:
        return "PKG Installer"

    @property
    def description(self) -> str:
        return "macOS PKG Installer."

    def params(self) -> list[ParamSpec]:
        return super().params() + [
            DEVELOPER_ID_APP_SIGNING_KEY,
            DEVELOPER_ID_INSTALLER_SIGNING_KEY,
        ]

    def check(self, store: ParamStore) -> None:
        super().check(store)
        if SIGN_BUNDLE.fetch_from(store) and DEVELOPER_ID_INSTALLER_SIGNING_KEY.fetch_from(store) is None:
            raise ConfigurationError(
                "No Developer ID installer signing key found",
                "Install the certificate in the keychain or pass "
                f"{DEVELOPER_ID_INSTALLER_SIGNING_KEY.id} explicitly.",
            )

    def transform(self, store: ParamStore, image: WorkImage) -> None:
        self.lookup_signing_keys(store)
        if not SIGN_BUNDLE.fetch_from(store) or image.predefined:
            return
        identity = DEVELOPER_ID_APP_SIGNING_KEY.fetch_from(store)
        if identity is None:
            logger.warning("No Developer ID application key; the application is not signed")
            return
        sign_app_bundle(self.runner, store, image.image_dir, identity,
                        BUNDLE_ID_SIGNING_PREFIX.fetch_from(store))

    def package(self, store: ParamStore, image: WorkImage, output_dir: Path) -> Path:
        output_dir = Path(output_dir)
        staging = sp.CONFIG_ROOT.fetch_from(store) / self.id
        staging.mkdir(parents=True, exist_ok=True)
        name = sp.APP_NAME.fetch_from(store)
        component = staging / f"{name}-app.pkg"
        self.runner.run([
            "pkgbuild",
            "--component", str(image.image_dir),
            "--install-location", sp.INSTALL_DIR.fetch_from(store) or "/Applications",
            "--identifier", MAC_BUNDLE_IDENTIFIER.fetch_from(store) or name,
            "--version", sp.VERSION.fetch_from(store),
            str(component),
        ])

        args = ["productbuild", "--package", str(component)]
        if SIGN_BUNDLE.fetch_from(store):
            args += ["--sign", DEVELOPER_ID_INSTALLER_SIGNING_KEY.fetch_from(store)]
            keychain = SIGNING_KEYCHAIN.fetch_from(store)
            if keychain:
                args += ["--keychain", keychain]
        final = output_dir / f"{sp.INSTALLER_NAME.fetch_from(store)}-{sp.VERSION.fetch_from(store)}.pkg"
        self.runner.run(args + [str(final.absolute())])
        return self.newest_artifact(output_dir, ".pkg")


# ------------------------------------------------------------------
# Mac App Store
# ------------------------------------------------------------------


class MacAppStoreBundler(_MacBundler):
    """Signed package for submission to the Mac App Store."""

    signing_keys = (MAC_APP_STORE_APP_SIGNING_KEY, MAC_APP_STORE_PKG_SIGNING_KEY)

    @property
    def id(self) -> str:
        return "mac.appStore"

    @property
    def name(self) -> str:
        return "Mac App Store Ready Bundler"

    @property
    def description(self) -> str:
        return "Creates a binary bundle ready for deployment into the Mac App Store."

    def params(self) -> list[ParamSpec]:
        return super().params() + [
            INSTALLER_SUFFIX,
            MAC_APP_STORE_APP_SIGNING_KEY,
            MAC_APP_STORE_ENTITLEMENTS,
            MAC_APP_STORE_PKG_SIGNING_KEY,
        ]

    def check(self, store: ParamStore) -> None:
        super().check(store)
        sign = SIGN_BUNDLE.fetch_from(store)
        if sign is not None and not sign:
            raise ConfigurationError(
                "Mac App Store apps must be signed, and signing has been "
                "explicitly disabled by bundler configuration.",
                f"Either unset {SIGN_BUNDLE.id} or set it to true.",
            )
        if MAC_APP_STORE_APP_SIGNING_KEY.fetch_from(store) is None:
            raise ConfigurationError(
                "No Mac App Store App Signing Key",
                "Install your app signing keys into your Mac Keychain using "
                "XCode.",
            )
        if MAC_APP_STORE_PKG_SIGNING_KEY.fetch_from(store) is None:
            raise ConfigurationError(
                "No Mac App Store Installer Signing Key",
                "Install your app signing keys into your Mac Keychain using "
                "XCode.",
            )

    def entitlements_file(self, store: ParamStore) -> Path:
        return sp.CONFIG_ROOT.fetch_from(store) / f"{sp.APP_NAME.fetch_from(store)}.entitlements"

    def inherit_entitlements_file(self, store: ParamStore) -> Path:
        return sp.CONFIG_ROOT.fetch_from(store) / f"{sp.APP_NAME.fetch_from(store)}_Inherit.entitlements"

    def prepare_entitlements(self, store: ParamStore) -> tuple[Path, Path]:
        """Write the entitlements used for signing into ``config-root``."""
        name = sp.APP_NAME.fetch_from(store)
        resolver = self.resolver(store)
        drop_in = sp.DROP_IN_RESOURCES_ROOT.fetch_from(store)
        target = self.entitlements_file(store)

        custom = MAC_APP_STORE_ENTITLEMENTS.fetch_from(store)
        if custom is not None and custom.is_file():
            logger.info("Using entitlements from %s", custom)
            copy_file(custom, target)
        else:
            resolver.fetch_resource(
                ResourceRequest(
                    public_name=f"{name}.entitlements",
                    category="Mac App Store Entitlements",
                    default_name=DEFAULT_ENTITLEMENTS,
                    drop_in_root=drop_in,
                ),
                target,
            )
        inherit = resolver.fetch_resource(
            ResourceRequest(
                public_name=f"{name}_Inherit.entitlements",
                category="Mac App Store Inherited Entitlements",
                default_name=DEFAULT_INHERIT_ENTITLEMENTS,
                drop_in_root=drop_in,
            ),
            self.inherit_entitlements_file(store),
        )
        return target, inherit

    def transform(self, store: ParamStore, image: WorkImage) -> None:
        # never sign with the local Developer ID key
        store[DEVELOPER_ID_APP_SIGNING_KEY.id] = None
        self.lookup_signing_keys(store)
        entitlements, inherit = self.prepare_entitlements(store)
        sign_app_bundle(
            self.runner,
            store,
            image.image_dir,
            MAC_APP_STORE_APP_SIGNING_KEY.fetch_from(store),
            BUNDLE_ID_SIGNING_PREFIX.fetch_from(store),
            entitlements,
            inherit,
        )

    def package(self, store: ParamStore, image: WorkImage, output_dir: Path) -> Path:
        final = Path(output_dir) / (
            f"{sp.INSTALLER_NAME.fetch_from(store)}{INSTALLER_SUFFIX.fetch_from(store)}.pkg"
        )
        args = [
            "productbuild",
            "--component", str(image.image_dir), "/Applications",
            "--sign", MAC_APP_STORE_PKG_SIGNING_KEY.fetch_from(store),
            "--product", str(image.image_dir / "Contents" / "Info.plist"),
        ]
        keychain = SIGNING_KEYCHAIN.fetch_from(store)
        if keychain:
            args += ["--keychain", keychain]
        args.append(str(final.absolute()))
        self.runner.run(args)
        return final
