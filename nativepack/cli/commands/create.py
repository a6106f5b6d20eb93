"""``nativepack create-image`` and ``nativepack create-installer``.

Both commands assemble a parameter store from their options and hand it to
the pipeline driver.  Any option can also be given as ``--param KEY=VALUE``
using the parameter id listed by ``nativepack bundlers --params``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from nativepack.cli.commands.common import build_store, configure_logging, console, report
from nativepack.core.driver import PipelineDriver


def _flag(value: Optional[bool]) -> Optional[str]:
    # tri-state: unset options must not reach the store
    return None if value is None else str(value).lower()


def create_image_cmd(
    input_dir: Optional[Path] = typer.Option(None, "--input", "-i", help="Directory holding the application files."),
    main_jar: Optional[str] = typer.Option(None, "--main-jar", help="Main jar, relative to --input."),
    main_class: Optional[str] = typer.Option(None, "--main-class", help="Fully qualified main class."),
    module: Optional[str] = typer.Option(None, "--module", "-m", help="Main module, optionally module/class."),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Application name."),
    version: Optional[str] = typer.Option(None, "--version", help="Application version."),
    vendor: Optional[str] = typer.Option(None, "--vendor", help="Application vendor."),
    icon: Optional[Path] = typer.Option(None, "--icon", help="Application icon."),
    identifier: Optional[str] = typer.Option(None, "--identifier", help="Machine readable identifier."),
    output: Path = typer.Option(Path("."), "--output", "-o", help="Directory receiving the artifact."),
    build_root: Optional[Path] = typer.Option(None, "--build-root", help="Working directory for the build."),
    resource_dir: Optional[Path] = typer.Option(None, "--resource-dir", help="Directory of resource overrides."),
    runtime_image: Optional[Path] = typer.Option(None, "--runtime-image", help="Runtime copied into the image."),
    arguments: list[str] = typer.Option([], "--arguments", help="Default application argument; repeatable."),
    jvm_args: list[str] = typer.Option([], "--jvm-args", help="Runtime option; repeatable."),
    secondary_launcher: list[Path] = typer.Option(
        [], "--secondary-launcher", help="Properties file describing an extra launcher; repeatable."
    ),
    param: list[str] = typer.Option([], "--param", "-p", help="Raw parameter KEY=VALUE; repeatable."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log diagnostics and keep working directories."),
) -> None:
    """Build a runnable application image for this host."""
    configure_logging(verbose)
    store = build_store(
        {
            "input": input_dir,
            "main-jar": main_jar,
            "main-class": main_class,
            "module": module,
            "name": name,
            "version": version,
            "vendor": vendor,
            "icon": icon,
            "identifier": identifier,
            "build-root": build_root,
            "resource-dir": resource_dir,
            "runtime-image": runtime_image,
            "arguments": arguments,
            "jvm-args": jvm_args,
            "verbose": True if verbose else None,
        },
        param,
        secondary_launcher,
    )
    driver = PipelineDriver()
    report(driver.build(driver.bundler("image"), store, output))


def create_installer_cmd(
    installer_type: str = typer.Option(..., "--type", "-t", help="Bundler id, e.g. exe, msi, deb, rpm, mac.pkg."),
    app_image: Optional[Path] = typer.Option(None, "--app-image", help="Package this existing image."),
    input_dir: Optional[Path] = typer.Option(None, "--input", "-i", help="Directory holding the application files."),
    main_jar: Optional[str] = typer.Option(None, "--main-jar", help="Main jar, relative to --input."),
    main_class: Optional[str] = typer.Option(None, "--main-class", help="Fully qualified main class."),
    module: Optional[str] = typer.Option(None, "--module", "-m", help="Main module, optionally module/class."),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Application name."),
    version: Optional[str] = typer.Option(None, "--version", help="Application version."),
    vendor: Optional[str] = typer.Option(None, "--vendor", help="Application vendor."),
    description: Optional[str] = typer.Option(None, "--description", help="Application description."),
    copyright_: Optional[str] = typer.Option(None, "--copyright", help="Copyright notice."),
    icon: Optional[Path] = typer.Option(None, "--icon", help="Application icon."),
    identifier: Optional[str] = typer.Option(None, "--identifier", help="Machine readable identifier."),
    license_file: list[str] = typer.Option([], "--license-file", help="License file relative to --input; repeatable."),
    installer_name: Optional[str] = typer.Option(None, "--installer-name", help="Base name of the installer file."),
    install_dir: Optional[str] = typer.Option(None, "--install-dir", help="Installation directory."),
    output: Path = typer.Option(Path("."), "--output", "-o", help="Directory receiving the artifact."),
    build_root: Optional[Path] = typer.Option(None, "--build-root", help="Working directory for the build."),
    resource_dir: Optional[Path] = typer.Option(None, "--resource-dir", help="Directory of resource overrides."),
    runtime_image: Optional[Path] = typer.Option(None, "--runtime-image", help="Runtime copied into the image."),
    arguments: list[str] = typer.Option([], "--arguments", help="Default application argument; repeatable."),
    jvm_args: list[str] = typer.Option([], "--jvm-args", help="Runtime option; repeatable."),
    win_menu: Optional[bool] = typer.Option(None, "--win-menu/--no-win-menu", help="Add a start menu entry."),
    win_shortcut: Optional[bool] = typer.Option(None, "--win-shortcut/--no-win-shortcut", help="Add a desktop shortcut."),
    win_menu_group: Optional[str] = typer.Option(None, "--win-menu-group", help="Start menu group."),
    win_per_user_install: Optional[bool] = typer.Option(
        None, "--win-per-user-install/--win-system-wide-install", help="Install for the current user only."
    ),
    win_dir_chooser: Optional[bool] = typer.Option(
        None, "--win-dir-chooser/--no-win-dir-chooser", help="Let the user pick the installation directory."
    ),
    linux_bundle_name: Optional[str] = typer.Option(None, "--linux-bundle-name", help="Linux package name."),
    mac_sign: Optional[bool] = typer.Option(None, "--mac-sign/--no-mac-sign", help="Sign the macOS bundle."),
    secondary_launcher: list[Path] = typer.Option(
        [], "--secondary-launcher", help="Properties file describing an extra launcher; repeatable."
    ),
    param: list[str] = typer.Option([], "--param", "-p", help="Raw parameter KEY=VALUE; repeatable."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log diagnostics and keep working directories."),
) -> None:
    """Build a platform installer, e.g. ``--type deb``."""
    configure_logging(verbose)
    driver = PipelineDriver()
    try:
        bundler = driver.bundler(installer_type)
    except KeyError as exc:
        console.print(f"[bold red]Unknown installer type:[/bold red] {installer_type}")
        console.print(f"[dim]{exc.args[0]}[/dim]")
        raise typer.Exit(code=1) from None

    store = build_store(
        {
            "app-image": app_image,
            "input": input_dir,
            "main-jar": main_jar,
            "main-class": main_class,
            "module": module,
            "name": name,
            "version": version,
            "vendor": vendor,
            "description": description,
            "copyright": copyright_,
            "icon": icon,
            "identifier": identifier,
            "license-file": license_file,
            "installer-name": installer_name,
            "install-dir": install_dir,
            "build-root": build_root,
            "resource-dir": resource_dir,
            "runtime-image": runtime_image,
            "arguments": arguments,
            "jvm-args": jvm_args,
            "win-menu": _flag(win_menu),
            "win-shortcut": _flag(win_shortcut),
            "win-menu-group": win_menu_group,
            "win-per-user-install": _flag(win_per_user_install),
            "win-dir-chooser": _flag(win_dir_chooser),
            "linux-bundle-name": linux_bundle_name,
            "mac-sign": _flag(mac_sign),
            "verbose": True if verbose else None,
        },
        param,
        secondary_launcher,
    )
    report(driver.build(bundler, store, output))
