"""Unit tests for the Debian and RPM bundlers."""

from __future__ import annotations

import os
import sys

import pytest

from nativepack.bundlers import linux
from nativepack.bundlers.linux import DebBundler, RpmBundler
from nativepack.core.errors import ConfigurationError
from nativepack.core.params import ParamStore
from nativepack.core.platform import Platform


@pytest.fixture
def deb(fake_runner, packager_settings) -> DebBundler:
    return DebBundler(fake_runner, settings=packager_settings, host=Platform.LINUX)


@pytest.fixture
def rpm(fake_runner, packager_settings) -> RpmBundler:
    return RpmBundler(fake_runner, settings=packager_settings, host=Platform.LINUX)


class TestParams:
    @pytest.mark.parametrize(
        ("name", "expected"),
        [("Hello", "hello"), ("My App", "my-app"), ("Big_Tool!", "big-tool")],
    )
    def test_bundle_name_from_app_name(self, name, expected):
        assert linux.BUNDLE_NAME.fetch_from(ParamStore({"name": name})) == expected

    def test_maintainer_uses_vendor(self):
        store = ParamStore({"vendor": "Example Corp"})
        assert linux.MAINTAINER.fetch_from(store) == "Example Corp <unknown@unknown>"

    def test_dependencies_from_text(self):
        store = ParamStore()
        store.put_raw(linux.PACKAGE_DEPENDENCIES, "libc6, xdg-utils ,")
        assert linux.PACKAGE_DEPENDENCIES.fetch_from(store) == ["libc6", "xdg-utils"]

    @pytest.mark.parametrize(
        ("install_dir", "expected"),
        [(None, "/opt"), ("usr/local/", "/usr/local"), ("/srv/apps", "/srv/apps")],
    )
    def test_install_root(self, install_dir, expected):
        store = ParamStore({"install-dir": install_dir} if install_dir else {})
        assert linux.install_root(store) == expected


class TestValidation:
    def test_unsupported_off_linux(self, fake_runner, packager_settings):
        bundler = DebBundler(fake_runner, settings=packager_settings, host=Platform.WINDOWS)
        assert not bundler.supported()

    def test_invalid_bundle_name(self, deb, store):
        store["linux-bundle-name"] = "Hello_World"
        with pytest.raises(ConfigurationError, match='Invalid value "Hello_World"'):
            deb.validate(store)

    def test_debian_version_must_start_with_digit(self, deb, store, fake_runner):
        store["version"] = "v1.0"
        with pytest.raises(ConfigurationError, match="not valid for a Debian package"):
            deb.validate(store)
        assert fake_runner.calls == []

    def test_probe_runs_tool(self, deb, store, fake_runner):
        deb.validate(store)
        assert fake_runner.probes == [["dpkg-deb", "--version"]]

    def test_missing_tool(self, rpm, store, fake_runner):
        fake_runner.exit_codes["rpmbuild"] = 127
        with pytest.raises(ConfigurationError, match="Can not find rpmbuild") as excinfo:
            rpm.validate(store)
        assert excinfo.value.advice == "Install the rpm-build package."

    def test_non_zero_probe_is_tolerated(self, rpm, store, fake_runner):
        fake_runner.exit_codes["rpmbuild"] = 1
        assert rpm.validate(store)

    def test_newline_in_vendor(self, rpm, store):
        store["vendor"] = "Example\nCorp"
        with pytest.raises(ConfigurationError, match="'vendor'"):
            rpm.validate(store)


class TestDebBundler:
    def test_package_layout(self, deb, store, fake_runner, output_dir):
        store["verbose"] = True
        store.put_raw("license-file", "LICENSE.txt")
        store["linux-package-deps"] = ["libc6", "xdg-utils"]
        artifact = deb.execute(store, output_dir)

        assert artifact == output_dir / "hello_1.0_amd64.deb"
        [command] = fake_runner.commands("dpkg-deb")
        root = fake_runner.cwds[-1] / "hello"
        assert command == ["dpkg-deb", "--build", str(root), str(output_dir.absolute())]

        app_root = root / "opt" / "Hello"
        assert (app_root / "bin" / "Hello").is_file()
        assert (app_root / "lib" / "app" / "hello.jar").is_file()
        assert (root / "usr" / "share" / "doc" / "hello" / "copyright").read_text() == "Free to use.\n"

        control = (root / "DEBIAN" / "control").read_text(encoding="utf-8")
        assert "Package: hello\n" in control
        assert "Version: 1.0\n" in control
        assert "Maintainer: Unknown <unknown@unknown>\n" in control
        assert control.rstrip().endswith("Depends: libc6, xdg-utils")

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permission bits")
    def test_maintainer_scripts(self, deb, store, output_dir):
        store["verbose"] = True
        deb.execute(store, output_dir)
        debian = store["images-root"] / "deb" / "deb-staging" / "hello" / "DEBIAN"

        postinst = (debian / "postinst").read_text(encoding="utf-8")
        prerm = (debian / "prerm").read_text(encoding="utf-8")
        assert "xdg-desktop-menu install /opt/Hello/Hello.desktop || true" in postinst
        assert "xdg-desktop-menu uninstall /opt/Hello/Hello.desktop || true" in prerm
        assert os.access(debian / "postinst", os.X_OK)
        assert os.access(debian / "prerm", os.X_OK)

    def test_desktop_file(self, deb, store, output_dir, tmp_path):
        icon = tmp_path / "hello.png"
        icon.write_bytes(b"png")
        store["icon"] = icon
        store["install-dir"] = "/usr/local"
        store["verbose"] = True
        deb.execute(store, output_dir)

        app_root = store["images-root"] / "deb" / "deb-staging" / "hello" / "usr" / "local" / "Hello"
        desktop = (app_root / "Hello.desktop").read_text(encoding="utf-8")
        assert "Exec=/usr/local/Hello/bin/Hello" in desktop
        assert "Icon=/usr/local/Hello/lib/Hello.png" in desktop
        assert (app_root / "lib" / "Hello.png").is_file()

    def test_drop_in_control_file(self, deb, store, resource_dir, output_dir):
        (resource_dir / "Hello.control").write_text(
            "Package: APPLICATION_PACKAGE\nX-Custom: yes\n", encoding="utf-8"
        )
        store["verbose"] = True
        deb.execute(store, output_dir)
        control = store["images-root"] / "deb" / "deb-staging" / "hello" / "DEBIAN" / "control"
        assert control.read_text(encoding="utf-8") == "Package: hello\nX-Custom: yes\n"

    def test_staging_removed_after_build(self, deb, store, output_dir):
        deb.execute(store, output_dir)
        assert not (store["images-root"] / "deb").exists()


class TestRpmBundler:
    def test_rpmbuild_command(self, rpm, store, fake_runner, output_dir):
        artifact = rpm.execute(store, output_dir)

        assert artifact == output_dir / "hello-1.0-1.x86_64.rpm"
        [command] = fake_runner.commands("rpmbuild")
        staging = fake_runner.cwds[-1]
        assert command[:3] == ["rpmbuild", "-bb", str((staging / "SPECS" / "hello.spec").absolute())]
        assert f"%_rpmdir {output_dir.absolute()}" in command
        assert f"%_topdir {staging.absolute()}" in command
        assert "%_rpmfilename %%{NAME}-%%{VERSION}-%%{RELEASE}.%%{ARCH}.rpm" in command

    def test_spec_file(self, rpm, store, output_dir):
        store["verbose"] = True
        store.put_raw("license-file", "LICENSE.txt")
        store.put_raw("linux-rpm-license-type", "MIT")
        store.put_raw("linux-package-deps", "xdg-utils")
        rpm.execute(store, output_dir)

        staging = store["images-root"] / "rpm" / "rpm-staging"
        spec = (staging / "SPECS" / "hello.spec").read_text(encoding="utf-8")
        assert "Name: hello" in spec
        assert "License: MIT" in spec
        assert "Requires: xdg-utils" in spec
        assert "%doc /opt/Hello/lib/app/LICENSE.txt" in spec
        assert "xdg-desktop-menu install /opt/Hello/Hello.desktop || true" in spec
        assert (staging / "SOURCES" / "Hello" / "bin" / "Hello").is_file()

    def test_doc_line_names_the_license_found(self, rpm, store, app_input, output_dir):
        (app_input / "docs").mkdir()
        (app_input / "docs" / "NOTICE.txt").write_text("Notice.\n", encoding="utf-8")
        store["verbose"] = True
        store["license-file"] = ["COPYING", "docs/NOTICE.txt"]
        rpm.execute(store, output_dir)

        staging = store["images-root"] / "rpm" / "rpm-staging"
        spec = (staging / "SPECS" / "hello.spec").read_text(encoding="utf-8")
        assert "%doc /opt/Hello/lib/app/docs/NOTICE.txt" in spec
        assert "COPYING" not in spec


class TestPredefinedImage:
    @pytest.fixture
    def prebuilt(self, tmp_path):
        image = tmp_path / "prebuilt" / "Hello"
        (image / "bin").mkdir(parents=True)
        (image / "bin" / "Hello").write_text("#!/bin/sh\n")
        return image

    def test_deb_staging_is_removed(self, deb, store, prebuilt, output_dir):
        store["app-image"] = prebuilt
        deb.execute(store, output_dir)

        images_root = store["images-root"]
        assert not (images_root / "deb").exists()
        assert not (images_root / "deb-staging").exists()
        assert (prebuilt / "bin" / "Hello").is_file()

    def test_rpm_stages_outside_the_user_image(self, rpm, store, prebuilt, output_dir):
        store["app-image"] = prebuilt
        store["verbose"] = True
        rpm.execute(store, output_dir)

        staging = store["images-root"] / "rpm" / "rpm-staging"
        assert (staging / "SOURCES" / "Hello" / "bin" / "Hello").is_file()
        assert sorted(p.name for p in prebuilt.iterdir()) == ["bin"]
