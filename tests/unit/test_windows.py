"""Unit tests for the Inno Setup and WiX bundlers."""

from __future__ import annotations

import logging
from pathlib import Path
from uuid import UUID

import pytest

from nativepack.bundlers import windows as win
from nativepack.bundlers.windows import ExeBundler, MsiBundler
from nativepack.core.errors import ConfigurationError, ToolExecutionError
from nativepack.core.params import ParamStore
from nativepack.core.platform import Platform

FIXED_UUID = UUID("12345678-1234-5678-1234-567812345678")


class LongUUID(UUID):
    """A UUID whose text form exceeds what Inno Setup accepts."""

    def __str__(self) -> str:
        return "x" * 200


@pytest.fixture
def win_store(store: ParamStore) -> ParamStore:
    store["win.exe.iscc.exe"] = "iscc.exe"
    store["win.msi.candle.exe"] = "candle.exe"
    store["win.msi.light.exe"] = "light.exe"
    store["win-upgrade-uuid"] = FIXED_UUID
    return store


@pytest.fixture
def exe(fake_runner, packager_settings) -> ExeBundler:
    return ExeBundler(fake_runner, settings=packager_settings, host=Platform.WINDOWS)


@pytest.fixture
def msi(fake_runner, packager_settings) -> MsiBundler:
    return MsiBundler(fake_runner, settings=packager_settings, host=Platform.WINDOWS)


class TestHelpers:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("plain", "plain"),
            (" padded", '" padded"'),
            ('say "hi"', '"say ""hi"""'),
        ],
    )
    def test_innosetup_escape(self, value, expected):
        assert win.innosetup_escape(value) == expected

    def test_remove_quotes(self):
        assert win.remove_quotes('"Hello File"') == "Hello File"
        assert win.remove_quotes('a"b') == "a-b"

    def test_bare_shortcut_flag_is_off(self):
        store = ParamStore()
        store.put_raw(win.SHORTCUT_HINT, "null")
        assert win.SHORTCUT_HINT.fetch_from(store) is False

    def test_bare_menu_flag_is_on(self):
        store = ParamStore()
        store.put_raw(win.MENU_HINT, "null")
        assert win.MENU_HINT.fetch_from(store) is True

    def test_menu_forced_without_any_shortcut(self):
        store = ParamStore()
        win.force_menu_shortcut(store)
        assert store["win-menu"] is True

    def test_shortcut_alone_is_kept(self):
        store = ParamStore({"win-shortcut": True})
        win.force_menu_shortcut(store)
        assert win.MENU_HINT.fetch_from(store) is False

    def test_app_identifier_is_the_upgrade_uuid(self):
        store = ParamStore({"win-upgrade-uuid": FIXED_UUID})
        assert win.app_identifier(store) == str(FIXED_UUID)

    def test_long_app_identifier_is_truncated(self, caplog):
        store = ParamStore({"win-upgrade-uuid": LongUUID(int=1)})
        with caplog.at_level(logging.ERROR, logger="nativepack.bundlers.windows"):
            identifier = win.app_identifier(store)
        assert len(identifier) == win.MAX_APP_IDENTIFIER_LENGTH
        assert "truncated" in caplog.text

    def test_upgrade_uuid_from_text(self):
        store = ParamStore()
        store.put_raw(win.UPGRADE_UUID, str(FIXED_UUID))
        assert win.UPGRADE_UUID.fetch_from(store) == FIXED_UUID

    def test_registry_name_strips_symbols(self):
        store = ParamStore({"name": "Hello World!"})
        assert win.REGISTRY_NAME.fetch_from(store) == "HelloWorld"

    def test_installer_file_name(self):
        store = ParamStore({"name": "Hello", "version": "2.1"})
        assert win.INSTALLER_FILE_NAME.fetch_from(store) == "Hello-2.1"


class TestRegistryEntries:
    def test_no_associations_renders_nothing(self):
        assert win.registry_entries(ParamStore({"name": "Hello"}), True) == ""

    def test_system_wide_association(self):
        store = ParamStore({
            "name": "Hello",
            "file-associations": [{
                "fileAssociation.extension": "hello",
                "fileAssociation.contentType": "text/x-hello",
            }],
        })
        text = win.registry_entries(store, system_wide=True)
        lines = text.split("\r\n")

        assert lines[0] == "ChangesAssociations=yes"
        assert lines[2] == "[Registry]"
        assert 'Root: HKCR; Subkey: ".hello"; ValueType: string; ValueName: ""; ' \
               'ValueData: "HelloFile"; Flags: uninsdeletevalue' in lines
        assert any("Mime\\Database\\Content Type\\text/x-hello" in line for line in lines)
        assert any('ValueData: "Hello File"; Flags: uninsdeletekey' in line for line in lines)
        assert any('""{app}\\Hello"" ""%1""' in line for line in lines)

    def test_per_user_uses_classes_key(self):
        store = ParamStore({
            "name": "Hello",
            "file-associations": [
                {"fileAssociation.extension": "a"},
                {"fileAssociation.extension": "b"},
            ],
        })
        text = win.registry_entries(store, system_wide=False)
        assert 'Root: HKCU; Subkey: "Software\\Classes\\.a"' in text
        assert 'ValueData: "HelloFile.1"' in text

    def test_secondary_launcher_icons(self):
        store = ParamStore({
            "secondary-launchers": [
                {"name": "Tool", "win-menu": "true", "win-shortcut": "true"},
                {"name": "Quiet"},
            ]
        })
        text = win.secondary_launcher_lines(store)
        assert 'Name: "{group}\\Tool"; Filename: "{app}\\Tool.exe"' in text
        assert 'Name: "{commondesktop}\\Tool"' in text
        assert "Quiet" not in text


class TestExeBundler:
    def test_long_copyright_rejected_before_any_tool(self, exe, win_store, fake_runner):
        win_store["copyright"] = "c" * 101
        with pytest.raises(ConfigurationError, match="copyright string is too long"):
            exe.validate(win_store)
        assert fake_runner.calls == []

    def test_probe_accepts_supported_version(self, exe, win_store, fake_runner):
        assert exe.validate(win_store)
        assert fake_runner.probes == [["iscc.exe", "/?"]]

    def test_old_inno_setup_is_rejected(self, exe, win_store, fake_runner):
        fake_runner.outputs["iscc.exe"] = "Inno Setup 4.2.7"
        with pytest.raises(ConfigurationError, match="Inno Setup Compiler"):
            exe.validate(win_store)

    def test_missing_compiler_is_rejected(self, exe, win_store, fake_runner):
        fake_runner.exit_codes["iscc.exe"] = 127
        with pytest.raises(ConfigurationError, match="iscc.exe"):
            exe.validate(win_store)

    def test_multiline_description_is_rejected(self, exe, win_store):
        win_store["description"] = "two\nlines"
        with pytest.raises(ConfigurationError, match="'description'"):
            exe.validate(win_store)

    def test_project_file_and_package(self, exe, win_store, fake_runner, output_dir):
        win_store.put_raw("license-file", "LICENSE.txt")
        win_store["win-per-user-install"] = True
        machine_artifact = exe.execute(win_store, output_dir)

        assert machine_artifact == output_dir / "Hello-1.0.exe"
        [command] = fake_runner.commands("iscc.exe")
        assert command[1] == "/q"
        assert command[2] == f"/o{output_dir.absolute()}"
        assert command[3].endswith("Hello.iss")
        project = Path(command[3])
        assert fake_runner.cwds[-1] == project.parent

    def test_rendered_project_file(self, exe, win_store, output_dir):
        win_store["verbose"] = True
        win_store.put_raw("license-file", "LICENSE.txt")
        exe.execute(win_store, output_dir)

        work_dir = win_store["images-root"] / "exe"
        text = (work_dir / "Hello.iss").read_text(encoding="utf-8")
        assert f"AppId={FIXED_UUID}" in text
        assert "AppName=Hello" in text
        assert "DefaultDirName={pf}\\Hello" in text
        assert "LicenseFile=LICENSE.txt" in text
        assert "Check: returnTrue()" in text  # menu forced on
        rtf = (work_dir / "LICENSE.txt").read_text(encoding="cp1252")
        assert rtf.startswith("{\\rtf1")
        assert (work_dir / "Hello" / "Hello.exe").is_file()

    def test_tool_failure_propagates(self, exe, win_store, fake_runner, output_dir):
        fake_runner.exit_codes["iscc.exe"] = 3
        fake_runner.outputs["iscc.exe"] = "Error on line 12"
        with pytest.raises(ToolExecutionError) as excinfo:
            exe.execute(win_store, output_dir)
        assert excinfo.value.exit_code == 3
        assert excinfo.value.output == "Error on line 12"


class TestMsiBundler:
    @pytest.mark.parametrize("version", ["1", "1.2", "1.2.3"])
    def test_accepts_msi_versions(self, msi, win_store, version):
        win_store["version"] = version
        assert msi.validate(win_store)

    @pytest.mark.parametrize("version", ["1.2.3.4", "1.0-beta", "v1"])
    def test_rejects_non_msi_versions(self, msi, win_store, version):
        win_store["version"] = version
        with pytest.raises(ConfigurationError, match="not compatible with MSI rules"):
            msi.validate(win_store)

    def test_old_wix_is_rejected(self, msi, win_store, fake_runner):
        fake_runner.outputs["light.exe"] = "Linker version 2.0.5805"
        with pytest.raises(ConfigurationError, match="WiX"):
            msi.validate(win_store)

    def test_candle_then_light(self, msi, win_store, fake_runner, output_dir):
        artifact = msi.execute(win_store, output_dir)

        assert artifact == output_dir / "Hello-1.0.msi"
        [candle] = fake_runner.commands("candle.exe")
        [light] = fake_runner.commands("light.exe")
        assert fake_runner.calls.index(candle) < fake_runner.calls.index(light)
        wixobj = candle[candle.index("-out") + 1]
        assert wixobj.endswith("Hello.wixobj")
        assert light[-1] == wixobj
        assert light[light.index("-out") + 1] == str(artifact.absolute())

    def test_wxs_lists_every_image_file(self, msi, win_store, output_dir):
        win_store["verbose"] = True
        win_store["win-shortcut"] = True
        msi.execute(win_store, output_dir)

        work_dir = win_store["images-root"] / "msi"
        text = (work_dir / "Hello.wxs").read_text(encoding="utf-8")
        assert f'UpgradeCode="{FIXED_UUID}"' in text
        assert '<?define DesktopShortcut = "yes" ?>' in text
        assert '<?define MenuShortcut = "no" ?>' in text
        assert 'Name="app"' in text
        assert text.count("<Component Id=\"c_") == text.count("<ComponentRef Id=\"c_")
        assert str(work_dir / "Hello" / "app" / "hello.jar") in text


class TestWixIds:
    def test_ids_are_unique_and_valid(self, tmp_path: Path):
        image = tmp_path / "Hello"
        (image / "app").mkdir(parents=True)
        (image / "app" / "a-b.jar").write_text("x")
        (image / "app" / "a_b.jar").write_text("x")
        files, refs = win.wix_components(image)
        ids = [line.split('"')[1] for line in refs.splitlines()]
        assert len(ids) == len(set(ids)) == 2
        assert all(id_.replace("_", "").replace(".", "").isalnum() for id_ in ids)
        assert '<Directory Id="d_app_' in files


class TestPredefinedImage:
    @pytest.fixture
    def prebuilt(self, tmp_path: Path) -> Path:
        image = tmp_path / "prebuilt" / "Hello"
        (image / "app").mkdir(parents=True)
        (image / "app" / "hello.jar").write_bytes(b"jar")
        return image

    def test_copy_is_removed_after_build(self, exe, win_store, prebuilt, output_dir):
        win_store["app-image"] = prebuilt
        artifact = exe.execute(win_store, output_dir)

        assert artifact == output_dir / "Hello-1.0.exe"
        assert not (win_store["images-root"] / "exe").exists()
        assert (prebuilt / "app" / "hello.jar").is_file()

    def test_copy_is_kept_when_verbose(self, exe, win_store, prebuilt, output_dir):
        win_store["app-image"] = prebuilt
        win_store["verbose"] = True
        exe.execute(win_store, output_dir)

        work_dir = win_store["images-root"] / "exe"
        assert (work_dir / "Hello" / "app" / "hello.jar").is_file()
        assert (work_dir / "Hello.iss").is_file()
