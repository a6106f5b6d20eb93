"""End-to-end packaging scenarios through the pipeline driver.

These tests exercise the parameter store, main class discovery, image
assembly, the bundlers and the driver working together:
1. A store seeded with only an input directory is fully sniffed
2. An over-long copyright stops an EXE build before any tool runs
3. A missing predefined image stops a build before any working directory exists
4. A failing tool surfaces its exit code and output, and the image is cleaned up
5. One batch produces an image and every Linux installer
"""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from nativepack.bundlers.windows import ExeBundler
from nativepack.core import standard_params as sp
from nativepack.core.driver import PipelineDriver
from nativepack.core.errors import ConfigurationError, PackagingError
from nativepack.core.params import ParamStore
from nativepack.core.pipeline_machine import PipelineMachine
from nativepack.core.platform import Platform
from nativepack.models.build import BuildRequest
from nativepack.models.pipeline import PipelineState

pytestmark = pytest.mark.integration


@pytest.fixture
def driver(fake_runner, packager_settings) -> PipelineDriver:
    return PipelineDriver(packager_settings, fake_runner, host=Platform.LINUX)


class TestMainClassSniffing:
    """Only ``input`` is given; everything else comes from the jar manifest."""

    def test_sniff_fills_all_three_ids(self, store: ParamStore, app_input: Path):
        """One fetch of main-class fills main-class, main-jar and classpath."""
        assert sp.MAIN_CLASS.fetch_from(store) == "com.example.Hello"

        assert store["main-class"] == "com.example.Hello"
        assert store["classpath"] == "lib/dep.jar"
        assert store["main-jar"].files() == [app_input / "hello.jar"]

    def test_sniffed_values_reach_the_image(self, driver, store, output_dir):
        """The cfg file of the built image carries the sniffed launch data."""
        outcome = driver.build(driver.bundler("image"), store, output_dir)

        assert outcome.succeeded
        cfg = (outcome.artifact / "lib" / "app" / "Hello.cfg").read_text(encoding="utf-8")
        assert "app.name=Hello" in cfg
        assert "app.mainjar=hello.jar" in cfg
        assert "app.classpath=lib/dep.jar" in cfg
        assert "app.identifier=com.example" in cfg


class TestCopyrightTooLong:
    """A 101 character copyright is rejected during validation."""

    def test_rejected_without_running_tools(self, fake_runner, packager_settings, store, output_dir):
        """No probe and no compiler run; nothing is written to the output."""
        store["copyright"] = "C" * 101
        store["win.exe.iscc.exe"] = "iscc.exe"
        bundler = ExeBundler(fake_runner, settings=packager_settings, host=Platform.WINDOWS)
        machine = PipelineMachine(bundler.id)

        with pytest.raises(ConfigurationError) as excinfo:
            bundler.validate(store, machine)

        assert "copyright" in excinfo.value.message
        assert "shorter than 100" in excinfo.value.advice
        assert fake_runner.calls == []
        assert machine.state is PipelineState.FAILED
        assert not output_dir.exists()

    def test_exactly_100_characters_is_accepted(self, fake_runner, packager_settings, store):
        """The limit is inclusive."""
        store["copyright"] = "C" * 100
        store["win.exe.iscc.exe"] = "iscc.exe"
        bundler = ExeBundler(fake_runner, settings=packager_settings, host=Platform.WINDOWS)
        assert bundler.validate(store)


class TestMissingPredefinedImage:
    """``app-image`` points at a directory that does not exist."""

    def test_no_working_directory_is_created(self, driver, store, output_dir, tmp_path):
        """The build fails with ConfigurationError and leaves the build root untouched."""
        store["app-image"] = tmp_path / "no-such-image"
        outcome = driver.build(driver.bundler("deb"), store, output_dir)

        assert outcome.error_kind == "ConfigurationError"
        assert "does not exist" in outcome.message
        assert not (tmp_path / "build").exists()

    def test_execute_alone_also_refuses(self, driver, store, output_dir, tmp_path):
        """Skipping validation does not get past the check."""
        store["app-image"] = tmp_path / "no-such-image"
        with pytest.raises(ConfigurationError):
            driver.bundler("deb").execute(store, output_dir)
        assert not (tmp_path / "build").exists()


class TestToolFailure:
    """The packaging tool exits with status 3."""

    def test_exit_code_and_output_are_reported(self, driver, store, fake_runner, output_dir):
        """The failure carries the code, and the working image is removed."""
        fake_runner.exit_codes["rpmbuild"] = 3
        fake_runner.outputs["rpmbuild"] = "error: Bad spec"
        bundler = driver.bundler("rpm")

        with pytest.raises(PackagingError) as excinfo:
            bundler.execute(store, output_dir)

        assert excinfo.value.exit_code == 3
        assert excinfo.value.output == "error: Bad spec"
        assert not (sp.IMAGES_ROOT.fetch_from(store) / "rpm").exists()

    def test_verbose_keeps_and_reports_the_image(self, driver, store, fake_runner, output_dir, caplog):
        """With verbose on, the working directory survives and its path is logged."""
        fake_runner.exit_codes["rpmbuild"] = 3
        store["verbose"] = True

        with caplog.at_level(logging.INFO, logger="nativepack.bundlers.base"):
            outcome = driver.build(driver.bundler("rpm"), store, output_dir)

        work_dir = sp.IMAGES_ROOT.fetch_from(store) / "rpm"
        assert outcome.exit_code == 3
        assert work_dir.is_dir()
        assert f"Kept working directory {work_dir.absolute()}" in caplog.text


class TestBatch:
    """Several artifacts from one description of the application."""

    def test_image_and_linux_installers(self, driver, store, output_dir):
        """Each request succeeds and writes its own artifact."""
        requests = [
            BuildRequest(bundler_id=bundler_id, output_dir=output_dir)
            for bundler_id in ("image", "deb", "rpm")
        ]
        outcomes = driver.build_batch(requests, base=store)

        assert [o.succeeded for o in outcomes] == [True, True, True]
        assert {o.artifact.name for o in outcomes} == {
            "Hello", "hello_1.0_amd64.deb", "hello-1.0-1.x86_64.rpm",
        }
