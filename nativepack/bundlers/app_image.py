"""Application image bundler: the image directory itself is the artifact."""

from __future__ import annotations

import logging
from pathlib import Path

from nativepack.bundlers.base import Bundler, WorkImage
from nativepack.core.fileutils import copy_recursive, delete_recursive
from nativepack.core.params import ParamStore
from nativepack.models.pipeline import BundleType

logger = logging.getLogger(__name__)


class AppImageBundler(Bundler):
    """Builds a runnable application image for the host platform."""

    bundle_type = BundleType.IMAGE

    @property
    def id(self) -> str:
        return "image"

    @property
    def name(self) -> str:
        return "Application Image"

    @property
    def description(self) -> str:
        return "A directory based image of a desktop application."

    def package(self, store: ParamStore, image: WorkImage, output_dir: Path) -> Path:
        dest = Path(output_dir) / image.image_dir.name
        if dest.exists():
            logger.info("Replacing existing image %s", dest)
            delete_recursive(dest)
        copy_recursive(image.image_dir, dest)
        return dest
