"""nativepack: package applications as native images and installers.

Builds a self-contained application image (launcher, application files,
bundled runtime) and wraps it into the native installer formats:

  - Windows ``.exe`` (Inno Setup) and ``.msi`` (WiX)
  - macOS ``.pkg`` and Mac App Store packages
  - Linux ``.deb`` and ``.rpm``

Every build reads its inputs from a lazily evaluated parameter store and
runs through the validate, image, transform, package and cleanup steps.
"""

__version__ = "1.0.0"
__description__ = "Native application image and installer packager"

from nativepack.core.driver import PipelineDriver
from nativepack.core.params import ParamSpec, ParamStore
from nativepack.cli.app import app as cli

__all__ = ["PipelineDriver", "ParamSpec", "ParamStore", "cli", "__version__"]
