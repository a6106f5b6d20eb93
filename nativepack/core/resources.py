"""Named resource lookup with user overrides.

A resource request is resolved by the first branch that matches:

1. ``public_name`` in the drop-in directory;
2. ``public_name`` among the bundled ``nativepack.resources``;
3. the user supplied ``custom_file``;
4. the bundled ``default_name``.

When nothing matches, a required resource raises
:class:`~nativepack.core.errors.ResourceMissingError`; an optional one
resolves to ``None``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from importlib import resources as importlib_resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import BinaryIO, Union

from nativepack.core.errors import ResourceMissingError
from nativepack.models.resources import ResourceOrigin, ResourceRequest

logger = logging.getLogger(__name__)

BUNDLED_PACKAGE = "nativepack.resources"

Located = Union[Path, Traversable]


class ResourceResolver:
    """Resolves resource requests for one build.

    Parameters
    ----------
    verbose:
        Log each resolution at INFO rather than DEBUG.
    package:
        Package holding the bundled resources.
    """

    def __init__(self, *, verbose: bool = False, package: str = BUNDLED_PACKAGE) -> None:
        self.verbose = verbose
        self.package = package

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def bundled(self, name: str) -> Traversable | None:
        """Return the bundled resource *name*, if the package ships it."""
        candidate = importlib_resources.files(self.package).joinpath(name)
        return candidate if candidate.is_file() else None

    def locate(self, request: ResourceRequest) -> tuple[ResourceOrigin, Located | None]:
        """Find where *request* resolves without opening anything."""
        if request.public_name:
            if request.drop_in_root is not None:
                candidate = Path(request.drop_in_root) / request.public_name
                if candidate.is_file():
                    return ResourceOrigin.DROP_IN, candidate
            bundled = self.bundled(request.public_name)
            if bundled is not None:
                return ResourceOrigin.BUNDLED, bundled
        if request.custom_file is not None and Path(request.custom_file).is_file():
            return ResourceOrigin.CUSTOM_FILE, Path(request.custom_file)
        if request.default_name:
            bundled = self.bundled(request.default_name)
            if bundled is not None:
                return ResourceOrigin.DEFAULT, bundled
        return ResourceOrigin.MISSING, None

    def resolve(self, request: ResourceRequest) -> BinaryIO | None:
        """Open the resource *request* names.

        The caller owns the returned stream.
        """
        origin, found = self.locate(request)
        self._log(request, origin, found)
        if found is None:
            if request.required:
                raise ResourceMissingError(
                    f"{request.label}Resource {request.public_name or request.default_name} "
                    "could not be found"
                )
            return None
        return found.open("rb")

    def _log(self, request: ResourceRequest, origin: ResourceOrigin, found: Located | None) -> None:
        level = logging.INFO if self.verbose else logging.DEBUG
        label = request.label
        if origin is ResourceOrigin.DROP_IN:
            logger.log(level, "%sUsing custom package resource %s (loaded from %s)",
                       label, request.public_name, found)
        elif origin is ResourceOrigin.BUNDLED:
            logger.log(level, "%sUsing default package resource %s "
                       "(add %s to the resource-dir to customize)",
                       label, request.public_name, request.public_name)
        elif origin is ResourceOrigin.CUSTOM_FILE:
            logger.log(level, "%sUsing custom package resource %s (loaded from file %s)",
                       label, request.public_name or found, found)
        elif origin is ResourceOrigin.DEFAULT:
            hint = f" (add {request.public_name} to the resource-dir to customize)" \
                if request.public_name else ""
            logger.log(level, "%sUsing default package resource %s%s",
                       label, request.default_name, hint)
        else:
            logger.log(level, "%sNo resource found for %s", label,
                       request.public_name or request.default_name)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    @staticmethod
    def render(data: str, mapping: Mapping[str, str | None]) -> str:
        """Replace every placeholder in *mapping* with its value.

        Keys mapped to ``None`` are left untouched, as are placeholders the
        mapping does not mention.
        """
        for key, value in mapping.items():
            if value is not None:
                data = data.replace(key, value)
        return data

    def preprocess_text_resource(
        self, request: ResourceRequest, mapping: Mapping[str, str | None]
    ) -> str | None:
        """Resolve, read and render a UTF-8 text resource."""
        stream = self.resolve(request)
        if stream is None:
            return None
        with stream:
            text = stream.read().decode("utf-8")
        return self.render(text, mapping)

    def fetch_resource(self, request: ResourceRequest, dest: Path) -> Path | None:
        """Copy the resolved resource to *dest*."""
        stream = self.resolve(request)
        if stream is None:
            return None
        dest = Path(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
        with stream, dest.open("wb") as out:
            out.write(stream.read())
        return dest
