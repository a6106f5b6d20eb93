"""Nativepack bundlers: registry mapping bundler id to bundler class.

Usage::

    from nativepack.bundlers import BUNDLER_REGISTRY, get_bundler

    bundler_cls = BUNDLER_REGISTRY["deb"]
    bundler = bundler_cls()
    bundler.validate(store)
    artifact = bundler.execute(store, output_dir)

    # Or use the convenience helper:
    bundler = get_bundler("exe", runner=my_runner)
"""

from __future__ import annotations

from typing import Any

from nativepack.bundlers.app_image import AppImageBundler
from nativepack.bundlers.base import Bundler, WorkImage
from nativepack.bundlers.linux import DebBundler, RpmBundler
from nativepack.bundlers.mac import MacAppStoreBundler, MacPkgBundler
from nativepack.bundlers.windows import ExeBundler, MsiBundler

# ---------------------------------------------------------------------------
# Bundler registry: bundler id -> bundler class
# ---------------------------------------------------------------------------

BUNDLER_REGISTRY: dict[str, type[Bundler]] = {
    "image": AppImageBundler,
    "mac.pkg": MacPkgBundler,
    "mac.appStore": MacAppStoreBundler,
    "exe": ExeBundler,
    "msi": MsiBundler,
    "deb": DebBundler,
    "rpm": RpmBundler,
}

# Order in which bundlers are listed and tried.
BUNDLER_ORDER: list[str] = [
    "image",
    "mac.pkg",
    "mac.appStore",
    "exe",
    "msi",
    "deb",
    "rpm",
]


def get_bundler(bundler_id: str, **kwargs: Any) -> Bundler:
    """Instantiate and return a bundler by its id.

    Keyword arguments are passed to the bundler constructor.  Raises
    ``KeyError`` if the id is not registered.
    """
    try:
        cls = BUNDLER_REGISTRY[bundler_id]
    except KeyError:
        raise KeyError(
            f"Unknown bundler {bundler_id!r}. "
            f"Registered bundlers: {sorted(BUNDLER_REGISTRY.keys())}"
        ) from None
    return cls(**kwargs)


__all__ = [
    # Base
    "Bundler",
    "WorkImage",
    # Registry
    "BUNDLER_REGISTRY",
    "BUNDLER_ORDER",
    "get_bundler",
    # Concrete bundlers
    "AppImageBundler",
    "MacPkgBundler",
    "MacAppStoreBundler",
    "ExeBundler",
    "MsiBundler",
    "DebBundler",
    "RpmBundler",
]
