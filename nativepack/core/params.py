"""Lazily evaluated, memoized parameter store.

A :class:`ParamSpec` declares a setting once: its id, the runtime type of a
resolved value, an optional default computed from the rest of the store and
an optional converter from external text.  A :class:`ParamStore` holds the
entries for one build and resolves descriptors on demand.

Resolution order for ``store.fetch(spec)``:

1. raw text (a :class:`RawValue`, or a ``str`` for a non-``str`` descriptor)
   is converted and the typed result replaces the raw entry;
2. a value already of the declared type is returned unchanged;
3. an explicit ``None`` entry is honoured and returns ``None``;
4. anything else raises :class:`ParameterTypeError`;
5. a missing entry with a default is computed and, unless ``None``, stored;
6. a missing entry without a default returns ``None``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, MutableMapping
from contextlib import contextmanager
from typing import Any, Callable, Generic, TypeVar, Union

from pydantic import BaseModel, ConfigDict

from nativepack.core.errors import ParameterCycleError, ParameterTypeError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RawValue(BaseModel):
    """Unconverted external input, typically a command line string."""

    model_config = ConfigDict(frozen=True)

    text: str


class ParamSpec(Generic[T]):
    """Immutable descriptor for one parameter.

    Parameters
    ----------
    id:
        Key of the parameter in a :class:`ParamStore`.
    value_type:
        Runtime class of a resolved value.
    default:
        Computes the value from the store when no entry exists.
    converter:
        Turns external text into a ``value_type`` instance.  It may read
        other parameters from the store it is given.
    """

    __slots__ = ("id", "value_type", "default", "converter", "name", "description")

    def __init__(
        self,
        id: str,
        value_type: type,
        default: Callable[[ParamStore], T | None] | None = None,
        converter: Callable[[str, ParamStore], T | None] | None = None,
        *,
        name: str = "",
        description: str = "",
    ) -> None:
        object.__setattr__(self, "id", id)
        object.__setattr__(self, "value_type", value_type)
        object.__setattr__(self, "default", default)
        object.__setattr__(self, "converter", converter)
        object.__setattr__(self, "name", name or id)
        object.__setattr__(self, "description", description)

    def __setattr__(self, key: str, value: Any) -> None:
        raise AttributeError(f"ParamSpec {self.id!r} is immutable")

    def __repr__(self) -> str:
        return f"ParamSpec({self.id!r}, {self.value_type.__name__})"

    def fetch_from(self, store: ParamStore) -> T | None:
        """Resolve this descriptor against *store*."""
        return store.fetch(self)


Key = Union[str, ParamSpec]


def _key(key: Key) -> str:
    return key.id if isinstance(key, ParamSpec) else str(key)


class ParamStore(MutableMapping[str, Any]):
    """Mutable id -> entry mapping with descriptor-driven resolution.

    Keys may be given as id strings or as :class:`ParamSpec` objects.  Reading
    an entry through the mapping interface returns what is stored (raw text
    is unwrapped); use :meth:`fetch` to obtain a resolved, typed value.

    A store is single threaded.  Use :meth:`copy` to give each build its own.
    """

    def __init__(self, initial: Mapping[Key, Any] | None = None) -> None:
        self._entries: dict[str, Any] = {}
        self._resolving: list[str] = []
        if initial:
            for key, value in initial.items():
                self[key] = value

    # ------------------------------------------------------------------
    # Mapping interface
    # ------------------------------------------------------------------

    def __getitem__(self, key: Key) -> Any:
        entry = self._entries[_key(key)]
        return entry.text if isinstance(entry, RawValue) else entry

    def __setitem__(self, key: Key, value: Any) -> None:
        self._entries[_key(key)] = value

    def __delitem__(self, key: Key) -> None:
        del self._entries[_key(key)]

    def __contains__(self, key: object) -> bool:
        if isinstance(key, (str, ParamSpec)):
            return _key(key) in self._entries
        return False

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"ParamStore({sorted(self._entries)})"

    # ------------------------------------------------------------------
    # Raw input and isolation
    # ------------------------------------------------------------------

    def put_raw(self, key: Key, text: str) -> None:
        """Store external text to be converted on first fetch."""
        self._entries[_key(key)] = RawValue(text=text)

    def entry(self, key: Key) -> Any:
        """Return the stored entry without unwrapping raw text."""
        return self._entries[_key(key)]

    def copy(self) -> ParamStore:
        """Return an independent store with the same entries."""
        clone = ParamStore()
        clone._entries = dict(self._entries)
        return clone

    def overlay(self, overrides: Mapping[Key, Any]) -> ParamStore:
        """Return a copy of this store with *overrides* applied on top."""
        clone = self.copy()
        for key, value in overrides.items():
            clone[key] = value
        return clone

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def fetch(self, spec: ParamSpec[T]) -> T | None:
        """Resolve *spec* against this store."""
        key = spec.id
        if key in self._entries:
            entry = self._entries[key]
            if isinstance(entry, RawValue):
                return self._convert(spec, entry.text)
            if isinstance(entry, str) and not issubclass(spec.value_type, str):
                return self._convert(spec, entry)
            if entry is None:
                return None
            if isinstance(entry, spec.value_type):
                return entry
            raise ParameterTypeError(
                f"Parameter {key!r} holds {type(entry).__name__}, "
                f"expected {spec.value_type.__name__}"
            )

        if spec.default is None:
            return None
        with self._computing(key):
            result = spec.default(self)
        if result is not None:
            self._entries[key] = result
        return result

    def _convert(self, spec: ParamSpec[T], text: str) -> T | None:
        if spec.converter is None:
            if issubclass(spec.value_type, str):
                self._entries[spec.id] = text
                return text  # type: ignore[return-value]
            return None
        with self._computing(spec.id):
            value = spec.converter(text, self)
        self._entries[spec.id] = value
        return value

    @contextmanager
    def _computing(self, key: str) -> Iterator[None]:
        if key in self._resolving:
            chain = self._resolving[self._resolving.index(key):] + [key]
            raise ParameterCycleError(chain)
        self._resolving.append(key)
        try:
            yield
        finally:
            self._resolving.pop()
