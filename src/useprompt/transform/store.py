"""Read-only view of the generated-substitution cache."""

from __future__ import annotations

import logging
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic.type_adapter import TypeAdapter

from .errors import CacheLoadError

LOGGER = logging.getLogger(__name__)

SiteKey = Tuple[int, int, str]


class Substitution(BaseModel):
    """Generated replacement for one directive-bearing function."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    code: str
    imports: Optional[str] = None

    @field_validator("imports")
    @classmethod
    def _blank_imports_are_absent(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value

    @property
    def has_code(self) -> bool:
        return bool(self.code.strip())


_CACHE_ADAPTER: TypeAdapter[Dict[int, Dict[int, Dict[str, Substitution]]]] = TypeAdapter(
    Dict[int, Dict[int, Dict[str, Substitution]]]
)


class SubstitutionStore:
    """Three-level ``start -> end -> prompt -> Substitution`` lookup table.

    The store is loaded once and never changes afterwards; matching is exact
    on all three key parts.
    """

    def __init__(self, entries: Mapping[int, Mapping[int, Mapping[str, Substitution]]] | None = None) -> None:
        self._entries: Mapping[int, Mapping[int, Mapping[str, Substitution]]] = MappingProxyType(
            {
                start: MappingProxyType(
                    {end: MappingProxyType(dict(prompts)) for end, prompts in by_end.items()}
                )
                for start, by_end in (entries or {}).items()
            }
        )

    @classmethod
    def empty(cls) -> "SubstitutionStore":
        return cls()

    @classmethod
    def from_bytes(cls, blob: bytes | str) -> "SubstitutionStore":
        """Decode a JSON cache blob, raising :class:`CacheLoadError` when malformed."""
        if isinstance(blob, bytes):
            try:
                blob = blob.decode("utf-8")
            except UnicodeDecodeError as error:
                raise CacheLoadError(
                    "malformed substitutions json",
                    details={"reason": f"not UTF-8: {error}"},
                ) from error
        try:
            entries = _CACHE_ADAPTER.validate_json(blob)
        except ValidationError as error:
            raise CacheLoadError(
                "malformed substitutions json",
                details={"errors": error.error_count(), "reason": str(error)},
            ) from error
        return cls(entries)

    @classmethod
    def from_path(cls, path: Path | str) -> "SubstitutionStore":
        """Load the cache at ``path``; a missing file yields an empty store."""
        cache_path = Path(path)
        try:
            blob = cache_path.read_bytes()
        except FileNotFoundError:
            LOGGER.debug("No substitution cache at %s; using an empty store", cache_path)
            return cls.empty()
        except OSError as error:
            raise CacheLoadError(
                f"Unable to read substitution cache: {error}",
                details={"path": cache_path.as_posix()},
            ) from error
        store = cls.from_bytes(blob)
        LOGGER.debug("Loaded %d substitution(s) from %s", len(store), cache_path)
        return store

    def lookup(self, start: int, end: int, prompt: str) -> Substitution | None:
        by_end = self._entries.get(start)
        if by_end is None:
            return None
        prompts = by_end.get(end)
        if prompts is None:
            return None
        return prompts.get(prompt)

    def sites(self) -> Iterator[SiteKey]:
        for start, by_end in sorted(self._entries.items()):
            for end, prompts in sorted(by_end.items()):
                for prompt in sorted(prompts):
                    yield (start, end, prompt)

    def __len__(self) -> int:
        return sum(len(prompts) for by_end in self._entries.values() for prompts in by_end.values())

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, tuple) or len(key) != 3:
            return False
        start, end, prompt = key
        return self.lookup(start, end, prompt) is not None
