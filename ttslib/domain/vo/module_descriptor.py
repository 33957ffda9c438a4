from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from ttslib.domain.vo.locale_tag import normalize_locale
from ttslib.domain.vo.platform_id import Platform


@dataclass(frozen=True)
class ModuleDescriptor:
    """Static metadata a speaker module exposes about itself.

    ``name`` doubles as the directory segment the module is installed under.
    ``supported_languages`` maps a unified locale (``en-US``) to the code the
    engine itself understands.
    """

    name: str
    description: str
    version: str
    authors: str
    supported_platforms: frozenset[Platform]
    supported_languages: Mapping[str, str] = field(default_factory=dict)
    link: str | None = None
    load_order: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Module name must not be empty.")

        object.__setattr__(self, "supported_platforms", frozenset(self.supported_platforms))
        object.__setattr__(
            self,
            "supported_languages",
            freeze_languages(self.supported_languages),
        )
        object.__setattr__(self, "load_order", tuple(self.load_order))

    def supports_platform(self, platform: Platform) -> bool:
        return platform in self.supported_platforms

    def language_code(self, locale: str) -> str | None:
        return self.supported_languages.get(normalize_locale(locale))


def freeze_languages(
    languages: Mapping[str, str] | Iterable[tuple[str, str]],
) -> Mapping[str, str]:
    """Normalize locale keys and return a read-only mapping.

    Two keys that normalize to the same locale are rejected.
    """

    items = languages.items() if isinstance(languages, Mapping) else languages
    frozen: dict[str, str] = {}
    for locale, code in items:
        key = normalize_locale(locale)
        if key in frozen:
            raise ValueError(f"Duplicate locale in language map: {key}")
        frozen[key] = code
    return MappingProxyType(frozen)
