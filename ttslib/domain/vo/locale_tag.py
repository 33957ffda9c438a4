from __future__ import annotations


def normalize_locale(tag: str) -> str:
    """Return the unified form of a locale tag.

    ``en_us`` and ``EN-us`` both become ``en-US``; a four-letter subtag is
    treated as a script (``zh-hant-tw`` -> ``zh-Hant-TW``).
    """

    parts = [part for part in tag.strip().replace("_", "-").split("-") if part]
    if not parts:
        raise ValueError("Locale tag must not be empty.")

    normalized = [parts[0].lower()]
    for part in parts[1:]:
        if len(part) == 4 and part.isalpha():
            normalized.append(part.title())
        elif len(part) in (2, 3):
            normalized.append(part.upper())
        else:
            normalized.append(part.lower())
    return "-".join(normalized)
