"""Functional-group taxonomy: Sea Around Us groups collapsed to eight categories.

The API reports catch for ~30 functional groups, most split by body-length
class ("Pelagic (30 - 89 cm)").  Size classes are dropped and the remaining
habitat/taxon label is mapped onto the fixed category order in
``shoal.config.CATEGORIES``.
"""

import re

from shoal.config import CATEGORIES

_SIZE_CLASS_RE = re.compile(r"\s*\([^)]*\)\s*$")
"""Matches a trailing body-length class like ' (>=90 cm)'."""

GROUP_TO_CATEGORY: dict[str, str] = {
    "pelagic": "pelagic",
    "bathypelagic": "bathyal",
    "bathydemersal": "bathyal",
    "demersal": "demersal",
    "benthopelagic": "benthopelagic",
    "reef-associated": "reef",
    "small to medium reef assoc. fish": "reef",
    "large reef assoc. fish": "reef",
    "shark": "elasmobranch",
    "ray": "elasmobranch",
    "flatfish": "flatfish",
    "cephalopods": "invertebrate",
    "shrimps": "invertebrate",
    "lobsters, crabs": "invertebrate",
    "jellyfish": "invertebrate",
    "krill": "invertebrate",
    "other demersal invertebrates": "invertebrate",
}
"""Size-stripped, lowercased functional group → category."""


def normalize_group(group: str) -> str:
    """Lowercase a functional-group label and drop its size class.

    Examples:
        "Pelagic (30 - 89 cm)" → "pelagic"
        "Lobsters, crabs"      → "lobsters, crabs"
    """
    return _SIZE_CLASS_RE.sub("", group.strip()).strip().lower()


def category_for(group: str) -> str | None:
    """Return the category for a raw functional-group label, or None if unmapped."""
    return GROUP_TO_CATEGORY.get(normalize_group(group))


def category_position(category: str) -> int:
    """0-based position of a category in the fixed order.

    Raises:
        KeyError: If ``category`` is not one of ``CATEGORIES``.
    """
    try:
        return CATEGORIES.index(category)
    except ValueError:
        msg = f"Unknown category {category!r}. Known: {', '.join(CATEGORIES)}"
        raise KeyError(msg) from None
