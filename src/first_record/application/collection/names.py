"""
Scientific name normalization.

Accepts the sloppy input users paste ("fistularia  Petimba Lacepède, 1803")
and returns a canonical binomial or trinomial plus any warnings about
what was changed.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from dataclasses import dataclass, field

from first_record.shared.exceptions import InvalidQueryError

logger = logging.getLogger(__name__)

_ALLOWED_RE = re.compile(r"[^A-Za-z\s.\-]")
_WHITESPACE_RE = re.compile(r"\s+")
_RANK_MARKERS = {"var.", "subsp.", "ssp.", "f.", "cf.", "aff."}


@dataclass
class NormalizedName:
    """Result of normalizing one user-supplied name."""

    original: str
    name: str
    warnings: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.original != self.name

    def to_dict(self) -> dict[str, object]:
        return {"original": self.original, "name": self.name, "warnings": list(self.warnings)}


class NameNormalizer:
    """Static helpers for turning user input into search-ready names."""

    @staticmethod
    def normalize(raw: str) -> NormalizedName:
        """
        Normalize a scientific name.

        Genus is capitalized, epithets lower-cased, authorities and
        characters outside Latin letters, dots and hyphens stripped.

        Raises:
            InvalidQueryError: Nothing usable is left after cleaning
        """
        original = raw or ""
        warnings: list[str] = []

        text = unicodedata.normalize("NFKD", original)
        text = "".join(c for c in text if not unicodedata.combining(c))

        # Authority starts at the first capitalized, parenthesized or dated token after the epithet
        tokens = text.split()
        for i, token in enumerate(tokens[2:], start=2):
            if token[0] == "(" or token[0].isupper() or any(c.isdigit() for c in token):
                warnings.append("Removed author/year suffix")
                tokens = tokens[:i]
                break
        text = " ".join(tokens)

        cleaned = _ALLOWED_RE.sub(" ", text)
        if cleaned != text:
            warnings.append("Removed characters not allowed in scientific names")
        parts = _WHITESPACE_RE.sub(" ", cleaned).strip().split(" ")
        parts = [p for p in parts if p]

        if not parts:
            raise InvalidQueryError(original, "no scientific name left after cleaning")

        genus, *rest = parts
        canonical = [genus[:1].upper() + genus[1:].lower()]
        canonical.extend(p.lower() for p in rest)
        if canonical[0] != genus or any(a != b for a, b in zip(canonical[1:], rest)):
            warnings.append("Adjusted capitalization (Genus epithet)")

        epithets = [p for p in canonical[1:] if p not in _RANK_MARKERS]
        if not epithets:
            warnings.append("Only a genus was given")
        elif len(epithets) > 2:
            warnings.append("More than a trinomial was given")

        name = " ".join(canonical)
        if warnings:
            logger.debug(f"Normalized name {original!r} -> {name!r}: {'; '.join(warnings)}")
        return NormalizedName(original=original, name=name, warnings=warnings)

    @staticmethod
    def normalize_many(raw_names: list[str]) -> tuple[list[NormalizedName], list[str]]:
        """
        Normalize several names, skipping the unusable ones.

        Returns:
            (normalized names, error messages for skipped inputs)
        """
        results: list[NormalizedName] = []
        errors: list[str] = []
        for raw in raw_names:
            try:
                results.append(NameNormalizer.normalize(raw))
            except InvalidQueryError as e:
                errors.append(str(e))
        return results, errors
