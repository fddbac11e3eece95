"""Priority ordering of content variants.

Variants written to fill a detected gap are shown first, then variants
developed for a specific job, then generic fallbacks.
"""

from typing import Iterable

from storyloop.models.variant import Variant, VariantClassification


PRIORITY = {
    VariantClassification.GAP_FILL: 1,
    VariantClassification.JOB_TARGET: 2,
    VariantClassification.FALLBACK: 3,
}


def classify(variant: Variant) -> VariantClassification:
    return variant.classification


def priority(variant: Variant) -> int:
    """Numeric priority (lower sorts first)."""
    return PRIORITY[classify(variant)]


def rank(variants: Iterable[Variant]) -> list[Variant]:
    """
    Return variants in display order.

    sorted() is stable, so variants with the same classification keep their
    insertion order and ranking an already ranked list changes nothing.
    The input is not modified.
    """
    return sorted(variants, key=priority)
