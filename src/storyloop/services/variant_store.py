"""In-memory store for a content block and its variants."""

from typing import Optional

import structlog

from storyloop.models.diff import DiffFunction, DiffToken, word_diff
from storyloop.models.variant import ContentBlock, Variant, VariantClassification
from storyloop.services.exceptions import DuplicateVariantError, VariantNotFoundError
from storyloop.services.ranking import rank

logger = structlog.get_logger()


class VariantStore:
    """
    Holds one base content block and its variants.

    Insertion order is the source of truth; display order is computed on
    demand with ranking.rank(). The store never touches persistence or the
    network.

    Example:
        >>> store = VariantStore(ContentBlock(id="s1", content="Led a team of 5"))
        >>> store.add_variant(Variant(id="v1", content="Led a team of 5 in Q1"))
        >>> [t.kind for t in store.get_diff_against_base("v1")][-1]
        'added'
    """

    def __init__(
        self,
        base: ContentBlock,
        variants: Optional[list[Variant]] = None,
        diff: DiffFunction = word_diff,
    ):
        """
        Args:
            base: The canonical content block
            variants: Initial variants, in insertion order
            diff: Word diff implementation (word_diff or lcs_word_diff)
        """
        self.base = base
        self._diff = diff
        self._variants: list[Variant] = []
        for variant in variants or []:
            self.add_variant(variant)

    def __len__(self) -> int:
        return len(self._variants)

    def __contains__(self, variant_id: object) -> bool:
        return any(v.id == variant_id for v in self._variants)

    @property
    def variants(self) -> list[Variant]:
        """Variants in insertion order (a copy)."""
        return list(self._variants)

    def add_variant(self, variant: Variant) -> None:
        """
        Append a variant.

        Raises:
            DuplicateVariantError: If a variant with the same id is present
        """
        if variant.id in self:
            raise DuplicateVariantError(variant.id)
        self._variants.append(variant)
        logger.debug(
            "variant_added",
            content_id=self.base.id,
            variant_id=variant.id,
            classification=variant.classification.value,
        )

    def remove_variant(self, variant_id: str) -> None:
        """Remove by id. Unknown ids are ignored."""
        before = len(self._variants)
        self._variants = [v for v in self._variants if v.id != variant_id]
        if len(self._variants) != before:
            logger.debug("variant_removed", content_id=self.base.id, variant_id=variant_id)

    def get_variant(self, variant_id: str) -> Variant:
        """
        Raises:
            VariantNotFoundError: If no variant has this id
        """
        for variant in self._variants:
            if variant.id == variant_id:
                return variant
        raise VariantNotFoundError(variant_id)

    def find_variant(self, variant_id: Optional[str]) -> Optional[Variant]:
        """Like get_variant, but returns None for unknown (or None) ids."""
        return next((v for v in self._variants if v.id == variant_id), None)

    def get_ordered_variants(self) -> list[Variant]:
        return rank(self._variants)

    def filter_by_classification(self, classification: VariantClassification) -> list[Variant]:
        return [v for v in self.get_ordered_variants() if v.classification == classification]

    def filter_by_tag(self, tag: str) -> list[Variant]:
        return [v for v in self.get_ordered_variants() if tag in v.tags]

    def diff_against_base(self, text: str) -> list[DiffToken]:
        """Word diff from the base content to arbitrary text."""
        return self._diff(self.base.content, text)

    def get_diff_against_base(self, variant_id: str) -> list[DiffToken]:
        """
        Raises:
            VariantNotFoundError: If no variant has this id
        """
        return self._diff(self.base.content, self.get_variant(variant_id).content)

    def update_variant_content(self, variant_id: str, content: str) -> Variant:
        """
        Replace a variant's text in place (same position, same id).

        AI-written variants become "human-edited-ai" once a person changes them.

        Raises:
            VariantNotFoundError: If no variant has this id
        """
        current = self.get_variant(variant_id)
        if current.content == content:
            return current

        created_by = "human-edited-ai" if current.created_by == "ai" else current.created_by
        updated = current.model_copy(update={"content": content, "created_by": created_by})
        index = self._variants.index(current)
        self._variants[index] = updated
        logger.info("variant_content_updated", content_id=self.base.id, variant_id=variant_id)
        return updated
