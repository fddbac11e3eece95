"""Story files: a content block plus its variants, stored as YAML."""

from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from storyloop.models.variant import ContentBlock, Variant


class Story(BaseModel):
    """On-disk shape of a story file."""

    id: str
    title: str = ""
    content: str
    variants: list[Variant] = Field(default_factory=list)

    @property
    def block(self) -> ContentBlock:
        return ContentBlock(id=self.id, title=self.title, content=self.content)

    @classmethod
    def load(cls, path: Path) -> "Story":
        """
        Load a story from YAML.

        Example file:

            id: leadership
            title: Leadership story
            content: Led a team of 5
            variants:
              - id: v1
                content: Led a team of 5 engineers
                target_label: Senior PM

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the YAML is not a mapping or fails validation
        """
        if not path.exists():
            raise FileNotFoundError(f"Story file not found: {path}")

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)

        if not isinstance(data, dict):
            raise ValueError(f"Story file must contain a mapping: {path}")

        return cls(**data)
