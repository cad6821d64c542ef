"""
Course Models

Read-only course content: concepts, their high-level topics and the
items to memorize. Field aliases match the stored course documents.
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class MemorizeField(BaseModel):
    """Flashcard layout for a concept: what to recall about which items."""

    fields: list[str] = Field(default_factory=list, description="Facets to describe for each item")
    items: list[str] = Field(default_factory=list, description="Items to memorize")


class Concept(BaseModel):
    """A named unit of course content."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    high_level: list[str] = Field(default_factory=list, alias="high-level", description="Topics for the deep-dive")
    memorize: MemorizeField = Field(default_factory=MemorizeField)


class Course(BaseModel):
    """A complete course definition."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    background_knowledge: list[str] = Field(default_factory=list, alias="backgroundKnowledge")
    concepts: list[Concept] = Field(default_factory=list)
    drawing_connections: list[str] = Field(default_factory=list, alias="drawing-connections")

    def get_concept(self, concept_name: str) -> Optional[Concept]:
        for concept in self.concepts:
            if concept.name == concept_name:
                return concept
        return None

    def high_level_topics(self) -> list[str]:
        """Overview topics: the background knowledge list, or the concept names when it is empty."""
        if self.background_knowledge:
            return list(self.background_knowledge)
        return [concept.name for concept in self.concepts]

    @property
    def concept_names(self) -> list[str]:
        return [concept.name for concept in self.concepts]
