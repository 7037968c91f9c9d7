"""Course metadata consumed read-only by the progress core."""

from __future__ import annotations

from dataclasses import dataclass, field

from src.progress.errors import ConceptNotFoundError


@dataclass(frozen=True)
class MemorizeField:
    """Flashcard fields and the items to memorize for a concept."""

    fields: tuple[str, ...] = ()
    items: tuple[str, ...] = ()


@dataclass(frozen=True)
class Concept:
    """A named unit of course content: discussion topics plus memorization items."""

    name: str
    high_level: tuple[str, ...] = ()  # discussion topics
    memorize: MemorizeField = field(default_factory=MemorizeField)

    @property
    def topics(self) -> tuple[str, ...]:
        return self.high_level

    @property
    def items(self) -> tuple[str, ...]:
        return self.memorize.items

    @classmethod
    def from_dict(cls, data: dict) -> Concept:
        memorize = data.get("memorize") or {}
        return cls(
            name=data["name"],
            high_level=tuple(data.get("high-level", data.get("high_level", []))),
            memorize=MemorizeField(
                fields=tuple(memorize.get("fields", [])),
                items=tuple(memorize.get("items", [])),
            ),
        )

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "high-level": list(self.high_level),
            "memorize": {
                "fields": list(self.memorize.fields),
                "items": list(self.memorize.items),
            },
        }


@dataclass(frozen=True)
class Course:
    """A generated course definition."""

    name: str
    concepts: tuple[Concept, ...] = ()
    background_knowledge: tuple[str, ...] = ()
    drawing_connections: tuple[str, ...] = ()

    @property
    def concept_names(self) -> list[str]:
        return [c.name for c in self.concepts]

    @property
    def high_level_topics(self) -> list[str]:
        """Topics discussed in the high-level phase (background knowledge, else concept names)."""
        if self.background_knowledge:
            return list(self.background_knowledge)
        return self.concept_names

    @property
    def total_items(self) -> int:
        return sum(len(c.items) for c in self.concepts)

    def has_concept(self, name: str) -> bool:
        return any(c.name == name for c in self.concepts)

    def get_concept(self, name: str | None) -> Concept:
        """
        Look up a concept by name.

        Raises:
            ConceptNotFoundError: if the course has no such concept
        """
        for concept in self.concepts:
            if concept.name == name:
                return concept
        raise ConceptNotFoundError(name, where=f"course '{self.name}'")

    def next_concept(self, name: str) -> Concept | None:
        """The concept following `name` in course order (None at the end)."""
        names = self.concept_names
        if name not in names:
            raise ConceptNotFoundError(name, where=f"course '{self.name}'")
        index = names.index(name) + 1
        return self.concepts[index] if index < len(self.concepts) else None

    @classmethod
    def from_dict(cls, data: dict) -> Course:
        return cls(
            name=data["name"],
            concepts=tuple(Concept.from_dict(c) for c in data.get("concepts", [])),
            background_knowledge=tuple(data.get("backgroundKnowledge") or []),
            drawing_connections=tuple(data.get("drawing-connections") or []),
        )

    def to_dict(self) -> dict:
        data = {
            "name": self.name,
            "concepts": [c.to_dict() for c in self.concepts],
            "drawing-connections": list(self.drawing_connections),
        }
        if self.background_knowledge:
            data["backgroundKnowledge"] = list(self.background_knowledge)
        return data
