"""
Records exchanged between the manager and the workers.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Tuple


class EntityLabel(str, Enum):
    """Named-entity categories a result may carry."""
    PERSON = 'PERSON'
    LOCATION = 'LOCATION'
    ORGANIZATION = 'ORGANIZATION'

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class Entity:
    """A single recognized token and its category."""
    word: str
    label: EntityLabel

    def __str__(self):
        return f"{self.word}:{self.label.value}"


@dataclass(frozen=True)
class Job:
    """A unit of work dequeued from the input queue.

    ``job_id`` is assigned by the producer and stays the same across
    redeliveries of the same message.
    """
    job_id: str
    source_locator: str


@dataclass(frozen=True)
class Result:
    """The outcome published for a job."""
    job_id: str
    sentiment_score: int
    entities: Tuple[Entity, ...] = field(default_factory=tuple)
    source_text: str = ''

    def __post_init__(self):
        object.__setattr__(self, 'entities', tuple(self.entities))
