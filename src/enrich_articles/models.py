"""Data models for the enrich stage."""

from dataclasses import dataclass, field

from extract_articles.models import ArticleRecord


@dataclass(frozen=True, order=True)
class Entity:
    """Named entity found in an article."""
    name: str
    type: str


@dataclass(frozen=True)
class Analysis:
    """What the NLP toolkit returns for one text."""
    entities: frozenset[Entity] = frozenset()
    sentiment: float = 0.0
    keyphrases: tuple[str, ...] = ()


@dataclass(frozen=True)
class EnrichedDocument:
    """An ArticleRecord plus NLP annotations. Created once per fingerprint."""
    article: ArticleRecord
    entities: frozenset[Entity] = field(default_factory=frozenset)
    sentiment_score: float = 0.0
    keyphrases: tuple[str, ...] = ()

    @property
    def fingerprint(self) -> str:
        return self.article.content_fingerprint
