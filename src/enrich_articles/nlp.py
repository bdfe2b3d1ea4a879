"""NLP toolkit: named entities and keyphrases with spaCy, sentiment with transformers."""

from __future__ import annotations

import logging
import re
import threading
from typing import Any, Protocol

import pycountry
import spacy
from transformers import pipeline as hf_pipeline

from enrich_articles.models import Analysis, Entity

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "en_core_web_sm"
DEFAULT_SENTIMENT_MODEL = "distilbert/distilbert-base-uncased-finetuned-sst-2-english"
ALLOWED_LABELS = {"GPE", "ORG", "PERSON", "NORP", "LOC"}


class ModelLoadError(Exception):
    """Raised when an NLP model cannot be loaded."""


class NlpToolkit(Protocol):
    def analyze(self, text: str) -> Analysis: ...


def _normalize_entity_name(text: str) -> str:
    entity_name = text.replace("\n", " ").strip().upper()
    if entity_name.endswith("&APOS;S"):
        entity_name = entity_name[:-7]
    if entity_name.endswith(("'S", "S'", "’S", "S’")):
        entity_name = entity_name[:-2]
    return re.sub(r"[^\w]+$", "", entity_name).strip()


def _normalize_gpe_name(name: str) -> str:
    if name.startswith("THE "):
        name = name[4:]
    name = re.sub(r"[^\w\s]", "", name)
    return re.sub(r"\s+", " ", name).strip()


def _normalize_country_name(name: str) -> str | None:
    manual = {
        "UK": "UNITED KINGDOM",
        "BRITAIN": "UNITED KINGDOM",
        "US": "UNITED STATES",
        "USA": "UNITED STATES",
    }
    if name in manual:
        return manual[name]
    for candidate in (name, name.title()):
        try:
            country = pycountry.countries.lookup(candidate)
        except LookupError:
            continue
        return country.name.upper()
    return None


def _entity_key(label: str, text: str) -> str:
    name = _normalize_entity_name(text)
    if label == "GPE" and name:
        name = _normalize_gpe_name(name)
        if name:
            name = _normalize_country_name(name) or name
    return name


def collect_entities(ents) -> frozenset[Entity]:
    """Deduplicate spaCy entities; a name takes its most frequent label.

    Ties go to the label seen first.
    """
    first_label: dict[str, str] = {}
    label_counts: dict[str, dict[str, int]] = {}
    for ent in ents:
        if ent.label_ not in ALLOWED_LABELS:
            continue
        name = _entity_key(ent.label_, ent.text)
        if not name:
            continue
        first_label.setdefault(name, ent.label_)
        counts = label_counts.setdefault(name, {})
        counts[ent.label_] = counts.get(ent.label_, 0) + 1

    entities = set()
    for name, counts in label_counts.items():
        best = max(counts.values())
        labels = [label for label, count in counts.items() if count == best]
        label = labels[0] if len(labels) == 1 else first_label[name]
        entities.add(Entity(name=name, type=label))
    return frozenset(entities)


def collect_keyphrases(noun_chunks, limit: int) -> tuple[str, ...]:
    """Rank noun-chunk phrases by frequency, then by first appearance."""
    counts: dict[str, int] = {}
    first_seen: dict[str, int] = {}
    for position, chunk in enumerate(noun_chunks):
        words = [
            (token.lemma_ or token.text).lower()
            for token in chunk
            if not (token.is_stop or token.is_punct or token.like_num or token.is_space)
        ]
        phrase = " ".join(words).strip()
        if len(phrase) < 3:
            continue
        counts[phrase] = counts.get(phrase, 0) + 1
        first_seen.setdefault(phrase, position)

    ranked = sorted(counts, key=lambda phrase: (-counts[phrase], first_seen[phrase]))
    return tuple(ranked[:limit])


def signed_sentiment(prediction: dict[str, Any]) -> float:
    """Map a {label, score} prediction onto [-1, 1]."""
    label = str(prediction.get("label", "")).upper()
    score = float(prediction.get("score", 0.0))
    if label.startswith("NEG"):
        score = -score
    elif not label.startswith("POS"):
        score = 0.0
    return max(-1.0, min(1.0, score))


class SpacyToolkit:
    """Loads models lazily, once per process, on first analysis."""

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        sentiment_model: str | None = DEFAULT_SENTIMENT_MODEL,
        max_keyphrases: int = 10,
    ) -> None:
        self.model = model
        self.sentiment_model = sentiment_model
        self.max_keyphrases = max_keyphrases
        self._nlp = None
        self._classifier = None
        self._load_lock = threading.Lock()

    def load(self) -> None:
        with self._load_lock:
            if self._nlp is None:
                logger.info("Loading spaCy model: %s", self.model)
                try:
                    self._nlp = spacy.load(self.model)
                except OSError as e:
                    raise ModelLoadError(f"spaCy model {self.model!r} unavailable: {e}") from e
            if self.sentiment_model and self._classifier is None:
                logger.info("Loading sentiment model: %s", self.sentiment_model)
                try:
                    self._classifier = hf_pipeline("sentiment-analysis", model=self.sentiment_model)
                except (OSError, ValueError) as e:
                    raise ModelLoadError(f"sentiment model {self.sentiment_model!r} unavailable: {e}") from e

    def analyze(self, text: str) -> Analysis:
        self.load()
        doc = self._nlp(text)
        sentiment = 0.0
        if self._classifier is not None:
            sentiment = signed_sentiment(self._classifier(text, truncation=True)[0])
        return Analysis(
            entities=collect_entities(doc.ents),
            sentiment=sentiment,
            keyphrases=collect_keyphrases(doc.noun_chunks, self.max_keyphrases),
        )
