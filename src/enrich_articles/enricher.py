"""Run NLP enrichment over an article within a per-document time budget."""

from __future__ import annotations

import logging

from common.errors import EnrichmentError, ErrorKind
from common.timeouts import BudgetedRunner, BudgetExceeded
from enrich_articles.models import EnrichedDocument
from enrich_articles.nlp import ModelLoadError, NlpToolkit
from extract_articles.models import ArticleRecord

logger = logging.getLogger(__name__)


def _apply_word_limit(text: str, word_limit: int | None) -> str:
    if not word_limit or not text:
        return text
    words = text.split()
    if len(words) <= word_limit:
        return text
    return " ".join(words[:word_limit])


def build_input_text(article: ArticleRecord, word_limit: int | None = None) -> str:
    """Title and body joined, truncated to the word limit."""
    combined = " ".join(part for part in (article.title, article.body_text) if part)
    return _apply_word_limit(combined, word_limit)


class Enricher:
    """Wraps an NLP toolkit; failures come back as EnrichmentError."""

    def __init__(
        self,
        toolkit: NlpToolkit,
        time_budget: float | None = 30,
        word_limit: int | None = 2000,
        max_workers: int = 2,
    ) -> None:
        self.toolkit = toolkit
        self.word_limit = word_limit
        self._runner = BudgetedRunner(time_budget, max_workers=max_workers, name="enrich")

    def enrich(self, article: ArticleRecord) -> EnrichedDocument:
        text = build_input_text(article, self.word_limit)
        if not text:
            raise EnrichmentError(f"no text to analyze for {article.url}", ErrorKind.TERMINAL_CONTENT)

        try:
            analysis = self._runner.run(self.toolkit.analyze, text)
        except BudgetExceeded as e:
            raise EnrichmentError(f"analysis of {article.url} {e}", ErrorKind.TERMINAL_CONTENT) from e
        except ModelLoadError as e:
            raise EnrichmentError(str(e), ErrorKind.TERMINAL_SYSTEM) from e
        except Exception as e:
            logger.warning("NLP analysis failed for %s: %s", article.url, e)
            raise EnrichmentError(f"analysis failed for {article.url}: {e}", ErrorKind.TERMINAL_CONTENT) from e

        logger.debug(
            "Enriched %s: %d entities, sentiment %.2f",
            article.url, len(analysis.entities), analysis.sentiment,
        )
        return EnrichedDocument(
            article=article,
            entities=analysis.entities,
            sentiment_score=max(-1.0, min(1.0, analysis.sentiment)),
            keyphrases=tuple(analysis.keyphrases),
        )

    def close(self) -> None:
        self._runner.shutdown()
