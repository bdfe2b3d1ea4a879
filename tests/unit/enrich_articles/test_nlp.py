"""Tests for enrich_articles.nlp module."""

from types import SimpleNamespace
from unittest.mock import patch, MagicMock

import pytest

from enrich_articles.models import Entity
from enrich_articles.nlp import (
    ModelLoadError,
    SpacyToolkit,
    _entity_key,
    _normalize_country_name,
    _normalize_entity_name,
    _normalize_gpe_name,
    collect_entities,
    collect_keyphrases,
    signed_sentiment,
)


def _ent(text: str, label: str) -> SimpleNamespace:
    return SimpleNamespace(text=text, label_=label)


def _token(text: str, lemma: str | None = None, stop: bool = False, punct: bool = False, num: bool = False):
    return SimpleNamespace(
        text=text,
        lemma_=lemma if lemma is not None else text,
        is_stop=stop,
        is_punct=punct,
        like_num=num,
        is_space=False,
    )


class TestNormalizeEntityName:
    def test_uppercases(self) -> None:
        assert _normalize_entity_name("John Smith") == "JOHN SMITH"

    def test_removes_possessive_s(self) -> None:
        assert _normalize_entity_name("Biden's") == "BIDEN"

    def test_removes_curly_possessive(self) -> None:
        assert _normalize_entity_name("Trump’s") == "TRUMP"

    def test_removes_trailing_punctuation(self) -> None:
        assert _normalize_entity_name("London,") == "LONDON"

    def test_removes_apos_s(self) -> None:
        assert _normalize_entity_name("China&apos;s") == "CHINA"


class TestNormalizeGpeName:
    def test_removes_the_prefix(self) -> None:
        assert _normalize_gpe_name("THE UNITED STATES") == "UNITED STATES"

    def test_strips_punctuation(self) -> None:
        assert _normalize_gpe_name("NEW YORK,") == "NEW YORK"


class TestNormalizeCountryName:
    def test_manual_aliases(self) -> None:
        assert _normalize_country_name("UK") == "UNITED KINGDOM"
        assert _normalize_country_name("USA") == "UNITED STATES"

    def test_pycountry_lookup(self) -> None:
        assert _normalize_country_name("FRANCE") == "FRANCE"

    def test_unknown_returns_none(self) -> None:
        assert _normalize_country_name("NEW YORK") is None


class TestEntityKey:
    def test_gpe_country_normalized(self) -> None:
        assert _entity_key("GPE", "the UK") == "UNITED KINGDOM"

    def test_gpe_city_kept(self) -> None:
        assert _entity_key("GPE", "New York's") == "NEW YORK"

    def test_non_gpe_not_country_mapped(self) -> None:
        assert _entity_key("ORG", "US") == "US"


class TestCollectEntities:
    def test_filters_labels_and_dedupes(self) -> None:
        ents = [
            _ent("Acme Corp", "ORG"),
            _ent("Acme Corp", "ORG"),
            _ent("Tuesday", "DATE"),
            _ent("Britain", "GPE"),
            _ent("UK", "GPE"),
        ]
        assert collect_entities(ents) == frozenset({
            Entity("ACME CORP", "ORG"),
            Entity("UNITED KINGDOM", "GPE"),
        })

    def test_majority_label_wins(self) -> None:
        ents = [_ent("Jordan", "GPE"), _ent("Jordan", "PERSON"), _ent("Jordan", "PERSON")]
        assert collect_entities(ents) == frozenset({Entity("JORDAN", "PERSON")})

    def test_tie_goes_to_first_label(self) -> None:
        ents = [_ent("Amazon", "ORG"), _ent("Amazon", "LOC")]
        assert collect_entities(ents) == frozenset({Entity("AMAZON", "ORG")})

    def test_empty_names_skipped(self) -> None:
        assert collect_entities([_ent("...", "ORG")]) == frozenset()


class TestCollectKeyphrases:
    def test_ranks_by_frequency_then_position(self) -> None:
        chunks = [
            [_token("the", stop=True), _token("central"), _token("bank")],
            [_token("interest"), _token("rates", lemma="rate")],
            [_token("interest"), _token("rate")],
            [_token("a", stop=True), _token("central"), _token("bank")],
            [_token("inflation")],
        ]
        assert collect_keyphrases(chunks, limit=10) == ("central bank", "interest rate", "inflation")

    def test_drops_short_numeric_and_punctuation(self) -> None:
        chunks = [
            [_token("it", stop=True)],
            [_token("5", num=True), _token("%", punct=True)],
            [_token("ox")],
        ]
        assert collect_keyphrases(chunks, limit=10) == ()

    def test_limit(self) -> None:
        chunks = [[_token(f"phrase{i}")] for i in range(5)]
        assert len(collect_keyphrases(chunks, limit=3)) == 3


class TestSignedSentiment:
    def test_positive(self) -> None:
        assert signed_sentiment({"label": "POSITIVE", "score": 0.9}) == 0.9

    def test_negative(self) -> None:
        assert signed_sentiment({"label": "NEGATIVE", "score": 0.8}) == -0.8

    def test_neutral_or_unknown_is_zero(self) -> None:
        assert signed_sentiment({"label": "NEUTRAL", "score": 0.7}) == 0.0

    def test_clamped(self) -> None:
        assert signed_sentiment({"label": "POSITIVE", "score": 1.5}) == 1.0


class TestSpacyToolkit:
    @patch("enrich_articles.nlp.hf_pipeline")
    @patch("enrich_articles.nlp.spacy")
    def test_analyze(self, mock_spacy, mock_pipeline) -> None:
        doc = MagicMock()
        doc.ents = [_ent("Acme Corp", "ORG")]
        doc.noun_chunks = [[_token("central"), _token("bank")]]
        mock_spacy.load.return_value = MagicMock(return_value=doc)
        classifier = MagicMock(return_value=[{"label": "NEGATIVE", "score": 0.6}])
        mock_pipeline.return_value = classifier

        analysis = SpacyToolkit(model="test-model", sentiment_model="test-sentiment").analyze("text")

        assert analysis.entities == frozenset({Entity("ACME CORP", "ORG")})
        assert analysis.sentiment == -0.6
        assert analysis.keyphrases == ("central bank",)
        mock_spacy.load.assert_called_once_with("test-model")
        mock_pipeline.assert_called_once_with("sentiment-analysis", model="test-sentiment")
        classifier.assert_called_once_with("text", truncation=True)

    @patch("enrich_articles.nlp.hf_pipeline")
    @patch("enrich_articles.nlp.spacy")
    def test_models_loaded_once(self, mock_spacy, mock_pipeline) -> None:
        doc = MagicMock()
        doc.ents = []
        doc.noun_chunks = []
        mock_spacy.load.return_value = MagicMock(return_value=doc)
        mock_pipeline.return_value = MagicMock(return_value=[{"label": "POSITIVE", "score": 0.5}])

        toolkit = SpacyToolkit()
        toolkit.analyze("one")
        toolkit.analyze("two")

        assert mock_spacy.load.call_count == 1
        assert mock_pipeline.call_count == 1

    @patch("enrich_articles.nlp.hf_pipeline")
    @patch("enrich_articles.nlp.spacy")
    def test_no_sentiment_model(self, mock_spacy, mock_pipeline) -> None:
        doc = MagicMock()
        doc.ents = []
        doc.noun_chunks = []
        mock_spacy.load.return_value = MagicMock(return_value=doc)

        analysis = SpacyToolkit(sentiment_model=None).analyze("text")

        assert analysis.sentiment == 0.0
        mock_pipeline.assert_not_called()

    @patch("enrich_articles.nlp.spacy")
    def test_missing_spacy_model_raises_model_load_error(self, mock_spacy) -> None:
        mock_spacy.load.side_effect = OSError("[E050] Can't find model")
        with pytest.raises(ModelLoadError):
            SpacyToolkit(sentiment_model=None).analyze("text")

    @patch("enrich_articles.nlp.hf_pipeline")
    @patch("enrich_articles.nlp.spacy")
    def test_missing_sentiment_model_raises_model_load_error(self, mock_spacy, mock_pipeline) -> None:
        mock_pipeline.side_effect = OSError("not found")
        with pytest.raises(ModelLoadError):
            SpacyToolkit(sentiment_model="missing").analyze("text")
