"""
Sentiment scoring and named-entity extraction for fetched content.

The pipeline runs on NLTK: VADER scores each sentence and ``ne_chunk`` tags
named entities. The sentence splitter, scorer and tagger can be swapped out,
which is how the tests exercise the selection rules without the NLTK corpora.
"""
import logging
import threading
from dataclasses import dataclass, field
from typing import Tuple

import nltk
from nltk.sentiment.vader import SentimentIntensityAnalyzer

from sentiment_fleet.common.exceptions import AnalysisError
from sentiment_fleet.messaging.models import Entity, EntityLabel

logger = logging.getLogger(__name__)

# Five-class scale, 0 = very negative .. 4 = very positive
VERY_NEGATIVE, NEGATIVE, NEUTRAL, POSITIVE, VERY_POSITIVE = range(5)
NEUTRAL_SENTIMENT = NEUTRAL

# Upper bounds of the VADER compound score for each class below VERY_POSITIVE
COMPOUND_THRESHOLDS = (
    (-0.6, VERY_NEGATIVE),
    (-0.2, NEGATIVE),
    (0.2, NEUTRAL),
    (0.6, POSITIVE),
)

# Raw NER labels we keep, and what they are reported as
ENTITY_LABELS = {
    'PERSON': EntityLabel.PERSON,
    'ORGANIZATION': EntityLabel.ORGANIZATION,
    'LOCATION': EntityLabel.LOCATION,
    'GPE': EntityLabel.LOCATION,
}

# (resource path, download package)
NLTK_RESOURCES = (
    ('tokenizers/punkt_tab', 'punkt_tab'),
    ('taggers/averaged_perceptron_tagger_eng', 'averaged_perceptron_tagger_eng'),
    ('chunkers/maxent_ne_chunker_tab', 'maxent_ne_chunker_tab'),
    ('corpora/words', 'words'),
    ('sentiment/vader_lexicon.zip', 'vader_lexicon'),
)

_nltk_lock = threading.Lock()
_nltk_ready = False


def ensure_nltk_data():
    """Download any NLTK resource the default pipeline needs and is missing."""
    global _nltk_ready
    with _nltk_lock:
        if _nltk_ready:
            return
        for path, package in NLTK_RESOURCES:
            try:
                nltk.data.find(path)
            except LookupError:
                logger.info(f"Downloading NLTK resource: {package}")
                if not nltk.download(package, quiet=True):
                    raise AnalysisError(f"Could not download NLTK resource {package}")
        _nltk_ready = True


@dataclass(frozen=True)
class AnalysisResult:
    """Sentiment class and entities found in a piece of text."""
    sentiment_score: int
    entities: Tuple[Entity, ...] = field(default_factory=tuple)


def compound_to_class(compound):
    """Map a VADER compound score in [-1, 1] onto the five-class scale."""
    for upper_bound, sentiment in COMPOUND_THRESHOLDS:
        if compound <= upper_bound:
            return sentiment
    return VERY_POSITIVE


def select_sentiment(scored_sentences):
    """Pick the score of the longest sentence.

    Length is measured in characters and ties go to the first occurrence.

    Args:
        scored_sentences: Iterable of ``(sentence, score)`` pairs

    Returns:
        int: The chosen score, or NEUTRAL_SENTIMENT when there are no sentences
    """
    sentiment = NEUTRAL_SENTIMENT
    longest = 0
    for sentence, score in scored_sentences:
        if len(sentence) > longest:
            sentiment = score
            longest = len(sentence)
    return sentiment


def filter_entities(tagged_tokens):
    """Keep PERSON, LOCATION and ORGANIZATION tokens, in order.

    Args:
        tagged_tokens: Iterable of ``(word, raw_label)`` pairs from the tagger
    """
    entities = []
    for word, raw_label in tagged_tokens:
        label = ENTITY_LABELS.get(raw_label)
        if label is not None and word:
            entities.append(Entity(word=word, label=label))
    return tuple(entities)


def split_sentences(text):
    ensure_nltk_data()
    return nltk.sent_tokenize(text)


def tag_entities(text):
    """Token-level ``(word, raw_label)`` pairs for every named-entity chunk."""
    ensure_nltk_data()
    tagged = []
    for sentence in nltk.sent_tokenize(text):
        tree = nltk.ne_chunk(nltk.pos_tag(nltk.word_tokenize(sentence)))
        for node in tree:
            if isinstance(node, nltk.Tree):
                label = node.label()
                tagged.extend((word, label) for word, _tag in node.leaves())
    return tagged


class VaderSentenceScorer:
    """Scores one sentence on the five-class scale using VADER."""

    def __init__(self):
        self._analyzer = None

    def __call__(self, sentence):
        if self._analyzer is None:
            ensure_nltk_data()
            self._analyzer = SentimentIntensityAnalyzer()
        compound = self._analyzer.polarity_scores(sentence)['compound']
        return compound_to_class(compound)


class AnalysisPipeline:
    """
    Scores sentiment and extracts named entities from plain text.
    """
    def __init__(self, sentence_splitter=None, sentence_scorer=None, entity_tagger=None):
        self.sentence_splitter = sentence_splitter or split_sentences
        self.sentence_scorer = sentence_scorer or VaderSentenceScorer()
        self.entity_tagger = entity_tagger or tag_entities

    def warm_up(self):
        """Load models up front so the first job does not pay for it."""
        self.analyze("Warm up.")

    def analyze(self, text):
        """Analyze a piece of text.

        Empty or None input yields the neutral score and no entities.

        Raises:
            AnalysisError: If the NLP backend fails
        """
        if text is None or not text.strip():
            return AnalysisResult(sentiment_score=NEUTRAL_SENTIMENT, entities=())

        try:
            sentences = self.sentence_splitter(text)
            scored = [(sentence, self.sentence_scorer(sentence)) for sentence in sentences]
            tagged = self.entity_tagger(text)
        except AnalysisError:
            raise
        except Exception as e:
            raise AnalysisError(f"Analysis failed: {e}") from e

        result = AnalysisResult(
            sentiment_score=select_sentiment(scored),
            entities=filter_entities(tagged),
        )
        logger.debug(f"Sentiment {result.sentiment_score}, {len(result.entities)} entities")
        return result
