from __future__ import annotations

import logging
import math
import re
import warnings
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
from sklearn.exceptions import ConvergenceWarning
from sklearn.neural_network import MLPClassifier

from tokenstream.model import (
    ClassificationOutcome,
    ClassifierFailure,
    ClassifierSettings,
    ParseResult,
)

logger = logging.getLogger(__name__)

INTERACTIVE_LABEL = "Interactive element"
VISUAL_LABEL = "Visual element"

ALWAYS_INTERACTIVE = frozenset({"script", "button", "a", "form", "input", "select", "textarea"})
SCORED_TAGS = frozenset({"button", "a", "input", "select", "form"})
FALLBACK_VISUAL = frozenset({"div", "span", "p", "h1", "h2", "h3", "img"})

_CLASS_HINT = re.compile(r"button|clickable|interactive|menu|nav", re.IGNORECASE)
_VALUE_HINT = re.compile(r"button|click|submit|active", re.IGNORECASE)

# Below this share of the majority class the minority gets oversampled ...
IMBALANCE_RATIO = 0.2
# ... until it reaches this share.
TARGET_RATIO = 0.5


def extract_features(tag_name: str, result: ParseResult, content_length: Optional[int] = None) -> List[float]:
    """
    [attr_count, event_handlers, has_id, has_class, content_length, heuristic_score]
    Attributes and content are aggregated over every tag with the same name.
    """
    attrs = result.attributes_for(tag_name)
    event_handlers = sum(1 for a in attrs if a.name.startswith("on"))
    has_id = int(any(a.name == "id" for a in attrs))
    has_class = int(any(a.name == "class" for a in attrs))
    if content_length is None:
        content_length = len(" ".join(result.content.get(tag_name, [])))

    score = 0
    if tag_name in SCORED_TAGS:
        score += 2
    if tag_name in ("div", "span") and any(a.name == "class" and _CLASS_HINT.search(a.value) for a in attrs):
        score += 1
    if event_handlers > 0:
        score += 1
    if any(_VALUE_HINT.search(a.value) for a in attrs):
        score += 1

    return [len(attrs), event_handlers, has_id, has_class, content_length, score]


def label_for(tag_name: str, features: Sequence[float]) -> int:
    event_handlers, score = features[1], features[5]
    return int(tag_name in ALWAYS_INTERACTIVE or event_handlers > 0 or score >= 2)


def fallback_label(tag_name: str) -> int:
    return 0 if tag_name in FALLBACK_VISUAL else 1


def oversample(features: np.ndarray, labels: np.ndarray, rng: np.random.Generator) -> Tuple[np.ndarray, np.ndarray]:
    """
    Duplicates random minority rows (with replacement) when one class is under
    20% of the other, until the minority reaches 50% of the majority.
    """
    ones = int(labels.sum())
    zeros = len(labels) - ones
    if ones == 0 or zeros == 0:
        return features, labels
    if ones >= zeros * IMBALANCE_RATIO and zeros >= ones * IMBALANCE_RATIO:
        return features, labels

    minority = 1 if ones < zeros else 0
    minority_count, majority_count = min(ones, zeros), max(ones, zeros)
    needed = math.ceil(majority_count * TARGET_RATIO) - minority_count
    logger.info("Balancing dataset - interactive: %d, non-interactive: %d", ones, zeros)

    minority_idx = np.flatnonzero(labels == minority)
    extra = rng.choice(minority_idx, size=needed, replace=True)
    return np.vstack([features, features[extra]]), np.concatenate([labels, labels[extra]])


def default_model_factory(settings: ClassifierSettings) -> Callable[[int], object]:
    def build(n_samples: int):
        return MLPClassifier(
            hidden_layer_sizes=tuple(settings.hidden_units),
            learning_rate_init=settings.learning_rate,
            max_iter=settings.max_iter,
            batch_size=max(1, min(settings.batch_size, n_samples)),
            random_state=settings.random_seed,
        )
    return build


class ContentClassifier:
    """
    A per-document binary classifier: fitted once on the tags that carry content
    or attributes, queried for the empty ones, then thrown away.
    """

    def __init__(self, settings: Optional[ClassifierSettings] = None, model_factory: Optional[Callable[[int], object]] = None):
        self.settings = settings or ClassifierSettings()
        self.model_factory = model_factory or default_model_factory(self.settings)
        self.rng = np.random.default_rng(self.settings.random_seed)
        self.model = None

    def fit(self, features: np.ndarray, labels: np.ndarray) -> None:
        features, labels = oversample(features, labels, self.rng)
        if len(np.unique(labels)) < 2:
            raise ValueError("training data holds a single class")
        model = self.model_factory(len(labels))
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", category=ConvergenceWarning)
            model.fit(features, labels)
        self.model = model
        logger.info("Classifier trained on %d tag examples", len(labels))

    def predict(self, features: Sequence[float]) -> int:
        if self.model is None:
            raise RuntimeError("classifier has not been fitted")
        return int(self.model.predict(np.asarray([features], dtype=float))[0])


def _record(result: ParseResult, outcome: ClassificationOutcome, tag_name: str, label: int) -> None:
    if label == 1:
        outcome.predicted_content[tag_name] = INTERACTIVE_LABEL
        result.functional_content.setdefault(tag_name, []).append(INTERACTIVE_LABEL)
    else:
        outcome.predicted_content[tag_name] = VISUAL_LABEL
        result.visual_content.setdefault(tag_name, []).append(VISUAL_LABEL)


def classify_empty_tags(
        result: ParseResult,
        settings: Optional[ClassifierSettings] = None,
        model_factory: Optional[Callable[[int], object]] = None,
) -> ClassificationOutcome:
    """
    Labels every open tag without content as interactive or visual and records the
    label in the predicted, functional and visual content maps of `result`.
    Classifier problems never escape: they switch the run to the static allowlist.
    """
    settings = settings or ClassifierSettings()
    outcome = ClassificationOutcome()

    training = [
        tag.name for tag in result.open_tags
        if result.content.get(tag.name) or result.attributes_for(tag.name)
    ]
    empty_names = list(dict.fromkeys(
        tag.name for tag in result.open_tags if not result.content.get(tag.name)
    ))

    if not training:
        logger.debug("No training examples for the classifier, skipping.")
        return outcome

    classifier = None
    if not settings.enabled:
        outcome.failure = ClassifierFailure.DISABLED
    else:
        rows = [extract_features(name, result) for name in training]
        labels = np.asarray([label_for(name, row) for name, row in zip(training, rows)], dtype=int)
        features = np.asarray(rows, dtype=float)
        outcome.trained_on = len(rows)
        try:
            classifier = ContentClassifier(settings, model_factory)
            classifier.fit(features, labels)
        except ValueError as e:
            outcome.failure = ClassifierFailure.SINGLE_CLASS if "single class" in str(e) else ClassifierFailure.FIT_ERROR
            logger.warning("ClassifierError: could not train (%s), using static fallback.", e)
            classifier = None
        except Exception as e:
            outcome.failure = ClassifierFailure.FIT_ERROR
            logger.warning("ClassifierError: training failed (%s), using static fallback.", e, exc_info=True)
            classifier = None

    for name in empty_names:
        label = None
        if classifier is not None:
            try:
                label = classifier.predict(extract_features(name, result, content_length=0))
            except Exception as e:
                outcome.failure = ClassifierFailure.PREDICT_ERROR
                logger.warning("ClassifierError: prediction for <%s> failed: %s", name, e)
        if label is None:
            outcome.used_fallback = True
            label = fallback_label(name)
        _record(result, outcome, name, label)

    logger.info(
        "Classified %d empty tag name(s): %d interactive, %d visual%s.",
        len(outcome.predicted_content), outcome.interactive_count, outcome.visual_count,
        " (static fallback)" if outcome.used_fallback else ""
    )
    return outcome
