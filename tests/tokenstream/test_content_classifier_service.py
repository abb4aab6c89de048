# tests/tokenstream/test_content_classifier_service.py
import numpy as np
import pytest
from sklearn.neural_network import MLPClassifier

from tokenstream.model import ClassifierFailure, ClassifierSettings
from tokenstream.services.content_classifier_service import (
    INTERACTIVE_LABEL,
    VISUAL_LABEL,
    ContentClassifier,
    classify_empty_tags,
    default_model_factory,
    extract_features,
    label_for,
    oversample,
)
from tokenstream.services.stream_parse_service import parse_tokens


def tok(kind, value):
    return {"kind": kind, "value": value}


class ConstantModel:
    """Stands in for the MLP: remembers what it was fitted on and always predicts one label."""

    def __init__(self, label):
        self.label = label
        self.fitted_on = None

    def fit(self, features, labels):
        self.fitted_on = (features, labels)
        return self

    def predict(self, rows):
        return np.full(len(rows), self.label)


class BrokenModel:
    def __init__(self, fail_on="fit"):
        self.fail_on = fail_on

    def fit(self, features, labels):
        if self.fail_on == "fit":
            raise RuntimeError("boom")
        return self

    def predict(self, rows):
        raise RuntimeError("boom")


@pytest.fixture
def mixed_result():
    """div carries a plain class (visual), a carries a link (interactive), span is empty."""
    return parse_tokens([
        tok("tag_open", "div"),
        tok("attribute", 'class="card"'),
        tok("tag_open", "a"),
        tok("attribute", 'href="/x"'),
        tok("word", "Go"),
        tok("tag_close", "a"),
        tok("tag_open", "span"),
        tok("tag_close", "span"),
        tok("tag_close", "div"),
    ])


@pytest.fixture
def interactive_only_result():
    return parse_tokens([
        tok("tag_open", "a"),
        tok("attribute", 'href="/x"'),
        tok("word", "Go"),
        tok("tag_close", "a"),
        tok("tag_open", "span"),
        tok("tag_close", "span"),
        tok("tag_open", "nav"),
        tok("tag_close", "nav"),
    ])


def test_extract_features_aggregates_by_tag_name():
    result = parse_tokens([
        tok("tag_open", "button"),
        tok("attribute", 'id="send"'),
        tok("attribute", 'onclick="go()"'),
        tok("word", "Send"),
        tok("tag_close", "button"),
        tok("tag_open", "button"),
        tok("attribute", 'class="primary"'),
        tok("tag_close", "button"),
    ])
    features = extract_features("button", result)
    # 3 attrs, 1 handler, id, class, len("Send"), score 2 (scored tag) + 1 (handler)
    assert features == [3, 1, 1, 1, 4, 3]
    assert label_for("button", features) == 1


def test_label_rules():
    assert label_for("div", [1, 0, 0, 1, 0, 0]) == 0
    assert label_for("div", [1, 1, 0, 0, 0, 1]) == 1
    assert label_for("script", [0, 0, 0, 0, 0, 0]) == 1
    assert label_for("span", [2, 0, 0, 1, 0, 2]) == 1


def test_oversample_balances_minority():
    features = np.arange(22, dtype=float).reshape(11, 2)
    labels = np.array([0] * 10 + [1])

    out_features, out_labels = oversample(features, labels, np.random.default_rng(0))

    assert len(out_labels) == 15
    assert int(out_labels.sum()) == 5
    assert (out_features[11:] == features[10]).all()


def test_oversample_leaves_balanced_data_alone():
    features = np.zeros((4, 6))
    labels = np.array([0, 1, 0, 1])
    out_features, out_labels = oversample(features, labels, np.random.default_rng(0))
    assert out_features is features
    assert out_labels is labels


def test_classifier_predict_before_fit_raises():
    with pytest.raises(RuntimeError):
        ContentClassifier().predict([0, 0, 0, 0, 0, 0])


def test_classifier_rejects_single_class():
    classifier = ContentClassifier(model_factory=lambda n: ConstantModel(1))
    with pytest.raises(ValueError, match="single class"):
        classifier.fit(np.zeros((3, 6)), np.array([1, 1, 1]))


def test_predictions_are_recorded_in_content_maps(mixed_result):
    model = ConstantModel(1)
    outcome = classify_empty_tags(mixed_result, ClassifierSettings(), model_factory=lambda n: model)

    assert outcome.failure is None
    assert outcome.used_fallback is False
    assert outcome.trained_on == 2
    assert list(model.fitted_on[1]) == [0, 1]
    assert outcome.predicted_content == {"div": INTERACTIVE_LABEL, "span": INTERACTIVE_LABEL}
    assert mixed_result.functional_content["span"] == [INTERACTIVE_LABEL]
    assert outcome.interactive_count == 2
    assert outcome.visual_count == 0


def test_single_class_falls_back_to_allowlist(interactive_only_result):
    outcome = classify_empty_tags(interactive_only_result, ClassifierSettings(), model_factory=lambda n: ConstantModel(1))

    assert outcome.failure == ClassifierFailure.SINGLE_CLASS
    assert outcome.used_fallback is True
    assert outcome.predicted_content == {"span": VISUAL_LABEL, "nav": INTERACTIVE_LABEL}
    assert interactive_only_result.visual_content["span"] == [VISUAL_LABEL]
    assert interactive_only_result.functional_content["nav"] == [INTERACTIVE_LABEL]


def test_fit_error_falls_back(mixed_result):
    outcome = classify_empty_tags(mixed_result, ClassifierSettings(), model_factory=lambda n: BrokenModel("fit"))
    assert outcome.failure == ClassifierFailure.FIT_ERROR
    assert outcome.used_fallback is True
    assert outcome.predicted_content == {"div": VISUAL_LABEL, "span": VISUAL_LABEL}


def test_predict_error_falls_back(mixed_result):
    outcome = classify_empty_tags(mixed_result, ClassifierSettings(), model_factory=lambda n: BrokenModel("predict"))
    assert outcome.failure == ClassifierFailure.PREDICT_ERROR
    assert outcome.used_fallback is True
    assert set(outcome.predicted_content) == {"div", "span"}


def test_disabled_classifier_uses_allowlist(mixed_result):
    factory_calls = []
    outcome = classify_empty_tags(
        mixed_result,
        ClassifierSettings(enabled=False),
        model_factory=lambda n: factory_calls.append(n),
    )
    assert factory_calls == []
    assert outcome.failure == ClassifierFailure.DISABLED
    assert outcome.trained_on == 0
    assert outcome.predicted_content == {"div": VISUAL_LABEL, "span": VISUAL_LABEL}


def test_nothing_to_train_on_returns_empty_outcome():
    result = parse_tokens([tok("tag_open", "div"), tok("tag_close", "div")])
    outcome = classify_empty_tags(result)
    assert outcome.predicted_content == {}
    assert outcome.failure is None
    assert result.visual_content == {}


def test_default_model_factory_builds_configured_mlp():
    settings = ClassifierSettings(hidden_units=(8, 4), learning_rate=0.01, max_iter=50, batch_size=10, random_seed=7)
    model = default_model_factory(settings)(3)
    assert isinstance(model, MLPClassifier)
    assert model.hidden_layer_sizes == (8, 4)
    assert model.learning_rate_init == 0.01
    assert model.batch_size == 3
    assert model.random_state == 7
