"""Tests for the completion classifier."""

import pytest

from devchat.services.completion import ClassifierPolicy, CompletionClassifier, CompletionStatus

LONG_PROSE = "This sentence is long enough to pass the minimum length threshold for checks " * 2


@pytest.fixture
def classifier():
    return CompletionClassifier(ClassifierPolicy())


def test_trailing_ellipsis_is_truncated(classifier):
    text = "```python\nprint(1)\n```\nMore text that trails off..."
    verdict = classifier.classify(text)
    assert verdict.status is CompletionStatus.APPARENTLY_TRUNCATED
    assert verdict.heuristic == "ellipsis"


def test_markers_win_over_normal_stop(classifier):
    verdict = classifier.classify("Part one of the answer [continued]", done=True, done_reason="stop")
    assert verdict.is_truncated
    assert verdict.heuristic == "continued_marker"


@pytest.mark.parametrize(
    "ending,heuristic",
    [
        ("[truncated]", "truncated_marker"),
        ("[...]", "elided_marker"),
        ("(continued)", "continued_paren"),
        ("and so --", "dangling_dash"),
        ("well…", "ellipsis"),
        ("wait...   \n", "ellipsis"),
    ],
)
def test_truncation_markers(classifier, ending, heuristic):
    verdict = classifier.classify(f"Some answer {ending}")
    assert verdict.is_truncated
    assert verdict.heuristic == heuristic


def test_clean_stop_is_finished(classifier):
    verdict = classifier.classify("All done.", done=True, done_reason="stop")
    assert verdict.status is CompletionStatus.FINISHED
    assert not verdict.is_truncated


def test_abrupt_ending_ignored_after_normal_stop(classifier):
    verdict = classifier.classify(LONG_PROSE + "and then the", done=True, done_reason="stop")
    assert verdict.status is CompletionStatus.FINISHED


def test_abrupt_ending_without_signal_is_truncated(classifier):
    verdict = classifier.classify(LONG_PROSE + "and then the")
    assert verdict.is_truncated
    assert verdict.heuristic == "abrupt_ending"


def test_short_text_without_punctuation_is_finished(classifier):
    verdict = classifier.classify("ok")
    assert verdict.status is CompletionStatus.FINISHED


@pytest.mark.parametrize("ending", ["Finished.", "Really!", "Why?", "```python\nx = 1\n```", "**bold**"])
def test_clean_endings_without_signal(classifier, ending):
    verdict = classifier.classify(LONG_PROSE + ending)
    assert verdict.status is CompletionStatus.FINISHED


def test_length_stop_reason_is_truncated(classifier):
    verdict = classifier.classify("A complete looking sentence.", done=True, done_reason="length")
    assert verdict.is_truncated
    assert verdict.reason == "length"
    assert verdict.heuristic == "length_limit"


def test_other_reason_is_finished_with_reason(classifier):
    verdict = classifier.classify("Model was unloaded.", done=True, done_reason="unload")
    assert verdict.status is CompletionStatus.FINISHED_WITH_REASON
    assert verdict.reason == "unload"


def test_other_reason_with_abrupt_ending_is_truncated(classifier):
    verdict = classifier.classify(LONG_PROSE + "and then the", done=True, done_reason="unload")
    assert verdict.is_truncated


def test_thresholds_are_configurable():
    strict = CompletionClassifier(ClassifierPolicy(abrupt_min_length=5, abrupt_window=10))
    assert strict.classify("no punctuation here").is_truncated
    assert not CompletionClassifier(ClassifierPolicy()).classify("no punctuation here").is_truncated


def test_marker_outside_tail_window_is_ignored():
    classifier = CompletionClassifier(ClassifierPolicy(tail_window=5))
    assert not classifier.classify("Done [continued] then more text.", done=True).is_truncated


def test_payload():
    verdict = CompletionClassifier(ClassifierPolicy()).classify("Fine.", done=True, done_reason="stop")
    assert verdict.to_payload() == {
        "status": "finished",
        "reason": "stop",
        "heuristic": None,
        "is_complete": True,
    }
