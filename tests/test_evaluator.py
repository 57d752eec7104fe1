import pytest

from src.api.services.evaluator import (
    FUZZY_SIMILARITY,
    PHRASE_REACTION,
    STRUCTURAL,
    EvaluationInput,
    evaluate,
    levenshtein,
    normalize,
    parse_phrases,
    resolve_category,
    split_sentences,
)


@pytest.mark.parametrize(
    "text",
    ["", "  Hello,   World!  ", "snake_case_words", "Ready... to GO?!", "Ça va?  Très bien.", "a\tb\nc"],
)
def test_normalize_is_idempotent(text):
    once = normalize(text)
    assert normalize(once) == once


def test_normalize_strips_punctuation_and_underscores():
    assert normalize("  Hello,   World!_ ") == "hello world"


def test_levenshtein_basics():
    assert levenshtein("kitten", "sitting") == 3
    assert levenshtein("sitting", "kitten") == 3
    assert levenshtein("", "abc") == 3
    assert levenshtein(normalize("Good game!"), normalize("good game")) == 0
    assert levenshtein("good game", "good gam") > 0


def test_resolve_category_aliases():
    assert resolve_category("onpitch") == PHRASE_REACTION
    assert resolve_category("interview") == STRUCTURAL
    assert resolve_category("Structural") == STRUCTURAL
    assert resolve_category("") == FUZZY_SIMILARITY
    assert resolve_category("anything") == FUZZY_SIMILARITY


def _phrase(transcript, latency):
    return evaluate(
        EvaluationInput(
            category=PHRASE_REACTION,
            target_text="I'm ready to go",
            transcript=transcript,
            expected_phrases=["ready to go"],
            latency_ms=latency,
            max_latency_ms=1500,
        )
    )


def test_phrase_reaction_fast_match_scores_full():
    result = _phrase("I am ready to go", 1000)
    assert result.score == 100
    assert result.matched_text == "ready to go"


def test_phrase_reaction_slow_match_reports_latency():
    result = _phrase("I am ready to go", 2000)
    assert result.score == 70
    assert "2000" in result.feedback
    assert "1500" in result.feedback


def test_phrase_reaction_miss_ignores_latency():
    fast = _phrase("no idea", 100)
    slow = _phrase("no idea", 9000)
    assert fast.score == slow.score == 30
    assert '"ready to go"' in fast.feedback


def test_phrase_reaction_falls_back_to_target():
    result = evaluate(
        EvaluationInput(
            category="onpitch",
            target_text="Man on!",
            transcript="man on man on",
            latency_ms=300,
        )
    )
    assert result.score == 100


def test_phrase_reaction_without_targets():
    result = evaluate(EvaluationInput(category=PHRASE_REACTION, target_text="  ", transcript="hello"))
    assert result.score == 0
    assert result.feedback == "No targets defined."


def test_structural_counts_sentences():
    result = evaluate(
        EvaluationInput(
            category=STRUCTURAL,
            target_text="",
            transcript="I like football. It is fun. I play every day.",
            duration_sec=8,
        )
    )
    assert result.sentence_count == 3
    assert result.score == 80
    assert result.structure_score == 90


def test_structural_single_sentence():
    result = evaluate(
        EvaluationInput(category=STRUCTURAL, target_text="", transcript="I like football", duration_sec=12)
    )
    assert result.sentence_count == 1
    assert result.score == 40
    assert result.structure_score == 40


def test_structural_score_is_capped():
    text = ". ".join(["This is a sentence"] * 5)
    result = evaluate(EvaluationInput(category=STRUCTURAL, target_text="", transcript=text, duration_sec=20))
    assert result.structure_score == 100


def test_split_sentences_drops_short_fragments():
    assert split_sentences("Yes. OK. I trained hard today!") == ["I trained hard today"]


def test_fuzzy_exact_match():
    result = evaluate(EvaluationInput(category="", target_text="Pass the ball!", transcript="pass the ball"))
    assert result.score == 100
    assert result.feedback == "Excellent!"
    assert result.matched_text == "Pass the ball!"


def test_fuzzy_picks_best_variation():
    result = evaluate(
        EvaluationInput(
            category=FUZZY_SIMILARITY,
            target_text="Keep your shape",
            variations=["Stay compact"],
            transcript="stay compact",
        )
    )
    assert result.score == 100
    assert result.matched_text == "Stay compact"


def test_fuzzy_keyword_missing_penalizes_high_scores():
    result = evaluate(
        EvaluationInput(
            category=FUZZY_SIMILARITY,
            target_text="Press them high now",
            transcript="press them high now",
            keyword="quickly",
        )
    )
    assert result.score == 90
    assert 'Keyword missing: "quickly"' in result.feedback


def test_fuzzy_keyword_present_adds_bonus():
    base = evaluate(
        EvaluationInput(category=FUZZY_SIMILARITY, target_text="Switch the play left", transcript="switch play")
    )
    boosted = evaluate(
        EvaluationInput(
            category=FUZZY_SIMILARITY,
            target_text="Switch the play left",
            transcript="switch play",
            keyword="switch",
        )
    )
    assert base.score < 90
    assert boosted.score == base.score + 5


@pytest.mark.parametrize(
    "target,transcript",
    [("a", "completely different sentence"), ("long target sentence here", "x"), ("same", "same")],
)
def test_fuzzy_score_in_range(target, transcript):
    result = evaluate(EvaluationInput(category=FUZZY_SIMILARITY, target_text=target, transcript=transcript))
    assert 0 <= result.score <= 100


def test_fuzzy_feedback_tiers():
    low = evaluate(EvaluationInput(category="", target_text="abcdefghij", transcript="zzzzzzzzzz"))
    assert low.score < 50
    assert low.feedback == "Try again!"
    mid = evaluate(EvaluationInput(category="", target_text="abcdefghij", transcript="abcdefgzzz"))
    assert mid.score == 70
    assert mid.feedback == "Good, but can be better!"


def test_empty_transcript_is_not_an_error():
    for category in (PHRASE_REACTION, STRUCTURAL, FUZZY_SIMILARITY):
        result = evaluate(EvaluationInput(category=category, target_text="hello", transcript="  ...  "))
        assert result.score == 0
        assert result.feedback == "No speech detected."


def test_parse_phrases_formats():
    assert parse_phrases('["man on", "time"]') == ["man on", "time"]
    assert parse_phrases("man on\ntime") == ["man on", "time"]
    assert parse_phrases("man on|time") == ["man on", "time"]
    assert parse_phrases("man on, time") == ["man on", "time"]
    assert parse_phrases("man on") == ["man on"]
    assert parse_phrases("") == []
    assert parse_phrases(None) == []
