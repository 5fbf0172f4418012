import copy

import pytest

from conftest import new_candidate
from qreview.review.validator import GenerationRules, NewQuestionValidator


def four_answers(correct_positions):
    return [{"text": f"Option {i}", "isCorrect": i in correct_positions} for i in range(4)]


@pytest.fixture
def validator():
    return NewQuestionValidator(GenerationRules(category="Networking", exam_code="N10"))


class TestValidCandidate:
    def test_minimal_valid_question(self, validator):
        result = validator.validate(new_candidate(), 0)

        assert result.valid
        assert result.errors == []
        assert result.position == 0

    def test_validation_is_idempotent_and_pure(self, validator):
        candidate = new_candidate(level="Expert", answers=[{"text": "* A", "isCorrect": True}])
        snapshot = copy.deepcopy(candidate)

        first = validator.validate(candidate, 0)
        second = validator.validate(candidate, 0)

        assert first.errors == second.errors
        assert candidate == snapshot


class TestCorrectCount:
    @pytest.mark.parametrize(
        "correct, valid",
        [(set(), False), ({2}, True), ({0, 1, 2, 3}, False)],
    )
    def test_single_correct_boundary(self, validator, correct, valid):
        result = validator.validate(new_candidate(answers=four_answers(correct)), 0)

        assert result.valid is valid

    def test_all_correct_reported(self):
        rules = GenerationRules(category="Networking", exam_code="N10", required_correct=3, max_answers=4)
        validator = NewQuestionValidator(rules)

        result = validator.validate(new_candidate(answers=four_answers({0, 1, 2, 3})), 0)

        assert "needs exactly 3 correct answers (found 4)" in result.errors
        assert "cannot have all answers correct" in result.errors

    def test_multi_correct(self):
        rules = GenerationRules(category="Networking", exam_code="N10", required_correct=2)

        result = NewQuestionValidator(rules).validate(new_candidate(answers=four_answers({1, 3})), 0)

        assert result.valid

    def test_non_boolean_flag(self, validator):
        answers = [{"text": "A", "isCorrect": "true"}, {"text": "B", "isCorrect": False}]

        result = validator.validate(new_candidate(answers=answers), 0)

        assert "answer[0] isCorrect not boolean" in result.errors


class TestAnswerText:
    @pytest.mark.parametrize(
        "text",
        ["✔ Router", "✅Router", "* Router", "-> Router", "  ✓ Router",
         "Correct: Router", "correct - Router", "CORRECT Router"],
    )
    def test_forbidden_markers_rejected(self, validator, text):
        answers = [{"text": text, "isCorrect": True}, {"text": "Switch", "isCorrect": False}]

        result = validator.validate(new_candidate(answers=answers), 0)

        assert not result.valid
        assert "answer[0].text has forbidden icon/prefix" in result.errors

    def test_word_starting_with_correct_allowed(self, validator):
        answers = [{"text": "Correctness checks", "isCorrect": True}, {"text": "B", "isCorrect": False}]

        assert validator.validate(new_candidate(answers=answers), 0).valid

    def test_empty_text(self, validator):
        answers = [{"text": "  ", "isCorrect": True}, {"text": "B", "isCorrect": False}]

        result = validator.validate(new_candidate(answers=answers), 0)

        assert "answer[0].text empty" in result.errors

    def test_answer_not_an_object(self, validator):
        result = validator.validate(new_candidate(answers=["A", {"text": "B", "isCorrect": True}]), 0)

        assert "answer[0] must be an object" in result.errors


class TestStructure:
    def test_all_violations_collected(self, validator):
        result = validator.validate({}, 3)

        assert result.position == 3
        for key in ("question", "answers", "explanation", "level", "category", "exam_code"):
            assert f"Missing key {key}" in result.errors
        assert "question must be non-empty string" in result.errors
        assert "answers must be array length>=2" in result.errors
        assert "explanation empty" in result.errors
        assert "level invalid" in result.errors

    def test_explanation_needs_markup(self, validator):
        result = validator.validate(new_candidate(explanation="plain words"), 0)

        assert result.errors == ["explanation must contain HTML tags"]

    def test_selection_mismatch(self, validator):
        result = validator.validate(new_candidate(category="Security", exam_code="N11", level="Expert"), 0)

        assert set(result.errors) == {"category mismatch", "exam_code mismatch", "level invalid"}

    def test_answer_count_range(self):
        rules = GenerationRules(category="Networking", exam_code="N10", min_answers=4, max_answers=8)

        result = NewQuestionValidator(rules).validate(new_candidate(), 0)

        assert result.errors == ["answers count must be between 4 and 8 (found 2)"]

    def test_candidate_not_an_object(self, validator):
        results = validator.validate_batch([new_candidate(), "oops"])

        assert results[0].valid
        assert results[1].errors == ["question[1] must be a JSON object"]


class TestGenerationRules:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"required_correct": 0},
            {"min_answers": 1},
            {"min_answers": 5, "max_answers": 4},
            {"required_correct": 4, "max_answers": 4},
        ],
    )
    def test_invalid_configuration(self, kwargs):
        with pytest.raises(ValueError):
            GenerationRules(category="Networking", exam_code="N10", **kwargs)
