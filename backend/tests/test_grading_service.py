from uniexam.schemas.progress_schema import CodeAnswer, MultipleChoiceAnswer, ShortAnswerAnswer
from uniexam.services.grading_service import grade_submission, normalize_text

from conftest import make_exam


def test_multiple_choice_correct_incorrect_and_missing():
    exam = make_exam()

    result = grade_submission(exam, {"q1": MultipleChoiceAnswer(option_index=1)})
    assert result.question_scores["q1"] == 2.0
    assert result.total == 2.0

    result = grade_submission(exam, {"q1": MultipleChoiceAnswer(option_index=0)})
    assert result.question_scores["q1"] == 0.0

    result = grade_submission(exam, {})
    assert result.question_scores["q1"] == 0.0
    assert result.total == 0.0


def test_multiple_choice_accepts_numeric_string():
    exam = make_exam()

    assert grade_submission(exam, {"q1": MultipleChoiceAnswer(option_index="1")}).total == 2.0
    assert grade_submission(exam, {"q1": MultipleChoiceAnswer(option_index="B")}).total == 0.0
    assert grade_submission(exam, {"q1": MultipleChoiceAnswer(option_index=None)}).total == 0.0


def test_short_answer_is_case_and_whitespace_insensitive():
    exam = make_exam()

    assert grade_submission(exam, {"q2": ShortAnswerAnswer(text=" bangkok ")}).total == 1.0
    assert grade_submission(exam, {"q2": ShortAnswerAnswer(text="KRUNG   thep")}).total == 1.0
    assert grade_submission(exam, {"q2": ShortAnswerAnswer(text="Thailand")}).total == 0.0
    assert grade_submission(exam, {"q2": ShortAnswerAnswer(text="   ")}).total == 0.0


def test_code_exercise_scores_only_a_passing_run():
    exam = make_exam()

    passed = CodeAnswer(code="print(5)", last_execution_output="ok", last_execution_passed=True)
    assert grade_submission(exam, {"q3": passed}).total == 3.0

    # edited after the run: result invalidated
    assert grade_submission(exam, {"q3": passed.edited("print(6)")}).total == 0.0

    failed = CodeAnswer(code="print(4)", last_execution_passed=False)
    assert grade_submission(exam, {"q3": failed}).total == 0.0
    assert grade_submission(exam, {"q3": CodeAnswer(code="print(5)")}).total == 0.0


def test_answer_of_the_wrong_kind_scores_zero():
    exam = make_exam()
    result = grade_submission(exam, {"q1": ShortAnswerAnswer(text="1"), "q2": MultipleChoiceAnswer(option_index=0)})
    assert result.total == 0.0


def test_max_is_sum_of_points_and_grading_is_deterministic():
    exam = make_exam()
    answers = {
        "q1": MultipleChoiceAnswer(option_index=1),
        "q2": ShortAnswerAnswer(text="Krung Thep"),
        "q3": CodeAnswer(code="x", last_execution_passed=True),
    }

    first = grade_submission(exam, answers)
    second = grade_submission(exam, answers)
    assert first == second
    assert first.max == 6.0
    assert first.total == 6.0
    assert grade_submission(exam, {}).max == 6.0


def test_normalize_text():
    assert normalize_text("  Hello\n  World ") == "hello world"
    assert normalize_text(None) == ""
