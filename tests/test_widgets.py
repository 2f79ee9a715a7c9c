import pytest

from eduvision.schemas import FlashcardData, QuizData
from eduvision.widgets import FlashcardDeck, QuizSession


@pytest.fixture
def two_question_quiz(quiz_data):
    quiz_data["questions"].append({
        "question": "Capital of France?",
        "options": ["Lyon", "Paris", "Nice"],
        "correctAnswer": 1,
        "explanation": "Paris is the capital.",
    })
    return QuizSession(QuizData.model_validate(quiz_data))


def test_first_selection_locks_answer(two_question_quiz):
    quiz = two_question_quiz
    assert not quiz.show_explanation

    assert quiz.select(0) is True
    assert quiz.show_explanation
    assert quiz.is_correct() is False

    assert quiz.select(1) is False
    assert quiz.selected_option == 0
    assert quiz.score == 0


def test_next_requires_an_answer(two_question_quiz):
    quiz = two_question_quiz

    assert quiz.next() is False
    assert quiz.current_index == 0


def test_full_walkthrough_and_summary(two_question_quiz):
    quiz = two_question_quiz

    quiz.select(1)
    assert quiz.next()
    assert quiz.current_index == 1
    assert quiz.selected_option is None
    assert not quiz.show_explanation

    quiz.select(1)
    assert quiz.is_last_question
    assert quiz.next()

    assert quiz.completed
    assert quiz.summary == (2, 2)
    assert quiz.select(0) is False
    assert quiz.next() is False


def test_restart_zeroes_progress(two_question_quiz):
    quiz = two_question_quiz
    quiz.select(1)
    quiz.next()
    quiz.select(0)
    quiz.next()

    quiz.restart()

    assert (quiz.current_index, quiz.score, quiz.completed) == (0, 0, False)
    assert quiz.selected_option is None
    assert not quiz.show_explanation


def test_invalid_option_index(two_question_quiz):
    with pytest.raises(IndexError):
        two_question_quiz.select(5)


@pytest.fixture
def deck(flashcard_data):
    return FlashcardDeck(FlashcardData.model_validate(flashcard_data))


def test_next_wraps_around(deck):
    for _ in range(len(deck)):
        deck.next()

    assert deck.index == 0


def test_previous_from_start_goes_to_last(deck):
    deck.previous()

    assert deck.index == len(deck) - 1
    assert deck.current.front == "Nucleus"


def test_flip_does_not_navigate(deck):
    deck.flip()

    assert deck.index == 0
    assert deck.flipped
    assert deck.visible_text == "Produces ATP"

    deck.flip()
    assert deck.visible_text == "Mitochondria"


def test_navigation_shows_front_face(deck):
    deck.flip()
    deck.next()

    assert not deck.flipped
    assert deck.visible_text == "Ribosome"


def test_single_card_deck_wraps_to_itself():
    deck = FlashcardDeck(FlashcardData.model_validate({"cards": [{"front": "a", "back": "b"}]}))

    deck.next()
    deck.previous()

    assert deck.index == 0
