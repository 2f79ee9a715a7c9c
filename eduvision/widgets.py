"""
Local interaction state for the quiz and flashcard widgets.

These objects only track what the learner is looking at and has answered.
They never touch the conversation or the XP total.
"""

from typing import Optional, Tuple

from .schemas import Flashcard, FlashcardData, QuizData, QuizQuestion


class QuizSession:
    """Linear walk through a quiz; the first answer to each question is final."""

    def __init__(self, data: QuizData) -> None:
        self.data = data
        self.restart()

    def restart(self) -> None:
        self.current_index: int = 0
        self.selected_option: Optional[int] = None
        self.show_explanation: bool = False
        self.score: int = 0
        self.completed: bool = False

    @property
    def total(self) -> int:
        return len(self.data.questions)

    @property
    def current_question(self) -> QuizQuestion:
        return self.data.questions[self.current_index]

    @property
    def is_last_question(self) -> bool:
        return self.current_index == self.total - 1

    @property
    def answered(self) -> bool:
        return self.selected_option is not None

    def select(self, option_index: int) -> bool:
        """
        Lock in an answer for the current question.

        Returns True if this call changed state; selecting again, or after
        completion, is a no-op.
        """
        if self.completed or self.answered:
            return False
        if not 0 <= option_index < len(self.current_question.options):
            raise IndexError(f"Option {option_index} does not exist")

        self.selected_option = option_index
        self.show_explanation = True
        if option_index == self.current_question.correct_answer:
            self.score += 1
        return True

    def is_correct(self) -> Optional[bool]:
        if not self.answered:
            return None
        return self.selected_option == self.current_question.correct_answer

    def next(self) -> bool:
        """Advance to the next question, or complete the quiz after the last one."""
        if self.completed or not self.answered:
            return False
        if self.is_last_question:
            self.completed = True
        else:
            self.current_index += 1
            self.selected_option = None
            self.show_explanation = False
        return True

    @property
    def summary(self) -> Tuple[int, int]:
        """(correct answers, total questions)"""
        return self.score, self.total


class FlashcardDeck:
    """Circular navigation over a deck with an independent flip state."""

    def __init__(self, data: FlashcardData) -> None:
        self.data = data
        self.index = 0
        self.flipped = False

    def __len__(self) -> int:
        return len(self.data.cards)

    @property
    def current(self) -> Flashcard:
        return self.data.cards[self.index]

    @property
    def visible_text(self) -> str:
        return self.current.back if self.flipped else self.current.front

    def flip(self) -> None:
        self.flipped = not self.flipped

    def next(self) -> None:
        self.flipped = False
        self.index = (self.index + 1) % len(self)

    def previous(self) -> None:
        self.flipped = False
        self.index = (self.index - 1) % len(self)
