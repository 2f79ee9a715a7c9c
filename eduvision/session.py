"""
Conversation state machine.

A Session is the single owner of the message log, the learner's settings,
the current routing mode and the XP state. It is passed explicitly to the
orchestrator and the UI; there is no module-level session.

    IDLE --submit()--> PENDING --complete()/fail()--> IDLE
    IDLE --reset()---> IDLE
"""

from dataclasses import replace
from enum import Enum
from typing import Iterable, Optional, Tuple

from .errors import InvalidTransitionError, SessionBusyError
from .gamification import GamificationState
from .logger import logger
from .models import AppMode, ImageAttachment, Message, UserSettings

WELCOME_TEXT = (
    "Hello! I'm EduVision Ultra. I can help you understand any topic, solve problems, "
    "or prepare for exams.\n\n"
    "Upload an image of a diagram, ask a question, or paste text to get started! "
    "How can I help you learn today?"
)


class ConversationState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"


def welcome_message() -> Message:
    return Message(role="model", text=WELCOME_TEXT, id="welcome")


class Session:
    def __init__(
        self,
        settings: Optional[UserSettings] = None,
        gamification: Optional[GamificationState] = None,
        seed_welcome: bool = True,
    ) -> None:
        self.settings = settings or UserSettings()
        self.gamification = gamification or GamificationState()
        self.mode = AppMode.CHAT
        self.state = ConversationState.IDLE
        self._messages = [welcome_message()] if seed_welcome else []

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def history(self) -> Tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def is_pending(self) -> bool:
        return self.state is ConversationState.PENDING

    def history_before_last(self) -> Tuple[Message, ...]:
        """Everything before the most recent message (the in-flight user turn)."""
        return tuple(self._messages[:-1])

    # ------------------------------------------------------------------
    # Settings / mode
    # ------------------------------------------------------------------

    def update_settings(self, **changes) -> UserSettings:
        self.settings = replace(self.settings, **changes)
        logger.ui(f"Settings updated: {changes}")
        return self.settings

    def set_mode(self, mode: AppMode) -> None:
        mode = AppMode(mode)
        if mode is not self.mode:
            logger.ui_transition(f"mode:{self.mode.value}", f"mode:{mode.value}")
        self.mode = mode

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _transition(self, new_state: ConversationState) -> None:
        logger.ui_transition(self.state.value.upper(), new_state.value.upper())
        self.state = new_state

    def submit(self, text: str, images: Iterable[ImageAttachment] = ()) -> Message:
        """Append the user's turn and mark a request as in flight."""
        if self.is_pending:
            raise SessionBusyError("A request is already in progress")

        message = Message(role="user", text=text, images=tuple(images))
        self._messages.append(message)
        self._transition(ConversationState.PENDING)
        return message

    def complete(
        self,
        text: str,
        generated_image: Optional[str] = None,
        generated_video: Optional[str] = None,
    ) -> Message:
        """Append the model's reply and return to IDLE."""
        if not self.is_pending:
            raise InvalidTransitionError("complete() called with no request in flight")

        message = Message(
            role="model",
            text=text,
            generated_image=generated_image,
            generated_video=generated_video,
        )
        self._messages.append(message)
        self._transition(ConversationState.IDLE)
        return message

    def fail(self, error_text: str) -> Message:
        """Append an error-flagged model message and return to IDLE."""
        if not self.is_pending:
            raise InvalidTransitionError("fail() called with no request in flight")

        message = Message(role="model", text=error_text, is_error=True)
        self._messages.append(message)
        self._transition(ConversationState.IDLE)
        return message

    def reset(self, seed_welcome: bool = True) -> None:
        """Start over: clear the log (optionally re-seeding the welcome) and zero XP."""
        if self.is_pending:
            raise SessionBusyError("Cannot reset while a request is in progress")

        self._messages = [welcome_message()] if seed_welcome else []
        self.gamification.reset()
        logger.ui("Session reset")
