"""
Per-turn routing between chat, image generation, image editing and video.

The orchestrator owns no state of its own: everything lives on the Session
it is given. One call to handle_turn() moves the session IDLE -> PENDING ->
IDLE and appends exactly one model message, whatever happens.
"""

import threading
from typing import Callable, Optional, Protocol, Sequence

from dotenv import load_dotenv

from . import config
from .api import OpenAIBackend
from .errors import (
    AccessDeniedError,
    EduVisionError,
    EmptyResponseError,
    MissingInputError,
    VideoGenerationError,
    VideoTimeoutError,
)
from .logger import logger
from .models import AppMode, ImageAttachment, Message
from .session import Session

ACCESS_DENIED_TEXT = "Access denied. Please select a valid API key and try again."
GENERIC_ERROR_TEXT = (
    "I encountered an error processing your request. Please check your connection or API key."
)
EDIT_NEEDS_IMAGE_TEXT = "Please attach exactly one image to edit."
NO_MEDIA_TEXT = "The model did not return any media. Please try a different prompt."
VIDEO_TIMEOUT_TEXT = "Video generation is taking too long. Please try again later."


class KeySelector(Protocol):
    """Environment capability for choosing an API key."""

    def has_selected_key(self) -> bool: ...

    def select_key(self) -> Optional[str]: ...


class EnvKeySelector:
    """Re-reads .env so a key fixed on disk is picked up without a restart."""

    def has_selected_key(self) -> bool:
        return config.get_api_key() is not None

    def select_key(self) -> Optional[str]:
        load_dotenv(override=True)
        key = config.get_api_key()
        if key:
            logger.env_success(f"Re-read OPENAI_API_KEY: {config.mask_key(key)}")
        else:
            logger.env_error("OPENAI_API_KEY still not set after reloading .env")
        return key


def error_text_for(error: Exception) -> str:
    """User-facing message for a failed turn."""
    if isinstance(error, AccessDeniedError):
        return ACCESS_DENIED_TEXT
    if isinstance(error, MissingInputError):
        return str(error)
    if isinstance(error, VideoTimeoutError):
        return VIDEO_TIMEOUT_TEXT
    if isinstance(error, VideoGenerationError):
        return f"{error} Please try a different prompt."
    if isinstance(error, EmptyResponseError):
        return NO_MEDIA_TEXT
    return GENERIC_ERROR_TEXT


class Orchestrator:
    def __init__(
        self,
        session: Session,
        backend: Optional[OpenAIBackend] = None,
        key_selector: Optional[KeySelector] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self.session = session
        self.backend = backend if backend is not None else OpenAIBackend()
        self.key_selector = key_selector or EnvKeySelector()
        self.sleep = sleep

    # ------------------------------------------------------------------
    # Authorization retry
    # ------------------------------------------------------------------

    def _ensure_key(self) -> None:
        """Media models need a selected key; ask for one up front if there is none."""
        if self.key_selector.has_selected_key():
            return
        logger.warning("No API key selected, requesting key selection before media request")
        new_key = self.key_selector.select_key()
        if new_key:
            self.backend.reconnect(new_key)

    def _with_reauthorization(self, call: Callable[[], object]):
        """
        Run call(); on an access failure, ask for a key once and retry once.

        A second access failure propagates to the caller.
        """
        try:
            return call()
        except AccessDeniedError as e:
            logger.warning(f"Access denied ({e}), requesting key selection")
            new_key = self.key_selector.select_key()
            if new_key:
                self.backend.reconnect(new_key)
            return call()

    # ------------------------------------------------------------------
    # Mode handlers
    # ------------------------------------------------------------------

    def _run_chat(self, text: str, images: Sequence[ImageAttachment]) -> Message:
        session = self.session
        history = session.history_before_last()
        stats = session.gamification.stats()

        reply = self._with_reauthorization(
            lambda: self.backend.chat(history, text, images, session.settings, stats)
        )
        message = session.complete(reply)
        session.gamification.apply_reply(reply)
        return message

    def _run_image_generation(self, text: str, image_size: str) -> Message:
        image_b64 = self._with_reauthorization(
            lambda: self.backend.generate_image(text, image_size)
        )
        message = self.session.complete(
            f"Here is your generated image ({image_size}).",
            generated_image=image_b64,
        )
        self.session.gamification.award(config.IMAGE_GENERATION_XP_BONUS)
        return message

    def _run_image_edit(self, text: str, images: Sequence[ImageAttachment]) -> Message:
        source = images[0]
        image_b64 = self._with_reauthorization(lambda: self.backend.edit_image(text, source))
        return self.session.complete("Here is your edited image.", generated_image=image_b64)

    def _run_video_generation(
        self,
        text: str,
        images: Sequence[ImageAttachment],
        aspect_ratio: str,
    ) -> Message:
        reference = images[0] if images else None
        kwargs = {"sleep": self.sleep} if self.sleep is not None else {}
        video_path = self._with_reauthorization(
            lambda: self.backend.generate_video(text, aspect_ratio, reference, **kwargs)
        )
        message = self.session.complete(
            f"Here is your generated video ({aspect_ratio}).",
            generated_video=video_path,
        )
        self.session.gamification.award(config.VIDEO_GENERATION_XP_BONUS)
        return message

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def begin_turn(self, text: str, images: Sequence[ImageAttachment] = ()) -> Optional[AppMode]:
        """
        Record the user's turn on the calling thread.

        Returns the mode the turn will run in, or None if the turn was empty.
        Raises SessionBusyError if a request is already pending.
        """
        images = tuple(images)
        if not text.strip() and not images:
            logger.debug("Ignoring empty turn")
            return None

        mode = self.session.mode
        self.session.submit(text, images)
        logger.separator(f"Turn ({mode.value})")
        return mode

    def _run_turn(
        self,
        mode: AppMode,
        text: str,
        images: Sequence[ImageAttachment],
        image_size: str,
        aspect_ratio: str,
    ) -> Message:
        """Complete the pending turn; every outcome appends exactly one model message."""
        try:
            if mode is AppMode.IMAGE_EDIT and len(images) != 1:
                raise MissingInputError(EDIT_NEEDS_IMAGE_TEXT)

            if mode is AppMode.CHAT:
                return self._run_chat(text, images)

            self._ensure_key()
            if mode is AppMode.IMAGE_GENERATION:
                return self._run_image_generation(text, image_size)
            if mode is AppMode.IMAGE_EDIT:
                return self._run_image_edit(text, images)
            return self._run_video_generation(text, images, aspect_ratio)
        except EduVisionError as e:
            logger.error(f"Turn failed in {mode.value} mode: {e}")
            return self.session.fail(error_text_for(e))
        except Exception as e:
            # Malformed SDK responses surface as attribute/type errors
            logger.error(f"Unexpected failure in {mode.value} mode: {e}", exc_info=True)
            return self.session.fail(GENERIC_ERROR_TEXT)

    def handle_turn(
        self,
        text: str,
        images: Sequence[ImageAttachment] = (),
        image_size: str = "1K",
        aspect_ratio: str = "16:9",
    ) -> Optional[Message]:
        """
        Run one user turn in the session's current mode.

        Returns the appended model message, or None if the turn was empty.
        Raises SessionBusyError if a request is already pending.
        """
        images = tuple(images)
        mode = self.begin_turn(text, images)
        if mode is None:
            return None
        return self._run_turn(mode, text, images, image_size, aspect_ratio)

    def handle_turn_async(
        self,
        text: str,
        callback: Callable[[Message], None],
        images: Sequence[ImageAttachment] = (),
        image_size: str = "1K",
        aspect_ratio: str = "16:9",
    ) -> bool:
        """
        Record the turn now and finish it on a daemon thread.

        The session is PENDING before this returns, so a second call raises
        SessionBusyError here rather than inside the worker. Returns False
        (and never calls back) for an empty turn.
        """
        images = tuple(images)
        mode = self.begin_turn(text, images)
        if mode is None:
            return False
        logger.task_start(f"turn ({mode.value})")

        def _run():
            message = self._run_turn(mode, text, images, image_size, aspect_ratio)
            logger.task_complete(f"turn ({mode.value})")
            callback(message)

        threading.Thread(target=_run, daemon=True).start()
        return True
