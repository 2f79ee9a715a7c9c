import threading

import pytest

from eduvision.errors import (
    AccessDeniedError,
    ApiUnavailableError,
    BackendError,
    EmptyResponseError,
    SessionBusyError,
    VideoGenerationError,
    VideoTimeoutError,
)
from eduvision.models import AppMode, ImageAttachment
from eduvision.orchestrator import (
    ACCESS_DENIED_TEXT,
    EDIT_NEEDS_IMAGE_TEXT,
    GENERIC_ERROR_TEXT,
    NO_MEDIA_TEXT,
    VIDEO_TIMEOUT_TEXT,
    Orchestrator,
)
from eduvision.session import ConversationState, Session

IMAGE = ImageAttachment(mime_type="image/png", data="aW1n")
OTHER_IMAGE = ImageAttachment(mime_type="image/jpeg", data="b3RoZXI=")


class FakeBackend:
    """Returns (or raises) scripted outcomes in order, recording every call."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []
        self.reconnected = []

    def _next(self, name, *args, **kwargs):
        self.calls.append((name, args, kwargs))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def chat(self, history, text, images, settings, stats):
        return self._next("chat", history, text, images, settings, stats)

    def generate_image(self, prompt, size):
        return self._next("generate_image", prompt, size)

    def edit_image(self, prompt, image):
        return self._next("edit_image", prompt, image)

    def generate_video(self, prompt, aspect_ratio, reference, **kwargs):
        return self._next("generate_video", prompt, aspect_ratio, reference, **kwargs)

    def reconnect(self, api_key):
        self.reconnected.append(api_key)


class FakeKeySelector:
    def __init__(self, key="sk-new-key-123456", selected=True):
        self.key = key
        self.selected = selected
        self.prompts = 0
        self.checks = 0

    def has_selected_key(self):
        self.checks += 1
        return self.selected

    def select_key(self):
        self.prompts += 1
        return self.key


def make_orchestrator(*outcomes, mode=AppMode.CHAT, key="sk-new-key-123456", selected=True):
    session = Session()
    session.set_mode(mode)
    backend = FakeBackend(*outcomes)
    selector = FakeKeySelector(key, selected)
    return Orchestrator(session, backend, selector, sleep=lambda s: None), backend, selector


def test_chat_turn_parses_reply_and_awards_xp(make_fence, quiz_data):
    reply = "Great job!\n" + make_fence({"type": "quiz", "data": quiz_data}) + "\n[XP: +20]"
    orchestrator, backend, _ = make_orchestrator(reply)
    session = orchestrator.session

    message = orchestrator.handle_turn("What is 2+2?")

    assert message.text == reply
    assert session.state is ConversationState.IDLE
    assert session.gamification.xp == 20
    assert session.gamification.notification.amount == 20
    name, (history, text, images, settings, stats), _ = backend.calls[0]
    assert name == "chat"
    assert [m.id for m in history] == ["welcome"]
    assert text == "What is 2+2?"
    assert images == ()
    assert settings == session.settings
    assert stats.xp == 0 and stats.rank == "Beginner"


def test_chat_without_tag_leaves_xp_unchanged():
    orchestrator, _, _ = make_orchestrator("Photosynthesis turns light into sugar.")

    orchestrator.handle_turn("Explain photosynthesis")

    assert orchestrator.session.gamification.xp == 0
    assert orchestrator.session.gamification.notification is None


def test_chat_history_grows_with_each_turn():
    orchestrator, backend, _ = make_orchestrator("first answer", "second answer")

    orchestrator.handle_turn("first", [IMAGE])
    orchestrator.handle_turn("second")

    history = backend.calls[1][1][0]
    assert [m.text for m in history[1:]] == ["first", "first answer"]
    assert history[1].images == (IMAGE,)


def test_empty_turn_is_ignored():
    orchestrator, backend, _ = make_orchestrator()

    assert orchestrator.handle_turn("   ") is None
    assert backend.calls == []
    assert len(orchestrator.session.history) == 1


def test_image_only_turn_is_sent():
    orchestrator, backend, _ = make_orchestrator("Nice diagram!")

    orchestrator.handle_turn("", [IMAGE])

    assert backend.calls[0][1][2] == (IMAGE,)


def test_edit_without_image_fails_fast():
    orchestrator, backend, _ = make_orchestrator(mode=AppMode.IMAGE_EDIT)
    session = orchestrator.session

    message = orchestrator.handle_turn("make the sky purple")

    assert backend.calls == []
    assert message.is_error
    assert message.text == EDIT_NEEDS_IMAGE_TEXT
    assert session.history[-2].text == "make the sky purple"
    assert session.state is ConversationState.IDLE


def test_edit_with_two_images_fails_fast():
    orchestrator, backend, _ = make_orchestrator(mode=AppMode.IMAGE_EDIT)

    message = orchestrator.handle_turn("merge", [IMAGE, OTHER_IMAGE])

    assert backend.calls == []
    assert message.is_error


def test_edit_with_image_returns_edited_image_without_xp():
    orchestrator, backend, _ = make_orchestrator("ZWRpdGVk", mode=AppMode.IMAGE_EDIT)

    message = orchestrator.handle_turn("add a hat", [IMAGE])

    assert backend.calls[0][1] == ("add a hat", IMAGE)
    assert message.generated_image == "ZWRpdGVk"
    assert orchestrator.session.gamification.xp == 0


def test_image_generation_awards_bonus():
    orchestrator, backend, _ = make_orchestrator("cGl4ZWxz", mode=AppMode.IMAGE_GENERATION)

    message = orchestrator.handle_turn("a labelled plant cell", image_size="4K")

    assert backend.calls[0][1] == ("a labelled plant cell", "4K")
    assert message.generated_image == "cGl4ZWxz"
    assert orchestrator.session.gamification.xp == 20


def test_video_generation_uses_first_image_as_reference_and_awards_bonus():
    orchestrator, backend, _ = make_orchestrator("/tmp/out.mp4", mode=AppMode.VIDEO_GENERATION)

    message = orchestrator.handle_turn("water cycle animation", [IMAGE, OTHER_IMAGE], aspect_ratio="9:16")

    name, args, kwargs = backend.calls[0]
    assert args == ("water cycle animation", "9:16", IMAGE)
    assert "sleep" in kwargs
    assert message.generated_video == "/tmp/out.mp4"
    assert orchestrator.session.gamification.xp == 50


def test_video_generation_without_reference():
    orchestrator, backend, _ = make_orchestrator("/tmp/out.mp4", mode=AppMode.VIDEO_GENERATION)

    orchestrator.handle_turn("volcano eruption")

    assert backend.calls[0][1][2] is None


def test_access_denied_triggers_single_reauthorization_and_retry():
    orchestrator, backend, selector = make_orchestrator(AccessDeniedError("403"), "Hello again")

    message = orchestrator.handle_turn("hi")

    assert selector.prompts == 1
    assert backend.reconnected == ["sk-new-key-123456"]
    assert len(backend.calls) == 2
    assert backend.calls[0][1][1:] == backend.calls[1][1][1:]
    assert message.text == "Hello again"
    assert not message.is_error


def test_second_access_failure_is_terminal():
    orchestrator, backend, selector = make_orchestrator(
        AccessDeniedError("403"), AccessDeniedError("403 again"), mode=AppMode.IMAGE_GENERATION
    )

    message = orchestrator.handle_turn("a cat")

    assert selector.prompts == 1
    assert len(backend.calls) == 2
    assert message.is_error
    assert message.text == ACCESS_DENIED_TEXT
    assert orchestrator.session.gamification.xp == 0


def test_missing_key_prompts_for_one():
    orchestrator, backend, selector = make_orchestrator(ApiUnavailableError("no key"), "ok")

    message = orchestrator.handle_turn("hi")

    assert selector.prompts == 1
    assert message.text == "ok"


def test_dismissed_key_dialog_still_retries_once():
    orchestrator, backend, selector = make_orchestrator(
        AccessDeniedError("403"), AccessDeniedError("403"), key=None
    )

    message = orchestrator.handle_turn("hi")

    assert backend.reconnected == []
    assert len(backend.calls) == 2
    assert message.text == ACCESS_DENIED_TEXT


@pytest.mark.parametrize(
    "error, expected",
    [
        (BackendError("rate limited"), GENERIC_ERROR_TEXT),
        (EmptyResponseError("no image"), NO_MEDIA_TEXT),
        (VideoTimeoutError("slow"), VIDEO_TIMEOUT_TEXT),
        (RuntimeError("unexpected payload"), GENERIC_ERROR_TEXT),
    ],
)
def test_backend_failures_become_one_error_message(error, expected):
    orchestrator, backend, selector = make_orchestrator(error)
    session = orchestrator.session

    message = orchestrator.handle_turn("hello")

    assert selector.prompts == 0
    assert message.is_error
    assert message.text == expected
    assert [m.role for m in session.history] == ["model", "user", "model"]
    assert session.state is ConversationState.IDLE


def test_failed_video_job_message():
    orchestrator, _, _ = make_orchestrator(
        VideoGenerationError("Video generation failed: moderation"), mode=AppMode.VIDEO_GENERATION
    )

    message = orchestrator.handle_turn("a video")

    assert message.is_error
    assert "moderation" in message.text


def test_turn_rejected_while_pending():
    orchestrator, backend, _ = make_orchestrator("unused")
    orchestrator.session.submit("in flight")

    with pytest.raises(SessionBusyError):
        orchestrator.handle_turn("impatient")
    assert backend.calls == []


def test_manual_retry_after_failure():
    orchestrator, _, _ = make_orchestrator(BackendError("offline"), "Back online")

    orchestrator.handle_turn("hi")
    message = orchestrator.handle_turn("hi")

    assert message.text == "Back online"
    assert [m.is_error for m in orchestrator.session.history] == [False, False, True, False, False]


def test_handle_turn_async_calls_back_with_reply():
    orchestrator, _, _ = make_orchestrator("async reply")
    done = threading.Event()
    received = []

    def callback(message):
        received.append(message)
        done.set()

    orchestrator.handle_turn_async("hi", callback)

    assert done.wait(timeout=5)
    assert received[0].text == "async reply"


class BlockingBackend(FakeBackend):
    """Chat calls wait until release is set."""

    def __init__(self, *outcomes):
        super().__init__(*outcomes)
        self.entered = threading.Event()
        self.release = threading.Event()

    def chat(self, history, text, images, settings, stats):
        self.entered.set()
        self.release.wait(timeout=5)
        return super().chat(history, text, images, settings, stats)


def test_async_turn_is_pending_before_worker_runs():
    session = Session()
    backend = BlockingBackend("first reply")
    orchestrator = Orchestrator(session, backend, FakeKeySelector())
    done = threading.Event()
    received = []

    def callback(message):
        received.append(message)
        done.set()

    assert orchestrator.handle_turn_async("first", callback) is True
    assert session.is_pending
    assert session.history[-1].text == "first"

    with pytest.raises(SessionBusyError):
        orchestrator.handle_turn_async("second", callback)

    backend.release.set()
    assert done.wait(timeout=5)
    assert [m.text for m in received] == ["first reply"]
    assert [m.text for m in session.history[1:]] == ["first", "first reply"]
    assert len(backend.calls) == 1


def test_async_empty_turn_is_not_started():
    orchestrator, backend, _ = make_orchestrator()
    received = []

    assert orchestrator.handle_turn_async("  ", received.append) is False
    assert received == []
    assert not orchestrator.session.is_pending


def test_async_turn_keeps_mode_chosen_at_send():
    session = Session()
    session.set_mode(AppMode.IMAGE_GENERATION)
    backend = FakeBackend("cGl4ZWxz")
    orchestrator = Orchestrator(session, backend, FakeKeySelector())
    done = threading.Event()

    orchestrator.handle_turn_async("a cell", lambda message: done.set())
    session.set_mode(AppMode.CHAT)

    assert done.wait(timeout=5)
    assert backend.calls[0][0] == "generate_image"


@pytest.mark.parametrize(
    "mode, outcome, images",
    [
        (AppMode.IMAGE_GENERATION, "cGl4ZWxz", ()),
        (AppMode.IMAGE_EDIT, "ZWRpdGVk", (IMAGE,)),
        (AppMode.VIDEO_GENERATION, "/tmp/out.mp4", ()),
    ],
)
def test_media_turn_asks_for_key_when_none_selected(mode, outcome, images):
    orchestrator, backend, selector = make_orchestrator(outcome, mode=mode, selected=False)

    message = orchestrator.handle_turn("make something", images)

    assert selector.checks == 1
    assert selector.prompts == 1
    assert backend.reconnected == ["sk-new-key-123456"]
    assert not message.is_error


def test_media_turn_with_selected_key_does_not_prompt():
    orchestrator, backend, selector = make_orchestrator("cGl4ZWxz", mode=AppMode.IMAGE_GENERATION)

    orchestrator.handle_turn("a cell")

    assert selector.checks == 1
    assert selector.prompts == 0
    assert backend.reconnected == []


def test_chat_turn_skips_key_check():
    orchestrator, _, selector = make_orchestrator("hello", selected=False)

    orchestrator.handle_turn("hi")

    assert selector.checks == 0
    assert selector.prompts == 0
