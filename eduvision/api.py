"""
OpenAI-backed services for EduVision Tutor.

This module handles:
- Tutoring chat completions (history + images + persona prompt)
- Image generation and image editing
- Video generation (long-running job, polled until done)
- Text-to-speech for the "Voice Explanation" button

SDK exceptions are translated into eduvision.errors types here so the
orchestrator never has to know about openai's exception classes.
"""

import base64
import os
import tempfile
import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional, Sequence

import openai
from openai import OpenAI

from . import config
from .errors import (
    AccessDeniedError,
    ApiUnavailableError,
    BackendError,
    EmptyResponseError,
    VideoGenerationError,
    VideoTimeoutError,
)
from .logger import Timer, logger
from .models import ImageAttachment, Message, UserSettings, UserStats
from .schemas import build_system_instruction

EMPTY_CHAT_REPLY = "I'm sorry, I couldn't generate a response. Please try again."

# Size tier -> (size, quality) for the image model
IMAGE_SIZE_TIERS: Dict[str, tuple] = {
    "1K": ("1024x1024", "low"),
    "2K": ("1024x1024", "medium"),
    "4K": ("1536x1024", "high"),
}

VIDEO_SIZES: Dict[str, str] = {
    "16:9": "1280x720",
    "9:16": "720x1280",
}

_MIME_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
}


def _image_file(image: ImageAttachment, stem: str) -> tuple:
    """(filename, bytes, mime) tuple accepted by the SDK's file parameters."""
    extension = _MIME_EXTENSIONS.get(image.mime_type, "png")
    return (f"{stem}.{extension}", base64.b64decode(image.data), image.mime_type)


def format_turn(role: str, text: str, images: Sequence[ImageAttachment] = ()) -> Dict:
    """One chat message: inline images first, then the text."""
    api_role = "assistant" if role == "model" else "user"
    if not images:
        return {"role": api_role, "content": text}

    parts: List[Dict] = [
        {"type": "image_url", "image_url": {"url": image.to_data_url()}}
        for image in images
    ]
    parts.append({"type": "text", "text": text})
    return {"role": api_role, "content": parts}


def build_chat_messages(
    history: Sequence[Message],
    text: str,
    images: Sequence[ImageAttachment],
    settings: UserSettings,
    stats: UserStats,
) -> List[Dict]:
    messages = [{"role": "system", "content": build_system_instruction(settings, stats)}]
    messages.extend(format_turn(m.role, m.text, m.images) for m in history)
    messages.append(format_turn("user", text, images))
    return messages


class OpenAIBackend:
    """Thin wrapper around one OpenAI client; rebuilt when a new key is selected."""

    def __init__(self, api_key: Optional[str] = None, client=None) -> None:
        if client is not None:
            self.client = client
        else:
            self.client = None
            self.reconnect(api_key if api_key is not None else config.get_api_key())

    def is_available(self) -> bool:
        return self.client is not None

    def reconnect(self, api_key: Optional[str]) -> None:
        if not api_key:
            logger.warning("No API key available, backend disabled")
            self.client = None
            return
        logger.env(f"Initializing OpenAI client with key {config.mask_key(api_key)}")
        self.client = OpenAI(api_key=api_key)

    def _require_client(self):
        if self.client is None:
            raise ApiUnavailableError("No API key selected")
        return self.client

    @contextmanager
    def _call(self, endpoint: str, model: Optional[str] = None) -> Iterator[Timer]:
        """Log the call and translate SDK errors into application errors."""
        logger.api_call(endpoint, model=model)
        try:
            with Timer() as timer:
                yield timer
        except (openai.PermissionDeniedError, openai.AuthenticationError) as e:
            logger.api_error(f"{endpoint} rejected the API key: {e}")
            raise AccessDeniedError(str(e)) from e
        except openai.OpenAIError as e:
            logger.api_error(f"{endpoint} failed: {e}", exc_info=True)
            raise BackendError(str(e)) from e
        logger.api_response(endpoint, duration_ms=timer.duration_ms)

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    def chat(
        self,
        history: Sequence[Message],
        text: str,
        images: Sequence[ImageAttachment],
        settings: UserSettings,
        stats: UserStats,
    ) -> str:
        """Send the conversation plus the new turn; returns the raw reply text."""
        client = self._require_client()
        messages = build_chat_messages(history, text, images, settings, stats)
        logger.api(f"chat() - {len(history)} prior messages, {len(images)} new images")

        kwargs = {
            "model": config.CHAT_MODEL,
            "messages": messages,
        }
        # Reasoning models reject any temperature other than their default
        if config.REASONING_EFFORT:
            kwargs["reasoning_effort"] = config.REASONING_EFFORT
        else:
            kwargs["temperature"] = config.CHAT_TEMPERATURE

        with self._call("chat.completions.create", model=config.CHAT_MODEL):
            completion = client.chat.completions.create(**kwargs)

        content = completion.choices[0].message.content if completion.choices else None
        if not content:
            logger.warning("Chat completion returned no text")
            return EMPTY_CHAT_REPLY
        return content

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    @staticmethod
    def _single_image(result, endpoint: str) -> str:
        data = getattr(result, "data", None) or []
        if not data or not getattr(data[0], "b64_json", None):
            logger.img_error(f"{endpoint} returned no image data")
            raise EmptyResponseError("No image was returned")
        logger.debug(f"Received image: {len(data[0].b64_json)} base64 chars")
        return data[0].b64_json

    def generate_image(self, prompt: str, size: str = "1K") -> str:
        """Generate one image; returns base64 PNG data."""
        client = self._require_client()
        image_size, quality = IMAGE_SIZE_TIERS[size]
        logger.img_start(prompt)

        with self._call("images.generate", model=config.IMAGE_MODEL):
            result = client.images.generate(
                model=config.IMAGE_MODEL,
                prompt=prompt,
                size=image_size,
                quality=quality,
                n=1,
            )
        return self._single_image(result, "images.generate")

    def edit_image(self, prompt: str, image: ImageAttachment) -> str:
        """Edit one input image according to the prompt; returns base64 PNG data."""
        client = self._require_client()
        logger.img(f"→ Editing {image.mime_type} image: \"{prompt[:60]}\"")

        with self._call("images.edit", model=config.IMAGE_MODEL):
            result = client.images.edit(
                model=config.IMAGE_MODEL,
                image=_image_file(image, "input"),
                prompt=prompt,
            )
        return self._single_image(result, "images.edit")

    # ------------------------------------------------------------------
    # Video
    # ------------------------------------------------------------------

    def generate_video(
        self,
        prompt: str,
        aspect_ratio: str = "16:9",
        reference: Optional[ImageAttachment] = None,
        sleep: Callable[[float], None] = time.sleep,
        poll_interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ) -> str:
        """
        Start a video job, poll until it finishes, and download the result.

        Returns the path of a temporary .mp4 file. Raises VideoTimeoutError if
        the job is still running after max_attempts polls.
        """
        client = self._require_client()
        interval = config.VIDEO_POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval
        attempts_allowed = config.VIDEO_POLL_MAX_ATTEMPTS if max_attempts is None else max_attempts

        kwargs = {
            "model": config.VIDEO_MODEL,
            "prompt": prompt,
            "size": VIDEO_SIZES[aspect_ratio],
        }
        if reference is not None:
            kwargs["input_reference"] = _image_file(reference, "reference")
        logger.vid(f"→ Starting {aspect_ratio} video: \"{prompt[:60]}\"")

        with self._call("videos.create", model=config.VIDEO_MODEL):
            job = client.videos.create(**kwargs)

        attempt = 0
        while job.status not in ("completed", "failed"):
            if attempt >= attempts_allowed:
                logger.vid(f"✗ {job.id} still {job.status} after {attempt} polls, giving up")
                raise VideoTimeoutError(f"Video generation did not finish after {attempt} checks")
            sleep(interval)
            attempt += 1
            with self._call("videos.retrieve"):
                job = client.videos.retrieve(job.id)
            logger.vid_poll(job.id, attempt, job.status)

        if job.status == "failed":
            error = getattr(job, "error", None)
            reason = getattr(error, "message", None) or "unknown error"
            raise VideoGenerationError(f"Video generation failed: {reason}")

        with self._call("videos.download_content"):
            content = client.videos.download_content(job.id)
            video_bytes = content.read()

        fd, path = tempfile.mkstemp(suffix=".mp4", prefix="eduvision_video_")
        with os.fdopen(fd, "wb") as f:
            f.write(video_bytes)
        logger.vid(f"✓ Saved to: {path} ({len(video_bytes)} bytes)")
        return path

    # ------------------------------------------------------------------
    # Text-to-Speech
    # ------------------------------------------------------------------

    def synthesize_speech(self, text: str, voice: Optional[str] = None) -> Optional[str]:
        """
        Convert text to an MP3 file.

        Failures are logged and return None; playback simply does not start.
        """
        if self.client is None:
            logger.warning("OpenAI client not available, skipping speech synthesis")
            return None
        if not text or not text.strip():
            logger.warning("Empty text provided for speech synthesis")
            return None

        text = text[:config.SPEECH_MAX_CHARS]
        selected_voice = voice or config.TTS_VOICE
        logger.tts(f"synthesize_speech() - {len(text)} chars, voice={selected_voice}")

        try:
            with self._call("audio.speech.create", model=config.TTS_MODEL):
                response = self.client.audio.speech.create(
                    model=config.TTS_MODEL,
                    voice=selected_voice,
                    input=text,
                    response_format="mp3",
                )

            fd, path = tempfile.mkstemp(suffix=".mp3", prefix="eduvision_speech_")
            with os.fdopen(fd, "wb") as f:
                for chunk in response.iter_bytes():
                    f.write(chunk)
        except (BackendError, OSError) as e:
            logger.error(f"Speech synthesis failed: {e}")
            return None

        logger.success(f"Speech audio saved: {path}")
        return path

    def synthesize_speech_async(
        self,
        text: str,
        callback: Callable[[Optional[str]], None],
    ) -> None:
        """Run synthesize_speech on a daemon thread and pass the path to callback."""
        logger.task_start("async_speech_synthesis")

        def _generate():
            start_time = time.perf_counter()
            path = self.synthesize_speech(text)
            duration_ms = (time.perf_counter() - start_time) * 1000
            if path:
                logger.task_complete("async_speech_synthesis", duration_ms=duration_ms)
            else:
                logger.task_error("async_speech_synthesis", "Speech synthesis returned None")
            callback(path)

        threading.Thread(target=_generate, daemon=True).start()
