"""
EduVision Tutor - Tkinter chat front end

Flow:
1. Learner types a question (optionally attaching images) and picks a mode:
   chat, image generation, image edit or video generation.
2. The request runs on a background thread; the send button is disabled
   until the reply arrives.
3. Replies are split into text and interactive widgets (quiz, flashcards,
   whiteboard, study plan). XP tags in replies feed the rank display.

Setup (from repo root):

    python -m venv .venv
    source .venv/bin/activate   # or .venv\\Scripts\\activate on Windows
    pip install -e .

Ensure .env contains:
    OPENAI_API_KEY=sk-...

Then run:
    python main.py
"""

import base64
import io
import mimetypes
import os
import threading
import tkinter as tk
import webbrowser
from pathlib import Path
from tkinter import filedialog, simpledialog, ttk
from typing import Dict, List, Optional

from PIL import Image, ImageTk

# Audio playback support
try:
    import pygame
    pygame.mixer.init()
    AUDIO_AVAILABLE = True
except (ImportError, RuntimeError) as e:
    AUDIO_AVAILABLE = False
    print(f"Note: audio playback disabled ({e}). Install with: pip install pygame")

from eduvision import config
from eduvision.api import OpenAIBackend
from eduvision.errors import SessionBusyError
from eduvision.logger import logger
from eduvision.models import (
    IMAGE_SIZES,
    LANGUAGES,
    LEARNING_MODES,
    VIDEO_ASPECT_RATIOS,
    AppMode,
    GradeLevel,
    ImageAttachment,
    Message,
)
from eduvision.orchestrator import Orchestrator
from eduvision.parser import Widget, parse_reply, speakable_text, visible_text, widgets_of
from eduvision.schemas import FlashcardData, QuizData, StudyPlanData, WhiteboardData
from eduvision.session import Session
from eduvision.widgets import FlashcardDeck, QuizSession

logger.banner("EduVision Tutor - Starting Application")

BG = "#1e1e1e"
PANEL = "#2d2d2d"
USER_BUBBLE = "#2f5597"
MODEL_BUBBLE = "#333842"
ACCENT = "#4fd1c5"
TEXT = "#e0e0e0"
MUTED = "#9aa0a6"
ERROR = "#ff6b6b"
CORRECT = "#4caf50"

RANK_COLORS = {
    "Beginner": MUTED,
    "Intermediate": "#7bb3ff",
    "Advanced": "#c792ea",
    "Master": "#f5c542",
}

MODE_LABELS = {
    AppMode.CHAT: "Chat",
    AppMode.IMAGE_GENERATION: "Generate Image",
    AppMode.IMAGE_EDIT: "Edit Image",
    AppMode.VIDEO_GENERATION: "Generate Video",
}

THUMBNAIL_SIZE = (200, 200)


def photo_from_base64(data: str, max_size=THUMBNAIL_SIZE) -> Optional[ImageTk.PhotoImage]:
    """Decode base64 image bytes into a thumbnail PhotoImage."""
    try:
        image = Image.open(io.BytesIO(base64.b64decode(data)))
        image.thumbnail(max_size)
        return ImageTk.PhotoImage(image)
    except (OSError, ValueError) as e:
        logger.warning(f"Could not decode image: {e}")
        return None


def load_attachment(path: str) -> Optional[ImageAttachment]:
    """Read an image file from disk into an in-memory attachment."""
    mime, _ = mimetypes.guess_type(path)
    try:
        with Image.open(path) as image:
            image.verify()
        with open(path, "rb") as f:
            data = base64.b64encode(f.read()).decode("ascii")
    except OSError as e:
        logger.error(f"Could not read image {path}: {e}")
        return None
    return ImageAttachment(mime_type=mime or "image/jpeg", data=data)


# ---------------------------------------------------------------------------
# Scrollable chat area
# ---------------------------------------------------------------------------

class ScrollableFrame(ttk.Frame):
    """
    Vertical scrolling container. Add children to `.content`.
    """

    def __init__(self, parent, **kwargs) -> None:
        super().__init__(parent, **kwargs)

        self.canvas = tk.Canvas(self, highlightthickness=0, background=BG)
        self.scrollbar = ttk.Scrollbar(self, orient="vertical", command=self.canvas.yview)
        self.content = ttk.Frame(self.canvas)
        self.content_window = self.canvas.create_window((0, 0), window=self.content, anchor="nw")
        self.canvas.configure(yscrollcommand=self.scrollbar.set)

        self.canvas.pack(side="left", fill="both", expand=True)
        self.scrollbar.pack(side="right", fill="y")

        self.content.bind("<Configure>", lambda e: self.canvas.configure(scrollregion=self.canvas.bbox("all")))
        self.canvas.bind("<Configure>", lambda e: self.canvas.itemconfigure(self.content_window, width=e.width))
        self.canvas.bind_all("<MouseWheel>", self._on_mousewheel)
        self.canvas.bind_all("<Button-4>", lambda e: self.canvas.yview_scroll(-1, "units"))
        self.canvas.bind_all("<Button-5>", lambda e: self.canvas.yview_scroll(1, "units"))

    def _on_mousewheel(self, event: tk.Event) -> None:
        step = -1 if event.delta > 0 else 1
        self.canvas.yview_scroll(step, "units")

    def scroll_to_bottom(self) -> None:
        self.update_idletasks()
        self.canvas.yview_moveto(1.0)


class LoadingSpinner(ttk.Label):
    """Braille-dot spinner shown while a request is pending."""

    FRAMES = ["⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏"]

    def __init__(self, parent, text: str) -> None:
        super().__init__(parent, text="", foreground=ACCENT, font=("Helvetica", 12))
        self.text = text
        self._index = 0
        self._after_id = None

    def start(self) -> None:
        if self._after_id is None:
            self._animate()

    def stop(self) -> None:
        if self._after_id is not None:
            self.after_cancel(self._after_id)
            self._after_id = None
        self.configure(text="")

    def _animate(self) -> None:
        self.configure(text=f"{self.FRAMES[self._index]} {self.text}")
        self._index = (self._index + 1) % len(self.FRAMES)
        self._after_id = self.after(100, self._animate)


# ---------------------------------------------------------------------------
# Reply widgets
# ---------------------------------------------------------------------------

class QuizView(ttk.Frame):
    """Interactive quiz: one locked-in answer per question, then a score summary."""

    def __init__(self, parent, data: QuizData) -> None:
        super().__init__(parent, style="Widget.TFrame", padding=12)
        self.quiz = QuizSession(data)
        self._render()

    def _clear(self) -> None:
        for child in self.winfo_children():
            child.destroy()

    def _render(self) -> None:
        self._clear()
        quiz = self.quiz
        ttk.Label(self, text=quiz.data.title or "Quiz", style="WidgetTitle.TLabel").pack(anchor="w")

        if quiz.completed:
            score, total = quiz.summary
            ttk.Label(self, text=f"Quiz complete! You scored {score} / {total}.",
                      style="Widget.TLabel").pack(anchor="w", pady=8)
            ttk.Button(self, text="↻ Restart Quiz", command=self._on_restart).pack(anchor="w")
            return

        question = quiz.current_question
        ttk.Label(self, text=f"Question {quiz.current_index + 1} of {quiz.total}",
                  style="Muted.TLabel").pack(anchor="w")
        ttk.Label(self, text=question.question, style="Widget.TLabel",
                  wraplength=560, justify="left").pack(anchor="w", pady=(4, 8))

        for index, option in enumerate(question.options):
            style = "TButton"
            if quiz.answered:
                if index == question.correct_answer:
                    style = "Correct.TButton"
                elif index == quiz.selected_option:
                    style = "Wrong.TButton"
            button = ttk.Button(self, text=option, style=style,
                                command=lambda i=index: self._on_select(i))
            button.pack(fill="x", pady=2)

        if quiz.show_explanation:
            verdict = "✓ Correct!" if quiz.is_correct() else "✗ Not quite."
            ttk.Label(self, text=f"{verdict} {question.explanation}", style="Widget.TLabel",
                      wraplength=560, justify="left").pack(anchor="w", pady=(8, 4))
            label = "Finish Quiz" if quiz.is_last_question else "Next Question →"
            ttk.Button(self, text=label, command=self._on_next).pack(anchor="e")

    def _on_select(self, index: int) -> None:
        if self.quiz.select(index):
            self._render()

    def _on_next(self) -> None:
        if self.quiz.next():
            self._render()

    def _on_restart(self) -> None:
        self.quiz.restart()
        self._render()


class FlashcardsView(ttk.Frame):
    """Click the card to flip; arrows wrap around the deck."""

    def __init__(self, parent, data: FlashcardData) -> None:
        super().__init__(parent, style="Widget.TFrame", padding=12)
        self.deck = FlashcardDeck(data)

        ttk.Label(self, text=data.topic or "Flashcards", style="WidgetTitle.TLabel").pack()
        self.card_label = tk.Label(self, width=40, height=6, wraplength=380, bg=PANEL, fg=TEXT,
                                   font=("Helvetica", 14), relief="ridge", cursor="hand2")
        self.card_label.pack(pady=8)
        self.card_label.bind("<Button-1>", lambda e: self._on_flip())

        nav = ttk.Frame(self, style="Widget.TFrame")
        nav.pack(fill="x")
        ttk.Button(nav, text="←", width=4, command=self._on_previous).pack(side="left")
        self.position_label = ttk.Label(nav, style="Muted.TLabel")
        self.position_label.pack(side="left", expand=True)
        ttk.Button(nav, text="→", width=4, command=self._on_next).pack(side="right")
        self._refresh()

    def _refresh(self) -> None:
        side = "Back" if self.deck.flipped else "Front"
        self.card_label.configure(text=f"{side}\n\n{self.deck.visible_text}",
                                  bg="#1f3a5f" if self.deck.flipped else PANEL)
        self.position_label.configure(text=f"{self.deck.index + 1} / {len(self.deck)}")

    def _on_flip(self) -> None:
        self.deck.flip()
        self._refresh()

    def _on_next(self) -> None:
        self.deck.next()
        self._refresh()

    def _on_previous(self) -> None:
        self.deck.previous()
        self._refresh()


class WhiteboardView(ttk.Frame):
    def __init__(self, parent, data: WhiteboardData) -> None:
        super().__init__(parent, style="Widget.TFrame", padding=12)
        ttk.Label(self, text=f"🧮 {data.title or 'Whiteboard'}", style="WidgetTitle.TLabel").pack(anchor="w")
        for step in data.steps:
            ttk.Label(self, text=step.label, style="Accent.TLabel").pack(anchor="w", pady=(8, 0))
            ttk.Label(self, text=step.content, style="Mono.TLabel",
                      wraplength=560, justify="left").pack(anchor="w", padx=(12, 0))


class StudyPlanView(ttk.Frame):
    def __init__(self, parent, data: StudyPlanData) -> None:
        super().__init__(parent, style="Widget.TFrame", padding=12)
        ttk.Label(self, text=f"📅 {data.title or 'Study Plan'}", style="WidgetTitle.TLabel").pack(anchor="w")
        for day in data.days:
            header = f"{day.day} · {day.focus}" if day.focus else day.day
            ttk.Label(self, text=header, style="Accent.TLabel").pack(anchor="w", pady=(8, 0))
            for task in day.tasks:
                ttk.Label(self, text=f"☐ {task}", style="Widget.TLabel",
                          wraplength=540, justify="left").pack(anchor="w", padx=(12, 0))


WIDGET_VIEWS = {
    "quiz": QuizView,
    "flashcards": FlashcardsView,
    "whiteboard": WhiteboardView,
    "study_plan": StudyPlanView,
}


# ---------------------------------------------------------------------------
# Speech playback
# ---------------------------------------------------------------------------

class SpeechButton(ttk.Button):
    """
    Reads a reply aloud. Synthesis runs in the background; any failure just
    puts the button back to its idle state.
    """

    def __init__(self, parent, backend: OpenAIBackend, message: Message) -> None:
        super().__init__(parent, text="🔊 Voice Explanation", command=self._on_click)
        self.backend = backend
        self.message = message
        self._playing = False

    def _on_click(self) -> None:
        if self._playing:
            self._stop()
            return
        if not AUDIO_AVAILABLE:
            self.configure(text="🔇 Audio unavailable")
            return
        self.configure(text="⏳ Preparing voice...", state="disabled")
        text = speakable_text(self.message.text, config.SPEECH_MAX_CHARS)
        self.backend.synthesize_speech_async(text, lambda path: self.after(0, lambda: self._on_audio(path)))

    def _on_audio(self, path: Optional[str]) -> None:
        self.configure(state="normal")
        if not path:
            self._reset()
            return
        try:
            pygame.mixer.music.load(path)
            pygame.mixer.music.play()
        except pygame.error as e:
            logger.error(f"Failed to play speech audio: {e}")
            self._reset()
            return
        self._playing = True
        self.configure(text="⏹ Stop Voice")
        self._check_playback()

    def _check_playback(self) -> None:
        if not self._playing:
            return
        if pygame.mixer.music.get_busy():
            self.after(200, self._check_playback)
        else:
            self._reset()

    def _stop(self) -> None:
        pygame.mixer.music.stop()
        self._reset()

    def _reset(self) -> None:
        self._playing = False
        self.configure(text="🔊 Voice Explanation", state="normal")


# ---------------------------------------------------------------------------
# Message bubble
# ---------------------------------------------------------------------------

class MessageView(ttk.Frame):
    """One chat turn: bubble with text/images, then widgets, then actions."""

    def __init__(self, parent, message: Message, backend: OpenAIBackend) -> None:
        super().__init__(parent, padding=(8, 6))
        self._photos: List[ImageTk.PhotoImage] = []
        is_user = message.role == "user"
        anchor = "e" if is_user else "w"
        bubble_style = "User.TFrame" if is_user else "Model.TFrame"
        label_style = "User.TLabel" if is_user else "Model.TLabel"

        bubble = ttk.Frame(self, style=bubble_style, padding=12)
        bubble.pack(anchor=anchor)

        if message.images:
            strip = ttk.Frame(bubble, style=bubble_style)
            strip.pack(anchor="w", pady=(0, 6))
            for attachment in message.images:
                self._add_image(strip, attachment.data).pack(side="left", padx=2)

        widgets: List[Widget] = []
        if is_user or message.is_error:
            ttk.Label(bubble, text=message.text, style=label_style,
                      wraplength=600, justify="left").pack(anchor="w")
        else:
            blocks = parse_reply(message.text)
            prose = visible_text(blocks).strip()
            if prose:
                ttk.Label(bubble, text=prose, style=label_style,
                          wraplength=600, justify="left").pack(anchor="w")
            widgets = widgets_of(blocks)

        if message.generated_image:
            self._add_image(bubble, message.generated_image, (480, 480)).pack(anchor="w", pady=6)

        if message.generated_video:
            uri = Path(message.generated_video).resolve().as_uri()
            ttk.Button(bubble, text="▶ Open generated video",
                       command=lambda: webbrowser.open(uri)).pack(anchor="w", pady=6)

        if message.is_error:
            ttk.Label(bubble, text="⚠ Failed to send message.", style="Error.TLabel").pack(anchor="w", pady=(6, 0))

        for widget in widgets:
            WIDGET_VIEWS[widget.kind](self, widget.payload).pack(anchor="w", fill="x", pady=6)

        if not is_user and not message.is_error:
            SpeechButton(self, backend, message).pack(anchor="w", pady=(4, 0))

    def _add_image(self, parent, data: str, max_size=THUMBNAIL_SIZE) -> ttk.Label:
        photo = photo_from_base64(data, max_size)
        if photo is None:
            return ttk.Label(parent, text="[Could not display image]", style="Muted.TLabel")
        self._photos.append(photo)
        return ttk.Label(parent, image=photo)


# ---------------------------------------------------------------------------
# Dialogs
# ---------------------------------------------------------------------------

class SettingsDialog(tk.Toplevel):
    def __init__(self, app: "EduVisionApp") -> None:
        super().__init__(app)
        self.app = app
        self.title("Settings")
        self.configure(bg=BG)
        self.transient(app)
        self.resizable(False, False)

        settings = app.session.settings
        self.grade_var = tk.StringVar(value=settings.grade_level.value)
        self.language_var = tk.StringVar(value=settings.language)
        self.mode_var = tk.StringVar(value=settings.selected_mode)
        self.teacher_var = tk.BooleanVar(value=settings.is_teacher_mode)

        frame = ttk.Frame(self, padding=20)
        frame.pack(fill="both", expand=True)

        rows = (
            ("Grade Level", self.grade_var, [g.value for g in GradeLevel]),
            ("Language", self.language_var, LANGUAGES),
            ("Learning Mode", self.mode_var, LEARNING_MODES),
        )
        for row, (label, var, values) in enumerate(rows):
            ttk.Label(frame, text=label).grid(row=row, column=0, sticky="w", pady=6)
            ttk.Combobox(frame, textvariable=var, values=values, state="readonly",
                         width=32).grid(row=row, column=1, sticky="ew", pady=6)

        ttk.Checkbutton(frame, text="Teacher Mode (content quality checker)",
                        variable=self.teacher_var).grid(row=3, column=0, columnspan=2, sticky="w", pady=10)

        buttons = ttk.Frame(frame)
        buttons.grid(row=4, column=0, columnspan=2, sticky="e")
        ttk.Button(buttons, text="Cancel", command=self.destroy).pack(side="right", padx=4)
        ttk.Button(buttons, text="Save", command=self._on_save).pack(side="right")

        self.grab_set()

    def _on_save(self) -> None:
        self.app.session.update_settings(
            grade_level=GradeLevel(self.grade_var.get()),
            language=self.language_var.get(),
            selected_mode=self.mode_var.get(),
            is_teacher_mode=self.teacher_var.get(),
        )
        self.destroy()


class TkKeySelector:
    """
    Asks the user for an API key in a dialog.

    select_key() is called from the request worker thread; the dialog itself
    runs on the Tk main loop and the worker waits for the answer.
    """

    def __init__(self, root: tk.Tk) -> None:
        self.root = root

    def has_selected_key(self) -> bool:
        return config.get_api_key() is not None

    def select_key(self) -> Optional[str]:
        answer: Dict[str, Optional[str]] = {}
        done = threading.Event()

        def _ask() -> None:
            try:
                answer["key"] = simpledialog.askstring(
                    "Select API Key",
                    "A valid OpenAI API key is required.\nEnter your OpenAI API key:",
                    parent=self.root,
                    show="*",
                )
            finally:
                done.set()

        self.root.after(0, _ask)
        done.wait()

        key = (answer.get("key") or "").strip() or None
        if key:
            os.environ["OPENAI_API_KEY"] = key
            logger.env_success(f"API key selected: {config.mask_key(key)}")
        return key


# ---------------------------------------------------------------------------
# Main window
# ---------------------------------------------------------------------------

class EduVisionApp(tk.Tk):
    def __init__(self) -> None:
        super().__init__()
        logger.ui("Initializing EduVisionApp window...")

        self.title("EduVision Tutor")
        self.geometry("900x800")
        self.minsize(500, 400)
        self.configure(bg=BG)
        self._configure_styles()

        self.session = Session()
        self.backend = OpenAIBackend()
        self.orchestrator = Orchestrator(self.session, self.backend, TkKeySelector(self))

        self.pending_images: List[ImageAttachment] = []
        self._preview_photos: List[ImageTk.PhotoImage] = []
        self._rendered_count = 0
        self._toast_after_id = None

        self._build_header()
        self._build_chat()
        self._build_input()

        self._refresh_messages()
        self._refresh_stats()
        logger.ui("Application initialized successfully")

    def _configure_styles(self) -> None:
        style = ttk.Style()
        style.theme_use("clam")
        style.configure("TFrame", background=BG)
        style.configure("TLabel", background=BG, foreground=TEXT, font=("Helvetica", 13))
        style.configure("TButton", background=PANEL, foreground=TEXT, font=("Helvetica", 12))
        style.map("TButton", background=[("active", "#3d3d3d")])
        style.configure("Correct.TButton", background=CORRECT, foreground="#ffffff")
        style.configure("Wrong.TButton", background=ERROR, foreground="#ffffff")
        style.configure("TCheckbutton", background=BG, foreground=TEXT)
        style.configure("TCombobox", fieldbackground="#3d3d3d", foreground="#ffffff")
        style.configure("User.TFrame", background=USER_BUBBLE)
        style.configure("Model.TFrame", background=MODEL_BUBBLE)
        style.configure("User.TLabel", background=USER_BUBBLE, foreground="#ffffff")
        style.configure("Model.TLabel", background=MODEL_BUBBLE, foreground=TEXT)
        style.configure("Widget.TFrame", background=PANEL)
        style.configure("Widget.TLabel", background=PANEL, foreground=TEXT)
        style.configure("WidgetTitle.TLabel", background=PANEL, foreground=ACCENT, font=("Helvetica", 15, "bold"))
        style.configure("Accent.TLabel", background=PANEL, foreground=ACCENT, font=("Helvetica", 13, "bold"))
        style.configure("Mono.TLabel", background=PANEL, foreground=TEXT, font=("Courier", 12))
        style.configure("Muted.TLabel", background=PANEL, foreground=MUTED, font=("Helvetica", 11))
        style.configure("Error.TLabel", background=MODEL_BUBBLE, foreground=ERROR, font=("Helvetica", 11))
        style.configure("Toast.TLabel", background=BG, foreground=CORRECT, font=("Helvetica", 12, "bold"))
        style.configure("XP.Horizontal.TProgressbar", background=ACCENT, troughcolor=PANEL)

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    def _build_header(self) -> None:
        header = ttk.Frame(self, padding=(16, 10))
        header.pack(fill="x")

        ttk.Label(header, text="🧠 EduVision Tutor", font=("Helvetica", 18, "bold"),
                  foreground=ACCENT).pack(side="left")

        ttk.Button(header, text="⚙", width=3, command=lambda: SettingsDialog(self)).pack(side="right")
        ttk.Button(header, text="New Session", command=self._on_reset).pack(side="right", padx=6)

        stats = ttk.Frame(header)
        stats.pack(side="right", padx=12)
        self.toast_label = ttk.Label(stats, text="", style="Toast.TLabel")
        self.toast_label.grid(row=0, column=0, columnspan=2)
        self.rank_label = ttk.Label(stats, font=("Helvetica", 13, "bold"))
        self.rank_label.grid(row=1, column=0, padx=(0, 8))
        self.level_label = ttk.Label(stats, font=("Helvetica", 10))
        self.level_label.grid(row=1, column=1)
        self.xp_bar = ttk.Progressbar(stats, length=120, maximum=100,
                                      style="XP.Horizontal.TProgressbar")
        self.xp_bar.grid(row=2, column=0, columnspan=2, pady=(2, 0))

    def _build_chat(self) -> None:
        self.chat = ScrollableFrame(self)
        self.chat.pack(fill="both", expand=True, padx=8)
        self.spinner = LoadingSpinner(self, "EduVision is analyzing learning style & crafting response...")
        self.spinner.pack(anchor="w", padx=16)

    def _build_input(self) -> None:
        panel = ttk.Frame(self, padding=(12, 8))
        panel.pack(fill="x")

        self.preview_row = ttk.Frame(panel)
        self.preview_row.pack(fill="x")

        options = ttk.Frame(panel)
        options.pack(fill="x", pady=(4, 4))
        ttk.Label(options, text="Mode").pack(side="left")
        self.mode_var = tk.StringVar(value=MODE_LABELS[AppMode.CHAT])
        mode_box = ttk.Combobox(options, textvariable=self.mode_var, state="readonly", width=16,
                                values=list(MODE_LABELS.values()))
        mode_box.pack(side="left", padx=(4, 12))
        mode_box.bind("<<ComboboxSelected>>", lambda e: self._on_mode_change())

        ttk.Label(options, text="Image size").pack(side="left")
        self.size_var = tk.StringVar(value=IMAGE_SIZES[0])
        ttk.Combobox(options, textvariable=self.size_var, values=list(IMAGE_SIZES),
                     state="readonly", width=4).pack(side="left", padx=(4, 12))

        ttk.Label(options, text="Aspect").pack(side="left")
        self.aspect_var = tk.StringVar(value=VIDEO_ASPECT_RATIOS[0])
        ttk.Combobox(options, textvariable=self.aspect_var, values=list(VIDEO_ASPECT_RATIOS),
                     state="readonly", width=5).pack(side="left", padx=4)

        row = ttk.Frame(panel)
        row.pack(fill="x")
        ttk.Button(row, text="📎", width=3, command=self._on_attach).pack(side="left", anchor="s")
        self.input_text = tk.Text(row, height=3, wrap="word", bg=PANEL, fg=TEXT,
                                  insertbackground=TEXT, font=("Helvetica", 13), relief="flat")
        self.input_text.pack(side="left", fill="x", expand=True, padx=6)
        self.input_text.bind("<Return>", self._on_return)
        self.send_button = ttk.Button(row, text="Send ➤", command=self._on_send)
        self.send_button.pack(side="left", anchor="s")

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _clear_messages(self) -> None:
        for child in self.chat.content.winfo_children():
            child.destroy()
        self._rendered_count = 0

    def _refresh_messages(self) -> None:
        history = self.session.history
        for message in history[self._rendered_count:]:
            MessageView(self.chat.content, message, self.backend).pack(fill="x")
        self._rendered_count = len(history)
        self.chat.scroll_to_bottom()

    def _refresh_stats(self) -> None:
        game = self.session.gamification
        self.rank_label.configure(text=game.rank, foreground=RANK_COLORS[game.rank])
        self.level_label.configure(text=f"Lvl {game.level} · {game.xp} XP")
        self.xp_bar.configure(value=game.level_progress * 100)

        if game.notification_visible():
            self.toast_label.configure(text=f"+{game.notification.amount} XP")
            if self._toast_after_id is not None:
                self.after_cancel(self._toast_after_id)
            delay_ms = int(config.XP_NOTIFICATION_SECONDS * 1000)
            self._toast_after_id = self.after(delay_ms, self._clear_toast)

    def _clear_toast(self) -> None:
        self._toast_after_id = None
        self.session.gamification.clear_notification()
        self.toast_label.configure(text="")

    def _refresh_previews(self) -> None:
        for child in self.preview_row.winfo_children():
            child.destroy()
        self._preview_photos = []
        for index, attachment in enumerate(self.pending_images):
            photo = photo_from_base64(attachment.data, (64, 64))
            cell = ttk.Frame(self.preview_row)
            cell.pack(side="left", padx=3, pady=3)
            if photo is not None:
                self._preview_photos.append(photo)
                ttk.Label(cell, image=photo).pack()
            ttk.Button(cell, text="✕", width=2,
                       command=lambda i=index: self._on_remove_image(i)).pack()

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _on_mode_change(self) -> None:
        label = self.mode_var.get()
        mode = next(m for m, text in MODE_LABELS.items() if text == label)
        self.session.set_mode(mode)

    def _on_attach(self) -> None:
        paths = filedialog.askopenfilenames(
            title="Attach images",
            filetypes=[("Images", "*.png *.jpg *.jpeg *.webp *.gif")],
        )
        for path in paths:
            attachment = load_attachment(path)
            if attachment is not None:
                self.pending_images.append(attachment)
        logger.ui(f"{len(self.pending_images)} image(s) attached")
        self._refresh_previews()

    def _on_remove_image(self, index: int) -> None:
        del self.pending_images[index]
        self._refresh_previews()

    def _on_return(self, event: tk.Event) -> Optional[str]:
        if event.state & 0x0001:  # Shift held: newline
            return None
        if not self.session.is_pending:
            self._on_send()
        return "break"

    def _on_send(self) -> None:
        text = self.input_text.get("1.0", "end").strip()
        if self.session.is_pending or (not text and not self.pending_images):
            return

        try:
            started = self.orchestrator.handle_turn_async(
                text,
                lambda message: self.after(0, self._on_turn_finished),
                images=list(self.pending_images),
                image_size=self.size_var.get(),
                aspect_ratio=self.aspect_var.get(),
            )
        except SessionBusyError:
            logger.warning("Send ignored: a request is already in progress")
            return
        if not started:
            return

        # The turn is recorded; only now is the draft safe to clear
        self.input_text.delete("1.0", "end")
        self.pending_images = []
        self._refresh_previews()
        self.send_button.configure(state="disabled")
        self.spinner.start()
        self._refresh_messages()

    def _on_turn_finished(self) -> None:
        self.spinner.stop()
        self.send_button.configure(state="normal")
        self._refresh_messages()
        self._refresh_stats()

    def _on_reset(self) -> None:
        if self.session.is_pending:
            return
        self.session.reset()
        self._clear_messages()
        self._refresh_messages()
        self._refresh_stats()


def main() -> None:
    app = EduVisionApp()
    app.mainloop()


if __name__ == "__main__":
    main()
