import itertools
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, Optional, Tuple


Role = Literal["user", "model"]


class GradeLevel(str, Enum):
    """Grade bands offered in the settings dialog."""
    ELEMENTARY = "Grade 1-5"
    MIDDLE_SCHOOL = "Grade 6-10"
    HIGH_SCHOOL = "Grade 11-12"
    COLLEGE = "College/University"


class AppMode(str, Enum):
    """Routing target for the next user turn. Always chosen explicitly by the user."""
    CHAT = "chat"
    IMAGE_GENERATION = "image_generation"
    IMAGE_EDIT = "image_edit"
    VIDEO_GENERATION = "video_generation"


ImageSize = Literal["1K", "2K", "4K"]
VideoAspectRatio = Literal["16:9", "9:16"]

IMAGE_SIZES: Tuple[str, ...] = ("1K", "2K", "4K")
VIDEO_ASPECT_RATIOS: Tuple[str, ...] = ("16:9", "9:16")

LANGUAGES = [
    "English",
    "Spanish",
    "French",
    "German",
    "Hindi",
    "Tamil",
    "Mandarin",
    "Arabic",
]

LEARNING_MODES = [
    "Standard Tutor",
    "Problem Solver (Step-by-Step)",
    "Exam Booster",
    "Socratic Method (Teach-Back)",
    "Explain Like I'm 5",
    "Career/Real-World Application",
]


@dataclass(frozen=True)
class ImageAttachment:
    """An image attached to a turn, held in memory as base64."""
    mime_type: str                   # e.g. image/jpeg, image/png
    data: str                        # base64 without the data: prefix

    @classmethod
    def from_data_url(cls, value: str, default_mime: str = "image/jpeg") -> "ImageAttachment":
        """Accept either a data: URL or bare base64."""
        if value.startswith("data:") and "," in value:
            header, data = value.split(",", 1)
            mime = header[5:].split(";", 1)[0] or default_mime
            return cls(mime_type=mime, data=data)
        return cls(mime_type=default_mime, data=value)

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


_id_counter = itertools.count(1)


def new_message_id() -> str:
    """Time-ordered id; the counter breaks ties within the same millisecond."""
    return f"{int(time.time() * 1000)}-{next(_id_counter)}"


@dataclass(frozen=True)
class Message:
    """One conversation turn. Frozen: the log is append-only."""
    role: Role
    text: str
    images: Tuple[ImageAttachment, ...] = ()
    generated_image: Optional[str] = None     # base64 PNG returned by image generation/edit
    generated_video: Optional[str] = None     # path to a downloaded video file
    is_error: bool = False
    id: str = field(default_factory=new_message_id)
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class UserSettings:
    """Per-session tutoring preferences, copied into every outbound request."""
    grade_level: GradeLevel = GradeLevel.HIGH_SCHOOL
    language: str = "English"
    selected_mode: str = "Standard Tutor"
    is_teacher_mode: bool = False


@dataclass(frozen=True)
class UserStats:
    """Snapshot of gamification progress sent along with chat requests."""
    xp: int
    level: int
    rank: str
