"""
Structured JSON schemas for interactive reply widgets.

The model embeds widgets in its reply as fenced ```json blocks of the form
{"type": <kind>, "data": {...}}. The pydantic models below are the contract
the client validates against before rendering; the prompt text further down
documents the same shapes for the model.
"""

from typing import Annotated, List, Literal, Union

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StrictInt,
    StringConstraints,
    TypeAdapter,
    model_validator,
)

from .models import UserSettings, UserStats

WidgetKind = Literal["quiz", "flashcards", "whiteboard", "study_plan"]
WIDGET_KINDS = ("quiz", "flashcards", "whiteboard", "study_plan")

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


def _number_as_text(value):
    # Models write numeric answers such as [3, 4] without quoting them
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


OptionText = Annotated[str, BeforeValidator(_number_as_text)]


class _Payload(BaseModel):
    # Models routinely add commentary fields; they are ignored, not rejected.
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)


# ---------------------------------------------------------------------------
# Quiz
# ---------------------------------------------------------------------------

class QuizQuestion(_Payload):
    question: NonEmptyStr
    options: List[OptionText] = Field(min_length=2)
    correct_answer: StrictInt = Field(alias="correctAnswer")
    explanation: str = ""

    @model_validator(mode="after")
    def _answer_in_range(self) -> "QuizQuestion":
        if not 0 <= self.correct_answer < len(self.options):
            raise ValueError(
                f"correctAnswer {self.correct_answer} is out of range for {len(self.options)} options"
            )
        return self


class QuizData(_Payload):
    title: str = ""
    questions: List[QuizQuestion] = Field(min_length=1)


# ---------------------------------------------------------------------------
# Flashcards
# ---------------------------------------------------------------------------

class Flashcard(_Payload):
    front: NonEmptyStr
    back: NonEmptyStr


class FlashcardData(_Payload):
    topic: str = ""
    cards: List[Flashcard] = Field(min_length=1)


# ---------------------------------------------------------------------------
# Whiteboard (step-by-step derivation, order matters)
# ---------------------------------------------------------------------------

class WhiteboardStep(_Payload):
    label: str
    content: str


class WhiteboardData(_Payload):
    title: str = ""
    steps: List[WhiteboardStep] = Field(min_length=1)


# ---------------------------------------------------------------------------
# Study plan
# ---------------------------------------------------------------------------

class StudyPlanDay(_Payload):
    day: str
    focus: str = ""
    tasks: List[str] = Field(default_factory=list)


class StudyPlanData(_Payload):
    title: str = ""
    days: List[StudyPlanDay] = Field(min_length=1)


# ---------------------------------------------------------------------------
# Tagged union over the fenced block envelope
# ---------------------------------------------------------------------------

class QuizBlock(_Payload):
    type: Literal["quiz"]
    data: QuizData


class FlashcardsBlock(_Payload):
    type: Literal["flashcards"]
    data: FlashcardData


class WhiteboardBlock(_Payload):
    type: Literal["whiteboard"]
    data: WhiteboardData


class StudyPlanBlock(_Payload):
    type: Literal["study_plan"]
    data: StudyPlanData


WidgetPayload = Union[QuizData, FlashcardData, WhiteboardData, StudyPlanData]

WidgetBlock = Annotated[
    Union[QuizBlock, FlashcardsBlock, WhiteboardBlock, StudyPlanBlock],
    Field(discriminator="type"),
]

widget_block_adapter: TypeAdapter = TypeAdapter(WidgetBlock)


# ---------------------------------------------------------------------------
# Prompt text
# ---------------------------------------------------------------------------

WIDGET_FORMAT_GUIDE = """
You MUST use the following JSON blocks for specific tasks. Wrap JSON in ```json```.

**A. Whiteboard Mode (Step-by-Step Problem Solving)**
TRIGGER: When solving Math, Physics, Chemistry problems, or logical processes.
```json
{
  "type": "whiteboard",
  "data": {
    "title": "Problem Title",
    "steps": [
      { "label": "Step 1: Identify", "content": "List known values: x=5, y=10" },
      { "label": "Step 2: Strategy", "content": "Use Pythagorean theorem: a² + b² = c²" },
      { "label": "Step 3: Solve", "content": "25 + 100 = 125, c ≈ 11.18" }
    ]
  }
}
```

**B. Study Plan (Time-Based Exam Prep)**
TRIGGER: User mentions time constraints (e.g., "Exam in 3 days", "1 week left").
```json
{
  "type": "study_plan",
  "data": {
    "title": "3-Day Power Prep",
    "days": [
      { "day": "Day 1", "focus": "Core Concepts", "tasks": ["Review Ch 1-3", "Memorize Formula Sheet"] },
      { "day": "Day 2", "focus": "Application", "tasks": ["Solve 20 Past Papers", "Take Mock Quiz"] }
    ]
  }
}
```

**C. Interactive Quiz**
TRIGGER: User asks for a quiz, or after explaining a complex topic to check understanding.
```json
{
  "type": "quiz",
  "data": {
    "title": "Concept Check",
    "questions": [
      {
        "question": "Question text?",
        "options": ["A", "B", "C", "D"],
        "correctAnswer": 0,
        "explanation": "Why A is correct and the others are wrong."
      }
    ]
  }
}
```
"correctAnswer" is the 0-based index of the correct option.

**D. Flashcards**
TRIGGER: User wants to memorize terms, definitions or formulas.
```json
{
  "type": "flashcards",
  "data": {
    "topic": "Cell Biology",
    "cards": [
      { "front": "Mitochondria", "back": "Powerhouse of the cell; produces ATP" }
    ]
  }
}
```
"""

SYSTEM_INSTRUCTION_BASE = f"""
You are EduVision Ultra, a world-class AI Learning Assistant.

### CORE MISSION
Transform any input into a personalized, interactive, and highly effective learning experience.

### 1. INTELLIGENT ANALYSIS (INTERNAL THOUGHT PROCESS)
Before responding, analyze the input for:
*   **Learning Style**: Visual, Logical (step-by-step), Verbal, or Example-based. Adapt accordingly.
*   **Emotion Monitor**: Stress -> simplify and reassure. Boredom -> gamify. Confidence -> go deeper.
*   **Concept Gap Finder**: If the user makes a mistake, pinpoint the exact missing concept and explain why the error happened.

### 2. ADAPTIVE DIFFICULTY
*   **If Correct**: Praise briefly, then introduce a slightly harder variation.
*   **If Incorrect**: Lower difficulty, give a hint, and re-explain with a different analogy.

### 3. TEACHER MODE (QUALITY CHECKER)
*   **If Teacher Mode is ACTIVE**: Act as a peer reviewer of the uploaded content. Check clarity,
    accuracy and age-appropriateness; suggest improvements, missing examples or simpler rewrites.

### 4. REQUIRED OUTPUT FORMATS
{WIDGET_FORMAT_GUIDE}
**E. Diagram Reconstruction**: For unclear diagrams or "draw" requests, produce a clean ASCII
representation or a labelled structured description.

**F. Gamification (XP System)**
TRIGGER: User answers a question correctly or shows insight.
Action: Append `[XP: +50]` (or +20, +100 based on difficulty) to the VERY END of your response.

### STANDARD RESPONSE STRUCTURE
1.  **Empathetic Opening**
2.  **The Hook**: a real-world application or simple analogy.
3.  **Core Explanation**: adapted to learning style and grade level.
4.  **Visuals/Tools**: whiteboard, quiz, flashcards or study plan JSON.
5.  **Check for Understanding**: ask a teach-back question.

### SPECIAL INSTRUCTIONS
*   Write the main explanation in a natural, spoken tutorial style; it may be read aloud.
*   Never hallucinate. If unsure, state "Assumption: ...".
"""


def build_system_instruction(settings: UserSettings, stats: UserStats) -> str:
    """Persona prompt plus the learner's current settings and progress."""
    teacher_mode = "ACTIVE" if settings.is_teacher_mode else "INACTIVE"
    return (
        f"{SYSTEM_INSTRUCTION_BASE}\n"
        "### CURRENT USER CONTEXT\n"
        f"- **Grade Level**: {settings.grade_level.value}\n"
        f"- **Language**: {settings.language}\n"
        f"- **Selected Mode**: {settings.selected_mode}\n"
        f"- **Teacher Mode (Content Checker)**: {teacher_mode}\n"
        f"- **User Rank**: {stats.rank} (Level {stats.level}, {stats.xp} XP)\n\n"
        "*Instructions*:\n"
        "1. If user rank is 'Beginner', keep explanations simple and encouraging.\n"
        "2. If 'Master', be concise, technical, and challenge them.\n"
        "3. If the previous user message was an incorrect quiz answer, activate the Concept Gap Finder immediately.\n"
        f"4. Respond in {settings.language}.\n"
    )
