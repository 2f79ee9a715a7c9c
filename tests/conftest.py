import json
import os

# Keep test output free of the colour console log.
os.environ.setdefault("EDUVISION_DEBUG", "0")

import pytest


QUIZ_DATA = {
    "title": "Q",
    "questions": [
        {
            "question": "2+2?",
            "options": ["3", "4"],
            "correctAnswer": 1,
            "explanation": "Basic arithmetic.",
        }
    ],
}

FLASHCARD_DATA = {
    "topic": "Cells",
    "cards": [
        {"front": "Mitochondria", "back": "Produces ATP"},
        {"front": "Ribosome", "back": "Builds proteins"},
        {"front": "Nucleus", "back": "Holds DNA"},
    ],
}

WHITEBOARD_DATA = {
    "title": "Pythagoras",
    "steps": [
        {"label": "Step 1", "content": "a² + b² = c²"},
        {"label": "Step 2", "content": "c = 5"},
    ],
}

STUDY_PLAN_DATA = {
    "title": "2-Day Prep",
    "days": [
        {"day": "Day 1", "focus": "Concepts", "tasks": ["Read Ch 1"]},
        {"day": "Day 2", "focus": "Practice", "tasks": ["Past paper", "Mock quiz"]},
    ],
}


def fence(payload) -> str:
    body = payload if isinstance(payload, str) else json.dumps(payload)
    return f"```json\n{body}\n```"


@pytest.fixture
def make_fence():
    return fence


@pytest.fixture
def quiz_data():
    return json.loads(json.dumps(QUIZ_DATA))


@pytest.fixture
def flashcard_data():
    return json.loads(json.dumps(FLASHCARD_DATA))


@pytest.fixture
def whiteboard_data():
    return json.loads(json.dumps(WHITEBOARD_DATA))


@pytest.fixture
def study_plan_data():
    return json.loads(json.dumps(STUDY_PLAN_DATA))
