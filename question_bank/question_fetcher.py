# question_bank/question_fetcher.py
# Created: 2026-10-06
# Purpose: One batch of interview questions: prompt -> completion -> parsed candidates

from __future__ import annotations

import logging
from typing import List, Optional

from question_bank.llm_abstraction import LLMClient
from question_bank.llm_layer import LLMProviderError
from question_bank.question_models import MIXED_DIFFICULTY, Question
from question_bank.response_parser import parse_questions


logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a coding interview expert. "
    "Generate coding questions in valid JSON format only."
)


def generate_prompt(topic: str, count: int, difficulty: str = MIXED_DIFFICULTY) -> str:
    """User prompt asking for *count* multiple-choice questions as a JSON array."""
    if difficulty == MIXED_DIFFICULTY:
        difficulty_text = "a mix of easy, medium, and hard difficulties"
    else:
        difficulty_text = f"{difficulty} difficulty"

    return f"""Generate {count} coding interview questions for {topic} with {difficulty_text}.
Each question should include 4 multiple choice options for approaches/solutions and specify the correct answer.
Return ONLY a valid JSON array with this exact structure:
[
    {{
        "id": "unique_id",
        "question": "question text",
        "difficulty": "easy|medium|hard",
        "topic": "{topic}",
        "tags": ["tag1", "tag2"],
        "example": "code example if applicable",
        "options": [
            "Option A: approach description",
            "Option B: approach description",
            "Option C: approach description",
            "Option D: approach description"
        ],
        "answer": "The correct option from the options array"
    }}
]

Make sure the JSON is valid and contains no additional text or formatting."""


class QuestionFetcher:
    """Fetches batches of candidate questions through an LLMClient profile."""

    def __init__(self, llm_client: LLMClient, profile: Optional[str] = None):
        self.llm_client = llm_client
        self.profile = profile

    @property
    def model_name(self) -> str:
        """Short model label used in backup filenames."""
        return self.profile or "default"

    def fetch_batch(self, topic: str, count: int, difficulty: str = MIXED_DIFFICULTY) -> List[Question]:
        """
        Ask the model for *count* questions and parse the reply.

        Returns an empty list when every completion attempt failed or nothing
        could be parsed; provider errors are logged, not raised.
        """
        prompt = generate_prompt(topic, count, difficulty)
        try:
            content = self.llm_client.complete(SYSTEM_PROMPT, prompt, profile=self.profile)
        except LLMProviderError as e:
            logger.error(f"API request failed for {topic}: {e}")
            return []

        questions = parse_questions(content, topic)
        if not questions:
            logger.warning("No questions could be parsed from API response")
        return questions

    __call__ = fetch_batch


__all__ = ["QuestionFetcher", "generate_prompt", "SYSTEM_PROMPT"]
