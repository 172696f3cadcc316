import re
from typing import Optional

import structlog

from memrag.domain.exceptions import StructuredOutputError
from memrag.domain.models.memory import MIN_IMPORTANCE, MAX_IMPORTANCE
from memrag.infrastructure.llm.generation import GenerationService

logger = structlog.get_logger(__name__)

NO_PERSONAL_INFO = "NONE"

EXTRACTION_PROMPT = """Decide whether the message below reveals personal information about the user that is worth remembering across conversations.

Counts as personal information: name, age, location, job or employer, department, contact details, preferences, interests, goals, skills, background, or opinions the user holds.
Does not count: questions the user asks, general statements, or facts about the topic under discussion.

Message: "{message}"

If personal information is present, reply with a one or two sentence summary that starts with "User:".
Otherwise reply with exactly: NONE

Examples:
"I'm Priya and I run the data platform team" -> User: Name is Priya, leads the data platform team
"I'd rather get answers in bullet points" -> User: Prefers answers formatted as bullet points
"How does vector search work?" -> NONE"""

SCORING_PROMPT = """Rate from 1 to 10 how important it is to remember this information about the user.

Weigh how specific it is, how likely it is to matter in later conversations, and how much it reveals about the user's needs or preferences.

Information:
{content}

Reply with a single number between 1 and 10."""

_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


class ImportanceOracle:
    """Extraction and scoring calls that gate what enters long-term memory.

    Both calls propagate collaborator failures; the memory manager decides how
    to degrade.
    """

    def __init__(self, generation: GenerationService):
        self.generation = generation

    async def extract_personal_information(self, user_text: str) -> Optional[str]:
        """Normalized summary of personal content, or None when there is none"""

        response = await self.generation.complete([
            {"role": "user", "content": EXTRACTION_PROMPT.format(message=user_text)}
        ])
        result = response.strip()

        if not result or result.upper() == NO_PERSONAL_INFO or "no personal information" in result.lower():
            return None
        return result

    async def score_importance(self, content: str) -> float:
        """Importance of a summary on the 1-10 scale"""

        response = await self.generation.complete([
            {"role": "user", "content": SCORING_PROMPT.format(content=content)}
        ])
        match = _NUMBER.search(response)
        if match is None:
            raise StructuredOutputError(f"No importance score in response: {response!r}")

        score = float(match.group())
        return max(MIN_IMPORTANCE, min(MAX_IMPORTANCE, score))
