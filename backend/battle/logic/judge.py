"""Answer judges.

FuzzyAnswerJudge tolerates typos and extra words. SemanticAnswerJudge asks
a chat-completion endpoint when the fuzzy verdict is uncertain and falls
back to the fuzzy verdict whenever the remote call fails.
"""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx
import structlog

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = structlog.get_logger()

EXACT_MATCH_CONFIDENCE = 1.0
CLOSE_MATCH_THRESHOLD = 0.85
PARTIAL_MATCH_THRESHOLD = 0.6
MIN_SIGNIFICANT_WORD_LENGTH = 3

TRUSTED_FUZZY_CONFIDENCE = 0.9
REMOTE_CHECK_BELOW_CONFIDENCE = 0.8
DEFAULT_REMOTE_CONFIDENCE = 0.5

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")

_SYSTEM_PROMPT = "You are a precise answer checker. Always respond with valid JSON only."
_USER_PROMPT = """\
You are an intelligent answer checker for riddles and brain teasers.
Decide whether the user's answer is correct or acceptably close to the intended answer.
Accept synonyms, minor typos, singular/plural and tense variations, and common abbreviations.

{context}Correct Answer: "{correct}"
User's Answer: "{user}"

Respond with JSON in this exact format:
{{"isCorrect": boolean, "confidence": number between 0.0 and 1.0, "explanation": "short reason"}}
"""


@dataclass(frozen=True)
class JudgeVerdict:
    is_correct: bool
    confidence: float
    explanation: str | None = None


class AnswerJudge(ABC):
    """Decides whether a free-text answer matches a riddle's canonical answer."""

    @abstractmethod
    async def check(
        self,
        user_answer: str,
        correct_answer: str,
        *,
        question: str | None = None,
        hint: str | None = None,
    ) -> JudgeVerdict: ...


def normalize_answer(text: str) -> str:
    """Lowercase, drop punctuation and collapse whitespace."""
    text = _PUNCTUATION.sub("", text.lower())
    return _WHITESPACE.sub(" ", text).strip()


def levenshtein_distance(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + (char_a != char_b),
                ),
            )
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """Edit-distance similarity in [0, 1]; two empty strings are identical."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return (longest - levenshtein_distance(a, b)) / longest


def _has_all_main_words(user_words: Sequence[str], correct_words: Sequence[str]) -> bool:
    return all(
        len(word) < MIN_SIGNIFICANT_WORD_LENGTH or any(word in user_word or user_word in word for user_word in user_words)
        for word in correct_words
    )


def fuzzy_verdict(user_answer: str, correct_answer: str) -> JudgeVerdict:
    user = normalize_answer(user_answer)
    correct = normalize_answer(correct_answer)

    if user == correct:
        return JudgeVerdict(is_correct=True, confidence=EXACT_MATCH_CONFIDENCE)

    score = similarity(user, correct)
    if score >= CLOSE_MATCH_THRESHOLD:
        return JudgeVerdict(
            is_correct=True,
            confidence=score,
            explanation=f'Close match: "{user_answer}" is very similar to "{correct_answer}"',
        )

    if score >= PARTIAL_MATCH_THRESHOLD and _has_all_main_words(user.split(" "), correct.split(" ")):
        return JudgeVerdict(
            is_correct=True,
            confidence=score,
            explanation=f'Partial match: "{user_answer}" contains the key words of "{correct_answer}"',
        )

    return JudgeVerdict(is_correct=False, confidence=score)


class FuzzyAnswerJudge(AnswerJudge):
    async def check(
        self,
        user_answer: str,
        correct_answer: str,
        *,
        question: str | None = None,  # noqa: ARG002
        hint: str | None = None,  # noqa: ARG002
    ) -> JudgeVerdict:
        return fuzzy_verdict(user_answer, correct_answer)


class SemanticAnswerJudge(AnswerJudge):
    """Fuzzy judge backed by an OpenAI-style chat-completion endpoint.

    The remote endpoint is consulted only when an API key is configured and
    the fuzzy confidence is below 0.8. Its verdict wins when it is more
    confident or disagrees with the fuzzy verdict. Network and parse errors
    are logged and the fuzzy verdict is returned; check() never raises.
    """

    def __init__(
        self,
        *,
        api_url: str,
        api_key: str | None,
        model: str,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_url = api_url
        self._api_key = api_key
        self._model = model
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    async def check(
        self,
        user_answer: str,
        correct_answer: str,
        *,
        question: str | None = None,
        hint: str | None = None,
    ) -> JudgeVerdict:
        fuzzy = fuzzy_verdict(user_answer, correct_answer)
        if fuzzy.is_correct and fuzzy.confidence >= TRUSTED_FUZZY_CONFIDENCE:
            return fuzzy
        if not self._api_key or fuzzy.confidence >= REMOTE_CHECK_BELOW_CONFIDENCE:
            return fuzzy

        try:
            remote = await self._remote_verdict(user_answer, correct_answer, question=question, hint=hint)
        except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as e:
            logger.warning("remote answer check failed, using fuzzy verdict", error=str(e))
            return fuzzy

        if remote.confidence > fuzzy.confidence or remote.is_correct != fuzzy.is_correct:
            return remote
        return fuzzy

    def _build_payload(
        self,
        user_answer: str,
        correct_answer: str,
        *,
        question: str | None,
        hint: str | None,
    ) -> dict[str, Any]:
        context = ""
        if question:
            context += f'Question: "{question}"\n'
        if hint:
            context += f'Hint: "{hint}"\n'
        return {
            "model": self._model,
            "messages": [
                {"role": "system", "content": _SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": _USER_PROMPT.format(context=context, correct=correct_answer, user=user_answer),
                },
            ],
            "max_tokens": 150,
            "temperature": 0.1,
            "response_format": {"type": "json_object"},
        }

    async def _remote_verdict(
        self,
        user_answer: str,
        correct_answer: str,
        *,
        question: str | None,
        hint: str | None,
    ) -> JudgeVerdict:
        payload = self._build_payload(user_answer, correct_answer, question=question, hint=hint)
        async with httpx.AsyncClient(timeout=self._timeout_seconds, transport=self._transport) as client:
            response = await client.post(
                self._api_url,
                json=payload,
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
            response.raise_for_status()

        content = response.json()["choices"][0]["message"]["content"]
        result = json.loads(content)
        if not isinstance(result, dict) or not isinstance(result.get("isCorrect"), bool):
            raise ValueError(f"unexpected judge response: {content!r}")
        raw_confidence = result.get("confidence")
        confidence = DEFAULT_REMOTE_CONFIDENCE if raw_confidence is None else float(raw_confidence)
        return JudgeVerdict(
            is_correct=result["isCorrect"],
            confidence=max(0.0, min(1.0, confidence)),
            explanation=result.get("explanation"),
        )
