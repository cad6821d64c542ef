"""
Answer evaluation boundary.

The learning core never scores answers itself. It hands the question, the
answer and some context to an AnswerEvaluator and receives a comprehension
score plus feedback text.
"""

import json
import logging
import time
from typing import Any, Optional, Protocol
import httpx
from pydantic import BaseModel, Field

from learning.exceptions import EvaluationFailedError
from learning.models.course import Concept
from learning.models.progress import Comprehension, WeakTopic
from learning.models.session import ConversationEntry, Phase

logger = logging.getLogger("learning.evaluator")


class TopicScore(BaseModel):
    topic: str
    comprehension: Comprehension


class EvaluationResult(BaseModel):
    """What an evaluator returns for one answer."""

    comprehension: Comprehension
    response: str = ""
    target_topic: Optional[str] = None
    follow_up: Optional[str] = None
    topic_scores: list[TopicScore] = Field(
        default_factory=list,
        description="Per-topic scores when one answer covers several overview topics",
    )


class PreviousAttempt(BaseModel):
    user_answer: str
    response: str


class EvaluationContext(BaseModel):
    """Everything the evaluator may use besides the question and the answer."""

    phase: Phase
    course_name: str
    concept: Optional[Concept] = None
    item_name: Optional[str] = None
    topics: list[str] = Field(default_factory=list, description="Topics the answer may be scored against")
    unmastered_topics: list[str] = Field(default_factory=list)
    topics_comprehension: dict[str, int] = Field(default_factory=dict)
    weak_topics: list[WeakTopic] = Field(default_factory=list)
    other_concepts: list[str] = Field(default_factory=list)
    previous_attempts: list[PreviousAttempt] = Field(default_factory=list)
    recent_history: list[ConversationEntry] = Field(default_factory=list)
    existing_understanding: str = ""


class AnswerEvaluator(Protocol):
    async def evaluate(
        self,
        question: str,
        answer: str,
        context: EvaluationContext,
    ) -> EvaluationResult:
        """Score an answer. Raises EvaluationFailedError on any failure."""
        ...


class RemoteAnswerEvaluator:
    """AnswerEvaluator backed by an HTTP evaluation service (POST {base_url}/evaluate)."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    def _build_payload(self, question: str, answer: str, context: EvaluationContext) -> dict[str, Any]:
        return {
            "question": question,
            "answer": answer,
            "context": context.model_dump(mode="json", by_alias=True),
        }

    async def evaluate(
        self,
        question: str,
        answer: str,
        context: EvaluationContext,
    ) -> EvaluationResult:
        start_time = time.time()
        payload = self._build_payload(question, answer, context)

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post("/evaluate", json=payload)
                response.raise_for_status()
                result = EvaluationResult.model_validate(response.json())

        except httpx.TimeoutException as e:
            self._log("timeout", context, start_time)
            raise EvaluationFailedError(f"timed out after {self.timeout_seconds}s", e)

        except httpx.HTTPError as e:
            self._log("failed", context, start_time, error=str(e))
            raise EvaluationFailedError(str(e), e)

        except ValueError as e:
            # Covers undecodable JSON as well as pydantic validation errors
            self._log("malformed", context, start_time, error=str(e))
            raise EvaluationFailedError("malformed evaluation payload", e)

        self._log("completed", context, start_time, comprehension=result.comprehension)
        return result

    def _log(self, event: str, context: EvaluationContext, start_time: float, **extra: Any) -> None:
        duration_ms = int((time.time() - start_time) * 1000)
        record = {
            "evaluator": "remote",
            "event": event,
            "phase": context.phase,
            "concept": context.concept.name if context.concept else None,
            "duration_ms": duration_ms,
            **extra,
        }
        if event == "completed":
            logger.info(json.dumps(record))
        else:
            logger.warning(json.dumps(record))
