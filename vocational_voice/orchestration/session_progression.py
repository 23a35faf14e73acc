"""
Session progression orchestrator.

Bridges the turn controller and the test session backend: creates sessions,
fetches questions, and submits classified responses with a bounded retry
policy. The local question order only advances after a successful submission.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Optional, TypeVar

from vocational_voice.config import Settings, settings as default_settings
from vocational_voice.errors import (
    BackendError,
    QuestionFetchFailed,
    SessionCreateFailed,
    SubmissionFailed,
)
from vocational_voice.models import Ack, Question, ResponseRecord, Session, SubmitResponsePayload
from vocational_voice.session.client import TestSessionService

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff with a cap on attempts and delay."""

    max_attempts: int = 3
    initial_backoff_ms: int = 250
    multiplier: float = 2.0
    max_backoff_ms: int = 4000

    @classmethod
    def from_settings(cls, config: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=config.submit_max_attempts,
            initial_backoff_ms=config.submit_initial_backoff_ms,
            multiplier=config.submit_backoff_multiplier,
            max_backoff_ms=config.submit_max_backoff_ms,
        )

    def backoff_ms(self, attempt: int) -> int:
        """Delay after the given failed attempt (1-based)."""
        delay = self.initial_backoff_ms * (self.multiplier ** (attempt - 1))
        return int(min(delay, self.max_backoff_ms))


class SessionProgression:
    """
    Sequences one test attempt against the backend.

    Responsibilities:
    - create_session(user_id) -> Session
    - next_question(session_id) -> Question | None (None means test complete)
    - submit_response(...) -> Ack, retried per RetryPolicy
    """

    def __init__(
        self,
        service: TestSessionService,
        retry_policy: Optional[RetryPolicy] = None,
        backend_timeout_s: Optional[float] = None,
        config: Optional[Settings] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            service: Test session backend
            retry_policy: Submission retry policy (defaults to settings)
            backend_timeout_s: Per-call timeout; None waits indefinitely
            config: Settings used for defaults
        """
        config = config or default_settings
        self.service = service
        self.retry_policy = retry_policy or RetryPolicy.from_settings(config)
        self.backend_timeout_s = (
            backend_timeout_s if backend_timeout_s is not None else config.backend_timeout_s
        )

    async def create_session(self, user_id: Optional[str] = None) -> Session:
        """
        Request a new test session.

        Raises:
            SessionCreateFailed: Backend error or timeout
        """
        try:
            session = await self._call(self.service.create_session(user_id))
        except Exception as e:
            logger.error(f"Session creation failed: {e}")
            raise SessionCreateFailed(f"Could not create test session: {e}", cause=e) from e

        logger.info(f"Session created: {session.session_id} (user={user_id})")
        return session

    async def next_question(self, session_id: str) -> Optional[Question]:
        """
        Fetch the next question.

        Returns:
            Next question, or None when the test is complete

        Raises:
            QuestionFetchFailed: Backend error or timeout
        """
        try:
            question = await self._call(self.service.next_question(session_id))
        except Exception as e:
            logger.error(f"Fetching next question failed for session {session_id}: {e}")
            raise QuestionFetchFailed(f"Could not fetch next question: {e}", cause=e) from e

        if question is None:
            logger.info(f"No more questions for session {session_id}")
        else:
            logger.info(f"Next question for session {session_id}: {question.id}")
        return question

    def build_record(self, session: Session, question: Question, response_value: int) -> ResponseRecord:
        """Pair a classified value with the current question and order."""
        return ResponseRecord(
            question_id=question.id,
            response_value=response_value,
            riasec_weights=dict(question.riasec_weights),
            order=session.question_order,
        )

    async def submit_response(
        self,
        session: Session,
        record: ResponseRecord,
        question: Question,
        response_time_ms: int = 0,
    ) -> Ack:
        """
        Submit a response, retrying with backoff.

        Advances session.question_order only on success. An Ack with
        accepted=False counts as a failed attempt.

        Raises:
            SubmissionFailed: Every attempt failed
        """
        payload = SubmitResponsePayload.from_record(
            session.session_id, record, question, response_time_ms
        )
        policy = self.retry_policy
        last_error: Optional[BaseException] = None

        for attempt in range(1, policy.max_attempts + 1):
            try:
                ack = await self._call(self.service.submit_response(payload))
                if not ack.accepted:
                    raise BackendError(f"Backend rejected the response for question {record.question_id}")
            except Exception as e:
                last_error = e
                logger.warning(
                    f"Submission attempt {attempt}/{policy.max_attempts} failed "
                    f"for question {record.question_id}: {e}"
                )
                if attempt < policy.max_attempts:
                    await asyncio.sleep(policy.backoff_ms(attempt) / 1000.0)
                continue

            session.question_order += 1
            logger.info(
                f"Response submitted: question={record.question_id}, "
                f"value={record.response_value}, order={record.order}"
            )
            return ack

        raise SubmissionFailed(
            f"Response for question {record.question_id} not accepted after "
            f"{policy.max_attempts} attempts",
            attempts=policy.max_attempts,
            cause=last_error,
        )

    async def _call(self, awaitable: Awaitable[T]) -> T:
        if self.backend_timeout_s is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=self.backend_timeout_s)
