"""Assessment configuration, delivery and submission."""

import logging

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ctms.auth.identity import Actor
from ctms.clock import Clock, utcnow
from ctms.config import Settings, settings as default_settings
from ctms.engine.lifecycle import SUBMIT_BLOCKED
from ctms.engine.scoring import score_submission, validate_questions
from ctms.errors import ConcurrencyConflictError, ConfigLockedError, NotFoundError, ValidationError
from ctms.models import AssessmentAttempt, AssessmentConfig, AssessmentQuestion
from ctms.models.enums import AttemptResult, AuditEventType, RecordStatus
from ctms.schemas.assessment import (
    AssessmentView,
    AttemptOut,
    CreateAssessmentRequest,
    QuestionIn,
    QuestionOut,
    SubmissionResult,
    SubmitAssessmentRequest,
    UpdateAssessmentRequest,
)
from ctms.schemas.audit import (
    AssessmentResultMeta,
    AssessmentStartedMeta,
    AssessmentSubmittedMeta,
    AuditSubject,
    RejectedTransitionMeta,
)
from ctms.services.audit import AuditSink
from ctms.services.records import TrainingRecordStateMachine, commit_or_conflict, record_subject
from ctms.storage import repositories as repo

logger = logging.getLogger(__name__)


def _questions(assessment_id: str, questions: list[QuestionIn]) -> list[AssessmentQuestion]:
    return [
        AssessmentQuestion(
            assessment_id=assessment_id,
            position=i,
            question_text=q.question_text.strip(),
            options=list(q.options),
            correct_answer=q.correct_answer,
        )
        for i, q in enumerate(questions)
    ]


class AssessmentEngine:
    """
    Scores submissions, counts attempts and locks out after the maximum.

    The pass line is ``settings.pass_threshold``; an assessment's own
    ``pass_percentage`` is informational only.
    """

    def __init__(
        self,
        records: TrainingRecordStateMachine,
        audit: AuditSink,
        clock: Clock = utcnow,
        settings: Settings = default_settings,
    ):
        self.records = records
        self.audit = audit
        self.clock = clock
        self.settings = settings

    async def _view(
        self, db: AsyncSession, config: AssessmentConfig, include_answers: bool
    ) -> AssessmentView:
        questions = await repo.list_questions(db, config.id)
        attempts = await repo.count_attempts_for_training(db, config.training_id)
        return AssessmentView(
            id=config.id,
            training_id=config.training_id,
            pass_percentage=config.pass_percentage,
            max_attempts=config.max_attempts,
            is_locked=attempts > 0,
            questions=[
                QuestionOut(
                    id=q.id,
                    position=q.position,
                    question_text=q.question_text,
                    options=list(q.options),
                    correct_answer=q.correct_answer if include_answers else None,
                )
                for q in questions
            ],
        )

    async def _require_privileged(
        self, db: AsyncSession, actor: Actor, action: str, training_id: str
    ) -> None:
        if not actor.is_privileged:
            await self.records.reject(
                db,
                actor,
                action=action,
                reason_code="ROLE_NOT_PERMITTED",
                message="Only Administrator or QA can configure assessments",
                subject=AuditSubject(training_id=training_id),
            )

    # --- configuration ---------------------------------------------------------

    async def create_config(
        self, db: AsyncSession, actor: Actor, body: CreateAssessmentRequest
    ) -> AssessmentView:
        """Create the training's assessment; the whole question set is validated first."""
        await self._require_privileged(db, actor, "CREATE_ASSESSMENT", body.training_id)
        training = await repo.get_training(db, body.training_id)
        if not training:
            raise NotFoundError("Training not found")
        if await repo.get_assessment_for_training(db, training.id):
            raise ValidationError("An assessment already exists for this training")
        validate_questions(body.questions)

        now = self.clock()
        config = AssessmentConfig(
            training_id=training.id,
            pass_percentage=body.pass_percentage,
            max_attempts=body.max_attempts,
            active=True,
            created_at=now,
            updated_at=now,
        )
        db.add(config)
        try:
            await db.flush()
            db.add_all(_questions(config.id, body.questions))
            await db.commit()
        except IntegrityError as exc:
            await db.rollback()
            raise ValidationError("An assessment already exists for this training") from exc
        logger.info("Created assessment %s for training %s", config.id, training.id)
        return await self._view(db, config, include_answers=True)

    async def update_config(
        self, db: AsyncSession, actor: Actor, assessment_id: str, body: UpdateAssessmentRequest
    ) -> AssessmentView:
        config = await repo.get_assessment(db, assessment_id)
        if not config:
            raise NotFoundError("Assessment not found")
        await self._require_privileged(db, actor, "UPDATE_ASSESSMENT", config.training_id)

        attempts = await repo.count_attempts_for_training(db, config.training_id)
        if attempts > 0:
            await self.audit.record(
                AuditEventType.REJECTED_TRANSITION,
                actor=actor,
                subject=AuditSubject(training_id=config.training_id, assessment_id=config.id),
                metadata=RejectedTransitionMeta(
                    action="UPDATE_ASSESSMENT",
                    reason_code="CONFIG_LOCKED",
                    detail={"attempt_count": attempts},
                ),
            )
            raise ConfigLockedError(
                "Assessment cannot be modified after attempts have been made",
                reason_code="CONFIG_LOCKED",
                action="UPDATE_ASSESSMENT",
            )

        if body.questions is not None:
            validate_questions(body.questions)
            await db.execute(
                delete(AssessmentQuestion).where(AssessmentQuestion.assessment_id == config.id)
            )
            db.add_all(_questions(config.id, body.questions))
        if body.pass_percentage is not None:
            config.pass_percentage = body.pass_percentage
        if body.max_attempts is not None:
            config.max_attempts = body.max_attempts
        config.updated_at = self.clock()
        await db.commit()
        return await self._view(db, config, include_answers=True)

    # --- delivery ----------------------------------------------------------------

    async def get_for_training(
        self, db: AsyncSession, actor: Actor, training_id: str
    ) -> AssessmentView:
        """
        Privileged readers get the full configuration. Anyone else must be
        allowed to start the training; the read starts it and is audited
        as ASSESSMENT_STARTED. Correct answers are never shown to them.
        """
        config = await repo.get_assessment_for_training(db, training_id)
        if actor.is_privileged:
            if not config:
                raise NotFoundError("No assessment configured for this training")
            return await self._view(db, config, include_answers=True)

        action = "START_ASSESSMENT"
        record = await self.records.record_for(db, actor, training_id, action)
        await self.records.check_can_start(db, actor, record, action)
        if not config or not config.active:
            await self.records.reject(
                db,
                actor,
                action=action,
                reason_code="NO_ASSESSMENT_CONFIG",
                message="No assessment configured for this training",
                subject=record_subject(record),
                status=record.status,
            )
        if record.assessment_attempts >= config.max_attempts:
            await self.records.reject(
                db,
                actor,
                action=action,
                reason_code="MAX_ATTEMPTS_EXCEEDED",
                message="Maximum attempts reached",
                subject=record_subject(record, config.id),
                status=record.status,
            )
        record = await self.records.start(db, actor, training_id)
        await self.audit.record(
            AuditEventType.ASSESSMENT_STARTED,
            actor=actor,
            subject=record_subject(record, config.id),
            metadata=AssessmentStartedMeta(attempt_number=record.assessment_attempts + 1),
        )
        return await self._view(db, config, include_answers=False)

    # --- submission ----------------------------------------------------------------

    async def submit(
        self, db: AsyncSession, actor: Actor, body: SubmitAssessmentRequest
    ) -> SubmissionResult:
        """
        Preconditions, in order: assigned, document acknowledged, status
        allows submission, assessment configured, attempts remaining,
        questions present. The attempt row is written before the record's
        aggregate fields; both commit together.
        """
        action = "SUBMIT_ASSESSMENT"
        record = await self.records.record_for(db, actor, body.training_id, action)

        if not record.document_acknowledged:
            await self.records.reject(
                db,
                actor,
                action=action,
                reason_code="DOC_NOT_ACKNOWLEDGED",
                message="Acknowledge the training document first",
                subject=record_subject(record),
                status=record.status,
            )
        if record.status in SUBMIT_BLOCKED:
            await self.records.reject(
                db,
                actor,
                action=action,
                reason_code=SUBMIT_BLOCKED[record.status],
                message=f"Cannot submit while training is {record.status.lower().replace('_', ' ')}",
                subject=record_subject(record),
                status=record.status,
            )
        config = await repo.get_assessment_for_training(db, body.training_id)
        if not config or not config.active:
            await self.records.reject(
                db,
                actor,
                action=action,
                reason_code="NO_ASSESSMENT_CONFIG",
                message="No assessment configured for this training",
                subject=record_subject(record),
                status=record.status,
            )
        if record.assessment_attempts >= config.max_attempts:
            await self.records.reject(
                db,
                actor,
                action=action,
                reason_code="MAX_ATTEMPTS_EXCEEDED",
                message="Maximum attempts reached",
                subject=record_subject(record, config.id),
                status=record.status,
                detail={"attempts": record.assessment_attempts, "max_attempts": config.max_attempts},
            )
        questions = await repo.list_questions(db, config.id)
        if not questions:
            await self.records.reject(
                db,
                actor,
                action=action,
                reason_code="EMPTY_ASSESSMENT",
                message="This assessment has no questions configured and cannot be evaluated",
                subject=record_subject(record, config.id),
                status=record.status,
            )

        result = score_submission(
            questions,
            body.answers,
            pass_threshold=self.settings.pass_threshold,
            excellent_threshold=self.settings.excellent_threshold,
        )
        previous_status = record.status
        attempt = AssessmentAttempt(
            record_id=record.id,
            training_id=record.training_id,
            user_id=record.user_id,
            assessment_id=config.id,
            attempt_number=record.assessment_attempts + 1,
            answers=result.answers,
            correct_count=result.correct_count,
            total_questions=result.total_questions,
            score=result.score,
            result=(AttemptResult.PASS if result.passed else AttemptResult.FAIL).value,
            grade=result.grade.value if result.grade else None,
            attempted_at=self.clock(),
        )
        db.add(attempt)
        try:
            await db.flush()
        except IntegrityError as exc:
            await db.rollback()
            raise ConcurrencyConflictError(
                "Another submission for this attempt was recorded first; please retry"
            ) from exc

        issue = await self.records.apply_assessment_result(
            db, record, attempt=attempt, result=result, config=config
        )
        await commit_or_conflict(db)

        subject = record_subject(record, config.id)
        await self.audit.record(
            AuditEventType.ASSESSMENT_SUBMITTED,
            actor=actor,
            subject=subject,
            metadata=AssessmentSubmittedMeta(
                score=result.score,
                passed=result.passed,
                attempt_number=attempt.attempt_number,
                total_questions=result.total_questions,
                correct_count=result.correct_count,
                completed_late=record.completed_late,
                pass_percentage=config.pass_percentage,
            ),
            previous_status=previous_status,
            new_status=record.status,
        )
        await self.audit.record(
            AuditEventType.ASSESSMENT_PASSED if result.passed else AuditEventType.ASSESSMENT_FAILED,
            actor=actor,
            subject=subject,
            metadata=AssessmentResultMeta(
                score=result.score,
                attempt_number=attempt.attempt_number,
                grade=attempt.grade,
                max_attempts=config.max_attempts,
            ),
            previous_status=previous_status,
            new_status=record.status,
        )
        await self.records.record_assessment_outcome(
            db,
            actor,
            record,
            previous_status=previous_status,
            issue=issue,
            max_attempts=config.max_attempts,
        )

        if result.passed:
            message = "Assessment passed"
        elif record.status == RecordStatus.LOCKED:
            message = "Assessment failed. Maximum attempts reached; training is locked"
        else:
            message = "Assessment failed"
        return SubmissionResult(
            message=message,
            record_id=record.id,
            attempt_id=attempt.id,
            score=result.score,
            passed=result.passed,
            grade=result.grade,
            status=record.status,
            attempt_number=attempt.attempt_number,
            max_attempts=config.max_attempts,
            completed_late=record.completed_late,
            certificate_id=record.certificate_id,
            certificate_url=record.certificate_url,
            expiry_date=record.expiry_date,
        )

    async def attempts_for(
        self, db: AsyncSession, actor: Actor, record_id: str
    ) -> list[AttemptOut]:
        record = await self.records.get(db, actor, record_id)
        attempts = await repo.list_attempts_for_record(db, record.id)
        return [AttemptOut.model_validate(a) for a in attempts]
