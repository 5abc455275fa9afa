"""Coordinates onboarding, plan initialization and task completion."""
from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from blob.core.config import Settings
from blob.core.context import bind_context
from blob.core.errors import (
    MalformedGenerationResult,
    NotFoundError,
    PersistenceError,
    ReasoningUnavailable,
    ValidationError,
)
from blob.db.models.goal import Goal
from blob.db.models.onboarding_insights import OnboardingInsights
from blob.db.models.schedule import Schedule
from blob.db.models.task import Task
from blob.observability.metrics import log_metric
from blob.observability.tracing import trace
from blob.services.breakdown import dump_breakdown, load_breakdown
from blob.services.goal_decomposer import GoalDecomposer, GoalSpec
from blob.services.insight_extractor import BasicProfile, CandidateGoal, InsightExtractor
from blob.services.progression import CompletionOutcome, ProgressionTracker
from blob.services.schedule_synthesizer import Commitment, ScheduleSynthesizer, save_schedule, tasks_for_date
from blob.services.task_generator import GENERATED_SOURCES, DraftBatch, SchedulingPreferences, TaskGenerator
from blob.services.user_service import build_user_context, get_or_create_user, get_user

logger = logging.getLogger(__name__)

CELEBRATION_MESSAGES = (
    "Great job! You're making real progress!",
    "Awesome work! Keep the momentum going!",
    "Task complete! You're building great habits!",
    "Well done! Every step counts toward your goals!",
    "Fantastic! You're on fire today!",
)
GOAL_COMPLETED_MESSAGE = "Goal achieved! That's a huge milestone."


@dataclass
class GoalFailure:
    goal_id: str
    title: str
    error: str


@dataclass
class InitializationSummary:
    status: str
    goals_active: int = 0
    tasks_generated: int = 0
    fallback_goals: int = 0
    schedule_ids: List[str] = field(default_factory=list)
    schedule_dates: List[date] = field(default_factory=list)
    failures: List[GoalFailure] = field(default_factory=list)
    next_actions: List[str] = field(default_factory=list)


@dataclass
class OnboardingOutcome:
    status: str
    message: Optional[str] = None
    goals: List[Goal] = field(default_factory=list)
    insights_id: Optional[UUID] = None
    initialization: Optional[InitializationSummary] = None


@dataclass
class CompletionResult:
    outcome: CompletionOutcome
    message: str

    @property
    def task(self) -> Task:
        return self.outcome.task

    @property
    def xp_awarded(self) -> int:
        return self.outcome.xp_awarded


@dataclass
class _GoalPlan:
    goal_id: UUID
    breakdown: Any
    breakdown_changed: bool
    batch: Optional[DraftBatch]


class Orchestrator:
    """Facade over the planning pipeline.

    Collaborators are injected so tests can substitute a fake reasoning client
    or any single component.
    """

    def __init__(
        self,
        *,
        reasoning,
        settings: Settings,
        extractor: Optional[InsightExtractor] = None,
        decomposer: Optional[GoalDecomposer] = None,
        task_generator: Optional[TaskGenerator] = None,
        synthesizer: Optional[ScheduleSynthesizer] = None,
        tracker: Optional[ProgressionTracker] = None,
    ) -> None:
        retry_policy = getattr(reasoning, "retry_policy", None)
        self.settings = settings
        self.extractor = extractor or InsightExtractor(reasoning, min_chars=settings.min_onboarding_chars)
        self.decomposer = decomposer or GoalDecomposer(reasoning, retry_policy=retry_policy)
        self.task_generator = task_generator or TaskGenerator(reasoning, retry_policy=retry_policy)
        self.synthesizer = synthesizer or ScheduleSynthesizer(reasoning, retry_policy=retry_policy)
        self.tracker = tracker or ProgressionTracker.from_settings(settings)

    # Onboarding

    async def onboard(
        self,
        db: Session,
        user_id: UUID,
        text: str,
        profile: Optional[BasicProfile] = None,
        *,
        today: Optional[date] = None,
    ) -> OnboardingOutcome:
        if self.extractor.needs_more_input(text):
            result = await self.extractor.extract(text, profile)
            return OnboardingOutcome(status="need_more_input", message=result.message)

        user = get_or_create_user(db, user_id)
        if profile:
            for field_name in ("energy_pattern", "work_style", "stress_response"):
                value = getattr(profile, field_name)
                if value:
                    setattr(user, field_name, value)

        record = db.query(OnboardingInsights).filter(OnboardingInsights.user_id == user_id).one_or_none()
        if record is not None and record.status == "processed":
            raise ValidationError("Onboarding has already been completed for this user.")
        if record is None:
            record = OnboardingInsights(user_id=user_id, conversation_text=text.strip())
            db.add(record)
        record.conversation_text = text.strip()
        record.basic_profile = profile.model_dump(exclude_none=True) if profile else {}
        record.status = "pending"
        self._commit(db, "store onboarding text")
        return await self._process_onboarding(db, record, today=today)

    async def retry_onboarding(self, db: Session, user_id: UUID, *, today: Optional[date] = None) -> OnboardingOutcome:
        """Re-run extraction from the stored onboarding text."""
        record = db.query(OnboardingInsights).filter(OnboardingInsights.user_id == user_id).one_or_none()
        if record is None:
            raise NotFoundError("No onboarding conversation stored for this user.")
        if record.status == "processed":
            raise ValidationError("Onboarding has already been completed for this user.")
        return await self._process_onboarding(db, record, today=today)

    async def _process_onboarding(
        self,
        db: Session,
        record: OnboardingInsights,
        *,
        today: Optional[date],
    ) -> OnboardingOutcome:
        today = today or date.today()
        user_id = record.user_id
        profile = BasicProfile.model_validate(record.basic_profile or {})
        record.attempts = (record.attempts or 0) + 1

        with bind_context(user_id=user_id, stage="onboarding"), trace(
            "onboarding.process", metadata={"attempt": record.attempts}, user_id=str(user_id)
        ):
            try:
                result = await self.extractor.extract(record.conversation_text, profile)
            except ReasoningUnavailable as exc:
                record.last_error = exc.message
                self._commit(db, "record onboarding failure")
                log_metric("onboarding.extract.failed", 1, {"reason": exc.code})
                logger.warning("Onboarding extraction failed for %s: %s", user_id, exc.message)
                return OnboardingOutcome(
                    status="needs_manual_setup",
                    message="We couldn't analyse your answers right now. Retry later or add goals manually.",
                    insights_id=record.id,
                )

            if result.needs_more_input:
                return OnboardingOutcome(status="need_more_input", message=result.message, insights_id=record.id)

            context = result.summary.user_context if result.summary else ""
            breakdowns = await asyncio.gather(
                *(self._decompose_candidate(candidate, context, today) for candidate in result.goals)
            )

            goals = [
                Goal(
                    user_id=user_id,
                    title=candidate.title,
                    description=candidate.description,
                    category=candidate.category,
                    priority=candidate.priority,
                    target_date=candidate.target_date,
                    rationale=candidate.rationale or None,
                    source="extracted",
                    progress=0,
                    breakdown=dump_breakdown(breakdown),
                )
                for candidate, breakdown in zip(result.goals, breakdowns)
            ]
            db.add_all(goals)
            record.insights = result.insights.model_dump(mode="json")
            record.summary = result.summary.model_dump(mode="json")
            record.status = "processed"
            record.last_error = None
            record.processed_at = datetime.now(timezone.utc)
            self._commit(db, "store onboarding goals")
            log_metric("onboarding.goals_created", len(goals))

        initialization = await self.initialize(db, user_id, today=today)
        return OnboardingOutcome(
            status="completed",
            goals=goals,
            insights_id=record.id,
            initialization=initialization,
        )

    async def _decompose_candidate(self, candidate: CandidateGoal, context: str, today: date):
        spec = GoalSpec(
            title=candidate.title,
            description=candidate.description,
            category=candidate.category,
            priority=candidate.priority,
            target_date=candidate.target_date,
        )
        return await self.decomposer.decompose(spec, context, seed=candidate.seed, today=today)

    # Initialization

    async def initialize(
        self,
        db: Session,
        user_id: UUID,
        *,
        days: Optional[int] = None,
        today: Optional[date] = None,
        force: bool = False,
        commitments: Sequence[Commitment] = (),
    ) -> InitializationSummary:
        """Generate tasks for every active goal, then schedule today and the next few days.

        A goal that fails is recorded in ``failures`` and does not stop its
        siblings. Goals that already have tasks on ``today`` are left alone
        unless ``force`` is set.
        """
        today = today or date.today()
        days = max(1, days or self.settings.schedule_days_ahead)
        dates = [today + timedelta(days=offset) for offset in range(days)]

        user = get_user(db, user_id)
        goals = (
            db.query(Goal)
            .filter(Goal.user_id == user_id, Goal.is_completed.is_(False))
            .order_by(Goal.created_at.asc())
            .all()
        )
        if not goals:
            return InitializationSummary(
                status="needs_goals",
                next_actions=["Add your first goal to get a personalised plan."],
            )

        preferences = SchedulingPreferences.from_user(user)
        context = build_user_context(db, user)
        summary = InitializationSummary(status="ready", goals_active=len(goals))

        with bind_context(user_id=user_id, stage="initialize"), trace(
            "orchestrator.initialize", metadata={"goals": len(goals), "days": days}, user_id=str(user_id)
        ):
            pending = []
            for goal in goals:
                skip_generation = not force and self._generated_on(db, goal.id, today)
                pending.append((goal.id, goal.title, GoalSpec.from_goal(goal), goal.breakdown, skip_generation))

            results = await asyncio.gather(
                *(
                    self._plan_goal(goal_id, spec, raw_breakdown, preferences, dates, context, skip, today)
                    for goal_id, _, spec, raw_breakdown, skip in pending
                ),
                return_exceptions=True,
            )

            for (goal_id, title, *_), result in zip(pending, results):
                if isinstance(result, BaseException):
                    if isinstance(result, asyncio.CancelledError):
                        raise result
                    logger.error("Planning failed for goal %s: %s", goal_id, result, exc_info=result)
                    summary.failures.append(GoalFailure(goal_id=str(goal_id), title=title, error=str(result)))
                    continue
                try:
                    created = self._persist_goal_plan(db, user_id, result)
                except SQLAlchemyError as exc:
                    db.rollback()
                    logger.exception("Persisting plan for goal %s failed", goal_id)
                    summary.failures.append(GoalFailure(goal_id=str(goal_id), title=title, error=str(exc)))
                    continue
                summary.tasks_generated += created
                if result.batch and result.batch.used_fallback:
                    summary.fallback_goals += 1

            await self._schedule_days(db, user_id, dates, preferences, commitments, summary, today)

        if summary.failures and len(summary.failures) == len(goals) and summary.tasks_generated == 0:
            summary.status = "needs_manual_setup"
        summary.next_actions = self._next_actions(db, summary)
        log_metric("orchestrator.initialize.tasks", summary.tasks_generated, {"failures": len(summary.failures)})
        return summary

    async def _plan_goal(
        self,
        goal_id: UUID,
        spec: GoalSpec,
        raw_breakdown: Optional[Dict[str, Any]],
        preferences: SchedulingPreferences,
        dates: List[date],
        context: str,
        skip_generation: bool,
        today: date,
    ) -> _GoalPlan:
        breakdown = None
        if raw_breakdown:
            try:
                breakdown = load_breakdown(raw_breakdown)
            except MalformedGenerationResult as exc:
                logger.warning("Stored breakdown for goal %s is unreadable, rebuilding: %s", goal_id, exc.message)
        changed = False
        if breakdown is None:
            breakdown = await self.decomposer.decompose(spec, context, today=today)
            changed = True
        if skip_generation:
            return _GoalPlan(goal_id=goal_id, breakdown=breakdown, breakdown_changed=changed, batch=None)
        batch = await self.task_generator.draft_tasks(spec, breakdown, preferences, dates, user_context=context)
        return _GoalPlan(goal_id=goal_id, breakdown=breakdown, breakdown_changed=changed, batch=batch)

    def _persist_goal_plan(self, db: Session, user_id: UUID, plan: _GoalPlan) -> int:
        """Write one goal's breakdown and tasks in a single transaction."""
        created = 0
        if plan.breakdown_changed:
            goal = db.get(Goal, plan.goal_id)
            if goal is not None:
                goal.breakdown = dump_breakdown(plan.breakdown)
        if plan.batch is not None:
            created = len(self.task_generator.persist(db, user_id=user_id, goal_id=plan.goal_id, batch=plan.batch))
        db.commit()
        return created

    async def _schedule_days(
        self,
        db: Session,
        user_id: UUID,
        dates: List[date],
        preferences: SchedulingPreferences,
        commitments: Sequence[Commitment],
        summary: InitializationSummary,
        today: date,
    ) -> None:
        day_tasks = [tasks_for_date(db, user_id, day, today=today) for day in dates]
        plans = await asyncio.gather(
            *(
                self.synthesizer.plan(tasks, preferences, day, commitments if day == today else ())
                for day, tasks in zip(dates, day_tasks)
            )
        )
        for day, plan in zip(dates, plans):
            schedule = save_schedule(db, user_id, day, plan)
            self._commit(db, f"store schedule for {day.isoformat()}")
            summary.schedule_ids.append(str(schedule.id))
            summary.schedule_dates.append(day)

    def _generated_on(self, db: Session, goal_id: UUID, day: date) -> bool:
        """True when a run anchored on ``day`` already produced the goal's tasks.

        Daily habits are spread over the days after a run, so they do not count.
        """
        return (
            db.query(Task.id)
            .filter(
                Task.related_goal_id == goal_id,
                Task.scheduled_date == day,
                Task.type != "daily_habit",
                Task.source.in_(GENERATED_SOURCES),
            )
            .first()
            is not None
        )

    def _next_actions(self, db: Session, summary: InitializationSummary) -> List[str]:
        actions: List[str] = []
        if summary.schedule_ids:
            first = db.get(Schedule, UUID(summary.schedule_ids[0]))
            task_blocks = [block for block in (first.blocks or []) if block.get("kind") == "task"] if first else []
            if task_blocks:
                block = task_blocks[0]
                actions.append(f"Start with \"{block['title']}\" at {block['start_time']}.")
            else:
                actions.append("Today is open. Add a task or rest up.")
        if summary.tasks_generated:
            actions.append(f"Review the {summary.tasks_generated} new task(s) in your plan.")
        if summary.fallback_goals:
            actions.append("Some plans use a starter template; regenerate them once the assistant is available.")
        for failure in summary.failures:
            actions.append(f"Set up \"{failure.title}\" manually or retry later.")
        return actions

    # Completion

    def on_task_completed(
        self,
        db: Session,
        user_id: UUID,
        task_id: UUID,
        metadata: Optional[Dict[str, Any]] = None,
        *,
        completed_on: Optional[date] = None,
    ) -> CompletionResult:
        with bind_context(user_id=user_id, stage="completion"):
            outcome = self.tracker.complete_task(db, user_id, task_id, completed_on=completed_on, metadata=metadata)
        if outcome.duplicate:
            message = "Already completed. Nice consistency!"
        elif outcome.goal and outcome.goal.completed:
            message = GOAL_COMPLETED_MESSAGE
        else:
            message = random.choice(CELEBRATION_MESSAGES)
        return CompletionResult(outcome=outcome, message=message)

    def _commit(self, db: Session, action: str) -> None:
        try:
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise PersistenceError(f"Could not {action}.") from exc
