"""
Progress aggregator
Maintains the per-(user, module) rollup from quiz, video and topic events
"""
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from englearn.config import settings
from englearn.exceptions import NotFoundError, ValidationError
from englearn.models import Module, User, UserProgress
from englearn.schemas.progress import (
    ProgressEvent, ProgressUpdate, QuizCompleted, TopicCompleted, VideoWatched,
)
from englearn.services.grading_service import STATUS_NOT_STARTED, grading_service
from englearn.utils.storage import run_with_conflict_retry, run_with_storage_retry

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ProgressService:
    """
    Service for the module progress rollup

    Every mutation is a single read-modify-write of one row guarded by the
    row's version_id. A concurrent writer invalidates the version, the
    UPDATE matches nothing, and the whole mutation is re-applied on a fresh
    read.
    """

    def get_progress(self, db: Session, user_id: UUID, module_id: UUID) -> Optional[UserProgress]:
        return db.query(UserProgress).filter(
            UserProgress.user_id == user_id,
            UserProgress.module_id == module_id
        ).first()

    def get_or_create_progress(self, db: Session, user_id: UUID, module_id: UUID) -> UserProgress:
        """
        Lazily create the rollup on first interaction with a module

        Raises:
            NotFoundError: unknown user or module
        """
        def unit_of_work() -> UserProgress:
            progress = self.get_progress(db, user_id, module_id)
            if progress:
                return progress

            if not db.query(User).filter(User.id == user_id).first():
                raise NotFoundError("User not found")
            if not db.query(Module).filter(Module.id == module_id).first():
                raise NotFoundError("Module not found")

            progress = self._new_progress(user_id, module_id)
            db.add(progress)
            try:
                db.commit()
            except IntegrityError:
                # Another request created it first
                db.rollback()
                logger.info(f"Progress for user {user_id}, module {module_id} created concurrently, reloading")
                return self._require_progress(db, user_id, module_id)

            db.refresh(progress)
            logger.info(f"Created progress for user {user_id}, module {module_id}")
            return progress

        return run_with_storage_retry(db, unit_of_work, f"creating progress for module {module_id}")

    def update_progress(
        self,
        db: Session,
        user_id: UUID,
        module_id: UUID,
        updates: ProgressUpdate
    ) -> UserProgress:
        """
        Merge percentage, points and time spent into the rollup

        - percentage: clamped to 0-100, status derived from it
        - points: added to the total, negative deltas add nothing
        - time_spent: accumulated, negative deltas add nothing
        """
        def mutate(progress: UserProgress) -> None:
            if updates.percentage is not None:
                progress.percentage = grading_service.clamp_percentage(updates.percentage)
                progress.status = grading_service.derive_status(progress.status, progress.percentage)

            if updates.points is not None:
                progress.points = (progress.points or 0) + max(updates.points, 0)

            if updates.time_spent is not None:
                progress.time_spent = (progress.time_spent or 0) + max(updates.time_spent, 0)

        return self._apply(db, user_id, module_id, mutate, "update_progress")

    def add_completed_topic(
        self,
        db: Session,
        user_id: UUID,
        module_id: UUID,
        topic_id: str,
        topic_title: str,
        score: int = 0
    ) -> UserProgress:
        """
        Upsert a completed topic and recompute module percentage

        Re-completing a topic keeps the best score and refreshes the timestamp.
        """
        def mutate(progress: UserProgress) -> None:
            completed_at = _now().isoformat()
            topics = [dict(t) for t in (progress.completed_topics or [])]

            existing = next((t for t in topics if t["topic_id"] == topic_id), None)
            if existing:
                existing["score"] = max(existing.get("score", 0), score)
                existing["completed_at"] = completed_at
            else:
                topics.append({
                    "topic_id": topic_id,
                    "topic_title": topic_title,
                    "completed_at": completed_at,
                    "score": score,
                })

            total_topics = self._total_topics(db, module_id)
            progress.completed_topics = topics
            progress.percentage = round(min(len(topics) / total_topics * 100, 100.0), 2)
            progress.status = grading_service.derive_status(progress.status, progress.percentage)

        return self._apply(db, user_id, module_id, mutate, "add_completed_topic")

    def update_quiz_attempt(
        self,
        db: Session,
        user_id: UUID,
        module_id: UUID,
        quiz_id: UUID,
        score: int,
        passed: bool
    ) -> UserProgress:
        """
        Upsert the per-quiz summary and award points for the latest attempt

        Points come from the latest score, not the best one.
        """
        return self._apply(
            db, user_id, module_id, self._quiz_summary_mutation(quiz_id, score, passed), "update_quiz_attempt"
        )

    def stage_quiz_completion(
        self,
        db: Session,
        user_id: UUID,
        module_id: UUID,
        quiz_id: UUID,
        score: int,
        passed: bool,
        time_spent: int = 0
    ) -> UserProgress:
        """
        Fold a quiz result into the rollup inside the caller's transaction

        Creates the rollup when missing. Nothing is committed here; the caller
        commits together with the attempt row and retries the whole unit on
        a version conflict.
        """
        progress = self.get_progress(db, user_id, module_id)
        if not progress:
            progress = self._new_progress(user_id, module_id)
            db.add(progress)

        self._quiz_summary_mutation(quiz_id, score, passed)(progress)
        progress.time_spent = (progress.time_spent or 0) + max(time_spent, 0)
        progress.last_activity = _now()
        return progress

    def record_video_watch(
        self,
        db: Session,
        user_id: UUID,
        module_id: UUID,
        video_id: UUID,
        watch_time: int
    ) -> UserProgress:
        """Mark a video watched, accumulating watch time on the video and the module"""
        watch_time = max(watch_time, 0)

        def mutate(progress: UserProgress) -> None:
            videos = [dict(v) for v in (progress.video_progress or [])]

            existing = next((v for v in videos if v["video_id"] == str(video_id)), None)
            if existing:
                existing["watched"] = True
                existing["watch_time"] = existing.get("watch_time", 0) + watch_time
                existing["completed_at"] = existing.get("completed_at") or _now().isoformat()
            else:
                videos.append({
                    "video_id": str(video_id),
                    "watched": True,
                    "watch_time": watch_time,
                    "completed_at": _now().isoformat(),
                })

            progress.video_progress = videos
            progress.time_spent = (progress.time_spent or 0) + watch_time

        return self._apply(db, user_id, module_id, mutate, "record_video_watch")

    def apply_progress_event(
        self,
        db: Session,
        user_id: UUID,
        module_id: UUID,
        event: ProgressEvent
    ) -> UserProgress:
        """Route a quiz, video or topic event to its rollup operation"""
        if isinstance(event, QuizCompleted):
            return self.update_quiz_attempt(db, user_id, module_id, event.quiz_id, event.score, event.passed)
        if isinstance(event, VideoWatched):
            return self.record_video_watch(db, user_id, module_id, event.video_id, event.watch_time)
        if isinstance(event, TopicCompleted):
            return self.add_completed_topic(db, user_id, module_id, event.topic_id, event.title, event.score)
        raise ValidationError(f"Unsupported progress event: {type(event).__name__}")

    def list_user_progress(
        self,
        db: Session,
        user_id: UUID,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 50
    ) -> Tuple[List[UserProgress], int]:
        """
        Paginated progress for a user, most recent activity first

        Returns:
            Tuple of (page of progress rows, total matching rows)
        """
        query = db.query(UserProgress).filter(UserProgress.user_id == user_id)
        if status:
            query = query.filter(UserProgress.status == status)

        total = query.count()
        rows = query.order_by(UserProgress.last_activity.desc()) \
            .offset((page - 1) * limit) \
            .limit(limit) \
            .all()

        return rows, total

    def reset_progress(self, db: Session, user_id: UUID) -> int:
        """Delete every progress rollup of a user (account reset)"""
        def unit_of_work() -> int:
            deleted = db.query(UserProgress).filter(
                UserProgress.user_id == user_id
            ).delete(synchronize_session=False)
            db.commit()
            return deleted

        deleted = run_with_storage_retry(db, unit_of_work, f"resetting progress for user {user_id}")
        logger.info(f"Reset progress for user {user_id}: {deleted} module(s) cleared")
        return deleted

    def _apply(
        self,
        db: Session,
        user_id: UUID,
        module_id: UUID,
        mutate: Callable[[UserProgress], None],
        action: str
    ) -> UserProgress:
        """Optimistic read-modify-write with retry on version conflict"""
        def unit_of_work() -> UserProgress:
            progress = self._require_progress(db, user_id, module_id)
            mutate(progress)
            progress.last_activity = _now()
            db.commit()
            db.refresh(progress)
            return progress

        progress = run_with_conflict_retry(db, unit_of_work, f"{action} on module {module_id}")

        logger.info(
            f"{action}: user={user_id}, module={module_id}, percentage={progress.percentage}, "
            f"status={progress.status}, points={progress.points}, time_spent={progress.time_spent}"
        )
        return progress

    def _new_progress(self, user_id: UUID, module_id: UUID) -> UserProgress:
        return UserProgress(
            user_id=user_id,
            module_id=module_id,
            percentage=0.0,
            status=STATUS_NOT_STARTED,
            time_spent=0,
            points=0,
            last_activity=_now(),
            completed_topics=[],
            quiz_attempts=[],
            video_progress=[],
        )

    def _quiz_summary_mutation(self, quiz_id: UUID, score: int, passed: bool) -> Callable[[UserProgress], None]:
        """Upsert the per-quiz summary; points come from the latest score, not the best one"""
        def mutate(progress: UserProgress) -> None:
            now = _now().isoformat()
            summaries = [dict(q) for q in (progress.quiz_attempts or [])]

            existing = next((q for q in summaries if q["quiz_id"] == str(quiz_id)), None)
            if existing:
                existing["best_score"] = max(existing["best_score"], score)
                existing["total_attempts"] += 1
                existing["last_attempt"] = now
                existing["passed"] = existing.get("passed", False) or passed
            else:
                summaries.append({
                    "quiz_id": str(quiz_id),
                    "best_score": score,
                    "total_attempts": 1,
                    "last_attempt": now,
                    "passed": passed,
                })

            progress.quiz_attempts = summaries
            progress.points = (progress.points or 0) + grading_service.points_for_score(score)

        return mutate

    def _require_progress(self, db: Session, user_id: UUID, module_id: UUID) -> UserProgress:
        progress = self.get_progress(db, user_id, module_id)
        if not progress:
            raise NotFoundError("Progress not found for this user and module")
        return progress

    def _total_topics(self, db: Session, module_id: UUID) -> int:
        module = db.query(Module).filter(Module.id == module_id).first()
        if not module:
            raise NotFoundError("Module not found")
        return module.total_topics or settings.DEFAULT_TOPICS_PER_MODULE


# Global instance
progress_service = ProgressService()
