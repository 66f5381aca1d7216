"""Best-effort user notifications."""

import logging
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ctms.clock import Clock, utcnow
from ctms.models import Notification
from ctms.models.enums import NotificationType

logger = logging.getLogger(__name__)

TITLES = {
    NotificationType.TRAINING_ASSIGNED: "New training assigned",
    NotificationType.RETRAINING_REQUIRED: "Retraining required",
    NotificationType.TRAINING_COMPLETED: "Training completed",
    NotificationType.TRAINING_FAILED: "Assessment not passed",
    NotificationType.TRAINING_LOCKED: "Training locked",
    NotificationType.TRAINING_OVERDUE: "Training overdue",
    NotificationType.TRAINING_DUE_SOON: "Training due soon",
    NotificationType.CERTIFICATE_EXPIRING_SOON: "Certificate expiring soon",
    NotificationType.TRAINING_EXPIRED: "Training expired",
}


class Notifier(Protocol):
    async def notify(self, user_id: str, type: NotificationType, context: dict[str, Any]) -> None: ...


def _message(type: NotificationType, context: dict[str, Any]) -> str:
    title = context.get("training_title") or context.get("training_code") or "a training"
    if type == NotificationType.TRAINING_ASSIGNED:
        return f"You have been assigned {title}, due {context.get('due_date')}."
    if type == NotificationType.RETRAINING_REQUIRED:
        return f"A new revision of {title} was published. Please complete it by {context.get('due_date')}."
    if type == NotificationType.TRAINING_COMPLETED:
        return f"You passed {title} with a score of {context.get('score')}%."
    if type == NotificationType.TRAINING_FAILED:
        return (
            f"You scored {context.get('score')}% on {title}. "
            f"{context.get('attempts_remaining', 0)} attempt(s) remaining."
        )
    if type == NotificationType.TRAINING_LOCKED:
        return f"All attempts for {title} have been used. Contact your administrator."
    if type == NotificationType.TRAINING_OVERDUE:
        return f"{title} was due {context.get('due_date')} and is now overdue."
    if type == NotificationType.TRAINING_DUE_SOON:
        return f"{title} is due {context.get('due_date')}."
    if type == NotificationType.CERTIFICATE_EXPIRING_SOON:
        return f"Your certificate for {title} expires {context.get('expiry_date')}."
    return f"Your certification for {title} has expired."


class InAppNotifier:
    """Stores notifications as rows users can list and mark read."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], clock: Clock = utcnow):
        self._session_factory = session_factory
        self._clock = clock

    async def notify(self, user_id: str, type: NotificationType, context: dict[str, Any]) -> None:
        async with self._session_factory() as session:
            session.add(
                Notification(
                    user_id=user_id,
                    type=str(type),
                    title=TITLES.get(type, str(type)),
                    message=_message(type, context),
                    context=context,
                    read=False,
                    created_at=self._clock(),
                )
            )
            await session.commit()


async def dispatch(
    notifier: Notifier, user_id: str, type: NotificationType, context: dict[str, Any]
) -> bool:
    """Deliver one notification; a failure is logged and reported as False, never raised."""
    try:
        await notifier.notify(user_id, type, context)
        return True
    except Exception:
        logger.warning("Notification %s to user %s failed", type, user_id, exc_info=True)
        return False
