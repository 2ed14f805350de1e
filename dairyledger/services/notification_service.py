from __future__ import annotations

import logging

from dairyledger.constants import local_now
from dairyledger.errors import NotFound
from dairyledger.models.notification import (
    ChannelResult,
    Notification,
    NotificationCategory,
    NotificationPriority,
)
from dairyledger.models.user import User
from dairyledger.notifications.base import NotificationChannel
from dairyledger.repositories.base import NotificationRepository, UserRepository

logger = logging.getLogger(__name__)

IN_APP_CHANNEL = "push"


def enabled_channels(user: User) -> list[str]:
    prefs = user.notification_preferences
    channels = []
    if prefs.push:
        channels.append(IN_APP_CHANNEL)
    if prefs.email:
        channels.append("email")
    if prefs.sms:
        channels.append("sms")
    return channels


class NotificationDispatcher:
    """Stores an in-app notification and fans it out to the outbound channels.

    The stored row is the in-app ("push") delivery. Email and SMS go through
    whatever transports are configured; an unconfigured or unreachable channel
    is recorded as skipped, and a transport error as failed.
    """

    def __init__(
        self,
        notification_repo: NotificationRepository,
        user_repo: UserRepository,
        channels: dict[str, NotificationChannel] | None = None,
    ) -> None:
        self.notification_repo = notification_repo
        self.user_repo = user_repo
        self.channels = channels or {}

    def dispatch(
        self,
        user_id: int,
        title: str,
        message: str,
        category: NotificationCategory = NotificationCategory.SYSTEM,
        priority: NotificationPriority = NotificationPriority.MEDIUM,
        channels: list[str] | None = None,
    ) -> Notification:
        user = self.user_repo.get_by_id(user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found")
        if channels is None:
            channels = enabled_channels(user)

        notification = self.notification_repo.create(
            Notification(
                user_id=user_id,
                title=title,
                message=message,
                category=category,
                priority=priority,
                channels=channels,
            )
        )

        results: list[ChannelResult] = []
        for name in channels:
            if name == IN_APP_CHANNEL:
                results.append(ChannelResult(channel=name, status="sent", sent_at=notification.created_at))
                continue
            transport = self.channels.get(name)
            if transport is None or not transport.can_reach(user):
                logger.debug("Channel %s skipped for user=%s", name, user_id)
                results.append(ChannelResult(channel=name, status="skipped"))
                continue
            try:
                transport.send(user, title, message)
            except Exception:
                logger.exception("Failed to send %s notification to user=%s", name, user_id)
                results.append(ChannelResult(channel=name, status="failed"))
            else:
                results.append(ChannelResult(channel=name, status="sent", sent_at=local_now()))

        if notification.id is not None:
            self.notification_repo.record_results(notification.id, results)
        notification.sent_via = results
        logger.info(
            "Notification dispatched: user=%s category=%s results=%s",
            user_id,
            category.value,
            ",".join(f"{r.channel}:{r.status}" for r in results),
        )
        return notification

    def safe_dispatch(self, *args, **kwargs) -> Notification | None:
        """Dispatch a notification, swallowing any exceptions."""
        try:
            return self.dispatch(*args, **kwargs)
        except Exception:
            logger.exception("Failed to dispatch notification")
            return None

    def list_for_user(self, user_id: int, limit: int = 50) -> list[Notification]:
        return self.notification_repo.list_for_user(user_id, limit)
