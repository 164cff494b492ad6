import logging

import aiohttp

from adjudicator.database.models import Notification, NotificationType

logger = logging.getLogger(__name__)

OUTCOME_TITLES = {
    NotificationType.DEBATE_WON: "You Won!",
    NotificationType.DEBATE_LOST: "You Lost",
    NotificationType.DEBATE_TIED: "Debate Tied",
}
APPEAL_OUTCOME_TEXT = {
    NotificationType.DEBATE_WON: "You won!",
    NotificationType.DEBATE_LOST: "You lost.",
    NotificationType.DEBATE_TIED: "It's a tie!",
}


def outcome_type(user_id: int, winner_id: int | None) -> NotificationType:
    if winner_id is None:
        return NotificationType.DEBATE_TIED
    if winner_id == user_id:
        return NotificationType.DEBATE_WON
    return NotificationType.DEBATE_LOST


class NotificationDispatcher:
    """Queues notification rows on the caller's session; the caller commits."""

    def notify(self, session, user_id: int, type_: NotificationType, title: str, message: str, debate_id: int = None):
        notification = Notification(
            user_id=user_id,
            type=type_.value,
            title=title,
            message=message,
            debate_id=debate_id,
        )
        session.add(notification)
        return notification

    def notify_verdict(self, session, debate, winner_id):
        for user_id in (debate.challenger_id, debate.opponent_id):
            if user_id is None:
                continue
            type_ = outcome_type(user_id, winner_id)
            self.notify(
                session,
                user_id,
                type_,
                OUTCOME_TITLES[type_],
                f'The verdict for "{debate.topic}" is ready!',
                debate.id,
            )

    def notify_appeal_verdict(self, session, debate, winner_id):
        for user_id in (debate.challenger_id, debate.opponent_id):
            if user_id is None:
                continue
            type_ = outcome_type(user_id, winner_id)
            self.notify(
                session,
                user_id,
                type_,
                "Appeal Verdict Ready",
                f"The appeal verdict is ready. {APPEAL_OUTCOME_TEXT[type_]}",
                debate.id,
            )

    def notify_appeal_filed(self, session, debate, appellant_id: int, appellant_name: str):
        other_id = (
            debate.opponent_id if appellant_id == debate.challenger_id else debate.challenger_id
        )
        if other_id is not None:
            self.notify(
                session,
                other_id,
                NotificationType.VERDICT_APPEALED,
                "Verdict Appealed",
                f"{appellant_name} has appealed the verdict. A new verdict will be generated using different judges.",
                debate.id,
            )
        self.notify(
            session,
            appellant_id,
            NotificationType.APPEAL_SUBMITTED,
            "Appeal Submitted",
            "Your appeal has been submitted. A new verdict will be generated shortly. You will be notified when it's ready.",
            debate.id,
        )


class TournamentWebhook:
    """Posts resolved match outcomes to the tournament service."""

    def __init__(self, url: str, timeout: float = 30):
        self.url = url
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    async def __call__(self, debate_id: int, match_id: str, winner_id: int | None):
        payload = {"debate_id": debate_id, "match_id": match_id, "winner_id": winner_id}
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.post(self.url, json=payload) as resp:
                resp.raise_for_status()
                logger.info(f"Tournament notified of debate {debate_id} (match {match_id})")
