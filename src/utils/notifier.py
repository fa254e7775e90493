"""Push notifications for session invites."""

import logging
from typing import Callable, Dict, List, Optional

import httpx
from sqlalchemy.orm import Session

from config import HTTP_TIMEOUT_SECONDS, PUSH_API_URL, PUSH_BATCH_SIZE
from models.push_token import UserPushTokenModel

logger = logging.getLogger(__name__)


class PushNotifier:
    """Best-effort delivery of invite notifications through the push API."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        http_client: Optional[httpx.Client] = None,
        batch_size: int = PUSH_BATCH_SIZE,
    ):
        self._session_factory = session_factory
        self._http = http_client or httpx.Client(timeout=HTTP_TIMEOUT_SECONDS)
        self._batch_size = batch_size

    def get_user_push_tokens(self, user_id: str) -> List[str]:
        db = self._session_factory()
        try:
            rows = (
                db.query(UserPushTokenModel.push_token)
                .filter(UserPushTokenModel.user_id == user_id)
                .all()
            )
            return [row.push_token for row in rows]
        finally:
            db.close()

    def send_invite(
        self,
        user_id: str,
        session_id: str,
        title: str,
        host_display_name: Optional[str] = None,
    ) -> None:
        """Notify a user that they were invited to a session.

        Args:
            user_id: Invited user.
            session_id: Session the user was invited to.
            title: Session title shown in the notification body.
            host_display_name: Optional host name for the body text.
        """
        try:
            tokens = self.get_user_push_tokens(user_id)
        except Exception as exc:
            logger.warning("Failed to fetch push tokens for user %s: %s", user_id, exc)
            return
        if not tokens:
            logger.info("No push tokens for user %s, skipping notification", user_id)
            return

        if host_display_name:
            body = f'{host_display_name} invited you to "{title}"'
        else:
            body = f'You\'ve been invited to "{title}"'

        messages = [
            {
                "to": token,
                "title": "Session Invite",
                "body": body,
                "data": {"type": "session_invite", "sessionId": session_id},
                "sound": "default",
            }
            for token in tokens
        ]
        self._send_batches(messages)

    def _send_batches(self, messages: List[Dict]) -> None:
        for start in range(0, len(messages), self._batch_size):
            batch = messages[start:start + self._batch_size]
            try:
                response = self._http.post(
                    PUSH_API_URL,
                    json=batch,
                    headers={"Accept": "application/json"},
                )
            except httpx.HTTPError as exc:
                logger.warning("Failed to send push notification batch: %s", exc)
                continue

            if response.status_code >= 400:
                logger.warning(
                    "Push API returned %s: %s", response.status_code, response.text
                )
                continue

            try:
                tickets = response.json().get("data") or []
            except ValueError:
                tickets = []
            for ticket in tickets:
                if isinstance(ticket, dict) and ticket.get("status") == "error":
                    logger.warning(
                        "Push ticket error: %s (%s)", ticket.get("message"), ticket.get("details")
                    )
