"""
Slack API Client

Responsibilities:
- conversations.open: DM channel for aggregation threads
- chat.postMessage / chat.delete: thread roots, entries, replies
- chat.getPermalink, users.info: message snapshots
- reactions.add: acknowledgment marker (idempotent)
- views.open: tag form modal

Blocking slack_sdk calls run in a worker thread so the event loop stays free.
Every Slack failure surfaces as ConversationServiceError; callers decide
whether it matters.
"""

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError, SlackClientError
from app.config import get_settings
from typing import Any, Dict, List, Optional
import asyncio
import logging

logger = logging.getLogger(__name__)

ALREADY_REACTED = "already_reacted"
MESSAGE_NOT_FOUND = "message_not_found"


class ConversationServiceError(Exception):
    """A Slack Web API call failed or Slack was unreachable."""

    def __init__(self, method: str, error: str):
        self.method = method
        self.error = error
        super().__init__(f"Slack {method} failed: {error}")


class SlackClient:
    """Slack Web API client for tag aggregation."""

    def __init__(self, client: Optional[WebClient] = None):
        settings = get_settings()
        self.client = client or WebClient(token=settings.slack_bot_token)
        self.settings = settings

    async def _call(self, method: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = await asyncio.to_thread(getattr(self.client, method), **kwargs)
        except SlackApiError as e:
            raise ConversationServiceError(method, e.response.get("error", str(e))) from e
        except SlackClientError as e:
            raise ConversationServiceError(method, str(e)) from e
        return response.data if hasattr(response, "data") else response

    async def open_direct_channel(self, user_id: str) -> str:
        """Open (or reuse) the bot's DM with a user and return its channel id."""
        data = await self._call("conversations_open", users=user_id)
        channel_id = data["channel"]["id"]
        logger.debug(f"DM channel for {user_id}: {channel_id}")
        return channel_id

    async def post_message(
        self,
        channel_id: str,
        text: str,
        thread_ts: Optional[str] = None,
        blocks: Optional[List[Dict[str, Any]]] = None,
    ) -> str:
        """
        Post a message, optionally as a thread reply.

        Returns:
            ts of the posted message
        """
        kwargs: Dict[str, Any] = {"channel": channel_id, "text": text, "unfurl_links": False}
        if thread_ts:
            kwargs["thread_ts"] = thread_ts
        if blocks:
            kwargs["blocks"] = blocks
        data = await self._call("chat_postMessage", **kwargs)
        return data["ts"]

    async def delete_message(self, channel_id: str, ts: str) -> bool:
        """
        Delete a message.

        Returns:
            False if the message was already gone, True otherwise
        """
        try:
            await self._call("chat_delete", channel=channel_id, ts=ts)
        except ConversationServiceError as e:
            if e.error == MESSAGE_NOT_FOUND:
                logger.info(f"Message {channel_id}/{ts} already deleted")
                return False
            raise
        return True

    async def get_permalink(self, channel_id: str, message_ts: str) -> str:
        data = await self._call("chat_getPermalink", channel=channel_id, message_ts=message_ts)
        return data["permalink"]

    async def get_user_display_name(self, user_id: str) -> str:
        """Real name, falling back to the handle."""
        data = await self._call("users_info", user=user_id)
        user = data.get("user", {})
        profile = user.get("profile", {})
        return (
            user.get("real_name")
            or profile.get("display_name")
            or user.get("name")
            or user_id
        )

    async def add_reaction(self, channel_id: str, message_ts: str, name: str) -> None:
        """Add a reaction; an existing identical reaction counts as success."""
        try:
            await self._call("reactions_add", channel=channel_id, timestamp=message_ts, name=name)
        except ConversationServiceError as e:
            if e.error != ALREADY_REACTED:
                raise
            logger.debug(f"Reaction :{name}: already on {channel_id}/{message_ts}")

    async def open_view(self, trigger_id: str, view: Dict[str, Any]) -> None:
        await self._call("views_open", trigger_id=trigger_id, view=view)
