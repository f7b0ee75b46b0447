from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

from habitlog import repositories
from habitlog.errors import ConflictError, NotFoundError, PartialFailure, ValidationError
from habitlog.models import ChatRequest, Conversation, Identity, Message, Profile
from habitlog.realtime import MessageFeed, Subscription, get_feed
from habitlog.sync import Observable, apply_remote, best_effort

logger = logging.getLogger(__name__)


class MessagingCoordinator(Observable):
    """User search, chat-request lifecycle, conversations and messages for one user.

    A chat request moves ``pending -> accepted | rejected``; acceptance
    creates the conversation. Messages are kept per conversation, ordered
    by arrival and deduplicated by id.
    """

    def __init__(self, identity: Identity | None, remote=repositories, feed: MessageFeed | None = None):
        super().__init__()
        self.identity = identity
        self._remote = remote
        self._feed = feed or get_feed()
        self.search_results: List[Profile] = []
        self.chat_requests: List[ChatRequest] = []
        self.sent_requests: List[ChatRequest] = []
        self.conversations: List[Conversation] = []
        self._messages: Dict[str, List[Message]] = {}

    @property
    def user_id(self) -> str | None:
        return self.identity.user_id if self.identity else None

    def messages(self, conversation_id: str) -> List[Message]:
        return list(self._messages.get(conversation_id, []))

    async def upsert_profile(self, display_name: str | None, avatar_url: str | None = None) -> Optional[Profile]:
        if not self.user_id:
            return None
        name = " ".join(str(display_name or "").split()).strip() or None
        row = await apply_remote(
            self._remote.upsert_profile(self.user_id, name, avatar_url), action="save profile"
        )
        return Profile.from_row(row)

    async def search_users(self, query: str) -> List[Profile]:
        query = (query or "").strip()
        if not query or not self.user_id:
            self.search_results = []
            return []
        rows = await apply_remote(self._remote.search_profiles(query, self.user_id), action="search users")
        self.search_results = [Profile.from_row(row) for row in rows]
        self._notify("search_results", self.search_results)
        return list(self.search_results)

    async def _attach_profiles(self, requests: List[ChatRequest]) -> List[ChatRequest]:
        user_ids = sorted({r.from_user_id for r in requests} | {r.to_user_id for r in requests})
        profiles = await self._remote.get_profiles(user_ids)
        for request in requests:
            request.from_profile = Profile.from_row(profiles.get(request.from_user_id))
            request.to_profile = Profile.from_row(profiles.get(request.to_user_id))
        return requests

    async def fetch_chat_requests(self) -> List[ChatRequest]:
        if not self.user_id:
            return []

        async def _load():
            rows = await self._remote.list_received_requests(self.user_id, "pending")
            return await self._attach_profiles([ChatRequest.from_row(row) for row in rows])

        self.chat_requests = await apply_remote(_load(), action="fetch chat requests")
        self._notify("chat_requests", self.chat_requests)
        return list(self.chat_requests)

    async def fetch_sent_requests(self) -> List[ChatRequest]:
        if not self.user_id:
            return []

        async def _load():
            rows = await self._remote.list_sent_requests(self.user_id)
            return await self._attach_profiles([ChatRequest.from_row(row) for row in rows])

        self.sent_requests = await apply_remote(_load(), action="fetch sent requests")
        self._notify("sent_requests", self.sent_requests)
        return list(self.sent_requests)

    async def send_chat_request(self, to_user_id: str) -> Optional[ChatRequest]:
        if not self.user_id:
            return None
        if not to_user_id or to_user_id == self.user_id:
            raise ValidationError("Cannot send a chat request to yourself", field="to_user_id")

        existing = await apply_remote(
            self._remote.find_active_request_between(self.user_id, to_user_id), action="check chat requests"
        )
        if existing:
            raise ConflictError(f"A chat request with {to_user_id} already exists ({existing['status']})")
        conversation = await apply_remote(
            self._remote.find_conversation_between(self.user_id, to_user_id), action="check conversations"
        )
        if conversation:
            raise ConflictError(f"A conversation with {to_user_id} already exists")

        def _apply(row):
            if row is None:
                raise ConflictError(f"A chat request with {to_user_id} already exists")
            request = ChatRequest.from_row(row)
            self.sent_requests.insert(0, request)
            self._notify("request_sent", request)
            return request

        request = await apply_remote(
            self._remote.insert_chat_request(self.user_id, to_user_id), _apply, action="send chat request"
        )
        logger.info("Chat request %s sent from %s to %s", request.id, self.user_id, to_user_id)
        await best_effort(self.fetch_sent_requests(), action="refresh sent requests")
        return request

    async def _pending_request_for_me(self, request_id: str) -> dict:
        row = await apply_remote(self._remote.get_chat_request(request_id), action="load chat request")
        if not row or row["to_user_id"] != self.user_id or row["status"] != "pending":
            raise NotFoundError(f"Pending chat request {request_id} not found", field="request_id")
        return row

    def _drop_request(self, request_id: str) -> None:
        self.chat_requests = [r for r in self.chat_requests if r.id != request_id]

    async def accept_chat_request(self, request_id: str, from_user_id: str) -> Optional[Conversation]:
        """Accept the request, then create the conversation.

        The two writes are committed separately. If the second fails the
        request stays accepted with no conversation and ``PartialFailure`` is
        raised; ``repair_conversation`` completes it.
        """
        if not self.user_id:
            return None
        row = await self._pending_request_for_me(request_id)
        if row["from_user_id"] != from_user_id:
            raise NotFoundError(f"Chat request {request_id} was not sent by {from_user_id}", field="from_user_id")

        await apply_remote(
            self._remote.set_chat_request_status(request_id, "accepted"),
            lambda _: self._drop_request(request_id),
            action="accept chat request",
        )
        logger.info("Chat request %s accepted by %s", request_id, self.user_id)
        try:
            conversation = await self._create_conversation(from_user_id, self.user_id)
        except Exception as exc:
            logger.error("Chat request %s accepted but conversation creation failed: %s", request_id, exc)
            raise PartialFailure(
                f"Chat request {request_id} was accepted but its conversation could not be created: {exc}",
                request_id=request_id,
            ) from exc

        self._notify("request_accepted", conversation)
        await best_effort(self.fetch_chat_requests(), action="refresh chat requests")
        await best_effort(self.fetch_conversations(), action="refresh conversations")
        return conversation

    async def _create_conversation(self, user1_id: str, user2_id: str) -> Conversation:
        async def _insert_or_existing():
            row = await self._remote.insert_conversation(user1_id, user2_id)
            if row is None:
                row = await self._remote.find_conversation_between(user1_id, user2_id)
            return row

        def _apply(row):
            if row is None:
                raise ConflictError(f"Conversation between {user1_id} and {user2_id} could not be created")
            conversation = Conversation.from_row(row)
            if not any(c.id == conversation.id for c in self.conversations):
                self.conversations.insert(0, conversation)
            return conversation

        return await apply_remote(_insert_or_existing(), _apply, action="create conversation")

    async def repair_conversation(self, request_id: str) -> Optional[Conversation]:
        if not self.user_id:
            return None
        row = await apply_remote(self._remote.get_chat_request(request_id), action="load chat request")
        if not row or self.user_id not in (row["from_user_id"], row["to_user_id"]):
            raise NotFoundError(f"Chat request {request_id} not found", field="request_id")
        if row["status"] != "accepted":
            raise ValidationError(f"Chat request {request_id} is {row['status']}, not accepted", field="request_id")
        existing = await apply_remote(
            self._remote.find_conversation_between(row["from_user_id"], row["to_user_id"]),
            action="check conversations",
        )
        if existing:
            return Conversation.from_row(existing)
        conversation = await self._create_conversation(row["from_user_id"], row["to_user_id"])
        logger.info("Conversation %s created for accepted request %s", conversation.id, request_id)
        return conversation

    async def reject_chat_request(self, request_id: str) -> None:
        if not self.user_id:
            return None
        await self._pending_request_for_me(request_id)
        await apply_remote(
            self._remote.set_chat_request_status(request_id, "rejected"),
            lambda _: self._drop_request(request_id),
            action="reject chat request",
        )
        logger.info("Chat request %s rejected by %s", request_id, self.user_id)
        self._notify("request_rejected", request_id)
        await best_effort(self.fetch_chat_requests(), action="refresh chat requests")

    async def fetch_conversations(self) -> List[Conversation]:
        if not self.user_id:
            return []

        async def _load():
            rows = await self._remote.list_conversations(self.user_id)
            conversations = [Conversation.from_row(row) for row in rows]
            profiles = await self._remote.get_profiles([c.other_user_id(self.user_id) for c in conversations])
            for conversation in conversations:
                conversation.other_user = Profile.from_row(profiles.get(conversation.other_user_id(self.user_id)))
                conversation.last_message = Message.from_row(await self._remote.get_last_message(conversation.id))
            return conversations

        self.conversations = await apply_remote(_load(), action="fetch conversations")
        self._notify("conversations", self.conversations)
        return list(self.conversations)

    async def _participant_conversation(self, conversation_id: str) -> Conversation:
        row = await apply_remote(self._remote.get_conversation(conversation_id), action="load conversation")
        conversation = Conversation.from_row(row) if row else None
        if conversation is None or not conversation.has_participant(self.user_id):
            raise NotFoundError(f"Conversation {conversation_id} not found", field="conversation_id")
        return conversation

    async def fetch_messages(self, conversation_id: str) -> List[Message]:
        if not self.user_id:
            return []
        await self._participant_conversation(conversation_id)
        rows = await apply_remote(self._remote.list_messages(conversation_id), action="fetch messages")
        fetched = [Message.from_row(row) for row in rows]
        fetched_ids = {m.id for m in fetched}
        # Keep subscription deliveries that raced ahead of the fetch.
        extra = [m for m in self._messages.get(conversation_id, []) if m.id not in fetched_ids]
        self._messages[conversation_id] = fetched + extra
        self._notify("messages", conversation_id)
        return self.messages(conversation_id)

    def _merge_message(self, message: Message) -> bool:
        items = self._messages.setdefault(message.conversation_id, [])
        if any(item.id == message.id for item in items):
            return False
        items.append(message)
        for conversation in self.conversations:
            if conversation.id == message.conversation_id:
                conversation.last_message = message
                conversation.updated_at = max(conversation.updated_at, message.created_at)
        self.conversations.sort(key=lambda c: c.updated_at, reverse=True)
        self._notify("message", message)
        return True

    async def send_message(self, conversation_id: str, content: str) -> Optional[Message]:
        if not self.user_id:
            return None
        content = (content or "").strip()
        if not content:
            return None
        await self._participant_conversation(conversation_id)

        def _apply(row):
            if row is None:
                raise NotFoundError(f"Conversation {conversation_id} not found", field="conversation_id")
            message = Message.from_row(row)
            self._merge_message(message)
            return message

        message = await apply_remote(
            self._remote.insert_message(conversation_id, self.user_id, content), _apply, action="send message"
        )
        self._feed.publish(conversation_id, message)
        return message

    def subscribe_to_messages(
        self,
        conversation_id: str,
        on_message: Callable[[Message], object] | None = None,
    ) -> Subscription:
        """Live feed of new messages in ``conversation_id``; call ``stop()`` on the handle to end it."""

        def _deliver(message: Message):
            if self._merge_message(message) and on_message is not None:
                return on_message(message)
            return None

        return self._feed.subscribe(conversation_id, _deliver)
