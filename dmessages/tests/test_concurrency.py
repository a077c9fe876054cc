import asyncio

from channels.db import database_sync_to_async
from django.test import TransactionTestCase

from conversations.models import Conversation
from conversations.services import ConversationService
from dmessages.models import Message
from dmessages.services import MessageService

SENDS_PER_SIDE = 10


class ConcurrentSendTest(TransactionTestCase):
    def setUp(self):
        self.key = ConversationService.find_or_create("u1", "v1").result.conversation_id

    def send(self, sender_id, receiver_id, text):
        return database_sync_to_async(MessageService.send_message)(self.key, sender_id, receiver_id, text)

    async def test_both_sides_sending_at_once_lose_no_count(self):
        sends = []
        for i in range(SENDS_PER_SIDE):
            sends.append(self.send("u1", "v1", f"from user {i}"))
            sends.append(self.send("v1", "u1", f"from vendor {i}"))

        outcomes = await asyncio.gather(*sends)

        conversation = await database_sync_to_async(
            lambda: Conversation.objects.prefetch_related("participants").get(conversation_id=self.key)
        )()
        stored = await database_sync_to_async(Message.objects.filter(conversation_id=self.key).count)()

        self.assertEqual(len(outcomes), 2 * SENDS_PER_SIDE)
        self.assertEqual(stored, 1 + 2 * SENDS_PER_SIDE)
        self.assertEqual(conversation.messages_count, stored)
        self.assertEqual(conversation.unread_messages_count, {
            "v1": 1 + SENDS_PER_SIDE,
            "u1": SENDS_PER_SIDE,
        })
        self.assertFalse(await database_sync_to_async(MessageService.reconcile)(self.key))
