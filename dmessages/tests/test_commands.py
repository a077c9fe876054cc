from io import StringIO

from django.core.management import call_command
from django.test import TestCase

from conversations.models import Conversation
from conversations.services import ConversationService
from dmessages.services import MessageService


class ReconcileConversationsCommandTest(TestCase):
    def setUp(self):
        self.key = ConversationService.find_or_create("u1", "v1").result.conversation_id
        MessageService.send_message(self.key, "u1", "v1", "Hi")
        ConversationService.find_or_create("u2", "v1")
        Conversation.objects.filter(conversation_id=self.key).update(messages_count=40)

    def run_command(self, *args):
        out, err = StringIO(), StringIO()
        call_command("reconcile_conversations", *args, stdout=out, stderr=err)
        return out.getvalue(), err.getvalue()

    def test_repairs_diverged_summaries(self):
        out, _ = self.run_command()

        self.assertIn(f"Repaired {self.key}", out)
        self.assertIn("Conversations checked: 2", out)
        self.assertIn("Conversations repaired: 1", out)
        self.assertEqual(Conversation.objects.get(conversation_id=self.key).messages_count, 2)

    def test_dry_run_changes_nothing(self):
        out, _ = self.run_command("--dry-run")

        self.assertIn("Conversations repaired: 1", out)
        self.assertEqual(Conversation.objects.get(conversation_id=self.key).messages_count, 40)

    def test_unknown_conversation(self):
        out, err = self.run_command("v9_u9", self.key)

        self.assertIn("v9_u9 not found", err)
        self.assertIn("Conversations repaired: 1", out)
