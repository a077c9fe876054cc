from django.core.management.base import BaseCommand
from django.db import transaction

from conversations.models import Conversation
from dmessages.services import MessageService
from marketchat.exceptions import NotFound


class Command(BaseCommand):
    help = "Recompute conversation summaries (message count, last message) from the message log"

    def add_arguments(self, parser):
        parser.add_argument("conversation_ids", nargs="*", help="Only these conversations (default: all)")
        parser.add_argument("--dry-run", action="store_true", help="Print counts only; do not update")

    def handle(self, *args, **options):
        dry_run = options.get("dry_run")
        conversation_ids = options.get("conversation_ids") or list(
            Conversation._default_manager.values_list("conversation_id", flat=True)
        )

        repaired = 0
        with transaction.atomic():
            for conversation_id in conversation_ids:
                try:
                    changed = MessageService.reconcile(conversation_id)
                except NotFound:
                    self.stderr.write(f"Conversation {conversation_id} not found")
                    continue
                if changed:
                    repaired += 1
                    self.stdout.write(f"Repaired {conversation_id}")

            if dry_run:
                transaction.set_rollback(True)

        self.stdout.write(self.style.SUCCESS(f"Conversations checked: {len(conversation_ids)}"))
        self.stdout.write(self.style.SUCCESS(f"Conversations repaired: {repaired}"))
