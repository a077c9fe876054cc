from django.db import models
from django.utils import timezone

from marketchat.roles import EntityKind, ParticipantRole


def build_conversation_id(vendor_id, user_id):
    return f"{vendor_id}_{user_id}"


class Conversation(models.Model):
    conversation_id = models.CharField(max_length=201, unique=True)
    # Denormalized summary of the newest message; the message store is authoritative
    last_message = models.TextField(blank=True, default="")
    last_message_at = models.DateTimeField(null=True, blank=True)
    last_updated = models.DateTimeField(default=timezone.now, db_index=True)
    messages_count = models.PositiveIntegerField(default=0)

    is_blocked = models.BooleanField(default=False)
    blocked_by = models.CharField(max_length=100, null=True, blank=True)
    blocked_by_reference = models.CharField(
        max_length=10, choices=EntityKind.choices(), null=True, blank=True
    )
    is_reported = models.BooleanField(default=False)
    reported_by = models.CharField(max_length=100, null=True, blank=True)
    reported_by_reference = models.CharField(
        max_length=10, choices=EntityKind.choices(), null=True, blank=True
    )
    report_reason = models.TextField(blank=True, default="")

    # Optional origin of the chat: chatType, relatedListing, relatedBooking
    context = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'conversations_conversation'
        ordering = ['-last_updated', '-id']

    def __str__(self):
        return f"Conversation {self.conversation_id}"

    def participant(self, identity_id=None, role=None):
        """Return the participant row matching ``identity_id`` and/or ``role``, or None."""
        for participant in self.participants.all():
            if identity_id is not None and participant.identity_id != str(identity_id):
                continue
            if role is not None and participant.role != ParticipantRole.parse(role).value:
                continue
            return participant
        return None

    def counterpart_of(self, identity_id):
        for participant in self.participants.all():
            if participant.identity_id != str(identity_id):
                return participant
        return None

    def has_participant(self, identity_id):
        return self.participant(identity_id=identity_id) is not None

    @property
    def user_participant(self):
        return self.participant(role=ParticipantRole.USER)

    @property
    def vendor_participant(self):
        return self.participant(role=ParticipantRole.VENDOR)

    @property
    def unread_messages_count(self):
        return {p.identity_id: p.unread_count for p in self.participants.all()}


class ConversationParticipant(models.Model):
    conversation = models.ForeignKey(Conversation, on_delete=models.CASCADE, related_name='participants')
    identity_id = models.CharField(max_length=100, db_index=True)
    role = models.CharField(max_length=10, choices=ParticipantRole.choices())
    entity_kind = models.CharField(max_length=10, choices=EntityKind.choices())
    unread_count = models.PositiveIntegerField(default=0)
    last_seen_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'conversations_participant'
        ordering = ['id']
        constraints = [
            models.UniqueConstraint(fields=['conversation', 'identity_id'], name='unique_participant_identity'),
            models.UniqueConstraint(fields=['conversation', 'role'], name='unique_participant_role'),
        ]

    def __str__(self):
        return f"{self.entity_kind} {self.identity_id} in {self.conversation_id}"
