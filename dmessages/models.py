from django.db import models

from marketchat.roles import EntityKind, ParticipantRole


class Message(models.Model):
    # Keyed by the derived conversation key, the same key rooms are named after
    conversation = models.ForeignKey(
        'conversations.Conversation',
        to_field='conversation_id',
        db_column='conversation_id',
        on_delete=models.CASCADE,
        related_name='messages',
    )
    sender_id = models.CharField(max_length=100)
    receiver_id = models.CharField(max_length=100)
    sender_role = models.CharField(max_length=10, choices=ParticipantRole.choices())
    receiver_role = models.CharField(max_length=10, choices=ParticipantRole.choices())
    sender_reference = models.CharField(max_length=10, choices=EntityKind.choices())
    receiver_reference = models.CharField(max_length=10, choices=EntityKind.choices())
    message = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        db_table = 'dmessages_message'
        ordering = ['created_at', 'id']

    def __str__(self):
        return f"{self.sender_id} to {self.receiver_id}: {self.message[:50]}..."

    @property
    def conversation_key(self):
        return self.conversation_id


class MessageAttachment(models.Model):
    ATTACHMENT_TYPE_CHOICES = [
        ("image", "Image"),
        ("file", "File"),
    ]

    message = models.OneToOneField(Message, on_delete=models.CASCADE, related_name="attachment")
    url = models.CharField(max_length=1024)
    attachment_type = models.CharField(
        max_length=10, choices=ATTACHMENT_TYPE_CHOICES, default="file"
    )
    name = models.CharField(max_length=255, blank=True, default="")
    size = models.BigIntegerField(null=True, blank=True)

    class Meta:
        db_table = 'dmessages_attachment'

    def get_file_size_mb(self):
        """Get file size in MB"""
        if self.size:
            return round(self.size / (1024 * 1024), 2)
        return None

    def as_dict(self):
        return {
            "url": self.url,
            "type": self.attachment_type,
            "name": self.name,
            "size": self.size,
        }

    def __str__(self):
        return f"{self.attachment_type} attachment for message {self.message_id}"


class MessageDeletion(models.Model):
    """One row per identity that has hidden a message from its own view."""

    message = models.ForeignKey(Message, on_delete=models.CASCADE, related_name="deletions")
    identity_id = models.CharField(max_length=100)
    deleted_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'dmessages_deletion'
        constraints = [
            models.UniqueConstraint(fields=['message', 'identity_id'], name='unique_message_deletion'),
        ]


class MessageReceipt(models.Model):
    """One row per identity that has acknowledged reading a message."""

    message = models.ForeignKey(Message, on_delete=models.CASCADE, related_name="receipts")
    identity_id = models.CharField(max_length=100)
    read_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'dmessages_receipt'
        constraints = [
            models.UniqueConstraint(fields=['message', 'identity_id'], name='unique_message_receipt'),
        ]
