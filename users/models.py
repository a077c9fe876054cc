from django.db import models

from marketchat.roles import ACCOUNT_ADMIN, ACCOUNT_CLIENT, ACCOUNT_VENDOR


class User(models.Model):
    USER_TYPE_CHOICES = [
        (ACCOUNT_CLIENT, "Client"),
        (ACCOUNT_VENDOR, "Vendor"),
        (ACCOUNT_ADMIN, "Admin"),
    ]

    user_id = models.CharField(max_length=100, unique=True, primary_key=True)
    user_name = models.CharField(max_length=100)
    email = models.EmailField(max_length=255, null=True, blank=True)
    user_type = models.CharField(max_length=10, choices=USER_TYPE_CHOICES, default=ACCOUNT_CLIENT)
    is_active = models.BooleanField(default=True)
    language = models.CharField(max_length=10, default="en")
    # Device token for the notification service; empty when the user has no registered device
    push_token = models.CharField(max_length=255, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'users'
        indexes = [
            models.Index(fields=['user_name'], name='users_user_na_0f5e3a_idx'),
            models.Index(fields=['email'], name='users_email_4b85f2_idx'),
            models.Index(fields=['user_type', 'is_active'], name='users_user_ty_8c1d7e_idx'),
        ]

    @property
    def display_name(self):
        return self.user_name or f"User {self.user_id}"

    def __str__(self):
        return f"{self.user_name} ({self.user_id})"
