from django.contrib import admin
from .models import User


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = (
        "user_name",
        "user_id",
        "user_type",
        "is_active",
        "created_at",
    )
    list_filter = ("user_type", "is_active")
    search_fields = ("user_id", "user_name", "email")
