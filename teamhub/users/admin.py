from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.utils.translation import gettext_lazy as _

from teamhub.users.models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    fieldsets = (
        *BaseUserAdmin.fieldsets,
        (_("Profile"), {"fields": ("display_name", "avatar_url", "role")}),
    )
    list_display = ["username", "email", "display_name", "role", "is_staff"]
    search_fields = ["username", "email", "display_name"]
