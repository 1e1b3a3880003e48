from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from accounts.models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Admin panel for custom User model"""

    list_display = [
        "username",
        "email",
        "email_verified",
        "reputation",
        "favourite_animal",
        "is_active",
        "is_staff",
    ]

    list_filter = [
        "email_verified",
        "is_active",
        "is_staff",
        "date_joined",
    ]

    search_fields = [
        "username",
        "email",
        "phone_number",
    ]

    ordering = ("-reputation", "username")
    readonly_fields = ("reputation",)

    # Extend default Django UserAdmin fieldsets
    fieldsets = BaseUserAdmin.fieldsets + (
        (
            "Rescue Profile",
            {
                "fields": (
                    "phone_number",
                    "favourite_animal",
                    "avatar",
                    "reputation",
                    "email_verified",
                )
            },
        ),
    )

    # For create user page in admin
    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        (
            "Additional Info",
            {
                "fields": (
                    "email",
                    "phone_number",
                )
            },
        ),
    )
