from django.contrib import admin

from .models import ExternalLogin, Relationship, UserProfile


@admin.register(UserProfile)
class UserProfileAdmin(admin.ModelAdmin):
    list_display = (
        "user",
        "display_name",
        "is_placeholder",
        "profile_completed_at",
        "claimed_at",
        "merged_into",
    )
    list_filter = ("is_placeholder",)
    search_fields = ("user__username", "user__email", "display_name", "placeholder_email")
    readonly_fields = ("storage_key", "created_at", "updated_at")


@admin.register(ExternalLogin)
class ExternalLoginAdmin(admin.ModelAdmin):
    list_display = ("user", "provider", "email", "linked_at")
    list_filter = ("provider",)
    search_fields = ("user__username", "email", "provider_user_id")


@admin.register(Relationship)
class RelationshipAdmin(admin.ModelAdmin):
    list_display = ("user_low", "user_high", "source_recipient", "created_at")
    search_fields = ("user_low__username", "user_high__username")
