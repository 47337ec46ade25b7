from django.contrib import admin

from .models import Answer, MediaAsset, Question, QuestionRequest, QuestionSet, Recipient


class QuestionInline(admin.TabularInline):
    model = Question
    extra = 0


@admin.register(QuestionSet)
class QuestionSetAdmin(admin.ModelAdmin):
    list_display = ("name", "owner", "archived", "created_at", "updated_at")
    list_filter = ("archived",)
    search_fields = ("name", "owner__username", "owner__email")
    inlines = [QuestionInline]


class RecipientInline(admin.TabularInline):
    model = Recipient
    extra = 0
    fields = ("email", "alias", "respondent", "is_active", "reminders_sent")
    readonly_fields = ("email", "alias", "respondent", "reminders_sent")
    show_change_link = True


@admin.register(QuestionRequest)
class QuestionRequestAdmin(admin.ModelAdmin):
    list_display = ("question_set", "creator", "created_at")
    search_fields = ("question_set__name", "creator__username")
    readonly_fields = ("question_set", "creator", "message", "created_at")
    inlines = [RecipientInline]


@admin.register(Recipient)
class RecipientAdmin(admin.ModelAdmin):
    list_display = (
        "email",
        "alias",
        "question_set",
        "respondent",
        "claimed_by",
        "is_active",
        "reminders_sent",
        "last_reminder_at",
    )
    list_filter = ("is_active", "reminders_sent", "created_at")
    search_fields = ("email", "alias", "question_set__name")
    # Bound identity and token are fixed at send time.
    readonly_fields = (
        "token",
        "request",
        "question_set",
        "respondent",
        "email_normalized",
        "claimed_by",
        "claimed_at",
        "created_at",
    )


class MediaAssetInline(admin.TabularInline):
    model = MediaAsset
    extra = 0
    fields = ("kind", "status", "address_key", "size")
    readonly_fields = ("kind", "address_key", "size")


@admin.register(Answer)
class AnswerAdmin(admin.ModelAdmin):
    list_display = ("question", "recipient", "answered_at", "updated_at", "assisted")
    list_filter = ("answered_at", "assisted", "date_precision")
    search_fields = ("text", "recipient__email")
    readonly_fields = ("public_id", "answered_at", "updated_at")
    inlines = [MediaAssetInline]


@admin.register(MediaAsset)
class MediaAssetAdmin(admin.ModelAdmin):
    list_display = ("address_key", "kind", "status", "owner_identity", "created_at")
    list_filter = ("kind", "status")
    search_fields = ("address_key", "original_name")
    readonly_fields = (
        "file_id",
        "owner_identity",
        "owner_storage_key",
        "address_key",
        "created_at",
        "processed_at",
    )
