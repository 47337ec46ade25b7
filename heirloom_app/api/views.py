from dataclasses import asdict

from django.db import transaction
from django.utils import timezone
from django_ratelimit.decorators import ratelimit
from rest_framework import permissions, serializers, status, viewsets
from rest_framework.decorators import (
    action,
    api_view,
    parser_classes,
    permission_classes,
    throttle_classes,
)
from rest_framework.generics import get_object_or_404
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.response import Response

from heirloom_app.core.identity import display_name
from heirloom_app.questions.models import (
    EDIT_WINDOW_DAYS,
    Answer,
    MediaAsset,
    Question,
    QuestionSet,
    Recipient,
)
from heirloom_app.questions.services import (
    AnswerService,
    CatalogService,
    ClaimService,
    DispatchService,
    MediaService,
    ReminderService,
    get_set_detail,
    get_unified_sets,
)


def _flag(value) -> bool:
    return str(value).lower() in ("1", "true", "yes")


class QuestionSerializer(serializers.ModelSerializer):
    class Meta:
        model = Question
        fields = ["id", "text", "sort_order"]


class QuestionSetSerializer(serializers.ModelSerializer):
    questions = QuestionSerializer(many=True, read_only=True)

    class Meta:
        model = QuestionSet
        fields = ["id", "name", "archived", "questions", "created_at", "updated_at"]


class QuestionItemSerializer(serializers.Serializer):
    id = serializers.IntegerField(required=False)
    text = serializers.CharField(allow_blank=True, trim_whitespace=False)


class QuestionSetWriteSerializer(serializers.Serializer):
    """Input for creating or editing a set. Limits are enforced by the catalog."""

    name = serializers.CharField(allow_blank=True)
    questions = QuestionItemSerializer(many=True)


class SendSerializer(serializers.Serializer):
    recipients = serializers.ListField(child=serializers.DictField(), allow_empty=True)
    message = serializers.CharField(required=False, allow_blank=True, default="")
    notify = serializers.BooleanField(required=False, default=True)


class MediaAssetSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(source="file_id", read_only=True)
    url = serializers.SerializerMethodField()

    class Meta:
        model = MediaAsset
        fields = [
            "id",
            "kind",
            "status",
            "content_type",
            "size",
            "original_name",
            "url",
            "created_at",
        ]

    def get_url(self, obj):
        if obj.status != MediaAsset.Status.READY:
            return None
        return MediaService.resolve(obj)


class AnswerSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(source="public_id", read_only=True)
    question_id = serializers.IntegerField(read_only=True)
    editable = serializers.SerializerMethodField()
    editable_until = serializers.DateTimeField(read_only=True)
    media = MediaAssetSerializer(many=True, read_only=True)

    class Meta:
        model = Answer
        fields = [
            "id",
            "question_id",
            "text",
            "date_value",
            "date_precision",
            "assisted",
            "answered_at",
            "updated_at",
            "editable",
            "editable_until",
            "media",
        ]

    def get_editable(self, obj) -> bool:
        return obj.is_editable(self.context.get("now"))


class AnswerSubmitSerializer(serializers.Serializer):
    text = serializers.CharField(
        required=False, allow_blank=True, allow_null=True, default=None
    )
    date_value = serializers.DateField(required=False, allow_null=True, default=None)
    date_precision = serializers.ChoiceField(
        choices=Answer.DatePrecision.choices, required=False, allow_blank=True
    )
    assisted = serializers.BooleanField(required=False, default=False)


class ClaimSerializer(serializers.Serializer):
    display_name = serializers.CharField(required=False, allow_blank=True, max_length=150)
    provider = serializers.CharField(required=False, allow_blank=True, max_length=50)
    provider_user_id = serializers.CharField(
        required=False, allow_blank=True, max_length=256
    )


class IsSetOwner(permissions.BasePermission):
    def has_object_permission(self, request, view, obj):
        return obj.owner_id == getattr(request.user, "id", None)


class IsRecipientAsker(permissions.BasePermission):
    """Only the user who sent the request (or owns the set) manages a recipient."""

    def has_object_permission(self, request, view, obj):
        user_id = getattr(request.user, "id", None)
        return user_id in (obj.request.creator_id, obj.question_set.owner_id)


class QuestionSetViewSet(viewsets.ModelViewSet):
    serializer_class = QuestionSetSerializer
    permission_classes = [permissions.IsAuthenticated, IsSetOwner]
    http_method_names = ["get", "post", "put", "patch", "head", "options"]

    def get_queryset(self):
        sets = QuestionSet.objects.filter(owner=self.request.user).prefetch_related(
            "questions"
        )
        if not _flag(self.request.query_params.get("include_archived")):
            sets = sets.filter(archived=False)
        return sets.order_by("-updated_at", "-id")

    def get_object(self):
        """Fetch without owner scoping so other users get 403 rather than 404."""
        obj = get_object_or_404(
            QuestionSet.objects.prefetch_related("questions"), pk=self.kwargs["pk"]
        )
        self.check_object_permissions(self.request, obj)
        return obj

    def _fresh(self, question_set):
        return QuestionSet.objects.prefetch_related("questions").get(pk=question_set.pk)

    def create(self, request, *args, **kwargs):
        serializer = QuestionSetWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        question_set = CatalogService.create_set(
            request.user,
            serializer.validated_data["name"],
            [item["text"] for item in serializer.validated_data["questions"]],
        )
        return Response(
            QuestionSetSerializer(self._fresh(question_set)).data,
            status=status.HTTP_201_CREATED,
        )

    def update(self, request, *args, **kwargs):
        partial = kwargs.pop("partial", False)
        question_set = self.get_object()
        serializer = QuestionSetWriteSerializer(data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        with transaction.atomic():
            if "name" in data:
                CatalogService.rename_set(question_set, data["name"])
            if "questions" in data:
                CatalogService.update_questions(
                    question_set, [dict(item) for item in data["questions"]]
                )
        return Response(QuestionSetSerializer(self._fresh(question_set)).data)

    @action(detail=True, methods=["post"])
    def archive(self, request, pk=None):
        question_set = CatalogService.archive_set(self.get_object())
        return Response(QuestionSetSerializer(self._fresh(question_set)).data)

    @action(detail=True, methods=["post"])
    def unarchive(self, request, pk=None):
        question_set = CatalogService.unarchive_set(self.get_object())
        return Response(QuestionSetSerializer(self._fresh(question_set)).data)

    @action(detail=True, methods=["post"])
    def send(self, request, pk=None):
        question_set = self.get_object()
        serializer = SendSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = DispatchService.create_request(
            question_set,
            request.user,
            serializer.validated_data["recipients"],
            message=serializer.validated_data["message"],
            notify=serializer.validated_data["notify"],
        )
        payload = {
            "request_id": result.request.pk if result.request else None,
            "created_count": len(result.created),
            "reused_count": len(result.reused),
            "recipients": [
                {
                    "recipient_id": entry.recipient.pk,
                    "email": entry.email,
                    "alias": entry.alias,
                    "name": display_name(entry.recipient),
                    "token": str(entry.token),
                    "created": entry.created,
                }
                for entry in result.recipients
            ],
        }
        return Response(
            payload,
            status=status.HTTP_201_CREATED if result.created else status.HTTP_200_OK,
        )

    @action(detail=True, methods=["get"])
    def requests(self, request, pk=None):
        question_set = self.get_object()
        groups = []
        for group in get_set_detail(question_set, request.user):
            data = asdict(group)
            for row, status_row in zip(data["recipients"], group.recipients):
                row["reminders_remaining"] = status_row.reminders_remaining
            groups.append(data)
        return Response({"id": question_set.pk, "name": question_set.name, "requests": groups})

    @action(detail=False, methods=["get"])
    def unified(self, request):
        summaries = get_unified_sets(
            request.user,
            include_archived=_flag(request.query_params.get("include_archived")),
        )
        return Response(
            [{**asdict(summary), "is_draft": summary.is_draft} for summary in summaries]
        )


class RecipientViewSet(viewsets.GenericViewSet):
    queryset = Recipient.objects.select_related(
        "request", "question_set", "respondent__profile"
    )
    permission_classes = [permissions.IsAuthenticated, IsRecipientAsker]

    @action(detail=True, methods=["post"])
    def remind(self, request, pk=None):
        recipient = ReminderService.send_manual_reminder(self.get_object(), request.user)
        return Response(
            {
                "id": recipient.pk,
                "reminders_sent": recipient.reminders_sent,
                "reminders_remaining": max(
                    ReminderService.MAX_REMINDERS - recipient.reminders_sent, 0
                ),
                "last_reminder_at": recipient.last_reminder_at,
            }
        )

    @action(detail=True, methods=["post"])
    def deactivate(self, request, pk=None):
        recipient = DispatchService.deactivate_recipient(self.get_object(), request.user)
        return Response(
            {
                "id": recipient.pk,
                "is_active": recipient.is_active,
                "deactivated_at": recipient.deactivated_at,
            }
        )


# Token-scoped endpoints. The token in the URL is the only credential, so
# these are open to anonymous callers and rate limited per IP.


@api_view(["GET"])
@permission_classes([permissions.AllowAny])
@ratelimit(key="ip", rate="60/m", block=True)
def ask_detail(request, token):
    now = timezone.now()
    session = AnswerService.get_outstanding_questions(token, now=now)
    context = {"now": now}
    return Response(
        {
            "question_set": {
                "id": session.question_set.pk,
                "name": session.question_set.name,
            },
            "asker_name": session.asker_name,
            "respondent_name": session.respondent_name,
            "message": session.message,
            "edit_window_days": EDIT_WINDOW_DAYS,
            "answered_count": session.answered_count,
            "total_questions": len(session.questions),
            "questions": [
                {
                    "id": item.question.pk,
                    "text": item.question.text,
                    "sort_order": item.question.sort_order,
                    "editable": item.editable,
                    "answer": (
                        AnswerSerializer(item.answer, context=context).data
                        if item.answer
                        else None
                    ),
                }
                for item in session.questions
            ],
        }
    )


@api_view(["POST", "PUT"])
@permission_classes([permissions.AllowAny])
@parser_classes([JSONParser, MultiPartParser, FormParser])
@ratelimit(key="ip", rate="30/m", block=True)
def ask_answer(request, token, question_id):
    serializer = AnswerSubmitSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    now = timezone.now()

    answer = AnswerService.submit_answer(
        token,
        question_id,
        text=data.get("text"),
        date_value=data.get("date_value"),
        date_precision=data.get("date_precision") or None,
        media=request.FILES.getlist("media"),
        assisted=data.get("assisted", False),
        now=now,
    )
    return Response(AnswerSerializer(answer, context={"now": now}).data)


@api_view(["GET"])
@permission_classes([permissions.AllowAny])
@ratelimit(key="ip", rate="120/m", block=True)
def ask_media_status(request, token, media_id):
    media = AnswerService.get_media_status(token, media_id)
    return Response(MediaAssetSerializer(media).data)


@api_view(["POST"])
@permission_classes([permissions.IsAuthenticated])
@ratelimit(key="user", rate="20/m", block=True)
def ask_claim(request, token):
    serializer = ClaimSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    result = ClaimService.claim(
        token,
        request.user,
        profile_data={"display_name": data.get("display_name", "")},
        provider=data.get("provider") or None,
        provider_user_id=data.get("provider_user_id") or None,
    )
    return Response(
        {
            "claimed": True,
            "already_claimed": result.already_claimed,
            "linked_account": result.linked_account,
            "relationship_created": result.relationship_created,
            "respondent_name": display_name(result.recipient),
        }
    )


@api_view(["GET"])
@permission_classes([permissions.AllowAny])
@throttle_classes([])
def healthcheck(request):
    return Response({"status": "ok"})
