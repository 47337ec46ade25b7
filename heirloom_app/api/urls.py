from django.urls import include, path
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from .views import (
    QuestionSetViewSet,
    RecipientViewSet,
    ask_answer,
    ask_claim,
    ask_detail,
    ask_media_status,
    healthcheck,
)

router = DefaultRouter()
router.register("question-sets", QuestionSetViewSet, basename="question-set")
router.register("recipients", RecipientViewSet, basename="recipient")

urlpatterns = [
    path("healthcheck", healthcheck, name="healthcheck"),
    path("token", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("token/refresh", TokenRefreshView.as_view(), name="token_refresh"),
    path("ask/<str:token>/", ask_detail, name="ask-detail"),
    path(
        "ask/<str:token>/questions/<str:question_id>/answer/",
        ask_answer,
        name="ask-answer",
    ),
    path(
        "ask/<str:token>/media/<str:media_id>/",
        ask_media_status,
        name="ask-media-status",
    ),
    path("ask/<str:token>/claim/", ask_claim, name="ask-claim"),
    path("", include(router.urls)),
]
