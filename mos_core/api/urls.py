# mos_core/api/urls.py
from __future__ import annotations

from django.urls import path
from rest_framework.routers import DefaultRouter

from mos_core.attendance.api.views import AttendanceViewSet
from mos_core.audit.api.views import AuditLogViewSet
from mos_core.billing.api.views import GiftAidViewSet, InvoiceViewSet, PaymentRecordViewSet
from mos_core.billing.api.webhooks import StripeWebhookView
from mos_core.iam.api.auth import LoginView, LogoutView, RefreshView
from mos_core.iam.api.me import MeView
from mos_core.iam.api.session import SessionBootstrapView
from mos_core.integrations.api.views import WhatsAppWebhookView
from mos_core.messaging.api.views import MessageViewSet
from mos_core.orgs.api.views import ActiveOrgView, OwnerOrgViewSet
from mos_core.students.api.views import (
    ClaimValidateView,
    ClaimVerifyView,
    ClaimView,
    ClassViewSet,
    StudentViewSet,
)

router = DefaultRouter()

# Org-scoped modules
router.register(r"classes", ClassViewSet, basename="classes")
router.register(r"students", StudentViewSet, basename="students")
router.register(r"attendance", AttendanceViewSet, basename="attendance")
router.register(r"invoices", InvoiceViewSet, basename="invoices")
router.register(r"payment-records", PaymentRecordViewSet, basename="payment-records")
router.register(r"gift-aid", GiftAidViewSet, basename="gift-aid")
router.register(r"messages", MessageViewSet, basename="messages")
router.register(r"audit-logs", AuditLogViewSet, basename="audit-logs")

# Platform owner
router.register(r"owner/orgs", OwnerOrgViewSet, basename="owner-orgs")

urlpatterns = [
    # Auth + /me + session bootstrap
    path("auth/login/", LoginView.as_view(), name="login"),
    path("auth/refresh/", RefreshView.as_view(), name="refresh"),
    path("auth/logout/", LogoutView.as_view(), name="logout"),
    path("me/", MeView.as_view(), name="me"),
    path("session/bootstrap/", SessionBootstrapView.as_view(), name="session-bootstrap"),

    # Active org settings
    path("org/", ActiveOrgView.as_view(), name="active-org"),

    # Public claim flow
    path("claims/validate/", ClaimValidateView.as_view(), name="claims-validate"),
    path("claims/claim/", ClaimView.as_view(), name="claims-claim"),
    path("claims/verify/", ClaimVerifyView.as_view(), name="claims-verify"),

    # Provider webhooks
    path("webhooks/stripe/", StripeWebhookView.as_view(), name="webhooks-stripe"),
    path("webhooks/whatsapp/", WhatsAppWebhookView.as_view(), name="webhooks-whatsapp"),

    # Router URLs last (so explicit paths win if ever overlapping)
    *router.urls,
]
