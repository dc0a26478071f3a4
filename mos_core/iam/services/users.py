# mos_core/iam/services/users.py
from __future__ import annotations

from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from rest_framework.exceptions import ValidationError


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def check_password_strength(password: str, user=None) -> None:
    """
    Runs AUTH_PASSWORD_VALIDATORS and re-raises as a DRF 400.
    """
    try:
        validate_password(password, user=user)
    except DjangoValidationError as exc:
        raise ValidationError({"password": list(exc.messages)})


def find_user_by_email(email: str):
    User = get_user_model()
    return User.objects.filter(email__iexact=normalize_email(email)).order_by("id").first()


@transaction.atomic
def get_or_create_user_by_email(email: str, *, password: str | None = None):
    """
    Returns (user, created).

    New users get the email as username. An existing user without a usable
    password gets `password` set; an existing password is never replaced.
    """
    User = get_user_model()
    email = normalize_email(email)
    if not email:
        raise ValidationError({"email": "This field is required."})

    user = find_user_by_email(email)
    if user is not None:
        if password and not user.has_usable_password():
            user.set_password(password)
            user.save(update_fields=["password"])
        return user, False

    user = User.objects.create_user(username=email, email=email, password=password)
    return user, True
