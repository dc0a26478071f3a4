# mos_core/students/api/serializers.py
from __future__ import annotations

from rest_framework import serializers

from mos_core.students.models import Class, ClaimStatus, Student


class ClassSerializer(serializers.ModelSerializer):
    student_count = serializers.IntegerField(read_only=True, required=False)

    class Meta:
        model = Class
        fields = [
            "id",
            "org_id",
            "name",
            "description",
            "teacher_id",
            "monthly_fee_p",
            "fee_due_day",
            "is_archived",
            "archived_at",
            "student_count",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class ClassWriteSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    teacher_id = serializers.IntegerField(required=False, allow_null=True, default=None)
    monthly_fee_p = serializers.IntegerField(min_value=0, required=False, default=0)
    fee_due_day = serializers.IntegerField(min_value=1, max_value=28, required=False, allow_null=True, default=None)


class ClassMiniSerializer(serializers.ModelSerializer):
    class Meta:
        model = Class
        fields = ["id", "name"]
        read_only_fields = fields


class StudentSerializer(serializers.ModelSerializer):
    classes = ClassMiniSerializer(many=True, read_only=True)
    full_name = serializers.CharField(read_only=True)

    class Meta:
        model = Student
        fields = [
            "id",
            "org_id",
            "first_name",
            "last_name",
            "full_name",
            "dob",
            "notes",
            "primary_parent_id",
            "is_archived",
            "archived_at",
            "claim_code",
            "claim_code_expires_at",
            "claim_status",
            "classes",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class ParentStudentSerializer(serializers.ModelSerializer):
    """
    What a parent sees for their own children (no claim data).
    """
    classes = ClassMiniSerializer(many=True, read_only=True)

    class Meta:
        model = Student
        fields = ["id", "first_name", "last_name", "dob", "classes"]
        read_only_fields = fields


class StudentCreateSerializer(serializers.Serializer):
    first_name = serializers.CharField(max_length=128)
    last_name = serializers.CharField(max_length=128)
    dob = serializers.DateField(required=False, allow_null=True, default=None)
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    class_ids = serializers.ListField(child=serializers.UUIDField(), required=False, default=list)
    parent_email = serializers.EmailField(required=False, allow_blank=True, default="")


class StudentUpdateSerializer(serializers.Serializer):
    first_name = serializers.CharField(max_length=128, required=False)
    last_name = serializers.CharField(max_length=128, required=False)
    dob = serializers.DateField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    class_ids = serializers.ListField(child=serializers.UUIDField(), required=False)


class EnrollSerializer(serializers.Serializer):
    class_id = serializers.UUIDField()


class ArchiveSerializer(serializers.Serializer):
    archived = serializers.BooleanField(default=True)


# -------------------------------------------------------------------
# Claims (public)
# -------------------------------------------------------------------

class ClaimValidateRequestSerializer(serializers.Serializer):
    claim_code = serializers.CharField(max_length=32)
    org_id = serializers.UUIDField(required=False, allow_null=True, default=None)


class ClaimStudentPublicSerializer(serializers.ModelSerializer):
    class Meta:
        model = Student
        fields = ["id", "first_name", "last_name", "dob", "claim_status"]
        read_only_fields = fields


class ClaimValidateResponseSerializer(serializers.Serializer):
    student = ClaimStudentPublicSerializer()
    org = serializers.DictField()
    classes = serializers.ListField(child=serializers.DictField())


class ClaimRequestSerializer(serializers.Serializer):
    claim_code = serializers.CharField(max_length=32)
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, trim_whitespace=False)


class ClaimResponseSerializer(serializers.Serializer):
    student_id = serializers.UUIDField()
    parent_user_id = serializers.IntegerField()
    parent_created = serializers.BooleanField()
    claim_status = serializers.ChoiceField(choices=ClaimStatus.choices)


class ClaimVerifySerializer(serializers.Serializer):
    token = serializers.CharField(max_length=64)


class RegenerateClaimCodeSerializer(serializers.Serializer):
    student_id = serializers.UUIDField()


# -------------------------------------------------------------------
# Bulk upload
# -------------------------------------------------------------------

class BulkUploadFileSerializer(serializers.Serializer):
    file = serializers.FileField()


class StudentImportRowSerializer(serializers.Serializer):
    row_number = serializers.IntegerField(min_value=1)
    first_name = serializers.CharField(max_length=128)
    last_name = serializers.CharField(max_length=128)
    parent_email = serializers.EmailField()
    dob = serializers.DateField(required=False, allow_null=True, default=None)
    class_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    existing_student_id = serializers.UUIDField(required=False, allow_null=True, default=None)


class BulkConfirmSerializer(serializers.Serializer):
    students = StudentImportRowSerializer(many=True, allow_empty=False)
