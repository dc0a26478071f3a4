# mos_core/attendance/api/serializers.py
from __future__ import annotations

from rest_framework import serializers

from mos_core.attendance.models import Attendance, AttendanceStatus


class AttendanceSerializer(serializers.ModelSerializer):
    class_id = serializers.UUIDField(source="klass_id", read_only=True)
    student_name = serializers.CharField(source="student.full_name", read_only=True)
    class_name = serializers.CharField(source="klass.name", read_only=True)

    class Meta:
        model = Attendance
        fields = [
            "id",
            "org_id",
            "class_id",
            "class_name",
            "student_id",
            "student_name",
            "date",
            "status",
            "marked_by_id",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class AttendanceMarkSerializer(serializers.Serializer):
    student_id = serializers.UUIDField()
    status = serializers.ChoiceField(choices=AttendanceStatus.choices)


class BulkAttendanceSerializer(serializers.Serializer):
    class_id = serializers.UUIDField()
    date = serializers.DateField()
    attendance = AttendanceMarkSerializer(many=True, allow_empty=False)


class BulkAttendanceResultSerializer(serializers.Serializer):
    class_id = serializers.UUIDField()
    date = serializers.DateField()
    created = serializers.IntegerField()
    updated = serializers.IntegerField()
