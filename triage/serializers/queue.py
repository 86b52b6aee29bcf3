from rest_framework import serializers

from triage.domain import Severity, Status
from triage.services.lifecycle import plain_text


class PartitionQuerySerializer(serializers.Serializer):
    hospital = serializers.CharField(max_length=128)
    department = serializers.CharField(max_length=128)


class AdmissionSerializer(PartitionQuerySerializer):
    patientRef = serializers.CharField(max_length=128)
    patientName = serializers.CharField(max_length=128, required=False, allow_blank=True)
    contactPhone = serializers.RegexField(r'^\+?[0-9 ()-]{5,32}$', required=False, allow_blank=True)
    age = serializers.IntegerField(min_value=0, max_value=150)
    symptomText = serializers.CharField(max_length=2000, required=False, allow_blank=True)
    isPregnant = serializers.BooleanField(required=False, default=False)
    hasDisability = serializers.BooleanField(required=False, default=False)

    def validate_patientName(self, value):
        return plain_text(value)


class TicketQuerySerializer(serializers.Serializer):
    ticketId = serializers.CharField(max_length=32)


class StatusUpdateSerializer(TicketQuerySerializer):
    status = serializers.ChoiceField(choices=Status.choices)
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True)

    def validate_reason(self, value):
        return plain_text(value)


class EscalateSerializer(TicketQuerySerializer):
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True)

    def validate_reason(self, value):
        return plain_text(value)


class BroadcastSerializer(PartitionQuerySerializer):
    message = serializers.CharField(max_length=500)
    severity = serializers.ChoiceField(choices=Severity.choices, required=False, default=Severity.WARNING)
