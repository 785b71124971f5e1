# clinic_core/reminders/api/views.py
from __future__ import annotations

from django.core.exceptions import ValidationError as DjangoValidationError
from django.utils import timezone
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import extend_schema
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import APIException, NotFound, ValidationError as DRFValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from clinic_core.common.scope import ClinicMemberPermission, parse_uuid, require_clinic_id
from clinic_core.reminders.api.authentication import CronSecretAuthentication
from clinic_core.reminders.api.filters import ReminderLogFilter
from clinic_core.reminders.api.serializers import (
    DuePairSerializer,
    ManualReminderSerializer,
    ReminderLogSerializer,
    ReminderRuleCreateSerializer,
    ReminderRuleSerializer,
    ReminderRuleUpdateSerializer,
)
from clinic_core.reminders.channels import ChannelConfigurationError
from clinic_core.reminders.coordinator import ReminderDispatchCoordinator
from clinic_core.reminders.models import ReminderRule
from clinic_core.reminders.selectors import reminder_logs_qs, rules_qs, sent_counts
from clinic_core.reminders.services import ReminderRuleService


class ReminderChannelUnavailable(APIException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Reminder channel is not configured."
    default_code = "channel_unavailable"


class ReminderNotDue(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Patient is not due for a reminder in this category."
    default_code = "not_due"


def _rule_id_or_404(pk):
    rule_id = parse_uuid(pk)
    if rule_id is None:
        raise NotFound("Rule not found in this clinic.")
    return rule_id


def _django_validation_to_drf(e: DjangoValidationError) -> DRFValidationError:
    if hasattr(e, "message_dict"):
        return DRFValidationError(e.message_dict)
    return DRFValidationError({"detail": e.messages})


class ReminderCronView(APIView):
    """
    Scheduler entry point.

    GET  -> what would be sent now, per active clinic (no side effects)
    POST -> run one dispatch tick over all active clinics
    """

    authentication_classes = [CronSecretAuthentication]
    permission_classes = [IsAuthenticated]

    @extend_schema(responses={200: OpenApiTypes.OBJECT}, summary="Pending reminders for every active clinic")
    def get(self, request):
        now = timezone.now()
        coordinator = ReminderDispatchCoordinator()
        clinics = [
            {
                "clinicId": str(clinic.id),
                "clinicName": clinic.name,
                "pendingReminders": len(pending),
                "patients": DuePairSerializer(pending, many=True).data,
            }
            for clinic, pending in coordinator.pending_for_active_clinics(now=now)
        ]
        return Response({"status": "ok", "timestamp": now.isoformat(), "clinics": clinics})

    @extend_schema(request=None, responses={200: OpenApiTypes.OBJECT}, summary="Dispatch due reminders")
    def post(self, request):
        coordinator = ReminderDispatchCoordinator()
        try:
            tick = coordinator.process_all_clinics()
        except ChannelConfigurationError as e:
            raise ReminderChannelUnavailable(str(e))

        return Response(
            {
                "status": "ok",
                "timestamp": tick.timestamp.isoformat(),
                "totalSent": tick.total_sent,
                "totalFailed": tick.total_failed,
                "totalDeferred": tick.total_deferred,
                "clinics": [c.as_dict() for c in tick.clinics],
            },
            status=status.HTTP_200_OK,
        )


class ReminderViewSet(viewsets.GenericViewSet):
    """
    Staff view of the reminder engine for the X-Clinic-Id clinic.
    """

    permission_classes = [ClinicMemberPermission]
    serializer_class = ReminderLogSerializer
    filterset_class = ReminderLogFilter
    ordering_fields = ["created_at", "status", "category"]

    def get_queryset(self):
        return reminder_logs_qs(clinic_id=require_clinic_id(self.request))

    @extend_schema(responses=DuePairSerializer(many=True))
    @action(detail=False, methods=["get"])
    def pending(self, request):
        clinic_id = require_clinic_id(request)
        pending = ReminderDispatchCoordinator().get_pending_summary(clinic_id=clinic_id)
        return Response(DuePairSerializer(pending, many=True).data)

    @action(detail=False, methods=["get"])
    def history(self, request):
        qs = self.filter_queryset(self.get_queryset())
        page = self.paginate_queryset(qs)
        if page is not None:
            return self.get_paginated_response(self.get_serializer(page, many=True).data)
        return Response(self.get_serializer(qs, many=True).data)

    @extend_schema(request=ManualReminderSerializer, responses={200: OpenApiTypes.OBJECT})
    @action(detail=False, methods=["post"])
    def send(self, request):
        """Send one pending reminder now, outside the scheduler tick."""
        clinic_id = require_clinic_id(request)
        s = ManualReminderSerializer(data=request.data)
        s.is_valid(raise_exception=True)

        try:
            outcome = ReminderDispatchCoordinator().send_one(
                clinic_id=clinic_id,
                patient_id=s.validated_data["patient_id"],
                category=s.validated_data["category"],
            )
        except ChannelConfigurationError as e:
            raise ReminderChannelUnavailable(str(e))

        if outcome is None:
            raise ReminderNotDue()
        return Response(outcome.as_dict(), status=status.HTTP_200_OK)

    @extend_schema(responses={200: OpenApiTypes.OBJECT})
    @action(detail=False, methods=["get"])
    def stats(self, request):
        clinic_id = require_clinic_id(request)
        now = timezone.now()
        pending = ReminderDispatchCoordinator().get_pending_summary(clinic_id=clinic_id, now=now)
        counts = sent_counts(clinic_id=clinic_id, now=now)
        return Response(
            {
                "pendingCount": len(pending),
                "sentToday": counts["today"],
                "sentMonth": counts["month"],
            }
        )


class ReminderRuleViewSet(mixins.ListModelMixin, viewsets.GenericViewSet):
    permission_classes = [ClinicMemberPermission]
    serializer_class = ReminderRuleSerializer
    pagination_class = None

    def get_queryset(self):
        return rules_qs(clinic_id=require_clinic_id(self.request))

    @extend_schema(request=ReminderRuleCreateSerializer, responses={201: ReminderRuleSerializer})
    def create(self, request):
        clinic_id = require_clinic_id(request)
        s = ReminderRuleCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)

        try:
            rule = ReminderRuleService.create_rule(clinic_id=clinic_id, **s.validated_data)
        except DjangoValidationError as e:
            raise _django_validation_to_drf(e)

        return Response(ReminderRuleSerializer(rule).data, status=status.HTTP_201_CREATED)

    @extend_schema(request=ReminderRuleUpdateSerializer, responses=ReminderRuleSerializer)
    def partial_update(self, request, pk=None):
        clinic_id = require_clinic_id(request)
        rule_id = _rule_id_or_404(pk)
        s = ReminderRuleUpdateSerializer(data=request.data, partial=True)
        s.is_valid(raise_exception=True)

        try:
            rule = ReminderRuleService.update_rule(clinic_id=clinic_id, rule_id=rule_id, **s.validated_data)
        except ReminderRule.DoesNotExist:
            raise NotFound("Rule not found in this clinic.")
        except DjangoValidationError as e:
            raise _django_validation_to_drf(e)

        return Response(ReminderRuleSerializer(rule).data, status=status.HTTP_200_OK)

    def destroy(self, request, pk=None):
        clinic_id = require_clinic_id(request)
        rule_id = _rule_id_or_404(pk)

        try:
            ReminderRuleService.delete_rule(clinic_id=clinic_id, rule_id=rule_id)
        except ReminderRule.DoesNotExist:
            raise NotFound("Rule not found in this clinic.")

        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(request=None, responses=ReminderRuleSerializer)
    @action(detail=True, methods=["post"])
    def toggle(self, request, pk=None):
        clinic_id = require_clinic_id(request)
        rule_id = _rule_id_or_404(pk)

        try:
            rule = ReminderRuleService.toggle(clinic_id=clinic_id, rule_id=rule_id)
        except ReminderRule.DoesNotExist:
            raise NotFound("Rule not found in this clinic.")

        return Response(ReminderRuleSerializer(rule).data, status=status.HTTP_200_OK)
