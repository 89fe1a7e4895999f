import logging

from django.db import DatabaseError
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from .models import SyncLog
from .services.merge import merge_batch, prepare_batch

logger = logging.getLogger(__name__)


def _device_id(payload) -> str:
    if not isinstance(payload, dict):
        return ""
    return str(payload.get("deviceId") or "").strip()[:120]


def _log_sync(device_id: str, status_value: str, summary) -> None:
    try:
        SyncLog.objects.create(device_id=device_id, status=status_value, summary=summary)
    except DatabaseError:
        logger.exception("Could not record sync log for device %s", device_id or "unknown")


@api_view(["POST"])
@permission_classes([AllowAny])
def sync(request):
    payload = request.data
    device_id = _device_id(payload)

    try:
        batch = prepare_batch(payload)
    except ValidationError as exc:
        logger.warning("Rejected sync payload from device %s", device_id or "unknown")
        _log_sync(device_id, "rejected", {"errors": exc.detail})
        raise

    try:
        response, summary = merge_batch(batch, device_id=device_id)
    except DatabaseError:
        logger.exception("Sync failed for device %s", device_id or "unknown")
        _log_sync(device_id, "failed", {})
        return Response({"error": "Sync failed"}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    _log_sync(device_id, "applied", summary)
    return Response(response)
