from rest_framework import serializers

from riders.models import RiderStatus

RIDER_STATUS_FILTERS = ["all", "online", "busy", "offline"]


class SnapshotQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=RIDER_STATUS_FILTERS, required=False, default="all")


class ManualAssignSerializer(serializers.Serializer):
    orderId = serializers.CharField(max_length=128)
    riderId = serializers.CharField(max_length=128)


class RiderLocationSerializer(serializers.Serializer):
    """
    Rider device location push. isOnline is optional, as on the rider app.
    """
    riderId = serializers.CharField(max_length=128)
    latitude = serializers.FloatField(min_value=-90.0, max_value=90.0)
    longitude = serializers.FloatField(min_value=-180.0, max_value=180.0)
    timestamp = serializers.DateTimeField(required=False)
    isOnline = serializers.BooleanField(required=False)


class RiderStatusSerializer(serializers.Serializer):
    riderId = serializers.CharField(max_length=128)
    # BUSY is never accepted from a device; only an assignment sets it
    status = serializers.ChoiceField(choices=[RiderStatus.ONLINE.value, RiderStatus.OFFLINE.value])

    def to_internal_value(self, data):
        if hasattr(data, "get") and isinstance(data.get("status"), str):
            data = {**data, "status": data["status"].upper()}
        return super().to_internal_value(data)
