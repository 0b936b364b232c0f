from django.apps import apps
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from dispatch.events import InvalidEventError
from dispatch.service import UnknownEntityError

from .serializers import (
    ManualAssignSerializer,
    RiderLocationSerializer,
    RiderStatusSerializer,
    SnapshotQuerySerializer,
)


def success(data, http_status=status.HTTP_200_OK, message=None):
    body = {"success": True, "data": data}
    if message:
        body["message"] = message
    return Response(body, status=http_status)


def failure(error, http_status=status.HTTP_400_BAD_REQUEST, errors=None):
    body = {"success": False, "error": error}
    if errors:
        body["errors"] = errors
    return Response(body, status=http_status)


class FleetServiceView(APIView):
    """
    Base view: the dispatch service is injected with as_view(service=...)
    or falls back to the one owned by the fleet app config.
    """
    service = None

    def get_service(self):
        if self.service is not None:
            return self.service
        return apps.get_app_config("fleet").service


class FleetSnapshotView(FleetServiceView):
    """
    GET: live fleet snapshot (riders, zones, unassigned orders, stats).
    ?status=online|busy|offline filters the rider list only; stats stay fleet-wide.
    """

    def get(self, request):
        query = SnapshotQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return failure("Invalid status filter", errors=query.errors)

        snapshot = self.get_service().snapshot()
        return success(snapshot.to_dict(status=query.validated_data["status"]))


class ManualAssignView(FleetServiceView):
    """
    POST {orderId, riderId}: administrative override of the auto-assignment.
    """

    def post(self, request):
        serializer = ManualAssignSerializer(data=request.data)
        if not serializer.is_valid():
            return failure("Validation failed", errors=serializer.errors)

        order_id = serializer.validated_data["orderId"]
        rider_id = serializer.validated_data["riderId"]
        try:
            record = self.get_service().manual_assign(order_id, rider_id)
        except UnknownEntityError as e:
            return failure(str(e), status.HTTP_404_NOT_FOUND)

        if record is None:
            return failure(
                f"Order {order_id} cannot be assigned to rider {rider_id} (order not waiting or rider not available)",
                status.HTTP_409_CONFLICT,
            )
        return success(record.to_dict(), status.HTTP_201_CREATED, message="Order assigned")


class AssignmentHistoryView(FleetServiceView):

    def get(self, request):
        service = self.get_service()
        return success({
            "autoAssigned": service.engine.auto_assigned_total,
            "manualAssigned": service.engine.manual_assigned_total,
            "recentAssignments": [record.to_dict() for record in service.recent_assignments()],
        })


class RiderDetailView(FleetServiceView):

    def get(self, request, rider_id):
        try:
            detail = self.get_service().rider_detail(rider_id)
        except UnknownEntityError as e:
            return failure(str(e), status.HTTP_404_NOT_FOUND)
        return success(detail.to_dict())


class RiderLocationView(FleetServiceView):
    """
    POST {riderId, latitude, longitude, timestamp?, isOnline?} from the rider app.
    """

    def post(self, request):
        serializer = RiderLocationSerializer(data=request.data)
        if not serializer.is_valid():
            return failure("Location coordinates are required", errors=serializer.errors)

        data = serializer.validated_data
        service = self.get_service()
        try:
            service.on_rider_position({
                "riderId": data["riderId"],
                "lat": data["latitude"],
                "lng": data["longitude"],
                "timestamp": data.get("timestamp"),
            })
            if "isOnline" in data:
                service.on_rider_status({"riderId": data["riderId"], "status": "ONLINE" if data["isOnline"] else "OFFLINE"})
        except InvalidEventError as e:
            return failure(str(e))

        rider = service.riders.get(data["riderId"])
        return success({"status": rider.status.value.lower(), "zone": rider.zone_id}, message="Location updated")


class RiderStatusView(FleetServiceView):

    def post(self, request):
        serializer = RiderStatusSerializer(data=request.data)
        if not serializer.is_valid():
            return failure("Validation failed", errors=serializer.errors)

        data = serializer.validated_data
        service = self.get_service()
        changed = service.on_rider_status({"riderId": data["riderId"], "status": data["status"]})
        rider = service.riders.get(data["riderId"])
        return success({"changed": changed, "status": rider.status.value.lower()})
