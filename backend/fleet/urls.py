from django.urls import path

from .views import (
    AssignmentHistoryView,
    FleetSnapshotView,
    ManualAssignView,
    RiderDetailView,
    RiderLocationView,
    RiderStatusView,
)

urlpatterns = [
    path('live/', FleetSnapshotView.as_view(), name='fleet-live'),
    path('assign/', ManualAssignView.as_view(), name='fleet-manual-assign'),
    path('assignments/', AssignmentHistoryView.as_view(), name='fleet-assignments'),
    path('riders/location/', RiderLocationView.as_view(), name='fleet-rider-location'),
    path('riders/status/', RiderStatusView.as_view(), name='fleet-rider-status'),
    path('riders/<str:rider_id>/', RiderDetailView.as_view(), name='fleet-rider-detail'),
]
