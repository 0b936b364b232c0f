from django.urls import path, include

urlpatterns = [
    path('api/v1/fleet/', include('fleet.urls')),
]
