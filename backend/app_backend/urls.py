from django.contrib import admin
from django.urls import path, include

from .views import health_check

urlpatterns = [
    path('admin/', admin.site.urls),
    path("health/", health_check), # Health check endpoint

    # Authentication endpoints (at /api/auth/)
    path('api/auth/', include('accounts.urls')),  # register, login, refresh, me

    # Rider APIs (quote, request, current ride, cancel, driver choice, reassignment)
    path('api/rider/', include('riders.urls')),

    # Driver APIs (driver profile, status, location, nearby rides, history, stats)
    path('api/driver/', include('drivers.urls')),

    # Rides endpoints (at /api/rides/): ride detail and driver ride actions
    path('api/rides/', include('rides.urls')),
]
