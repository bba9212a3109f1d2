from django.contrib import admin
from drivers.models import DriverProfile


@admin.register(DriverProfile)
class DriverProfileAdmin(admin.ModelAdmin):
    """Admin panel for managing Driver Profiles"""

    list_display = [
        "user",
        "vehicle_number",
        "status",
        "completed_trips",
        "cancelled_trips",
        "total_earnings",
        "last_location_update",
    ]

    list_filter = [
        "status",
    ]

    search_fields = [
        "user__username",
        "vehicle_number",
    ]

    readonly_fields = [
        "last_location_update",
        "completed_trips",
        "cancelled_trips",
        "total_earnings",
        "rating_sum",
        "rating_count",
    ]

    ordering = ("user__username",)
