"""Tells what to show in the Django admin interface for rides app"""

from django.contrib import admin
from .models import ActiveRideMarker, FareSetting, Ride


@admin.register(Ride)
class RideAdmin(admin.ModelAdmin):
    """Ride admin"""
    list_display = ['ride_id', 'rider', 'driver', 'status', 'transport_class', 'price',
                    'reassignment_count', 'created_at']
    list_filter = ['status', 'transport_class', 'created_at']
    search_fields = ['ride_id', 'rider__username', 'driver__username', 'pickup_address']
    readonly_fields = ['version', 'created_at', 'updated_at', 'accepted_at', 'start_time',
                       'end_time', 'cancelled_at', 'declined_at', 'reassigned_at']
    date_hierarchy = 'created_at'


@admin.register(ActiveRideMarker)
class ActiveRideMarkerAdmin(admin.ModelAdmin):
    list_display = ("driver", "ride", "created_at")
    search_fields = ("driver__username", "ride__ride_id")


@admin.register(FareSetting)
class FareSettingAdmin(admin.ModelAdmin):
    list_display = ("transport_class", "base_fare", "price_per_km", "updated_at")
