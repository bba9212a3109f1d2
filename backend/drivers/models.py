from decimal import Decimal

from django.db import models
from django.utils import timezone
from django.conf import settings

User = settings.AUTH_USER_MODEL


class DriverProfile(models.Model):
    """Driver availability record: vehicle, status, live position and trip stats"""
    STATUS_AVAILABLE = 'available'
    STATUS_BUSY = 'busy'
    STATUS_OFFLINE = 'offline'
    STATUS_CHOICES = [
        (STATUS_AVAILABLE, 'Available'),
        (STATUS_BUSY, 'Busy'),
        (STATUS_OFFLINE, 'Offline'),
    ]

    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='driver_profile')

    # Vehicle details
    vehicle_number = models.CharField(max_length=20, unique=True)
    vehicle_model = models.CharField(max_length=100, blank=True)

    # Availability & live position
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_OFFLINE)
    current_latitude = models.DecimalField(max_digits=10, decimal_places=6, null=True, blank=True)
    current_longitude = models.DecimalField(max_digits=10, decimal_places=6, null=True, blank=True)
    last_location_update = models.DateTimeField(default=timezone.now)

    # Trip statistics
    completed_trips = models.PositiveIntegerField(default=0)
    cancelled_trips = models.PositiveIntegerField(default=0)
    total_earnings = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    rating_sum = models.PositiveIntegerField(default=0)
    rating_count = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = 'driver_profiles'

    @property
    def is_available(self) -> bool:
        return self.status == self.STATUS_AVAILABLE

    @property
    def average_rating(self) -> float:
        if not self.rating_count:
            return 0.0
        return round(self.rating_sum / self.rating_count, 2)

    @property
    def completion_rate(self) -> float:
        total = self.completed_trips + self.cancelled_trips
        if not total:
            return 100.0
        return round(self.completed_trips * 100 / total, 1)

    def __str__(self):
        return f"{self.user.username} - {self.vehicle_number}"
