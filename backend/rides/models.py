import uuid

from django.db import models
from django.conf import settings


def generate_ride_id() -> str:
    return uuid.uuid4().hex


class Ride(models.Model):
    """One trip request from creation to a terminal state."""

    STATUS_PENDING = 'pending'
    STATUS_ACCEPTED = 'accepted'
    STATUS_IN_PROGRESS = 'in_progress'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_CANCELLED_BY_DRIVER = 'cancelled_by_driver'
    STATUS_DECLINED = 'declined'
    STATUS_NEEDS_REASSIGNMENT = 'needs_reassignment'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_ACCEPTED, 'Accepted'),
        (STATUS_IN_PROGRESS, 'In Progress'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
        (STATUS_CANCELLED_BY_DRIVER, 'Cancelled by Driver'),
        (STATUS_DECLINED, 'Declined'),
        (STATUS_NEEDS_REASSIGNMENT, 'Needs Reassignment'),
    ]

    ACTIVE_STATUSES = (STATUS_ACCEPTED, STATUS_IN_PROGRESS)

    TRANSPORT_CHOICES = [
        ('taxi', 'Taxi'),
        ('bus', 'Bus'),
        ('van', 'Van'),
    ]

    PAYMENT_CHOICES = [
        ('cash', 'Cash'),
        ('card', 'Card'),
    ]

    CANCELLED_BY_CHOICES = [
        ('user', 'User'),
        ('driver', 'Driver'),
        ('system', 'System'),
    ]

    ride_id = models.CharField(max_length=64, unique=True, default=generate_ride_id)

    # Parties
    rider = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='rides_requested'
    )
    driver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='rides_assigned'
    )
    previous_drivers = models.JSONField(default=list, blank=True)
    last_failed_driver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )

    # Endpoints
    pickup_latitude = models.DecimalField(max_digits=9, decimal_places=6)
    pickup_longitude = models.DecimalField(max_digits=9, decimal_places=6)
    pickup_address = models.TextField(blank=True, default='')
    dropoff_latitude = models.DecimalField(max_digits=9, decimal_places=6)
    dropoff_longitude = models.DecimalField(max_digits=9, decimal_places=6)
    dropoff_address = models.TextField(blank=True, default='')

    # Quote
    price = models.DecimalField(max_digits=10, decimal_places=2)
    distance_km = models.DecimalField(max_digits=8, decimal_places=2)
    estimated_minutes = models.PositiveIntegerField(default=0)
    route_polyline = models.TextField(blank=True, default='')
    transport_class = models.CharField(max_length=10, choices=TRANSPORT_CHOICES, default='taxi')
    payment_method = models.CharField(max_length=10, choices=PAYMENT_CHOICES)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)

    # Lifecycle timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    accepted_at = models.DateTimeField(null=True, blank=True)
    start_time = models.DateTimeField(null=True, blank=True)
    end_time = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    declined_at = models.DateTimeField(null=True, blank=True)
    reassigned_at = models.DateTimeField(null=True, blank=True)

    cancelled_by = models.CharField(max_length=10, choices=CANCELLED_BY_CHOICES, null=True, blank=True)
    cancellation_reason = models.TextField(null=True, blank=True)
    declined_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )

    # Trip record, stamped by the driver
    start_latitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    start_longitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    end_latitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    end_longitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    trip_distance_km = models.DecimalField(max_digits=8, decimal_places=2, null=True, blank=True)
    fare = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)

    reassignment_count = models.PositiveIntegerField(default=0)
    version = models.PositiveIntegerField(default=0)

    rating = models.PositiveSmallIntegerField(null=True, blank=True)
    rating_comment = models.TextField(blank=True, default='')

    class Meta:
        db_table = 'rides'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status'], name='rides_status_idx'),
        ]

    def __str__(self):
        return f"Ride {self.ride_id} - {self.rider} - {self.status}"


class ActiveRideMarker(models.Model):
    """
    At most one row per driver, naming the ride that driver currently owns
    in accepted/in_progress. Created in the acceptance transaction.
    """

    driver = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='active_ride_marker'
    )
    ride = models.OneToOneField(
        Ride,
        on_delete=models.CASCADE,
        related_name='active_marker'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'active_ride_markers'

    def __str__(self):
        return f"Driver {self.driver_id} -> Ride {self.ride_id}"


class FareSetting(models.Model):
    """Per transport class pricing: price = base_fare + price_per_km * distance_km"""

    transport_class = models.CharField(max_length=10, choices=Ride.TRANSPORT_CHOICES, unique=True)
    base_fare = models.DecimalField(max_digits=8, decimal_places=2)
    price_per_km = models.DecimalField(max_digits=8, decimal_places=2)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'fare_settings'

    def __str__(self):
        return f"{self.transport_class}: {self.base_fare} + {self.price_per_km}/km"
