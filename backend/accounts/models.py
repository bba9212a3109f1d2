from django.db import models
from django.contrib.auth.models import AbstractUser


class User(AbstractUser):
    """Extended user model with role selection"""
    ROLE_RIDER = 'rider'
    ROLE_DRIVER = 'driver'
    ROLE_CHOICES = [
        (ROLE_RIDER, 'Rider'),
        (ROLE_DRIVER, 'Driver'),
    ]

    role = models.CharField(max_length=10, choices=ROLE_CHOICES)
    phone_number = models.CharField(max_length=15, blank=True)

    class Meta:
        db_table = 'users'

    @property
    def is_driver(self) -> bool:
        return self.role == self.ROLE_DRIVER

    @property
    def is_rider(self) -> bool:
        return self.role == self.ROLE_RIDER

    def __str__(self):
        return f"{self.username} ({self.get_role_display()})"
