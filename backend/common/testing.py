"""Fixtures shared by the app test modules."""

from decimal import Decimal
from unittest.mock import patch

from accounts.models import User
from drivers.models import DriverProfile
from rides.models import Ride
from services.providers import RouteSummary


def make_rider(username='rider', **extra):
	return User.objects.create_user(
		username=username,
		password='rider1234',
		role='rider',
		**extra
	)


def make_driver(username, latitude=None, longitude=None, status='available', vehicle_number=None):
	user = User.objects.create_user(
		username=username,
		password='driver1234',
		role='driver'
	)
	DriverProfile.objects.create(
		user=user,
		vehicle_number=vehicle_number or 'WB-%s' % username.upper(),
		vehicle_model='Sedan',
		status=status,
		current_latitude=None if latitude is None else Decimal(str(latitude)),
		current_longitude=None if longitude is None else Decimal(str(longitude)),
	)
	return user


def make_ride(rider, pickup=(0, 0), dropoff=(0.01, 0.01), status=Ride.STATUS_PENDING, **fields):
	fields.setdefault('price', Decimal('10.50'))
	fields.setdefault('distance_km', Decimal('5.00'))
	fields.setdefault('payment_method', 'cash')
	return Ride.objects.create(
		rider=rider,
		pickup_latitude=Decimal(str(pickup[0])),
		pickup_longitude=Decimal(str(pickup[1])),
		dropoff_latitude=Decimal(str(dropoff[0])),
		dropoff_longitude=Decimal(str(dropoff[1])),
		status=status,
		**fields
	)


def stub_route(distance_meters=5000, duration_seconds=600):
	"""Patch the routing provider with a fixed route."""
	return patch(
		'services.providers.RoutingClient.route',
		return_value=RouteSummary(distance_meters, duration_seconds, 'poly')
	)
