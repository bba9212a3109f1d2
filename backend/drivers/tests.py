from decimal import Decimal

from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIRequestFactory, force_authenticate

from common.testing import make_driver, make_rider, make_ride
from rides.models import Ride
from services.matching import find_nearby_rides_for_driver, is_visible_to_driver
from services.ride_management import ride_lifecycle
from services.ride_management.exceptions import RideValidationError

from .models import DriverProfile
from .services import driver_stats, update_driver_location, update_driver_status
from .views import (
	DriverCurrentRideView,
	DriverLocationUpdateView,
	DriverStatsView,
	DriverStatusView,
	NearbyRidesForDriverView,
)


class DriverLocationTests(TestCase):
	def setUp(self):
		self.driver = make_driver('driver_one', 0, 0)
		self.profile = DriverProfile.objects.get(user=self.driver)

	def test_small_move_is_ignored(self):
		# ~56m east
		self.assertFalse(update_driver_location(self.profile, 0, 0.0005))

		self.profile.refresh_from_db()
		self.assertEqual(self.profile.current_longitude, Decimal('0'))

	def test_move_past_threshold_is_stored(self):
		self.assertTrue(update_driver_location(self.profile, 0, 0.001))

		self.profile.refresh_from_db()
		self.assertEqual(self.profile.current_longitude, Decimal('0.001'))

	def test_first_fix_is_always_stored(self):
		profile = DriverProfile.objects.get(user=make_driver('driver_two'))
		self.assertTrue(update_driver_location(profile, 12.9716, 77.5946))

	def test_custom_threshold(self):
		self.assertTrue(update_driver_location(self.profile, 0, 0.0005, threshold_meters=50))

	def test_invalid_location(self):
		with self.assertRaises(RideValidationError):
			update_driver_location(self.profile, 95, 0)


class DriverStatusTests(TestCase):
	def setUp(self):
		self.driver = make_driver('driver_one', 0, 0)
		self.profile = DriverProfile.objects.get(user=self.driver)

	def test_go_offline(self):
		update_driver_status(self.profile, 'offline')
		self.profile.refresh_from_db()
		self.assertEqual(self.profile.status, 'offline')

	def test_unknown_status(self):
		with self.assertRaises(RideValidationError):
			update_driver_status(self.profile, 'sleeping')

	def test_status_locked_during_active_ride(self):
		ride = make_ride(make_rider())
		ride_lifecycle.accept_ride(self.driver, ride.ride_id)
		self.profile.refresh_from_db()

		with self.assertRaises(RideValidationError):
			update_driver_status(self.profile, 'offline')
		self.profile.refresh_from_db()
		self.assertEqual(self.profile.status, 'busy')


class NearbyRideFeedTests(TestCase):
	def setUp(self):
		self.driver = make_driver('driver_one', 0, 0)
		self.other_driver = make_driver('driver_two', 0, 0)

	def _ride(self, username, pickup, **fields):
		return make_ride(make_rider(username), pickup=pickup, **fields)

	def test_feed_contents(self):
		near = self._ride('near', (0, 0.001))
		bound_here = self._ride('bound_here', (0, 0.002), driver=self.driver)
		self._ride('bound_elsewhere', (0, 0.001), driver=self.other_driver)
		self._ride('excluded', (0, 0.001), previous_drivers=[self.driver.id])
		self._ride('too_far', (0, 0.5))
		self._ride('accepted', (0, 0.001), status=Ride.STATUS_ACCEPTED, driver=self.other_driver)
		self._ride('cancelled', (0, 0.001), status=Ride.STATUS_CANCELLED)

		feed = find_nearby_rides_for_driver(self.driver, 0, 0)

		self.assertEqual([item.ride.ride_id for item in feed], [near.ride_id, bound_here.ride_id])
		self.assertAlmostEqual(feed[0].distance_meters, 111.19, delta=0.01)

	def test_radius_override(self):
		self._ride('near', (0, 0.001))
		self.assertEqual(find_nearby_rides_for_driver(self.driver, 0, 0, radius_meters=100), [])

	def test_invalid_driver_location(self):
		with self.assertRaises(RideValidationError):
			find_nearby_rides_for_driver(self.driver, None, 0)

	def test_visibility_rules(self):
		ride = self._ride('rider', (0, 0))

		self.assertTrue(is_visible_to_driver(ride, self.driver.id))

		ride.previous_drivers = [self.driver.id]
		self.assertFalse(is_visible_to_driver(ride, self.driver.id))
		self.assertTrue(is_visible_to_driver(ride, self.other_driver.id))

		ride.previous_drivers = []
		ride.driver = self.other_driver
		self.assertFalse(is_visible_to_driver(ride, self.driver.id))

		ride.driver = None
		ride.status = Ride.STATUS_NEEDS_REASSIGNMENT
		self.assertFalse(is_visible_to_driver(ride, self.driver.id))

	def test_declining_driver_never_sees_ride_again(self):
		ride = self._ride('rider', (0, 0.001))
		ride_lifecycle.accept_ride(self.driver, ride.ride_id)

		with self.captureOnCommitCallbacks(execute=True):
			ride_lifecycle.decline_ride(self.driver, ride.ride_id)

		ride.refresh_from_db()
		self.assertEqual(ride.status, 'needs_reassignment')
		self.assertIn(self.driver.id, ride.previous_drivers)

		# Back in the pool without a driver: still hidden from the one who declined
		Ride.objects.filter(pk=ride.pk).update(status=Ride.STATUS_PENDING)
		self.assertEqual(find_nearby_rides_for_driver(self.driver, 0, 0), [])
		self.assertEqual(len(find_nearby_rides_for_driver(self.other_driver, 0, 0)), 1)


class DriverStatsTests(TestCase):
	def test_stats_after_trip(self):
		driver = make_driver('driver_one', 0, 0)
		ride = make_ride(make_rider())
		ride_lifecycle.accept_ride(driver, ride.ride_id)
		ride_lifecycle.start_ride(driver, ride.ride_id, 0, 0)
		ride_lifecycle.complete_ride(driver, ride.ride_id, 0.01, 0.01)

		stats = driver_stats(DriverProfile.objects.get(user=driver))

		self.assertEqual(stats['completed_trips'], 1)
		self.assertEqual(stats['total_earnings'], '10.50')
		self.assertEqual(stats['today_earnings'], '10.50')
		self.assertEqual(stats['completion_rate'], 100.0)


class DriverViewTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.driver = make_driver('driver_one', 0, 0)
		self.rider = make_rider()

	def _call(self, view, method, data=None, user=None):
		request = getattr(self.factory, method)('/api/driver/', data or {}, format='json')
		force_authenticate(request, user=user or self.driver)
		return view.as_view()(request)

	def test_location_update_below_threshold(self):
		response = self._call(DriverLocationUpdateView, 'post', {'latitude': '0', 'longitude': '0.0005'})

		self.assertEqual(response.status_code, 200)
		self.assertFalse(response.data['updated'])

	def test_location_update_past_threshold(self):
		response = self._call(DriverLocationUpdateView, 'post', {'latitude': '0', 'longitude': '0.002'})

		self.assertTrue(response.data['updated'])
		self.assertEqual(response.data['longitude'], 0.002)

	def test_nearby_rides(self):
		make_ride(self.rider, pickup=(0, 0.001))

		response = self._call(NearbyRidesForDriverView, 'post', {'latitude': '0', 'longitude': '0'})

		self.assertEqual(response.data['count'], 1)
		self.assertEqual(response.data['rides'][0]['distance_meters'], 111.19)

	def test_nearby_rides_when_offline(self):
		DriverProfile.objects.filter(user=self.driver).update(status='offline')
		make_ride(self.rider, pickup=(0, 0.001))

		response = self._call(NearbyRidesForDriverView, 'post', {'latitude': '0', 'longitude': '0'})
		self.assertEqual(response.data['count'], 0)

	def test_rider_gets_forbidden(self):
		response = self._call(DriverStatsView, 'get', user=self.rider)
		self.assertEqual(response.status_code, 403)

	def test_status_change_during_ride_is_rejected(self):
		ride = make_ride(self.rider)
		ride_lifecycle.accept_ride(self.driver, ride.ride_id)

		response = self._call(DriverStatusView, 'put', {'status': 'offline'})

		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.data['error'], 'validation_error')

	def test_current_ride(self):
		self.assertEqual(self._call(DriverCurrentRideView, 'get').status_code, 404)

		ride = make_ride(self.rider)
		ride_lifecycle.accept_ride(self.driver, ride.ride_id)

		response = self._call(DriverCurrentRideView, 'get')
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['ride_id'], ride.ride_id)
		self.assertEqual(response.data['status'], 'accepted')

	def test_stats_view(self):
		response = self._call(DriverStatsView, 'get')
		self.assertEqual(response.data['completed_trips'], 0)
		self.assertEqual(response.data['total_earnings'], '0.00')
