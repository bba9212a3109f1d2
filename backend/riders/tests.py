from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from common.testing import make_driver, make_rider, make_ride, stub_route
from drivers.models import DriverProfile
from rides.models import Ride
from services.matching import NO_DRIVERS_NEARBY, find_nearby_drivers_for_rider
from services.reassignment import handle_status_change, reassign_ride, retry_matching
from services.ride_management import ride_lifecycle
from services.ride_management.exceptions import (
	DriverNotAvailableError,
	RideNotAvailableError,
	RideValidationError,
)
from services.ride_management.store import apply_transition

from .views.info import RiderNearbyDriversView
from .views.rides import (
	RiderCancelRideView,
	RiderCreateRideRequestView,
	RiderCurrentRideView,
	RiderQuoteView,
	RiderReassignRideView,
	RiderRetryMatchingView,
)


class DriverSearchTests(TestCase):
	def setUp(self):
		self.near = make_driver('near', 0, 0.001)
		self.far = make_driver('far', 0, 0.2)

	def test_only_drivers_inside_radius(self):
		result = find_nearby_drivers_for_rider(0, 0)

		self.assertEqual([c.driver_id for c in result.drivers], [self.near.id])
		self.assertAlmostEqual(result.drivers[0].distance_meters, 111.19, delta=0.01)
		self.assertIsNone(result.reason)

	def test_closest_first(self):
		closer = make_driver('closer', 0, 0.0005)
		result = find_nearby_drivers_for_rider(0, 0)
		self.assertEqual([c.driver_id for c in result.drivers], [closer.id, self.near.id])

	def test_unavailable_and_busy_drivers_are_skipped(self):
		make_driver('offline', 0, 0.001, status='offline')
		on_trip = make_driver('on_trip', 0, 0.001)
		make_ride(make_rider(), status=Ride.STATUS_ACCEPTED, driver=on_trip)

		result = find_nearby_drivers_for_rider(0, 0)
		self.assertEqual([c.driver_id for c in result.drivers], [self.near.id])

	def test_explicit_and_ride_exclusions(self):
		other = make_driver('other', 0, 0.002)
		ride = make_ride(make_rider(), previous_drivers=[self.near.id])

		result = find_nearby_drivers_for_rider(0, 0, ride=ride)
		self.assertEqual([c.driver_id for c in result.drivers], [other.id])

		result = find_nearby_drivers_for_rider(0, 0, exclude=[other.id], ride=ride)
		self.assertTrue(result.is_empty)
		self.assertEqual(result.reason, NO_DRIVERS_NEARBY)
		self.assertEqual(result.as_dict()['excluded_driver_ids'], sorted([self.near.id, other.id]))

	def test_last_failed_driver_is_excluded(self):
		ride = make_ride(make_rider(), last_failed_driver=self.near)
		self.assertTrue(find_nearby_drivers_for_rider(0, 0, ride=ride).is_empty)

	def test_radius_override(self):
		result = find_nearby_drivers_for_rider(0, 0, radius_meters=50000)
		self.assertEqual(len(result.drivers), 2)

	def test_invalid_pickup(self):
		with self.assertRaises(RideValidationError):
			find_nearby_drivers_for_rider(None, None)


class ReassignmentTests(TestCase):
	def setUp(self):
		self.rider = make_rider()
		self.first = make_driver('first', 0, 0.001)
		self.second = make_driver('second', 0, 0.002)
		self.ride = make_ride(self.rider, driver=self.first)

		with self.captureOnCommitCallbacks(execute=True):
			ride_lifecycle.decline_ride(self.first, self.ride.ride_id)
		self.ride.refresh_from_db()

	def test_decline_flags_ride(self):
		self.assertEqual(self.ride.status, 'needs_reassignment')
		self.assertEqual(self.ride.previous_drivers, [self.first.id])
		self.assertEqual(self.ride.last_failed_driver_id, self.first.id)

	def test_retry_skips_previous_drivers(self):
		result = retry_matching(self.rider, self.ride.ride_id)
		self.assertEqual([c.driver_id for c in result.drivers], [self.second.id])

	def test_retry_with_nobody_left(self):
		result = retry_matching(self.rider, self.ride.ride_id, exclude=[self.second.id])
		self.assertEqual(result.as_dict()['reason'], 'no_drivers_nearby')

	def test_reassign_to_new_driver(self):
		result = reassign_ride(self.rider, self.ride.ride_id, self.second.id)

		ride = result.ride
		self.assertEqual(ride.status, 'pending')
		self.assertEqual(ride.driver, self.second)
		self.assertEqual(ride.reassignment_count, 1)
		self.assertIsNotNone(ride.reassigned_at)
		self.assertIsNone(ride.declined_by)
		self.assertEqual(ride.previous_drivers, [self.first.id])

	def test_previous_driver_cannot_be_chosen_again(self):
		with self.assertRaises(DriverNotAvailableError):
			reassign_ride(self.rider, self.ride.ride_id, self.first.id)

	def test_exclusions_accumulate(self):
		reassign_ride(self.rider, self.ride.ride_id, self.second.id)

		with self.captureOnCommitCallbacks(execute=True):
			ride_lifecycle.decline_ride(self.second, self.ride.ride_id)

		self.ride.refresh_from_db()
		self.assertEqual(self.ride.status, 'needs_reassignment')
		self.assertEqual(self.ride.previous_drivers, [self.first.id, self.second.id])
		self.assertEqual(self.ride.last_failed_driver_id, self.second.id)
		self.assertTrue(retry_matching(self.rider, self.ride.ride_id).is_empty)

	def test_reassign_requires_waiting_ride(self):
		rider = make_rider('rider_two')
		ride = make_ride(rider)

		with self.assertRaises(RideNotAvailableError):
			reassign_ride(rider, ride.ride_id, self.second.id)

	def test_rider_may_cancel_instead(self):
		result = ride_lifecycle.cancel_ride_by_rider(self.rider, self.ride.ride_id)
		self.assertEqual(result.ride.status, 'cancelled')

	def test_replayed_update_is_ignored(self):
		self.assertFalse(handle_status_change(self.ride.ride_id, 'declined', 'pending'))

		self.ride.refresh_from_db()
		self.assertEqual(self.ride.previous_drivers, [self.first.id])


class StatusChangeHandlerTests(TestCase):
	def setUp(self):
		self.driver = make_driver('driver_one', 0, 0.001)
		self.ride = make_ride(make_rider(), driver=self.driver)

	def test_edge_triggered(self):
		apply_transition(Ride.objects.get(pk=self.ride.pk), Ride.STATUS_DECLINED)

		self.assertTrue(handle_status_change(self.ride.ride_id, 'declined', 'pending'))
		self.assertFalse(handle_status_change(self.ride.ride_id, 'declined', 'pending'))

		self.ride.refresh_from_db()
		self.assertEqual(self.ride.status, 'needs_reassignment')
		self.assertEqual(self.ride.previous_drivers, [self.driver.id])

	def test_other_updates_are_ignored(self):
		self.assertFalse(handle_status_change(self.ride.ride_id, 'accepted', 'pending'))
		self.assertFalse(handle_status_change(self.ride.ride_id, 'declined', 'declined'))


class SelectDriverAndRatingTests(TestCase):
	def setUp(self):
		self.rider = make_rider()
		self.driver = make_driver('driver_one', 0, 0.001)

	def test_select_driver_once(self):
		ride = make_ride(self.rider)

		result = ride_lifecycle.select_driver(self.rider, ride.ride_id, self.driver.id)
		self.assertEqual(result.ride.driver, self.driver)

		with self.assertRaises(RideNotAvailableError):
			ride_lifecycle.select_driver(self.rider, ride.ride_id, make_driver('driver_two', 0, 0).id)

	def test_rate_completed_ride_once(self):
		ride = make_ride(self.rider, driver=self.driver, status=Ride.STATUS_COMPLETED)

		ride_lifecycle.rate_ride(self.rider, ride.ride_id, 4, 'Smooth')
		profile = DriverProfile.objects.get(user=self.driver)
		self.assertEqual(profile.rating_count, 1)
		self.assertEqual(profile.average_rating, 4.0)

		with self.assertRaises(RideNotAvailableError):
			ride_lifecycle.rate_ride(self.rider, ride.ride_id, 5)

	def test_rating_range(self):
		ride = make_ride(self.rider, driver=self.driver, status=Ride.STATUS_COMPLETED)
		with self.assertRaises(RideValidationError):
			ride_lifecycle.rate_ride(self.rider, ride.ride_id, 6)


class RiderViewTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.rider = make_rider()
		self.driver = make_driver('driver_one', 0, 0.001)

	def _post(self, view, data, user=None, **kwargs):
		request = self.factory.post('/api/rider/', data, format='json')
		force_authenticate(request, user=user or self.rider)
		return view.as_view()(request, **kwargs)

	def _get(self, view, user=None):
		request = self.factory.get('/api/rider/')
		force_authenticate(request, user=user or self.rider)
		return view.as_view()(request)

	def test_create_with_location_objects(self):
		with stub_route():
			response = self._post(RiderCreateRideRequestView, {
				'pickupLocation': {'latitude': 0, 'longitude': 0, 'address': 'Depot'},
				'dropoff': {'latitude': 0.01, 'longitude': 0.01},
				'payment_method': 'cash',
			})

		self.assertEqual(response.status_code, 201)
		ride = response.data['ride']
		self.assertEqual(ride['status'], 'pending')
		self.assertEqual(ride['pickup'], {'latitude': 0.0, 'longitude': 0.0, 'address': 'Depot'})
		self.assertEqual(ride['dropoff']['latitude'], 0.01)
		self.assertEqual(ride['price'], '10.50')

	def test_create_with_flat_fields_and_driver(self):
		with stub_route():
			response = self._post(RiderCreateRideRequestView, {
				'pickup_latitude': 0,
				'pickup_longitude': 0,
				'dropoff_latitude': 0.01,
				'dropoff_longitude': 0.01,
				'transport_class': 'van',
				'payment_method': 'card',
				'driver_id': self.driver.id,
			})

		self.assertEqual(response.status_code, 201)
		self.assertEqual(response.data['ride']['driver']['driver_id'], self.driver.id)
		self.assertEqual(response.data['ride']['transport_class'], 'van')

	def test_create_without_dropoff(self):
		response = self._post(RiderCreateRideRequestView, {
			'pickup': {'latitude': 0, 'longitude': 0},
			'payment_method': 'cash',
		})
		self.assertEqual(response.status_code, 400)
		self.assertIn('dropoff', response.data)

	def test_create_without_payment(self):
		response = self._post(RiderCreateRideRequestView, {
			'pickup': {'latitude': 0, 'longitude': 0},
			'dropoff': {'latitude': 0.01, 'longitude': 0.01},
		})
		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.data['error'], 'validation_error')
		self.assertFalse(Ride.objects.exists())

	def test_driver_cannot_use_rider_endpoints(self):
		response = self._post(RiderCreateRideRequestView, {}, user=self.driver)
		self.assertEqual(response.status_code, 403)

	def test_quote(self):
		with stub_route(distance_meters=12345, duration_seconds=900):
			response = self._post(RiderQuoteView, {
				'pickup': {'latitude': 0, 'longitude': 0},
				'dropoff': {'latitude': 0.1, 'longitude': 0},
				'transport_class': 'bus',
			})

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['distance_km'], '12.35')
		self.assertEqual(response.data['price'], '11.38')
		self.assertEqual(response.data['estimated_minutes'], 15)

	def test_nearby_drivers(self):
		response = self._post(RiderNearbyDriversView, {'latitude': '0', 'longitude': '0'})

		self.assertEqual(response.data['count'], 1)
		self.assertEqual(response.data['drivers'][0]['driver_id'], self.driver.id)
		self.assertIsNone(response.data['reason'])

	def test_nearby_drivers_empty(self):
		response = self._post(RiderNearbyDriversView, {'latitude': '0', 'longitude': '0', 'exclude': [self.driver.id]})

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['reason'], 'no_drivers_nearby')

	def test_current_ride_and_cancel(self):
		self.assertFalse(self._get(RiderCurrentRideView).data['has_active_ride'])

		ride = make_ride(self.rider)
		current = self._get(RiderCurrentRideView)
		self.assertTrue(current.data['has_active_ride'])
		self.assertFalse(current.data['driver_assigned'])

		response = self._post(RiderCancelRideView, {'reason': 'Too slow'}, ride_id=ride.ride_id)
		self.assertEqual(response.status_code, 200)
		self.assertFalse(response.data['was_assigned'])

		again = self._post(RiderCancelRideView, {}, ride_id=ride.ride_id)
		self.assertEqual(again.status_code, 409)

	def test_retry_and_reassign_views(self):
		second = make_driver('driver_two', 0, 0.002)
		ride = make_ride(
			self.rider,
			status=Ride.STATUS_NEEDS_REASSIGNMENT,
			previous_drivers=[self.driver.id],
			last_failed_driver=self.driver,
		)

		retry = self._post(RiderRetryMatchingView, {}, ride_id=ride.ride_id)
		self.assertEqual([d['driver_id'] for d in retry.data['drivers']], [second.id])

		rejected = self._post(RiderReassignRideView, {'driver_id': self.driver.id}, ride_id=ride.ride_id)
		self.assertEqual(rejected.status_code, 409)
		self.assertEqual(rejected.data['error'], 'driver_not_available')

		accepted = self._post(RiderReassignRideView, {'driver_id': second.id}, ride_id=ride.ride_id)
		self.assertEqual(accepted.status_code, 200)
		self.assertEqual(accepted.data['ride']['status'], 'pending')
		self.assertEqual(accepted.data['ride']['reassignment_count'], 1)
