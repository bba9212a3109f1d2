from datetime import timedelta
from decimal import Decimal
from io import StringIO
from unittest.mock import patch

from django.core.management import call_command
from django.db import connection
from django.test import SimpleTestCase, TestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIRequestFactory, force_authenticate

from common.testing import make_driver, make_rider, make_ride, stub_route
from common.utils import Coordinate
from drivers.models import DriverProfile
from services.matching import find_nearby_rides_for_driver
from services.providers import RouteSummary
from services.reassignment import expire_pending_ride, retry_matching, sweep_stranded_rides
from services.ride_management import ride_lifecycle
from services.ride_management import state_machine as sm
from services.ride_management.exceptions import (
	ActiveRideExistsError,
	DriverNotAvailableError,
	InvalidTransitionError,
	RideNotAvailableError,
	RideNotFoundError,
	RideValidationError,
	RoleMismatchError,
)
from services.ride_management.store import apply_transition

from .models import ActiveRideMarker, FareSetting, Ride
from .views import accept_ride, complete_ride, decline_ride, get_ride_detail, start_ride


class StateMachineTests(SimpleTestCase):
	def test_legal_transitions(self):
		legal = [
			('pending', 'accepted'),
			('pending', 'declined'),
			('pending', 'cancelled'),
			('accepted', 'in_progress'),
			('accepted', 'cancelled_by_driver'),
			('accepted', 'cancelled'),
			('in_progress', 'completed'),
			('declined', 'needs_reassignment'),
			('cancelled_by_driver', 'needs_reassignment'),
			('needs_reassignment', 'pending'),
			('needs_reassignment', 'cancelled'),
		]
		for current, target in legal:
			with self.subTest(current=current, target=target):
				self.assertTrue(sm.can_transition(current, target))

	def test_illegal_transitions(self):
		for current, target in [
			('pending', 'completed'),
			('pending', 'in_progress'),
			('accepted', 'pending'),
			('declined', 'accepted'),
			('needs_reassignment', 'accepted'),
		]:
			with self.subTest(current=current, target=target):
				self.assertFalse(sm.can_transition(current, target))

	def test_terminal_states_have_no_exits(self):
		self.assertEqual(sm.TERMINAL_STATUSES, {'completed', 'cancelled'})
		for terminal in sm.TERMINAL_STATUSES:
			for target, _ in Ride.STATUS_CHOICES:
				self.assertFalse(sm.can_transition(terminal, target))

	def test_assert_transition_raises(self):
		with self.assertRaises(InvalidTransitionError):
			sm.assert_transition('completed', 'pending')

	def test_reassignment_sources(self):
		self.assertEqual(
			sm.sources_for('needs_reassignment'),
			{'declined', 'cancelled_by_driver'}
		)


class CreateRideRequestTests(TestCase):
	def setUp(self):
		self.rider = make_rider()
		self.driver = make_driver('driver_one', 0, 0.001)
		self.pickup = Coordinate(0, 0, 'Depot')
		self.dropoff = Coordinate(0.01, 0.01, 'Market')

	def test_creates_pending_ride_with_quote(self):
		with stub_route():
			result = ride_lifecycle.create_ride_request(
				self.rider, self.pickup, self.dropoff, 'taxi', 'cash'
			)

		ride = Ride.objects.get(ride_id=result.ride.ride_id)
		self.assertEqual(ride.status, 'pending')
		self.assertIsNone(ride.driver)
		self.assertEqual(ride.price, Decimal('10.50'))
		self.assertEqual(ride.distance_km, Decimal('5.00'))
		self.assertEqual(ride.estimated_minutes, 10)
		self.assertEqual(ride.pickup_address, 'Depot')
		self.assertEqual(ride.version, 0)
		self.assertEqual(ride.previous_drivers, [])

	def test_fare_setting_overrides_defaults(self):
		FareSetting.objects.create(transport_class='van', base_fare=Decimal('5.00'), price_per_km=Decimal('2.00'))
		with stub_route(distance_meters=2500):
			result = ride_lifecycle.create_ride_request(
				self.rider, self.pickup, self.dropoff, 'van', 'card'
			)

		self.assertEqual(result.ride.price, Decimal('10.00'))

	def test_client_ride_id_is_kept(self):
		with stub_route():
			result = ride_lifecycle.create_ride_request(
				self.rider, self.pickup, self.dropoff, 'taxi', 'cash', ride_id='client-ride-1'
			)
		self.assertEqual(result.ride.ride_id, 'client-ride-1')

	def test_missing_payment_is_rejected_before_any_write(self):
		with self.assertRaises(RideValidationError):
			ride_lifecycle.create_ride_request(self.rider, self.pickup, self.dropoff, 'taxi', '')
		self.assertFalse(Ride.objects.exists())

	def test_invalid_pickup_is_rejected(self):
		with self.assertRaises(RideValidationError):
			ride_lifecycle.create_ride_request(
				self.rider, {'latitude': 120, 'longitude': 0}, self.dropoff, 'taxi', 'cash'
			)

	def test_unfinished_ride_blocks_new_request(self):
		make_ride(self.rider, status=Ride.STATUS_NEEDS_REASSIGNMENT)

		with self.assertRaises(ActiveRideExistsError):
			ride_lifecycle.create_ride_request(self.rider, self.pickup, self.dropoff, 'taxi', 'cash')
		self.assertEqual(Ride.objects.count(), 1)

	def test_bound_to_chosen_driver(self):
		with stub_route():
			result = ride_lifecycle.create_ride_request(
				self.rider, self.pickup, self.dropoff, 'taxi', 'cash', driver_id=self.driver.id
			)

		self.assertEqual(result.ride.driver, self.driver)
		self.assertEqual(result.ride.status, 'pending')
		self.assertEqual(result.message, 'Waiting for the driver to accept.')

	def test_busy_driver_cannot_be_chosen(self):
		DriverProfile.objects.filter(user=self.driver).update(status='busy')

		with self.assertRaises(DriverNotAvailableError):
			ride_lifecycle.create_ride_request(
				self.rider, self.pickup, self.dropoff, 'taxi', 'cash', driver_id=self.driver.id
			)

	def test_drivers_cannot_request_rides(self):
		with self.assertRaises(RoleMismatchError):
			ride_lifecycle.create_ride_request(self.driver, self.pickup, self.dropoff, 'taxi', 'cash')

	@override_settings(RIDE_PENDING_TIMEOUT_SECONDS=300)
	@patch('rides.tasks.expire_pending_ride_task')
	def test_pending_expiry_is_scheduled_after_commit(self, mock_task):
		with stub_route(), self.captureOnCommitCallbacks(execute=True):
			result = ride_lifecycle.create_ride_request(
				self.rider, self.pickup, self.dropoff, 'taxi', 'cash'
			)

		mock_task.apply_async.assert_called_once_with((result.ride.ride_id, 0), countdown=300)

	def test_route_is_quoted_outside_the_transaction(self):
		depths = []

		def route(*args, **kwargs):
			depths.append(len(connection.atomic_blocks))
			return RouteSummary(5000, 600, 'poly')

		outside = len(connection.atomic_blocks)
		with patch('services.providers.RoutingClient.route', side_effect=route):
			ride_lifecycle.create_ride_request(self.rider, self.pickup, self.dropoff, 'taxi', 'cash')

		self.assertEqual(depths, [outside])

	@override_settings(RIDE_PENDING_TIMEOUT_SECONDS=300)
	@patch('rides.tasks.expire_pending_ride_task')
	def test_queue_outage_does_not_fail_creation(self, mock_task):
		mock_task.apply_async.side_effect = ConnectionError('broker down')

		with stub_route(), self.assertLogs('services.ride_management.ride_lifecycle', level='ERROR'):
			with self.captureOnCommitCallbacks(execute=True):
				result = ride_lifecycle.create_ride_request(
					self.rider, self.pickup, self.dropoff, 'taxi', 'cash'
				)

		self.assertEqual(Ride.objects.get(ride_id=result.ride.ride_id).status, 'pending')


class AcceptRideTests(TestCase):
	def setUp(self):
		self.rider = make_rider()
		self.driver_one = make_driver('driver_one', 0, 0.001)
		self.driver_two = make_driver('driver_two', 0, 0.002)
		self.ride = make_ride(self.rider)

	def test_accept_binds_driver_and_marks_busy(self):
		result = ride_lifecycle.accept_ride(self.driver_one, self.ride.ride_id)

		self.assertTrue(result.success)
		self.ride.refresh_from_db()
		self.assertEqual(self.ride.status, 'accepted')
		self.assertEqual(self.ride.driver, self.driver_one)
		self.assertIsNotNone(self.ride.accepted_at)
		self.assertEqual(self.ride.version, 1)
		self.assertTrue(ActiveRideMarker.objects.filter(driver=self.driver_one, ride=self.ride).exists())
		self.assertEqual(DriverProfile.objects.get(user=self.driver_one).status, 'busy')

	def test_second_accept_loses(self):
		ride_lifecycle.accept_ride(self.driver_one, self.ride.ride_id)

		with self.assertRaises(RideNotAvailableError):
			ride_lifecycle.accept_ride(self.driver_two, self.ride.ride_id)

		self.ride.refresh_from_db()
		self.assertEqual(self.ride.driver, self.driver_one)

	def test_stale_snapshot_write_is_rejected(self):
		first = Ride.objects.get(pk=self.ride.pk)
		second = Ride.objects.get(pk=self.ride.pk)

		apply_transition(first, Ride.STATUS_ACCEPTED, {'driver': self.driver_one})
		with self.assertRaises(RideNotAvailableError):
			apply_transition(second, Ride.STATUS_ACCEPTED, {'driver': self.driver_two})

		self.ride.refresh_from_db()
		self.assertEqual(self.ride.driver, self.driver_one)
		self.assertEqual(self.ride.version, 1)

	def test_ride_bound_to_other_driver(self):
		Ride.objects.filter(pk=self.ride.pk).update(driver=self.driver_two)

		with self.assertRaises(RideNotAvailableError):
			ride_lifecycle.accept_ride(self.driver_one, self.ride.ride_id)

	def test_excluded_driver_cannot_accept(self):
		Ride.objects.filter(pk=self.ride.pk).update(previous_drivers=[self.driver_one.id])

		with self.assertRaises(RideNotAvailableError):
			ride_lifecycle.accept_ride(self.driver_one, self.ride.ride_id)

	def test_offline_driver_cannot_accept(self):
		DriverProfile.objects.filter(user=self.driver_one).update(status='offline')

		with self.assertRaises(DriverNotAvailableError):
			ride_lifecycle.accept_ride(self.driver_one, self.ride.ride_id)

	def test_rider_cannot_accept(self):
		with self.assertRaises(RoleMismatchError):
			ride_lifecycle.accept_ride(self.rider, self.ride.ride_id)

	def test_unknown_ride(self):
		with self.assertRaises(RideNotFoundError):
			ride_lifecycle.accept_ride(self.driver_one, 'missing')

	def test_active_ride_marker_blocks_second_ride(self):
		ride_lifecycle.accept_ride(self.driver_one, self.ride.ride_id)
		other = make_ride(make_rider('rider_two'))
		DriverProfile.objects.filter(user=self.driver_one).update(status='available')

		with patch('services.ride_management.ride_lifecycle.get_current_driver_ride', return_value=None):
			with self.assertRaises(ActiveRideExistsError):
				ride_lifecycle.accept_ride(self.driver_one, other.ride_id)

		other.refresh_from_db()
		self.assertEqual(other.status, 'pending')
		self.assertIsNone(other.driver)


class TripTests(TestCase):
	def setUp(self):
		self.rider = make_rider()
		self.driver = make_driver('driver_one', 0, 0)
		self.ride = make_ride(self.rider)
		ride_lifecycle.accept_ride(self.driver, self.ride.ride_id)

	def test_start_then_complete(self):
		ride_lifecycle.start_ride(self.driver, self.ride.ride_id, 0, 0)
		result = ride_lifecycle.complete_ride(self.driver, self.ride.ride_id, 0.01, 0.01)

		ride = result.ride
		self.assertEqual(ride.status, 'completed')
		self.assertEqual(ride.trip_distance_km, Decimal('5.00'))
		self.assertEqual(ride.fare, Decimal('10.50'))
		self.assertEqual(result.extra['fare'], '10.50')

		profile = DriverProfile.objects.get(user=self.driver)
		self.assertEqual(profile.status, 'available')
		self.assertEqual(profile.completed_trips, 1)
		self.assertEqual(profile.total_earnings, Decimal('10.50'))
		self.assertFalse(ActiveRideMarker.objects.filter(driver=self.driver).exists())

	def test_longer_trip_is_billed_on_driven_distance(self):
		ride_lifecycle.start_ride(self.driver, self.ride.ride_id, 0, 0)
		result = ride_lifecycle.complete_ride(self.driver, self.ride.ride_id, 0.1, 0)

		self.assertEqual(result.ride.trip_distance_km, Decimal('11.12'))
		self.assertEqual(result.ride.fare, Decimal('19.68'))

	def test_fare_never_below_quote(self):
		Ride.objects.filter(pk=self.ride.pk).update(price=Decimal('25.00'))
		ride_lifecycle.start_ride(self.driver, self.ride.ride_id, 0, 0)

		result = ride_lifecycle.complete_ride(self.driver, self.ride.ride_id, 0.01, 0.01)
		self.assertEqual(result.ride.fare, Decimal('25.00'))

	def test_complete_requires_in_progress(self):
		with self.assertRaises(RideNotAvailableError):
			ride_lifecycle.complete_ride(self.driver, self.ride.ride_id, 0, 0)

	def test_only_bound_driver_can_start(self):
		stranger = make_driver('driver_two', 0, 0)
		with self.assertRaises(RideNotAvailableError):
			ride_lifecycle.start_ride(stranger, self.ride.ride_id, 0, 0)

	def test_start_requires_location(self):
		with self.assertRaises(RideValidationError):
			ride_lifecycle.start_ride(self.driver, self.ride.ride_id, None, 0)


class CancellationTests(TestCase):
	def setUp(self):
		self.rider = make_rider()
		self.driver = make_driver('driver_one', 0, 0.001)

	def test_rider_cancels_unbound_pending_ride(self):
		ride = make_ride(self.rider)

		result = ride_lifecycle.cancel_ride_by_rider(self.rider, ride.ride_id, 'Changed plans')

		self.assertEqual(result.ride.status, 'cancelled')
		self.assertEqual(result.ride.cancelled_by, 'user')
		self.assertFalse(result.extra['was_assigned'])
		self.assertEqual(find_nearby_rides_for_driver(self.driver, 0, 0.001), [])

	def test_rider_cancels_accepted_ride(self):
		ride = make_ride(self.rider)
		ride_lifecycle.accept_ride(self.driver, ride.ride_id)

		result = ride_lifecycle.cancel_ride_by_rider(self.rider, ride.ride_id)

		self.assertTrue(result.extra['was_assigned'])
		self.assertEqual(DriverProfile.objects.get(user=self.driver).status, 'available')
		self.assertFalse(ActiveRideMarker.objects.exists())

	def test_rider_cancels_ride_awaiting_reassignment(self):
		ride = make_ride(self.rider, status=Ride.STATUS_NEEDS_REASSIGNMENT)

		result = ride_lifecycle.cancel_ride_by_rider(self.rider, ride.ride_id)
		self.assertEqual(result.ride.status, 'cancelled')

	def test_completed_ride_stays_completed(self):
		ride = make_ride(self.rider, status=Ride.STATUS_COMPLETED)

		with self.assertRaises(RideNotAvailableError):
			ride_lifecycle.cancel_ride_by_rider(self.rider, ride.ride_id)

		ride.refresh_from_db()
		self.assertEqual(ride.status, 'completed')

	def test_other_rider_cannot_cancel(self):
		ride = make_ride(self.rider)

		with self.assertRaises(RideNotFoundError):
			ride_lifecycle.cancel_ride_by_rider(make_rider('rider_two'), ride.ride_id)

	@patch('realtime.notifications.notify_driver_event', side_effect=ConnectionError('layer down'))
	def test_notification_failure_does_not_fail_cancel(self, mock_notify):
		ride = make_ride(self.rider, driver=self.driver)

		with self.assertLogs('services.ride_management.ride_lifecycle', level='ERROR'):
			with self.captureOnCommitCallbacks(execute=True):
				result = ride_lifecycle.cancel_ride_by_rider(self.rider, ride.ride_id)

		self.assertEqual(result.ride.status, 'cancelled')
		mock_notify.assert_called_once()

	def test_driver_cancellation_reopens_ride(self):
		ride = make_ride(self.rider)
		ride_lifecycle.accept_ride(self.driver, ride.ride_id)

		with self.captureOnCommitCallbacks(execute=True):
			ride_lifecycle.cancel_ride_by_driver(self.driver, ride.ride_id, 'Flat tyre')

		ride.refresh_from_db()
		self.assertEqual(ride.status, 'needs_reassignment')
		self.assertIsNone(ride.driver)
		self.assertEqual(ride.previous_drivers, [self.driver.id])
		self.assertEqual(ride.last_failed_driver_id, self.driver.id)

		profile = DriverProfile.objects.get(user=self.driver)
		self.assertEqual(profile.status, 'available')
		self.assertEqual(profile.cancelled_trips, 1)


class DeclineRideTests(TestCase):
	def setUp(self):
		self.rider = make_rider()
		self.driver = make_driver('driver_one', 0, 0.001)
		self.ride = make_ride(self.rider, driver=self.driver)

	def test_decline_pending_ride_needs_reassignment(self):
		with self.captureOnCommitCallbacks(execute=True):
			result = ride_lifecycle.decline_ride(self.driver, self.ride.ride_id)

		self.assertEqual(result.ride.status, 'declined')
		self.ride.refresh_from_db()
		self.assertEqual(self.ride.status, 'needs_reassignment')
		self.assertEqual(self.ride.previous_drivers, [self.driver.id])
		self.assertIsNone(self.ride.driver)

	def test_decline_accepted_ride_becomes_driver_cancellation(self):
		ride_lifecycle.accept_ride(self.driver, self.ride.ride_id)

		with self.captureOnCommitCallbacks(execute=True):
			result = ride_lifecycle.decline_ride(self.driver, self.ride.ride_id)

		self.assertEqual(result.ride.status, 'cancelled_by_driver')
		self.ride.refresh_from_db()
		self.assertEqual(self.ride.status, 'needs_reassignment')
		self.assertIn(self.driver.id, self.ride.previous_drivers)

	def test_cannot_decline_ride_of_other_driver(self):
		with self.assertRaises(RideNotAvailableError):
			ride_lifecycle.decline_ride(make_driver('driver_two'), self.ride.ride_id)

	@patch('rides.tasks.handle_ride_status_change_task.delay', side_effect=ConnectionError('broker down'))
	def test_decline_survives_queue_outage(self, mock_delay):
		with self.assertLogs('services.ride_management.store', level='ERROR'):
			with self.captureOnCommitCallbacks(execute=True):
				result = ride_lifecycle.decline_ride(self.driver, self.ride.ride_id)

		self.assertTrue(result.success)
		mock_delay.assert_called_once()
		self.ride.refresh_from_db()
		self.assertEqual(self.ride.status, 'declined')

		with self.captureOnCommitCallbacks(execute=True):
			self.assertEqual(sweep_stranded_rides(grace_seconds=0), 1)

		self.ride.refresh_from_db()
		self.assertEqual(self.ride.status, 'needs_reassignment')
		self.assertEqual(self.ride.previous_drivers, [self.driver.id])
		self.assertEqual(sweep_stranded_rides(grace_seconds=0), 0)

	@patch('rides.tasks.handle_ride_status_change_task.delay', side_effect=ConnectionError('broker down'))
	def test_rider_retry_recovers_declined_ride(self, mock_delay):
		with self.assertLogs('services.ride_management.store', level='ERROR'):
			with self.captureOnCommitCallbacks(execute=True):
				ride_lifecycle.decline_ride(self.driver, self.ride.ride_id)

		result = retry_matching(self.rider, self.ride.ride_id)

		self.assertNotIn(self.driver.id, [entry.driver_id for entry in result.drivers])
		self.ride.refresh_from_db()
		self.assertEqual(self.ride.status, 'needs_reassignment')
		self.assertEqual(self.ride.last_failed_driver_id, self.driver.id)

	def test_recent_dropout_is_left_to_the_queue(self):
		Ride.objects.filter(pk=self.ride.pk).update(status='declined', declined_by=self.driver)

		self.assertEqual(sweep_stranded_rides(grace_seconds=60), 0)
		self.ride.refresh_from_db()
		self.assertEqual(self.ride.status, 'declined')


class RideViewTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.rider = make_rider()
		self.driver_one = make_driver('driver_one', 0, 0.001)
		self.driver_two = make_driver('driver_two', 0, 0.002)
		self.ride = make_ride(self.rider)

	def _post(self, view, user, data=None):
		request = self.factory.post('/api/rides/handle/%s/' % self.ride.ride_id, data or {}, format='json')
		force_authenticate(request, user=user)
		return view(request, ride_id=self.ride.ride_id)

	def test_accept_race_returns_conflict_for_loser(self):
		first = self._post(accept_ride, self.driver_one)
		second = self._post(accept_ride, self.driver_two)

		self.assertEqual(first.status_code, 200)
		self.assertEqual(first.data['ride']['status'], 'accepted')
		self.assertEqual(first.data['ride']['driver']['driver_id'], self.driver_one.id)
		self.assertEqual(second.status_code, 409)
		self.assertEqual(second.data['error'], 'ride_not_available')
		self.assertFalse(second.data['success'])

	def test_rider_cannot_accept(self):
		response = self._post(accept_ride, self.rider)
		self.assertEqual(response.status_code, 403)
		self.assertEqual(response.data['error'], 'role_mismatch')

	def test_trip_through_views(self):
		self._post(accept_ride, self.driver_one)
		started = self._post(start_ride, self.driver_one, {'latitude': '0', 'longitude': '0.001'})
		completed = self._post(complete_ride, self.driver_one, {'latitude': '0.01', 'longitude': '0.01'})

		self.assertEqual(started.data['ride']['status'], 'in_progress')
		self.assertEqual(completed.status_code, 200)
		self.assertEqual(completed.data['ride']['status'], 'completed')
		self.assertEqual(completed.data['fare'], '10.50')

	def test_start_requires_location(self):
		self._post(accept_ride, self.driver_one)
		response = self._post(start_ride, self.driver_one, {})
		self.assertEqual(response.status_code, 400)

	def test_decline_unbound_ride_conflicts(self):
		response = self._post(decline_ride, self.driver_one)
		self.assertEqual(response.status_code, 409)

	def test_detail_visible_to_parties_only(self):
		request = self.factory.get('/api/rides/%s/' % self.ride.ride_id)
		force_authenticate(request, user=self.rider)
		response = get_ride_detail(request, ride_id=self.ride.ride_id)
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['pickup'], {'latitude': 0.0, 'longitude': 0.0, 'address': ''})

		request = self.factory.get('/api/rides/%s/' % self.ride.ride_id)
		force_authenticate(request, user=self.driver_two)
		response = get_ride_detail(request, ride_id=self.ride.ride_id)
		self.assertEqual(response.status_code, 404)


class PendingExpiryTests(TestCase):
	def setUp(self):
		self.rider = make_rider()
		self.driver = make_driver('driver_one', 0, 0.001)

	def _age(self, ride, seconds):
		Ride.objects.filter(pk=ride.pk).update(created_at=timezone.now() - timedelta(seconds=seconds))

	def test_unbound_ride_is_cancelled_by_system(self):
		ride = make_ride(self.rider)
		self._age(ride, 600)

		self.assertTrue(expire_pending_ride(ride.ride_id, timeout_seconds=300))

		ride.refresh_from_db()
		self.assertEqual(ride.status, 'cancelled')
		self.assertEqual(ride.cancelled_by, 'system')

	def test_bound_ride_is_declined_and_reassigned(self):
		ride = make_ride(self.rider, driver=self.driver)
		self._age(ride, 600)

		with self.captureOnCommitCallbacks(execute=True):
			self.assertTrue(expire_pending_ride(ride.ride_id, timeout_seconds=300))

		ride.refresh_from_db()
		self.assertEqual(ride.status, 'needs_reassignment')
		self.assertEqual(ride.previous_drivers, [self.driver.id])

	def test_fresh_ride_is_left_alone(self):
		ride = make_ride(self.rider)
		self.assertFalse(expire_pending_ride(ride.ride_id, timeout_seconds=300))

	def test_expiry_pinned_to_version(self):
		ride = make_ride(self.rider)
		self._age(ride, 600)

		self.assertFalse(expire_pending_ride(ride.ride_id, version=3, timeout_seconds=300))
		ride.refresh_from_db()
		self.assertEqual(ride.status, 'pending')

	def test_accepted_ride_is_not_expired(self):
		ride = make_ride(self.rider)
		ride_lifecycle.accept_ride(self.driver, ride.ride_id)
		self._age(ride, 600)

		self.assertFalse(expire_pending_ride(ride.ride_id, timeout_seconds=300))

	def test_command_sweeps_stale_rides(self):
		bound = make_ride(self.rider, driver=self.driver)
		unbound = make_ride(make_rider('rider_two'))
		fresh = make_ride(make_rider('rider_three'))
		self._age(bound, 600)
		self._age(unbound, 600)

		out = StringIO()
		call_command('expire_pending_rides', timeout=60, stdout=out)

		self.assertIn('Declined 1', out.getvalue())
		self.assertIn('cancelled 1', out.getvalue())
		bound.refresh_from_db()
		unbound.refresh_from_db()
		fresh.refresh_from_db()
		self.assertEqual(bound.status, 'declined')
		self.assertEqual(unbound.status, 'cancelled')
		self.assertEqual(fresh.status, 'pending')

	def test_command_flags_stranded_dropouts(self):
		ride = make_ride(self.rider, driver=self.driver)
		Ride.objects.filter(pk=ride.pk).update(
			status='declined',
			declined_by=self.driver,
			updated_at=timezone.now() - timedelta(minutes=5),
		)

		out = StringIO()
		with self.captureOnCommitCallbacks(execute=True):
			call_command('expire_pending_rides', grace=60, stdout=out)

		self.assertIn('Flagged 1', out.getvalue())
		ride.refresh_from_db()
		self.assertEqual(ride.status, 'needs_reassignment')
		self.assertIsNone(ride.driver)
		self.assertEqual(ride.previous_drivers, [self.driver.id])
