import asyncio

from asgiref.sync import async_to_sync
from channels.layers import InMemoryChannelLayer, get_channel_layer
from channels.testing import WebsocketCommunicator
from django.contrib.auth.models import AnonymousUser
from django.test import SimpleTestCase, TestCase, TransactionTestCase

from accounts.models import User
from common.testing import make_driver, make_rider, make_ride

from .consumers import DriverConsumer
from .debounce import Debouncer
from .middleware import _token_from_scope
from .notifications import (
	RIDE_FEED_GROUP,
	build_notification,
	notify_driver_event,
	notify_rider_event,
	publish_ride_update,
	ride_group,
	user_group,
	driver_group,
)
from .subscriptions import watch_nearby_rides, watch_ride


class DebouncerTests(SimpleTestCase):
	async def test_burst_runs_callback_once(self):
		calls = []

		async def refresh():
			calls.append(1)

		debouncer = Debouncer(0.05, refresh)
		for _ in range(5):
			debouncer.trigger()
		self.assertTrue(debouncer.pending)

		await asyncio.sleep(0.2)
		self.assertEqual(len(calls), 1)
		self.assertFalse(debouncer.pending)

	async def test_separate_windows_run_separately(self):
		calls = []

		async def refresh():
			calls.append(1)

		debouncer = Debouncer(0.05, refresh)
		debouncer.trigger()
		await asyncio.sleep(0.2)
		debouncer.trigger()
		await asyncio.sleep(0.2)

		self.assertEqual(len(calls), 2)

	async def test_steady_stream_still_refreshes(self):
		calls = []

		async def refresh():
			calls.append(1)

		debouncer = Debouncer(0.2, refresh)
		for _ in range(20):
			debouncer.trigger()
			await asyncio.sleep(0.1)
		await asyncio.sleep(0.3)
		debouncer.cancel()

		self.assertGreaterEqual(len(calls), 5)
		self.assertLessEqual(len(calls), 11)

	async def test_cancel_drops_pending_run(self):
		calls = []

		async def refresh():
			calls.append(1)

		debouncer = Debouncer(0.05, refresh)
		debouncer.trigger()
		debouncer.cancel()
		await asyncio.sleep(0.2)

		self.assertEqual(calls, [])
		self.assertFalse(debouncer.pending)

	async def test_failing_callback_does_not_break_later_runs(self):
		calls = []

		async def refresh():
			calls.append(1)
			raise RuntimeError('feed query failed')

		debouncer = Debouncer(0.05, refresh)
		with self.assertLogs('realtime.debounce', level='ERROR'):
			debouncer.trigger()
			await asyncio.sleep(0.2)

		debouncer.trigger()
		await asyncio.sleep(0.2)
		self.assertEqual(len(calls), 2)


class SubscriptionTests(SimpleTestCase):
	async def test_watch_ride_until_closed(self):
		layer = InMemoryChannelLayer()
		channel = await layer.new_channel()

		subscription = await watch_ride(layer, channel, 'abc')
		self.assertEqual(subscription.key, 'ride:abc')

		await layer.group_send(ride_group('abc'), {'type': 'ride_status_changed', 'status': 'accepted'})
		message = await asyncio.wait_for(layer.receive(channel), 1)
		self.assertEqual(message['status'], 'accepted')

		await subscription.close()
		self.assertFalse(subscription.active)
		await layer.group_send(ride_group('abc'), {'type': 'ride_status_changed', 'status': 'in_progress'})
		with self.assertRaises(asyncio.TimeoutError):
			await asyncio.wait_for(layer.receive(channel), 0.1)

	async def test_context_manager_closes(self):
		layer = InMemoryChannelLayer()
		channel = await layer.new_channel()

		async with await watch_ride(layer, channel, 'xyz') as subscription:
			self.assertTrue(subscription.active)
		self.assertFalse(subscription.active)

	async def test_nearby_feed_is_debounced(self):
		layer = InMemoryChannelLayer()
		channel = await layer.new_channel()
		refreshes = []

		async def refresh():
			refreshes.append(1)

		feed = await watch_nearby_rides(layer, channel, refresh, delay=0.05)
		self.assertEqual(feed.groups, (RIDE_FEED_GROUP,))

		for _ in range(3):
			feed.request_refresh()
		await asyncio.sleep(0.2)
		self.assertEqual(len(refreshes), 1)

		feed.request_refresh()
		await feed.close()
		feed.request_refresh()
		await asyncio.sleep(0.2)
		self.assertEqual(len(refreshes), 1)


class NotificationTests(TestCase):
	def setUp(self):
		self.layer = get_channel_layer()
		self.channel = async_to_sync(self.layer.new_channel)()
		self.rider = make_rider()
		self.driver = make_driver('driver_one', 0, 0.001)
		self.ride = make_ride(self.rider, driver=self.driver)

	def _join(self, group):
		async_to_sync(self.layer.group_add)(group, self.channel)

	def _receive(self):
		return async_to_sync(self.layer.receive)(self.channel)

	def test_build_notification(self):
		self.assertEqual(build_notification('ride_accepted', self.ride, 'On the way'), {
			'title': 'Ride accepted',
			'body': 'On the way',
			'rideId': self.ride.ride_id,
			'status': 'pending',
		})
		self.assertEqual(build_notification('unknown', self.ride)['title'], 'Ride update')

	def test_rider_event_payload(self):
		self._join(user_group(self.rider.id))

		notify_rider_event(
			'reassignment_needed', self.ride, 'Driver unavailable', extra={'options': ['retry', 'cancel']}
		)

		message = self._receive()
		self.assertEqual(message['type'], 'reassignment_needed')
		self.assertEqual(message['ride_id'], self.ride.ride_id)
		self.assertEqual(message['options'], ['retry', 'cancel'])
		self.assertEqual(message['notification']['rideId'], self.ride.ride_id)
		self.assertEqual(message['ride_data']['driver']['driver_id'], self.driver.id)

	def test_driver_event_requires_driver(self):
		self.assertFalse(notify_driver_event('ride_requested', self.ride, None))

		self._join(driver_group(self.driver.id))
		self.assertTrue(notify_driver_event('ride_requested', self.ride, self.driver.id, 'New request'))
		self.assertEqual(self._receive()['message'], 'New request')

	def test_status_update_reaches_watchers_and_feed(self):
		self._join(ride_group(self.ride.ride_id))
		self._join(RIDE_FEED_GROUP)

		publish_ride_update(self.ride.ride_id, 'accepted', 'pending', 1)

		types = {self._receive()['type'], self._receive()['type']}
		self.assertEqual(types, {'ride_status_changed', 'ride_feed_changed'})


class MiddlewareTests(SimpleTestCase):
	def test_token_from_query_string(self):
		self.assertEqual(_token_from_scope({'query_string': b'token=abc.def'}), 'abc.def')

	def test_token_from_header(self):
		scope = {'query_string': b'', 'headers': [(b'authorization', b'Bearer xyz')]}
		self.assertEqual(_token_from_scope(scope), 'xyz')

	def test_no_token(self):
		self.assertIsNone(_token_from_scope({'headers': [(b'cookie', b'sessionid=1')]}))


class ConsumerConnectionTests(TransactionTestCase):
	async def test_anonymous_connection_is_refused(self):
		communicator = WebsocketCommunicator(DriverConsumer.as_asgi(), '/ws/driver/')
		communicator.scope['user'] = AnonymousUser()

		connected, _ = await communicator.connect()
		self.assertFalse(connected)

	async def test_riders_cannot_use_driver_socket(self):
		communicator = WebsocketCommunicator(DriverConsumer.as_asgi(), '/ws/driver/')
		communicator.scope['user'] = User(id=42, username='rider', role='rider')

		connected, _ = await communicator.connect()
		self.assertTrue(connected)

		message = await communicator.receive_json_from()
		self.assertEqual(message['type'], 'error')
		await communicator.disconnect()
