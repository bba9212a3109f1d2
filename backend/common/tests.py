from decimal import Decimal
from math import pi

from django.test import SimpleTestCase
from rest_framework.test import APIRequestFactory

from services.ride_management.exceptions import RideNotAvailableError, RideValidationError

from .exceptions import ride_exception_handler
from .utils import Coordinate, calculate_distance, coerce_coordinate, filter_within_radius


ONE_DEGREE_METERS = 6371000 * pi / 180


class HaversineTests(SimpleTestCase):
	def test_identical_points_are_zero_apart(self):
		self.assertEqual(calculate_distance(12.5, 77.1, 12.5, 77.1), 0)

	def test_one_degree_of_latitude(self):
		self.assertAlmostEqual(calculate_distance(0, 0, 1, 0), ONE_DEGREE_METERS, delta=0.01)

	def test_accepts_decimals(self):
		distance = calculate_distance(Decimal('0'), Decimal('0'), Decimal('0'), Decimal('0.001'))
		self.assertAlmostEqual(distance, ONE_DEGREE_METERS / 1000, delta=0.01)

	def test_symmetric(self):
		self.assertAlmostEqual(
			calculate_distance(28.6139, 77.2090, 28.6129, 77.2295),
			calculate_distance(28.6129, 77.2295, 28.6139, 77.2090)
		)


class CoerceCoordinateTests(SimpleTestCase):
	def test_mapping_with_address(self):
		point = coerce_coordinate({'latitude': '28.5', 'longitude': 77, 'address': 'Gate 2'})
		self.assertEqual(point, Coordinate(28.5, 77.0, 'Gate 2'))

	def test_object_attributes(self):
		class Fix:
			latitude = Decimal('1.25')
			longitude = Decimal('-3.5')

		self.assertEqual(coerce_coordinate(Fix()), Coordinate(1.25, -3.5))

	def test_coordinate_passes_through(self):
		point = Coordinate(1, 2)
		self.assertIs(coerce_coordinate(point), point)

	def test_rejects_invalid_values(self):
		for value in (
			None,
			{},
			{'latitude': 10},
			{'latitude': None, 'longitude': 1},
			{'latitude': 'north', 'longitude': 1},
			{'latitude': 91, 'longitude': 0},
			{'latitude': 0, 'longitude': -180.5},
			{'latitude': float('nan'), 'longitude': 0},
			{'latitude': 0, 'longitude': float('inf')},
		):
			with self.subTest(value=value):
				self.assertIsNone(coerce_coordinate(value))


class FilterWithinRadiusTests(SimpleTestCase):
	origin = Coordinate(0, 0)

	def test_near_driver_kept_far_driver_dropped(self):
		near = {'id': 'near', 'latitude': 0, 'longitude': 0.001}
		far = {'id': 'far', 'latitude': 0, 'longitude': 0.2}

		matches = filter_within_radius(self.origin, [far, near], 10000)

		self.assertEqual([item['id'] for item, _ in matches], ['near'])
		self.assertAlmostEqual(matches[0][1], 111.19, delta=0.01)

	def test_boundary_is_inclusive(self):
		point = {'latitude': 0, 'longitude': 0.001}
		edge = calculate_distance(0, 0, 0, 0.001)

		self.assertEqual(len(filter_within_radius(self.origin, [point], edge)), 1)
		self.assertEqual(filter_within_radius(self.origin, [point], edge - 0.001), [])

	def test_same_point_is_included_at_zero(self):
		matches = filter_within_radius(self.origin, [{'latitude': 0, 'longitude': 0}], 0)
		self.assertEqual(matches[0][1], 0)

	def test_sorted_closest_first(self):
		points = [
			{'id': 3, 'latitude': 0.03, 'longitude': 0},
			{'id': 1, 'latitude': 0.01, 'longitude': 0},
			{'id': 2, 'latitude': 0.02, 'longitude': 0},
		]
		matches = filter_within_radius(self.origin, points, 50000)
		self.assertEqual([item['id'] for item, _ in matches], [1, 2, 3])

	def test_invalid_locations_are_skipped(self):
		points = [
			{'id': 'missing', 'latitude': None, 'longitude': None},
			{'id': 'broken', 'latitude': 'x', 'longitude': 0},
			{'id': 'ok', 'latitude': 0, 'longitude': 0.001},
		]
		matches = filter_within_radius(self.origin, points, 1000)
		self.assertEqual([item['id'] for item, _ in matches], ['ok'])

	def test_location_extractor(self):
		class Profile:
			def __init__(self, lat, lon):
				self.current_latitude = lat
				self.current_longitude = lon

		profile = Profile(Decimal('0.000500'), Decimal('0'))
		matches = filter_within_radius(
			self.origin,
			[profile],
			100,
			location=lambda p: {'latitude': p.current_latitude, 'longitude': p.current_longitude}
		)
		self.assertIs(matches[0][0], profile)


class ExceptionHandlerTests(SimpleTestCase):
	def setUp(self):
		self.context = {'view': None, 'request': APIRequestFactory().get('/')}

	def test_service_error_shape(self):
		response = ride_exception_handler(RideNotAvailableError(), self.context)

		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data, {
			'success': False,
			'error': 'ride_not_available',
			'message': 'This ride is no longer available.',
		})

	def test_custom_message(self):
		response = ride_exception_handler(RideValidationError('Pick a payment method.'), self.context)

		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.data['message'], 'Pick a payment method.')

	def test_other_exceptions_fall_through(self):
		self.assertIsNone(ride_exception_handler(ValueError('boom'), self.context))
