from decimal import Decimal
from unittest.mock import Mock, patch

import requests
from django.test import SimpleTestCase, TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from common.testing import make_rider
from common.utils import Coordinate
from rides.models import FareSetting
from riders.views.rides import RiderGeocodeView

from .pricing import calculate_price, final_fare, quote_trip
from .providers import GeocodeResult, GeocodingClient, RouteSummary, RoutingClient
from .ride_management.exceptions import ProviderUnavailableError, RideValidationError


def _response(payload):
	response = Mock()
	response.json.return_value = payload
	return response


class RoutingClientTests(SimpleTestCase):
	def test_parses_first_route(self):
		session = Mock()
		session.post.return_value = _response({
			'routes': [{'summary': {'distance': 4200.5, 'duration': 630}, 'geometry': 'abc'}]
		})
		client = RoutingClient(api_url='http://routing.test', api_key='k', session=session)

		route = client.route(Coordinate(1, 2), Coordinate(3, 4))

		self.assertEqual(route, RouteSummary(4200.5, 630.0, 'abc'))
		self.assertEqual(route.duration_minutes, 10)
		body = session.post.call_args.kwargs['json']
		self.assertEqual(body['coordinates'], [[2, 1], [4, 3]])

	def test_connection_error(self):
		session = Mock()
		session.post.side_effect = requests.ConnectionError('down')
		client = RoutingClient(api_url='http://routing.test', api_key='k', session=session)

		with self.assertRaises(ProviderUnavailableError):
			client.route(Coordinate(1, 2), Coordinate(3, 4))

	def test_no_route(self):
		session = Mock()
		session.post.return_value = _response({'routes': []})
		client = RoutingClient(api_url='http://routing.test', api_key='k', session=session)

		with self.assertRaises(ProviderUnavailableError):
			client.route(Coordinate(1, 2), Coordinate(3, 4))


class GeocodingClientTests(SimpleTestCase):
	def test_skips_results_without_geometry(self):
		session = Mock()
		session.get.return_value = _response({'results': [
			{'formatted': 'MG Road, Bengaluru', 'geometry': {'lat': 12.97, 'lng': 77.6}},
			{'formatted': 'Somewhere'},
		]})
		client = GeocodingClient(api_url='http://geo.test', api_key='k', session=session)

		results = client.geocode('mg road', limit=2)

		self.assertEqual(results, [GeocodeResult('MG Road, Bengaluru', 12.97, 77.6)])
		self.assertEqual(session.get.call_args.kwargs['params']['limit'], 2)

	def test_bad_payload(self):
		session = Mock()
		session.get.return_value.json.side_effect = ValueError('not json')
		client = GeocodingClient(api_url='http://geo.test', api_key='k', session=session)

		with self.assertRaises(ProviderUnavailableError):
			client.geocode('mg road')


class PricingTests(TestCase):
	def test_default_rates(self):
		self.assertEqual(calculate_price('taxi', Decimal('5.00')), Decimal('10.50'))
		self.assertEqual(calculate_price('bus', 10), Decimal('9.50'))

	def test_fare_setting_wins(self):
		FareSetting.objects.create(transport_class='taxi', base_fare=Decimal('2.00'), price_per_km=Decimal('1.00'))
		self.assertEqual(calculate_price('taxi', 3), Decimal('5.00'))

	def test_unknown_class(self):
		with self.assertRaises(RideValidationError):
			calculate_price('rickshaw', 1)

	def test_final_fare_floor(self):
		self.assertEqual(final_fare('taxi', Decimal('1.00'), Decimal('10.50')), Decimal('10.50'))
		self.assertEqual(final_fare('taxi', Decimal('10.00'), Decimal('10.50')), Decimal('18.00'))

	def test_quote_uses_routing_client(self):
		routing = Mock()
		routing.route.return_value = RouteSummary(7340, 1260, 'line')

		quote = quote_trip(Coordinate(0, 0), Coordinate(0.05, 0.05), 'van', routing_client=routing)

		self.assertEqual(quote.distance_km, Decimal('7.34'))
		self.assertEqual(quote.price, Decimal('12.81'))
		self.assertEqual(quote.estimated_minutes, 21)
		self.assertEqual(quote.polyline, 'line')


class GeocodeViewTests(TestCase):
	@patch('riders.views.rides.get_geocoding_client')
	def test_geocode(self, mock_client):
		mock_client.return_value.geocode.return_value = [GeocodeResult('Depot', 1.0, 2.0)]
		request = APIRequestFactory().get('/api/rider/geocode/', {'q': 'depot'})
		force_authenticate(request, user=make_rider())

		response = RiderGeocodeView.as_view()(request)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['results'], [{'address': 'Depot', 'latitude': 1.0, 'longitude': 2.0}])
		mock_client.return_value.geocode.assert_called_once_with('depot', limit=5)

	@patch('riders.views.rides.get_geocoding_client')
	def test_provider_down(self, mock_client):
		mock_client.return_value.geocode.side_effect = ProviderUnavailableError()
		request = APIRequestFactory().get('/api/rider/geocode/', {'q': 'depot'})
		force_authenticate(request, user=make_rider())

		response = RiderGeocodeView.as_view()(request)

		self.assertEqual(response.status_code, 503)
		self.assertEqual(response.data['error'], 'provider_unavailable')
