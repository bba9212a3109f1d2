from django.test import TestCase
from rest_framework.test import APIRequestFactory

from drivers.models import DriverProfile

from .models import User
from .views import LoginView, RefreshTokenView, RegisterView


class AccountTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()

	def _post(self, view, data):
		request = self.factory.post('/api/auth/', data, format='json')
		return view.as_view()(request)

	def test_register_rider(self):
		response = self._post(RegisterView, {
			'username': 'asha',
			'password': 'secret123',
			'role': 'rider',
			'phone_number': '9000000000',
		})

		self.assertEqual(response.status_code, 201)
		self.assertEqual(response.data['user']['role'], 'rider')
		self.assertIn('access', response.data['tokens'])

	def test_register_driver_creates_offline_profile(self):
		response = self._post(RegisterView, {
			'username': 'ravi',
			'password': 'secret123',
			'role': 'driver',
			'vehicle_number': 'KA-01-1234',
			'vehicle_model': 'Swift',
		})

		self.assertEqual(response.status_code, 201)
		profile = DriverProfile.objects.get(user__username='ravi')
		self.assertEqual(profile.status, 'offline')
		self.assertEqual(profile.vehicle_model, 'Swift')

	def test_driver_needs_vehicle(self):
		response = self._post(RegisterView, {
			'username': 'ravi',
			'password': 'secret123',
			'role': 'driver',
		})

		self.assertEqual(response.status_code, 400)
		self.assertIn('vehicle_number', response.data)
		self.assertFalse(User.objects.filter(username='ravi').exists())

	def test_unknown_role(self):
		response = self._post(RegisterView, {
			'username': 'sam',
			'password': 'secret123',
			'role': 'user',
		})
		self.assertEqual(response.status_code, 400)

	def test_login_and_refresh(self):
		User.objects.create_user(username='asha', password='secret123', role='rider')

		login = self._post(LoginView, {'username': 'asha', 'password': 'secret123'})
		self.assertEqual(login.status_code, 200)

		refreshed = self._post(RefreshTokenView, {'refresh': login.data['tokens']['refresh']})
		self.assertEqual(refreshed.status_code, 200)
		self.assertIn('access', refreshed.data)

	def test_bad_credentials(self):
		response = self._post(LoginView, {'username': 'nobody', 'password': 'wrong'})
		self.assertEqual(response.status_code, 400)

	def test_bad_refresh_token(self):
		response = self._post(RefreshTokenView, {'refresh': 'garbage'})
		self.assertEqual(response.status_code, 401)
