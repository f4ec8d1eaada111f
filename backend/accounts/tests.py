from django.test import TestCase
from rest_framework.test import APIRequestFactory

from drivers.models import Driver
from notifications.models import Notification

from .models import User
from .views import LoginView


class LoginTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()

	def test_driver_login_returns_tokens_and_driver(self):
		user = User.objects.create_user(username='driver', password='driver1234', role='driver')
		driver = Driver.objects.create(user=user, name='Ana')

		request = self.factory.post('/api/auth/login/', {'username': 'driver', 'password': 'driver1234'}, format='json')
		response = LoginView.as_view()(request)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['driver_id'], driver.id)
		self.assertIn('access', response.data['tokens'])
		self.assertTrue(Notification.objects.filter(type='driver_login').exists())

	def test_dispatcher_login_has_no_driver(self):
		User.objects.create_user(username='dispatch', password='dispatch1234', role='dispatcher')

		request = self.factory.post('/api/auth/login/', {'username': 'dispatch', 'password': 'dispatch1234'}, format='json')
		response = LoginView.as_view()(request)

		self.assertEqual(response.status_code, 200)
		self.assertIsNone(response.data['driver_id'])
		self.assertFalse(Notification.objects.exists())

	def test_bad_credentials(self):
		User.objects.create_user(username='driver', password='driver1234', role='driver')

		request = self.factory.post('/api/auth/login/', {'username': 'driver', 'password': 'nope'}, format='json')
		response = LoginView.as_view()(request)

		self.assertEqual(response.status_code, 400)
