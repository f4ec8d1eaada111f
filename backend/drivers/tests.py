from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.db import DatabaseError
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User
from courses.models import Course
from notifications.models import Notification
from services.dispatch import reminders

from .models import Driver, DriverLocation
from .services import record_driver_location
from .views import DriverLocationUpdateView, DriverSosView, DriverStatusView


class DriverApiTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.user = User.objects.create_user(username='driver', password='driver1234', role='driver')
		self.driver = Driver.objects.create(user=self.user, name='Karim', is_approved=True)

	def test_status_toggle_and_token(self):
		request = self.factory.put('/api/driver/status/', {'status': 'active', 'fcm_token': 'abc'}, format='json')
		force_authenticate(request, user=self.user)
		response = DriverStatusView.as_view()(request)

		self.assertEqual(response.status_code, 200)
		self.driver.refresh_from_db()
		self.assertEqual(self.driver.status, 'active')
		self.assertEqual(self.driver.fcm_token, 'abc')
		self.assertIn(self.driver, Driver.objects.reachable())

	def test_status_rejects_unknown_value(self):
		request = self.factory.put('/api/driver/status/', {'status': 'busy'}, format='json')
		force_authenticate(request, user=self.user)
		response = DriverStatusView.as_view()(request)

		self.assertEqual(response.status_code, 400)

	def test_location_upsert_keeps_single_row(self):
		for lat in ('48.856600', '48.857000'):
			request = self.factory.post('/api/driver/location/', {
				'latitude': lat,
				'longitude': '2.352200',
				'heading': 90,
				'speed': 12.5,
				'accuracy': 5,
			}, format='json')
			force_authenticate(request, user=self.user)
			response = DriverLocationUpdateView.as_view()(request)
			self.assertEqual(response.status_code, 200)

		self.assertEqual(DriverLocation.objects.filter(driver=self.driver).count(), 1)
		location = DriverLocation.objects.get(driver=self.driver)
		self.assertEqual(location.latitude, Decimal('48.857000'))
		self.assertEqual(location.heading, 90)

	def test_location_rejects_non_driver(self):
		dispatcher = User.objects.create_user(username='dispatch', password='x', role='dispatcher')
		request = self.factory.post('/api/driver/location/', {'latitude': 1, 'longitude': 1}, format='json')
		force_authenticate(request, user=dispatcher)
		response = DriverLocationUpdateView.as_view()(request)

		self.assertEqual(response.status_code, 403)

	@patch('services.dispatch.check_late_pickup_alerts', side_effect=RuntimeError('boom'))
	def test_late_check_failure_does_not_fail_update(self, mock_check):
		location = record_driver_location(self.driver, 48.8566, 2.3522)

		self.assertIsNotNone(location.pk)
		mock_check.assert_called_once()

	def test_sos_creates_critical_broadcast(self):
		DriverLocation.objects.create(driver=self.driver, latitude=48.85, longitude=2.35)

		request = self.factory.post('/api/driver/sos/', {}, format='json')
		force_authenticate(request, user=self.user)
		response = DriverSosView.as_view()(request)

		self.assertEqual(response.status_code, 201)
		alert = Notification.objects.get(type='sos_alert')
		self.assertIsNone(alert.driver)
		self.assertEqual(alert.data['urgency'], 'critical')
		self.assertEqual(alert.data['driver_id'], self.driver.id)
		self.assertAlmostEqual(alert.data['latitude'], 48.85)


class LatePickupAlertTests(TestCase):
	def setUp(self):
		self.user = User.objects.create_user(username='late', password='x', role='driver')
		self.driver = Driver.objects.create(user=self.user, name='Late Driver', status='active')

	def _course(self, status, minutes_until_pickup):
		return Course.objects.create(
			client_name='Client',
			departure_location='A',
			destination_location='B',
			pickup_date=timezone.now() + timedelta(minutes=minutes_until_pickup),
			status=status,
			driver=self.driver,
		)

	def test_accepted_course_close_to_pickup_alerts_once(self):
		course = self._course('accepted', 8)

		record_driver_location(self.driver, 48.85, 2.35)
		record_driver_location(self.driver, 48.86, 2.36)

		alerts = Notification.objects.filter(course=course, type='late_alert')
		self.assertEqual(alerts.count(), 1)
		self.assertIsNone(alerts[0].driver)
		self.assertEqual(alerts[0].data['status'], 'accepted')

	def test_accepted_course_far_from_pickup_is_quiet(self):
		course = self._course('accepted', 45)

		record_driver_location(self.driver, 48.85, 2.35)

		self.assertFalse(Notification.objects.filter(course=course, type='late_alert').exists())

	def test_in_progress_window(self):
		inside = self._course('in_progress', -20)
		outside = self._course('in_progress', 8)

		record_driver_location(self.driver, 48.85, 2.35)

		self.assertTrue(Notification.objects.filter(course=inside, type='late_alert').exists())
		self.assertFalse(Notification.objects.filter(course=outside, type='late_alert').exists())

	def test_failed_alert_does_not_skip_other_courses(self):
		broken = self._course('accepted', 8)
		healthy = self._course('in_progress', -10)
		create = reminders.create_notification

		def flaky_create(payload, **kwargs):
			if payload.course_id == broken.id:
				raise DatabaseError('insert failed')
			return create(payload, **kwargs)

		with patch.object(reminders, 'create_notification', side_effect=flaky_create):
			created = reminders.check_late_pickup_alerts(self.driver)

		self.assertEqual([n.course_id for n in created], [healthy.id])
		self.assertFalse(Notification.objects.filter(course=broken, type='late_alert').exists())
		self.assertTrue(Notification.objects.filter(course=healthy, type='late_alert').exists())
