from unittest.mock import patch

from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User
from drivers.models import Driver

from .models import Notification
from .payloads import NewCoursePayload, SosAlertPayload
from .services import create_notification, notify_driver_login
from .views import list_notifications, mark_all_notifications_read, mark_notification_read


class NotificationPayloadTests(TestCase):
	def test_payload_tag_and_data(self):
		payload = NewCoursePayload(course_id=4, dispatch_mode='auto')

		self.assertEqual(payload.type, 'new_course')
		self.assertEqual(payload.to_data(), {'course_id': 4, 'dispatch_mode': 'auto'})

	def test_optional_fields_are_dropped(self):
		payload = SosAlertPayload(driver_id=1, driver_name='Ana')

		self.assertEqual(payload.to_data(), {'driver_id': 1, 'driver_name': 'Ana', 'urgency': 'critical'})


class NotificationInboxTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.user = User.objects.create_user(username='driver', password='x', role='driver')
		self.driver = Driver.objects.create(user=self.user, name='Ana')
		other_user = User.objects.create_user(username='other', password='x', role='driver')
		self.other = Driver.objects.create(user=other_user, name='Other')

		self.first = create_notification(NewCoursePayload(course_id=1), title='One', driver=self.driver)
		self.second = create_notification(NewCoursePayload(course_id=2), title='Two', driver=self.driver)
		self.foreign = create_notification(NewCoursePayload(course_id=3), title='Three', driver=self.other)

	def test_publish_on_create(self):
		with patch('notifications.services.publish_notification') as mock_publish:
			notification = create_notification(NewCoursePayload(course_id=9), title='Nine', driver=self.driver)

		mock_publish.assert_called_once_with(notification)

	def test_broadcast_is_not_published(self):
		with patch('notifications.services.publish_notification') as mock_publish:
			create_notification(SosAlertPayload(driver_id=1, driver_name='Ana'), title='SOS')

		mock_publish.assert_not_called()

	def test_list_only_own(self):
		request = self.factory.get('/api/notifications/')
		force_authenticate(request, user=self.user)
		response = list_notifications(request)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['count'], 2)
		self.assertEqual(response.data['unread'], 2)

	def test_mark_read(self):
		request = self.factory.post(f'/api/notifications/{self.first.id}/read/')
		force_authenticate(request, user=self.user)
		response = mark_notification_read(request, notification_id=self.first.id)

		self.assertEqual(response.status_code, 200)
		self.first.refresh_from_db()
		self.assertTrue(self.first.read)

	def test_mark_read_of_foreign_notification_is_not_found(self):
		request = self.factory.post(f'/api/notifications/{self.foreign.id}/read/')
		force_authenticate(request, user=self.user)
		response = mark_notification_read(request, notification_id=self.foreign.id)

		self.assertEqual(response.status_code, 404)
		self.foreign.refresh_from_db()
		self.assertFalse(self.foreign.read)

	def test_mark_all_read(self):
		request = self.factory.post('/api/notifications/read-all/')
		force_authenticate(request, user=self.user)
		response = mark_all_notifications_read(request)

		self.assertEqual(response.data['updated'], 2)
		self.assertEqual(Notification.objects.filter(driver=self.driver, read=False).count(), 0)
		self.assertEqual(Notification.objects.filter(driver=self.other, read=False).count(), 1)

	def test_login_broadcast(self):
		notification = notify_driver_login(self.driver)

		self.assertIsNone(notification.driver)
		self.assertEqual(notification.type, 'driver_login')
		self.assertEqual(notification.data['driver_name'], 'Ana')
