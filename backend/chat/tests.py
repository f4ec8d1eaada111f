from datetime import timedelta
from unittest.mock import patch

from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User
from courses.models import Course
from drivers.models import Driver
from notifications.models import Notification

from .models import ChatMessage
from .views import chat


class CourseChatTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.driver_user = User.objects.create_user(username='driver', password='x', role='driver')
		self.driver = Driver.objects.create(user=self.driver_user, name='Ana')
		self.other_user = User.objects.create_user(username='other', password='x', role='driver')
		Driver.objects.create(user=self.other_user, name='Other')
		self.dispatcher = User.objects.create_user(username='dispatch', password='x', role='fleet_manager')

		self.course = Course.objects.create(
			client_name='Client',
			departure_location='A',
			destination_location='B',
			pickup_date=timezone.now() + timedelta(hours=2),
			status='accepted',
			driver=self.driver,
		)

	def _call(self, user, action, **extra):
		request = self.factory.post('/api/chat/', {'action': action, 'course_id': self.course.id, **extra}, format='json')
		force_authenticate(request, user=user)
		return chat(request)

	def test_driver_message_is_read_on_driver_side(self):
		response = self._call(self.driver_user, 'send_message', content='On my way')

		self.assertEqual(response.status_code, 201)
		message = ChatMessage.objects.get()
		self.assertEqual(message.sender_role, 'driver')
		self.assertEqual(message.driver, self.driver)
		self.assertTrue(message.read_by_driver)
		self.assertFalse(message.read_by_fleet)

	@patch('chat.services.publish_chat_message')
	def test_dispatcher_message_is_pushed_to_driver(self, mock_publish):
		response = self._call(self.dispatcher, 'send_message', content='Client is waiting at door 3')

		self.assertEqual(response.status_code, 201)
		message = ChatMessage.objects.get()
		self.assertEqual(message.sender_role, 'dispatcher')
		self.assertTrue(message.read_by_fleet)
		self.assertFalse(message.read_by_driver)
		mock_publish.assert_called_once_with(message)
		self.assertTrue(Notification.objects.filter(type='chat', driver=self.driver).exists())

	@patch('chat.services.publish_chat_message')
	def test_driver_message_is_not_pushed(self, mock_publish):
		self._call(self.driver_user, 'send_message', content='Hello')

		mock_publish.assert_not_called()

	def test_mark_read_only_touches_other_side(self):
		self._call(self.dispatcher, 'send_message', content='One')
		self._call(self.dispatcher, 'send_message', content='Two')
		self._call(self.driver_user, 'send_message', content='Three')

		response = self._call(self.driver_user, 'mark_read')

		self.assertEqual(response.data['updated'], 2)
		self.assertFalse(ChatMessage.objects.filter(read_by_driver=False).exists())
		self.assertEqual(ChatMessage.objects.filter(read_by_fleet=False).count(), 1)

	def test_get_messages_in_order(self):
		self._call(self.dispatcher, 'send_message', content='First')
		self._call(self.driver_user, 'send_message', content='Second')

		response = self._call(self.driver_user, 'get_messages')

		self.assertEqual([m['content'] for m in response.data['messages']], ['First', 'Second'])

	def test_other_driver_is_denied(self):
		response = self._call(self.other_user, 'get_messages')

		self.assertEqual(response.status_code, 403)
		self.assertEqual(response.data['error'], 'not_authorized')

	def test_send_requires_content(self):
		response = self._call(self.driver_user, 'send_message', content='   ')

		self.assertEqual(response.status_code, 400)
