from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

from django.test import SimpleTestCase, TestCase

from accounts.models import User
from drivers.models import Driver
from notifications.models import Notification

from .consumers import DriverConsumer
from .notifications import publish_notification


class PublishNotificationTests(TestCase):
	def setUp(self):
		user = User.objects.create_user(username='driver', password='x', role='driver')
		self.driver = Driver.objects.create(user=user, name='Ana')

	@patch('realtime.notifications.get_channel_layer')
	def test_sends_to_driver_group(self, mock_layer):
		layer = MagicMock()
		layer.group_send = AsyncMock()
		mock_layer.return_value = layer
		notification = Notification.objects.create(driver=self.driver, type='new_course', title='New course')

		sent = publish_notification(notification)

		self.assertTrue(sent)
		group, payload = layer.group_send.await_args.args
		self.assertEqual(group, f'driver_{self.driver.id}')
		self.assertEqual(payload['type'], 'notification_created')
		self.assertEqual(payload['event_id'], f'notification:{notification.id}')
		self.assertEqual(payload['notification']['type'], 'new_course')

	@patch('realtime.notifications.get_channel_layer')
	def test_broadcast_rows_are_not_sent(self, mock_layer):
		notification = Notification.objects.create(type='sos_alert', title='SOS')

		self.assertFalse(publish_notification(notification))
		mock_layer.assert_not_called()


def make_consumer(user):
	consumer = DriverConsumer()
	consumer.scope = {'user': user}
	consumer.channel_name = 'test-channel'
	consumer.channel_layer = MagicMock()
	consumer.channel_layer.group_add = AsyncMock()
	consumer.channel_layer.group_discard = AsyncMock()
	consumer.accept = AsyncMock()
	consumer.close = AsyncMock()
	consumer.send_json = AsyncMock()
	return consumer


class DriverConsumerTests(SimpleTestCase):
	def _user(self, role='driver', anonymous=False):
		return SimpleNamespace(id=3, role=role, is_anonymous=anonymous)

	async def test_driver_joins_own_group(self):
		consumer = make_consumer(self._user())

		with patch.object(DriverConsumer, '_get_driver_id', AsyncMock(return_value=7)):
			await consumer.connect()

		consumer.accept.assert_awaited_once()
		consumer.channel_layer.group_add.assert_awaited_once_with('driver_7', 'test-channel')
		self.assertEqual(consumer.joined_groups, {'driver_7'})

	async def test_anonymous_is_closed(self):
		consumer = make_consumer(self._user(anonymous=True))

		await consumer.connect()

		consumer.close.assert_awaited_once()
		consumer.accept.assert_not_awaited()

	async def test_non_driver_is_refused(self):
		consumer = make_consumer(self._user(role='dispatcher'))

		await consumer.connect()

		consumer.close.assert_awaited_once()
		consumer.channel_layer.group_add.assert_not_awaited()

	async def test_user_without_driver_record_is_refused(self):
		consumer = make_consumer(self._user())

		with patch.object(DriverConsumer, '_get_driver_id', AsyncMock(return_value=None)):
			await consumer.connect()

		consumer.close.assert_awaited_once()

	async def test_forwards_notification_event(self):
		consumer = make_consumer(self._user())

		await consumer.notification_created({
			'type': 'notification_created',
			'event_id': 'notification:5',
			'notification': {'id': 5, 'type': 'new_course'},
		})

		consumer.send_json.assert_awaited_once_with({
			'type': 'notification',
			'event_id': 'notification:5',
			'notification': {'id': 5, 'type': 'new_course'},
		})

	async def test_forwards_chat_event(self):
		consumer = make_consumer(self._user())

		await consumer.chat_message_created({
			'type': 'chat_message_created',
			'event_id': 'chat:9',
			'message': {'id': 9, 'sender_role': 'dispatcher'},
		})

		frame = consumer.send_json.await_args.args[0]
		self.assertEqual(frame['type'], 'chat_message')
		self.assertEqual(frame['event_id'], 'chat:9')

	async def test_ping(self):
		consumer = make_consumer(self._user())

		await consumer.receive_json({'type': 'ping'})

		consumer.send_json.assert_awaited_once_with({'type': 'pong'})

	async def test_disconnect_leaves_groups(self):
		consumer = make_consumer(self._user())
		with patch.object(DriverConsumer, '_get_driver_id', AsyncMock(return_value=7)):
			await consumer.connect()

		await consumer.disconnect(1000)

		consumer.channel_layer.group_discard.assert_awaited_once_with('driver_7', 'test-channel')
		self.assertEqual(consumer.joined_groups, set())

	async def test_location_frames_are_rejected(self):
		consumer = make_consumer(self._user())

		with patch('drivers.services.record_driver_location') as mock_record:
			await consumer.receive_json({'type': 'driver_location_update', 'latitude': 500, 'longitude': -999})

		mock_record.assert_not_called()
		consumer.send_json.assert_awaited_once_with({
			'type': 'error',
			'message': 'Unknown message type: driver_location_update',
		})
