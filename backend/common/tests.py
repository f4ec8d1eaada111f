from datetime import datetime, timedelta, timezone
from django.test import SimpleTestCase as TestCase

from common.exceptions import InvalidStateError, TransientIOError
from common.utils import (
	calculate_distance,
	get_unlock_time,
	is_start_unlocked,
	time_until_unlock,
)

PICKUP = datetime(2026, 5, 4, 14, 30, tzinfo=timezone.utc)


class SchedulingTests(TestCase):
	def test_unlock_is_one_hour_before_pickup(self):
		self.assertEqual(get_unlock_time(PICKUP), PICKUP - timedelta(hours=1))

	def test_unlock_boundary(self):
		unlock = get_unlock_time(PICKUP)

		self.assertFalse(is_start_unlocked(PICKUP, unlock - timedelta(seconds=1)))
		self.assertTrue(is_start_unlocked(PICKUP, unlock))

	def test_time_until_unlock_never_negative(self):
		self.assertEqual(time_until_unlock(PICKUP, PICKUP - timedelta(minutes=90)), timedelta(minutes=30))
		self.assertEqual(time_until_unlock(PICKUP, PICKUP), timedelta(0))


class DistanceTests(TestCase):
	def test_same_point(self):
		self.assertEqual(calculate_distance(48.8566, 2.3522, 48.8566, 2.3522), 0)

	def test_known_distance(self):
		# Paris -> London, roughly 344 km
		distance = calculate_distance(48.8566, 2.3522, 51.5074, -0.1278)
		self.assertAlmostEqual(distance / 1000, 344, delta=2)


class ErrorPayloadTests(TestCase):
	def test_invalid_state_payload(self):
		exc = InvalidStateError('too early', unlock_time=PICKUP - timedelta(hours=1))

		self.assertEqual(exc.status_code, 409)
		self.assertEqual(exc.to_dict(), {
			'success': False,
			'error': 'invalid_state',
			'message': 'too early',
			'unlock_time': '2026-05-04T13:30:00+00:00',
		})

	def test_transient_payload(self):
		self.assertEqual(TransientIOError('down').to_dict()['error'], 'temporarily_unavailable')
