from datetime import timedelta
from unittest.mock import patch

from kombu.exceptions import OperationalError

from django.core.management import call_command
from django.test import TestCase, TransactionTestCase
from django.utils import timezone
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User
from common.exceptions import AuthorizationError, InvalidStateError, NotFoundError
from drivers.models import Driver
from notifications.models import Notification
from services.course_management import lifecycle
from services.course_management import transition_course, cancel_course
from services.dispatch import fan_out_course

from .models import Course
from .views import courses, notify_drivers, transition_course as transition_view


def make_driver(username, status='active', token='tok', approved=True):
	user = User.objects.create_user(username=username, password='driver1234', role='driver')
	driver = Driver.objects.create(
		user=user,
		name=username.title(),
		status=status,
		fcm_token=token,
		is_approved=approved,
	)
	return user, driver


class CourseTransitionTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.user_one, self.driver_one = make_driver('driver_one')
		self.user_two, self.driver_two = make_driver('driver_two')
		self.pickup = timezone.now() + timedelta(hours=3)
		self.course = Course.objects.create(
			client_name='Mme Martin',
			departure_location='Gare de Lyon',
			destination_location='Orly',
			pickup_date=self.pickup,
			status='dispatched',
			dispatch_mode='auto',
		)

	def _post_transition(self, user, action, **extra):
		request = self.factory.post('/api/courses/transition/', {
			'course_id': self.course.id,
			'action': action,
			**extra,
		}, format='json')
		force_authenticate(request, user=user)
		return transition_view(request)

	def test_accept_assigns_driver(self):
		response = self._post_transition(self.user_one, 'accept')

		self.assertEqual(response.status_code, 200)
		self.assertTrue(response.data['success'])

		self.course.refresh_from_db()
		self.assertEqual(self.course.status, 'accepted')
		self.assertEqual(self.course.driver, self.driver_one)
		self.assertIsNotNone(self.course.accepted_at)
		self.assertIsNone(self.course.started_at)

	def test_accept_records_tracking_notifications(self):
		transition_course(self.user_one, self.course.id, 'accept')

		tracking = Notification.objects.get(type='course_status', driver=self.driver_one)
		self.assertEqual(tracking.data['action'], 'accept')
		self.assertEqual(tracking.data['status'], 'accepted')
		broadcast = Notification.objects.get(type='admin_course_update')
		self.assertIsNone(broadcast.driver)
		self.assertEqual(broadcast.course, self.course)

	def test_refuse_after_accept_restores_pool_state(self):
		transition_course(self.user_one, self.course.id, 'accept')
		transition_course(self.user_one, self.course.id, 'refuse')

		self.course.refresh_from_db()
		self.assertEqual(self.course.status, 'pending')
		self.assertIsNone(self.course.driver)
		self.assertIsNone(self.course.accepted_at)
		self.assertIsNone(self.course.started_at)
		self.assertIsNone(self.course.completed_at)

	def test_second_accept_is_rejected(self):
		transition_course(self.user_one, self.course.id, 'accept')

		response = self._post_transition(self.user_two, 'accept')

		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['error'], 'invalid_state')
		self.course.refresh_from_db()
		self.assertEqual(self.course.driver, self.driver_one)

	def test_concurrent_accept_loses_conditional_update(self):
		stale = Course.objects.get(id=self.course.id)
		transition_course(self.user_one, self.course.id, 'accept')

		# Second request read the course before the first one wrote it
		with patch.object(lifecycle, '_get_course', return_value=stale):
			with self.assertRaises(InvalidStateError):
				transition_course(self.user_two, self.course.id, 'accept')

		self.course.refresh_from_db()
		self.assertEqual(self.course.driver, self.driver_one)
		self.assertEqual(self.course.status, 'accepted')

	def test_start_before_unlock_returns_unlock_time(self):
		pickup = self.course.pickup_date
		transition_course(self.user_one, self.course.id, 'accept')

		with self.assertRaises(InvalidStateError) as ctx:
			transition_course(
				self.user_one, self.course.id, 'start',
				now=pickup - timedelta(minutes=90),
			)

		self.assertEqual(ctx.exception.unlock_time, pickup - timedelta(minutes=60))
		self.course.refresh_from_db()
		self.assertEqual(self.course.status, 'accepted')

	def test_start_after_unlock_moves_to_in_progress(self):
		pickup = self.course.pickup_date
		transition_course(self.user_one, self.course.id, 'accept')

		now = pickup - timedelta(minutes=59)
		result = transition_course(self.user_one, self.course.id, 'start', now=now)

		self.assertEqual(result.course.status, 'in_progress')
		self.course.refresh_from_db()
		self.assertEqual(self.course.status, 'in_progress')
		self.assertEqual(self.course.started_at, now)

	def test_early_start_endpoint_reports_unlock_time(self):
		transition_course(self.user_one, self.course.id, 'accept')

		response = self._post_transition(self.user_one, 'start')

		self.assertEqual(response.status_code, 409)
		self.assertEqual(
			response.data['unlock_time'],
			(self.pickup - timedelta(hours=1)).isoformat(),
		)

	def test_complete_requires_in_progress(self):
		transition_course(self.user_one, self.course.id, 'accept')

		with self.assertRaises(InvalidStateError):
			transition_course(self.user_one, self.course.id, 'complete')

	def test_full_lifecycle_sets_timestamps(self):
		now = self.pickup - timedelta(minutes=30)
		transition_course(self.user_one, self.course.id, 'accept', now=now - timedelta(hours=2))
		transition_course(self.user_one, self.course.id, 'start', now=now)
		transition_course(self.user_one, self.course.id, 'complete', now=now + timedelta(hours=1))

		self.course.refresh_from_db()
		self.assertEqual(self.course.status, 'completed')
		self.assertLessEqual(self.course.accepted_at, self.course.started_at)
		self.assertLessEqual(self.course.started_at, self.course.completed_at)

	def _start_course(self, now):
		transition_course(self.user_one, self.course.id, 'accept', now=now - timedelta(hours=2))
		transition_course(self.user_one, self.course.id, 'start', now=now)

	def test_milestones_record_timestamps_without_status_change(self):
		now = self.pickup - timedelta(minutes=30)
		self._start_course(now)

		transition_course(self.user_one, self.course.id, 'arrived', now=now + timedelta(minutes=20))
		transition_course(self.user_one, self.course.id, 'pickup', now=now + timedelta(minutes=32))
		result = transition_course(self.user_one, self.course.id, 'dropoff', now=now + timedelta(minutes=70))

		self.assertEqual(result.course.status, 'in_progress')
		self.course.refresh_from_db()
		self.assertEqual(self.course.status, 'in_progress')
		self.assertEqual(self.course.arrived_at, now + timedelta(minutes=20))
		self.assertEqual(self.course.picked_up_at, now + timedelta(minutes=32))
		self.assertEqual(self.course.dropped_off_at, now + timedelta(minutes=70))
		self.assertIsNone(self.course.completed_at)

	def test_milestone_requires_in_progress(self):
		transition_course(self.user_one, self.course.id, 'accept')

		with self.assertRaises(InvalidStateError):
			transition_course(self.user_one, self.course.id, 'arrived')

		self.course.refresh_from_db()
		self.assertIsNone(self.course.arrived_at)

	def test_milestone_by_other_driver_is_denied(self):
		self._start_course(self.pickup - timedelta(minutes=30))

		response = self._post_transition(self.user_two, 'pickup')

		self.assertEqual(response.status_code, 403)
		self.course.refresh_from_db()
		self.assertIsNone(self.course.picked_up_at)

	def test_complete_with_rating_and_comment(self):
		self.course.notes = 'Door code 1234'
		self.course.save(update_fields=['notes'])
		self._start_course(self.pickup - timedelta(minutes=30))

		response = self._post_transition(self.user_one, 'complete', rating=4, comment='Heavy traffic on A6')

		self.assertEqual(response.status_code, 200)
		self.course.refresh_from_db()
		self.assertEqual(self.course.status, 'completed')
		self.assertEqual(self.course.rating, 4)
		self.assertEqual(self.course.notes, 'Door code 1234\n\nDriver comment: Heavy traffic on A6')

	def test_rating_only_accepted_on_complete(self):
		response = self._post_transition(self.user_one, 'accept', rating=5)

		self.assertEqual(response.status_code, 400)
		self.course.refresh_from_db()
		self.assertEqual(self.course.status, 'dispatched')

	def test_out_of_range_rating_is_rejected(self):
		self._start_course(self.pickup - timedelta(minutes=30))

		response = self._post_transition(self.user_one, 'complete', rating=9)

		self.assertEqual(response.status_code, 400)
		with self.assertRaises(InvalidStateError):
			transition_course(self.user_one, self.course.id, 'complete', rating=0)

	def test_accept_resets_milestones(self):
		earlier = timezone.now() - timedelta(days=1)
		Course.objects.filter(id=self.course.id).update(
			arrived_at=earlier, picked_up_at=earlier, dropped_off_at=earlier, rating=2,
		)

		transition_course(self.user_one, self.course.id, 'accept')

		self.course.refresh_from_db()
		self.assertIsNone(self.course.arrived_at)
		self.assertIsNone(self.course.picked_up_at)
		self.assertIsNone(self.course.dropped_off_at)
		self.assertIsNone(self.course.rating)

	def test_non_owner_cannot_start(self):
		transition_course(self.user_one, self.course.id, 'accept')

		with self.assertRaises(AuthorizationError):
			transition_course(self.user_two, self.course.id, 'start')

		response = self._post_transition(self.user_two, 'refuse')
		self.assertEqual(response.status_code, 403)

	def test_dispatcher_cannot_transition(self):
		dispatcher = User.objects.create_user(username='dispatch', password='x', role='dispatcher')

		response = self._post_transition(dispatcher, 'accept')

		self.assertEqual(response.status_code, 403)
		self.assertEqual(response.data['error'], 'not_authorized')

	def test_terminal_course_rejects_actions(self):
		self.course.status = 'cancelled'
		self.course.save(update_fields=['status'])

		with self.assertRaises(InvalidStateError):
			transition_course(self.user_one, self.course.id, 'accept')

	def test_expected_status_mismatch_is_rejected(self):
		with self.assertRaises(InvalidStateError):
			transition_course(self.user_one, self.course.id, 'accept', expected_status='pending')

	def test_missing_course(self):
		with self.assertRaises(NotFoundError):
			transition_course(self.user_one, 999999, 'accept')

	def test_manual_course_only_accepts_assigned_driver(self):
		self.course.dispatch_mode = 'manual'
		self.course.driver = self.driver_two
		self.course.save(update_fields=['dispatch_mode', 'driver'])

		with self.assertRaises(InvalidStateError):
			transition_course(self.user_one, self.course.id, 'accept')

		result = transition_course(self.user_two, self.course.id, 'accept')
		self.assertEqual(result.course.status, 'accepted')


class DispatcherCourseTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.dispatcher = User.objects.create_user(username='dispatch', password='x', role='dispatcher')
		self.active = [make_driver(f'active_{i}')[1] for i in range(3)]
		self.inactive = make_driver('inactive', status='inactive')[1]
		self.no_token = make_driver('no_token', token=None)[1]
		self.pickup = timezone.now() + timedelta(hours=5)

	def _create_course(self, **overrides):
		data = {
			'client_name': 'M. Dupont',
			'departure_location': '12 rue de Rivoli',
			'destination_location': 'CDG T2',
			'pickup_date': self.pickup,
			'dispatch_mode': 'auto',
			**overrides,
		}
		return Course.objects.create(
			status='dispatched' if data.get('dispatch_mode') else 'pending',
			**data,
		)

	def test_auto_fanout_targets_active_drivers_only(self):
		course = self._create_course()

		result = fan_out_course(course.id)

		self.assertEqual(result.notified_drivers, 3)
		notified = set(
			Notification.objects.filter(course=course, type='new_course').values_list('driver_id', flat=True)
		)
		self.assertEqual(notified, {d.id for d in self.active})

	def test_manual_fanout_targets_assigned_driver(self):
		course = self._create_course(dispatch_mode='manual', driver=self.inactive)

		result = fan_out_course(course.id)

		self.assertEqual(result.notified_drivers, 1)
		notification = Notification.objects.get(course=course, type='new_course')
		self.assertEqual(notification.driver, self.inactive)
		self.assertEqual(notification.data, {'course_id': course.id, 'dispatch_mode': 'manual'})

	def test_fanout_rerun_does_not_duplicate(self):
		course = self._create_course()
		fan_out_course(course.id)

		again = fan_out_course(course.id)

		self.assertEqual(again.notified_drivers, 0)
		self.assertEqual(again.skipped_drivers, 3)
		self.assertEqual(Notification.objects.filter(course=course, type='new_course').count(), 3)

	@patch('services.dispatch.fanout.publish_notification', side_effect=RuntimeError('layer down'))
	def test_publish_failure_keeps_rows(self, mock_publish):
		course = self._create_course()

		result = fan_out_course(course.id)

		self.assertEqual(result.notified_drivers, 3)
		self.assertEqual(mock_publish.call_count, 3)

	def test_notify_drivers_endpoint(self):
		course = self._create_course()

		request = self.factory.post('/api/courses/notify-drivers/', {'courseId': course.id}, format='json')
		force_authenticate(request, user=self.dispatcher)
		response = notify_drivers(request)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['notified_drivers'], 3)
		self.assertEqual(response.data['dispatch_mode'], 'auto')

	def test_notify_drivers_requires_dispatcher(self):
		course = self._create_course()
		request = self.factory.post('/api/courses/notify-drivers/', {'courseId': course.id}, format='json')
		force_authenticate(request, user=self.active[0].user)

		response = notify_drivers(request)

		self.assertEqual(response.status_code, 403)

	def test_create_course_runs_fanout_once_after_commit(self):
		request = self.factory.post('/api/courses/', {
			'client_name': 'Mme Leroy',
			'departure_location': 'Bastille',
			'destination_location': 'Nation',
			'pickup_date': self.pickup.isoformat(),
			'dispatch_mode': 'auto',
		}, format='json')
		force_authenticate(request, user=self.dispatcher)

		with patch('courses.tasks.fanout_course_task.delay') as mock_delay:
			with self.captureOnCommitCallbacks(execute=True) as callbacks:
				response = courses(request)

		self.assertEqual(response.status_code, 201)
		self.assertEqual(response.data['course']['status'], 'dispatched')
		self.assertEqual(len(callbacks), 1)
		mock_delay.assert_called_once_with(response.data['course']['id'])

	def test_create_course_notifies_drivers(self):
		request = self.factory.post('/api/courses/', {
			'client_name': 'Mme Leroy',
			'departure_location': 'Bastille',
			'destination_location': 'Nation',
			'pickup_date': self.pickup.isoformat(),
			'dispatch_mode': 'auto',
		}, format='json')
		force_authenticate(request, user=self.dispatcher)

		with self.captureOnCommitCallbacks(execute=True):
			response = courses(request)

		course_id = response.data['course']['id']
		self.assertEqual(Notification.objects.filter(course_id=course_id, type='new_course').count(), 3)

	def test_create_course_without_mode_skips_fanout(self):
		request = self.factory.post('/api/courses/', {
			'client_name': 'Mme Leroy',
			'departure_location': 'Bastille',
			'destination_location': 'Nation',
			'pickup_date': self.pickup.isoformat(),
		}, format='json')
		force_authenticate(request, user=self.dispatcher)

		with self.captureOnCommitCallbacks(execute=True) as callbacks:
			response = courses(request)

		self.assertEqual(response.status_code, 201)
		self.assertEqual(response.data['course']['status'], 'pending')
		self.assertEqual(callbacks, [])

	def test_manual_creation_requires_driver(self):
		request = self.factory.post('/api/courses/', {
			'client_name': 'Mme Leroy',
			'departure_location': 'Bastille',
			'destination_location': 'Nation',
			'pickup_date': self.pickup.isoformat(),
			'dispatch_mode': 'manual',
		}, format='json')
		force_authenticate(request, user=self.dispatcher)

		response = courses(request)

		self.assertEqual(response.status_code, 400)
		self.assertIn('driver_id', response.data)

	def test_driver_cannot_create_course(self):
		request = self.factory.post('/api/courses/', {
			'client_name': 'Mme Leroy',
			'departure_location': 'Bastille',
			'destination_location': 'Nation',
			'pickup_date': self.pickup.isoformat(),
		}, format='json')
		force_authenticate(request, user=self.active[0].user)

		response = courses(request)

		self.assertEqual(response.status_code, 403)

	def test_cancel_course(self):
		course = self._create_course(dispatch_mode='manual', driver=self.active[0])

		result = cancel_course(self.dispatcher, course.id)

		self.assertEqual(result.course.status, 'cancelled')
		self.assertIsNotNone(result.course.cancelled_at)
		self.assertTrue(
			Notification.objects.filter(course=course, driver=self.active[0], type='course_status').exists()
		)
		with self.assertRaises(InvalidStateError):
			cancel_course(self.dispatcher, course.id)

	def test_driver_listing_shows_own_and_open_courses(self):
		driver = self.active[0]
		own = self._create_course(dispatch_mode='manual', driver=driver)
		pool = self._create_course()
		other = self._create_course(dispatch_mode='manual', driver=self.active[1])

		request = self.factory.get('/api/courses/')
		force_authenticate(request, user=driver.user)
		response = courses(request)

		ids = [c['id'] for c in response.data['courses']]
		self.assertIn(own.id, ids)
		self.assertIn(pool.id, ids)
		self.assertNotIn(other.id, ids)


class CourseNotificationSweepTests(TestCase):
	def setUp(self):
		self.user, self.driver = make_driver('sweeper')
		self.now = timezone.now()

	def _accepted_course(self, pickup):
		return Course.objects.create(
			client_name='Client',
			departure_location='A',
			destination_location='B',
			pickup_date=pickup,
			status='accepted',
			driver=self.driver,
			accepted_at=self.now - timedelta(days=1),
		)

	def test_unlock_notification_sent_once(self):
		course = self._accepted_course(timezone.now() + timedelta(minutes=50))

		call_command('check_course_notifications')
		call_command('check_course_notifications')

		self.assertEqual(Notification.objects.filter(course=course, type='course_unlocked').count(), 1)

	def test_reminder_respects_interval(self):
		from services.dispatch import check_course_notifications

		course = self._accepted_course(self.now + timedelta(minutes=30))

		first = check_course_notifications(now=self.now)
		second = check_course_notifications(now=self.now + timedelta(minutes=2))

		self.assertEqual(first.reminders, 1)
		self.assertEqual(second.reminders, 0)
		reminder = Notification.objects.get(course=course, type='course_reminder')
		self.assertEqual(reminder.data['minutes_since_unlock'], 30)

	def test_locked_course_gets_nothing(self):
		course = self._accepted_course(timezone.now() + timedelta(hours=3))

		call_command('check_course_notifications')

		self.assertFalse(Notification.objects.filter(course=course).exists())


class CourseCreationBrokerTests(TransactionTestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.dispatcher = User.objects.create_user(username='dispatch', password='x', role='dispatcher')

	@patch('courses.tasks.fanout_course_task.delay', side_effect=OperationalError('broker down'))
	def test_broker_outage_does_not_fail_creation(self, mock_delay):
		request = self.factory.post('/api/courses/', {
			'client_name': 'Mme Leroy',
			'departure_location': 'Bastille',
			'destination_location': 'Nation',
			'pickup_date': (timezone.now() + timedelta(hours=5)).isoformat(),
			'dispatch_mode': 'auto',
		}, format='json')
		force_authenticate(request, user=self.dispatcher)

		response = courses(request)

		self.assertEqual(response.status_code, 201)
		mock_delay.assert_called_once_with(response.data['course']['id'])
		self.assertEqual(Course.objects.count(), 1)
		self.assertEqual(Course.objects.get().status, 'dispatched')
