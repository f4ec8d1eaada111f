import asyncio
import random
from datetime import datetime, timedelta, timezone
from unittest import IsolatedAsyncioTestCase, TestCase

from aiohttp import web
from aiohttp.test_utils import AioHTTPTestCase

from common.exceptions import (
	AuthorizationError,
	InvalidStateError,
	NotFoundError,
	TransientIOError,
)
from common.utils import calculate_distance

from .alerts import HAPTIC_PATTERNS, HapticStyle, build_alert, chat_preview
from .api import DispatchApiClient, DriverSession, error_from_response
from .channel import DriverChannel
from .countdown import READY_TEXT, UnlockCountdown, format_remaining
from .events import ChatMessageEvent, NotificationEvent, parse_event
from .router import RealtimeEventRouter
from .sampler import (
	PositionFix,
	PositionPermissionDenied,
	PositionSampler,
	PositionUnsupported,
)

SESSION = DriverSession(base_url='http://testserver', access_token='abc', driver_id=7)


# ---------------------- Fakes ----------------------

class FakeProvider:
	def __init__(self, fail_with=None):
		self.fail_with = fail_with
		self.watch_calls = 0
		self.cleared = []
		self.on_fix = None
		self.on_error = None

	def watch(self, on_fix, on_error):
		if self.fail_with is not None:
			raise self.fail_with
		self.watch_calls += 1
		self.on_fix = on_fix
		self.on_error = on_error
		return f'watch-{self.watch_calls}'

	def clear_watch(self, handle):
		self.cleared.append(handle)


class FakeSubscription:
	def __init__(self):
		self.queue = asyncio.Queue()
		self.closed = False

	def __aiter__(self):
		return self

	async def __anext__(self):
		frame = await self.queue.get()
		if frame is None:
			raise StopAsyncIteration
		return frame

	def close(self):
		self.closed = True


class FakePresenter:
	def __init__(self):
		self.sounds = []
		self.impacts = []
		self.shown = []
		self.routes = []

	async def play_sound(self, sound_id):
		self.sounds.append(sound_id)

	async def impact(self, style):
		self.impacts.append(style)

	def show(self, alert, on_activate):
		self.shown.append((alert, on_activate))

	def navigate(self, route):
		self.routes.append(route)


def notification_frame(pk, type_='new_course', course_id=12):
	return {
		'type': 'notification',
		'event_id': f'notification:{pk}',
		'notification': {
			'id': pk,
			'type': type_,
			'title': 'New course available',
			'message': 'Gare de Lyon -> Orly',
			'course_id': course_id,
			'data': {'course_id': course_id, 'dispatch_mode': 'auto'},
		},
	}


def chat_frame(pk, sender_role='dispatcher', content='Client is at door 3'):
	return {
		'type': 'chat_message',
		'event_id': f'chat:{pk}',
		'message': {'id': pk, 'course_id': 12, 'sender_role': sender_role, 'content': content},
	}


# ---------------------- Sampler ----------------------

class PositionSamplerTests(IsolatedAsyncioTestCase):
	async def asyncSetUp(self):
		self.sent = []

		async def send(payload):
			self.sent.append(payload)

		self.provider = FakeProvider()
		self.sampler = PositionSampler(self.provider, send)
		self.sampler.start()

	async def test_first_fix_is_always_sent(self):
		self.assertTrue(self.sampler.handle_fix(PositionFix(48.8566, 2.3522, timestamp=100.0)))
		await self.sampler.drain()

		self.assertEqual(len(self.sent), 1)
		self.assertEqual(self.sent[0]['latitude'], 48.8566)

	async def test_small_quick_move_is_dropped(self):
		self.sampler.handle_fix(PositionFix(48.8566, 2.3522, timestamp=100.0))

		# ~5.5 m, 0.5 s later
		self.assertFalse(self.sampler.handle_fix(PositionFix(48.85665, 2.3522, timestamp=100.5)))

	async def test_distance_or_time_triggers_send(self):
		self.sampler.handle_fix(PositionFix(48.8566, 2.3522, timestamp=100.0))

		# ~22 m
		self.assertTrue(self.sampler.handle_fix(PositionFix(48.8568, 2.3522, timestamp=100.2)))
		# standing still, 1.5 s later
		self.assertTrue(self.sampler.handle_fix(PositionFix(48.8568, 2.3522, timestamp=101.7)))

	async def test_consecutive_accepted_fixes(self):
		accepted = []
		original = self.sampler.handle_fix

		def record(fix):
			if original(fix):
				accepted.append(fix)

		rng = random.Random(7)
		lat, lon, ts = 45.76, 4.83, 0.0
		for _ in range(300):
			lat += rng.uniform(-0.00008, 0.00008)
			ts += rng.uniform(0.1, 0.5)
			record(PositionFix(lat, lon, timestamp=ts))
		await self.sampler.drain()

		for prev, cur in zip(accepted, accepted[1:]):
			distance = calculate_distance(prev.latitude, prev.longitude, cur.latitude, cur.longitude)
			self.assertTrue(distance >= 10 or cur.timestamp - prev.timestamp >= 1.0)

	async def test_upload_failure_keeps_tracking(self):
		async def failing(payload):
			raise TransientIOError('offline')

		sampler = PositionSampler(FakeProvider(), failing)
		sampler.start()
		first = PositionFix(48.8566, 2.3522, timestamp=0.0)

		self.assertTrue(sampler.handle_fix(first))
		await sampler.drain()

		self.assertTrue(sampler.is_tracking)
		self.assertIs(sampler.last_sent, first)
		self.assertFalse(sampler.handle_fix(PositionFix(48.8566, 2.3522, timestamp=0.5)))
		self.assertTrue(sampler.handle_fix(PositionFix(48.8566, 2.3522, timestamp=1.5)))
		await sampler.drain()

	async def test_start_is_idempotent(self):
		self.sampler.start()

		self.assertEqual(self.provider.watch_calls, 1)

	async def test_stop_releases_watch(self):
		self.sampler.stop()
		self.sampler.stop()

		self.assertEqual(self.provider.cleared, ['watch-1'])
		self.assertEqual(self.sampler.state, 'idle')
		self.assertFalse(self.sampler.handle_fix(PositionFix(1.0, 1.0)))

	async def test_permission_denied_on_start(self):
		sampler = PositionSampler(FakeProvider(fail_with=PositionPermissionDenied('denied')), self.sent.append)
		sampler.start()

		self.assertEqual(sampler.state, 'error')
		self.assertIsInstance(sampler.error, PositionPermissionDenied)

	async def test_unsupported_while_tracking_releases_watch(self):
		self.provider.on_error(PositionUnsupported('no gps'))

		self.assertEqual(self.sampler.state, 'error')
		self.assertEqual(self.provider.cleared, ['watch-1'])

		# caller may retry once the provider is usable again
		self.sampler.start()
		self.assertEqual(self.sampler.state, 'tracking')
		self.assertEqual(self.provider.watch_calls, 2)

	async def test_transient_provider_error_is_ignored(self):
		self.provider.on_error(TimeoutError('slow fix'))

		self.assertTrue(self.sampler.is_tracking)


# ---------------------- Events & alerts ----------------------

class EventParsingTests(TestCase):
	def test_notification(self):
		event = parse_event(notification_frame(3))

		self.assertIsInstance(event, NotificationEvent)
		self.assertEqual(event.event_id, 'notification:3')
		self.assertEqual(event.course_id, 12)

	def test_chat(self):
		event = parse_event(chat_frame(4))

		self.assertIsInstance(event, ChatMessageEvent)
		self.assertEqual(event.sender_role, 'dispatcher')

	def test_control_frames_are_not_events(self):
		self.assertIsNone(parse_event({'type': 'connection_established', 'driver_id': 7}))
		self.assertIsNone(parse_event({'type': 'pong'}))

	def test_malformed_frame(self):
		self.assertIsNone(parse_event({'type': 'notification', 'event_id': 'x'}))


class AlertSelectionTests(TestCase):
	def test_sos_is_most_intense(self):
		urgent = HAPTIC_PATTERNS['urgent_alert']

		self.assertEqual(urgent.style, HapticStyle.HEAVY)
		self.assertEqual(urgent.repeat, max(p.repeat for p in HAPTIC_PATTERNS.values()))

	def test_alert_routes(self):
		course_alert = build_alert(parse_event(notification_frame(1)))
		chat_alert = build_alert(parse_event(chat_frame(2)))

		self.assertEqual(course_alert.route, '/courses/12')
		self.assertEqual(course_alert.haptic, 'new_course')
		self.assertEqual(chat_alert.route, '/chat/12')
		self.assertEqual(chat_alert.haptic, 'chat_message')

	def test_unknown_sound_falls_back(self):
		alert = build_alert(parse_event(notification_frame(1)), sound_id='trumpet')

		self.assertEqual(alert.sound, 'default')

	def test_chat_preview(self):
		self.assertEqual(chat_preview('short'), 'short')
		self.assertEqual(chat_preview('x' * 80), 'x' * 60 + '...')


# ---------------------- Router ----------------------

class RealtimeEventRouterTests(IsolatedAsyncioTestCase):
	async def asyncSetUp(self):
		self.presenter = FakePresenter()
		self.subscriptions = []

		def subscribe(session):
			subscription = FakeSubscription()
			self.subscriptions.append(subscription)
			return subscription

		self.router = RealtimeEventRouter(self.presenter, subscribe)

	async def test_duplicate_event_is_handled_once(self):
		frame = notification_frame(1)

		self.assertTrue(await self.router.dispatch(frame))
		self.assertFalse(await self.router.dispatch(frame))

		self.assertEqual(len(self.presenter.shown), 1)

	async def test_own_chat_messages_are_suppressed(self):
		self.assertFalse(await self.router.dispatch(chat_frame(5, sender_role='driver')))

		self.assertEqual(self.presenter.shown, [])
		self.assertEqual(self.presenter.sounds, [])

	async def test_chat_alert_navigates_to_chat(self):
		await self.router.dispatch(chat_frame(6))

		alert, on_activate = self.presenter.shown[0]
		on_activate()
		self.assertEqual(self.presenter.routes, ['/chat/12'])
		self.assertEqual(self.presenter.impacts, [HapticStyle.LIGHT])

	async def test_sos_plays_urgent_pattern(self):
		await self.router.dispatch(notification_frame(8, type_='sos_alert', course_id=None))

		self.assertEqual(self.presenter.impacts, [HapticStyle.HEAVY] * 5)
		self.assertEqual(self.presenter.sounds, ['alert'])

	async def test_enable_consumes_subscription(self):
		self.router.enable(SESSION)
		self.router.enable(SESSION)
		self.assertEqual(len(self.subscriptions), 1)

		subscription = self.subscriptions[0]
		await subscription.queue.put(chat_frame(1))
		await subscription.queue.put(chat_frame(1))
		await subscription.queue.put(chat_frame(2))
		for _ in range(10):
			await asyncio.sleep(0)

		self.assertEqual(len(self.presenter.shown), 2)
		self.router.disable()

	async def test_disable_stops_delivery(self):
		self.router.enable(SESSION)
		subscription = self.subscriptions[0]

		self.router.disable()
		await subscription.queue.put(chat_frame(3))
		for _ in range(10):
			await asyncio.sleep(0)

		self.assertTrue(subscription.closed)
		self.assertFalse(self.router.enabled)
		self.assertEqual(self.presenter.shown, [])

	async def test_reenable_after_disable(self):
		self.router.enable(SESSION)
		self.router.disable()
		self.router.enable(SESSION)

		self.assertEqual(len(self.subscriptions), 2)
		self.assertTrue(self.router.enabled)
		self.router.disable()


# ---------------------- Countdown ----------------------

class CountdownTests(TestCase):
	def test_format(self):
		self.assertEqual(format_remaining(timedelta(hours=1, minutes=2, seconds=3)), 'Can start in 1h 2min 3s')
		self.assertEqual(format_remaining(timedelta(minutes=5, seconds=9)), 'Can start in 5min 9s')
		self.assertEqual(format_remaining(timedelta(seconds=42)), 'Can start in 42s')
		self.assertEqual(format_remaining(timedelta(0)), READY_TEXT)

	def test_unlock_fires_once(self):
		pickup = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)
		now = [pickup - timedelta(hours=1, seconds=2)]
		ticks = []
		unlocked = []

		countdown = UnlockCountdown(
			pickup,
			on_tick=lambda remaining, text: ticks.append(text),
			on_unlock=lambda: unlocked.append(True),
			clock=lambda: now[0],
		)

		countdown.tick()
		now[0] += timedelta(seconds=2)
		countdown.tick()
		now[0] += timedelta(seconds=1)
		countdown.tick()

		self.assertEqual(ticks, ['Can start in 2s', READY_TEXT, READY_TEXT])
		self.assertEqual(unlocked, [True])


# ---------------------- API client ----------------------

class ErrorMappingTests(TestCase):
	def test_invalid_state_with_unlock_time(self):
		exc = error_from_response(409, {
			'success': False,
			'error': 'invalid_state',
			'message': 'too early',
			'unlock_time': '2026-03-01T09:00:00+00:00',
		})

		self.assertIsInstance(exc, InvalidStateError)
		self.assertEqual(exc.unlock_time, datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc))

	def test_status_fallbacks(self):
		self.assertIsInstance(error_from_response(403, {'detail': 'nope'}), AuthorizationError)
		self.assertIsInstance(error_from_response(404, {}), NotFoundError)
		self.assertIsInstance(error_from_response(502, {}), TransientIOError)

	def test_ws_url(self):
		session = DriverSession(base_url='https://api.example.com', access_token='tok', driver_id=1)

		self.assertEqual(session.ws_url, 'wss://api.example.com/ws/driver/?token=tok')


class DispatchApiClientTests(AioHTTPTestCase):
	async def get_application(self):
		async def transition(request):
			body = await request.json()
			self.last_body = body
			self.assertEqual(request.headers['Authorization'], 'Bearer abc')
			if body['action'] == 'start':
				return web.json_response({
					'success': False,
					'error': 'invalid_state',
					'message': 'This course cannot be started yet',
					'unlock_time': '2026-03-01T09:00:00+00:00',
				}, status=409)
			return web.json_response({'success': True, 'course': {'id': body['course_id'], 'status': 'accepted'}})

		async def location(request):
			return web.json_response({'success': True})

		app = web.Application()
		app.router.add_post('/api/courses/transition/', transition)
		app.router.add_post('/api/driver/location/', location)
		return app

	def _client(self):
		base_url = str(self.server.make_url('/'))
		return DispatchApiClient(DriverSession(base_url=base_url, access_token='abc', driver_id=7))

	async def test_accept(self):
		async with self._client() as client:
			course = await client.accept(12)

		self.assertEqual(course, {'id': 12, 'status': 'accepted'})

	async def test_complete_sends_rating_and_comment(self):
		async with self._client() as client:
			await client.complete(12, rating=4, comment='Traffic on A6')

		self.assertEqual(self.last_body, {
			'course_id': 12,
			'action': 'complete',
			'rating': 4,
			'comment': 'Traffic on A6',
		})

	async def test_milestone_omits_completion_fields(self):
		async with self._client() as client:
			await client.pickup(12)

		self.assertEqual(self.last_body, {'course_id': 12, 'action': 'pickup'})

	async def test_early_start_raises_invalid_state(self):
		async with self._client() as client:
			with self.assertRaises(InvalidStateError) as ctx:
				await client.start(12)

		self.assertEqual(ctx.exception.unlock_time, datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc))

	async def test_location_upload(self):
		async with self._client() as client:
			await client.send_location(PositionFix(48.8566, 2.3522).to_payload())

	async def test_unreachable_backend_is_transient(self):
		client = DispatchApiClient(DriverSession(base_url='http://127.0.0.1:1', access_token='abc', driver_id=7))
		try:
			with self.assertRaises(TransientIOError):
				await client.accept(1)
		finally:
			await client.close()


class DriverChannelTests(AioHTTPTestCase):
	async def get_application(self):
		self.server_saw_close = asyncio.Event()

		async def driver_socket(request):
			ws = web.WebSocketResponse()
			await ws.prepare(request)
			await ws.send_json({'type': 'notification', 'event_id': 'notification:1', 'notification': {}})
			async for _ in ws:
				pass
			self.server_saw_close.set()
			return ws

		app = web.Application()
		app.router.add_get('/ws/driver/', driver_socket)
		return app

	async def test_close_releases_socket_without_task_cancel(self):
		session = DriverSession(base_url=str(self.server.make_url('/')), access_token='tok', driver_id=7)
		channel = DriverChannel(session, http=self.client.session)
		frames = channel.__aiter__()

		frame = await frames.__anext__()
		self.assertEqual(frame['event_id'], 'notification:1')

		channel.close()

		await asyncio.wait_for(self.server_saw_close.wait(), timeout=2)
		with self.assertRaises(StopAsyncIteration):
			await frames.__anext__()

	async def test_close_before_iteration_is_safe(self):
		session = DriverSession(base_url=str(self.server.make_url('/')), access_token='tok', driver_id=7)
		channel = DriverChannel(session, http=self.client.session)

		channel.close()

		self.assertTrue(channel.closed)
