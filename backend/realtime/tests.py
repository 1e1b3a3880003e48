from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import patch

from channels.routing import URLRouter
from channels.testing import WebsocketCommunicator
from django.test import SimpleTestCase, TestCase, override_settings

from common.exceptions import (
	DeliveryFailure,
	InvalidCoordinate,
	NotFound,
	Unauthenticated,
)

from .dispatcher import DispatchResult, FanoutDispatcher, Transport
from .events import EventKind, NotificationEvent
from .geo import (
	cell_center,
	cell_neighbors,
	cells_for_origin,
	decode_cell,
	encode_cell,
)
from .middleware import JWTAuthMiddleware
from .notifications import broadcast_blog, notify_report_event
from .registry import ConnectionRegistry, get_connection_registry
from .routing import websocket_urlpatterns


# Scenario points: two volunteers a street apart, one in another city
REPORT_POINT = (18.52, 73.85)
NEAR_POINT = (18.521, 73.851)
FAR_POINT = (19.5, 74.5)


class RecordingTransport(Transport):
	"""Records what would have been sent; fails for the given channels."""

	def __init__(self, failing=()):
		self.sent = []
		self.failing = set(failing)

	async def send(self, connection, message):
		if connection.channel_name in self.failing:
			raise DeliveryFailure(connection.channel_name, "socket gone")
		self.sent.append((connection.channel_name, message))

	@property
	def recipients(self):
		return {name for name, _ in self.sent}


class GeoCellCodecTests(SimpleTestCase):
	def test_known_geohash(self):
		self.assertEqual(encode_cell(57.64911, 10.40744, 6), 'u4pruy')
		self.assertEqual(encode_cell(57.64911, 10.40744, 11), 'u4pruydqqvj')

	def test_default_precision_comes_from_settings(self):
		self.assertEqual(len(encode_cell(*REPORT_POINT)), 6)
		with override_settings(REALTIME={'GEOCELL_PRECISION': 5}):
			self.assertEqual(len(encode_cell(*REPORT_POINT)), 5)

	def test_explicit_precision_is_checked(self):
		for precision in (0, 13, -1):
			with self.assertRaises(ValueError):
				encode_cell(1, 1, precision)

	def test_encoded_point_lies_inside_its_cell(self):
		cell = encode_cell(*REPORT_POINT)
		lat_min, lat_max, lon_min, lon_max = decode_cell(cell)
		self.assertTrue(lat_min <= REPORT_POINT[0] <= lat_max)
		self.assertTrue(lon_min <= REPORT_POINT[1] <= lon_max)
		self.assertEqual(encode_cell(*cell_center(cell), precision=6), cell)

	def test_same_input_same_cell(self):
		self.assertEqual(encode_cell(*REPORT_POINT), encode_cell(*REPORT_POINT))
		self.assertEqual(encode_cell('18.52', '73.85'), encode_cell(*REPORT_POINT))

	def test_neighbors_exclude_self_and_are_at_most_eight(self):
		cell = encode_cell(*REPORT_POINT)
		neighbors = cell_neighbors(cell)
		self.assertEqual(len(neighbors), 8)
		self.assertNotIn(cell, neighbors)
		self.assertTrue(all(len(n) == len(cell) for n in neighbors))

	def test_neighbors_are_symmetric(self):
		cell = encode_cell(*REPORT_POINT)
		for neighbor in cell_neighbors(cell):
			self.assertIn(cell, cell_neighbors(neighbor))

	def test_polar_cell_drops_rows_past_the_pole(self):
		north = encode_cell(90, 0)
		south = encode_cell(-90, 0)
		self.assertEqual(len(cell_neighbors(north)), 5)
		self.assertEqual(len(cell_neighbors(south)), 5)

	def test_neighbors_wrap_across_antimeridian(self):
		east = encode_cell(0, 179.999)
		west = encode_cell(0, -179.999)
		self.assertIn(west, cell_neighbors(east))
		self.assertIn(east, cell_neighbors(west))

	def test_cells_for_origin_includes_origin(self):
		cell, rooms = cells_for_origin(*REPORT_POINT)
		self.assertIn(cell, rooms)
		self.assertEqual(len(rooms), 9)

	def test_invalid_coordinates_rejected(self):
		for lat, lon in [(91, 0), (-90.5, 0), (0, 181), (0, -180.1), (None, 1),
						 ('abc', 1), (float('nan'), 0), (0, float('inf')), (True, 1)]:
			with self.assertRaises(InvalidCoordinate):
				encode_cell(lat, lon)

	def test_invalid_cells_rejected(self):
		for cell in ['', 'a', 'u4pr!', None]:
			with self.assertRaises(InvalidCoordinate):
				decode_cell(cell)

	def test_invalid_coordinate_is_a_value_error(self):
		with self.assertRaises(ValueError):
			encode_cell(100, 0)


class ConnectionRegistryTests(SimpleTestCase):
	def setUp(self):
		self.registry = ConnectionRegistry()

	def test_admit_requires_identity(self):
		with self.assertRaises(Unauthenticated):
			self.registry.admit(None, 'chan-anon')
		self.assertIsNone(self.registry.get('chan-anon'))

	def test_admitted_connection_has_no_cell(self):
		connection = self.registry.admit(1, 'chan-1')
		self.assertIsNone(connection.cell)
		self.assertEqual(self.registry.snapshot()['connections'], 1)
		self.assertEqual(self.registry.snapshot()['located'], 0)

	def test_set_location_is_idempotent(self):
		connection = self.registry.admit(1, 'chan-1')
		first = self.registry.set_location(connection, *REPORT_POINT)
		second = self.registry.set_location(connection, *REPORT_POINT)

		self.assertEqual(first, second)
		self.assertEqual(self.registry.members_of(first), {connection})
		self.assertEqual(self.registry.snapshot()['located'], 1)

	def test_move_leaves_previous_cell(self):
		connection = self.registry.admit(1, 'chan-1')
		old_cell = self.registry.set_location(connection, *REPORT_POINT)
		new_cell = self.registry.set_location(connection, *FAR_POINT)

		self.assertNotEqual(old_cell, new_cell)
		self.assertEqual(self.registry.members_of(old_cell), set())
		self.assertEqual(self.registry.members_of(new_cell), {connection})
		self.assertEqual(connection.cell, new_cell)

	def test_invalid_location_keeps_previous_cell(self):
		connection = self.registry.admit(1, 'chan-1')
		cell = self.registry.set_location(connection, *REPORT_POINT)

		with self.assertRaises(InvalidCoordinate):
			self.registry.set_location(connection, 200, 0)
		self.assertEqual(connection.cell, cell)

	def test_release_is_idempotent(self):
		connection = self.registry.admit(1, 'chan-1')
		cell = self.registry.set_location(connection, *REPORT_POINT)

		self.registry.release(connection)
		self.registry.release(connection)
		self.registry.release('chan-unknown')

		self.assertFalse(connection.is_open)
		self.assertEqual(self.registry.members_of(cell), set())
		self.assertEqual(self.registry.all_connections(), set())

	def test_set_location_after_release_raises(self):
		connection = self.registry.admit(1, 'chan-1')
		self.registry.release(connection)
		with self.assertRaises(NotFound):
			self.registry.set_location(connection, *REPORT_POINT)

	def test_same_user_may_hold_several_connections(self):
		phone = self.registry.admit(1, 'chan-phone')
		laptop = self.registry.admit(1, 'chan-laptop')
		self.registry.set_location(phone, *REPORT_POINT)
		self.registry.set_location(laptop, *FAR_POINT)

		self.assertEqual(self.registry.all_connections(), {phone, laptop})
		self.assertEqual(len(self.registry.snapshot()['cells']), 2)


class FanoutDispatcherTests(SimpleTestCase):
	def setUp(self):
		self.registry = ConnectionRegistry()
		self.near_a = self.registry.admit(1, 'chan-near-a')
		self.near_b = self.registry.admit(2, 'chan-near-b')
		self.far = self.registry.admit(3, 'chan-far')
		self.unlocated = self.registry.admit(4, 'chan-unlocated')

		self.registry.set_location(self.near_a, *REPORT_POINT)
		self.registry.set_location(self.near_b, *NEAR_POINT)
		self.registry.set_location(self.far, *FAR_POINT)

	def _event(self, origin=REPORT_POINT):
		return NotificationEvent(kind=EventKind.NEW_CASE, payload={'id': 1}, origin=origin)

	async def test_notify_nearby_reaches_only_nearby_connections(self):
		transport = RecordingTransport()
		dispatcher = FanoutDispatcher(registry=self.registry, transport=transport)

		result = await dispatcher.notify_nearby(self._event())

		self.assertIsInstance(result, DispatchResult)
		self.assertFalse(result.broadcast)
		self.assertEqual(transport.recipients, {'chan-near-a', 'chan-near-b'})
		self.assertEqual(result.delivered, 2)
		self.assertEqual(result.failed, 0)
		self.assertEqual(result.cell, encode_cell(*REPORT_POINT))

	async def test_message_shape(self):
		transport = RecordingTransport()
		dispatcher = FanoutDispatcher(registry=self.registry, transport=transport)

		await dispatcher.notify_nearby(self._event())

		_, message = transport.sent[0]
		self.assertEqual(message, {'type': 'rescue.event', 'event': 'new_report', 'data': {'id': 1}})

	async def test_one_failed_delivery_does_not_stop_the_rest(self):
		transport = RecordingTransport(failing={'chan-near-a'})
		dispatcher = FanoutDispatcher(registry=self.registry, transport=transport)

		result = await dispatcher.notify_nearby(self._event())

		self.assertEqual(transport.recipients, {'chan-near-b'})
		self.assertEqual(result.delivered, 1)
		self.assertEqual(result.failed, 1)

	async def test_missing_origin_broadcasts(self):
		transport = RecordingTransport()
		dispatcher = FanoutDispatcher(registry=self.registry, transport=transport)

		result = await dispatcher.notify_nearby(self._event(origin=None))

		self.assertTrue(result.broadcast)
		self.assertEqual(
			transport.recipients,
			{'chan-near-a', 'chan-near-b', 'chan-far', 'chan-unlocated'},
		)

	async def test_invalid_origin_broadcasts(self):
		transport = RecordingTransport()
		dispatcher = FanoutDispatcher(registry=self.registry, transport=transport)

		result = await dispatcher.notify_nearby(self._event(origin=(200, 0)))

		self.assertTrue(result.broadcast)
		self.assertEqual(result.delivered, 4)

	async def test_empty_rooms_deliver_nothing(self):
		transport = RecordingTransport()
		dispatcher = FanoutDispatcher(registry=self.registry, transport=transport)

		result = await dispatcher.notify_nearby(self._event(origin=(-33.86, 151.21)))

		self.assertEqual(transport.sent, [])
		self.assertEqual(result.recipients, 0)

	async def test_released_connection_is_not_reached(self):
		transport = RecordingTransport()
		dispatcher = FanoutDispatcher(registry=self.registry, transport=transport)
		self.registry.release(self.near_b)

		await dispatcher.notify_nearby(self._event())

		self.assertEqual(transport.recipients, {'chan-near-a'})


class NotificationHelperTests(SimpleTestCase):
	def test_report_event_uses_report_location_and_json_safe_payload(self):
		report = SimpleNamespace(pk=5, latitude=Decimal('18.520000'), longitude=Decimal('73.850000'))

		with patch('realtime.notifications.notify_nearby_sync') as mock_notify:
			notify_report_event(EventKind.CASE_CLAIMED, report, {'report_id': 5, 'lat': Decimal('18.52')})

		event = mock_notify.call_args[0][0]
		self.assertEqual(event.kind, EventKind.CASE_CLAIMED)
		self.assertEqual(event.origin, (Decimal('18.520000'), Decimal('73.850000')))
		self.assertEqual(event.payload, {'report_id': 5, 'lat': '18.52'})

	def test_dispatch_errors_are_logged_not_raised(self):
		report = SimpleNamespace(pk=5, latitude=Decimal('18.52'), longitude=Decimal('73.85'))

		with patch('realtime.notifications.notify_nearby_sync', side_effect=RuntimeError('boom')):
			with self.assertLogs('realtime.notifications', level='ERROR'):
				result = notify_report_event(EventKind.NEW_CASE, report, {})

		self.assertIsNone(result)

	def test_blog_is_broadcast_without_origin(self):
		with patch('realtime.notifications.broadcast_sync') as mock_broadcast:
			broadcast_blog({'id': 3, 'title': 'Adopted!'})

		event = mock_broadcast.call_args[0][0]
		self.assertEqual(event.wire_name, 'new_blog')
		self.assertIsNone(event.origin)


class RescueConsumerTests(SimpleTestCase):
	# channels closes stale DB connections around every consumer message
	databases = {'default'}

	def setUp(self):
		get_connection_registry().clear()
		self.application = JWTAuthMiddleware(URLRouter(websocket_urlpatterns))

	def tearDown(self):
		get_connection_registry().clear()

	def _user(self, user_id=7):
		return SimpleNamespace(id=user_id, is_anonymous=False)

	async def _connect(self, user=None, path='/ws/rescue/?token=abc'):
		with patch('realtime.middleware.resolve_user_from_token') as mock_resolve:
			if user is None:
				mock_resolve.side_effect = Unauthenticated('Invalid token')
			else:
				mock_resolve.return_value = user
			communicator = WebsocketCommunicator(self.application, path)
			connected, _ = await communicator.connect()
		return communicator, connected

	async def test_connection_without_valid_token_is_rejected(self):
		communicator, connected = await self._connect(user=None)

		self.assertFalse(connected)
		self.assertEqual(get_connection_registry().snapshot()['connections'], 0)

	async def test_connection_without_token_is_rejected(self):
		communicator = WebsocketCommunicator(self.application, '/ws/rescue/')
		connected, _ = await communicator.connect()

		self.assertFalse(connected)
		self.assertEqual(get_connection_registry().all_connections(), set())

	async def test_authenticated_connection_is_admitted(self):
		communicator, connected = await self._connect(user=self._user())
		self.assertTrue(connected)

		greeting = await communicator.receive_json_from()
		self.assertEqual(greeting['type'], 'connection_established')
		self.assertEqual(greeting['user_id'], 7)
		self.assertEqual(get_connection_registry().snapshot()['connections'], 1)

		await communicator.disconnect()
		self.assertEqual(get_connection_registry().snapshot()['connections'], 0)

	async def test_set_location_joins_cell(self):
		communicator, _ = await self._connect(user=self._user())
		await communicator.receive_json_from()

		await communicator.send_json_to({'type': 'set_location', 'lat': 18.52, 'lng': 73.85})
		reply = await communicator.receive_json_from()

		self.assertEqual(reply, {'type': 'location_updated', 'cell': encode_cell(*REPORT_POINT)})
		self.assertEqual(len(get_connection_registry().members_of(reply['cell'])), 1)
		await communicator.disconnect()

	async def test_invalid_location_returns_error(self):
		communicator, _ = await self._connect(user=self._user())
		await communicator.receive_json_from()

		await communicator.send_json_to({'type': 'set_location', 'lat': 'north', 'lng': 73.85})
		reply = await communicator.receive_json_from()

		self.assertEqual(reply['type'], 'error')
		self.assertEqual(get_connection_registry().snapshot()['located'], 0)
		await communicator.disconnect()

	async def test_malformed_frame_returns_error_and_keeps_socket(self):
		communicator, _ = await self._connect(user=self._user())
		await communicator.receive_json_from()
		await communicator.send_json_to({'type': 'set_location', 'lat': 18.52, 'lng': 73.85})
		await communicator.receive_json_from()

		await communicator.send_to(text_data='{oops')
		reply = await communicator.receive_json_from()
		self.assertEqual(reply, {'type': 'error', 'message': 'Invalid JSON'})

		await communicator.send_json_to({'type': 'ping'})
		self.assertEqual(await communicator.receive_json_from(), {'type': 'pong'})

		await communicator.disconnect()
		self.assertEqual(
			get_connection_registry().snapshot(),
			{'connections': 0, 'located': 0, 'cells': {}},
		)

	async def test_connection_released_when_handler_crashes(self):
		communicator, _ = await self._connect(user=self._user())
		await communicator.receive_json_from()
		await communicator.send_json_to({'type': 'set_location', 'lat': 18.52, 'lng': 73.85})
		await communicator.receive_json_from()

		with patch(
			'realtime.consumers.base.BaseConsumer.receive',
			side_effect=RuntimeError('handler blew up'),
		):
			await communicator.send_to(text_data='{"type": "ping"}')
			with self.assertRaises(RuntimeError):
				await communicator.wait()

		self.assertEqual(get_connection_registry().snapshot()['connections'], 0)

	async def test_ping_and_unknown_messages(self):
		communicator, _ = await self._connect(user=self._user())
		await communicator.receive_json_from()

		await communicator.send_json_to({'type': 'ping'})
		self.assertEqual(await communicator.receive_json_from(), {'type': 'pong'})

		await communicator.send_json_to({'type': 'dance'})
		reply = await communicator.receive_json_from()
		self.assertEqual(reply['type'], 'error')
		await communicator.disconnect()

	async def test_nearby_event_is_delivered_over_the_channel_layer(self):
		near, _ = await self._connect(user=self._user(1))
		far, _ = await self._connect(user=self._user(2))
		await near.receive_json_from()
		await far.receive_json_from()

		await near.send_json_to({'type': 'set_location', 'lat': NEAR_POINT[0], 'lng': NEAR_POINT[1]})
		await near.receive_json_from()
		await far.send_json_to({'type': 'set_location', 'lat': FAR_POINT[0], 'lng': FAR_POINT[1]})
		await far.receive_json_from()

		event = NotificationEvent(kind=EventKind.NEW_CASE, payload={'id': 42}, origin=REPORT_POINT)
		result = await FanoutDispatcher(registry=get_connection_registry()).notify_nearby(event)

		self.assertEqual(result.delivered, 1)
		self.assertEqual(await near.receive_json_from(), {'type': 'new_report', 'data': {'id': 42}})
		self.assertTrue(await far.receive_nothing())

		await near.disconnect()
		await far.disconnect()


class HealthCheckTests(TestCase):
	def test_health_check_reports_services(self):
		response = self.client.get('/health/')

		self.assertEqual(response.status_code, 200)
		body = response.json()
		self.assertEqual(body['status'], 'healthy')
		self.assertEqual(body['services']['database'], 'healthy')
		self.assertIn('connections', body['services']['realtime'])

	def test_connections_debug_hidden_outside_debug(self):
		response = self.client.get('/health/connections/')
		self.assertEqual(response.status_code, 404)
