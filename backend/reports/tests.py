import shutil
import tempfile
from datetime import timedelta
from io import StringIO
from unittest.mock import patch

from django.core.files.uploadedfile import SimpleUploadedFile
from django.core.management import call_command
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIClient

from accounts.models import User
from common.exceptions import Forbidden, InvalidCoordinate, InvalidState, NotFound
from realtime.events import EventKind
from services.case_management import (
	claim_case,
	create_case,
	is_expired,
	list_cases_all,
	list_cases_near,
	respond_to_case,
	update_case_status,
)

from .models import Report, Response


class CaseFixtureMixin:
	def _make_users(self):
		self.reporter = User.objects.create_user(
			username='reporter',
			email='reporter@example.com',
			password='pass12345'
		)
		self.volunteer_one = User.objects.create_user(
			username='volunteer_one',
			email='v1@example.com',
			password='pass12345'
		)
		self.volunteer_two = User.objects.create_user(
			username='volunteer_two',
			email='v2@example.com',
			password='pass12345'
		)

	def _open_case(self, lat=18.52, lon=73.85, **extra):
		return create_case(self.reporter, lat, lon, title='Injured dog', **extra).report

	def _age(self, report, days):
		Report.objects.filter(id=report.id).update(created_at=timezone.now() - timedelta(days=days))
		report.refresh_from_db()


class CaseLifecycleTests(CaseFixtureMixin, TestCase):
	def setUp(self):
		self._make_users()
		self.report = self._open_case()

	def test_new_case_is_open(self):
		self.assertEqual(self.report.status, Report.STATUS_OPEN)
		self.assertEqual(self.report.reporter, self.reporter)
		self.assertEqual(float(self.report.latitude), 18.52)

	def test_create_rejects_invalid_coordinates(self):
		with self.assertRaises(InvalidCoordinate):
			create_case(self.reporter, 95, 73.85)
		with self.assertRaises(InvalidCoordinate):
			create_case(self.reporter, None, 73.85)
		self.assertEqual(Report.objects.count(), 1)

	def test_respond_creates_offer(self):
		result = respond_to_case(self.volunteer_one, self.report.id, 'On my way')

		self.assertTrue(result.success)
		self.assertEqual(result.response.status, Response.STATUS_OFFERED)
		self.assertEqual(result.response.message, 'On my way')

	def test_reporter_cannot_respond_to_own_case(self):
		with self.assertRaises(Forbidden):
			respond_to_case(self.reporter, self.report.id)
		self.assertFalse(Response.objects.exists())

	def test_respond_to_missing_case(self):
		with self.assertRaises(NotFound):
			respond_to_case(self.volunteer_one, 9999)

	def test_not_found_is_an_invalid_state(self):
		with self.assertRaises(InvalidState):
			respond_to_case(self.volunteer_one, 9999)

	def test_claim_accepts_response_and_declines_others(self):
		offer_one = respond_to_case(self.volunteer_one, self.report.id).response
		offer_two = respond_to_case(self.volunteer_two, self.report.id).response

		result = claim_case(self.reporter, self.report.id, offer_one.id)

		offer_one.refresh_from_db()
		offer_two.refresh_from_db()
		self.report.refresh_from_db()
		self.assertTrue(result.success)
		self.assertEqual(self.report.status, Report.STATUS_CLAIMED)
		self.assertEqual(offer_one.status, Response.STATUS_ACCEPTED)
		self.assertEqual(offer_two.status, Response.STATUS_DECLINED)

	def test_only_reporter_may_claim(self):
		offer = respond_to_case(self.volunteer_one, self.report.id).response

		with self.assertRaises(Forbidden):
			claim_case(self.volunteer_one, self.report.id, offer.id)

		self.report.refresh_from_db()
		offer.refresh_from_db()
		self.assertEqual(self.report.status, Report.STATUS_OPEN)
		self.assertEqual(offer.status, Response.STATUS_OFFERED)

	def test_second_claim_on_claimed_case_is_invalid_state(self):
		offer_one = respond_to_case(self.volunteer_one, self.report.id).response
		offer_two = respond_to_case(self.volunteer_two, self.report.id).response
		claim_case(self.reporter, self.report.id, offer_one.id)

		with self.assertRaises(InvalidState):
			claim_case(self.volunteer_two, self.report.id, offer_two.id)
		with self.assertRaises(InvalidState):
			claim_case(self.reporter, self.report.id, offer_two.id)

		offer_one.refresh_from_db()
		self.assertEqual(offer_one.status, Response.STATUS_ACCEPTED)

	def test_claim_with_response_from_another_case(self):
		other = self._open_case(lat=19.0, lon=73.0)
		foreign = respond_to_case(self.volunteer_one, other.id).response

		with self.assertRaises(InvalidState):
			claim_case(self.reporter, self.report.id, foreign.id)

	def test_respond_after_claim_is_invalid_state(self):
		offer = respond_to_case(self.volunteer_one, self.report.id).response
		claim_case(self.reporter, self.report.id, offer.id)

		with self.assertRaises(InvalidState):
			respond_to_case(self.volunteer_two, self.report.id)

	def test_accepted_volunteer_progresses_case(self):
		offer = respond_to_case(self.volunteer_one, self.report.id).response
		claim_case(self.reporter, self.report.id, offer.id)

		update_case_status(self.volunteer_one, self.report.id, Report.STATUS_ARRIVED, response_id=offer.id)
		update_case_status(self.volunteer_one, self.report.id, Report.STATUS_RESOLVED)
		result = update_case_status(self.reporter, self.report.id, Report.STATUS_CLOSED)

		offer.refresh_from_db()
		self.assertEqual(result.report.status, Report.STATUS_CLOSED)
		self.assertEqual(offer.status, Report.STATUS_ARRIVED)

	def test_status_update_requires_claim(self):
		with self.assertRaises(InvalidState):
			update_case_status(self.reporter, self.report.id, Report.STATUS_ARRIVED)

	def test_claimed_status_only_through_claim(self):
		with self.assertRaises(InvalidState):
			update_case_status(self.reporter, self.report.id, Report.STATUS_CLAIMED)

	def test_stranger_cannot_update_status(self):
		offer = respond_to_case(self.volunteer_one, self.report.id).response
		claim_case(self.reporter, self.report.id, offer.id)

		with self.assertRaises(Forbidden):
			update_case_status(self.volunteer_two, self.report.id, Report.STATUS_ARRIVED)

	def test_status_update_with_declined_response(self):
		offer_one = respond_to_case(self.volunteer_one, self.report.id).response
		offer_two = respond_to_case(self.volunteer_two, self.report.id).response
		claim_case(self.reporter, self.report.id, offer_one.id)

		with self.assertRaises(InvalidState):
			update_case_status(self.reporter, self.report.id, Report.STATUS_ARRIVED, response_id=offer_two.id)

	def test_closed_is_terminal(self):
		offer = respond_to_case(self.volunteer_one, self.report.id).response
		claim_case(self.reporter, self.report.id, offer.id)
		update_case_status(self.reporter, self.report.id, Report.STATUS_CLOSED)

		for target in (Report.STATUS_ARRIVED, Report.STATUS_RESOLVED, Report.STATUS_CLOSED):
			with self.assertRaises(InvalidState):
				update_case_status(self.reporter, self.report.id, target)
		with self.assertRaises(InvalidState):
			claim_case(self.reporter, self.report.id, offer.id)

		self.report.refresh_from_db()
		self.assertEqual(self.report.status, Report.STATUS_CLOSED)


class CaseNotificationTests(CaseFixtureMixin, TestCase):
	def setUp(self):
		self._make_users()

	def test_create_notifies_after_commit(self):
		with patch('realtime.notifications.notify_report_event') as mock_notify:
			with self.captureOnCommitCallbacks(execute=True) as callbacks:
				report = self._open_case()

			self.assertEqual(len(callbacks), 1)

		kind, notified_report, payload = mock_notify.call_args[0]
		self.assertEqual(kind, EventKind.NEW_CASE)
		self.assertEqual(notified_report.id, report.id)
		self.assertEqual(payload['id'], report.id)
		self.assertEqual(payload['status'], 'open')

	def test_lifecycle_events(self):
		report = self._open_case()

		with patch('realtime.notifications.notify_report_event') as mock_notify:
			with self.captureOnCommitCallbacks(execute=True):
				offer = respond_to_case(self.volunteer_one, report.id).response
			with self.captureOnCommitCallbacks(execute=True):
				claim_case(self.reporter, report.id, offer.id)
			with self.captureOnCommitCallbacks(execute=True):
				update_case_status(self.reporter, report.id, Report.STATUS_ARRIVED)

		kinds = [call[0][0] for call in mock_notify.call_args_list]
		self.assertEqual(
			kinds,
			[EventKind.NEW_RESPONSE, EventKind.CASE_CLAIMED, EventKind.CASE_STATUS_CHANGED],
		)
		status_payload = mock_notify.call_args_list[-1][0][2]
		self.assertEqual(status_payload['status'], 'arrived')
		self.assertEqual(status_payload['previous_status'], 'claimed')

	def test_rejected_operation_sends_nothing(self):
		report = self._open_case()

		with patch('realtime.notifications.notify_report_event') as mock_notify:
			with self.captureOnCommitCallbacks(execute=True) as callbacks:
				with self.assertRaises(Forbidden):
					respond_to_case(self.reporter, report.id)

		self.assertEqual(callbacks, [])
		mock_notify.assert_not_called()


class CaseQueryTests(CaseFixtureMixin, TestCase):
	def setUp(self):
		self._make_users()
		self.pune = self._open_case(18.52, 73.85)
		self.pune_nearby = self._open_case(18.53, 73.86)
		self.mumbai = self._open_case(19.07, 72.87)

	def test_nearby_uses_radius(self):
		ids = {r.id for r in list_cases_near(18.52, 73.85)}
		self.assertEqual(ids, {self.pune.id, self.pune_nearby.id})

		ids = {r.id for r in list_cases_near(18.52, 73.85, radius_km=200)}
		self.assertIn(self.mumbai.id, ids)

	def test_nearby_requires_coordinates(self):
		with self.assertRaises(InvalidCoordinate):
			list_cases_near(None, 73.85)

	def test_nearby_is_a_box_not_a_circle(self):
		# ~6.4 km away on the diagonal, inside the 5 km box
		corner = self._open_case(18.5605, 73.8928)

		self.assertIn(corner.id, {r.id for r in list_cases_near(18.52, 73.85)})
		self.assertNotIn(corner.id, {r.id for r in list_cases_near(18.52, 73.85, radius_km=4)})

	def test_nearby_rejects_bad_radius(self):
		for radius in (float('nan'), float('inf'), -5):
			with self.assertRaises(InvalidCoordinate):
				list_cases_near(18.52, 73.85, radius_km=radius)

	def test_expiry_is_derived(self):
		self._age(self.pune, days=4)

		self.assertTrue(is_expired(self.pune))
		self.assertFalse(is_expired(self.mumbai))
		self.assertEqual(self.pune.status, Report.STATUS_OPEN)

		self.assertEqual([r.id for r in list_cases_all(expired=True)], [self.pune.id])
		self.assertNotIn(self.pune.id, [r.id for r in list_cases_all(expired=False)])

	def test_claimed_case_never_expires(self):
		offer = respond_to_case(self.volunteer_one, self.pune.id).response
		claim_case(self.reporter, self.pune.id, offer.id)
		self._age(self.pune, days=10)

		self.assertFalse(is_expired(self.pune))

	def test_expired_cases_command_is_read_only(self):
		self._age(self.pune, days=5)
		out = StringIO()

		call_command('report_expired_cases', stdout=out)

		self.assertIn('#%d' % self.pune.id, out.getvalue())
		self.assertIn('1 open reports', out.getvalue())
		self.pune.refresh_from_db()
		self.assertEqual(self.pune.status, Report.STATUS_OPEN)


class ReportApiTests(CaseFixtureMixin, TestCase):
	def setUp(self):
		self._make_users()
		self.client = APIClient()

	def _as(self, user):
		self.client.force_authenticate(user=user)
		return self.client

	def test_create_report(self):
		response = self._as(self.reporter).post('/api/reports/', {
			'title': 'Cat stuck on a roof',
			'latitude': 18.52,
			'longitude': 73.85,
			'severity': 'medium',
		}, format='json')

		self.assertEqual(response.status_code, 201)
		body = response.json()['report']
		self.assertEqual(body['status'], 'open')
		self.assertEqual(body['reporter']['username'], 'reporter')
		self.assertFalse(body['is_expired'])

	def test_create_report_requires_auth(self):
		response = self.client.post('/api/reports/', {'latitude': 18.52, 'longitude': 73.85}, format='json')
		self.assertEqual(response.status_code, 401)

	def test_create_report_rejects_bad_coordinates(self):
		response = self._as(self.reporter).post('/api/reports/', {
			'latitude': 123,
			'longitude': 73.85,
		}, format='json')
		self.assertEqual(response.status_code, 400)

	def test_create_report_with_photo(self):
		media_root = tempfile.mkdtemp()
		self.addCleanup(shutil.rmtree, media_root, ignore_errors=True)
		photo = SimpleUploadedFile('dog.jpg', b'fake-jpeg-bytes', content_type='image/jpeg')

		with override_settings(MEDIA_ROOT=media_root):
			response = self._as(self.reporter).post('/api/reports/', {
				'latitude': '18.52',
				'longitude': '73.85',
				'photos': photo,
			}, format='multipart')

		self.assertEqual(response.status_code, 201)
		self.assertEqual(len(response.json()['report']['photos']), 1)

	@override_settings(MAX_UPLOAD_SIZE=4)
	def test_oversized_photo_rejected(self):
		photo = SimpleUploadedFile('dog.jpg', b'too-large', content_type='image/jpeg')

		response = self._as(self.reporter).post('/api/reports/', {
			'latitude': '18.52',
			'longitude': '73.85',
			'photos': photo,
		}, format='multipart')

		self.assertEqual(response.status_code, 400)
		self.assertFalse(Report.objects.exists())

	def test_list_and_filter(self):
		open_case = self._open_case()
		old_case = self._open_case(lat=18.6)
		self._age(old_case, days=7)

		response = self._as(self.volunteer_one).get('/api/reports/')
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.json()['count'], 2)

		response = self.client.get('/api/reports/?expired=true')
		self.assertEqual([r['id'] for r in response.json()['results']], [old_case.id])

		response = self.client.get('/api/reports/?status=open&expired=false')
		self.assertEqual([r['id'] for r in response.json()['results']], [open_case.id])

		response = self.client.get('/api/reports/?status=claimed')
		self.assertEqual(response.json()['count'], 0)

	def test_nearby_is_public(self):
		near = self._open_case()
		self._open_case(lat=28.61, lon=77.20)

		response = self.client.get('/api/reports/nearby/?lat=18.521&lng=73.851')

		self.assertEqual(response.status_code, 200)
		self.assertEqual([r['id'] for r in response.json()['reports']], [near.id])

	def test_nearby_requires_lat_lng(self):
		response = self.client.get('/api/reports/nearby/?lat=18.5')
		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.json()['error'], 'lat and lng required')

	def test_nearby_rejects_bad_radius(self):
		for radius in ('nan', 'inf', '-5', '0', 'abc', ''):
			response = self.client.get('/api/reports/nearby/?lat=18.52&lng=73.85&radiusKm=%s' % radius)
			self.assertEqual(response.status_code, 400, radius)
			self.assertEqual(response.json()['error'], 'radiusKm must be a positive number')

	def test_mine_lists_own_reports(self):
		mine = self._open_case()
		response = self._as(self.reporter).get('/api/reports/mine/')
		self.assertEqual([r['id'] for r in response.json()['reports']], [mine.id])

		response = self._as(self.volunteer_one).get('/api/reports/mine/')
		self.assertEqual(response.json()['reports'], [])

	def test_detail_not_found(self):
		response = self._as(self.reporter).get('/api/reports/9999/')
		self.assertEqual(response.status_code, 404)

	def test_full_flow_over_http(self):
		report = self._open_case()

		response = self._as(self.volunteer_one).post(
			'/api/reports/%d/respond/' % report.id, {'message': 'Coming'}, format='json'
		)
		self.assertEqual(response.status_code, 201)
		response_id = response.json()['response']['id']

		response = self._as(self.reporter).get('/api/reports/%d/responses/' % report.id)
		self.assertEqual(len(response.json()['responses']), 1)

		response = self._as(self.reporter).post(
			'/api/reports/%d/claim/' % report.id, {'response_id': response_id}, format='json'
		)
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.json()['report']['status'], 'claimed')
		self.assertEqual(response.json()['response']['status'], 'accepted')

		response = self._as(self.volunteer_one).post(
			'/api/reports/%d/status/' % report.id,
			{'status': 'arrived', 'response_id': response_id},
			format='json',
		)
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.json()['report']['status'], 'arrived')

	def test_error_codes(self):
		report = self._open_case()
		offer = respond_to_case(self.volunteer_one, report.id).response

		response = self._as(self.reporter).post('/api/reports/%d/respond/' % report.id, {}, format='json')
		self.assertEqual(response.status_code, 403)

		response = self._as(self.volunteer_two).post(
			'/api/reports/%d/claim/' % report.id, {'response_id': offer.id}, format='json'
		)
		self.assertEqual(response.status_code, 403)

		response = self._as(self.reporter).post(
			'/api/reports/9999/claim/', {'response_id': offer.id}, format='json'
		)
		self.assertEqual(response.status_code, 404)

		claim_case(self.reporter, report.id, offer.id)
		response = self._as(self.volunteer_two).post(
			'/api/reports/%d/claim/' % report.id, {'response_id': offer.id}, format='json'
		)
		self.assertEqual(response.status_code, 409)

		response = self._as(self.reporter).post(
			'/api/reports/%d/status/' % report.id, {'status': 'claimed'}, format='json'
		)
		self.assertEqual(response.status_code, 400)
