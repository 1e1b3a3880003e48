import time
from unittest.mock import patch

from django.conf import settings
from django.core import mail
from django.test import TestCase
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from common.exceptions import Unauthenticated

from .authentication import resolve_user_from_token
from .models import User
from .otp import issue_otp, validate_otp


class AuthApiTests(TestCase):
	def setUp(self):
		self.client = APIClient()
		self.user = User.objects.create_user(
			username='jane',
			email='jane@example.com',
			password='password123'
		)

	def test_register_returns_tokens(self):
		response = self.client.post('/api/auth/register/', {
			'username': 'sam',
			'email': 'Sam@Example.com',
			'password': 'password123',
			'favourite_animal': 'cat',
		}, format='json')

		self.assertEqual(response.status_code, 201)
		self.assertIn('access', response.json()['tokens'])
		self.assertEqual(User.objects.get(username='sam').email, 'sam@example.com')

	def test_register_rejects_duplicate_email_and_short_password(self):
		response = self.client.post('/api/auth/register/', {
			'username': 'other',
			'email': 'JANE@example.com',
			'password': 'password123',
		}, format='json')
		self.assertEqual(response.status_code, 400)
		self.assertIn('email', response.json())

		response = self.client.post('/api/auth/register/', {
			'username': 'other',
			'email': 'other@example.com',
			'password': 'short',
		}, format='json')
		self.assertEqual(response.status_code, 400)
		self.assertIn('password', response.json())

	def test_login_with_username_or_email(self):
		for identifier in ('jane', 'jane@example.com'):
			response = self.client.post('/api/auth/login/', {
				'username': identifier,
				'password': 'password123',
			}, format='json')
			self.assertEqual(response.status_code, 200)
			self.assertEqual(response.json()['user']['username'], 'jane')

	def test_login_with_wrong_password(self):
		response = self.client.post('/api/auth/login/', {
			'username': 'jane',
			'password': 'nope',
		}, format='json')
		self.assertEqual(response.status_code, 400)

	def test_refresh(self):
		refresh = RefreshToken.for_user(self.user)
		response = self.client.post('/api/auth/refresh/', {'refresh': str(refresh)}, format='json')
		self.assertEqual(response.status_code, 200)
		self.assertIn('access', response.json())

		response = self.client.post('/api/auth/refresh/', {'refresh': 'garbage'}, format='json')
		self.assertEqual(response.status_code, 401)

	def test_me_requires_token(self):
		response = self.client.get('/api/auth/me/')
		self.assertEqual(response.status_code, 401)

		access = str(RefreshToken.for_user(self.user).access_token)
		self.client.credentials(HTTP_AUTHORIZATION='Bearer ' + access)
		response = self.client.get('/api/auth/me/')
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.json()['email'], 'jane@example.com')

		response = self.client.patch('/api/auth/me/', {'favourite_animal': 'owl'}, format='json')
		self.assertEqual(response.status_code, 200)
		self.user.refresh_from_db()
		self.assertEqual(self.user.favourite_animal, 'owl')


class OtpTests(TestCase):
	def setUp(self):
		self.client = APIClient()
		self.user = User.objects.create_user(
			username='jane',
			email='jane@example.com',
			password='password123'
		)

	def test_code_is_single_use(self):
		code = issue_otp('jane@example.com')

		self.assertEqual(len(code), 6)
		self.assertFalse(validate_otp('jane@example.com', '000000' if code != '000000' else '111111'))
		self.assertTrue(validate_otp('JANE@example.com', code))
		self.assertFalse(validate_otp('jane@example.com', code))

	def test_code_expires_after_ttl(self):
		code = issue_otp('jane@example.com')
		expired_at = time.time() + settings.OTP_TTL_SECONDS + 1

		with patch('django.core.cache.backends.locmem.time') as mock_time:
			mock_time.time.return_value = expired_at
			self.assertFalse(validate_otp('jane@example.com', code))
			response = self.client.post('/api/auth/verify-otp/', {
				'email': 'jane@example.com',
				'code': code,
			}, format='json')

		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.json()['error'], 'INVALID_OR_EXPIRED_OTP')
		self.user.refresh_from_db()
		self.assertFalse(self.user.email_verified)

	def test_code_still_valid_before_ttl(self):
		code = issue_otp('jane@example.com')

		with patch('django.core.cache.backends.locmem.time') as mock_time:
			mock_time.time.return_value = time.time() + settings.OTP_TTL_SECONDS - 5
			self.assertTrue(validate_otp('jane@example.com', code))

	def test_request_and_verify_over_http(self):
		response = self.client.post('/api/auth/request-otp/', {'email': 'jane@example.com'}, format='json')

		self.assertEqual(response.status_code, 200)
		self.assertEqual(len(mail.outbox), 1)
		code = mail.outbox[0].body.split('code is ')[1][:6]

		response = self.client.post('/api/auth/verify-otp/', {
			'email': 'jane@example.com',
			'code': code,
		}, format='json')
		self.assertEqual(response.status_code, 200)
		self.assertIn('access', response.json()['tokens'])
		self.user.refresh_from_db()
		self.assertTrue(self.user.email_verified)

		response = self.client.post('/api/auth/verify-otp/', {
			'email': 'jane@example.com',
			'code': code,
		}, format='json')
		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.json()['error'], 'INVALID_OR_EXPIRED_OTP')

	def test_verify_unknown_user(self):
		code = issue_otp('ghost@example.com')
		response = self.client.post('/api/auth/verify-otp/', {
			'email': 'ghost@example.com',
			'code': code,
		}, format='json')
		self.assertEqual(response.status_code, 404)

	def test_request_requires_valid_email(self):
		response = self.client.post('/api/auth/request-otp/', {'email': 'not-an-email'}, format='json')
		self.assertEqual(response.status_code, 400)
		self.assertEqual(len(mail.outbox), 0)


class ResolveUserFromTokenTests(TestCase):
	def setUp(self):
		self.user = User.objects.create_user(username='jane', password='password123')

	def test_valid_token(self):
		access = str(RefreshToken.for_user(self.user).access_token)

		self.assertEqual(resolve_user_from_token(access), self.user)
		self.assertEqual(resolve_user_from_token('Bearer ' + access), self.user)

	def test_missing_or_malformed_token(self):
		for token in (None, '', 'not-a-jwt', 'Bearer '):
			with self.assertRaises(Unauthenticated):
				resolve_user_from_token(token)

	def test_inactive_or_deleted_user(self):
		access = str(RefreshToken.for_user(self.user).access_token)

		self.user.is_active = False
		self.user.save()
		with self.assertRaises(Unauthenticated):
			resolve_user_from_token(access)

		self.user.delete()
		with self.assertRaises(Unauthenticated):
			resolve_user_from_token(access)
