from unittest.mock import patch

from django.test import TestCase
from rest_framework.test import APIClient

from accounts.models import User

from .models import Blog


class BlogApiTests(TestCase):
	def setUp(self):
		self.client = APIClient()
		self.author = User.objects.create_user(
			username='writer',
			email='writer@example.com',
			password='password123'
		)
		self.reader = User.objects.create_user(
			username='reader',
			email='reader@example.com',
			password='password123'
		)

	def test_create_blog_broadcasts_to_everyone(self):
		self.client.force_authenticate(user=self.author)

		with patch('blogs.views.broadcast_blog') as mock_broadcast:
			response = self.client.post('/api/blogs/', {
				'title': 'Bruno found a home',
				'content': 'Adopted after two weeks at the shelter.',
				'tags': 'adoption, dogs',
			}, format='json')

		self.assertEqual(response.status_code, 201)
		blog = response.json()['blog']
		self.assertEqual(blog['author'], 'writer')
		self.assertEqual(blog['tags'], ['adoption', 'dogs'])
		mock_broadcast.assert_called_once()
		self.assertEqual(mock_broadcast.call_args[0][0]['id'], blog['id'])

	def test_title_and_content_required(self):
		self.client.force_authenticate(user=self.author)

		with patch('blogs.views.broadcast_blog') as mock_broadcast:
			response = self.client.post('/api/blogs/', {'title': 'No body'}, format='json')

		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.json()['error'], 'Title and content are required.')
		mock_broadcast.assert_not_called()
		self.assertFalse(Blog.objects.exists())

	def test_create_requires_auth(self):
		response = self.client.post('/api/blogs/', {'title': 'x', 'content': 'y'}, format='json')
		self.assertEqual(response.status_code, 401)

	def test_feed_is_public_and_newest_first(self):
		first = Blog.objects.create(author=self.author, title='First', content='a')
		second = Blog.objects.create(author=self.reader, title='Second', content='b', tags=['cats'])

		response = self.client.get('/api/blogs/')

		self.assertEqual(response.status_code, 200)
		self.assertEqual([b['id'] for b in response.json()['blogs']], [second.id, first.id])

	def test_mine(self):
		mine = Blog.objects.create(author=self.author, title='Mine', content='a')
		Blog.objects.create(author=self.reader, title='Theirs', content='b')
		self.client.force_authenticate(user=self.author)

		response = self.client.get('/api/blogs/mine/')

		self.assertEqual([b['id'] for b in response.json()['blogs']], [mine.id])
