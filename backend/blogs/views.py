import logging

from django.db import transaction
from rest_framework import status
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from realtime.notifications import broadcast_blog
from reports.serializers import validate_uploads
from .models import Blog, BlogMedia
from .serializers import BlogCreateSerializer, BlogSerializer

logger = logging.getLogger(__name__)

FEED_LIMIT = 50


def _media_kind(upload):
    content_type = getattr(upload, 'content_type', '') or ''
    if content_type.startswith('image/'):
        return 'photo'
    if content_type.startswith('video/'):
        return 'video'
    return None


class BlogListCreateView(APIView):
    """
    GET:  Blog feed, newest first
    POST: Create a blog post (title + content required, media files optional)
    """
    parser_classes = [MultiPartParser, FormParser, JSONParser]

    def get_permissions(self):
        if self.request.method == 'GET':
            return [AllowAny()]
        return [IsAuthenticated()]

    def get(self, request):
        blogs = Blog.objects.select_related('author').prefetch_related('media')[:FEED_LIMIT]
        return Response({'blogs': BlogSerializer(blogs, many=True, context={'request': request}).data})

    def post(self, request):
        serializer = BlogCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {'error': 'Title and content are required.', 'details': serializer.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )

        uploads = [f for key in request.FILES for f in request.FILES.getlist(key)]
        validate_uploads(uploads)

        with transaction.atomic():
            blog = Blog.objects.create(
                author=request.user,
                title=serializer.validated_data['title'],
                content=serializer.validated_data['content'],
                tags=serializer.validated_data.get('tags', []),
            )
            for upload in uploads:
                kind = _media_kind(upload)
                if kind is None:
                    logger.info("Ignoring upload %s with type %s", upload.name, upload.content_type)
                    continue
                BlogMedia.objects.create(blog=blog, file=upload, kind=kind)

        data = BlogSerializer(blog, context={'request': request}).data
        broadcast_blog(dict(data))

        return Response({'blog': data}, status=status.HTTP_201_CREATED)


class MyBlogsView(APIView):
    """GET: Blogs written by the current user"""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        blogs = Blog.objects.filter(author=request.user).prefetch_related('media')
        return Response({'blogs': BlogSerializer(blogs, many=True, context={'request': request}).data})
