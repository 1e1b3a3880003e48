from django.urls import path

from .views import BlogListCreateView, MyBlogsView

app_name = 'blogs'

urlpatterns = [
    path('', BlogListCreateView.as_view(), name='blogs'),
    path('mine/', MyBlogsView.as_view(), name='mine'),
]
