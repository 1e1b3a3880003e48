from django.contrib import admin
from django.urls import path, include
from django.conf import settings
from django.conf.urls.static import static

from .views import connections_debug, health_check

urlpatterns = [
    path('admin/', admin.site.urls),
    path("health/", health_check), # Health check endpoint
    path("health/connections/", connections_debug), # Registry snapshot (DEBUG only)
    
    # Authentication endpoints (at /api/auth/)
    path('api/auth/', include('accounts.urls')),  # register, login, refresh, me, OTP
    
    # Rescue reports (create, nearby, respond, claim, status)
    path('api/reports/', include('reports.urls')),

    # Blog posts
    path('api/blogs/', include('blogs.urls')),
]

# Serve uploaded media files in development
if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
