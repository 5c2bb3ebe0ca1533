"""
URL configuration for the exam portal backend.

The API lives under /api/portal/ (see portal.urls), the Django admin under
/admin/. Uploaded media is served by Django only in development.
"""

from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/portal/", include("portal.urls")),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
