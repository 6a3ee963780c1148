"""
URL configuration for the class scheduler site.
"""

from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/', include('booking_app.urls')),
]
