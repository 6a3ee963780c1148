"""
URL configuration for booking_app.
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import (
    ClassSeriesViewSet,
    InstructorViewSet,
    PhysicalRoomViewSet,
    RoomTypeViewSet,
    occurrences_view,
)

router = DefaultRouter()
router.register(r'series', ClassSeriesViewSet)
router.register(r'rooms', PhysicalRoomViewSet)
router.register(r'room-types', RoomTypeViewSet)
router.register(r'instructors', InstructorViewSet)

urlpatterns = [
    path('', include(router.urls)),

    # Booked sessions inside a time window
    path('occurrences/', occurrences_view, name='occurrences'),
]
