from django.contrib import admin

from .models import ClassSeries, ClassSession, Instructor, PhysicalRoom, RoomType, SeriesException


@admin.register(RoomType)
class RoomTypeAdmin(admin.ModelAdmin):
    list_display = ['name', 'created_at']
    search_fields = ['name']


@admin.register(PhysicalRoom)
class PhysicalRoomAdmin(admin.ModelAdmin):
    list_display = ['name', 'room_type', 'seating_capacity']
    list_filter = ['room_type']
    search_fields = ['name']


@admin.register(Instructor)
class InstructorAdmin(admin.ModelAdmin):
    list_display = ['name', 'email', 'created_at']
    search_fields = ['name', 'email']


class ClassSessionInline(admin.TabularInline):
    model = ClassSession
    extra = 0
    fields = ['start', 'end', 'original_start']


@admin.register(ClassSeries)
class ClassSeriesAdmin(admin.ModelAdmin):
    list_display = ['title', 'recurrence_type', 'room', 'instructor', 'series_start', 'series_end', 'created_at']
    list_filter = ['recurrence_type', 'room', 'instructor', 'created_at']
    search_fields = ['title']
    readonly_fields = ['created_at', 'updated_at']
    ordering = ['-created_at']
    inlines = [ClassSessionInline]


@admin.register(SeriesException)
class SeriesExceptionAdmin(admin.ModelAdmin):
    list_display = ['series', 'original_start', 'status', 'new_start', 'reason', 'created_at']
    list_filter = ['status', 'created_at']
    search_fields = ['series__title', 'reason']
    readonly_fields = ['created_at', 'updated_at']
    ordering = ['-created_at']


@admin.register(ClassSession)
class ClassSessionAdmin(admin.ModelAdmin):
    list_display = ['series', 'start', 'end', 'original_start']
    list_filter = ['series__room', 'series__instructor']
    search_fields = ['series__title']
    ordering = ['start']
