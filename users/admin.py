from django.contrib import admin
from django.contrib.auth.admin import UserAdmin

from .models import User, StudentProfile


@admin.register(User)
class SchoolUserAdmin(UserAdmin):
    list_display = ('email', 'first_name', 'last_name', 'role', 'school', 'is_active')
    list_filter = ('role', 'school', 'is_active')
    fieldsets = UserAdmin.fieldsets + (
        ('School', {'fields': ('role', 'school', 'phone_number', 'bio', 'avatar')}),
    )


admin.site.register(StudentProfile)
