from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import User, UserProfile


class UserProfileInline(admin.StackedInline):
    model = UserProfile
    can_delete = False
    extra = 0


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ['email', 'first_name', 'last_name', 'role', 'is_active', 'created_at', 'last_login_at']
    list_filter = ['role', 'is_active', 'is_staff', 'created_at']
    search_fields = ['email', 'first_name', 'last_name', 'firebase_uid']
    ordering = ['-created_at']
    readonly_fields = ['created_at', 'updated_at', 'last_login_at']
    inlines = [UserProfileInline]
    actions = ['make_students', 'make_tutors', 'deactivate_users']

    fieldsets = (
        ('Account', {
            'fields': ('email', 'password', 'firebase_uid', 'role')
        }),
        ('Personal Information', {
            'fields': ('first_name', 'last_name')
        }),
        ('Permissions', {
            'fields': ('is_active', 'is_staff', 'is_superuser', 'groups', 'user_permissions'),
            'classes': ('collapse',)
        }),
        ('Metadata', {
            'fields': ('created_at', 'updated_at', 'last_login_at'),
            'classes': ('collapse',)
        }),
    )
    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': ('email', 'role', 'password1', 'password2'),
        }),
    )

    def make_students(self, request, queryset):
        updated = queryset.update(role=User.Role.STUDENT)
        self.message_user(request, f'{updated} users were changed to students.')
    make_students.short_description = "Set role to Student"

    def make_tutors(self, request, queryset):
        updated = queryset.update(role=User.Role.TUTOR)
        self.message_user(request, f'{updated} users were changed to tutors.')
    make_tutors.short_description = "Set role to Tutor"

    def deactivate_users(self, request, queryset):
        updated = queryset.update(is_active=False)
        self.message_user(request, f'{updated} users were deactivated.')
    deactivate_users.short_description = "Deactivate selected users"


@admin.register(UserProfile)
class UserProfileAdmin(admin.ModelAdmin):
    list_display = ['user', 'phone', 'whatsapp', 'telegram', 'specialization', 'updated_at']
    search_fields = ['user__email', 'user__first_name', 'user__last_name', 'phone', 'whatsapp', 'telegram']
    readonly_fields = ['created_at', 'updated_at']
