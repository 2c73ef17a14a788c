from rest_framework.permissions import BasePermission


class _RolePermission(BasePermission):
    role_check = None

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and getattr(user, self.role_check))


class IsStudent(_RolePermission):
    message = 'Only students can access this endpoint'
    role_check = 'is_student'


class IsTutor(_RolePermission):
    message = 'Only tutors can access this endpoint'
    role_check = 'is_tutor'


class IsStaffRole(_RolePermission):
    """Managers, admins and owners"""
    message = 'Staff access required'
    role_check = 'is_staff_role'


class IsAdminRole(_RolePermission):
    """Admins and owners"""
    message = 'Admin access required'
    role_check = 'is_admin_role'


class IsTutorOrStaff(BasePermission):
    message = 'Tutor or staff access required'

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and (user.is_tutor or user.is_staff_role))
