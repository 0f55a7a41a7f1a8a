from rest_framework import permissions


class HasRole(permissions.BasePermission):
    """
    Allows access to authenticated users whose role is in ``allowed_roles``.
    Users of a suspended or inactive school are blocked.
    """
    allowed_roles = ()
    message = "Access denied"

    def has_permission(self, request, view):
        # 1. User must be logged in
        if not request.user or not request.user.is_authenticated:
            return False

        # 2. Tenant must be usable (head admins have no school)
        school = getattr(request.user, 'school', None)
        if school is not None and not school.is_active:
            self.message = "Your school account is not active"
            return False

        # 3. Check Role
        return getattr(request.user, 'role', '') in self.allowed_roles


class IsHeadAdmin(HasRole):
    allowed_roles = ('headadmin',)


class IsSchoolAdmin(HasRole):
    allowed_roles = ('admin', 'director')


class IsSchoolStaff(HasRole):
    allowed_roles = ('admin', 'director', 'coordinator', 'teacher')


class IsTeacherOrSchoolAdmin(HasRole):
    allowed_roles = ('teacher', 'admin', 'director')


class IsStudent(HasRole):
    allowed_roles = ('student',)


class IsSchoolMember(HasRole):
    allowed_roles = ('admin', 'director', 'coordinator', 'teacher', 'student')
