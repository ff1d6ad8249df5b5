from rest_framework import permissions

from .models import Profile, user_role


class IsAdminRole(permissions.BasePermission):
    def has_permission(self, request, view):
        return user_role(request.user) == Profile.Role.ADMIN


class IsApprovedOrganizer(permissions.BasePermission):
    """
    Approved organizers and admins may create events.
    """
    message = 'Only approved organizers can create events.'

    def has_permission(self, request, view):
        role = user_role(request.user)
        if role == Profile.Role.ADMIN:
            return True
        return role == Profile.Role.ORGANIZER and request.user.profile.is_approved


class IsEventOwnerOrAdmin(permissions.BasePermission):
    """
    Writes to an event, or to a registration or feedback row attached to
    one, belong to the event's organizer and to admins.
    """
    def has_object_permission(self, request, view, obj):
        # Anyone may read
        if request.method in permissions.SAFE_METHODS:
            return True

        event = getattr(obj, 'event', obj)
        return event.organizer_id == request.user.pk or user_role(request.user) == Profile.Role.ADMIN
