"""
RBAC dependencies for FastAPI routes
Role-based access control implemented as dependencies that run after authentication
"""
from fastapi import HTTPException, status, Request
import logging

logger = logging.getLogger(__name__)

RESOURCES_FOR_ROLES = {
    'admin': {
        'orders': ['read', 'write', 'delete'],
        'chats': ['read', 'write', 'delete'],
        'notifications': ['read', 'write', 'delete'],
    },
    'user': {
        'orders': ['read', 'write'],
        'chats': ['read', 'write'],
        'notifications': ['read', 'write', 'delete'],
    },
    # Suspended accounts keep read access to their history only
    'suspended': {
        'orders': ['read'],
        'chats': ['read'],
        'notifications': ['read'],
    }
}


def normalize_path(path: str) -> str:
    """Normalize request path for RBAC checking"""
    segments = [segment for segment in path.split('/') if segment]
    return segments[0] if segments else ''


def translate_method_to_action(method: str) -> str:
    """Map HTTP methods to RBAC actions"""
    method_permission_mapping = {
        'GET': 'read',
        'POST': 'write',
        'PUT': 'write',
        'PATCH': 'write',
        'DELETE': 'delete',
    }
    return method_permission_mapping.get(method.upper(), 'read')


def has_permission(user_role: str, resource_name: str, required_permission: str) -> bool:
    """Check if user role has permission for the resource and action"""
    if user_role not in RESOURCES_FOR_ROLES:
        return False
    return required_permission in RESOURCES_FOR_ROLES[user_role].get(resource_name, [])


def require_permission(resource: str = None, permission: str = None, allow_anonymous: bool = False):
    """
    Create an RBAC dependency that checks permissions

    Args:
        resource: Specific resource name (auto-detected if not provided)
        permission: Specific permission (auto-detected if not provided)
        allow_anonymous: let requests without a resolved user through
    """
    def check_rbac(request: Request):
        current_user = getattr(request.state, 'current_user', None)
        if not current_user:
            if allow_anonymous:
                return True
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Not authenticated"
            )

        user_role = current_user.get('role') or 'user'
        resource_name = resource or normalize_path(str(request.url.path))
        required_permission = permission or translate_method_to_action(request.method)

        if not has_permission(user_role, resource_name, required_permission):
            logger.warning(f"Access denied - User: {user_role}, Resource: {resource_name}, Permission: {required_permission}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. {user_role.title()} role does not have {required_permission} permission for {resource_name}"
            )

        logger.debug(f"Access granted - User: {user_role}, Resource: {resource_name}, Permission: {required_permission}")
        return True

    return check_rbac


# Order permissions
require_orders_read = require_permission("orders", "read")
require_orders_write = require_permission("orders", "write")
require_orders_read_optional = require_permission("orders", "read", allow_anonymous=True)

# Chat permissions
require_chats_read = require_permission("chats", "read")
require_chats_write = require_permission("chats", "write")

# Notification permissions
require_notifications_read = require_permission("notifications", "read")
require_notifications_write = require_permission("notifications", "write")
require_notifications_delete = require_permission("notifications", "delete")
