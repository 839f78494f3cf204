"""Model exports used by metadata discovery."""

from member_registry.models.admin_user import AdminUser
from member_registry.models.member import Member

__all__ = ["AdminUser", "Member"]
