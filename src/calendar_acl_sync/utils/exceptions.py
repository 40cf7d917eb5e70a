"""Custom exceptions for Calendar ACL Sync application."""


class CalendarAclSyncError(Exception):
    """Base exception for calendar ACL sync errors."""


class ValidationError(CalendarAclSyncError):
    """Raised when a caller supplies an invalid course code or mapping."""


class StoreError(CalendarAclSyncError):
    """Raised when a roster or mapping query fails."""


class ACLServiceError(CalendarAclSyncError):
    """Raised when the calendar permission API fails."""


class AuthenticationError(ACLServiceError):
    """Raised when acquiring a calendar API token fails."""


class ConfigurationError(CalendarAclSyncError):
    """Raised when configuration is invalid."""
