"""
errors.py
Exceptions raised by the member store and camera collaborators.
"""


class MemberStoreError(Exception):
    """Base class for persistence failures."""


class ConnectivityError(MemberStoreError):
    pass


class AuthorizationError(MemberStoreError):
    pass


class CameraError(Exception):
    """Base class for camera acquisition failures."""


class CameraPermissionDenied(CameraError):
    pass


class DeviceUnavailable(CameraError):
    pass


class StorageError(Exception):
    """Portrait could not be stored."""
