"""
Binary network errors raised by the services and mapped to HTTP codes by the routes
"""


class BinaryError(Exception):
    """Base class for binary network errors"""
    status_code = 500


class MemberNotFoundError(BinaryError):
    status_code = 404

    def __init__(self, user_id):
        super().__init__(f'Team member not found for user {user_id}')
        self.user_id = user_id


class BinaryValidationError(BinaryError):
    status_code = 400


class SponsorAlreadyAssigned(BinaryError):
    status_code = 409


class TransientStoreError(BinaryError):
    """Persistence failure; the record update was not applied"""
    status_code = 503
