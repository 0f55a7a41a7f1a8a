from rest_framework import status
from rest_framework.exceptions import APIException


class TestNotAvailable(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "This test is not available."
    default_code = 'test_not_available'


class RetakeNotAllowed(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "You have already taken this test and retakes are not allowed."
    default_code = 'retake_not_allowed'
    extra_fields = ('redirect',)

    def __init__(self, redirect, detail=None):
        super().__init__(detail)
        self.redirect = redirect


class NoActiveAttempt(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "No attempt in progress for this test. Start the test first."
    default_code = 'no_active_attempt'


class AlreadySubmitted(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "This test has already been submitted."
    default_code = 'already_submitted'


class SubmissionDeadlinePassed(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "The time allowed for this attempt has passed."
    default_code = 'deadline_passed'


class InvalidGrade(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid grade."
    default_code = 'invalid_grade'
