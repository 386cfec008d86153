"""Firebase Cloud Messaging (HTTP v1) client."""

import logging
import os

import requests
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import AuthorizedSession
from google.oauth2 import service_account

from guardiant.config import (
    FIREBASE_PROJECT_ID,
    GOOGLE_APPLICATION_CREDENTIALS,
    FCM_TIMEOUT,
)


logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/firebase.messaging"]

# FCM error codes meaning the registration token will never work again
INVALID_TOKEN_ERRORS = {"UNREGISTERED", "INVALID_ARGUMENT"}


class PushDeliveryError(Exception):
    pass


class InvalidTokenError(PushDeliveryError):
    """The provider reports the token unregistered or invalid."""


class FcmGateway:

    def __init__(self, project_id: str, session=None, timeout: int = FCM_TIMEOUT):
        self.project_id = project_id
        self.session = session
        self.timeout = timeout

    @classmethod
    def from_service_account_file(cls, path: str, project_id: str):
        creds = service_account.Credentials.from_service_account_file(
            path, scopes=SCOPES
        )
        return cls(project_id, AuthorizedSession(creds))

    @property
    def url(self):
        return f"https://fcm.googleapis.com/v1/projects/{self.project_id}/messages:send"

    def send(self, token: str, data: dict, notification: dict = None) -> str:
        """
        Send one message to `token` and return the provider message name.

        Without `notification` the message is data-only and silent.
        Raises InvalidTokenError / PushDeliveryError.
        """

        if self.session is None:
            raise PushDeliveryError("FCM credentials not configured")

        message = {
            "token": token,
            # FCM data values must be strings
            "data": {k: str(v) for k, v in (data or {}).items()},
        }

        if notification:
            message["notification"] = notification
        else:
            message["android"] = {"priority": "high"}
            message["apns"] = {
                "headers": {
                    "apns-push-type": "background",
                    "apns-priority": "5",
                },
                "payload": {"aps": {"content-available": 1}},
            }

        try:
            r = self.session.post(
                self.url,
                json={"message": message},
                timeout=self.timeout,
            )
        except (requests.RequestException, GoogleAuthError) as e:
            raise PushDeliveryError(f"FCM request failed: {e}") from e

        logger.info("[PUSH V1] code=%s resp=%s", r.status_code, r.text[:400])

        if 200 <= r.status_code < 300:
            return r.json().get("name")

        error_code = _error_code(r)

        if error_code in INVALID_TOKEN_ERRORS:
            raise InvalidTokenError(error_code)

        raise PushDeliveryError(f"FCM returned {r.status_code} ({error_code})")


def _error_code(response):

    try:
        error = response.json().get("error", {})
    except ValueError:
        return None

    for detail in error.get("details", []):
        if detail.get("errorCode"):
            return detail["errorCode"]

    return error.get("status")


def build_push_gateway():

    if not os.path.exists(GOOGLE_APPLICATION_CREDENTIALS):
        logger.warning(
            "FCM credentials %s not found, push delivery disabled",
            GOOGLE_APPLICATION_CREDENTIALS,
        )
        return FcmGateway(FIREBASE_PROJECT_ID)

    return FcmGateway.from_service_account_file(
        GOOGLE_APPLICATION_CREDENTIALS, FIREBASE_PROJECT_ID
    )
