"""
Auth API Client.

Synchronous ``httpx`` wrapper around the backend ``/auth`` endpoints.
Responses are validated into the shared wire models; every failure is
raised as an :class:`ApiError` subclass so the auth controller can map
it onto an ``AuthErrorCode`` without inspecting transport exceptions.
"""

from __future__ import annotations

from typing import Optional, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from campus_connect.logger import StructuredLogger
from campus_connect.models.api_models import (
    AuthenticatedUserResponse,
    LoginRequest,
    OtpDispatchResponse,
    ProfileUpdateRequest,
    RegisterRequest,
    ResendOtpRequest,
    VerifyOtpRequest,
)
from campus_connect.models.user import User

ModelT = TypeVar("ModelT", bound=BaseModel)


class ApiError(Exception):
    """The backend answered with an error, or could not be understood.

    Attributes
    ----------
    status_code:
        HTTP status, or ``0`` when no response was received.
    message:
        Human-readable message from the error body.
    error_code:
        Machine-readable ``error_code`` from the body, when present.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code


class ApiTimeoutError(ApiError):
    """The request timed out."""


class ApiUnavailableError(ApiError):
    """The backend could not be reached at all."""


class AuthApiClient:
    """Calls the identity endpoints.

    Parameters
    ----------
    base_url:
        Backend origin, e.g. ``http://127.0.0.1:5000``.
    logger:
        Structured logger.
    timeout:
        Per-request timeout in seconds.
    client:
        Pre-built ``httpx.Client``.  When given, ``base_url`` and
        ``timeout`` are ignored and the caller owns its lifecycle.
    """

    def __init__(
        self,
        base_url: str,
        logger: StructuredLogger,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._logger = logger
        self._owns_client = client is None
        self._client: httpx.Client = client or httpx.Client(
            base_url=base_url, timeout=timeout,
        )

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    def login(self, request: LoginRequest) -> AuthenticatedUserResponse:
        return self._send(
            "POST", "/auth/login", AuthenticatedUserResponse, body=request,
        )

    def send_otp(self, request: RegisterRequest) -> OtpDispatchResponse:
        return self._send("POST", "/auth/send-otp", OtpDispatchResponse, body=request)

    def resend_otp(self, request: ResendOtpRequest) -> OtpDispatchResponse:
        return self._send("POST", "/auth/resend-otp", OtpDispatchResponse, body=request)

    def verify_otp(self, request: VerifyOtpRequest) -> AuthenticatedUserResponse:
        return self._send(
            "POST", "/auth/verify-otp", AuthenticatedUserResponse, body=request,
        )

    def me(self, token: str) -> User:
        return self._send("GET", "/auth/me", User, token=token)

    def update_profile(
        self, token: str, request: ProfileUpdateRequest,
    ) -> AuthenticatedUserResponse:
        return self._send(
            "PUT",
            "/auth/profile",
            AuthenticatedUserResponse,
            body=request,
            token=token,
            exclude_none=True,
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _send(
        self,
        method: str,
        path: str,
        response_model: type[ModelT],
        body: Optional[BaseModel] = None,
        token: Optional[str] = None,
        exclude_none: bool = False,
    ) -> ModelT:
        headers: dict[str, str] = {}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        payload = (
            body.model_dump(mode="json", exclude_none=exclude_none)
            if body is not None else None
        )

        try:
            response = self._client.request(method, path, json=payload, headers=headers)
        except httpx.TimeoutException as exc:
            self._logger.warning("%s %s timed out: %s", method, path, exc)
            raise ApiTimeoutError("The server took too long to respond.") from exc
        except httpx.TransportError as exc:
            self._logger.warning("%s %s failed: %s", method, path, exc)
            raise ApiUnavailableError(
                "Cannot reach the server. Check your connection.",
            ) from exc

        if response.is_error:
            raise self._error_from(response)

        try:
            return response_model.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            self._logger.error(
                "Unexpected response body from %s %s: %s", method, path, exc,
            )
            raise ApiError(
                "Received an unexpected response from the server.",
                status_code=response.status_code,
            ) from exc

    def _error_from(self, response: httpx.Response) -> ApiError:
        message = f"Request failed with status {response.status_code}."
        error_code: Optional[str] = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            message = str(body.get("message") or body.get("detail") or message)
            raw_code = body.get("error_code")
            error_code = str(raw_code) if raw_code else None

        self._logger.debug(
            "API error %d (%s): %s", response.status_code, error_code, message,
        )
        return ApiError(message, status_code=response.status_code, error_code=error_code)
