"""Typed wrappers around the ``/api/v1/auth`` endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .models import AuthData, User

if TYPE_CHECKING:
    from .client import AsyncPravaClient


class AuthAPI:
    """Authentication endpoints.

    Calls that complete a sign-in return ``AuthData``; hand it to
    ``SessionManager.save_auth_data`` to start the session.
    """

    def __init__(self, client: AsyncPravaClient) -> None:
        self._client = client
        self.base_url = client.config.auth_prefix

    async def _post(self, path: str, body: dict[str, Any]) -> Any:
        return await self._client.request_data("POST", f"{self.base_url}{path}", json=body)

    async def _get(self, path: str) -> Any:
        return await self._client.request_data("GET", f"{self.base_url}{path}")

    async def login(self, identifier: str, password: str) -> AuthData:
        """Sign in with phone number or email and password."""
        data = await self._post("/login", {"identifier": identifier, "password": password})
        return AuthData.model_validate(data)

    async def register_init(
        self,
        *,
        phone_number: str | None = None,
        email: str | None = None,
    ) -> Any:
        """Start registration; the server sends a verification code."""
        body: dict[str, Any] = {}
        if phone_number:
            body["phoneNumber"] = phone_number
        if email:
            body["email"] = email
        if not body:
            msg = "phone_number or email is required"
            raise ValueError(msg)
        return await self._post("/register/init", body)

    async def register_complete(
        self,
        identifier: str,
        code: str,
        first_name: str,
        password: str,
        *,
        last_name: str | None = None,
    ) -> AuthData:
        """Finish registration with the verification code."""
        body: dict[str, Any] = {
            "identifier": identifier,
            "code": code,
            "firstName": first_name,
            "password": password,
        }
        if last_name:
            body["lastName"] = last_name
        data = await self._post("/register/complete", body)
        return AuthData.model_validate(data)

    async def logout(self, refresh_token: str) -> Any:
        """Revoke a refresh credential on the server."""
        return await self._post("/logout", {"refreshToken": refresh_token})

    async def get_me(self) -> User:
        """Profile of the signed-in user."""
        return User.model_validate(await self._get("/me"))

    async def get_config(self) -> Any:
        """Public auth configuration (enabled sign-in methods)."""
        return await self._get("/config")

    async def change_password(self, current_password: str, new_password: str) -> Any:
        return await self._post(
            "/change-password",
            {"currentPassword": current_password, "newPassword": new_password},
        )

    async def forgot_password(self, identifier: str) -> Any:
        return await self._post("/forgot-password", {"identifier": identifier})

    async def reset_password(self, identifier: str, code: str, new_password: str) -> Any:
        return await self._post(
            "/reset-password",
            {"identifier": identifier, "code": code, "newPassword": new_password},
        )

    async def google_login(self, id_token: str) -> AuthData:
        """Sign in with a Google ID token."""
        data = await self._post("/google", {"idToken": id_token})
        return AuthData.model_validate(data)

    async def telegram_login(self, widget_data: dict[str, Any]) -> AuthData:
        """Sign in with Telegram login widget data."""
        data = await self._post("/telegram", widget_data)
        return AuthData.model_validate(data)

    async def telegram_token_login(self, token: str) -> AuthData:
        """Sign in with a one-time token issued by the Telegram bot."""
        data = await self._post("/telegram/token-login", {"token": token})
        return AuthData.model_validate(data)
