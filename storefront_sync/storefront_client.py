"""Client for the storefront backend's auth, profile and subscription endpoints."""

import json
import logging
from typing import Any, Optional

import httpx

from .auth import AuthManager
from .errors import AuthenticationError, DecodeError, NetworkError, ServerError
from .models import AuthCredentials, AuthResult, SessionContext
from .subscription import coerce_subscriptions, is_subscription_active

logger = logging.getLogger(__name__)


class StorefrontClient:
    """Client for the storefront backend's user endpoints.

    This is the only place bearer tokens are obtained. A successful sign-in or
    sign-up is persisted through the AuthManager.
    """

    LOGIN_PATH = "/api/login"
    SIGNUP_PATH = "/api/signup"
    PROFILE_PATH = "/api/user/profile"
    CURRENT_SUBSCRIPTION_PATH = "/api/current-subscription"
    SUBSCRIPTIONS_PATH = "/api/user-subscriptions"

    def __init__(
        self,
        context: SessionContext,
        auth_manager: AuthManager,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            context: Session identity; tenant and app ids are sent with sign-in
            auth_manager: Where the signed-in session is persisted
            timeout: Request timeout in seconds
            transport: Optional httpx transport, used by tests
        """
        self.context = context
        self.auth_manager = auth_manager
        self.client = httpx.AsyncClient(
            base_url=context.api_base,
            timeout=timeout,
            follow_redirects=True,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            transport=transport,
        )

    @property
    def token(self) -> Optional[str]:
        return self.auth_manager.get_token() or self.context.auth_token

    def _auth_headers(self) -> dict[str, str]:
        token = self.token
        if not token:
            raise AuthenticationError("Not signed in")
        return {"Authorization": f"Bearer {token}"}

    def _tenant_fields(self) -> dict[str, str]:
        fields = {"adminId": self.context.tenant_id}
        if self.context.app_id:
            fields["appId"] = self.context.app_id
        return fields

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self.client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise NetworkError(f"Timed out calling {path}: {e}") from e
        except httpx.TransportError as e:
            raise NetworkError(f"Could not reach {self.context.api_base}: {e}") from e

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DecodeError(f"Response body is not valid JSON: {e}") from e

    def _auth_result(self, response: httpx.Response, ok: bool) -> AuthResult:
        data = self._decode(response)
        token = None
        user_id = None
        message = None
        if isinstance(data, dict):
            token = data.get("token")
            user = data.get("user")
            if isinstance(user, dict) and user.get("_id") is not None:
                user_id = str(user["_id"])
            message = data.get("message") or data.get("error")
        else:
            data = {"body": data}
        return AuthResult(
            success=ok and bool(token),
            token=str(token) if token else None,
            user_id=user_id,
            message=str(message) if message else None,
            data=data,
        )

    async def login(self, credentials: AuthCredentials) -> AuthResult:
        """
        Sign in and persist the issued token.

        Args:
            credentials: User credentials (email and password)

        Returns:
            The sign-in result

        Raises:
            AuthenticationError: If the backend rejects the credentials
            NetworkError: If the backend is unreachable
        """
        logger.info(f"Signing in {credentials.email}")
        payload = {"email": credentials.email, "password": credentials.password, **self._tenant_fields()}
        response = await self._request("POST", self.LOGIN_PATH, json=payload)
        result = self._auth_result(response, response.status_code == 200)

        if not result.success:
            logger.warning(f"Sign-in failed: status={response.status_code}")
            raise AuthenticationError(result.message or f"Sign-in failed (HTTP {response.status_code})")

        self.auth_manager.save_session(token=result.token, user_id=result.user_id, user_email=credentials.email)
        logger.info("Sign-in successful")
        return result

    async def register(
        self,
        first_name: str,
        last_name: str,
        email: str,
        password: str,
        phone: Optional[str] = None,
    ) -> AuthResult:
        """
        Create an account for this store and persist the issued token.

        Raises:
            AuthenticationError: If sign-up is rejected
            NetworkError: If the backend is unreachable
        """
        logger.info(f"Signing up {email}")
        payload = {
            "firstName": first_name,
            "lastName": last_name,
            "email": email,
            "password": password,
            "phone": phone or "",
            **self._tenant_fields(),
        }
        response = await self._request("POST", self.SIGNUP_PATH, json=payload)
        ok = response.status_code in (200, 201)
        result = self._auth_result(response, ok)
        if ok and result.data.get("success") is False:
            result = result.model_copy(update={"success": False})

        if not result.success:
            logger.warning(f"Sign-up failed: status={response.status_code}")
            raise AuthenticationError(result.message or f"Sign-up failed (HTTP {response.status_code})")

        self.auth_manager.save_session(token=result.token, user_id=result.user_id, user_email=email)
        return result

    def logout(self) -> None:
        self.auth_manager.clear_session()

    async def get_profile(self) -> dict[str, Any]:
        """
        Fetch the signed-in user's profile.

        Raises:
            AuthenticationError: If there is no token or it was rejected
            ServerError: On another non-2xx response
        """
        response = await self._request("GET", self.PROFILE_PATH, headers=self._auth_headers())
        if response.status_code in (401, 403):
            raise AuthenticationError(f"Profile request rejected (HTTP {response.status_code})")
        if not response.is_success:
            raise ServerError(response.status_code)
        data = self._decode(response)
        if not isinstance(data, dict):
            raise DecodeError("Profile response is not a JSON object")
        return data

    async def has_active_subscription(self) -> bool:
        """
        Check whether the signed-in user has an active subscription.

        The current-subscription endpoint is tried first; a 404 there means
        no subscription. Otherwise the full subscription list is consulted.
        """
        if not self.auth_manager.get_session().user_id:
            logger.info("No signed-in user; no subscription")
            return False
        headers = self._auth_headers()

        response = await self._request("GET", self.CURRENT_SUBSCRIPTION_PATH, headers=headers)
        if response.status_code == 404:
            logger.info("No current subscription")
            return False
        if response.status_code == 200:
            data = self._decode(response)
            current = data.get("subscription") if isinstance(data, dict) else None
            if isinstance(current, dict) and str(current.get("status") or "").lower() == "active":
                return True

        response = await self._request("GET", self.SUBSCRIPTIONS_PATH, headers=headers)
        if response.status_code != 200 or not response.content.strip():
            return False
        subscriptions = coerce_subscriptions(self._decode(response))
        logger.info(f"Found {len(subscriptions)} subscription(s)")
        return is_subscription_active(subscriptions)

    async def aclose(self) -> None:
        await self.client.aclose()
