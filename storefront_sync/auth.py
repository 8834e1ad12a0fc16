"""Persistence of the signed-in storefront session."""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from .models import SessionData

logger = logging.getLogger(__name__)

TOKEN_ENV = "STOREFRONT_AUTH_TOKEN"
USER_ID_ENV = "STOREFRONT_USER_ID"


class AuthManager:
    """Manages authentication state and session persistence."""

    def __init__(self, session_file: Optional[str] = None) -> None:
        """
        Initialize the authentication manager.

        Args:
            session_file: Path to store session data. Defaults to ~/.storefront_session.json
        """
        if session_file is None:
            session_file = str(Path.home() / ".storefront_session.json")
        self.session_file = session_file
        self.session: SessionData = self._load_session()

        self._load_token_from_env()

    def _load_session(self) -> SessionData:
        """Load session data from file if it exists."""
        if os.path.exists(self.session_file):
            try:
                with open(self.session_file, "r") as f:
                    return SessionData(**json.load(f))
            except (json.JSONDecodeError, ValueError, TypeError) as e:
                logger.warning(f"Ignoring unreadable session file {self.session_file}: {e}")
        return SessionData()

    def _save_session(self) -> None:
        with open(self.session_file, "w") as f:
            json.dump(self.session.model_dump(), f, default=str)
        os.chmod(self.session_file, 0o600)

    def save_session(
        self,
        token: Optional[str],
        user_id: Optional[str] = None,
        user_email: Optional[str] = None,
    ) -> None:
        """
        Save an authenticated session.

        Args:
            token: Bearer token issued at sign-in
            user_id: Backend user id
            user_email: User's email address
        """
        self.session = SessionData(
            token=token,
            user_id=user_id,
            user_email=user_email,
            is_authenticated=bool(token),
        )
        self._save_session()

    def get_session(self) -> SessionData:
        return self.session

    def clear_session(self) -> None:
        """Clear the current session."""
        self.session = SessionData()
        if os.path.exists(self.session_file):
            os.remove(self.session_file)

    def is_authenticated(self) -> bool:
        return self.session.is_authenticated and bool(self.session.token)

    def get_token(self) -> Optional[str]:
        return self.session.token if self.is_authenticated() else None

    def _load_token_from_env(self) -> None:
        """
        Load a bearer token from the environment.

        Environment variable mapping:
        - STOREFRONT_AUTH_TOKEN -> token
        - STOREFRONT_USER_ID -> user id (optional)

        An environment token replaces whatever the session file held.
        """
        token = os.environ.get(TOKEN_ENV, "").strip()
        if not token:
            logger.debug("No auth token found in environment variables")
            return

        user_id = os.environ.get(USER_ID_ENV, "").strip() or self.session.user_id
        logger.info("Loaded auth token from environment")
        self.session = SessionData(
            token=token,
            user_id=user_id,
            user_email=self.session.user_email,
            is_authenticated=True,
        )
        self._save_session()
