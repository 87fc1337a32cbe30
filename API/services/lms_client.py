"""
WordPress / LearnDash client: student accounts on the LMS.
"""

import logging

import httpx

from core.config import settings

logger = logging.getLogger(__name__)


class LMSClient:
    """Creates WordPress users and adds them to the student group."""

    def __init__(
        self, api_url: str = None, user: str = None, password: str = None,
        student_group_id: int = None, transport: httpx.BaseTransport = None,
    ):
        self.api_url = (api_url if api_url is not None else settings.wordpress_api_url).rstrip("/")
        self.auth = (
            user if user is not None else settings.wordpress_user,
            password if password is not None else settings.wordpress_password,
        )
        self.student_group_id = (
            student_group_id if student_group_id is not None else settings.wordpress_student_group_id
        )
        self.timeout = 30.0
        self.transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.api_url,
            auth=self.auth,
            timeout=self.timeout,
            transport=self.transport,
        )

    def create_user(self, username: str, email: str, password: str) -> str:
        """Create the user and return its WordPress id."""
        with self._client() as client:
            resp = client.post("/wp/v2/users/", json={
                "username": username,
                "email": email,
                "password": password,
            })
            resp.raise_for_status()
            user_id = str(resp.json()["id"])
        logger.info(f"LMS user {user_id} created for {email}")
        return user_id

    def add_to_student_group(self, user_id: str):
        with self._client() as client:
            resp = client.post(
                f"/ldlms/v2/users/{user_id}/groups",
                json={"group_ids": [self.student_group_id]},
            )
            resp.raise_for_status()
