"""
Discord client: verification link and guild membership.

The verification link uses the OAuth implicit grant: Discord redirects
back with an access token and the student's verification token as state.
"""

import logging
from urllib.parse import urlencode

import httpx

from core.config import settings

logger = logging.getLogger(__name__)

DISCORD_API = "https://discord.com/api/v9"
DISCORD_AUTHORIZE = "https://discord.com/api/oauth2/authorize"


class CommunityClient:
    def __init__(
        self, client_id: str = None, guild_id: str = None, student_role_id: str = None,
        bot_token: str = None, redirect_uri: str = None,
        api_url: str = DISCORD_API, transport: httpx.BaseTransport = None,
    ):
        self.client_id = client_id if client_id is not None else settings.discord_client_id
        self.guild_id = guild_id if guild_id is not None else settings.discord_guild_id
        self.student_role_id = student_role_id if student_role_id is not None else settings.discord_student_role_id
        self.bot_token = bot_token if bot_token is not None else settings.discord_bot_token
        self.redirect_uri = redirect_uri or f"{settings.checkout_domain.rstrip('/')}/students/community_success"
        self.api_url = api_url
        self.timeout = 30.0
        self.transport = transport

    def verification_link(self, state: str) -> str:
        query = urlencode({
            "response_type": "token",
            "client_id": self.client_id,
            "state": state,
            "scope": "identify email guilds.join",
            "redirect_uri": self.redirect_uri,
        })
        return f"{DISCORD_AUTHORIZE}?{query}"

    def _client(self) -> httpx.Client:
        return httpx.Client(base_url=self.api_url, timeout=self.timeout, transport=self.transport)

    def fetch_profile(self, access_token: str) -> dict:
        with self._client() as client:
            resp = client.get("/users/@me", headers={"Authorization": f"Bearer {access_token}"})
            resp.raise_for_status()
            return resp.json()

    def add_student_member(self, user_id: str, access_token: str):
        """Join the guild and grant the student role. Both calls are idempotent on Discord's side."""
        member_path = f"/guilds/{self.guild_id}/members/{user_id}"
        headers = {"Authorization": f"Bot {self.bot_token}"}
        with self._client() as client:
            resp = client.put(member_path, json={"access_token": access_token}, headers=headers)
            resp.raise_for_status()
            resp = client.put(f"{member_path}/roles/{self.student_role_id}", headers=headers)
            resp.raise_for_status()
        logger.info(f"Discord user {user_id} added to guild {self.guild_id}")
