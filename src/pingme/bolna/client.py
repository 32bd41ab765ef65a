"""Bolna voice API client."""

import logging
import time

import httpx

logger = logging.getLogger(__name__)

BOLNA_BASE_URL = "https://api.bolna.ai"

# The provider retries unanswered calls itself; the daemon never redials.
RETRY_CONFIG = {
    "enabled": True,
    "max_retries": 2,
    "retry_on_statuses": ["no-answer", "busy", "failed"],
    "retry_intervals_minutes": [1, 3],
    "retry_on_voicemail": True,
}


class BolnaError(Exception):
    """Error talking to the Bolna API."""

    pass


class BolnaClient:
    """Thin async wrapper over the Bolna REST API.

    Args:
        api_key: Bolna API key, sent as a bearer token.
        base_url: API root, overridable for tests.
        transport: Optional httpx transport (tests pass httpx.MockTransport).
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = BOLNA_BASE_URL,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 15.0,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    async def _request(self, method: str, path: str, body: dict | None = None) -> dict:
        logger.debug(f"Bolna API request {method} {path}")
        try:
            response = await self._client.request(method, path, json=body)
        except httpx.HTTPError as e:
            raise BolnaError(f"Bolna API request failed: {e}") from e

        if response.is_error:
            logger.error(f"Bolna API error {response.status_code}: {response.text}")
            raise BolnaError(f"Bolna API error: {response.status_code} {response.text}")

        try:
            data = response.json()
        except ValueError as e:
            raise BolnaError(f"Bolna API returned invalid JSON: {e}") from e
        return data if isinstance(data, dict) else {}

    async def make_call(self, agent_id: str, phone: str, user_data: dict) -> str:
        """Start an outbound call.

        Args:
            agent_id: Bolna agent to run the call.
            phone: Recipient phone number.
            user_data: Context variables handed to the agent.

        Returns:
            The provider's execution id, or a local "call-<ms>" id if the
            response carried none.

        Raises:
            BolnaError: On transport failure or a non-2xx response.
        """
        result = await self._request(
            "POST",
            "/call",
            {
                "agent_id": agent_id,
                "recipient_phone_number": phone,
                "user_data": user_data,
                "retry_config": RETRY_CONFIG,
            },
        )
        return str(result.get("execution_id") or f"call-{int(time.time() * 1000)}")

    async def get_execution(self, execution_id: str) -> dict:
        """Fetch status, transcript and duration of a call execution."""
        return await self._request("GET", f"/executions/{execution_id}")

    async def aclose(self) -> None:
        await self._client.aclose()
