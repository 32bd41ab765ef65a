"""Small synchronous client the CLI uses to talk to a running daemon."""

import httpx

from pingme.core.config import Config


class DaemonUnavailable(Exception):
    """Raised when the daemon can't be reached or rejects the request."""

    pass


def daemon_request(
    config: Config,
    method: str,
    path: str,
    json: dict | None = None,
    transport: httpx.BaseTransport | None = None,
) -> dict:
    """Send an authenticated request to the local daemon.

    Args:
        config: Effective configuration (port and daemon token).
        method: HTTP method.
        path: Request path, e.g. "/status".
        json: Optional JSON body.
        transport: Optional httpx transport (tests pass httpx.MockTransport).

    Returns:
        The decoded JSON response.

    Raises:
        DaemonUnavailable: If the daemon is down or answers with an error status.
    """
    base_url = f"http://127.0.0.1:{config.daemon.port}"
    headers = {"Authorization": f"Bearer {config.daemon_token}"}
    try:
        with httpx.Client(
            base_url=base_url, headers=headers, timeout=10.0, transport=transport
        ) as client:
            response = client.request(method, path, json=json)
    except httpx.HTTPError as e:
        raise DaemonUnavailable(f"pingme daemon not reachable at {base_url}: {e}") from e

    if response.is_error:
        raise DaemonUnavailable(f"pingme daemon error {response.status_code}: {response.text}")
    return response.json()
