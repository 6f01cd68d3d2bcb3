"""
HTTP plumbing shared by the Toggl and Jira clients.

- Session factory with basic auth, proxies and TLS options (verify / CA bundle)
- GET/POST helpers with retry and backoff on 429 and 5xx
- ReportError, raised for upstream failures the run cannot recover from
"""

import os
import time
from typing import Any, Dict, Optional

import requests

_WIN_TRUST = False
if os.name == "nt":
    try:
        import importlib.util
        spec = importlib.util.find_spec("certifi_win32")
        if spec is not None:
            import importlib
            importlib.import_module("certifi_win32")  # applies Windows cert store patch
            _WIN_TRUST = True
    except Exception:
        _WIN_TRUST = False

class ReportError(Exception):
    """Upstream failure (connection, authentication, unexpected status)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

def describe_http_error(response: requests.Response, service: str) -> str:
    """Turn a failed response into a message a user can act on."""
    status = response.status_code
    messages = {
        401: f"{service}: authentication failed. Check the API token in config.ini.",
        403: f"{service}: access denied. Check your permissions or API token.",
        404: f"{service}: resource not found. Check the URL and ids in config.ini.",
        429: f"{service}: too many requests. Wait a moment and try again.",
        500: f"{service}: server error. The service may be temporarily unavailable.",
        502: f"{service}: bad gateway. The service may be temporarily unavailable.",
        503: f"{service}: service unavailable. Try again later.",
    }
    if status in messages:
        return messages[status]
    detail = (getattr(response, "text", "") or "").strip()
    return f"{service}: HTTP {status} - {detail[:300]}" if detail else f"{service}: HTTP {status}"

def make_session(user: str, password: str, verify: Optional[bool] = True, ca_bundle: Optional[str] = "",
                 http_proxy: str = "", https_proxy: str = "",
                 headers: Optional[Dict[str, str]] = None) -> requests.Session:
    """Create a configured requests.Session.

    Applies basic auth, JSON headers, optional proxies,
    and SSL verification or custom CA bundle.

    Args:
        user: Basic auth user (Jira email, or the Toggl API token).
        password: Basic auth password (Jira API token, or the literal 'api_token' for Toggl).
        verify: Whether to verify SSL certs (ignored if ca_bundle provided).
        ca_bundle: Path to CA bundle to use for SSL verification.
        http_proxy: HTTP proxy URL.
        https_proxy: HTTPS proxy URL.
        headers: Extra headers merged over the JSON defaults.

    Returns:
        requests.Session: Configured session instance.
    """
    s = requests.Session()
    s.auth = (user, password)
    s.headers.update({"Accept": "application/json", "Content-Type": "application/json"})
    if headers:
        s.headers.update(headers)
    if http_proxy or https_proxy:
        proxies = {}
        if http_proxy:
            proxies["http"] = http_proxy
        if https_proxy:
            proxies["https"] = https_proxy
        s.proxies.update(proxies)
    if ca_bundle:
        s.verify = ca_bundle
    else:
        s.verify = verify
    return s

def _retry_wait(r, tries: int, backoff_base: float) -> float:
    retry_after = r.headers.get("Retry-After")
    if retry_after:
        try:
            return float(retry_after)
        except Exception:
            pass
    return backoff_base * (2 ** (tries - 1))

def _send_with_retry(send, timeout: int, max_tries: int, backoff_base: float, service: str):
    tries = 0
    while True:
        tries += 1
        try:
            r = send()
        except requests.exceptions.SSLError:
            raise
        except requests.exceptions.ConnectionError as e:
            raise ReportError(f"{service}: cannot connect ({e}). Check the URL and your network.")
        except requests.exceptions.Timeout:
            raise ReportError(f"{service}: request timed out after {timeout}s.")
        if r.status_code == 429 or 500 <= r.status_code < 600:
            if tries < max_tries:
                time.sleep(_retry_wait(r, tries, backoff_base))
                continue
        return r

def http_get_with_retry(session: requests.Session, url: str, params: Optional[Dict[str, Any]] = None,
                        timeout: int = 120, max_tries: int = 5, backoff_base: float = 0.5,
                        service: str = "HTTP") -> requests.Response:
    """HTTP GET with retry/backoff on 429 and 5xx responses.

    Honors Retry-After header when present; returns the final response even if
    it is an error after exhausting retries. Client errors (4xx other than 429)
    are returned immediately so callers can map them (e.g. 404 -> not found).

    Raises:
        ReportError: On connection failures or timeouts.
        requests.exceptions.SSLError: Propagated unchanged.
    """
    return _send_with_retry(lambda: session.get(url, params=params, timeout=timeout),
                            timeout, max_tries, backoff_base, service)

def http_post_with_retry(session: requests.Session, url: str, json: Dict[str, Any],
                         timeout: int = 120, max_tries: int = 5, backoff_base: float = 0.5,
                         service: str = "HTTP") -> requests.Response:
    """HTTP POST with retry/backoff on 429 and 5xx responses. Returns the final response."""
    return _send_with_retry(lambda: session.post(url, json=json, timeout=timeout),
                            timeout, max_tries, backoff_base, service)
