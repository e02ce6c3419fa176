"""
Test helper functions for common testing operations

These helpers build Starlette requests carrying cookies, read Set-Cookie
headers back out of responses, and wait on background threads.
"""

import time
from http.cookies import SimpleCookie
from typing import Callable, Dict, Optional

from starlette.requests import Request
from starlette.responses import Response


def wait_for_condition(condition: Callable[[], bool], timeout: float = 5.0, interval: float = 0.05) -> bool:
    """Wait for a condition to become true with timeout"""
    start_time = time.time()
    while time.time() - start_time < timeout:
        if condition():
            return True
        time.sleep(interval)
    return False


def make_request(cookies: Optional[Dict[str, str]] = None, path: str = "/") -> Request:
    """Build a bare HTTP request carrying ``cookies``"""
    headers = []
    if cookies:
        cookie_header = "; ".join(f"{name}={value}" for name, value in cookies.items())
        headers.append((b"cookie", cookie_header.encode("latin-1")))
    scope = {
        "type": "http",
        "method": "GET",
        "path": path,
        "query_string": b"",
        "headers": headers,
    }
    return Request(scope)


def get_set_cookie(response: Response, name: str):
    """Return the Morsel for cookie ``name`` set on ``response``, or None"""
    for header in response.headers.getlist("set-cookie"):
        cookie = SimpleCookie()
        cookie.load(header)
        if name in cookie:
            return cookie[name]
    return None


def cookie_value(response: Response, name: str) -> str:
    """Return the value of cookie ``name`` set on ``response``"""
    morsel = get_set_cookie(response, name)
    assert morsel is not None, f"No Set-Cookie header for {name!r}"
    return morsel.value


def assert_no_sensitive_data_in_logs(caplog, sensitive_patterns: list[str]):
    """Assert that sensitive data patterns don't appear in logs"""
    all_logs = " ".join([record.getMessage() for record in caplog.records])

    for pattern in sensitive_patterns:
        assert pattern not in all_logs, f"Sensitive pattern '{pattern}' found in logs"


def get_log_messages(caplog, level: Optional[str] = None) -> list[str]:
    """Get log messages, optionally filtered by level"""
    if level:
        return [record.getMessage() for record in caplog.records if record.levelname == level.upper()]
    return [record.getMessage() for record in caplog.records]
