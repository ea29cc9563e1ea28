"""
Client Identity Resolution

Every view is attributed to a single client identifier (normally an IP
address). The rate limiter, the view log and the request log all use the
same identifier, so the header precedence lives in exactly one place.

Precedence (first non-empty wins):
1. CF-Connecting-IP          (platform edge)
2. X-Forwarded-For           (first entry)
3. X-Real-IP
4. X-Original-Forwarded-For  (first entry)
5. Peer address of the connection
"""

from starlette.requests import Request

UNKNOWN_CLIENT = "unknown"


def _first_entry(header_value: str) -> str:
    # X-Forwarded-For can contain multiple IPs, the first one is the client
    return header_value.split(",")[0].strip()


def resolve_client_id(request: Request) -> str:
    """
    Extract the client identifier from a request.

    Args:
        request: Incoming Starlette/FastAPI request

    Returns:
        Client identifier string, "unknown" when nothing is available
    """
    headers = request.headers

    edge_ip = headers.get("CF-Connecting-IP")
    if edge_ip and edge_ip.strip():
        return edge_ip.strip()

    forwarded_for = headers.get("X-Forwarded-For")
    if forwarded_for and _first_entry(forwarded_for):
        return _first_entry(forwarded_for)

    real_ip = headers.get("X-Real-IP")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    original_forwarded_for = headers.get("X-Original-Forwarded-For")
    if original_forwarded_for and _first_entry(original_forwarded_for):
        return _first_entry(original_forwarded_for)

    return request.client.host if request.client else UNKNOWN_CLIENT
