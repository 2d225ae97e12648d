"""
Rate limiting configuration for the API.

Uses SlowAPI to implement rate limits on ledger-mutating endpoints:
- Create wager: Prevent wager spam
- Place bet: Prevent rapid-fire betting and abuse
- Settle/Cancel: Cheap to abuse, expensive to process (touches every bettor)

Rate limits are per-IP address by default.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request
from fastapi.responses import JSONResponse

from app.config import get_settings


def get_client_ip(request: Request) -> str:
    """
    Get client IP address, handling proxies.

    Checks X-Forwarded-For header first (for requests behind proxy/load balancer),
    falls back to direct client IP.
    """
    settings = get_settings()

    remote_ip = get_remote_address(request)

    # Only trust X-Forwarded-For if explicitly enabled AND the request comes from
    # a trusted proxy. Otherwise, user-supplied XFF allows trivial spoofing.
    if settings.trust_x_forwarded_for:
        trusted = {ip.strip() for ip in settings.trusted_proxy_ips.split(",") if ip.strip()}
        if trusted and remote_ip in trusted:
            forwarded = request.headers.get("X-Forwarded-For")
            if forwarded:
                # X-Forwarded-For can contain multiple IPs; first is the client
                return forwarded.split(",")[0].strip()

    return remote_ip


# Initialize the limiter with IP-based key function
limiter = Limiter(key_func=get_client_ip, enabled=get_settings().rate_limit_enabled)


# Format: "X per Y" where Y can be: second, minute, hour, day
RATE_LIMITS = {
    "create_wager": "10/minute",
    "place_bet": "30/minute",
    "settle": "10/minute",
    "cancel": "10/minute",
}


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """
    Custom handler for rate limit exceeded errors.
    Returns a JSON response with retry information.
    """
    retry_after = getattr(exc, 'retry_after', 60)

    return JSONResponse(
        status_code=429,
        content={
            "detail": "Rate limit exceeded. Please slow down.",
            "code": "rate_limited",
            "retry_after_seconds": retry_after,
        },
        headers={
            "Retry-After": str(retry_after),
            "X-RateLimit-Limit": str(exc.detail) if hasattr(exc, 'detail') else "unknown",
        }
    )
