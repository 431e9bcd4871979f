"""
HTTP hardening hooks: security headers, request logging and rate limiting.
"""

from flask import Flask, g, jsonify, request
from typing import Optional
import logging
import time

from taxpro.utils.rate_limiter import SlidingWindowRateLimiter

logger = logging.getLogger(__name__)

CONTENT_SECURITY_POLICY = '; '.join([
    "default-src 'self'",
    "style-src 'self' 'unsafe-inline' https://fonts.googleapis.com https://cdnjs.cloudflare.com",
    "font-src 'self' https://fonts.gstatic.com https://cdnjs.cloudflare.com",
    "script-src 'self' https://cdnjs.cloudflare.com",
    "img-src 'self' data: https:",
])

SECURITY_HEADERS = {
    'X-Content-Type-Options': 'nosniff',
    'X-Frame-Options': 'DENY',
    'Referrer-Policy': 'strict-origin-when-cross-origin',
    'Strict-Transport-Security': 'max-age=31536000; includeSubDomains',
    'Content-Security-Policy': CONTENT_SECURITY_POLICY,
    'Cross-Origin-Opener-Policy': 'same-origin',
}

AUTH_PATH_PREFIX = '/api/auth'
EXEMPT_PATHS = {'/health'}


def client_ip() -> Optional[str]:
    """Peer address as resolved by ProxyFix from the trusted hops only."""
    return request.remote_addr


def _too_many(message: str, limit: int, retry_after: int):
    response = jsonify({'success': False, 'error': message})
    response.status_code = 429
    response.headers['Retry-After'] = str(retry_after)
    response.headers['RateLimit-Limit'] = str(limit)
    response.headers['RateLimit-Remaining'] = '0'
    return response


def init_security(app: Flask) -> None:
    """Install the request hooks and attach the limiters to the app."""
    window = app.config['RATE_LIMIT_WINDOW_SECONDS']
    general_limiter = SlidingWindowRateLimiter(app.config['RATE_LIMIT_MAX_REQUESTS'], window)
    auth_limiter = SlidingWindowRateLimiter(app.config['AUTH_RATE_LIMIT_MAX_ATTEMPTS'], window)
    app.extensions['taxpro_rate_limiters'] = {'general': general_limiter, 'auth': auth_limiter}

    @app.before_request
    def start_timer():
        g.request_started = time.perf_counter()

    @app.before_request
    def enforce_rate_limits():
        if not app.config['RATELIMIT_ENABLED'] or request.method == 'OPTIONS':
            return None
        if request.path in EXEMPT_PATHS:
            return None

        key = client_ip() or 'unknown'

        # Failed attempts only count toward the auth limit, so peek here and record after the response
        if request.path.startswith(AUTH_PATH_PREFIX):
            allowed, _, retry_after = auth_limiter.check(key)
            if not allowed:
                logger.warning(f"Auth rate limit exceeded for {key} on {request.path}")
                return _too_many(
                    'Too many authentication attempts, please try again later.',
                    auth_limiter.limit, retry_after
                )

        allowed, remaining, retry_after = general_limiter.is_allowed(key)
        if not allowed:
            logger.warning(f"Rate limit exceeded for {key} on {request.path}")
            return _too_many(
                'Too many requests from this IP, please try again later.',
                general_limiter.limit, retry_after
            )
        g.rate_limit_remaining = remaining
        return None

    @app.after_request
    def count_failed_auth_attempt(response):
        if (app.config['RATELIMIT_ENABLED']
                and request.path.startswith(AUTH_PATH_PREFIX)
                and request.method != 'OPTIONS'
                and response.status_code >= 400
                and response.status_code != 429):
            auth_limiter.hit(client_ip() or 'unknown')
        return response

    @app.after_request
    def add_security_headers(response):
        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        remaining = g.get('rate_limit_remaining')
        if remaining is not None:
            response.headers['RateLimit-Limit'] = str(general_limiter.limit)
            response.headers['RateLimit-Remaining'] = str(remaining)
        return response

    @app.after_request
    def log_request(response):
        started = g.get('request_started')
        duration_ms = (time.perf_counter() - started) * 1000 if started else 0.0
        logger.info(f"{request.method} {request.path} {response.status_code} {duration_ms:.1f}ms")
        return response
