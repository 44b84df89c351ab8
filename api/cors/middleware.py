"""
Per-endpoint CORS handling.

Endpoints declare their policy with `@cors_policy(...)`. The middleware
finds the route a request targets, resolves that route's policy for the
current configuration and decorates the response (or answers the
preflight). Endpoints without a policy get no CORS headers.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, TypeVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response
from starlette.routing import BaseRoute, Match
from starlette.types import ASGIApp, Scope

from .policies import CorsPolicyType
from .resolver import CorsDecision, CorsPolicyResolver, CorsSettingsSource, parse_header_list

logger = logging.getLogger(__name__)

CORS_POLICY_ATTR = "__cors_policy__"

F = TypeVar("F", bound=Callable[..., Any])


def cors_policy(policy_type: CorsPolicyType) -> Callable[[F], F]:
    def decorator(func: F) -> F:
        setattr(func, CORS_POLICY_ATTR, policy_type.value)
        return func

    return decorator


def find_endpoint_policy(routes: Iterable[BaseRoute], scope: Scope) -> str | None:
    """
    Policy of the route that serves `scope`. When only the path matches
    (wrong method), the first such route decides, so its policy can reject
    the method instead of leaving the request to a bare 405.
    """
    partial = None
    for route in routes:
        match, _ = route.matches(scope)
        if match is Match.FULL:
            return getattr(getattr(route, "endpoint", None), CORS_POLICY_ATTR, None)
        if match is Match.PARTIAL and partial is None:
            partial = route
    if partial is None:
        return None
    return getattr(getattr(partial, "endpoint", None), CORS_POLICY_ATTR, None)


def _add_vary_origin(response: Response) -> None:
    vary = response.headers.get("vary")
    if not vary:
        response.headers["Vary"] = "Origin"
    elif "origin" not in {v.strip().lower() for v in vary.split(",")}:
        response.headers["Vary"] = f"{vary}, Origin"


class PolicyCorsMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: ASGIApp,
        *,
        resolver: CorsPolicyResolver,
        settings_source: CorsSettingsSource,
    ) -> None:
        super().__init__(app)
        self._resolver = resolver
        self._settings_source = settings_source

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        origin = request.headers.get("origin")
        if not origin:
            return await call_next(request)

        requested_method = request.headers.get("access-control-request-method")
        is_preflight = request.method == "OPTIONS" and bool(requested_method)

        # A preflight targets the route that will serve the real request.
        scope = dict(request.scope, method=requested_method.upper()) if is_preflight else request.scope
        policy_name = find_endpoint_policy(request.app.router.routes, scope)
        if policy_name is None:
            return await call_next(request)

        decision = self._resolver.resolve(
            policy_name,
            self._settings_source.environment,
            self._settings_source.current(),
        )

        if is_preflight:
            return self._preflight_response(
                decision,
                origin=origin,
                requested_method=requested_method or "",
                requested_headers=parse_header_list(request.headers.get("access-control-request-headers")),
            )

        response = await call_next(request)
        if decision.allows_origin(origin):
            response.headers["Access-Control-Allow-Origin"] = origin
            _add_vary_origin(response)
        return response

    def _preflight_response(
        self,
        decision: CorsDecision,
        *,
        origin: str,
        requested_method: str,
        requested_headers: list[str],
    ) -> Response:
        failures = []
        if not decision.allows_origin(origin):
            failures.append("origin")
        if not decision.allows_method(requested_method):
            failures.append("method")
        if not decision.allows_headers(requested_headers):
            failures.append("headers")

        if failures:
            logger.info(
                "cors_preflight_denied policy=%s origin=%s method=%s reasons=%s",
                decision.policy_name,
                origin,
                requested_method,
                ",".join(failures),
            )
            return PlainTextResponse(
                "Disallowed CORS " + ", ".join(failures),
                status_code=400,
                headers={"Vary": "Origin"},
            )

        return PlainTextResponse(
            "OK",
            status_code=200,
            headers={
                "Access-Control-Allow-Origin": origin,
                "Access-Control-Allow-Methods": ", ".join(sorted(decision.methods)),
                "Access-Control-Allow-Headers": ", ".join(sorted(decision.headers)),
                "Access-Control-Max-Age": str(decision.max_age),
                "Vary": "Origin",
            },
        )
