"""Refresh-and-retry wrapper around upstream calls.

A 401 from the session backend is answered with one refresh-token grant and
one retry of the original call. Everything else, including a second 401, is
handed back to the caller untouched.

Refreshes are single-flight within the process: concurrent 401s queue on one
lock and the later ones reuse the token the first one obtained. The new
record is written with compare-and-swap so a refresh that lost a race to
another process adopts the winner's tokens instead of overwriting them.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

import httpx

from assistant_gateway.credentials.jwt_claims import extract_account_id
from assistant_gateway.credentials.models import AuthMethod, StoredCredential
from assistant_gateway.credentials.resolver import CredentialResolver
from assistant_gateway.credentials.store import CredentialStore
from assistant_gateway.metrics import record_token_refresh
from assistant_gateway.upstream.base import ConfigurationError, RefreshError

logger = logging.getLogger("aigw.credentials")

RequestFn = Callable[[str], Awaitable[httpx.Response]]


class RefreshRetryCoordinator:
    def __init__(
        self,
        resolver: CredentialResolver,
        store: CredentialStore,
        http_client: httpx.AsyncClient,
        token_endpoint: str,
        client_id: str,
        scope: str,
    ) -> None:
        self._resolver = resolver
        self._store = store
        self._http = http_client
        self._token_endpoint = token_endpoint
        self._client_id = client_id
        self._scope = scope
        self._refresh_lock = asyncio.Lock()

    async def execute(self, request_fn: RequestFn) -> httpx.Response:
        credential = self._resolver.resolve()
        token = credential.bearer_token
        if not token:
            raise ConfigurationError()

        response = await request_fn(token)
        if (
            response.status_code != 401
            or not credential.is_session
            or not credential.refresh_token
        ):
            return response

        await response.aclose()
        refreshed = await self._refresh(credential)
        return await request_fn(refreshed.access_token)

    async def _refresh(self, stale: StoredCredential) -> StoredCredential:
        async with self._refresh_lock:
            current = self._store.get()
            if current is not None and self._replaced(current, stale):
                logger.info("token_refresh_reused", extra={"outcome": "reused"})
                record_token_refresh("reused")
                return current

            logger.info("token_refresh_started", extra={"auth_method": stale.auth_method.value})
            try:
                access_token, refresh_token = await self._refresh_grant(stale.refresh_token)
            except RefreshError as exc:
                logger.warning(
                    "token_refresh_failed",
                    extra={"outcome": "failed", "error_code": exc.code},
                )
                record_token_refresh("failed")
                raise

            updated = StoredCredential.for_session(
                access_token=access_token,
                refresh_token=refresh_token or stale.refresh_token,
                account_id=extract_account_id(access_token) or stale.account_id,
            )
            if not self._store.compare_and_swap(stale, updated):
                winner = self._store.get()
                if winner is not None and self._replaced(winner, stale):
                    logger.info("token_refresh_lost_race", extra={"outcome": "reused"})
                    record_token_refresh("reused")
                    return winner
                # The record was cleared or replaced by a non-session credential
                # while the grant ran; that write stands.
                if winner is None or winner.auth_method is AuthMethod.NONE:
                    logger.info("token_refresh_discarded", extra={"outcome": "cleared"})
                    record_token_refresh("discarded")
                    raise ConfigurationError()
                logger.info(
                    "token_refresh_discarded",
                    extra={"outcome": "superseded", "auth_method": winner.auth_method.value},
                )
                record_token_refresh("discarded")
                return updated

            logger.info("token_refresh_succeeded", extra={"outcome": "refreshed"})
            record_token_refresh("refreshed")
            return updated

    @staticmethod
    def _replaced(current: StoredCredential, stale: StoredCredential) -> bool:
        return (
            current.is_session
            and bool(current.access_token)
            and current.access_token != stale.access_token
        )

    async def _refresh_grant(self, refresh_token: str) -> tuple[str, str]:
        form = {
            "grant_type": "refresh_token",
            "client_id": self._client_id,
            "refresh_token": refresh_token,
            "scope": self._scope,
        }
        try:
            response = await self._http.post(
                self._token_endpoint,
                data=form,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise RefreshError(f"Token refresh failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            raise RefreshError(
                f"Token refresh failed: unexpected response ({response.status_code})"
            )

        error = payload.get("error")
        if error:
            description = payload.get("error_description")
            detail = f"{error}: {description}" if isinstance(description, str) else str(error)
            raise RefreshError(f"Token refresh failed: {detail}")
        if response.status_code >= 400:
            raise RefreshError(f"Token refresh failed: HTTP {response.status_code}")

        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token.strip():
            raise RefreshError("Token refresh failed: no access token in response")
        new_refresh = payload.get("refresh_token")
        return (
            access_token.strip(),
            new_refresh.strip() if isinstance(new_refresh, str) else "",
        )
