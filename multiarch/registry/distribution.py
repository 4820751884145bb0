"""Read-only manifest access over the OCI distribution API.

This module handles:
- Fetching a manifest list by tag or digest with httpx
- Answering bearer-token and basic authentication challenges
- Parsing the response into a ManifestList

Publishing stays with the Docker CLI client, which applies every tag in
one call; this reader is only used to look published references up.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from contextlib import contextmanager

import httpx

from multiarch.errors import RegistryFailureError
from multiarch.registry.models import (
    INDEX_MEDIA_TYPES,
    ManifestList,
    ManifestMediaType,
    parse_manifest_list,
    parse_repository,
    split_reference,
)

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30
CHALLENGE_PARAM = re.compile(r'(\w+)="([^"]*)"')
ACCEPT_HEADER = ", ".join(
    [
        *INDEX_MEDIA_TYPES,
        ManifestMediaType.OCI_MANIFEST_V1.value,
        ManifestMediaType.DOCKER_MANIFEST_V2.value,
    ]
)


def parse_challenge(header: str) -> tuple[str, dict[str, str]]:
    """Parse a WWW-Authenticate header.

    Args:
        header: Header value, e.g. 'Bearer realm="...",service="..."'.

    Returns:
        Tuple of (lowercase scheme, parameters).
    """
    scheme, _, params = header.strip().partition(" ")
    return scheme.lower(), dict(CHALLENGE_PARAM.findall(params))


class DistributionManifestReader:
    """ManifestReader speaking the registry HTTP API directly.

    Attributes:
        username: Optional registry username.
        password: Optional registry password or token.
        scheme: URL scheme ('https', or 'http' for local registries).
    """

    def __init__(
        self,
        client: httpx.Client | None = None,
        username: str | None = None,
        password: str | None = None,
        scheme: str = "https",
    ) -> None:
        self._client = client
        self.username = username
        self.password = password
        self.scheme = scheme

    @contextmanager
    def _session(self) -> Iterator[httpx.Client]:
        if self._client is not None:
            yield self._client
            return
        with httpx.Client(timeout=REQUEST_TIMEOUT, follow_redirects=True) as client:
            yield client

    def _basic_auth(self) -> tuple[str, str] | None:
        if self.username and self.password:
            return (self.username, self.password)
        return None

    def _fetch_token(self, client: httpx.Client, params: dict[str, str]) -> str:
        """Exchange a bearer challenge for a token.

        Raises:
            RegistryFailureError: If the token endpoint refuses.
        """
        realm = params.get("realm")
        if not realm:
            raise RegistryFailureError("Bearer challenge without realm")
        query = {k: v for k, v in params.items() if k in ("service", "scope")}
        try:
            response = client.get(realm, params=query, auth=self._basic_auth())
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise RegistryFailureError(f"Token request to {realm} failed: {e}") from e

        try:
            payload = response.json()
        except ValueError as e:
            raise RegistryFailureError(f"Token response from {realm} is not JSON") from e
        token = payload.get("token") or payload.get("access_token")
        if not token:
            raise RegistryFailureError(f"Token response from {realm} has no token")
        return str(token)

    def inspect(self, reference: str) -> ManifestList:
        """Read a manifest list from the registry.

        Args:
            reference: 'repository:tag' or 'repository@digest'.

        Returns:
            ManifestList instance.

        Raises:
            RegistryFailureError: If the request fails or the manifest is
                not a manifest list.
        """
        try:
            repository, ref = split_reference(reference)
            image = parse_repository(repository)
        except ValueError as e:
            raise RegistryFailureError(str(e)) from e

        url = f"{self.scheme}://{image.api_host}/v2/{image.path}/manifests/{ref}"
        headers = {"Accept": ACCEPT_HEADER}

        with self._session() as client:
            try:
                response = client.get(url, headers=headers)
                if response.status_code == 401:
                    scheme, params = parse_challenge(
                        response.headers.get("www-authenticate", "")
                    )
                    if scheme == "bearer":
                        token = self._fetch_token(client, params)
                        headers["Authorization"] = f"Bearer {token}"
                        response = client.get(url, headers=headers)
                    elif scheme == "basic" and self._basic_auth():
                        response = client.get(
                            url, headers=headers, auth=self._basic_auth()
                        )
            except httpx.HTTPError as e:
                raise RegistryFailureError(f"Request to {url} failed: {e}") from e

        if response.status_code != 200:
            raise RegistryFailureError(
                f"Reading {reference} returned HTTP {response.status_code}"
            )

        logger.debug("Read %s (%s)", reference, response.headers.get("content-type"))
        try:
            return parse_manifest_list(
                reference,
                response.json(),
                digest=response.headers.get("docker-content-digest"),
            )
        except ValueError as e:
            raise RegistryFailureError(f"Unexpected manifest for {reference}: {e}") from e


__all__ = ["DistributionManifestReader", "parse_challenge"]
