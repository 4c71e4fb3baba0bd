import logging
from typing import Any, Dict, Iterator, Optional

import boto3

from .credentials import decrypt_credentials

logger = logging.getLogger(__name__)


def compact(**params: Any) -> Dict[str, Any]:
    """Drops parameters that were not provided; boto3 rejects explicit None values."""
    return {k: v for k, v in params.items() if v is not None}


def paginate(client: Any, operation: str, result_key: str, **params: Any) -> Iterator[Any]:
    """Yields `result_key` items from every page of a list/describe operation."""
    paginator = client.get_paginator(operation)
    for page in paginator.paginate(**params):
        yield from page.get(result_key, [])


class ClientHandle:
    """Authenticated access to the provider API for one event.

    Clients are created per service family on first use and reused for the
    rest of the event.
    """

    def __init__(
        self,
        session: boto3.Session,
        region: str,
        endpoint_url: Optional[str] = None,
    ):
        self.session = session
        self.region = region
        self.endpoint_url = endpoint_url
        self._clients: Dict[str, Any] = {}

    def client(self, service: str) -> Any:
        if service not in self._clients:
            logger.debug("Opening %s client in %s", service, self.region)
            self._clients[service] = self.session.client(
                service, **compact(region_name=self.region, endpoint_url=self.endpoint_url)
            )
        return self._clients[service]


def authenticate(
    access_key: str,
    secret_key: str,
    region: str,
    crypto_key: Optional[str] = None,
    endpoint_url: Optional[str] = None,
) -> ClientHandle:
    access_key, secret_key = decrypt_credentials(access_key, secret_key, crypto_key)
    session = boto3.Session(
        aws_access_key_id=access_key,
        aws_secret_access_key=secret_key,
        region_name=region,
    )
    return ClientHandle(session, region, endpoint_url=endpoint_url)
