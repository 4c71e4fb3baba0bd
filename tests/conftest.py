"""Shared fixtures: a call-recording stand-in for the provider API.

`StubProvider` is both the authenticate function handed to adapters and the
client handle it returns, so a test can count authentications and inspect
every provider call per service.
"""

from typing import Any, Dict, List, Optional, Tuple

import pytest

from aws_adapters.config import AdapterConfig, PollingConfig


class RecordingClient:
    """Records every call; answers from `responses`.

    A response may be a dict (returned as is), a list (one item per call),
    an exception instance (raised) or a callable (called with the parameters).
    """

    def __init__(self, responses: Optional[Dict[str, Any]] = None):
        self.responses = dict(responses or {})
        self.pages: Dict[str, List[Dict[str, Any]]] = {}
        self.calls: List[Tuple[str, Dict[str, Any]]] = []

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)

        def call(**params: Any) -> Any:
            self.calls.append((name, params))
            return self._respond(name, params)

        return call

    def _respond(self, name: str, params: Dict[str, Any]) -> Any:
        response = self.responses.get(name, {})
        if isinstance(response, list):
            response = response.pop(0) if len(response) > 1 else response[0]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(**params)
        return response

    def get_paginator(self, operation: str) -> Any:
        """Paginated calls are recorded under the operation name.

        Pages come from `pages[operation]` when scripted, otherwise the single
        page is the regular response.
        """
        client = self

        class _Paginator:
            def paginate(self, **params: Any) -> List[Dict[str, Any]]:
                client.calls.append((operation, params))
                if operation in client.pages:
                    return list(client.pages[operation])
                return [client._respond(operation, params)]

        return _Paginator()

    def get_waiter(self, waiter_name: str) -> Any:
        client = self

        class _Waiter:
            def wait(self, **params: Any) -> None:
                client.calls.append((f"wait:{waiter_name}", params))

        return _Waiter()

    def names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def params(self, name: str) -> List[Dict[str, Any]]:
        return [params for call_name, params in self.calls if call_name == name]


class StubProvider:
    def __init__(self):
        self.clients: Dict[str, RecordingClient] = {}
        self.auth_calls: List[Tuple[Any, ...]] = []

    def __call__(self, access_key, secret_key, region, **kwargs) -> "StubProvider":
        self.auth_calls.append((access_key, secret_key, region, kwargs))
        return self

    def client(self, service: str) -> RecordingClient:
        return self.clients.setdefault(service, RecordingClient())

    def respond(self, service: str, **responses: Any) -> RecordingClient:
        client = self.client(service)
        client.responses.update(responses)
        return client

    def respond_pages(self, service: str, operation: str, *pages: Dict[str, Any]) -> RecordingClient:
        client = self.client(service)
        client.pages[operation] = list(pages)
        return client

    def call_count(self) -> int:
        return sum(len(c.calls) for c in self.clients.values())


@pytest.fixture
def provider():
    return StubProvider()


@pytest.fixture
def fast_config():
    """No sleeping between polls."""
    return AdapterConfig(
        polling=PollingConfig(
            elb_removal=0, network_interfaces=0, nat_deletion=0, rds_cluster_deletion=0
        )
    )


@pytest.fixture
def envelope():
    return {
        "_uuid": "8a6b1c2e-0000-4000-8000-000000000001",
        "_batch_id": "batch-1",
        "_type": "vpc",
        "datacenter_name": "dc",
        "datacenter_region": "eu-west-1",
        "aws_access_key_id": "AKIDEXAMPLE",
        "aws_secret_access_key": "secret",
        "service": "svc-1",
    }
