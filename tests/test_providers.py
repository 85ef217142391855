"""Cloud provider client tests using ``httpx.MockTransport``."""
from __future__ import annotations

import json
from collections.abc import Callable

import httpx
import pytest

from quicklify.errors import ProviderError
from quicklify.models import ProviderName
from quicklify.providers import (
    DigitalOceanProvider,
    HetznerProvider,
    LinodeProvider,
    VultrProvider,
    create_provider,
)
from quicklify.providers.base import extract_error_detail, format_cost

Handler = Callable[[httpx.Request], httpx.Response]


def _client(handler: Handler, seen: list[httpx.Request] | None = None) -> httpx.Client:
    def _record(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return handler(request)

    return httpx.Client(transport=httpx.MockTransport(_record))


def test_create_provider_selects_class() -> None:
    """The factory returns the client for each provider name."""
    client = _client(lambda request: httpx.Response(200, json={}))

    assert isinstance(create_provider(ProviderName.HETZNER, "t", client=client), HetznerProvider)
    assert isinstance(
        create_provider(ProviderName.DIGITALOCEAN, "t", client=client), DigitalOceanProvider
    )
    assert isinstance(create_provider(ProviderName.VULTR, "t", client=client), VultrProvider)
    assert isinstance(create_provider(ProviderName.LINODE, "t", client=client), LinodeProvider)


def test_validate_token_sends_bearer_header() -> None:
    """A 200 response means the token is valid."""
    seen: list[httpx.Request] = []
    provider = HetznerProvider("abc", client=_client(lambda r: httpx.Response(200, json={}), seen))

    assert provider.validate_token() is True
    assert seen[0].url == "https://api.hetzner.cloud/v1/servers"
    assert seen[0].headers["Authorization"] == "Bearer abc"


def test_validate_token_override_and_rejection() -> None:
    """401 means invalid; a passed token replaces the configured one."""
    seen: list[httpx.Request] = []
    provider = DigitalOceanProvider(
        "abc", client=_client(lambda r: httpx.Response(401, json={"message": "nope"}), seen)
    )

    assert provider.validate_token("other") is False
    assert seen[0].headers["Authorization"] == "Bearer other"
    assert seen[0].url.path == "/v2/account"


def test_validate_token_propagates_server_errors() -> None:
    """Non-auth failures are raised, not reported as invalid tokens."""
    provider = VultrProvider("abc", client=_client(lambda r: httpx.Response(503)))

    with pytest.raises(ProviderError) as excinfo:
        provider.validate_token()

    assert excinfo.value.status_code == 503


def test_http_errors_use_body_fields_only() -> None:
    """Error messages come from known body fields, never the token."""
    body = {"error": {"message": "server not found", "code": "not_found"}}
    provider = HetznerProvider(
        "secret-token", client=_client(lambda r: httpx.Response(404, json=body))
    )

    with pytest.raises(ProviderError) as excinfo:
        provider.destroy_server("42")

    assert excinfo.value.status_code == 404
    assert str(excinfo.value) == "Failed to destroy server: server not found"
    assert "secret-token" not in str(excinfo.value)


def test_connect_failures_are_sanitised() -> None:
    """Transport failures become ProviderError with a code and no cause chain."""

    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("Connection refused", request=request)

    provider = LinodeProvider("t", client=_client(refuse))

    with pytest.raises(ProviderError) as excinfo:
        provider.destroy_server("7")

    assert excinfo.value.code == "ECONNREFUSED"
    assert excinfo.value.status_code is None
    assert excinfo.value.__cause__ is None


@pytest.mark.parametrize(
    ("body", "expected"),
    [
        ({"error": "bad token"}, "bad token"),
        ({"message": "Unable to authenticate you"}, "Unable to authenticate you"),
        ({"errors": [{"reason": "Not found"}, {"reason": "Gone"}]}, "Not found, Gone"),
        ({"unexpected": True}, "HTTP 400 Bad Request"),
        (["list"], "HTTP 400 Bad Request"),
    ],
)
def test_extract_error_detail(body: object, expected: str) -> None:
    """Each provider's error shape is understood."""
    response = httpx.Response(400, content=json.dumps(body).encode())

    assert extract_error_detail(response) == expected


def test_format_cost() -> None:
    """Costs are rendered with two decimals per month."""
    assert format_cost(40, 0.06) == "$2.40/mo"
    assert format_cost(20, 0.0119, currency="€") == "€0.24/mo"


def test_hetzner_snapshot_endpoints() -> None:
    """Hetzner snapshots are images filtered by the quicklify prefix."""
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            image = {"id": 99, "description": "quicklify-1", "status": "creating"}
            return httpx.Response(201, json={"image": image})
        if request.method == "GET" and request.url.path == "/v1/images":
            return httpx.Response(
                200,
                json={
                    "images": [
                        {"id": 1, "description": "quicklify-1", "image_size": 2.5,
                         "status": "available", "created": "2026-01-02T00:00:00Z"},
                        {"id": 2, "description": "manual backup", "image_size": 1},
                    ]
                },
            )
        if request.method == "GET":
            return httpx.Response(200, json={"server": {"server_type": {"disk": 40}}})
        return httpx.Response(204)

    provider = HetznerProvider("t", client=_client(handler, seen))

    created = provider.create_snapshot("42", "quicklify-1")
    listed = provider.list_snapshots("42")
    provider.delete_snapshot("1")
    cost = provider.get_snapshot_cost_estimate("42")

    assert created.id == "99"
    assert created.status == "creating"
    assert json.loads(seen[0].content) == {"type": "snapshot", "description": "quicklify-1"}
    assert seen[0].url.path == "/v1/servers/42/actions/create_image"
    assert [snapshot.id for snapshot in listed] == ["1"]
    assert listed[0].cost_per_month == "€0.03/mo"
    assert seen[1].url.params["bound_to"] == "42"
    assert (seen[2].method, seen[2].url.path) == ("DELETE", "/v1/images/1")
    assert cost == "€0.48/mo"


def test_digitalocean_snapshot_listing() -> None:
    """DigitalOcean lists droplet snapshots and keeps quicklify ones."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "snapshots": [
                    {"id": "5", "name": "quicklify-5", "size_gigabytes": 10},
                    {"id": "6", "name": "nightly", "size_gigabytes": 10},
                ]
            },
        )

    provider = DigitalOceanProvider("t", client=_client(handler))

    (snapshot,) = provider.list_snapshots("123")

    assert snapshot.id == "5"
    assert snapshot.status == "available"
    assert snapshot.cost_per_month == "$0.60/mo"


def test_vultr_sizes_are_converted_from_bytes() -> None:
    """Vultr reports sizes in bytes."""
    item = {
        "id": "abc",
        "description": "quicklify-1 instance:inst-1",
        "size": 2 * 1024**3,
        "status": "complete",
    }
    provider = VultrProvider(
        "t", client=_client(lambda r: httpx.Response(200, json={"snapshots": [item]}))
    )

    (snapshot,) = provider.list_snapshots("inst-1")

    assert snapshot.size_gb == 2.0
    assert snapshot.server_id == "inst-1"
    assert snapshot.name == "quicklify-1"


def test_linode_snapshot_uses_largest_disk() -> None:
    """Linode images are created from the largest disk of the instance."""
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/disks"):
            return httpx.Response(
                200, json={"data": [{"id": 1, "size": 512}, {"id": 2, "size": 25600}]}
            )
        return httpx.Response(200, json={"id": "private/9", "label": "quicklify-1"})

    provider = LinodeProvider("t", client=_client(handler, seen))

    snapshot = provider.create_snapshot("77", "quicklify-1")

    assert snapshot.id == "private/9"
    assert json.loads(seen[1].content) == {
        "disk_id": 2,
        "label": "quicklify-1",
        "description": "quicklify-1 instance:77",
    }


def test_linode_snapshot_without_disks() -> None:
    """An instance without disks cannot be snapshotted."""
    provider = LinodeProvider(
        "t", client=_client(lambda r: httpx.Response(200, json={"data": []}))
    )

    with pytest.raises(ProviderError, match="No disks found"):
        provider.create_snapshot("77", "quicklify-1")


def test_vultr_snapshots_are_scoped_to_the_instance() -> None:
    """Vultr snapshots record their instance and listings filter on it."""
    seen: list[httpx.Request] = []
    snapshots = [
        {"id": "a", "description": "quicklify-1 instance:inst-1", "size": 0},
        {"id": "b", "description": "quicklify-2 instance:inst-2", "size": 0},
        {"id": "c", "description": "quicklify-3", "size": 0},
        {"id": "d", "description": "manual instance:inst-1", "size": 0},
    ]

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            snapshot = {"id": "new", "description": json.loads(request.content)["description"]}
            return httpx.Response(201, json={"snapshot": snapshot})
        return httpx.Response(200, json={"snapshots": snapshots})

    provider = VultrProvider("t", client=_client(handler, seen))

    created = provider.create_snapshot("inst-1", "quicklify-9")
    listed = provider.list_snapshots("inst-1")

    assert json.loads(seen[0].content) == {
        "instance_id": "inst-1",
        "description": "quicklify-9 instance:inst-1",
    }
    assert created.name == "quicklify-9"
    assert [snapshot.id for snapshot in listed] == ["a"]


def test_linode_snapshots_are_scoped_to_the_instance() -> None:
    """Linode images of other instances are not listed."""
    images = [
        {"id": "private/1", "type": "manual", "label": "quicklify-1",
         "description": "quicklify-1 instance:77"},
        {"id": "private/2", "type": "manual", "label": "quicklify-2",
         "description": "quicklify-2 instance:78"},
    ]
    provider = LinodeProvider(
        "t", client=_client(lambda r: httpx.Response(200, json={"data": images}))
    )

    assert [snapshot.id for snapshot in provider.list_snapshots("77")] == ["private/1"]


@pytest.mark.parametrize(
    ("provider_class", "path", "body", "expected"),
    [
        (HetznerProvider, "/v1/servers/42", {"server": {"status": "running"}}, "running"),
        (DigitalOceanProvider, "/v2/droplets/42", {"droplet": {"status": "active"}}, "running"),
        (DigitalOceanProvider, "/v2/droplets/42", {"droplet": {"status": "off"}}, "off"),
        (VultrProvider, "/v2/instances/42", {"instance": {"power_status": "stopped"}}, "stopped"),
        (LinodeProvider, "/v4/linode/instances/42", {"status": "booting"}, "booting"),
    ],
)
def test_get_server_status(
    provider_class: type, path: str, body: dict[str, object], expected: str
) -> None:
    """Each provider's power state is read from its own payload shape."""
    seen: list[httpx.Request] = []
    provider = provider_class("t", client=_client(lambda r: httpx.Response(200, json=body), seen))

    assert provider.get_server_status("42") == expected
    assert (seen[0].method, seen[0].url.path) == ("GET", path)


@pytest.mark.parametrize(
    ("provider_class", "path", "body"),
    [
        (HetznerProvider, "/v1/servers/42/actions/reboot", None),
        (DigitalOceanProvider, "/v2/droplets/42/actions", {"type": "reboot"}),
        (VultrProvider, "/v2/instances/42/reboot", {}),
        (LinodeProvider, "/v4/linode/instances/42/reboot", None),
    ],
)
def test_reboot_server(provider_class: type, path: str, body: object) -> None:
    """Reboots are POSTed to each provider's reboot endpoint."""
    seen: list[httpx.Request] = []
    provider = provider_class("t", client=_client(lambda r: httpx.Response(204), seen))

    provider.reboot_server("42")

    assert (seen[0].method, seen[0].url.path) == ("POST", path)
    if body is not None:
        assert json.loads(seen[0].content) == body


def test_reboot_failure_reports_provider_detail() -> None:
    """A rejected reboot raises ProviderError with the API message."""
    body = {"error": {"message": "server is locked"}}
    provider = HetznerProvider("t", client=_client(lambda r: httpx.Response(423, json=body)))

    with pytest.raises(ProviderError, match="Failed to reboot server: server is locked"):
        provider.reboot_server("42")
