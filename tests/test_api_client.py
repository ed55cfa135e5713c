"""Envelope handling and error mapping of the HTTP boost client."""
import json

import httpx
import pytest

from stockboost.api_client import BoostApiClient
from stockboost.errors import NotFoundError, ServerRejectedError, TransportError
from stockboost.models import CreateBoostRequest, DeactivateBoostRequest

BOOST = {
    "id": 7,
    "sku": "SKU-001",
    "amount": 55,
    "status": "active",
    "sourceStock": 45,
    "targetStocks": [{"syncbackJobId": 101, "itemId": 5001, "sku": "SKU-001", "sellableQuantity": 100}],
    "createdAt": "2024-11-01T10:00:00Z",
    "createdBy": "admin",
}


def client_for(handler, token="secret"):
    return BoostApiClient("http://boosts.test/api", token, transport=httpx.MockTransport(handler))


async def test_active_boosts_are_parsed_from_envelope():
    def handler(request):
        assert request.url.path == "/api/boosts/active"
        return httpx.Response(200, json={"success": True, "data": [BOOST]})

    async with client_for(handler) as client:
        boosts = await client.get_active_boosts()

    assert boosts[0].id == 7
    assert boosts[0].source_stock == 45
    assert boosts[0].target_entries[0].syncback_job_id == 101
    assert boosts[0].target_entries[0].sellable_quantity == 100


async def test_historical_page_with_pagination_block():
    seen = {}

    def handler(request):
        seen.update(request.url.params)
        return httpx.Response(
            200,
            json={
                "success": True,
                "data": {
                    "boosts": [dict(BOOST, status="completed")],
                    "pagination": {"page": 2, "limit": 5, "total": 6, "totalPages": 2},
                },
            },
        )

    async with client_for(handler) as client:
        result = await client.get_historical_boosts(page=2, limit=5)

    assert seen == {"page": "2", "limit": "5"}
    assert result.boosts[0].status == "completed"
    assert result.pagination.total_pages == 2


async def test_historical_bare_list_keeps_sibling_pagination():
    def handler(request):
        return httpx.Response(
            200,
            json={"success": True, "data": [dict(BOOST, status="inactive")], "pagination": {"total": 1}},
        )

    async with client_for(handler) as client:
        result = await client.get_historical_boosts()

    assert len(result.boosts) == 1
    assert result.pagination.total == 1


async def test_unsuccessful_envelope_raises_server_rejected():
    def handler(request):
        return httpx.Response(200, json={"success": False, "error": "SKU is locked"})

    async with client_for(handler) as client:
        with pytest.raises(ServerRejectedError, match="SKU is locked"):
            await client.get_active_boosts()


async def test_http_errors_are_mapped():
    def handler(request):
        if request.url.path.endswith("/deactivate"):
            return httpx.Response(404, json={"success": False, "error": "Boost not found"})
        return httpx.Response(500, text="boom")

    async with client_for(handler) as client:
        with pytest.raises(NotFoundError) as not_found:
            await client.deactivate_boost(99, DeactivateBoostRequest())
        with pytest.raises(ServerRejectedError) as rejected:
            await client.get_active_boosts()

    assert not_found.value.status_code == 404
    assert not_found.value.message == "Boost not found"
    assert rejected.value.status_code == 500
    assert rejected.value.message == "HTTP 500"


async def test_network_failure_raises_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with client_for(handler) as client:
        with pytest.raises(TransportError):
            await client.sync_now(1)


async def test_create_posts_camel_case_with_auth_header():
    captured = {}

    def handler(request):
        captured["auth"] = request.headers.get("authorization")
        captured["body"] = json.loads(request.content)
        return httpx.Response(201, json={"success": True, "data": BOOST})

    async with client_for(handler) as client:
        boost = await client.create_boost(CreateBoostRequest(sku="SKU-001", amount=55, target_stock=100))

    assert captured["auth"] == "Bearer secret"
    assert captured["body"] == {"sku": "SKU-001", "amount": 55.0, "targetStock": 100.0}
    assert boost.created_by == "admin"


async def test_sync_now_merges_message_and_channels():
    def handler(request):
        assert request.method == "POST"
        return httpx.Response(
            200,
            json={
                "success": True,
                "message": "Sync triggered",
                "channels": [
                    {"name": "Webshop", "lastSyncedAt": "2024-11-01T10:00:00Z", "lastSyncedStatus": "success"},
                ],
            },
        )

    async with client_for(handler) as client:
        report = await client.sync_now(7)

    assert report.message == "Sync triggered"
    assert report.channels[0].name == "Webshop"
    assert report.channels[0].last_synced_status == "success"


async def test_sku_lookup_accepts_sku_and_name_keys():
    def handler(request):
        assert json.loads(request.content) == {"skus": ["SKU-001", "SKU-002"]}
        return httpx.Response(
            200,
            json={
                "success": True,
                "data": [
                    {"sku": "SKU-001", "name": "Premium Widget A"},
                    {"code": "SKU-002", "description": "Standard Widget B"},
                ],
            },
        )

    async with client_for(handler, token=None) as client:
        details = await client.sku_lookup(["SKU-001", "SKU-002"])

    assert [(detail.code, detail.description) for detail in details] == [
        ("SKU-001", "Premium Widget A"),
        ("SKU-002", "Standard Widget B"),
    ]


async def test_syncback_info_keys_are_strings():
    def handler(request):
        return httpx.Response(200, json={"success": True, "data": {"101": "Webshop", "102": "Marketplace"}})

    async with client_for(handler) as client:
        info = await client.get_syncback_info()

    assert info == {"101": "Webshop", "102": "Marketplace"}


async def test_search_skus_sends_query_and_limit():
    seen = {}

    def handler(request):
        seen.update(request.url.params)
        return httpx.Response(200, json={"success": True, "data": [{"sku": "SKU-001", "name": "Premium Widget A"}]})

    async with client_for(handler) as client:
        details = await client.search_skus("widget", limit=3)

    assert seen == {"query": "widget", "limit": "3"}
    assert details[0].code == "SKU-001"


@pytest.mark.parametrize(
    "call, data",
    [
        (lambda client: client.sku_lookup(["SKU-001"]), {"SKU-001": "Premium Widget A"}),
        (lambda client: client.sku_lookup(["SKU-001"]), [{"name": "Premium Widget A"}]),
        (lambda client: client.get_active_boosts(), [{"id": 1}]),
        (lambda client: client.get_historical_boosts(), {"boosts": [{"sku": "SKU-001"}]}),
        (lambda client: client.deactivate_boost(7, DeactivateBoostRequest()), {"id": 7}),
        (lambda client: client.get_syncback_info(), ["Webshop"]),
    ],
)
async def test_unparseable_data_is_a_server_rejection(call, data):
    def handler(request):
        return httpx.Response(200, json={"success": True, "data": data})

    async with client_for(handler) as client:
        with pytest.raises(ServerRejectedError, match="Malformed response body"):
            await call(client)
