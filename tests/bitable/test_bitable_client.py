"""Tests for the Bitable API client."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from shelfsync.bitable.client import TOKEN_ENDPOINT, BitableClient
from shelfsync.bitable.fields import FieldsAPI
from shelfsync.bitable.records import RecordsAPI
from shelfsync.cache import TTLCache
from shelfsync.errors import BitableAPIError
from shelfsync.schemas.destination import DestinationRecord
from tests.conftest import CREDENTIALS, SAMPLE_APP_TOKEN, SAMPLE_TABLE_ID, TABLE

TABLE_PATH = f"/open-apis/bitable/v1/apps/{SAMPLE_APP_TOKEN}/tables/{SAMPLE_TABLE_ID}"


def _ok(data: dict) -> dict:
    return {"code": 0, "msg": "success", "data": data}


@pytest.fixture
def token_response(mock_response):
    return mock_response({"code": 0, "msg": "ok", "tenant_access_token": "t-abc", "expire": 7200})


@pytest.fixture
def bitable(token_response):
    """BitableClient with a mocked HTTP transport and initialized APIs."""
    client = BitableClient(base_url="https://open.feishu.cn", max_retries=2, retry_delay=0.5, sleep=AsyncMock())
    client._client = MagicMock()
    client._client.post = AsyncMock(return_value=token_response)
    client._client.request = AsyncMock()
    client._fields = FieldsAPI(client)
    client._records = RecordsAPI(client)
    return client


class TestAuth:
    @pytest.mark.asyncio
    async def test_token_is_fetched_once_and_cached(self, bitable, mock_response):
        bitable._client.request.return_value = mock_response(_ok({"items": [], "has_more": False}))

        await bitable.list_fields(CREDENTIALS, TABLE)
        await bitable.list_fields(CREDENTIALS, TABLE)

        bitable._client.post.assert_awaited_once_with(
            TOKEN_ENDPOINT, json={"app_id": CREDENTIALS.app_id, "app_secret": CREDENTIALS.app_secret}
        )
        headers = bitable._client.request.call_args.kwargs["headers"]
        assert headers == {"Authorization": "Bearer t-abc"}

    @pytest.mark.asyncio
    async def test_token_error_raises(self, bitable, mock_response):
        bitable._client.post.return_value = mock_response({"code": 10003, "msg": "invalid app_id"})

        with pytest.raises(BitableAPIError) as exc_info:
            await bitable.tenant_token(CREDENTIALS)
        assert exc_info.value.code == 10003

    @pytest.mark.asyncio
    async def test_expired_token_is_refreshed(self, bitable, mock_response):
        bitable._client.request.side_effect = [
            mock_response({"code": 99991663, "msg": "token expired"}),
            mock_response(_ok({"items": [], "has_more": False})),
        ]

        assert await bitable.list_fields(CREDENTIALS, TABLE) == []
        assert bitable._client.post.await_count == 2


class TestFields:
    @pytest.mark.asyncio
    async def test_list_follows_pagination(self, bitable, mock_response):
        bitable._client.request.side_effect = [
            mock_response(_ok({
                "items": [
                    {"field_id": "fld00000000000001", "field_name": "Subject ID", "type": 1, "is_primary": True},
                    {"field_id": "fld00000000000002", "field_name": "书名", "type": 1},
                ],
                "has_more": True,
                "page_token": "p2",
            })),
            mock_response(_ok({
                "items": [{
                    "field_id": "fld00000000000003",
                    "field_name": "我的评分",
                    "type": 2,
                    "ui_type": "Rating",
                    "property": {"formatter": "0", "min": 1, "max": 5, "rating": {"symbol": "star"}},
                }],
                "has_more": False,
            })),
        ]

        columns = await bitable.list_fields(CREDENTIALS, TABLE)

        assert [c.field_name for c in columns] == ["Subject ID", "书名", "我的评分"]
        assert columns[0].is_primary
        assert columns[2].property["max"] == 5
        second = bitable._client.request.call_args_list[1]
        assert second.args == ("GET", f"{TABLE_PATH}/fields")
        assert second.kwargs["params"] == {"page_size": 100, "page_token": "p2"}

    @pytest.mark.asyncio
    async def test_create(self, bitable, mock_response):
        bitable._client.request.return_value = mock_response(_ok({"field": {
            "field_id": "fld00000000000009",
            "field_name": "书名",
            "type": 1,
            "description": {"text": "Book title"},
        }}))
        payload = {"field_name": "书名", "type": 1, "ui_type": "Text"}

        column = await bitable.create_field(CREDENTIALS, TABLE, payload)

        assert column.field_id == "fld00000000000009"
        assert column.description == "Book title"
        call = bitable._client.request.call_args
        assert call.args == ("POST", f"{TABLE_PATH}/fields")
        assert call.kwargs["json"] == payload

    @pytest.mark.asyncio
    async def test_update(self, bitable, mock_response):
        bitable._client.request.return_value = mock_response(_ok({"field": {
            "field_id": "fld00000000000009", "field_name": "我的状态", "type": 3,
        }}))

        await bitable.update_field(CREDENTIALS, TABLE, "fld00000000000009", {"field_name": "我的状态", "type": 3})

        assert bitable._client.request.call_args.args == ("PUT", f"{TABLE_PATH}/fields/fld00000000000009")


class TestRecords:
    @pytest.mark.asyncio
    async def test_list_page(self, bitable, mock_response):
        bitable._client.request.return_value = mock_response(_ok({
            "items": [{"record_id": "rec1", "fields": {"fld00000000000001": "B1"}}],
            "has_more": True,
            "page_token": "next",
            "total": 3,
        }))

        page = await bitable.list_records(CREDENTIALS, TABLE, page_size=500)

        assert page.records[0].record_id == "rec1"
        assert page.has_more
        assert page.page_token == "next"
        assert page.total == 3
        assert bitable._client.request.call_args.kwargs["params"] == {"page_size": 500}

    @pytest.mark.asyncio
    async def test_batch_create_body(self, bitable, mock_response):
        bitable._client.request.return_value = mock_response(_ok({"records": [
            {"record_id": "rec1", "fields": {"fld00000000000001": "B1"}},
        ]}))

        created = await bitable.batch_create_records(CREDENTIALS, TABLE, [{"fld00000000000001": "B1"}])

        assert created == [DestinationRecord(record_id="rec1", fields={"fld00000000000001": "B1"})]
        call = bitable._client.request.call_args
        assert call.args == ("POST", f"{TABLE_PATH}/records/batch_create")
        assert call.kwargs["json"] == {"records": [{"fields": {"fld00000000000001": "B1"}}]}

    @pytest.mark.asyncio
    async def test_batch_update_body(self, bitable, mock_response):
        bitable._client.request.return_value = mock_response(_ok({"records": []}))

        await bitable.batch_update_records(
            CREDENTIALS, TABLE, [DestinationRecord(record_id="rec1", fields={"fld00000000000002": "Y"})]
        )

        call = bitable._client.request.call_args
        assert call.args == ("POST", f"{TABLE_PATH}/records/batch_update")
        assert call.kwargs["json"] == {"records": [{"record_id": "rec1", "fields": {"fld00000000000002": "Y"}}]}

    @pytest.mark.asyncio
    async def test_delete(self, bitable, mock_response):
        bitable._client.request.return_value = mock_response(_ok({"deleted": True, "record_id": "rec1"}))

        await bitable.delete_record(CREDENTIALS, TABLE, "rec1")

        assert bitable._client.request.call_args.args == ("DELETE", f"{TABLE_PATH}/records/rec1")


class TestErrors:
    @pytest.mark.asyncio
    async def test_api_error_is_not_retried(self, bitable, mock_response):
        bitable._client.request.return_value = mock_response({"code": 1254045, "msg": "FieldNameNotFound"})

        with pytest.raises(BitableAPIError) as exc_info:
            await bitable.list_records(CREDENTIALS, TABLE, page_size=500)

        assert exc_info.value.code == 1254045
        assert not exc_info.value.retryable
        assert bitable._client.request.await_count == 1

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried_with_backoff(self, bitable, mock_response):
        bitable._client.request.side_effect = [
            mock_response({"code": 1254290, "msg": "TooManyRequest"}),
            mock_response({}, status_code=503),
            mock_response(_ok({"items": [], "has_more": False})),
        ]

        page = await bitable.list_records(CREDENTIALS, TABLE, page_size=500)

        assert page.records == []
        assert [c.args[0] for c in bitable._sleep.await_args_list] == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_retries_are_bounded(self, bitable, mock_response):
        bitable._client.request.return_value = mock_response({"code": 1254290, "msg": "TooManyRequest"})

        with pytest.raises(BitableAPIError):
            await bitable.list_records(CREDENTIALS, TABLE, page_size=500)

        assert bitable._client.request.await_count == 3

    @pytest.mark.asyncio
    async def test_client_error_raises_http_status_error(self, bitable, mock_response):
        bitable._client.request.return_value = mock_response({}, status_code=404)

        with pytest.raises(httpx.HTTPStatusError):
            await bitable.delete_record(CREDENTIALS, TABLE, "rec_missing")

        assert bitable._client.request.await_count == 1

    def test_apis_require_context(self):
        with pytest.raises(RuntimeError):
            BitableClient().fields

    @pytest.mark.asyncio
    async def test_transport_error_is_retried(self, bitable, mock_response):
        bitable._client.request.side_effect = [
            httpx.ConnectError("connection reset"),
            mock_response(_ok({"deleted": True})),
        ]

        await bitable.delete_record(CREDENTIALS, TABLE, "rec1")

        assert bitable._client.request.await_count == 2
        assert [c.args[0] for c in bitable._sleep.await_args_list] == [0.5]

    @pytest.mark.asyncio
    async def test_rejected_refreshed_token_is_not_retried(self, bitable, mock_response):
        bitable._client.request.return_value = mock_response({"code": 99991663, "msg": "token expired"})

        with pytest.raises(BitableAPIError) as exc_info:
            await bitable.list_records(CREDENTIALS, TABLE, page_size=500)

        assert exc_info.value.code == 99991663
        assert bitable._client.request.await_count == 2
        assert bitable._client.post.await_count == 2


class TestTokenCache:
    def test_empty_injected_cache_is_kept(self):
        shared = TTLCache(60)

        client = BitableClient(token_cache=shared)

        assert client._tokens is shared

    @pytest.mark.asyncio
    async def test_token_lands_in_injected_cache(self, token_response):
        shared = TTLCache(60)
        client = BitableClient(token_cache=shared)
        client._client = MagicMock()
        client._client.post = AsyncMock(return_value=token_response)

        assert await client.tenant_token(CREDENTIALS) == "t-abc"
        assert shared.get(CREDENTIALS.app_id) == "t-abc"
