"""Tests for the Salesforce REST connector using a mock transport."""

from __future__ import annotations

from urllib.parse import parse_qs

import httpx
import pytest

from sfdc_poller.connectors import (
    ConnectionError,
    RateLimitError,
    SalesforceAPIError,
    SalesforceConnector,
    SchemaDiscoveryError,
)
from sfdc_poller.connectors.api.auth import OAuth2Error, OAuth2TokenManager, get_oauth2_token
from sfdc_poller.connectors.api.base_api import parse_retry_after

INSTANCE_URL = "https://acme.my.salesforce.com"


class FakeSalesforce:
    """Mock transport handler imitating the login and data endpoints.

    ``responses`` maps a request path to a list of responses served in
    order; the last one repeats.
    """

    def __init__(self, responses: dict[str, list[httpx.Response]] | None = None) -> None:
        self.responses = responses or {}
        self.requests: list[httpx.Request] = []
        self.logins = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/services/oauth2/token":
            self.logins += 1
            return httpx.Response(
                200,
                json={
                    "access_token": f"session-{self.logins}",
                    "instance_url": INSTANCE_URL + "/",
                    "token_type": "Bearer",
                },
            )
        queue = self.responses.get(request.url.path)
        if not queue:
            return httpx.Response(404, json=[{"errorCode": "NOT_FOUND", "message": "nope"}])
        return queue.pop(0) if len(queue) > 1 else queue[0]

    def data_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path != "/services/oauth2/token"]


def make_connector(handler, **options):
    config = {
        "client_id": "consumer-key",
        "client_secret": "consumer-secret",
        "username": "integration@example.com",
        "password": "hunter2",
        "security_token": "tok3n",
        "retry_delay": 0,
        **options,
    }
    return SalesforceConnector(
        "sfdc-test", "Salesforce test", config, transport=httpx.MockTransport(handler)
    )


class TestLogin:
    """Tests for login host selection and the password grant."""

    def test_production_host(self):
        handler = FakeSalesforce()
        connector = make_connector(handler)

        connector.connect()

        token_request = handler.requests[0]
        assert str(token_request.url) == "https://login.salesforce.com/services/oauth2/token"
        assert connector.is_connected is True

    def test_sandbox_host(self):
        connector = make_connector(FakeSalesforce(), sandbox=True)
        assert connector.token_url == "https://test.salesforce.com/services/oauth2/token"

    def test_instance_url_host(self):
        connector = make_connector(FakeSalesforce(), host="acme.my.salesforce.com/")
        assert connector.token_url == "https://acme.my.salesforce.com/services/oauth2/token"

    def test_password_includes_security_token(self):
        handler = FakeSalesforce()
        make_connector(handler).connect()

        form = parse_qs(handler.requests[0].content.decode())
        assert form["grant_type"] == ["password"]
        assert form["password"] == ["hunter2tok3n"]
        assert form["client_id"] == ["consumer-key"]

    def test_login_failure_is_sanitized(self):
        def handler(request):
            return httpx.Response(
                400,
                json={
                    "error": "invalid_grant",
                    "error_description": "authentication failure for password=hunter2tok3n",
                },
            )

        connector = make_connector(handler)

        with pytest.raises(ConnectionError) as exc_info:
            connector.connect()

        assert "invalid_grant" in str(exc_info.value)
        assert "hunter2" not in str(exc_info.value)
        assert connector.is_connected is False

    def test_token_missing_instance_url(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(200, json={"access_token": "x"}))
        with pytest.raises(OAuth2Error, match="missing access_token or instance_url"):
            get_oauth2_token(
                {
                    "token_url": "https://login.salesforce.com/services/oauth2/token",
                    "client_id": "id",
                    "client_secret": "secret",
                    "username": "u",
                    "password": "p",
                },
                transport=transport,
            )

    def test_token_response_not_json(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(200, text="<html>maintenance</html>"))
        with pytest.raises(OAuth2Error, match="not valid JSON"):
            get_oauth2_token(
                {
                    "token_url": "https://login.salesforce.com/services/oauth2/token",
                    "client_id": "id",
                    "client_secret": "secret",
                    "username": "u",
                    "password": "p",
                },
                transport=transport,
            )

    def test_token_response_not_json_fails_connect(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(200, text="<html>maintenance</html>"))
        connector = SalesforceConnector(
            "sfdc-test",
            "Salesforce test",
            {"client_id": "id", "client_secret": "secret", "username": "u", "password": "p"},
            transport=transport,
        )

        with pytest.raises(ConnectionError, match="not valid JSON"):
            connector.connect()

    def test_token_cached_until_invalidated(self):
        handler = FakeSalesforce()
        manager = OAuth2TokenManager(
            {
                "token_url": "https://login.salesforce.com/services/oauth2/token",
                "client_id": "id",
                "client_secret": "secret",
                "username": "u",
                "password": "p",
            },
            transport=httpx.MockTransport(handler),
        )

        assert manager.get_token().access_token == "session-1"
        assert manager.get_token().access_token == "session-1"
        manager.invalidate()
        assert manager.get_token().access_token == "session-2"
        assert manager.get_token().instance_url == INSTANCE_URL


class TestDescribe:
    """Tests for describe."""

    def test_fields_in_order(self):
        handler = FakeSalesforce(
            {
                "/services/data/v59.0/sobjects/Lead/describe": [
                    httpx.Response(
                        200,
                        json={
                            "name": "Lead",
                            "fields": [
                                {"name": "Id", "type": "id"},
                                {"name": "LastModifiedDate", "type": "datetime"},
                                {"name": "Email", "type": "email"},
                            ],
                        },
                    )
                ]
            }
        )
        connector = make_connector(handler)

        fields = connector.describe("Lead")

        assert fields == [("Id", "id"), ("LastModifiedDate", "datetime"), ("Email", "email")]
        request = handler.data_requests()[0]
        assert request.url.host == "acme.my.salesforce.com"
        assert request.headers["Authorization"] == "Bearer session-1"

    def test_unknown_object(self):
        connector = make_connector(FakeSalesforce())
        with pytest.raises(SchemaDiscoveryError, match="Describe Nope__c failed"):
            connector.describe("Nope__c")

    def test_discover_schema(self):
        handler = FakeSalesforce(
            {
                "/services/data/v59.0/sobjects/Account/describe": [
                    httpx.Response(200, json={"fields": [{"name": "Id", "type": "id"}]})
                ]
            }
        )
        result = make_connector(handler).discover_schema(["Account"])
        assert result.objects == ["Account"]
        assert result.columns == {"Account": [{"name": "Id", "type": "id"}]}


class TestQuery:
    """Tests for query pagination and endpoint selection."""

    def test_follows_next_records_url(self):
        next_url = "/services/data/v59.0/query/01gxx-2000"
        handler = FakeSalesforce(
            {
                "/services/data/v59.0/query": [
                    httpx.Response(
                        200,
                        json={
                            "done": False,
                            "totalSize": 3,
                            "nextRecordsUrl": next_url,
                            "records": [{"Id": "1"}, {"Id": "2"}],
                        },
                    )
                ],
                next_url: [
                    httpx.Response(200, json={"done": True, "totalSize": 3, "records": [{"Id": "3"}]})
                ],
            }
        )

        rows = list(make_connector(handler).query("SELECT Id FROM Lead"))

        assert [row["Id"] for row in rows] == ["1", "2", "3"]
        first, second = handler.data_requests()
        assert first.url.params["q"] == "SELECT Id FROM Lead"
        assert second.url.path == next_url

    def test_query_all_when_including_deleted(self):
        handler = FakeSalesforce(
            {"/services/data/v59.0/queryAll": [httpx.Response(200, json={"done": True, "records": []})]}
        )

        rows = list(make_connector(handler, include_deleted=True).query("SELECT Id FROM Lead"))

        assert rows == []
        assert handler.data_requests()[0].url.path == "/services/data/v59.0/queryAll"

    def test_tooling_api_and_version(self):
        path = "/services/data/v58.0/tooling/query"
        handler = FakeSalesforce({path: [httpx.Response(200, json={"done": True, "records": [{"Id": "01p"}]})]})
        connector = make_connector(handler, use_tooling_api=True, api_version="58.0")

        rows = list(connector.query("SELECT Id FROM ApexClass"))

        assert rows == [{"Id": "01p"}]
        assert handler.data_requests()[0].url.path == path


class TestRetries:
    """Tests for session expiry and retry behavior."""

    def test_expired_session_logs_in_again(self):
        handler = FakeSalesforce(
            {
                "/services/data/v59.0/query": [
                    httpx.Response(401, json=[{"errorCode": "INVALID_SESSION_ID"}]),
                    httpx.Response(200, json={"done": True, "records": [{"Id": "1"}]}),
                ]
            }
        )

        rows = list(make_connector(handler).query("SELECT Id FROM Lead"))

        assert rows == [{"Id": "1"}]
        assert handler.logins == 2
        assert handler.data_requests()[1].headers["Authorization"] == "Bearer session-2"

    def test_server_error_retried(self):
        handler = FakeSalesforce(
            {
                "/services/data/v59.0/query": [
                    httpx.Response(503),
                    httpx.Response(200, json={"done": True, "records": [{"Id": "1"}]}),
                ]
            }
        )

        rows = list(make_connector(handler).query("SELECT Id FROM Lead"))

        assert rows == [{"Id": "1"}]
        assert len(handler.data_requests()) == 2

    def test_server_error_gives_up(self):
        handler = FakeSalesforce({"/services/data/v59.0/query": [httpx.Response(500)]})

        with pytest.raises(SalesforceAPIError, match="after 2 attempts"):
            list(make_connector(handler, max_retries=1).query("SELECT Id FROM Lead"))

        assert len(handler.data_requests()) == 2

    def test_client_error_not_retried(self):
        handler = FakeSalesforce(
            {
                "/services/data/v59.0/query": [
                    httpx.Response(
                        400,
                        json=[{"errorCode": "MALFORMED_QUERY", "message": "unexpected token: FORM"}],
                    )
                ]
            }
        )

        with pytest.raises(SalesforceAPIError, match="MALFORMED_QUERY") as exc_info:
            list(make_connector(handler).query("SELECT Id FORM Lead"))

        assert exc_info.value.status_code == 400
        assert len(handler.data_requests()) == 1


    def test_transport_error_retried(self):
        calls = []

        def handler(request):
            if request.url.path == "/services/oauth2/token":
                return FakeSalesforce()(request)
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ReadError("connection reset", request=request)
            return httpx.Response(200, json={"done": True, "records": [{"Id": "1"}]})

        rows = list(make_connector(handler, max_retries=1).query("SELECT Id FROM Lead"))

        assert rows == [{"Id": "1"}]
        assert len(calls) == 2

    def test_transport_error_gives_up(self):
        def handler(request):
            if request.url.path == "/services/oauth2/token":
                return FakeSalesforce()(request)
            raise httpx.ReadError("connection reset", request=request)

        with pytest.raises(SalesforceAPIError, match="after 2 attempts: connection reset"):
            list(make_connector(handler, max_retries=1).query("SELECT Id FROM Lead"))

    def test_rate_limit_with_http_date(self):
        handler = FakeSalesforce(
            {
                "/services/data/v59.0/query": [
                    httpx.Response(429, headers={"Retry-After": "Wed, 21 Oct 2015 07:28:00 GMT"})
                ]
            }
        )

        with pytest.raises(RateLimitError) as exc_info:
            list(make_connector(handler).query("SELECT Id FROM Lead"))

        assert exc_info.value.retry_after == 60
        assert len(handler.data_requests()) == 1

    @pytest.mark.parametrize(
        "header, expected",
        [
            ("120", 120),
            ("1.5", 2),
            (None, 60),
            ("", 60),
            ("-5", 60),
            ("Wed, 21 Oct 2015 07:28:00 GMT", 60),
        ],
    )
    def test_parse_retry_after(self, header, expected):
        assert parse_retry_after(header) == expected


class TestConnectionTest:
    """Tests for test_connection."""

    def test_success(self):
        handler = FakeSalesforce(
            {
                "/services/data/v59.0/limits": [
                    httpx.Response(200, json={"DailyApiRequests": {"Max": 15000, "Remaining": 14990}})
                ]
            }
        )
        connector = make_connector(handler)

        result = connector.test_connection()

        assert result.success is True
        assert result.details["daily_api_requests_remaining"] == 14990
        assert connector.is_connected is False

    def test_failure(self):
        connector = make_connector(lambda r: httpx.Response(401, json={"error": "invalid_client"}))

        result = connector.test_connection()

        assert result.success is False
        assert result.details["error_type"] == "ConnectionError"
