"""
Request Dispatcher Tests

Validates SoftOneApiClient.call_service against a scripted endpoint:
1. Request body construction (service, client ID, appId)
2. Failure classification (transport, HTTP status, decode, business)
3. Exactly one session repair retry on authentication failures
4. Secrets never leak into error context
"""

import asyncio
import json

import aiohttp
import pytest

from connectors.softone.so_client import SoftOneApiClient, decode_body, is_authentication_error
from connectors.softone.so_config import SoftOneConfig
from connectors.softone.so_errors import ApiErrorKind, SoftOneApiError, SoftOneConfigError, redact
from connectors.softone.so_models import ServiceResponse, SqlDataResponse


AUTH_EXPIRED = (200, {"success": False, "error": "Invalid clientID. Please authenticate again."})


class TestRequestBody:
    """What goes over the wire."""

    def test_service_call_carries_session_and_app_id(self, client, http_session, server):
        asyncio.run(client.sql_data("getItems", {"pMins": 5}))

        request = server.calls("SqlData")[0]
        assert request["SqlName"] == "getItems"
        assert request["params"] == {"pMins": 5}
        assert request["clientID"] == request["clientid"] == "session-1"
        assert request["appId"] == "1001"

        post = http_session.posts[-1]
        assert post["url"] == "https://erp.example.test/s1services"
        assert post["headers"]["Content-Type"] == "application/json"
        assert isinstance(post["timeout"], aiohttp.ClientTimeout)

    def test_extra_values_are_top_level(self, client, server):
        asyncio.run(client.sql_data("getItems", extra={"pMins": 30}))

        request = server.calls("SqlData")[0]
        assert request["pMins"] == 30
        assert "params" not in request

    def test_set_data_shape(self, client, server):
        asyncio.run(client.set_data("CUSTOMER", {"CUSTOMER": [{"CODE": "WEB000001"}]}))

        request = server.calls("setData")[0]
        assert request["object"] == "CUSTOMER"
        assert request["data"] == {"CUSTOMER": [{"CODE": "WEB000001"}]}

    def test_null_values_are_dropped(self, client):
        body = client.prepare_request_body("SqlData", {"SqlName": "getItems", "params": None}, "abc")
        assert "params" not in body
        assert body["service"] == "SqlData"

    def test_caller_cannot_override_service_name(self, client):
        body = client.prepare_request_body("SqlData", {"service": "login"})
        assert body["service"] == "SqlData"

    def test_missing_endpoint_is_config_error(self, sessions, http_session, metrics):
        client = SoftOneApiClient(SoftOneConfig(username="u", password="p"), sessions, http_session, metrics)

        with pytest.raises(SoftOneConfigError):
            asyncio.run(client.call_service("SqlData", {}))

        assert http_session.posts == []

    def test_missing_service_is_config_error(self, client):
        with pytest.raises(SoftOneConfigError):
            asyncio.run(client.call_service(""))


class TestAuthRetry:
    """At most one session repair per call."""

    def test_expired_session_is_repaired_once(self, client, server, metrics):
        server.queue("SqlData", AUTH_EXPIRED, (200, {"success": True, "rows": [{"MTRL": 1}]}))

        response = asyncio.run(client.sql_data("getItems"))

        assert response.rows == [{"MTRL": 1}]
        calls = server.calls("SqlData")
        assert len(calls) == 2
        assert calls[0]["clientID"] == "session-1"
        assert calls[1]["clientID"] == "session-2"
        assert metrics.dispatch.auth_retries == 1

    def test_second_auth_failure_is_not_retried_again(self, client, server):
        server.queue("SqlData", AUTH_EXPIRED, AUTH_EXPIRED, (200, {"success": True}))

        with pytest.raises(SoftOneApiError) as exc_info:
            asyncio.run(client.sql_data("getItems"))

        assert exc_info.value.kind == ApiErrorKind.BUSINESS
        assert len(server.calls("SqlData")) == 2
        assert len(server.calls("login")) == 2

    def test_error_code_triggers_retry(self, client, server):
        server.queue("SqlData", (200, {"success": False, "errorCode": 401}), (200, {"success": True}))

        asyncio.run(client.sql_data("getItems"))

        assert len(server.calls("SqlData")) == 2

    def test_business_error_is_not_retried(self, client, server):
        server.queue("setData", (200, {"success": False, "error": "Series 7021 is locked"}))

        with pytest.raises(SoftOneApiError) as exc_info:
            asyncio.run(client.set_data("SALDOC", {"SALDOC": [{}]}))

        assert str(exc_info.value) == "Series 7021 is locked"
        assert exc_info.value.status_code == 200
        assert len(server.calls("setData")) == 1
        assert len(server.calls("login")) == 1

    def test_retry_can_be_disabled(self, client, server):
        server.queue("SqlData", AUTH_EXPIRED)

        with pytest.raises(SoftOneApiError):
            asyncio.run(client.call_service("SqlData", {"SqlName": "getItems"}, retry_on_auth=False))

        assert len(server.calls("SqlData")) == 1


class TestFailureClassification:
    """Transport, status, and decode failures."""

    def test_transport_error(self, client, server):
        server.queue("SqlData", aiohttp.ClientConnectionError("connection refused"))

        with pytest.raises(SoftOneApiError) as exc_info:
            asyncio.run(client.sql_data("getItems"))

        assert exc_info.value.kind == ApiErrorKind.TRANSPORT
        assert "connection refused" in str(exc_info.value)

    def test_timeout_is_transport_error(self, client, server):
        server.queue("SqlData", asyncio.TimeoutError())

        with pytest.raises(SoftOneApiError) as exc_info:
            asyncio.run(client.sql_data("getItems"))

        assert exc_info.value.kind == ApiErrorKind.TRANSPORT

    def test_http_status_error(self, client, server):
        server.queue("SqlData", (503, "Service Unavailable"))

        with pytest.raises(SoftOneApiError) as exc_info:
            asyncio.run(client.sql_data("getItems"))

        assert exc_info.value.kind == ApiErrorKind.HTTP_STATUS
        assert exc_info.value.status_code == 503
        assert exc_info.value.response_body == "Service Unavailable"

    def test_invalid_json(self, client, server):
        server.queue("SqlData", (200, "<html>oops</html>"))

        with pytest.raises(SoftOneApiError) as exc_info:
            asyncio.run(client.sql_data("getItems"))

        assert exc_info.value.kind == ApiErrorKind.DECODE

    def test_json_that_is_not_an_object(self, client, server):
        server.queue("SqlData", (200, [1, 2, 3]))

        with pytest.raises(SoftOneApiError) as exc_info:
            asyncio.run(client.sql_data("getItems"))

        assert exc_info.value.kind == ApiErrorKind.DECODE

    def test_missing_success_flag_counts_as_success(self, client, server):
        server.queue("SqlData", (200, {"rows": [], "totalcount": 0}))

        response = asyncio.run(client.sql_data("getItems"))

        assert response.success is True
        assert response.total_count == 0

    def test_greek_codepage_body_is_decoded(self, client, server):
        body = json.dumps({"success": True, "rows": [{"NAME": "Μπλούζα"}]}, ensure_ascii=False).encode("cp1253")
        server.queue("SqlData", (200, body))

        response = asyncio.run(client.sql_data("getItems"))

        assert response.rows[0]["NAME"] == "Μπλούζα"


class TestSecrets:
    """Redaction of credentials and session ids."""

    def test_error_context_is_redacted(self, client, server):
        server.queue("SqlData", (200, {"success": False, "message": "Bad query"}))

        with pytest.raises(SoftOneApiError) as exc_info:
            asyncio.run(client.sql_data("getItems"))

        request = exc_info.value.context["request"]
        assert request["clientID"] == "***"
        assert request["clientid"] == "***"
        assert "session-1" not in exc_info.value.response_body

    def test_redact_is_recursive_and_case_insensitive(self):
        data = {"Password": "x", "nested": [{"USERNAME": "u", "keep": 1}]}
        assert redact(data) == {"Password": "***", "nested": [{"USERNAME": "***", "keep": 1}]}


class TestResponseHelpers:
    """Response parsing helpers."""

    def test_error_message_priority(self):
        response = ServiceResponse.model_validate({"success": False, "Message": "A", "error": "B"})
        assert response.error_message() == "A"

    def test_error_list_is_joined(self):
        response = ServiceResponse.model_validate({"success": False, "errors": ["one", "two"]})
        assert response.error_message() == "one; two"

    @pytest.mark.parametrize("message", [
        "Session expired",
        "Authenticate first",
        "Client ID not valid",
    ])
    def test_auth_error_detection(self, message):
        assert is_authentication_error(ServiceResponse.model_validate({"success": False, "error": message}))

    def test_unrelated_error_is_not_auth(self):
        assert not is_authentication_error(ServiceResponse.model_validate({"success": False, "error": "Out of stock"}))

    def test_string_success_flag(self):
        assert SqlDataResponse.model_validate({"success": "false"}).success is False

    def test_decode_body_utf8(self):
        assert decode_body("καλημέρα".encode("utf-8")) == "καλημέρα"

    def test_decode_body_prefers_greek_codepage(self):
        assert decode_body("Μπλούζα".encode("cp1253")) == "Μπλούζα"

    def test_decode_body_replaces_when_no_codepage_fits(self):
        # 0x81 is undefined in cp1253/cp1252, 0xD2 in iso-8859-7
        assert decode_body(b"\x81\xd2") == "\ufffd\ufffd"


class TestRotation:
    """Rotated session ids in successful responses."""

    def test_rotated_client_id_is_adopted(self, client, server, kv):
        server.queue("SqlData", (200, {"success": True, "clientID": "rotated-9", "rows": []}))

        asyncio.run(client.sql_data("getItems"))
        asyncio.run(client.sql_data("getItems"))

        assert server.calls("SqlData")[1]["clientID"] == "rotated-9"
