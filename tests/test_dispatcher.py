"""
Tests for JSON-RPC routing and error mapping (taxpayer_mcp/dispatcher.py).

The dispatcher is driven directly with decoded messages and a bound
RequestContext; HTTP concerns are covered in test_server.py.
"""

import logging

import pytest

from taxpayer_mcp.auth import Identity, Role
from taxpayer_mcp.context import RequestContext
from taxpayer_mcp.dispatcher import McpDispatcher
from taxpayer_mcp.store import SAMPLE_USER, TaxRecordStore

from test_repository import BrokenStore


@pytest.fixture
def dispatcher(store, reference):
    return McpDispatcher(store, reference, repository_timeout=1.0)


@pytest.fixture
def context():
    return RequestContext.for_identity(Identity(user_id=SAMPLE_USER, role=Role.USER))


def request(method, params=None, request_id=1):
    message = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        message["params"] = params
    return message


class ExplodingStore(TaxRecordStore):
    async def profiles_for(self, owner_id):
        raise ValueError("corrupt row")

    async def returns_for(self, owner_id):
        return []

    async def deductions_for(self, owner_id):
        return []

    async def documents_for(self, owner_id):
        return []


class TestLifecycle:
    async def test_initialize_echoes_supported_version(self, dispatcher, context):
        response = await dispatcher.dispatch(
            request("initialize", {"protocolVersion": "2024-11-05"}), context
        )

        result = response["result"]
        assert result["protocolVersion"] == "2024-11-05"
        assert result["serverInfo"] == {"name": "taxpayer-mcp-server", "version": "1.0.0"}
        assert set(result["capabilities"]) >= {"tools", "resources", "prompts"}
        assert result["capabilities"]["resources"]["subscribe"] is False

    async def test_initialize_falls_back_to_latest_version(self, dispatcher, context):
        response = await dispatcher.dispatch(
            request("initialize", {"protocolVersion": "1999-01-01"}), context
        )

        assert response["result"]["protocolVersion"] == "2025-03-26"

    async def test_ping(self, dispatcher, context):
        response = await dispatcher.dispatch(request("ping"), context)

        assert response == {"jsonrpc": "2.0", "id": 1, "result": {}}

    async def test_notification_has_no_response(self, dispatcher, context):
        message = {"jsonrpc": "2.0", "method": "notifications/initialized"}

        assert await dispatcher.dispatch(message, context) is None


class TestProtocolErrors:
    @pytest.mark.parametrize("message", [[], "text", 42, None])
    async def test_non_object_is_invalid_request(self, dispatcher, context, message):
        response = await dispatcher.dispatch(message, context)

        assert response["error"]["code"] == -32600
        assert response["id"] is None

    @pytest.mark.parametrize("method", [None, 7, ""])
    async def test_missing_method_is_invalid_request(self, dispatcher, context, method):
        response = await dispatcher.dispatch({"jsonrpc": "2.0", "id": 3, "method": method}, context)

        assert response["error"]["code"] == -32600
        assert response["id"] == 3

    async def test_unknown_method(self, dispatcher, context):
        response = await dispatcher.dispatch(request("tools/execute"), context)

        assert response["error"] == {"code": -32601, "message": "Method not found: tools/execute"}

    async def test_params_must_be_an_object(self, dispatcher, context):
        response = await dispatcher.dispatch(request("tools/call", ["GetTaxReturns"]), context)

        assert response["error"]["code"] == -32602

    @pytest.mark.parametrize("request_id", [1, "abc-123", None])
    async def test_id_is_echoed(self, dispatcher, context, request_id):
        response = await dispatcher.dispatch(request("tools/execute", request_id=request_id), context)

        assert response["id"] == request_id

    async def test_absent_id_is_null(self, dispatcher, context):
        response = await dispatcher.dispatch({"jsonrpc": "2.0", "method": "ping"}, context)

        assert "id" in response
        assert response["id"] is None


class TestTools:
    async def test_list(self, dispatcher, context):
        response = await dispatcher.dispatch(request("tools/list"), context)

        names = [tool["name"] for tool in response["result"]["tools"]]
        assert len(names) == 9
        assert "GetTaxpayerProfile" in names

    async def test_call_returns_text_content(self, dispatcher, context):
        response = await dispatcher.dispatch(
            request("tools/call", {"name": "GetTaxpayerProfile", "arguments": {}}), context
        )

        result = response["result"]
        assert result["isError"] is False
        assert result["content"][0]["type"] == "text"
        assert "John Doe" in result["content"][0]["text"]

    async def test_call_without_arguments_member(self, dispatcher, context):
        response = await dispatcher.dispatch(request("tools/call", {"name": "GetTaxReturns"}), context)

        assert "TAX RETURNS" in response["result"]["content"][0]["text"]

    async def test_unknown_tool(self, dispatcher, context):
        response = await dispatcher.dispatch(request("tools/call", {"name": "DeleteEverything"}), context)

        assert response["error"]["code"] == -32602
        assert "Unknown tool: DeleteEverything" in response["error"]["message"]

    async def test_missing_tool_name(self, dispatcher, context):
        response = await dispatcher.dispatch(request("tools/call", {}), context)

        assert response["error"]["code"] == -32602

    @pytest.mark.parametrize("arguments", [[], "", 0, False, "year=2023"])
    async def test_arguments_must_be_an_object(self, dispatcher, context, arguments):
        response = await dispatcher.dispatch(
            request("tools/call", {"name": "GetTaxReturns", "arguments": arguments}), context
        )

        assert response["error"]["code"] == -32602
        assert response["error"]["message"] == "Tool arguments must be an object"

    async def test_null_arguments_are_empty(self, dispatcher, context):
        response = await dispatcher.dispatch(
            request("tools/call", {"name": "GetTaxReturns", "arguments": None}), context
        )

        assert "TAX RETURNS" in response["result"]["content"][0]["text"]

    async def test_missing_argument(self, dispatcher, context):
        response = await dispatcher.dispatch(
            request("tools/call", {"name": "GetTaxReturnByYear", "arguments": {}}), context
        )

        assert response["error"] == {
            "code": -32602,
            "message": "Missing required parameter: year",
            "data": {"argument": "year"},
        }

    @pytest.mark.parametrize("year", [1899, 3000])
    async def test_year_out_of_range(self, dispatcher, context, year):
        response = await dispatcher.dispatch(
            request("tools/call", {"name": "GetTaxReturnByYear", "arguments": {"year": year}}), context
        )

        assert response["error"]["code"] == -32602
        assert response["error"]["message"].startswith(f"Invalid tax year: {year}")

    async def test_invalid_category(self, dispatcher, context):
        response = await dispatcher.dispatch(
            request("tools/call", {"name": "GetDeductionsByCategory", "arguments": {"category": "Boats"}}),
            context,
        )

        assert response["error"]["code"] == -32602
        assert len(response["error"]["data"]["validOptions"]) == 8

    async def test_store_failure_is_internal_error(self, reference, context):
        dispatcher = McpDispatcher(BrokenStore(), reference)

        response = await dispatcher.dispatch(
            request("tools/call", {"name": "GetTaxReturns", "arguments": {}}), context
        )

        assert response["error"] == {"code": -32603, "message": "Tax record store is unavailable"}

    async def test_unexpected_failure_is_reported_and_logged(self, reference, context, caplog):
        dispatcher = McpDispatcher(ExplodingStore(), reference)

        with caplog.at_level(logging.ERROR, logger="taxpayer_mcp.dispatcher"):
            response = await dispatcher.dispatch(
                request("tools/call", {"name": "GetTaxpayerProfile", "arguments": {}}), context
            )

        assert response["error"] == {"code": -32603, "message": "Tool execution error: corrupt row"}
        assert any(record.exc_info for record in caplog.records)


class TestResources:
    async def test_list(self, dispatcher, context):
        response = await dispatcher.dispatch(request("resources/list"), context)

        assert len(response["result"]["resources"]) == 18

    async def test_read(self, dispatcher, context):
        response = await dispatcher.dispatch(
            request("resources/read", {"uri": "tax://limits/2024"}), context
        )

        assert response["result"]["contents"][0]["uri"] == "tax://limits/2024"

    async def test_read_unknown(self, dispatcher, context):
        response = await dispatcher.dispatch(
            request("resources/read", {"uri": "tax://brackets/1999"}), context
        )

        assert response["error"]["code"] == -32002
        assert response["error"]["message"] == "Resource not found: tax://brackets/1999"

    async def test_read_without_uri(self, dispatcher, context):
        response = await dispatcher.dispatch(request("resources/read", {}), context)

        assert response["error"]["code"] == -32602


class TestPrompts:
    async def test_list(self, dispatcher, context):
        response = await dispatcher.dispatch(request("prompts/list"), context)

        assert [p["name"] for p in response["result"]["prompts"]] == [
            "GetPersonalizedTaxAdvice",
            "CompareDeductionOptions",
            "GetTaxOptimizationAdvice",
        ]

    async def test_get(self, dispatcher, context):
        response = await dispatcher.dispatch(
            request("prompts/get", {"name": "CompareDeductionOptions", "arguments": {"year": "2024"}}),
            context,
        )

        assert "2024" in response["result"]["messages"][0]["content"]["text"]

    async def test_get_unknown(self, dispatcher, context):
        response = await dispatcher.dispatch(request("prompts/get", {"name": "Nope"}), context)

        assert response["error"]["code"] == -32602

    @pytest.mark.parametrize("arguments", [[], "", 0, False])
    async def test_arguments_must_be_an_object(self, dispatcher, context, arguments):
        response = await dispatcher.dispatch(
            request("prompts/get", {"name": "CompareDeductionOptions", "arguments": arguments}), context
        )

        assert response["error"]["code"] == -32602
        assert response["error"]["message"] == "Prompt arguments must be an object"

    async def test_get_without_name(self, dispatcher, context):
        response = await dispatcher.dispatch(request("prompts/get", {}), context)

        assert response["error"]["code"] == -32602
