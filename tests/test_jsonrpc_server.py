"""
Tests for JSON-RPC Server

Tests the JSON-RPC wrapper around ValidationService API.
"""
import io
import json

import pytest

from field_validation.jsonrpc_server import ValidationJsonRpcServer


@pytest.fixture
def server():
    """Create a ValidationJsonRpcServer instance for testing."""
    return ValidationJsonRpcServer(debug=False)


@pytest.fixture
def sample_record():
    return {"id": "R-1", "email": "jo@example.com", "age": "30"}


@pytest.fixture
def rules():
    return {
        "email": {"friendly_name": "E-mail", "rules": "required|email"},
        "age": "required|natural|lessThan[130]",
    }


def call(server, method, params=None, request_id=1):
    return server.handle_request(json.dumps({
        "jsonrpc": "2.0",
        "id": request_id,
        "method": method,
        "params": params if params is not None else {},
    }))


class TestRequestParsing:
    """Test JSON-RPC request parsing."""

    def test_valid_request(self, server):
        response = call(server, "discover_rules")

        assert response["jsonrpc"] == "2.0"
        assert response["id"] == 1
        assert "result" in response

    def test_invalid_json(self, server):
        response = server.handle_request("not valid json {")

        assert response["error"]["code"] == server.ERROR_PARSE

    def test_request_not_object(self, server):
        response = server.handle_request("[1, 2]")

        assert response["error"]["code"] == server.ERROR_INVALID_REQUEST

    def test_missing_jsonrpc_version(self, server):
        response = server.handle_request(json.dumps({"id": 1, "method": "discover_rules"}))

        assert response["error"]["code"] == server.ERROR_INVALID_REQUEST

    def test_wrong_jsonrpc_version(self, server):
        response = server.handle_request(json.dumps({
            "jsonrpc": "1.0", "id": 1, "method": "discover_rules"
        }))

        assert response["error"]["code"] == server.ERROR_INVALID_REQUEST

    def test_missing_method(self, server):
        response = server.handle_request(json.dumps({"jsonrpc": "2.0", "id": 1, "params": {}}))

        assert response["error"]["code"] == server.ERROR_INVALID_REQUEST

    def test_params_not_dict(self, server):
        response = server.handle_request(json.dumps({
            "jsonrpc": "2.0", "id": 1, "method": "discover_rules", "params": [1, 2, 3]
        }))

        assert response["error"]["code"] == server.ERROR_INVALID_PARAMS


class TestMethodDispatch:
    """Test method dispatch."""

    def test_unknown_method(self, server):
        response = call(server, "unknown_method")

        assert response["error"]["code"] == server.ERROR_METHOD_NOT_FOUND
        assert "not found" in response["error"]["message"].lower()

    def test_discover_rules_method(self, server):
        response = call(server, "discover_rules")

        assert response["result"]["required"]["kind"] == "deferred"
        assert response["result"]["sanitize"]["kind"] == "immediate"

    def test_get_config_age_method(self, server):
        response = call(server, "get_config_age")

        assert response["result"]["config_age"] >= 0

    def test_reload_config_method(self, server):
        response = call(server, "reload_config")

        assert response["result"]["status"] == "ok"


class TestValidateMethod:
    """Test validate method via JSON-RPC."""

    def test_validate_success(self, server, sample_record, rules):
        response = call(server, "validate", {"data": sample_record, "rules": rules})

        assert response["result"]["valid"] is True
        assert response["result"]["errors"] == {}
        assert response["result"]["data"] == sample_record

    def test_validate_failure(self, server, rules):
        response = call(server, "validate", {
            "data": {"email": "nope", "age": "200"},
            "rules": rules,
        })

        result = response["result"]
        assert result["valid"] is False
        assert result["errors"]["email"] == "The E-mail field must contain a valid email address."
        assert result["errors"]["age"] == "The age field must contain a number less than 130."

    def test_validate_missing_data(self, server, rules):
        response = call(server, "validate", {"rules": rules})

        assert response["error"]["code"] == server.ERROR_INVALID_PARAMS
        assert "data" in response["error"]["message"]

    def test_validate_wrong_param_type(self, server):
        response = call(server, "validate", {"data": {}, "rules": "required"})

        assert response["error"]["code"] == server.ERROR_INVALID_PARAMS

    def test_bad_rule_spec(self, server):
        response = call(server, "validate", {
            "data": {"a": "x"},
            "rules": {"a": "required|bogus"},
        })

        error = response["error"]
        assert error["code"] == server.ERROR_VALIDATION
        assert error["data"]["type"] == "UnknownRuleError"
        assert error["data"]["rule_name"] == "bogus"
        assert error["data"]["field_name"] == "a"

    def test_response_is_json_serializable(self, server, sample_record, rules):
        response = call(server, "validate", {"data": sample_record, "rules": rules})
        json.dumps(response)


class TestBatchValidateMethod:
    """Test batch_validate method via JSON-RPC."""

    def test_batch_validate(self, server, sample_record, rules):
        records = [sample_record, {"id": "R-2", "email": "", "age": "x"}]
        response = call(server, "batch_validate", {
            "records": records,
            "rules": rules,
            "id_fields": ["id"],
        })

        results = response["result"]
        assert [r["record_id"] for r in results] == ["R-1", "R-2"]
        assert [r["valid"] for r in results] == [True, False]

    def test_batch_validate_missing_records(self, server, rules):
        response = call(server, "batch_validate", {"rules": rules})

        assert response["error"]["code"] == server.ERROR_INVALID_PARAMS


class TestServerLoop:
    """Test the stdin/stdout loop."""

    def test_processes_lines_until_eof(self, server, monkeypatch, rules):
        requests_in = "\n".join([
            json.dumps({"jsonrpc": "2.0", "id": 1, "method": "get_config_age", "params": {}}),
            json.dumps({"jsonrpc": "2.0", "id": 2, "method": "validate",
                        "params": {"data": {"email": "x", "age": "1"}, "rules": rules}}),
        ]) + "\n"
        stdout = io.StringIO()
        monkeypatch.setattr("sys.stdin", io.StringIO(requests_in))
        monkeypatch.setattr("sys.stdout", stdout)

        server.start_server()

        responses = [json.loads(line) for line in stdout.getvalue().splitlines()]
        assert [r["id"] for r in responses] == [1, 2]
        assert responses[1]["result"]["valid"] is False
