#!/usr/bin/env python3
"""
JSON-RPC 2.0 front end for ValidationService.

One request per line on stdin, one response per line on stdout. Debug output
goes to stderr so it never corrupts the response stream.

Usage:
    python -m field_validation.jsonrpc_server [--debug] [--config PATH]

Request:
    {"jsonrpc":"2.0","id":1,"method":"validate",
     "params":{"data":{"email":"x"},"rules":{"email":"required|email"}}}

Response:
    {"jsonrpc":"2.0","id":1,"result":{"valid":false,"errors":{"email":"..."},"data":{...}}}
"""

import sys
import json
import signal
import argparse
import traceback
from typing import Any, Dict, Optional, Tuple

from field_validation import ValidationService
from field_validation.errors import ConfigurationError

JSONRPC_VERSION = "2.0"


class RpcError(Exception):
    """Raised inside request handling; carries the JSON-RPC error code."""

    code = -32000

    def __init__(self, message: str, request_id: Any = None):
        super().__init__(message)
        self.request_id = request_id


class InvalidRequestError(RpcError):
    code = -32600


class MethodNotFoundError(RpcError):
    code = -32601


class InvalidParamsError(RpcError):
    code = -32602


def _envelope(request_id: Any, **body: Any) -> Dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, **body}


def _error(request_id: Any, code: int, message: str, data: Optional[Any] = None) -> Dict[str, Any]:
    error = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return _envelope(request_id, error=error)


class ValidationJsonRpcServer:
    """Dispatches JSON-RPC calls to a single long-lived ValidationService."""

    ERROR_PARSE = -32700
    ERROR_INVALID_REQUEST = InvalidRequestError.code
    ERROR_METHOD_NOT_FOUND = MethodNotFoundError.code
    ERROR_INVALID_PARAMS = InvalidParamsError.code
    ERROR_INTERNAL = RpcError.code
    # A rule string that fails to parse
    ERROR_VALIDATION = -32001

    def __init__(self, debug: bool = False, config_path: Optional[str] = None):
        self.service = ValidationService(config_path=config_path)
        self.running = False
        self.debug = debug

        self.methods = {
            'validate': self._handle_validate,
            'batch_validate': self._handle_batch_validate,
            'discover_rules': self._handle_discover_rules,
            'reload_config': self._handle_reload_config,
            'get_config_age': self._handle_get_config_age,
        }

    def _log(self, message: str):
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr, flush=True)

    def start_server(self):
        """Serve requests until EOF, SIGTERM/SIGINT or an unrecoverable I/O error."""
        self.running = True
        self._log("server started")

        try:
            for line in sys.stdin:
                if not line.strip():
                    continue
                self._log(f"<- {line.strip()}")
                self._send_response(self.handle_request(line))
                if not self.running:
                    break
            else:
                self._log("stdin closed")
        except KeyboardInterrupt:
            self._log("interrupted")
        except Exception as e:
            self._log(f"server loop failed: {e}")
            traceback.print_exc(file=sys.stderr)
        finally:
            self.service.close()
            self._log("server stopped")

    def stop_server(self):
        """Ask the loop to exit once the request in progress has been answered."""
        self.running = False
        self._log("stop requested")

    def handle_request(self, request_json: str) -> Dict[str, Any]:
        """
        Turn one request line into one response object.

        Never raises: every failure becomes a JSON-RPC error response.
        """
        try:
            request = json.loads(request_json)
        except json.JSONDecodeError as e:
            return _error(None, self.ERROR_PARSE, f"Parse error: {e}")

        request_id = None
        try:
            request_id, method, params = self._unpack(request)
            self._log(f"dispatching {method}")
            return _envelope(request_id, result=self._dispatch(method, params))

        except RpcError as e:
            return _error(
                request_id if e.request_id is None else e.request_id, e.code, str(e)
            )

        except ConfigurationError as e:
            return _error(
                request_id, self.ERROR_VALIDATION, str(e),
                data={"type": type(e).__name__, "rule_name": e.rule_name, "field_name": e.field_name},
            )

        except Exception as e:
            self._log(f"request failed: {e}")
            return _error(request_id, self.ERROR_INTERNAL, f"Internal error: {e}")

    @staticmethod
    def _unpack(request: Any) -> Tuple[Any, str, Dict[str, Any]]:
        """Check the envelope and return (id, method, params)."""
        if not isinstance(request, dict):
            raise InvalidRequestError("Request must be a JSON object")
        if request.get("jsonrpc") != JSONRPC_VERSION:
            raise InvalidRequestError(f"Invalid JSON-RPC version: {request.get('jsonrpc')}")

        request_id = request.get("id")
        method = request.get("method")
        params = request.get("params", {})

        if not method:
            raise InvalidRequestError("Missing 'method' field", request_id)
        if not isinstance(params, dict):
            raise InvalidParamsError(
                f"Params must be an object, got {type(params).__name__}", request_id
            )
        return request_id, method, params

    def _dispatch(self, method: str, params: Dict[str, Any]) -> Any:
        handler = self.methods.get(method)
        if handler is None:
            raise MethodNotFoundError(f"Method not found: {method}")
        return handler(params)

    @staticmethod
    def _require(params: Dict[str, Any], name: str, kind: type) -> Any:
        value = params.get(name)
        if value is None:
            raise InvalidParamsError(f"Missing required parameter: {name}")
        if not isinstance(value, kind):
            raise InvalidParamsError(
                f"Parameter '{name}' must be {kind.__name__}, got {type(value).__name__}"
            )
        return value

    def _handle_validate(self, params: Dict[str, Any]) -> Any:
        data = self._require(params, 'data', dict)
        rules = self._require(params, 'rules', dict)
        return self.service.validate(data, rules)

    def _handle_batch_validate(self, params: Dict[str, Any]) -> Any:
        records = self._require(params, 'records', list)
        rules = self._require(params, 'rules', dict)
        return self.service.batch_validate(records, rules, params.get('id_fields', []))

    def _handle_discover_rules(self, params: Dict[str, Any]) -> Any:
        return self.service.discover_rules()

    def _handle_reload_config(self, params: Dict[str, Any]) -> Any:
        self.service.reload_config()
        return {"status": "ok", "message": "Configuration reloaded"}

    def _handle_get_config_age(self, params: Dict[str, Any]) -> Any:
        return {"config_age": self.service.get_config_age()}

    def _send_response(self, response: Dict[str, Any]):
        line = json.dumps(response)
        self._log(f"-> {line}")
        sys.stdout.write(line + "\n")
        sys.stdout.flush()


def main():
    parser = argparse.ArgumentParser(
        description="Serve field-validation over JSON-RPC 2.0 (stdin/stdout)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
methods:
  validate         {data, rules}
  batch_validate   {records, rules, id_fields}
  discover_rules
  reload_config
  get_config_age
        """
    )
    parser.add_argument('--debug', action='store_true',
                        help='write debug output to stderr')
    parser.add_argument('--config', default=None,
                        help='local config YAML (default: the bundled one)')
    args = parser.parse_args()

    server = ValidationJsonRpcServer(debug=args.debug, config_path=args.config)

    for sig in (signal.SIGTERM, signal.SIGINT):
        signal.signal(sig, lambda *_: server.stop_server())

    server.start_server()


if __name__ == "__main__":
    main()
