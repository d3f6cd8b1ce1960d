"""
Public API for field-validation

This is the "front door": configuration is loaded once, and each call builds
a fresh Validator for the record being checked.
"""

import logging
import multiprocessing
import os
from concurrent.futures import ProcessPoolExecutor
from typing import Any, Dict, List, Optional, Union

from .config_loader import ConfigLoader
from .predicates import build_default_registry
from .rule_registry import RuleRegistry
from .sanitizer import Sanitizer
from .validator import Validator

logger = logging.getLogger(__name__)

# Field name -> "rule|spec" or {"friendly_name": ..., "rules": "rule|spec"}
RuleSpecs = Dict[str, Union[str, Dict[str, str]]]

# ---------------------------------------------------------------------------
# Module-level worker state and task functions
#
# These must live at module level (not inside the class) so they are picklable
# by the multiprocessing 'spawn' context used for ProcessPoolExecutor workers.
# ---------------------------------------------------------------------------

_worker_service: Optional["ValidationService"] = None


def _init_worker(config_path: Optional[str]) -> None:
    """Create the worker-local ValidationService (called once per worker process)."""
    global _worker_service
    _worker_service = ValidationService(config_path=config_path, _worker_mode=True)


def _validate_record(record: dict, rules: RuleSpecs, id_fields: list) -> dict:
    """Per-record batch task executed in a worker process."""
    assert _worker_service is not None, (
        "_validate_record called outside a worker process — "
        "_worker_service was not initialised by _init_worker()"
    )
    return _worker_service._batch_entry(record, rules, id_fields)


class ValidationService:
    """
    Main validation service class.

    Example:
        from field_validation import ValidationService

        service = ValidationService()
        result = service.validate(
            {"email": "jo@example.com", "age": "17"},
            {
                "email": {"friendly_name": "E-mail", "rules": "required|email"},
                "age": "required|natural|greaterThan[17]",
            },
        )
        if not result["valid"]:
            print(result["errors"])
    """

    def __init__(self, config_path: Optional[str] = None, _worker_mode: bool = False):
        """
        Initialize the service.

        Args:
            config_path: Optional local config YAML; the bundled one otherwise
            _worker_mode: Internal flag set by _init_worker(); disables pool
                creation inside worker processes

        Raises:
            ValueError: If the configuration is invalid
            RuntimeError: If a remote error-message table cannot be fetched
        """
        self.config_path = config_path
        self._worker_mode = _worker_mode
        self._pool: Optional[ProcessPoolExecutor] = None
        self._initialize()
        self._create_pool()

    def _initialize(self):
        """Internal initialization logic (used by __init__ and reload_config)."""
        self.config_loader = ConfigLoader(self.config_path)
        self.registry: RuleRegistry = build_default_registry(
            Sanitizer.from_config(self.config_loader.get_sanitize_config())
        )

    def _create_pool(self) -> None:
        """
        Create the worker pool for batch validation.

        No-op in worker mode or when batch_parallelism is off. Uses the
        'spawn' context; workers start lazily on the first submit().
        """
        if self._worker_mode:
            return
        if not self.config_loader.get_batch_parallelism():
            return
        max_workers = self.config_loader.get_batch_max_workers()
        ctx = multiprocessing.get_context("spawn")
        self._pool = ProcessPoolExecutor(
            max_workers=max_workers,
            mp_context=ctx,
            initializer=_init_worker,
            initargs=(self.config_path,),
        )
        logger.debug(
            f"Batch worker pool created (max_workers={max_workers or os.cpu_count()})"
        )

    def create_validator(self, data: Optional[Dict[str, Any]] = None) -> Validator:
        """
        Build a Validator wired with this service's registry and messages.

        Args:
            data: Data record for the session

        Returns:
            Validator with no rules configured yet
        """
        return Validator(
            data,
            error_messages=self.config_loader.get_error_messages(),
            registry=self.registry,
            separator=self.config_loader.get_error_separator(),
        )

    def _configure(self, data: Dict[str, Any], rules: RuleSpecs) -> Validator:
        validator = self.create_validator(data)
        for field_name, spec in rules.items():
            if isinstance(spec, str):
                validator.add_rule(field_name, field_name, spec)
            else:
                validator.add_rule(
                    field_name, spec.get("friendly_name"), spec.get("rules", "")
                )
        return validator

    @staticmethod
    def _result(errors, data) -> Dict[str, Any]:
        return {"valid": errors is None, "errors": errors or {}, "data": data}

    def validate(self, data: Dict[str, Any], rules: RuleSpecs) -> Dict[str, Any]:
        """
        Validate one record synchronously.

        Args:
            data: Flat data record (sanitize rules rewrite it in place)
            rules: Field name -> rule spec string, or a dict with
                ``friendly_name`` and ``rules`` keys

        Returns:
            Dict with:
                - valid: True when no rule failed
                - errors: Field name -> joined messages (empty when valid)
                - data: The (possibly sanitized) record

        Raises:
            ConfigurationError: If a rule spec is invalid
            RuntimeError: If some rule did not complete synchronously; use
                validate_async() for asynchronous rules
        """
        validator = self._configure(data, rules)

        outcome = []
        validator.run(lambda errors, result_data: outcome.append((errors, result_data)))
        if not outcome:
            raise RuntimeError(
                "Validation did not complete synchronously; "
                "use validate_async() with asynchronous rules"
            )
        return self._result(*outcome[0])

    async def validate_async(self, data: Dict[str, Any], rules: RuleSpecs) -> Dict[str, Any]:
        """Awaitable validate(); supports rules registered with register_async()."""
        validator = self._configure(data, rules)
        errors, result_data = await validator.run_async()
        return self._result(errors, result_data)

    def batch_validate(
        self, records: List[Dict[str, Any]], rules: RuleSpecs, id_fields: List[str]
    ) -> List[Dict[str, Any]]:
        """
        Validate many records against the same rules.

        Args:
            records: List of data records
            rules: Rule specs applied to every record (see validate())
            id_fields: Field names joined with '-' to identify each record

        Returns:
            Per-record dicts with record_id, valid, errors and data, in input order

        Example:
            results = service.batch_validate(rows, {"email": "required|email"}, ["id"])
            failed = [r["record_id"] for r in results if not r["valid"]]
        """
        if self._pool is not None:
            # Futures are collected in input order regardless of completion order.
            futures = [
                self._pool.submit(_validate_record, record, rules, id_fields)
                for record in records
            ]
            return [f.result() for f in futures]

        return [self._batch_entry(record, rules, id_fields) for record in records]

    def _batch_entry(self, record, rules, id_fields) -> Dict[str, Any]:
        result = self.validate(record, rules)
        return {"record_id": self._extract_id(record, id_fields), **result}

    def _extract_id(self, record, id_fields):
        """Join the values of id_fields with '-', or 'unknown' if none are present."""
        id_parts = [str(record[f]) for f in id_fields if f in record]
        if not id_parts:
            return "unknown"
        return "-".join(id_parts)

    def discover_rules(self) -> Dict[str, Dict[str, Any]]:
        """
        Describe every registered rule.

        Returns:
            Dict mapping rule name to:
                - kind: "deferred" (evaluated by run) or "immediate" (applied
                  when the rule is added, e.g. sanitize)
                - requires_options: Whether ``rule[...]`` options are mandatory
                - asynchronous: Whether the rule completes asynchronously
                - message: Error message template, or None
        """
        messages = self.config_loader.get_error_messages()
        result = {}
        for name in self.registry.names():
            if self.registry.is_transform(name):
                result[name] = {
                    "kind": "immediate",
                    "requires_options": False,
                    "asynchronous": False,
                    "message": None,
                }
                continue
            definition = self.registry.get(name)
            result[name] = {
                "kind": "deferred",
                "requires_options": definition.requires_options,
                "asynchronous": definition.is_async,
                "message": messages.get(name),
            }
        return result

    def reload_config(self) -> None:
        """
        Reload configuration and the error-message table from source.

        Clears the remote cache first. Rules registered on the previous
        registry are dropped; register them again afterwards.
        """
        if self._pool is not None:
            self._pool.shutdown(wait=True)
            self._pool = None

        self.config_loader.clear_cache()
        self._initialize()
        self._create_pool()

    def get_config_age(self) -> float:
        """Seconds since the configuration was loaded."""
        return self.config_loader.get_config_age()

    def close(self) -> None:
        """Shut down the worker pool. Safe to call multiple times."""
        if self._pool is not None:
            self._pool.shutdown(wait=True)
            self._pool = None
