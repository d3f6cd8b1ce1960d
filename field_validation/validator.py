"""
Validator - one validation session over one data record.

Example:
    from field_validation import Validator

    validator = Validator({"username": "jo", "email": "jo@example"})
    validator.add_rule("username", "Username", "required|minLength[3]|alphaNumeric")
    validator.add_rule("email", "Email", "required|email")

    def on_result(errors, data):
        if errors:
            print(errors)   # {"username": "...", "email": "..."}

    validator.run(on_result)
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Tuple

from .config_loader import load_default_error_messages
from .errors import MissingTemplateError
from .message_formatter import MessageFormatter
from .predicates import build_default_registry
from .rule_executor import DEFAULT_SEPARATOR, ResultCallback, RuleExecutor
from .rule_parser import FieldSpec, RuleInstance, RuleParser
from .rule_registry import RuleRegistry, stringify

logger = logging.getLogger(__name__)

MATCHES_RULE = "matches"


class Validator:
    """
    Holds the data record, the parsed field specs and runs the rules.

    A Validator is meant for a single record: build it, add rules for each
    field, then call run() (or await run_async()). Do not call run() again
    while a previous run on the same Validator is still in flight.
    """

    def __init__(
        self,
        data: Optional[Dict[str, Any]] = None,
        error_messages: Optional[Dict[str, str]] = None,
        registry: Optional[RuleRegistry] = None,
        separator: str = DEFAULT_SEPARATOR,
    ):
        """
        Create a validation session.

        Args:
            data: Flat mapping of field name to value; kept by reference and
                rewritten in place by the ``sanitize`` rule
            error_messages: Rule name -> message template table (default:
                the bundled error-messages.yaml)
            registry: Rule registry (default: all built-in rules)
            separator: Joins several messages for the same field
        """
        if error_messages is None:
            error_messages = load_default_error_messages()

        self.registry = registry or build_default_registry()
        self.formatter = MessageFormatter(error_messages)
        self.parser = RuleParser(self.registry, self.formatter)
        self.executor = RuleExecutor(self.registry, self.formatter, separator)

        self.reset()
        if data is not None:
            self.set_data(data)

    @property
    def error_messages(self) -> Dict[str, str]:
        return self.formatter.templates

    def set_error_messages(self, error_messages: Dict[str, str]) -> None:
        """
        Replace the message template table wholesale.

        Raises:
            MissingTemplateError: The new table lacks a template for a rule
                already added; the current table is kept
        """
        for spec in self.fields.values():
            for rule in spec.rules:
                if rule.rule_name not in error_messages:
                    raise MissingTemplateError(
                        f"No error message template for rule '{rule.rule_name}'",
                        rule_name=rule.rule_name,
                        field_name=spec.field_name,
                    )
        self.formatter.templates = error_messages

    def reset(self) -> None:
        """Forget the data record and every field spec."""
        self.data: Dict[str, Any] = {}
        self.fields: Dict[str, FieldSpec] = {}

    def set_data(self, data: Dict[str, Any]) -> None:
        """Start over with a new record. Field specs are cleared."""
        self.reset()
        self.data = data

    @property
    def outstanding_tasks(self) -> int:
        """Number of predicate evaluations a run will schedule."""
        return sum(len(spec.rules) for spec in self.fields.values())

    def add_rule(self, field_name: str, friendly_name: Optional[str], rule_spec: str) -> None:
        """
        Configure the rules for one field.

        Calling this again for the same field replaces its rules. ``sanitize``
        rewrites the field value immediately, and ``matches[other]`` captures
        the other field's value now; later changes to it are not seen.

        Args:
            field_name: Key in the data record
            friendly_name: Label used in error messages (falls back to field_name)
            rule_spec: Rule specification, e.g. ``"required|minLength[3]"``

        Raises:
            ConfigurationError: Any of its subclasses for a bad rule spec
        """
        parsed_rules = self.parser.parse(rule_spec, field_name=field_name)

        spec = FieldSpec(field_name=field_name, friendly_name=friendly_name or field_name)

        for parsed in parsed_rules:
            if parsed.is_transform:
                value = self.data.get(field_name)
                if value:
                    transform = self.registry.get_transform(parsed.rule_name)
                    self.data[field_name] = transform(value)
                continue

            options = parsed.options
            if parsed.rule_name == MATCHES_RULE:
                other_field = options[0]
                options = (stringify(self.data.get(other_field)),) + options[1:]

            spec.rules.append(
                RuleInstance(
                    rule_name=parsed.rule_name,
                    options=options,
                    message_options=parsed.options,
                )
            )

        self.fields[field_name] = spec

    def run(self, callback: ResultCallback) -> None:
        """
        Evaluate every rule and report once all of them have completed.

        Args:
            callback: ``callback(errors, data)``; errors is None when every
                field passed, otherwise a dict of field name -> message(s)
        """
        self.executor.execute(self.fields, self.data, callback)

    async def run_async(self) -> Tuple[Optional[Dict[str, str]], Dict[str, Any]]:
        """
        Awaitable form of run().

        Required when rules were registered with RuleRegistry.register_async();
        predicates may also complete from worker threads.

        Returns:
            Tuple of (errors or None, data)
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def _resolve(result):
            if not future.done():
                future.set_result(result)

        def _callback(errors, data):
            loop.call_soon_threadsafe(_resolve, (errors, data))

        self.run(_callback)
        return await future
