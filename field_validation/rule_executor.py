import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from .completion_barrier import CompletionBarrier
from .errors import MissingTemplateError
from .message_formatter import MessageFormatter
from .rule_parser import FieldSpec
from .rule_registry import RuleRegistry

logger = logging.getLogger(__name__)

DEFAULT_SEPARATOR = "<br>"

ResultCallback = Callable[[Optional[Dict[str, str]], Dict[str, Any]], None]


@dataclass(frozen=True)
class RuleContext:
    """What the completion handler needs to know about the rule that reported."""

    field_name: str
    friendly_name: str
    rule_name: str
    index: int
    message_options: Tuple[str, ...] = ()


class RuleExecutor:
    """Runs every (field, rule) pair once and aggregates failures per field"""

    def __init__(
        self,
        registry: RuleRegistry,
        formatter: MessageFormatter,
        separator: str = DEFAULT_SEPARATOR,
    ):
        """
        Initialize rule executor.

        Args:
            registry: Registry resolving rule names to predicates
            formatter: Formats messages for failed rules
            separator: Joins multiple messages of one field
        """
        self.registry = registry
        self.formatter = formatter
        self.separator = separator

    def _record_failure(
        self,
        context: RuleContext,
        failures: Dict[str, List[Tuple[int, str]]],
        lock: threading.Lock,
    ) -> None:
        try:
            message = self.formatter.format(
                context.rule_name,
                context.friendly_name,
                context.message_options,
            )
        except MissingTemplateError as e:
            # The field must still fail; report the configuration error as its message.
            logger.error(
                f"Rule '{context.rule_name}' failed but has no message template",
                extra={"field_name": context.field_name},
            )
            with lock:
                failures[context.field_name].append((context.index, str(e)))
            raise
        with lock:
            failures[context.field_name].append((context.index, message))

    def execute(
        self,
        fields: Dict[str, FieldSpec],
        data: Dict[str, Any],
        callback: ResultCallback,
    ) -> None:
        """
        Fan out one predicate call per rule and fan results back in.

        Predicates may report synchronously or later from any thread; the
        callback fires once, after the last one reports. Messages of one field
        are ordered by rule declaration, not by completion.

        Args:
            fields: Field specs in declaration order
            data: Data record; values are read now, not at parse time
            callback: ``callback(errors_or_None, data)``
        """
        total = sum(len(spec.rules) for spec in fields.values())

        if total == 0:
            callback(None, data)
            return

        lock = threading.Lock()
        failures: Dict[str, List[Tuple[int, str]]] = {
            name: [] for name, spec in fields.items() if spec.rules
        }

        def finalize():
            errors = {}
            for name, entries in failures.items():
                if entries:
                    errors[name] = self.separator.join(
                        message for _, message in sorted(entries)
                    )
            logger.debug(
                f"Validation finished: {total} rule(s), {len(errors)} field(s) failed",
                extra={"failed_fields": list(errors)},
            )
            callback(errors or None, data)

        barrier = CompletionBarrier(total, finalize)

        def make_done(context: RuleContext):
            reported = []

            def done(passed, options=None):
                with lock:
                    if reported:
                        raise RuntimeError(
                            f"Rule '{context.rule_name}' on field "
                            f"'{context.field_name}' reported more than once"
                        )
                    reported.append(passed)

                # Every report arrives exactly once, even when formatting raises.
                try:
                    if not passed:
                        self._record_failure(context, failures, lock)
                finally:
                    barrier.arrive()

            return done

        # Snapshot the work first so a field edited by a predicate cannot change it.
        scheduled = []
        for name, spec in fields.items():
            for index, rule in enumerate(spec.rules):
                context = RuleContext(
                    field_name=name,
                    friendly_name=spec.friendly_name,
                    rule_name=rule.rule_name,
                    index=index,
                    message_options=rule.message_options,
                )
                scheduled.append((rule, context))

        for rule, context in scheduled:
            self.registry.evaluate(
                rule.rule_name,
                data.get(context.field_name),
                list(rule.options),
                make_done(context),
            )
