"""
Rule Registry - Named Predicates and Their Calling Convention

Maps rule names used in rule specifications (``required|minLength[3]``) to the
predicate that evaluates them, together with the metadata the parser needs
to reject bad specifications before anything runs.

## Calling Convention

Every predicate is called as::

    predicate(value, options, done)

- ``value``: the field value as a string (never empty, see below)
- ``options``: list of string options from ``rule[opt1,opt2]``
- ``done``: callable ``done(passed, options)`` that must be invoked exactly
  once, either before the predicate returns or later (from another thread,
  a timer, an asyncio task, ...)

## Empty Values

Optional fields skip every format check. For every rule except ``required``
the registry short-circuits an absent or empty value straight to
``done(True, options)`` without calling the predicate, so ``minLength[5]``
passes on an empty optional field while ``required|minLength[5]`` still
reports the missing value.

## Immediate Transforms

Some rules are not checks at all but rewrite the field value as soon as the
rule is added (``sanitize``). These are registered with register_transform()
and never reach the execution engine.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

# Rule that sees empty values; every other rule short-circuits on them.
REQUIRED_RULE = "required"

Predicate = Callable[[str, List[str], Callable[[bool, List[str]], None]], None]


@dataclass(frozen=True)
class RuleDefinition:
    """Registry entry for one deferred rule."""

    name: str
    predicate: Predicate
    requires_options: bool = False
    integer_options: bool = False
    is_async: bool = False


def stringify(value: Any) -> Optional[str]:
    """
    Coerce a flat field value to the string form predicates receive.

    Booleans render as ``true``/``false`` so the ``boolean`` rule and
    ``matches`` behave the same for ``True`` and ``"true"``.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def is_empty(value: Any) -> bool:
    """True when value is None or its string form has zero length."""
    text = stringify(value)
    return text is None or len(text) == 0


class RuleRegistry:
    """Catalog of named predicates and immediate transforms."""

    def __init__(self):
        self._rules: Dict[str, RuleDefinition] = {}
        self._transforms: Dict[str, Callable[[Any], Any]] = {}

    def register(
        self,
        name: str,
        predicate: Predicate,
        requires_options: bool = False,
        integer_options: bool = False,
    ) -> None:
        """
        Register a callback-style predicate under a rule name.

        Args:
            name: Case-sensitive rule name used in rule specifications
            predicate: Callable following the calling convention above
            requires_options: Reject the rule at parse time if no options given
            integer_options: First option must parse as an integer

        Raises:
            ValueError: If name is already registered
        """
        self._check_free(name)
        self._rules[name] = RuleDefinition(
            name=name,
            predicate=predicate,
            requires_options=requires_options,
            integer_options=integer_options,
        )

    def register_async(
        self,
        name: str,
        check: Callable[[str, List[str]], Any],
        requires_options: bool = False,
        integer_options: bool = False,
    ) -> None:
        """
        Register a coroutine function ``async def check(value, options) -> bool``.

        The coroutine is scheduled as a task on the running event loop, so
        sessions using such rules must be run with Validator.run_async()
        (or run() called from inside a running loop).

        An exception raised by the coroutine is logged and counted as a
        failed rule; retrying is up to the coroutine itself.
        """
        self._check_free(name)
        self._rules[name] = RuleDefinition(
            name=name,
            predicate=_coroutine_predicate(name, check),
            requires_options=requires_options,
            integer_options=integer_options,
            is_async=True,
        )

    def register_transform(self, name: str, transform: Callable[[Any], Any]) -> None:
        """Register an immediate rule that rewrites the field value at add_rule() time."""
        self._check_free(name)
        self._transforms[name] = transform

    def _check_free(self, name: str) -> None:
        if name in self._rules or name in self._transforms:
            raise ValueError(f"Rule already registered: {name}")

    def __contains__(self, name: str) -> bool:
        return name in self._rules or name in self._transforms

    def get(self, name: str) -> RuleDefinition:
        """Return the definition of a deferred rule (KeyError if unknown)."""
        return self._rules[name]

    def get_transform(self, name: str) -> Optional[Callable[[Any], Any]]:
        """Return the transform for an immediate rule, or None."""
        return self._transforms.get(name)

    def is_transform(self, name: str) -> bool:
        return name in self._transforms

    def requires_options(self, name: str) -> bool:
        definition = self._rules.get(name)
        return bool(definition and definition.requires_options)

    def names(self) -> List[str]:
        """All registered rule names, deferred rules first, in registration order."""
        return list(self._rules) + list(self._transforms)

    def evaluate(self, name: str, value: Any, options: List[str], done) -> None:
        """
        Invoke a rule's predicate applying the empty-value policy.

        Args:
            name: Registered rule name
            value: Raw field value from the data record
            options: Options passed through to the predicate
            done: Completion callback ``done(passed, options)``
        """
        definition = self._rules[name]

        if name == REQUIRED_RULE:
            definition.predicate(value, options, done)
            return

        if is_empty(value):
            done(True, options)
            return

        definition.predicate(stringify(value), options, done)


def _coroutine_predicate(name: str, check) -> Predicate:
    """Adapt ``async def check(value, options) -> bool`` to the callback convention."""

    def predicate(value, options, done):
        task = asyncio.ensure_future(check(value, options))

        def _on_done(finished):
            try:
                passed = bool(finished.result())
            except Exception:
                logger.exception(
                    f"Async rule '{name}' raised, reporting it as failed",
                    extra={"rule_name": name},
                )
                passed = False
            done(passed, options)

        task.add_done_callback(_on_done)

    return predicate
