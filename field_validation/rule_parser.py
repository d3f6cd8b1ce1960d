"""
Rule DSL Parser

Turns a rule specification string into structured rules for one field.

## Grammar

    spec    := rule ( "|" rule )*
    rule    := name [ "[" options "]" ]
    options := option ( "," option )*

Rule names are case-sensitive and must exist in the rule registry.

## The regex[...] Segment

A ``regex[...]`` pattern may itself contain ``|``, ``[``, ``]`` and ``,``. The
first ``regex[`` segment is therefore cut out before splitting, running
greedily up to the LAST ``]`` of the whole string, and put back into its
token afterwards. Its bracket content is a single option taken verbatim.

A consequence of the greedy match: a regex rule must be the last rule in the
spec that carries options. ``regex[^a|b$]|required`` parses as two rules,
``regex[^a]|minLength[3]`` does not.

## Parse-Time Checks

Everything that can be wrong with a spec fails here rather than during a
run: unknown rule names, missing or non-integer options, patterns that do
not compile and rules without an error message template.
"""

import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .errors import (
    InvalidOptionsError,
    InvalidPatternError,
    MissingOptionsError,
    MissingTemplateError,
    UnknownRuleError,
)
from .message_formatter import MessageFormatter
from .predicates import parse_int
from .rule_registry import RuleRegistry

logger = logging.getLogger(__name__)

RULE_SEPARATOR = "|"
OPTION_SEPARATOR = ","
REGEX_RULE = "regex"

_REGEX_SEGMENT = re.compile(r"regex\[.+\]")
_OPTIONS_GROUP = re.compile(r"\[.+\]")


@dataclass(frozen=True)
class ParsedRule:
    """One token of a rule spec after validation."""

    rule_name: str
    options: Tuple[str, ...] = ()
    is_transform: bool = False


@dataclass(frozen=True)
class RuleInstance:
    """
    A deferred rule attached to a field.

    ``options`` are handed to the predicate; ``message_options`` feed the error
    message template. They differ only when an option was resolved at parse
    time (``matches`` shows the other field's name, not its value).
    """

    rule_name: str
    options: Tuple[str, ...] = ()
    message_options: Tuple[str, ...] = ()


@dataclass
class FieldSpec:
    """Parsed rule configuration for one data field."""

    field_name: str
    friendly_name: str
    rules: List[RuleInstance] = field(default_factory=list)


class RuleParser:
    """Parses rule specification strings against a registry and template table."""

    def __init__(self, registry: RuleRegistry, formatter: MessageFormatter):
        self.registry = registry
        self.formatter = formatter

    def parse(self, rule_spec: str, field_name: Optional[str] = None) -> List[ParsedRule]:
        """
        Parse a rule specification.

        Args:
            rule_spec: e.g. ``"required|minLength[3]|regex[^[a-z]+$]"``
            field_name: Field being configured (only used in error messages)

        Returns:
            List of ParsedRule in declaration order

        Raises:
            UnknownRuleError: Rule name not in the registry
            MissingOptionsError: Rule requires options but has none
            InvalidOptionsError: Rule requires an integer option
            InvalidPatternError: regex pattern does not compile
            MissingTemplateError: No error message template for a rule
        """
        parsed = [
            self._parse_token(token, field_name) for token in self.split(rule_spec)
        ]
        logger.debug(
            f"Parsed {len(parsed)} rule(s) for field '{field_name}'",
            extra={"field_name": field_name, "rule_spec": rule_spec},
        )
        return parsed

    @staticmethod
    def split(rule_spec: str) -> List[str]:
        """Split a spec on '|' while keeping the first regex[...] segment intact."""
        segment_match = _REGEX_SEGMENT.search(rule_spec)
        if not segment_match:
            return rule_spec.split(RULE_SEPARATOR)

        segment = segment_match.group(0)
        placeholder = f"#REGEX{uuid.uuid4().hex}#"
        escaped = rule_spec.replace(segment, placeholder, 1)

        return [
            token.replace(placeholder, segment)
            for token in escaped.split(RULE_SEPARATOR)
        ]

    def _parse_token(self, token: str, field_name: Optional[str]) -> ParsedRule:
        options_match = _OPTIONS_GROUP.search(token)

        if options_match:
            rule_name = token[: options_match.start()] + token[options_match.end():]
            content = options_match.group(0)[1:-1]
            if rule_name == REGEX_RULE:
                options = (content,)
            else:
                options = tuple(content.split(OPTION_SEPARATOR))
        else:
            rule_name = token
            options = ()

        if rule_name not in self.registry:
            raise UnknownRuleError(
                f"Rule doesn't exist: '{rule_name}'",
                rule_name=rule_name,
                field_name=field_name,
            )

        if self.registry.is_transform(rule_name):
            return ParsedRule(rule_name=rule_name, options=options, is_transform=True)

        definition = self.registry.get(rule_name)

        if definition.requires_options and not options:
            raise MissingOptionsError(
                f"{rule_name} can't operate without options",
                rule_name=rule_name,
                field_name=field_name,
            )

        if definition.integer_options and parse_int(options[0]) is None:
            raise InvalidOptionsError(
                f"{rule_name} expects an integer option, got '{options[0]}'",
                rule_name=rule_name,
                field_name=field_name,
            )

        if rule_name == REGEX_RULE:
            try:
                re.compile(options[0], re.IGNORECASE)
            except re.error as e:
                raise InvalidPatternError(
                    f"regex expression is invalid: {e}",
                    rule_name=rule_name,
                    field_name=field_name,
                ) from e

        if not self.formatter.has_template(rule_name):
            raise MissingTemplateError(
                f"No error message template for rule '{rule_name}'",
                rule_name=rule_name,
                field_name=field_name,
            )

        return ParsedRule(rule_name=rule_name, options=options)
