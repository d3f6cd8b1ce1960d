"""
Built-in rule predicates.

Each predicate follows the registry calling convention
``predicate(value, options, done)`` and reports synchronously. Values reach
the predicates already stringified and non-empty, except for ``required``
which sees the raw value.
"""

import re
from datetime import timezone
from typing import Optional

from dateutil import parser as date_parser

from .rule_registry import RuleRegistry, stringify
from .sanitizer import Sanitizer

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")

_ALPHA = re.compile(r"[a-z]+", re.IGNORECASE)
_ALPHA_NUMERIC = re.compile(r"[a-z0-9]+", re.IGNORECASE)
_ALPHA_NUMERIC_DASH = re.compile(r"[a-z0-9\-]+", re.IGNORECASE)
_NUMERIC = re.compile(r"[0-9]+")
_INTEGER = re.compile(r"[\-+]?[0-9]+")
_DECIMAL = re.compile(r"[\-+]?[0-9]+(\.[0-9]+)?")
_NATURAL = re.compile(r"\+?[0-9]+")
_EMAIL = re.compile(
    r"\s*[\w\-+]+(\.[\w\-+]+)*@[\w\-+]+\.[\w\-+]+(\.[\w\-+]+)*\s*",
    re.IGNORECASE | re.ASCII,
)

LIST_DELIMITER = ","


def parse_int(text) -> Optional[int]:
    """
    Parse the leading integer of a string, ``"12px"`` -> 12.

    Returns None when the string does not start with an integer.
    """
    if text is None:
        return None
    match = _LEADING_INT.match(str(text))
    return int(match.group(1)) if match else None


def parse_date(text):
    """Parse a date string with dateutil; naive results are taken as UTC. None if invalid."""
    try:
        parsed = date_parser.parse(text)
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def required(value, options, done):
    text = stringify(value)
    done(text is not None and len(text) > 0, options)


def min_length(value, options, done):
    done(len(value) >= parse_int(options[0]), options)


def max_length(value, options, done):
    done(len(value) <= parse_int(options[0]), options)


def exact_length(value, options, done):
    done(len(value) == parse_int(options[0]), options)


def greater_than(value, options, done):
    number = parse_int(value)
    done(number is not None and number > parse_int(options[0]), options)


def less_than(value, options, done):
    number = parse_int(value)
    done(number is not None and number < parse_int(options[0]), options)


def _pattern_predicate(pattern):
    def predicate(value, options, done):
        done(pattern.fullmatch(value) is not None, options)

    return predicate


alpha = _pattern_predicate(_ALPHA)
alpha_numeric = _pattern_predicate(_ALPHA_NUMERIC)
alpha_numeric_dash = _pattern_predicate(_ALPHA_NUMERIC_DASH)
numeric = _pattern_predicate(_NUMERIC)
integer = _pattern_predicate(_INTEGER)
decimal = _pattern_predicate(_DECIMAL)
natural = _pattern_predicate(_NATURAL)
email = _pattern_predicate(_EMAIL)


def natural_no_zero(value, options, done):
    done(_NATURAL.fullmatch(value) is not None and parse_int(value) > 0, options)


def regex(value, options, done):
    """options[0] is the pattern; matches anywhere in the value, ignoring case."""
    done(re.search(options[0], value, re.IGNORECASE) is not None, options)


def matches(value, options, done):
    """options[0] holds the other field's value, resolved when the rule was added."""
    done(options[0] is not None and value == options[0], options)


def list_rule(value, options, done):
    """Comma separated list with no empty items. Commas cannot be escaped."""
    items = value.split(LIST_DELIMITER)
    done(all(items), options)


def min_list_length(value, options, done):
    done(len(value.split(LIST_DELIMITER)) >= parse_int(options[0]), options)


def max_list_length(value, options, done):
    done(len(value.split(LIST_DELIMITER)) <= parse_int(options[0]), options)


def date(value, options, done):
    done(parse_date(value) is not None, options)


def before_date(value, options, done):
    current, limit = parse_date(value), parse_date(options[0])
    done(current is not None and limit is not None and current < limit, options)


def after_date(value, options, done):
    current, limit = parse_date(value), parse_date(options[0])
    done(current is not None and limit is not None and current > limit, options)


def boolean(value, options, done):
    done(value in ("true", "false"), options)


def build_default_registry(sanitizer: Optional[Sanitizer] = None) -> RuleRegistry:
    """
    Create a registry holding every built-in rule.

    Args:
        sanitizer: Callable used by the ``sanitize`` rule (default: Sanitizer())

    Returns:
        New RuleRegistry; callers may register additional rules on it
    """
    registry = RuleRegistry()

    registry.register("required", required)
    registry.register("minLength", min_length, requires_options=True, integer_options=True)
    registry.register("maxLength", max_length, requires_options=True, integer_options=True)
    registry.register("exactLength", exact_length, requires_options=True, integer_options=True)
    registry.register("greaterThan", greater_than, requires_options=True, integer_options=True)
    registry.register("lessThan", less_than, requires_options=True, integer_options=True)
    registry.register("alpha", alpha)
    registry.register("alphaNumeric", alpha_numeric)
    registry.register("alphaNumericDash", alpha_numeric_dash)
    registry.register("numeric", numeric)
    registry.register("integer", integer)
    registry.register("decimal", decimal)
    registry.register("natural", natural)
    registry.register("naturalNoZero", natural_no_zero)
    registry.register("email", email)
    registry.register("regex", regex, requires_options=True)
    registry.register("matches", matches, requires_options=True)
    registry.register("list", list_rule)
    registry.register("minListLength", min_list_length, requires_options=True, integer_options=True)
    registry.register("maxListLength", max_list_length, requires_options=True, integer_options=True)
    registry.register("date", date)
    registry.register("beforeDate", before_date, requires_options=True)
    registry.register("afterDate", after_date, requires_options=True)
    registry.register("boolean", boolean)

    registry.register_transform("sanitize", sanitizer or Sanitizer())

    return registry
