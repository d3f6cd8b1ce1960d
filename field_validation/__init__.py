"""
field-validation: Declarative field validation with a pipe-delimited rule DSL

Describe each field with a friendly name and a rule string such as
``required|minLength[3]|regex[^[a-z]+$]``; every rule runs against the data
record and failures come back as one message string per field.

- Rule DSL parser with parse-time checks (unknown rules, missing options,
  bad patterns)
- Rules may complete synchronously or asynchronously
- Immediate rules (sanitize) rewrite values when the rule is added
- Overridable error-message templates

Example:
    from field_validation import Validator

    validator = Validator({"password": "abc123", "confirm": "abc124"})
    validator.add_rule("password", "Password", "required|minLength[6]")
    validator.add_rule("confirm", "Confirm password", "matches[password]")
    validator.run(lambda errors, data: print(errors))
"""

from .api import ValidationService
from .config_loader import load_default_error_messages
from .errors import (
    ConfigurationError,
    InvalidOptionsError,
    InvalidPatternError,
    MissingOptionsError,
    MissingTemplateError,
    UnknownRuleError,
)
from .predicates import build_default_registry
from .rule_registry import RuleRegistry
from .sanitizer import Sanitizer
from .validator import Validator

__version__ = "0.1.0"
__all__ = [
    "ValidationService",
    "Validator",
    "RuleRegistry",
    "Sanitizer",
    "build_default_registry",
    "load_default_error_messages",
    "ConfigurationError",
    "UnknownRuleError",
    "MissingOptionsError",
    "InvalidOptionsError",
    "InvalidPatternError",
    "MissingTemplateError",
]
