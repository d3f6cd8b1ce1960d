"""
Configuration errors raised while parsing rule specifications.

These are programmer errors in the rule definitions, never user-input
errors. Failed validations are reported through the error map delivered
to the run callback and are not exceptions.
"""


class ConfigurationError(ValueError):
    """Base class for rule-definition errors raised by add_rule()."""

    def __init__(self, message: str, rule_name: str = None, field_name: str = None):
        super().__init__(message)
        self.rule_name = rule_name
        self.field_name = field_name


class UnknownRuleError(ConfigurationError):
    """Rule name is not present in the rule registry."""


class MissingOptionsError(ConfigurationError):
    """Rule requires options (e.g. minLength[3]) but none were given."""


class InvalidOptionsError(ConfigurationError):
    """Rule options are present but cannot be used (e.g. minLength[abc])."""


class InvalidPatternError(ConfigurationError):
    """regex[...] pattern does not compile."""


class MissingTemplateError(ConfigurationError):
    """No error-message template exists for a rule."""
