"""Error message formatting from the rule-name -> template table."""

from typing import Dict, Iterable

from .errors import MissingTemplateError


class MessageFormatter:
    """
    Formats failed-rule messages.

    Templates use ``{}`` placeholders: the first receives the field's friendly
    name, the rest receive the rule's non-empty options in order, e.g.
    ``"The {} field must be at least {} characters in length."``.
    """

    def __init__(self, templates: Dict[str, str]):
        self.templates = templates

    def has_template(self, rule_name: str) -> bool:
        return rule_name in self.templates

    def format(self, rule_name: str, friendly_name: str, options: Iterable = ()) -> str:
        """
        Build the message for one failed rule.

        Args:
            rule_name: Rule that failed
            friendly_name: Display name of the field
            options: Rule options; falsy entries are skipped

        Returns:
            Formatted message

        Raises:
            MissingTemplateError: If the table has no template for rule_name
        """
        try:
            template = self.templates[rule_name]
        except KeyError:
            raise MissingTemplateError(
                f"No error message template for rule '{rule_name}'", rule_name=rule_name
            ) from None

        values = [friendly_name] + [str(option) for option in options if option]
        # Unfilled placeholders render empty; surplus values are ignored by str.format.
        padding = [""] * template.count("{")
        return template.format(*values, *padding)
