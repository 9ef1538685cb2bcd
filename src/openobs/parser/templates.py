"""Template variable substitution for daily notes and user templates."""

import re
from collections.abc import Mapping
from datetime import datetime

DATE_FORMAT_PATTERN = re.compile(r"\{\{date:([^}]+)\}\}")


class TemplateProcessor:
    """Replaces ``{{...}}`` placeholders in template text.

    Supported placeholders, in substitution order:

    - ``{{date}}`` as YYYY-MM-DD
    - ``{{time}}`` as HH:MM
    - ``{{datetime}}`` as YYYY-MM-DD HH:MM
    - ``{{title}}`` from the ``title`` variable, when given
    - ``{{date:FORMAT}}`` with a strftime format
    - ``{{name}}`` for every other caller-supplied variable

    All dates use local time.
    """

    @staticmethod
    def process(
        template: str,
        variables: Mapping[str, str] | None = None,
        now: datetime | None = None,
    ) -> str:
        variables = variables or {}
        now = now or datetime.now()

        result = template.replace("{{date}}", now.strftime("%Y-%m-%d"))
        result = result.replace("{{time}}", now.strftime("%H:%M"))
        result = result.replace("{{datetime}}", now.strftime("%Y-%m-%d %H:%M"))

        if "title" in variables:
            result = result.replace("{{title}}", variables["title"])

        result = DATE_FORMAT_PATTERN.sub(lambda m: now.strftime(m.group(1)), result)

        for key, value in variables.items():
            result = result.replace(f"{{{{{key}}}}}", value)

        return result
