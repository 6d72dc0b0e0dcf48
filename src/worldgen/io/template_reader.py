# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 SYMFLUENCE Team <dev@symfluence.org>

"""
Reader for parsed templates stored as YAML or JSON.

The document is either a list of entries or a mapping with an ``entries``
list. Level markers carry ``level``/``map``/``count``; variable lines carry
``name``/``operator``/``operands``.
"""

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from ..exceptions import InputError, TemplateError
from ..template import ParsedTemplate

logger = logging.getLogger(__name__)


def read_parsed_template(path: Path) -> ParsedTemplate:
    """
    Load and validate a parsed template.

    Raises:
        InputError: If the file is missing or is not valid YAML/JSON.
        TemplateError: If the entries do not form a valid template.
    """
    path = Path(path)
    if not path.is_file():
        raise InputError(f"Template does not exist or is not located at specified path: {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise InputError(f"Failed to read template {path}: {exc}") from exc

    if isinstance(data, list):
        data = {'entries': data}
    if not isinstance(data, dict) or 'entries' not in data:
        raise TemplateError(f"Template {path} must be a list of entries or a mapping with 'entries'")

    try:
        template = ParsedTemplate.model_validate({'entries': data['entries']})
    except ValidationError as exc:
        raise TemplateError(f"Invalid template {path}: {exc}") from exc

    # Fail on structural problems before any data is read
    template.level_boundary()
    logger.info(f"Loaded template {path.name} with {len(template.entries)} entries")
    return template
