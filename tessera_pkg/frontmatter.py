"""
Frontmatter extraction.

A document may open with a metadata block:

    ---
    title: "Hello"
    layout: article
    ---

Each `key: value` line is parsed as a JSON literal, falling back to the raw
text. `---json` opens a block holding one JSON object and `---yaml` a YAML
mapping.
"""

import json
import logging
from typing import Any, Dict, Optional, Tuple

import yaml

logger = logging.getLogger('Tessera.frontmatter')

DELIMITER = '---'
VARIANTS = ('', 'json', 'yaml')


def _parse_key_values(block: str) -> Dict[str, Any]:
    metadata = {}
    for line in block.splitlines():
        if not line.strip() or line.lstrip().startswith('#'):
            continue
        key, sep, value = line.partition(':')
        key = key.strip()
        if not sep or not key:
            logger.debug(f"Ignoring frontmatter line without a key: {line!r}")
            continue
        value = value.strip()
        try:
            metadata[key] = json.loads(value)
        except ValueError:
            metadata[key] = value
    return metadata


def _parse_block(variant: str, block: str) -> Dict[str, Any]:
    if variant == 'json':
        metadata = json.loads(block) if block.strip() else {}
    elif variant == 'yaml':
        metadata = yaml.safe_load(block) or {}
    else:
        return _parse_key_values(block)
    if not isinstance(metadata, dict):
        raise ValueError(f"{variant} frontmatter must be an object, got {type(metadata).__name__}")
    return metadata


def extract(content: Optional[str]) -> Tuple[Dict[str, Any], str]:
    """
    Split a document into (metadata, body).

    Without an opening delimiter line, or without a closing one, the metadata
    is empty and the body is the content verbatim.
    """
    if not content:
        return {}, content or ''

    lines = content.splitlines(keepends=True)
    opener = lines[0].rstrip('\r\n')
    if not opener.startswith(DELIMITER) or opener[len(DELIMITER):].strip() not in VARIANTS:
        return {}, content
    variant = opener[len(DELIMITER):].strip()

    for index in range(1, len(lines)):
        if lines[index].rstrip('\r\n').rstrip() == DELIMITER:
            block = ''.join(lines[1:index])
            body = ''.join(lines[index + 1:])
            break
    else:
        return {}, content

    try:
        metadata = _parse_block(variant, block)
    except (ValueError, yaml.YAMLError) as e:
        logger.error(f"Invalid {variant or 'key/value'} frontmatter: {e}")
        metadata = {}
    return metadata, body


def merge_data(data: Optional[Dict[str, Any]], overrides: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Shallow merge; keys in `overrides` replace keys in `data`, nested mappings included."""
    merged = dict(data or {})
    merged.update(overrides or {})
    return merged
