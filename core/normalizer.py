"""Row normalization: settings-table result sets into per-entity records."""
from __future__ import annotations

import json
import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

_TAG_RE = re.compile(r"<[^>]*>")
_PHP_STRING_RE = re.compile(r's:\d+:"(.*?)";')


def strip_tags(value: Any) -> Any:
    """Remove markup the way PHP strip_tags does (entities are left alone)."""
    if not isinstance(value, str):
        return value
    return _TAG_RE.sub("", value)


def normalize_text(value: Any) -> Any:
    """Coerce driver values into valid, trimmed text; non-text values pass through."""
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray, memoryview)):
        raw = bytes(value)
        try:
            value = raw.decode("utf-8")
        except UnicodeDecodeError:
            value = raw.decode("utf-8", errors="ignore")
    if isinstance(value, str):
        try:
            value.encode("utf-8")
        except UnicodeEncodeError:
            # lone surrogates cannot be represented, drop them
            value = value.encode("utf-8", errors="ignore").decode("utf-8")
        return value.strip()
    return value


def normalize_row(row: Dict[str, Any]) -> Dict[str, Any]:
    return {key: normalize_text(value) for key, value in row.items()}


def parse_locale_list(raw: Any) -> List[str]:
    """Decode a stored locale list (JSON, PHP-serialized array or colon separated)."""
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        return [str(item) for item in raw]
    text = str(raw).strip()
    if not text:
        return []
    try:
        data = json.loads(text)
    except ValueError:
        data = None
    if isinstance(data, list):
        return [str(item) for item in data]
    if isinstance(data, dict):
        return [str(item) for item in data.values()]
    if text.startswith("a:"):
        return _PHP_STRING_RE.findall(text)
    return [part for part in text.split(":") if part]


def merge_setting_rows(
    rows: Iterable[Dict[str, Any]],
    id_field: str,
    base: Callable[[Dict[str, Any]], Dict[str, Any]],
    locale_map: Optional[Callable[[str], str]] = None,
    strip_fields: Sequence[str] = ("title",),
    keep_markup: Sequence[str] = (),
) -> List[Dict[str, Any]]:
    """Fold entity + (setting_name, setting_value, locale) rows into one record per entity.

    Records come out in the order their entity ids were first seen. ``strip_fields``
    lists settings that lose their markup; ``("*",)`` strips every setting except
    those named in ``keep_markup``.
    """
    records: Dict[Any, Dict[str, Any]] = {}
    for row in rows:
        entity_id = row[id_field]
        record = records.get(entity_id)
        if record is None:
            record = base(row)
            records[entity_id] = record

        name = row.get("setting_name")
        if not name:
            continue
        value = row.get("setting_value")
        strip_all = "*" in strip_fields and name not in keep_markup
        if strip_all or name in strip_fields:
            value = strip_tags(value)

        locale = row.get("locale")
        if locale:
            if locale_map:
                locale = locale_map(locale)
            bucket = record.get(name)
            if not isinstance(bucket, dict):
                bucket = {}
                record[name] = bucket
            bucket[locale] = value
        else:
            record[name] = value
    return list(records.values())
