"""
HTTP response comparison.

Diffs a base response against a target response under an effective policy
and reports every divergence found: status, each header, then the body. JSON
bodies are compared structurally so that key order and number formatting do
not matter while array order still does.
"""

import json
import re
from collections import Counter
from decimal import Decimal
from typing import Any, List, Optional

from backcompat.comparison.result import ComparisonResult, Divergence
from backcompat.domain.fixture import FixtureKey
from backcompat.domain.http_message import Headers, HTTPResponse
from backcompat.policy.matcher import EffectivePolicy

JSON_MEDIA_TYPES = {"application/json", "text/json"}
PREVIEW_LENGTH = 200

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def is_json_media_type(content_type: Optional[str]) -> bool:
    """True for application/json, text/json and any "+json" structured suffix."""
    if not content_type:
        return False
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type in JSON_MEDIA_TYPES or media_type.endswith("+json")


def _load_json(body: bytes) -> Any:
    # Decimal keeps 1, 1.0 and 1e0 comparable without float rounding.
    return json.loads(body, parse_float=Decimal, parse_int=Decimal, parse_constant=Decimal)


def _json_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, Decimal):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    return "object"


def _plain(value: Any) -> Any:
    """Convert parsed JSON back into plain Python values for reports."""
    if isinstance(value, Decimal):
        if value.is_nan() or value.is_infinite():
            return str(value)
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, list):
        return [_plain(item) for item in value]
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    return value


def _numbers_equal(a: Decimal, b: Decimal) -> bool:
    if a.is_nan() or b.is_nan():
        return a.is_nan() and b.is_nan()
    return a == b


def _child_path(path: str, key: str) -> str:
    if _IDENTIFIER_RE.match(key):
        return f"{path}.{key}"
    return f"{path}[{json.dumps(key)}]"


def _preview(body: bytes) -> str:
    text = body.decode("utf-8", errors="replace")
    if len(text) > PREVIEW_LENGTH:
        return text[:PREVIEW_LENGTH] + "..."
    return text


class ResponseComparator:
    """
    Compares two HTTP responses under an EffectivePolicy.

    Stateless; one instance can serve every worker thread.
    """

    def compare(
        self,
        key: FixtureKey,
        base: HTTPResponse,
        target: HTTPResponse,
        policy: EffectivePolicy,
        path: Optional[str] = None,
    ) -> ComparisonResult:
        divergences: List[Divergence] = []
        divergences.extend(self.compare_status(base, target))
        divergences.extend(self.compare_headers(base.headers, target.headers, policy))
        divergences.extend(self.compare_bodies(base, target))
        return ComparisonResult.from_divergences(key, divergences, path=path)

    def compare_status(self, base: HTTPResponse, target: HTTPResponse) -> List[Divergence]:
        if base.status == target.status:
            return []
        return [
            Divergence(
                field="status",
                base_value=base.status,
                target_value=target.status,
                reason=f"status {base.status} != {target.status}",
            )
        ]

    def compare_headers(
        self, base: Headers, target: Headers, policy: EffectivePolicy
    ) -> List[Divergence]:
        names = {}
        for name in base.names() + target.names():
            names.setdefault(name.lower(), name)

        divergences = []
        for lowered in sorted(names):
            name = names[lowered]
            if policy.is_ignored(name):
                continue

            base_values = base.get_all(name)
            target_values = target.get_all(name)

            if policy.is_presence_only(name):
                if bool(base_values) != bool(target_values):
                    divergences.append(
                        Divergence(
                            field=f"header:{name}",
                            base_value=base_values or None,
                            target_value=target_values or None,
                            reason=(
                                "missing in target" if base_values else "unexpected in target"
                            ),
                        )
                    )
                continue

            base_counts = Counter(base_values)
            target_counts = Counter(target_values)
            if base_counts == target_counts:
                continue

            if not target_values:
                reason = "missing in target"
            elif not base_values:
                reason = "unexpected in target"
            else:
                missing = sorted((base_counts - target_counts).elements())
                extra = sorted((target_counts - base_counts).elements())
                parts = []
                if missing:
                    parts.append(f"missing {missing}")
                if extra:
                    parts.append(f"extra {extra}")
                reason = "values differ: " + ", ".join(parts)

            divergences.append(
                Divergence(
                    field=f"header:{name}",
                    base_value=base_values or None,
                    target_value=target_values or None,
                    reason=reason,
                )
            )
        return divergences

    def compare_bodies(self, base: HTTPResponse, target: HTTPResponse) -> List[Divergence]:
        base_body = base.body or b""
        target_body = target.body or b""
        if base_body == target_body:
            return []

        if is_json_media_type(base.content_type) and is_json_media_type(target.content_type):
            try:
                base_value = _load_json(base_body)
                target_value = _load_json(target_body)
            except ValueError:
                pass
            else:
                divergences: List[Divergence] = []
                self._diff_json("$", base_value, target_value, divergences)
                return divergences

        return [
            Divergence(
                field="body",
                base_value=_preview(base_body),
                target_value=_preview(target_body),
                reason=f"body differs ({len(base_body)} bytes vs {len(target_body)} bytes)",
            )
        ]

    def _diff_json(self, path: str, base: Any, target: Any, out: List[Divergence]) -> None:
        field = f"body{path}"

        if isinstance(base, dict) and isinstance(target, dict):
            for key in sorted(set(base) | set(target)):
                child = _child_path(path, key)
                if key not in target:
                    out.append(
                        Divergence(f"body{child}", _plain(base[key]), None, "key missing in target")
                    )
                elif key not in base:
                    out.append(
                        Divergence(
                            f"body{child}", None, _plain(target[key]), "unexpected key in target"
                        )
                    )
                else:
                    self._diff_json(child, base[key], target[key], out)
            return

        if isinstance(base, list) and isinstance(target, list):
            for index in range(min(len(base), len(target))):
                self._diff_json(f"{path}[{index}]", base[index], target[index], out)
            if len(base) != len(target):
                out.append(
                    Divergence(
                        field,
                        len(base),
                        len(target),
                        f"array length {len(base)} != {len(target)}",
                    )
                )
            return

        base_type, target_type = _json_type(base), _json_type(target)
        if base_type != target_type:
            out.append(
                Divergence(
                    field, _plain(base), _plain(target), f"type {base_type} != {target_type}"
                )
            )
        elif base_type == "number":
            if not _numbers_equal(base, target):
                out.append(Divergence(field, _plain(base), _plain(target), "number differs"))
        elif base != target:
            out.append(Divergence(field, _plain(base), _plain(target), "value differs"))
