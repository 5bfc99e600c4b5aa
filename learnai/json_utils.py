from __future__ import annotations

import json
import re
import typing as t

from .errors import MalformedContentError


def strip_code_fences(text: str | None) -> str:
    s = (text or "").strip()
    if s.startswith("```json"):
        s = s[7:]
    elif s.startswith("```"):
        s = s[3:]
    if s.endswith("```"):
        s = s[:-3]
    return s.strip()


def extract_json(raw: str | None) -> str:
    """Slice the JSON object or array out of a model reply.

    Heuristic only: brackets are not balanced, so prose containing braces
    around the payload can produce a bad slice. Parsing stays fallible.
    """
    s = strip_code_fences(raw)
    first_obj = s.find("{")
    first_arr = s.find("[")
    if first_obj == -1 and first_arr == -1:
        return s
    if first_arr == -1 or (first_obj != -1 and first_obj < first_arr):
        start = first_obj
        end = s.rfind("}")
    else:
        start = first_arr
        end = s.rfind("]")
    if end == -1 or end <= start:
        return s
    return s[start : end + 1].strip()


def escape_inch_quotes(text: str) -> str:
    # 27"F -> 27\"F
    return re.sub(r'(\d)"([a-zA-Z])', r'\1\\"\2', text)


class ResponseNormalizer:
    def extract(self, raw: str | None) -> str:
        return extract_json(raw)

    def parse(self, raw: str | None) -> t.Any:
        candidate = self.extract(raw)
        try:
            return json.loads(candidate)
        except json.JSONDecodeError as e:
            raise MalformedContentError(f"Response is not valid JSON: {e}") from e


class StrictResponseNormalizer(ResponseNormalizer):
    """Bracket-balancing extractor that skips over string literals."""

    def extract(self, raw: str | None) -> str:
        s = strip_code_fences(raw)
        start = -1
        for i, ch in enumerate(s):
            if ch in "{[":
                start = i
                break
        if start == -1:
            return s

        stack: list[str] = []
        in_str = False
        escape = False
        for i in range(start, len(s)):
            ch = s[i]
            if in_str:
                if escape:
                    escape = False
                elif ch == "\\":
                    escape = True
                elif ch == '"':
                    in_str = False
                continue
            if ch == '"':
                in_str = True
            elif ch == "{":
                stack.append("}")
            elif ch == "[":
                stack.append("]")
            elif ch in "}]":
                if not stack or stack[-1] != ch:
                    break
                stack.pop()
                if not stack:
                    return s[start : i + 1]
        return extract_json(s)


_default = ResponseNormalizer()


def parse_json(raw: str | None) -> t.Any:
    return _default.parse(raw)
