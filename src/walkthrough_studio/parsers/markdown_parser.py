"""Parse walkthrough scripts written in Markdown.

Expected shape::

    # Class A - East Campus
    ## Engine Compartment [critical]
    - **Oil Level:** Check the dipstick. [must] [required] [pf]
    - Check the pads. [req] [passfail]
    - Coolant is at or above the minimum mark. [tags: fluids, engine]
      Continuation lines are indented.
"""

import re
from typing import Any, Dict, List, Optional

from ..core.errors import ParseError
from ..core.models import RawImport


class MarkdownParser:
    """Turn ``##`` headings into sections and bullet lines into steps."""

    TITLE_PATTERN = re.compile(r'^#\s+(.+?)\s*$')
    SECTION_PATTERN = re.compile(r'^##\s+(.+?)\s*$')
    BULLET_PATTERN = re.compile(r'^\s{0,3}(?:[-*+]|\d+[.)])\s+(.*)$')
    CONTINUATION_PATTERN = re.compile(r'^(?:\s{2,}|\t)(\S.*)$')
    FLAG_PATTERN = re.compile(r'\[(must|required|req|passfail|pf|skip|critical)\]', re.IGNORECASE)
    TAGS_PATTERN = re.compile(r'\[tags?:\s*([^\]]*)\]', re.IGNORECASE)
    BRACKET_PATTERN = re.compile(r'\[[^\]]*\]')
    # **Label:** text / **Label**: text / *Label*: text / __Label__: text
    LABEL_PATTERN = re.compile(
        r'^(?:\*\*|__)(?P<a>[^*_]+?)(?::\s*(?:\*\*|__)|(?:\*\*|__)\s*:)\s*(?P<rest>.*)$'
        r'|^(?:\*|_)(?P<b>[^*_]+?)(?::\s*(?:\*|_)|(?:\*|_)\s*:)\s*(?P<rest2>.*)$'
    )

    FLAG_FIELDS = {
        "must": "mustSay",
        "required": "required",
        "req": "required",
        "pf": "passFail",
        "passfail": "passFail",
        "skip": "skip",
    }

    def parse(self, text: Any, label: Optional[str] = None, class_code: Optional[str] = None,
              version: Optional[int] = None) -> RawImport:
        if isinstance(text, bytes):
            try:
                text = text.decode("utf-8-sig")
            except UnicodeDecodeError as exc:
                raise ParseError(f"Markdown is not valid UTF-8: {exc}", fmt="markdown") from exc
        if not isinstance(text, str) or not text.strip():
            raise ParseError("Markdown input is empty.", fmt="markdown")

        sections: List[Dict[str, Any]] = []
        current: Optional[Dict[str, Any]] = None
        last_step: Optional[Dict[str, Any]] = None
        title: Optional[str] = None

        for line in text.splitlines():
            heading = self.SECTION_PATTERN.match(line)
            if heading:
                current = self._section_from_heading(heading.group(1))
                sections.append(current)
                last_step = None
                continue

            top = self.TITLE_PATTERN.match(line)
            if top:
                if title is None:
                    title = top.group(1)
                continue

            bullet = self.BULLET_PATTERN.match(line)
            if bullet:
                step = self._step_from_line(bullet.group(1))
                if step is None:
                    last_step = None
                    continue
                if current is None:
                    current = {"section": "Untitled", "critical": False,
                               "passFail": False, "steps": []}
                    sections.append(current)
                current["steps"].append(step)
                last_step = step
                continue

            more = self.CONTINUATION_PATTERN.match(line)
            if more and last_step is not None:
                extra = self._strip_markers(more.group(1))
                if extra:
                    last_step["script"] = f"{last_step['script']}\n{extra}"
                continue

            if not line.strip():
                last_step = None

        return RawImport(
            format="markdown",
            sections=sections,
            label=label or title,
            class_code=class_code,
            version=version,
        )

    def _section_from_heading(self, text: str) -> Dict[str, Any]:
        flags = {f.lower() for f in self.FLAG_PATTERN.findall(text)}
        title = self._strip_markers(text)
        return {
            "section": title,
            "critical": "critical" in flags,
            "passFail": bool(flags & {"pf", "passfail"}),
            "steps": [],
        }

    def _strip_markers(self, text: str) -> str:
        text = self.TAGS_PATTERN.sub("", text)
        text = self.FLAG_PATTERN.sub("", text)
        text = self.BRACKET_PATTERN.sub("", text)
        return re.sub(r'\s{2,}', ' ', text).strip()

    def _step_from_line(self, text: str) -> Optional[Dict[str, Any]]:
        step: Dict[str, Any] = {}
        for flag in self.FLAG_PATTERN.findall(text):
            field = self.FLAG_FIELDS.get(flag.lower())
            if field:
                step[field] = True

        tags: List[str] = []
        for group in self.TAGS_PATTERN.findall(text):
            tags.extend(t.strip() for t in group.split(",") if t.strip())
        if tags:
            step["tags"] = tags

        body = self._strip_markers(text)
        match = self.LABEL_PATTERN.match(body)
        if match:
            step["label"] = (match.group("a") or match.group("b")).strip()
            body = (match.group("rest") if match.group("a") else match.group("rest2")).strip()

        if not body:
            return None
        step["script"] = body
        return step


def parse_markdown(text: Any, **meta: Any) -> RawImport:
    return MarkdownParser().parse(text, **meta)
