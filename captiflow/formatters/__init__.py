"""Output formatter registry.

WHY: The CLI and API layers need a single lookup to find the right
formatter by name. A central dict makes it trivial to add new formats:
create the formatter class, import it here, add one line.

HOW: FORMATTERS maps string keys to formatter *classes* (not instances).
Callers instantiate as needed: ``formatter = FORMATTERS["srt_captions"]()``.

RULES:
- Keys are snake_case identifiers (used in CLI flags and API form fields)
- Values are BaseFormatter subclasses (not instances)
- Every formatter listed here must be importable without side effects
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from captiflow.formatters.captions_json import CaptionsJSONFormatter
from captiflow.formatters.plain_text import PlainTextFormatter
from captiflow.formatters.srt import SRTFormatter

if TYPE_CHECKING:
    from captiflow.formatters.base import BaseFormatter

FORMATTERS: dict[str, type[BaseFormatter]] = {
    "srt_captions": SRTFormatter,
    "captions_json": CaptionsJSONFormatter,
    "plain_text": PlainTextFormatter,
}
