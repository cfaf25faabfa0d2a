"""Caption templates and overlay rendering.

WHY: The preview shows the active caption as a styled block over the
video frame. Each template has its own look, and some templates
emphasize one word of the caption. Rendering is kept separate from
playback so the same caption can be previewed in any template.

HOW: TEMPLATES maps template ids to CaptionTemplate records (CSS class,
emphasis support). render_overlay() combines the active caption with an
OverlayStyle and returns a RenderedOverlay: a list of tokens with
emphasis flags, which can be serialized to HTML.

RULES:
- Unknown template ids fall back to "minimal"
- Emphasis applies only when a highlighted word is set AND the template
  supports it; tokens match the word case-insensitively
- Without emphasis the caption renders as a single block
- position_pct is the offset from the bottom edge of the frame (0-100)
"""

from __future__ import annotations

import html
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from captiflow.core.ir import CaptionUnit


@dataclass(frozen=True)
class CaptionTemplate:
    id: str
    name: str
    description: str
    css_class: str
    supports_emphasis: bool = False


TEMPLATES: Dict[str, CaptionTemplate] = {
    "minimal": CaptionTemplate(
        id="minimal",
        name="Minimal Clean",
        description="Simple white text with subtle shadow",
        css_class="caption-minimal",
    ),
    "bold": CaptionTemplate(
        id="bold",
        name="Bold Impact",
        description="Large, bold text with strong shadow",
        css_class="caption-bold",
        supports_emphasis=True,
    ),
    "gradient": CaptionTemplate(
        id="gradient",
        name="Modern Gradient",
        description="Colorful gradient text with glow effect",
        css_class="caption-gradient",
        supports_emphasis=True,
    ),
    "neon": CaptionTemplate(
        id="neon",
        name="Tech Neon",
        description="Futuristic neon glow styling",
        css_class="caption-neon",
        supports_emphasis=True,
    ),
    "corporate": CaptionTemplate(
        id="corporate",
        name="Corporate",
        description="Professional blue styling",
        css_class="caption-minimal",
    ),
    "social": CaptionTemplate(
        id="social",
        name="Social Media",
        description="Instagram/TikTok style with background",
        css_class="caption-bold",
        supports_emphasis=True,
    ),
}

DEFAULT_TEMPLATE_ID = "minimal"


def get_template(template_id: Optional[str]) -> CaptionTemplate:
    """Look up a template by id, falling back to the minimal template."""
    if template_id:
        found = TEMPLATES.get(template_id.lower())
        if found is not None:
            return found
    return TEMPLATES[DEFAULT_TEMPLATE_ID]


@dataclass
class OverlayStyle:
    """Presentation parameters for the caption overlay.

    RULES:
    - position_pct: bottom offset, clamped to 0-100 when rendering
    - font_size: CSS pixels, must be positive
    - highlighted_word: overrides the caption's own highlighted_word
    """

    template: str = DEFAULT_TEMPLATE_ID
    position_pct: float = 10.0
    font_size: int = 24
    highlighted_word: Optional[str] = None


@dataclass
class OverlayToken:
    text: str
    emphasized: bool = False


@dataclass
class RenderedOverlay:
    """A caption ready to draw: tokens, class, and position."""

    caption_id: int
    text: str
    css_class: str
    position_pct: float
    font_size: int
    tokens: List[OverlayToken] = field(default_factory=list)

    @property
    def has_emphasis(self) -> bool:
        return any(t.emphasized for t in self.tokens)

    def to_html(self) -> str:
        parts = []
        for token in self.tokens:
            escaped = html.escape(token.text)
            if token.emphasized:
                parts.append('<span class="caption-emphasis">{}</span>'.format(escaped))
            else:
                parts.append(escaped)
        return '<p class="{}" style="bottom: {:g}%; font-size: {}px">{}</p>'.format(
            self.css_class, self.position_pct, self.font_size, " ".join(parts)
        )


def render_overlay(
    caption: Optional[CaptionUnit],
    style: Optional[OverlayStyle] = None,
) -> Optional[RenderedOverlay]:
    """Render the active caption (or nothing) with the given style."""
    if caption is None:
        return None
    style = style or OverlayStyle()
    if style.font_size <= 0:
        raise ValueError("font_size must be positive")

    template = get_template(style.template)
    highlight = style.highlighted_word or caption.highlighted_word

    if highlight and template.supports_emphasis:
        target = highlight.lower()
        tokens = [
            OverlayToken(text=word, emphasized=word.lower() == target)
            for word in caption.text.split(" ")
            if word
        ]
    else:
        tokens = [OverlayToken(text=caption.text)]

    return RenderedOverlay(
        caption_id=caption.id,
        text=caption.text,
        css_class=template.css_class,
        position_pct=min(max(style.position_pct, 0.0), 100.0),
        font_size=style.font_size,
        tokens=tokens,
    )
