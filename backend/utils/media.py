"""Placeholder media for schedule items that were never hydrated."""
from typing import List
from urllib.parse import quote

PLACEHOLDER_PALETTE = ["#667eea", "#764ba2", "#ff6b6b"]


def placeholder_photo(title: str, variant: int = 0) -> str:
    """Inline SVG data URL: gradient card with the title on it."""
    color = PLACEHOLDER_PALETTE[variant % len(PLACEHOLDER_PALETTE)]
    safe_title = (title or "Spot").replace('"', "")
    svg = (
        "<svg xmlns='http://www.w3.org/2000/svg' width='800' height='500'>"
        f"<defs><linearGradient id='g{variant}' x1='0' y1='0' x2='1' y2='1'>"
        f"<stop offset='0%' stop-color='{color}' stop-opacity='0.9'/>"
        "<stop offset='100%' stop-color='#1c1c28' stop-opacity='0.8'/>"
        "</linearGradient></defs>"
        f"<rect width='800' height='500' fill='url(#g{variant})'/>"
        "<text x='50%' y='50%' dominant-baseline='middle' text-anchor='middle' "
        "font-family='Arial' font-size='42' fill='white' opacity='0.9'>"
        f"{safe_title}</text></svg>"
    )
    return "data:image/svg+xml;utf8," + quote(svg, safe="")


def placeholder_photos(title: str) -> List[str]:
    return [placeholder_photo(title, variant) for variant in range(len(PLACEHOLDER_PALETTE))]
