"""
Example renderer artifact for renderKit-Relay.

A real deployment builds this file from the site's block components; the
relay only needs ``render_relay`` (and optionally ``validate_relay_props``
and ``RELAY_VERSION``). Point the relay at it with::

    RENDERKIT_RELAY_RENDERER_PATH=examples/relay_renderer.py renderkit-relay serve
"""

from html import escape

from renderkit_relay import Err, InvalidPropsError, UnsupportedBlockError

RELAY_VERSION = "1.0.0"


def _attributes(props):
    attributes = props.get("attributes", props)
    return attributes if isinstance(attributes, dict) else {}


def _hero(attrs):
    heading = escape(str(attrs.get("heading", "")))
    description = attrs.get("description")
    parts = [f"<h1>{heading}</h1>"]
    if description:
        parts.append(f"<p>{escape(str(description))}</p>")
    if attrs.get("buttonText"):
        url = escape(str(attrs.get("buttonUrl", "#")), quote=True)
        parts.append(f'<a class="rk-hero__button" href="{url}">{escape(str(attrs["buttonText"]))}</a>')
    if len(parts) == 1:
        return parts[0]
    return f'<section class="rk-hero">{"".join(parts)}</section>'


def _text_block(attrs):
    align = escape(str(attrs.get("align", "left")), quote=True)
    # Content is trusted editor HTML.
    return f'<div class="rk-text rk-text--{align}">{attrs.get("content", "")}</div>'


def _navigation(attrs):
    items = attrs.get("menuItems") or []
    links = "".join(
        f'<li><a href="{escape(str(item.get("url", "#")), quote=True)}">'
        f"{escape(str(item.get('title', '')))}</a></li>"
        for item in items
        if isinstance(item, dict)
    )
    site = escape(str(attrs.get("siteName", "")))
    return f'<nav class="rk-nav"><span>{site}</span><ul>{links}</ul></nav>'


BLOCKS = {
    "hero": _hero,
    "renderkit/hero": _hero,
    "renderkit/text-block": _text_block,
    "renderkit/navigation": _navigation,
}


def validate_relay_props(block, props):
    if block not in BLOCKS:
        raise UnsupportedBlockError()
    attrs = _attributes(props)
    if block.endswith("navigation") and not isinstance(attrs.get("menuItems", []), list):
        return Err("invalid_props")
    if "heading" in attrs and not isinstance(attrs["heading"], str):
        raise InvalidPropsError()
    return props


def render_relay(block, props):
    return BLOCKS[block](_attributes(props))
