# -*- coding: utf-8 -*-
"""
Text-to-PNG preview rendering.

Renders a message body onto a peach gradient card and stores it under
GENERATED_DIR with an unguessable name. Nothing here is served directly;
the message routes gate access to the file.
"""
import os
import secrets

from PIL import Image, ImageDraw, ImageFont

WIDTH = 800
PADDING = 60
LINE_HEIGHT = 40
FONT_SIZE = 28
TEXT_COLOR = (45, 45, 45)
EDGE_COLOR = (0xFE, 0xA4, 0x7F)
CENTER_COLOR = (0xFF, 0xE5, 0xD9)


def generated_dir() -> str:
    return os.getenv("GENERATED_DIR", os.path.join(os.getcwd(), "generated"))


def image_file_path(name: str) -> str:
    return os.path.join(generated_dir(), os.path.basename(name))


def _load_font():
    for name in ("DejaVuSans-Bold.ttf", "Arial Bold.ttf"):
        try:
            return ImageFont.truetype(name, FONT_SIZE)
        except OSError:
            continue
    return ImageFont.load_default()


def wrap_text(text: str, font, max_width: int, draw) -> list:
    lines = []
    for paragraph in text.splitlines() or [""]:
        current = ""
        for word in paragraph.split(" "):
            candidate = f"{current} {word}" if current else word
            if current and draw.textlength(candidate, font=font) > max_width:
                lines.append(current)
                current = word
            else:
                current = candidate
        lines.append(current)
    return lines


def _blend(a, b, t):
    return tuple(int(a[i] + (b[i] - a[i]) * t) for i in range(3))


def _paint_gradient(img):
    """Horizontal edge-center-edge gradient."""
    width, height = img.size
    draw = ImageDraw.Draw(img)
    half = width / 2
    for x in range(width):
        t = 1 - abs(x - half) / half
        draw.line([(x, 0), (x, height)], fill=_blend(EDGE_COLOR, CENTER_COLOR, t))


def render_message_image(body: str) -> str:
    """Render ``body`` to PNG. Returns the file name under GENERATED_DIR."""
    font = _load_font()
    measure = ImageDraw.Draw(Image.new("RGB", (WIDTH, 10)))
    lines = wrap_text(body, font, WIDTH - PADDING * 2, measure)

    height = len(lines) * LINE_HEIGHT + PADDING * 3
    img = Image.new("RGB", (WIDTH, height))
    _paint_gradient(img)

    draw = ImageDraw.Draw(img)
    y = PADDING
    for line in lines:
        line_width = draw.textlength(line, font=font)
        draw.text(((WIDTH - line_width) / 2, y), line, fill=TEXT_COLOR, font=font)
        y += LINE_HEIGHT

    out_dir = generated_dir()
    os.makedirs(out_dir, exist_ok=True)
    filename = f"{secrets.token_urlsafe(24)}.png"
    img.save(os.path.join(out_dir, filename), format="PNG")
    return filename


def remove_message_image(name: str):
    """Delete a rendered preview. A missing file is already removed."""
    try:
        os.remove(image_file_path(name))
    except FileNotFoundError:
        pass
