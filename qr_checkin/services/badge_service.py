"""
Printable QR badges for guests.

The badge is the guest's code as a QR symbol with high error correction,
an "ID: <code>" caption underneath and, when the guest has a photo, the
photo in a circle over the centre of the symbol. If the photo cannot be
fetched the badge is produced without it.
"""

import io
import re
import logging

import qrcode
import requests
from PIL import Image, ImageDraw, ImageFont

from qr_checkin.services.storage_service import storage_service

logger = logging.getLogger(__name__)

DARK = '#1e3a5f'
LIGHT = '#ffffff'
CAPTION_HEIGHT = 40
PHOTO_RATIO = 0.22  # photo diameter relative to the QR width
PHOTO_TIMEOUT = 10


def badge_filename(guest_name):
    slug = re.sub(r'\s+', '-', guest_name.strip())
    return f"QR-{slug}.png"


def _load_font(size):
    try:
        return ImageFont.truetype("DejaVuSans-Bold.ttf", size)
    except (IOError, OSError):
        return ImageFont.load_default()


def fetch_photo(url):
    """Download a guest photo. Returns a PIL image or None."""
    url = storage_service.resolve_url(url)
    if not url or not url.startswith('http'):
        return None
    try:
        response = requests.get(url, timeout=PHOTO_TIMEOUT)
        response.raise_for_status()
        return Image.open(io.BytesIO(response.content)).convert('RGB')
    except requests.exceptions.RequestException as e:
        logger.warning(f"Could not fetch guest photo {url}: {e}")
    except (IOError, OSError) as e:
        logger.warning(f"Guest photo {url} is not a readable image: {e}")
    return None


def _paste_photo(canvas, photo, qr_width):
    size = int(qr_width * PHOTO_RATIO)
    x = (qr_width - size) // 2
    y = x

    draw = ImageDraw.Draw(canvas)
    draw.ellipse((x - 4, y - 4, x + size + 4, y + size + 4), fill=LIGHT)

    photo = photo.resize((size, size))
    mask = Image.new('L', (size, size), 0)
    ImageDraw.Draw(mask).ellipse((0, 0, size, size), fill=255)
    canvas.paste(photo, (x, y), mask)

    draw.ellipse((x, y, x + size, y + size), outline=DARK, width=2)


def render_badge(code, photo=None, box_size=10, border=2):
    """
    Render a badge PNG.

    Args:
        code: Guest code to encode
        photo: Optional PIL image placed over the centre

    Returns:
        PNG bytes
    """
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_H,
        box_size=box_size,
        border=border,
    )
    qr.add_data(code)
    qr.make(fit=True)
    qr_img = qr.make_image(fill_color=DARK, back_color=LIGHT).convert('RGB')

    width, height = qr_img.size
    canvas = Image.new('RGB', (width, height + CAPTION_HEIGHT), LIGHT)
    canvas.paste(qr_img, (0, 0))

    draw = ImageDraw.Draw(canvas)
    caption = f"ID: {code}"
    font = _load_font(18)
    bbox = draw.textbbox((0, 0), caption, font=font)
    text_width = bbox[2] - bbox[0]
    text_height = bbox[3] - bbox[1]
    draw.text(((width - text_width) // 2, height + (CAPTION_HEIGHT - text_height) // 2),
              caption, fill=DARK, font=font)

    if photo is not None:
        _paste_photo(canvas, photo, width)

    buffer = io.BytesIO()
    canvas.save(buffer, format='PNG')
    return buffer.getvalue()


def render_guest_badge(guest):
    """Badge PNG for a guest, with their photo when one can be fetched."""
    photo = fetch_photo(guest.image_url) if guest.image_url else None
    return render_badge(guest.qr_code, photo=photo)
