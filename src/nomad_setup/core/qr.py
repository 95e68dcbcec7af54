"""QR rendering for the quick setup payload.

Terminal output uses ``qrencode`` when installed, otherwise the ``qrcode``
library. The browser page embeds an image fetched from a public QR API and
falls back to a locally generated SVG when the API is unreachable.
"""

import base64
import html
import io
import tempfile
from pathlib import Path
from urllib.parse import quote

import httpx
import qrcode
from qrcode.image.svg import SvgPathImage

from nomad_setup.core.config import DEFAULT_QR_API_URL, DEFAULT_QR_SIZE
from nomad_setup.utils.process import command_exists, run

QR_PAGE_NAME = "nomad-qr.html"

PAGE_TEMPLATE = """<!doctype html>
<html lang="en">
<meta charset="utf-8" />
<title>{title}</title>
<style>
body {{ font-family: -apple-system, BlinkMacSystemFont, "SF Pro Text", sans-serif; background: #0b0c0e; color: #e7e9ee; display: flex; align-items: center; justify-content: center; height: 100vh; }}
.card {{ background: #14161b; padding: 24px; border-radius: 16px; text-align: center; box-shadow: 0 20px 60px rgba(0,0,0,0.4); }}
code {{ display: block; margin-top: 12px; font-size: 12px; word-break: break-all; color: #a0a6b1; }}
img {{ width: 260px; height: 260px; background: #fff; }}
</style>
<div class="card">
  <h2>{title}</h2>
  <img src="{image_src}" alt="Nomad QR" />
  <code>{payload}</code>
</div>
</html>
"""


def qr_image_url(payload: str, api_url: str = DEFAULT_QR_API_URL, size: int = DEFAULT_QR_SIZE) -> str:
    """URL of the remote QR image for payload (payload fully percent-encoded)."""
    return f"{api_url}?size={size}x{size}&data={quote(payload, safe='')}"


def fetch_qr_png(
    payload: str,
    api_url: str = DEFAULT_QR_API_URL,
    size: int = DEFAULT_QR_SIZE,
    timeout: float = 10,
) -> bytes | None:
    """Fetch a PNG QR code from the remote API.

    Returns:
        Image bytes, or None if the request fails or returns a non-image.
    """
    try:
        resp = httpx.get(qr_image_url(payload, api_url, size), timeout=timeout, follow_redirects=True)
        resp.raise_for_status()
    except httpx.HTTPError:
        return None
    if not resp.headers.get("content-type", "").startswith("image/"):
        return None
    return resp.content


def local_qr_svg(payload: str) -> bytes:
    """Encode payload as an SVG QR code locally."""
    img = qrcode.make(payload, image_factory=SvgPathImage)
    buffer = io.BytesIO()
    img.save(buffer)
    return buffer.getvalue()


def terminal_qr(payload: str) -> str:
    """Render payload as a QR code for the terminal."""
    if command_exists("qrencode"):
        result = run(["qrencode", "-t", "ANSIUTF8", payload], timeout=10)
        if result.success and result.stdout:
            return result.stdout

    qr = qrcode.QRCode(border=2)
    qr.add_data(payload)
    qr.make(fit=True)
    output = io.StringIO()
    qr.print_ascii(out=output, invert=True)
    return output.getvalue()


def image_data_uri(
    payload: str,
    api_url: str = DEFAULT_QR_API_URL,
    size: int = DEFAULT_QR_SIZE,
    remote: bool = True,
) -> tuple[str, str]:
    """Build a data URI for the QR image.

    Returns:
        Tuple of (data URI, source) where source is "remote" or "local".
    """
    if remote:
        png = fetch_qr_png(payload, api_url, size)
        if png:
            return "data:image/png;base64," + base64.b64encode(png).decode("ascii"), "remote"
    svg = local_qr_svg(payload)
    return "data:image/svg+xml;base64," + base64.b64encode(svg).decode("ascii"), "local"


def render_page(payload: str, title: str, image_src: str) -> str:
    """Render the HTML card showing the QR image and the payload text."""
    return PAGE_TEMPLATE.format(
        title=html.escape(title),
        image_src=html.escape(image_src, quote=True),
        payload=html.escape(payload),
    )


def write_qr_page(
    payload: str,
    title: str,
    image_src: str,
    directory: Path | None = None,
) -> Path:
    """Write the QR page to <tempdir>/nomad-qr.html and return its path."""
    directory = directory or Path(tempfile.gettempdir())
    path = directory / QR_PAGE_NAME
    path.write_text(render_page(payload, title, image_src), encoding="utf-8")
    return path
