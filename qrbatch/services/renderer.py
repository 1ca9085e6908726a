"""QR rendering: canonical scan URL in, PNG bytes out."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from io import BytesIO

import qrcode
from PIL import Image
from qrcode.image.pil import PilImage

from qrbatch.config import Settings

Renderer = Callable[[str], bytes]

_ERROR_CORRECTION = {
  "L": qrcode.constants.ERROR_CORRECT_L,
  "M": qrcode.constants.ERROR_CORRECT_M,
  "Q": qrcode.constants.ERROR_CORRECT_Q,
  "H": qrcode.constants.ERROR_CORRECT_H,
}


@dataclass(frozen=True)
class QrRenderOptions:
  size_px: int = 512
  border: int = 2
  error_correction: str = "H"


def render_qr_png(content: str, options: QrRenderOptions | None = None) -> bytes:
  """
  Encode ``content`` as a square black-on-white QR PNG.

  The module size is chosen so the symbol plus quiet zone fills ``size_px``;
  the final nearest-neighbour resize pins the exact pixel size without
  blurring module edges.
  """
  options = options or QrRenderOptions()
  qr = qrcode.QRCode(error_correction=_ERROR_CORRECTION[options.error_correction], border=options.border)
  qr.add_data(content)
  qr.make(fit=True)

  modules = qr.modules_count + 2 * options.border
  qr.box_size = max(1, options.size_px // modules)
  image = qr.make_image(image_factory=PilImage, fill_color="black", back_color="white").get_image()
  if image.size != (options.size_px, options.size_px):
    image = image.resize((options.size_px, options.size_px), Image.NEAREST)

  buffer = BytesIO()
  image.save(buffer, format="PNG")
  return buffer.getvalue()


def build_renderer(settings: Settings) -> Renderer:
  """Bind render options from settings into a single-argument renderer."""
  options = QrRenderOptions(size_px=settings.qr_size_px, border=settings.qr_border, error_correction=settings.qr_error_correction)

  def _render(content: str) -> bytes:
    return render_qr_png(content, options)

  return _render
