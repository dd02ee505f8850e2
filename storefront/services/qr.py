"""Генерация QR-кода PIX."""
import base64
import html
import io
import logging

import qrcode
from PIL import Image
from qrcode.constants import ERROR_CORRECT_M

logger = logging.getLogger(__name__)

QR_WIDTH = 256
QR_BORDER = 1
PREVIEW_CHARS = 20

_PLACEHOLDER_SVG = """<svg width="200" height="200" xmlns="http://www.w3.org/2000/svg">
  <rect width="200" height="200" fill="white" stroke="#ccc"/>
  <text x="100" y="90" text-anchor="middle" font-family="Arial" font-size="12" fill="#666">QR Code PIX</text>
  <text x="100" y="110" text-anchor="middle" font-family="Arial" font-size="8" fill="#999">{preview}</text>
  <text x="100" y="130" text-anchor="middle" font-family="Arial" font-size="8" fill="#999">Erro ao gerar QR Code</text>
</svg>"""


def render_qr_image(payload_text: str) -> str:
    """
    PIX «copia e cola» -> data URL с PNG QR-кода (256px, поле 1 модуль).

    Никогда не бросает исключений: при любой ошибке (пустой или слишком
    длинный payload, сбой кодировщика) возвращает SVG-заглушку с первыми
    20 символами payload.
    """
    try:
        if not payload_text:
            raise ValueError("empty PIX payload")

        qr = qrcode.QRCode(error_correction=ERROR_CORRECT_M, box_size=1, border=QR_BORDER)
        qr.add_data(payload_text)
        qr.make(fit=True)

        # box_size подбираем так, чтобы картинка была не уже QR_WIDTH
        modules = qr.modules_count + 2 * QR_BORDER
        qr.box_size = max(1, -(-QR_WIDTH // modules))
        img = qr.make_image(fill_color="black", back_color="white").get_image()
        if img.size[0] != QR_WIDTH:
            img = img.resize((QR_WIDTH, QR_WIDTH), Image.NEAREST)

        buffered = io.BytesIO()
        img.save(buffered, "PNG")
        qr_b64 = base64.b64encode(buffered.getvalue()).decode("ascii")
        return f"data:image/png;base64,{qr_b64}"
    except Exception as e:
        logger.warning(f"Error generating QR code image, using placeholder: {e}")
        return render_placeholder(payload_text)


def render_placeholder(payload_text: str | None) -> str:
    """SVG-заглушка с текстовым превью payload."""
    preview = html.escape(f"{(payload_text or '')[:PREVIEW_CHARS]}...")
    svg = _PLACEHOLDER_SVG.format(preview=preview)
    return f"data:image/svg+xml;base64,{base64.b64encode(svg.encode('utf-8')).decode('ascii')}"
