"""QR code image rendering."""
import base64
import io

import qrcode


class QRService:
    """Service for QR code operations."""

    @staticmethod
    def render_data_url(payload: str, box_size: int = 10, border: int = 2) -> str:
        """Render a payload string as a PNG data URL."""
        qr = qrcode.QRCode(
            version=None,  # Auto-determine size
            error_correction=qrcode.constants.ERROR_CORRECT_H,
            box_size=box_size,
            border=border,
        )
        qr.add_data(payload)
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")

        buffered = io.BytesIO()
        img.save(buffered, format="PNG")
        img_str = base64.b64encode(buffered.getvalue()).decode()

        return f"data:image/png;base64,{img_str}"
