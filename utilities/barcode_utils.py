"""
Asset tag generation: QR codes, Code128 barcodes and printable label sheets.

Tags carry the asset code so a scanned sticker resolves straight to the asset
record and its lifecycle history.
"""
import qrcode
import barcode
from barcode.writer import ImageWriter
from io import BytesIO
from PIL import Image, ImageDraw, ImageFont
from reportlab.lib.pagesizes import letter
from reportlab.lib.units import inch
from reportlab.pdfgen import canvas
from reportlab.lib.utils import ImageReader
from typing import Any, Dict, List, Optional
import os


class AssetTagGenerator:
    """Builds scannable tags for assets."""

    def __init__(self, base_url: Optional[str] = None):
        self.base_url = (base_url or os.environ.get("APP_BASE_URL", "http://localhost:5000")).rstrip("/")

    def asset_url(self, asset_id: int) -> str:
        return f"{self.base_url}/assets/{asset_id}"

    def qr_payload(self, asset: Dict[str, Any]) -> str:
        return (
            f"ASSET {asset['asset_code']}\n"
            f"Name: {asset['name']}\n"
            f"Serial: {asset.get('serial_number') or '-'}\n"
            f"{self.asset_url(asset['id'])}"
        )

    def generate_qr_code(self, asset: Dict[str, Any], size: int = 10, border: int = 2) -> BytesIO:
        """Return a PNG QR code for an asset dict (see Asset.to_dict)."""
        qr = qrcode.QRCode(
            version=1,  # grows with fit=True
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=size,
            border=border,
        )
        qr.add_data(self.qr_payload(asset))
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")
        buffer = BytesIO()
        img.save(buffer, format="PNG")
        buffer.seek(0)
        return buffer

    def generate_barcode(self, code: str, barcode_type: str = "code128") -> BytesIO:
        """Return a PNG 1D barcode encoding `code`."""
        barcode_class = barcode.get_barcode_class(barcode_type)
        buffer = BytesIO()
        barcode_class(code, writer=ImageWriter()).write(buffer)
        buffer.seek(0)
        return buffer

    def create_label_image(self, asset: Dict[str, Any], width: int = 400, height: int = 240) -> BytesIO:
        img = Image.new("RGB", (width, height), "white")
        draw = ImageDraw.Draw(img)

        try:
            title_font = ImageFont.truetype("arial.ttf", 20)
            text_font = ImageFont.truetype("arial.ttf", 14)
            small_font = ImageFont.truetype("arial.ttf", 10)
        except OSError:
            title_font = ImageFont.load_default()
            text_font = ImageFont.load_default()
            small_font = ImageFont.load_default()

        qr_img = Image.open(self.generate_qr_code(asset, size=5, border=1))
        qr_size = min(height - 20, width // 2)
        qr_img = qr_img.resize((qr_size, qr_size))
        qr_x = 10
        qr_y = (height - qr_size) // 2
        img.paste(qr_img, (qr_x, qr_y))

        text_x = qr_x + qr_size + 20
        text_y = 20
        draw.text((text_x, text_y), asset["asset_code"], fill="black", font=title_font)
        text_y += 30
        draw.text((text_x, text_y), "Name:", fill="gray", font=small_font)
        text_y += 15
        draw.text((text_x, text_y), str(asset["name"])[:30], fill="black", font=text_font)
        text_y += 25
        draw.text((text_x, text_y), f"S/N: {asset.get('serial_number') or '-'}"[:34], fill="gray", font=small_font)
        text_y += 15
        if asset.get("branch"):
            draw.text((text_x, text_y), str(asset["branch"])[:30], fill="gray", font=small_font)

        draw.text((text_x, height - 30), "Company property", fill="gray", font=small_font)

        buffer = BytesIO()
        img.save(buffer, format="PNG")
        buffer.seek(0)
        return buffer

    def create_labels_pdf(self, assets: List[Dict[str, Any]], columns: int = 2, rows: int = 5) -> BytesIO:
        """Lay out one label per asset on letter pages for sticker printing."""
        buffer = BytesIO()
        c = canvas.Canvas(buffer, pagesize=letter)
        page_width, page_height = letter

        margin = 0.25 * inch
        spacing = 0.1 * inch
        label_width = (page_width - 2 * margin - (columns - 1) * spacing) / columns
        label_height = (page_height - 2 * margin - (rows - 1) * spacing) / rows
        per_page = columns * rows

        for index, asset in enumerate(assets):
            if index and index % per_page == 0:
                c.showPage()
            local = index % per_page
            col = local % columns
            row = local // columns
            x = margin + col * (label_width + spacing)
            y = page_height - margin - (row + 1) * label_height - row * spacing

            label_img = self.create_label_image(asset, width=int(label_width * 2), height=int(label_height * 2))
            c.drawImage(ImageReader(label_img), x, y, width=label_width, height=label_height, preserveAspectRatio=True)
            c.rect(x, y, label_width, label_height)

        c.save()
        buffer.seek(0)
        return buffer
