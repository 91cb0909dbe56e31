"""업로드 이미지 검증, 저장, AI 전송용 정규화."""

import base64
import binascii
import io
import logging
import os
import re
import uuid as uuid_mod

from PIL import Image, UnidentifiedImageError

from errors import ValidationError

MAX_IMAGE_BYTES = 800_000
TARGET_WIDTH = 1024
PREVIEW_SIZE = (256, 256)

MEDIA_MAP = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "gif": "image/gif",
}
EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
}

DATA_URI_RE = re.compile(r"^data:(image/[a-zA-Z0-9.+-]+);base64,", re.IGNORECASE)

logger = logging.getLogger(__name__)


def sniff_image(data: bytes) -> str:
    """이미지 바이트를 검증하고 MIME 타입을 반환."""
    if not data:
        raise ValidationError("이미지 파일이 비어 있습니다.")
    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt = (img.format or "").lower()
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ValidationError("이미지 파일만 업로드할 수 있습니다.") from e
    return MEDIA_MAP.get(fmt, f"image/{fmt}" if fmt else "image/png")


def decode_base64_image(value: str) -> tuple[bytes, str]:
    """base64 문자열 (data URI 접두사 허용)을 바이트로 변환."""
    if not value:
        raise ValidationError("이미지 데이터가 비어 있습니다.")
    match = DATA_URI_RE.match(value)
    payload = value[match.end():] if match else value
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError("이미지 base64 데이터가 올바르지 않습니다.") from e
    return data, sniff_image(data)


def to_data_uri(data: bytes, mime_type: str) -> str:
    b64 = base64.standard_b64encode(data).decode("utf-8")
    return f"data:{mime_type};base64,{b64}"


def _save_jpeg(img: Image.Image, max_bytes: int = MAX_IMAGE_BYTES) -> bytes:
    if img.mode in ("RGBA", "P", "LA"):
        img = img.convert("RGB")

    for quality in (90, 80, 70, 55):
        buf = io.BytesIO()
        img.save(buf, format="JPEG", quality=quality)
        if buf.tell() <= max_bytes:
            return buf.getvalue()

    shrunk = img
    while True:
        shrunk = shrunk.resize(
            (max(1, int(shrunk.width * 0.75)), max(1, int(shrunk.height * 0.75))),
            Image.LANCZOS,
        )
        buf = io.BytesIO()
        shrunk.save(buf, format="JPEG", quality=60)
        if buf.tell() <= max_bytes or shrunk.width <= 64:
            return buf.getvalue()


def normalize_for_model(image_bytes: bytes) -> tuple[bytes, str]:
    """AI 서비스로 보낼 이미지를 JPEG로 줄여서 반환."""
    sniff_image(image_bytes)
    img = Image.open(io.BytesIO(image_bytes))
    if img.mode == "P":
        img = img.convert("RGBA")

    if img.width > TARGET_WIDTH:
        ratio = TARGET_WIDTH / img.width
        img = img.resize((TARGET_WIDTH, max(1, int(img.height * ratio))), Image.LANCZOS)

    data = _save_jpeg(img)
    img.close()
    return data, "image/jpeg"


def make_preview(image_bytes: bytes) -> Image.Image:
    """미리보기용 썸네일. 사용 후 close() 필요."""
    sniff_image(image_bytes)
    img = Image.open(io.BytesIO(image_bytes))
    img.thumbnail(PREVIEW_SIZE)
    return img


# ── Storage ──
class DiskImageStorage:
    """UPLOAD_DIR에 저장하고 /uploads/<파일명> URL을 돌려준다."""

    def __init__(self, upload_dir: str, base_url: str = ""):
        self.upload_dir = upload_dir
        self.base_url = base_url.rstrip("/")
        os.makedirs(self.upload_dir, exist_ok=True)

    def save(self, data: bytes, prefix: str = "image", mime_type: str | None = None) -> str:
        mime_type = mime_type or sniff_image(data)
        ext = EXTENSIONS.get(mime_type, "png")
        filename = f"{prefix}-{uuid_mod.uuid4().hex}.{ext}"
        with open(os.path.join(self.upload_dir, filename), "wb") as f:
            f.write(data)
        return f"{self.base_url}/uploads/{filename}"

    def discard(self, url: str) -> None:
        if "/uploads/" not in url:
            return
        filename = url.rsplit("/uploads/", 1)[-1]
        path = os.path.join(self.upload_dir, os.path.basename(filename))
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"업로드 파일 삭제 실패 {path}: {e}")


class InlineImageStorage:
    """이미지를 data URI로 DB에 그대로 보관."""

    def save(self, data: bytes, prefix: str = "image", mime_type: str | None = None) -> str:
        return to_data_uri(data, mime_type or sniff_image(data))

    def discard(self, url: str) -> None:
        return None


def create_image_storage(config):
    if config.get("IMAGE_STORAGE", "disk") == "inline":
        return InlineImageStorage()
    return DiskImageStorage(config["UPLOAD_DIR"], config.get("PUBLIC_BASE_URL", ""))
