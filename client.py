"""CMF Studio REST API 클라이언트."""

import base64
import logging
from urllib.parse import quote

import requests as req

from catalog import REDESIGN
from designer import GeneratedImage, GeneratedResult
from errors import (
    ERROR_CODES,
    CmfStudioError,
    DuplicateError,
    GenerationNetworkError,
    GenerationTimeout,
    InternalError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_ERRORS = {400: ValidationError, 404: NotFoundError}


class CmfStudioClient:
    def __init__(self, base_url: str, session=None, timeout: float = 30, generation_timeout: float = 180):
        self.base_url = base_url.rstrip("/")
        self.session = session or req.Session()
        self.timeout = timeout
        self.generation_timeout = generation_timeout

    def _request(self, method: str, path: str, timeout=None, **kwargs):
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(method, url, timeout=timeout or self.timeout, **kwargs)
        except req.RequestException as e:
            logger.error(f"API 요청 실패 {method} {url}: {e}")
            raise InternalError("서버에 연결할 수 없습니다.") from e

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if resp.status_code >= 400 or not body.get("success"):
            message = body.get("error") or f"HTTP {resp.status_code}"
            if body.get("code") in ERROR_CODES:
                raise ERROR_CODES[body["code"]](message)
            raise STATUS_ERRORS.get(resp.status_code, CmfStudioError)(message)
        return body.get("data")

    # ── Access codes ──
    def validate_code(self, code: str) -> bool:
        data = self._request("POST", "/access-codes/validate", json={"code": code.strip()})
        return bool(data and data.get("isValid"))

    def list_codes(self) -> list[dict]:
        return self._request("GET", "/access-codes")

    def add_code(self, code: str) -> bool:
        try:
            self._request("POST", "/access-codes", json={"code": code.strip()})
        except DuplicateError:
            return False
        return True

    def delete_code(self, code: str) -> None:
        self._request("DELETE", f"/access-codes/{quote(code, safe='')}")

    # ── Recommendations ──
    def list_recommendations(self, code: str) -> list[dict]:
        return self._request("GET", "/recommendations", params={"accessCode": code})

    def list_all_recommendations(self) -> list[dict]:
        return self._request("GET", "/recommendations/all")

    def add_recommendation(self, title, description, access_code, image_bytes, filename="image.png") -> dict:
        return self._request(
            "POST",
            "/recommendations",
            data={"title": title, "description": description, "access_code": access_code},
            files={"image": (filename, image_bytes)},
        )

    def delete_recommendation(self, design_id: int) -> None:
        self._request("DELETE", f"/recommendations/{design_id}")

    # ── Submissions ──
    def add_submission(self, access_code, comment, generated_image: bytes, original_images=()) -> dict:
        """생성 이미지와 원본을 모두 파일 파트로 보낸다."""
        files = [("generatedImage", ("generated.png", generated_image))]
        files += [
            ("originalImages", (f"original-{i}.png", data))
            for i, data in enumerate(original_images)
        ]
        return self._request(
            "POST",
            "/submissions",
            data={"access_code": access_code, "comment": comment or ""},
            files=files,
        )

    def list_submissions(self) -> list[dict]:
        return self._request("GET", "/submissions")

    def delete_submission(self, submission_id: int) -> None:
        self._request("DELETE", f"/submissions/{submission_id}")

    # ── Design generation (서버 경유) ──
    def generate(self, images, pairs, finish=None, description=None,
                 mode=REDESIGN, reasoning=None) -> GeneratedResult:
        if not images:
            raise ValidationError("제품 이미지를 1장 이상 업로드해주세요.")
        files = [("images", (f"image-{i}.png", data)) for i, data in enumerate(images)]
        form = {
            "materials": [m for m, _ in pairs],
            "colors": [c for _, c in pairs],
            "mode": mode or REDESIGN,
        }
        if finish:
            form["finish"] = finish
        if description:
            form["description"] = description
        if reasoning:
            form["reasoning"] = reasoning
        try:
            data = self._request(
                "POST", "/designs", timeout=self.generation_timeout, data=form, files=files
            )
        except InternalError as e:
            cause = e.__cause__
            if isinstance(cause, req.Timeout):
                raise GenerationTimeout() from cause
            raise GenerationNetworkError() from cause
        mime_types = data.get("mime_types") or []
        return GeneratedResult(
            images=[
                GeneratedImage(
                    base64.b64decode(b64),
                    mime_types[i] if i < len(mime_types) else "image/png",
                )
                for i, b64 in enumerate(data.get("images") or [])
            ],
            explanation=data.get("explanation") or None,
        )

    def recommend_cmf(self, product_name: str, purpose: str) -> dict:
        return self._request(
            "POST",
            "/cmf-recommendations",
            json={"product_name": product_name, "purpose": purpose},
        )

    def health(self) -> dict:
        return self._request("GET", "/health")
