"""CMF 디자인 요청 생성기.

사용자가 고른 소재/색상/마감을 지시문으로 바꿔 외부 이미지 생성 서비스에 넘기고,
결과 이미지나 분류된 실패를 돌려준다. 재시도는 하지 않는다.
"""

import base64
import concurrent.futures
import logging
from dataclasses import dataclass, field

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from catalog import BLUEPRINT, DESIGN_MODES, MAX_IMAGES, MAX_PAIRS, REDESIGN, is_hex_color
from errors import (
    GenerationError,
    GenerationNetworkError,
    GenerationTimeout,
    MissingCredential,
    NoImageReturned,
    UnknownGenerationError,
    ValidationError,
)
from images import normalize_for_model, to_data_uri
from prompt import build_design_instruction

DEFAULT_MODEL = "gemini-2.5-flash-image-preview"
DEFAULT_TIMEOUT = 120  # seconds

logger = logging.getLogger(__name__)


@dataclass
class GeneratedImage:
    data: bytes
    mime_type: str = "image/png"

    def to_base64(self) -> str:
        return base64.standard_b64encode(self.data).decode("utf-8")

    def to_data_uri(self) -> str:
        return to_data_uri(self.data, self.mime_type)


@dataclass
class GeneratedResult:
    images: list[GeneratedImage] = field(default_factory=list)
    explanation: str | None = None

    def to_dict(self):
        return {
            "images": [img.to_base64() for img in self.images],
            "mime_types": [img.mime_type for img in self.images],
            "explanation": self.explanation or "",
        }


class GeminiImageGenerator:
    """google-genai SDK로 이미지를 생성하는 외부 협력자."""

    def __init__(self, api_key: str | None, model: str = DEFAULT_MODEL, timeout: float = DEFAULT_TIMEOUT):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._client = None

    def _get_client(self):
        if self._client is None:
            self._client = genai.Client(
                api_key=self.api_key,
                http_options=types.HttpOptions(timeout=int(self.timeout * 1000)),
            )
        return self._client

    def __call__(self, images, instruction):
        if not self.api_key:
            raise MissingCredential()

        contents = [types.Part.from_bytes(data=data, mime_type=mime) for data, mime in images]
        contents.append(instruction)

        response = self._get_client().models.generate_content(
            model=self.model,
            contents=contents,
            config=types.GenerateContentConfig(response_modalities=["TEXT", "IMAGE"]),
        )

        outputs = []
        texts = []
        candidates = response.candidates or []
        parts = candidates[0].content.parts if candidates and candidates[0].content else None
        for part in parts or []:
            if part.inline_data is not None and part.inline_data.data:
                outputs.append((part.inline_data.data, part.inline_data.mime_type or "image/png"))
            elif part.text:
                texts.append(part.text.strip())
        return outputs, "\n".join(t for t in texts if t) or None


def classify_error(exc: BaseException) -> GenerationError:
    if isinstance(exc, GenerationError):
        return exc
    if isinstance(exc, (concurrent.futures.TimeoutError, TimeoutError, httpx.TimeoutException)):
        return GenerationTimeout()
    if isinstance(exc, genai_errors.APIError):
        if exc.code in (408, 504):
            return GenerationTimeout()
        return UnknownGenerationError()
    if isinstance(exc, (httpx.TransportError, ConnectionError)):
        return GenerationNetworkError()
    return UnknownGenerationError()


class DesignRequestBuilder:
    def __init__(self, generator, timeout: float = DEFAULT_TIMEOUT):
        self.generator = generator
        self.timeout = timeout

    @staticmethod
    def _validate(images, pairs, mode):
        if mode not in DESIGN_MODES:
            raise ValidationError(f"알 수 없는 디자인 모드입니다: {mode}")
        if not images:
            if mode == BLUEPRINT:
                raise ValidationError("설계도 이미지를 업로드해주세요.")
            raise ValidationError("제품 이미지를 1장 이상 업로드해주세요.")
        if len(images) > MAX_IMAGES:
            raise ValidationError(f"이미지는 최대 {MAX_IMAGES}장까지 사용할 수 있습니다.")
        if not pairs:
            raise ValidationError("소재와 색상을 1개 이상 선택해주세요.")
        if len(pairs) > MAX_PAIRS:
            raise ValidationError(f"소재/색상 조합은 최대 {MAX_PAIRS}개까지 가능합니다.")
        for material, color in pairs:
            if not material or not str(material).strip():
                raise ValidationError("소재를 선택해주세요.")
            if not is_hex_color(color):
                raise ValidationError(f"색상은 #RRGGBB 형식이어야 합니다: {color}")

    def _run(self, prepared, instruction):
        """요청마다 전용 작업 스레드를 띄워 실제 호출 시간만 제한한다."""
        executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="cmf-generate"
        )
        try:
            future = executor.submit(self.generator, prepared, instruction)
            return future.result(timeout=self.timeout)
        finally:
            # 시간 초과된 호출은 기다리지 않고 버린다
            executor.shutdown(wait=False)

    def generate(self, images, pairs, finish=None, description=None,
                 mode=REDESIGN, reasoning=None) -> GeneratedResult:
        mode = mode or REDESIGN
        pairs = [(str(m).strip(), c) for m, c in pairs]
        self._validate(images, pairs, mode)
        reasoning = (reasoning or "").strip() or None
        prepared = [normalize_for_model(getattr(img, "data", img)) for img in images]
        instruction = build_design_instruction(
            pairs,
            (finish or "").strip() or None,
            (description or "").strip() or None,
            blueprint=mode == BLUEPRINT,
            reasoning=reasoning,
        )

        try:
            outputs, explanation = self._run(prepared, instruction)
        except Exception as e:
            error = classify_error(e)
            logger.error(f"이미지 생성 실패 ({error.code}): {e!r}")
            if error is e:
                raise
            raise error from e

        if not outputs:
            logger.warning("이미지 생성 응답에 이미지가 없음")
            raise NoImageReturned()
        if mode == BLUEPRINT and reasoning:
            explanation = f"AI 추천 분석\n{reasoning}\n\n설계도 변환 결과\n{explanation or ''}".rstrip()
        return GeneratedResult(
            images=[GeneratedImage(data, mime) for data, mime in outputs],
            explanation=explanation,
        )


def create_designer(config) -> DesignRequestBuilder:
    timeout = float(config.get("GENERATION_TIMEOUT", DEFAULT_TIMEOUT))
    generator = GeminiImageGenerator(
        config.get("GEMINI_API_KEY"),
        model=config.get("GEMINI_IMAGE_MODEL", DEFAULT_MODEL),
        timeout=timeout,
    )
    return DesignRequestBuilder(generator, timeout=timeout)
