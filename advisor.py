import base64
import json
import logging
import time

import anthropic

from catalog import DEFAULT_COLOR, FINISHES, MATERIALS, is_hex_color
from images import normalize_for_model
from prompt import ADVISOR_SYSTEM_PROMPT, build_advisor_prompt

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"
MAX_RETRIES = 2
RETRY_DELAY = 3  # seconds

DEFAULT_REASONING = "2024-2025 트렌드를 반영한 추천입니다."

logger = logging.getLogger(__name__)


def _image_block(image_bytes: bytes) -> dict:
    data, media_type = normalize_for_model(image_bytes)
    b64 = base64.standard_b64encode(data).decode("utf-8")
    return {
        "type": "image",
        "source": {"type": "base64", "media_type": media_type, "data": b64},
    }


def _is_transient(error) -> bool:
    """5xx 응답과 연결 오류만 다시 시도할 가치가 있다."""
    if isinstance(error, anthropic.APIConnectionError):
        return True
    return isinstance(error, anthropic.APIStatusError) and error.status_code >= 500


def _ask_advisor(client, content: list, model: str) -> str:
    retries = 0
    while True:
        try:
            response = client.messages.create(
                model=model,
                max_tokens=1024,
                system=ADVISOR_SYSTEM_PROMPT,
                messages=[{"role": "user", "content": content}],
            )
        except (anthropic.APIStatusError, anthropic.APIConnectionError) as e:
            if retries >= MAX_RETRIES or not _is_transient(e):
                raise
            retries += 1
            logger.warning(
                f"CMF 추천 요청 실패 ({type(e).__name__}), "
                f"{RETRY_DELAY}초 후 다시 요청 ({retries}/{MAX_RETRIES})"
            )
            time.sleep(RETRY_DELAY)
            continue
        return "".join(
            block.text for block in response.content if getattr(block, "type", "text") == "text"
        )


def recommend_cmf(product_name: str, purpose: str, api_key: str, images=None, model: str = DEFAULT_MODEL) -> dict:
    """제품명과 용도로 소재/색상/마감 1세트를 추천."""
    client = anthropic.Anthropic(api_key=api_key)

    content = [_image_block(img) for img in (images or [])]
    content.append({
        "type": "text",
        "text": build_advisor_prompt(product_name, purpose, MATERIALS, FINISHES),
    })

    return _parse_advice(_ask_advisor(client, content, model or DEFAULT_MODEL))


def _coerce(advice: dict) -> dict:
    """허용된 선택지 밖의 값은 기본값으로 대체."""
    material = advice.get("material")
    color = advice.get("color")
    finish = advice.get("finish")
    return {
        "material": material if material in MATERIALS else MATERIALS[0],
        "color": color if is_hex_color(color) else DEFAULT_COLOR,
        "finish": finish if finish in FINISHES else FINISHES[0],
        "description": str(advice.get("description") or ""),
        "reasoning": str(advice.get("reasoning") or DEFAULT_REASONING),
    }


def _parse_advice(raw_text: str) -> dict:
    """응답 속 첫 번째 JSON 객체(코드 펜스 안이든 밖이든)를 추천값으로 정리."""
    decoder = json.JSONDecoder()
    start = raw_text.find("{")
    while start != -1:
        try:
            value, _ = decoder.raw_decode(raw_text, start)
        except json.JSONDecodeError:
            value = None
        if isinstance(value, dict):
            return _coerce(value)
        start = raw_text.find("{", start + 1)
    raise ValueError(f"CMF 추천 응답에서 JSON을 찾지 못했습니다: {raw_text[:200]}")
