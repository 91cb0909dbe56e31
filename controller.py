"""디자인 워크플로 상태 관리.

메뉴 → (접근 코드 확인) → 1단계 업로드 → 2단계 설정/생성 → 결과 흐름을 하나의
세션 객체로 다룬다. 화면 렌더링은 하지 않고, 화면이 읽을 상태(state, error,
loading, 이미지 슬롯, CMF 선택값, 결과)만 관리한다.

설계도 모드는 메뉴에서 바로 업로드로 가며 큐레이터 전송이 없다.

backend는 validate_code / list_recommendations / add_submission 을,
designer는 generate(images, pairs, finish, description, mode, reasoning) 를
제공하면 된다.
CmfStudioClient는 둘 다 제공한다.
"""

import enum
import logging
import threading
from dataclasses import dataclass

from catalog import (
    BLUEPRINT,
    DEFAULT_COLOR,
    FINISHES,
    MATERIALS,
    MAX_IMAGES,
    MAX_PAIRS,
    REDESIGN,
    is_hex_color,
)
from errors import CmfStudioError, StateError, ValidationError
from images import make_preview

logger = logging.getLogger(__name__)


class State(enum.Enum):
    MENU = "menu"
    ACCESS_GATE = "access_gate"
    UPLOAD = "upload"
    CONFIGURE = "configure"
    RESULT = "result"
    SUBMISSION = "submission"
    ADMIN = "admin"


DESIGNER_STATES = (State.UPLOAD, State.CONFIGURE, State.RESULT, State.SUBMISSION)


@dataclass
class MaterialColorSet:
    material: str = MATERIALS[0]
    color: str = DEFAULT_COLOR
    enabled: bool = True


class ImageSlot:
    """업로드된 이미지 1장과 미리보기 썸네일."""

    def __init__(self, data: bytes, filename: str = ""):
        self.preview = make_preview(data)
        self.data = data
        self.filename = filename

    def release(self):
        if self.preview is not None:
            self.preview.close()
            self.preview = None


class DesignSession:
    def __init__(self, backend, designer):
        self.backend = backend
        self.designer = designer
        self.state = State.MENU
        self.mode = REDESIGN
        self.access_code = None
        self.recommendations = []
        self.slots: list[ImageSlot | None] = [None] * MAX_IMAGES
        self.result = None
        self.error = None
        self.notice = None
        self.loading = False
        self._busy = threading.Lock()
        self._reset_cmf()

    # ── helpers ──
    def _require(self, *states):
        if self.state not in states:
            raise StateError(f"{self.state.value} 상태에서는 이 동작을 할 수 없습니다.")

    def _reset_cmf(self):
        self.material_color_sets = [MaterialColorSet()]
        self.finish = FINISHES[0]
        self.finish_enabled = False
        self.description = ""
        self.description_enabled = False
        self.advice_reasoning = None

    def _release_images(self):
        for i, slot in enumerate(self.slots):
            if slot is not None:
                slot.release()
            self.slots[i] = None

    def _reset_design(self):
        self._release_images()
        self.result = None
        self.error = None
        self.notice = None
        self._reset_cmf()

    def _enter_upload(self):
        self.state = State.UPLOAD
        self.recommendations = []
        if not self.access_code:
            return
        try:
            self.recommendations = list(self.backend.list_recommendations(self.access_code) or [])
        except Exception as e:
            # 추천 목록은 부가 기능이라 실패해도 진행
            logger.warning(f"추천 디자인 조회 실패 ({self.access_code}): {e}")
            self.recommendations = []

    def _missing_image_message(self):
        if self.mode == BLUEPRINT:
            return "설계도 이미지를 업로드해주세요."
        return "제품 이미지를 1장 이상 업로드해주세요."

    @property
    def images(self) -> list[bytes]:
        return [slot.data for slot in self.slots if slot is not None]

    @property
    def has_images(self) -> bool:
        return any(slot is not None for slot in self.slots)

    @property
    def can_generate(self) -> bool:
        return self.state is State.CONFIGURE and self.has_images and not self.loading

    @property
    def can_send_to_curator(self) -> bool:
        return self.state is State.RESULT and bool(self.access_code) and self.result is not None

    # ── menu / gate ──
    def start_free(self):
        self._require(State.MENU)
        self.mode = REDESIGN
        self.access_code = None
        self._reset_design()
        self._enter_upload()

    def start_blueprint(self):
        """설계도/스케치를 CMF 렌더링으로 바꾸는 모드. 접근 코드 없이 시작."""
        self._require(State.MENU)
        self.mode = BLUEPRINT
        self.access_code = None
        self._reset_design()
        self._enter_upload()

    def start_premium(self):
        self._require(State.MENU)
        self.mode = REDESIGN
        self.error = None
        self.state = State.ACCESS_GATE

    def submit_code(self, code: str) -> bool:
        self._require(State.ACCESS_GATE)
        code = (code or "").strip()
        if not code:
            self.error = "접근 코드를 입력해주세요."
            return False
        self.loading = True
        try:
            valid = self.backend.validate_code(code)
        except CmfStudioError as e:
            logger.error(f"접근 코드 확인 실패: {e}")
            valid = False
        finally:
            self.loading = False
        if not valid:
            self.error = "유효하지 않은 접근 코드입니다. 다시 확인해주세요."
            return False
        self.access_code = code
        self._reset_design()
        self._enter_upload()
        return True

    def cancel(self):
        if self.state is State.ACCESS_GATE:
            self.error = None
            self.state = State.MENU
        elif self.state is State.SUBMISSION:
            self.error = None
            self.state = State.RESULT
        else:
            raise StateError("취소할 수 있는 화면이 아닙니다.")

    def open_admin(self):
        self._require(State.MENU)
        self.state = State.ADMIN

    def close_admin(self):
        self._require(State.ADMIN)
        self.state = State.MENU

    def go_home(self):
        self._require(State.ACCESS_GATE, *DESIGNER_STATES)
        if self.loading:
            raise StateError("생성 중에는 이동할 수 없습니다.")
        self._reset_design()
        self.mode = REDESIGN
        self.access_code = None
        self.recommendations = []
        self.state = State.MENU

    # ── step 1: images ──
    def upload_images(self, files) -> int:
        """빈 슬롯에 순서대로 채운다. 남는 파일은 무시."""
        self._require(State.UPLOAD, State.CONFIGURE)
        added = 0
        for item in files:
            filename, data = item if isinstance(item, tuple) else ("", item)
            try:
                index = self.slots.index(None)
            except ValueError:
                self.notice = f"이미지는 최대 {MAX_IMAGES}장까지 업로드할 수 있습니다."
                break
            try:
                self.slots[index] = ImageSlot(data, filename)
            except ValidationError as e:
                self.error = e.message
                continue
            added += 1
        if added:
            self.result = None
            self.error = None
        return added

    def replace_image(self, index: int, data: bytes, filename: str = ""):
        self._require(State.UPLOAD, State.CONFIGURE)
        new_slot = ImageSlot(data, filename)
        old = self.slots[index]
        if old is not None:
            old.release()
        self.slots[index] = new_slot
        self.result = None
        self.error = None

    def remove_image(self, index: int):
        self._require(State.UPLOAD, State.CONFIGURE)
        slot = self.slots[index]
        if slot is not None:
            slot.release()
        self.slots[index] = None
        self.result = None
        self.error = None

    def next_step(self):
        self._require(State.UPLOAD)
        if not self.has_images:
            self.error = self._missing_image_message()
            raise StateError(self.error)
        self.error = None
        self.state = State.CONFIGURE

    def back(self):
        self._require(State.CONFIGURE)
        if self.loading:
            raise StateError("생성 중에는 이동할 수 없습니다.")
        self.state = State.UPLOAD

    # ── step 2: CMF ──
    def add_pair(self) -> bool:
        self._require(State.CONFIGURE)
        if len(self.material_color_sets) >= MAX_PAIRS:
            return False
        self.material_color_sets.append(MaterialColorSet())
        return True

    def remove_pair(self, index: int) -> bool:
        self._require(State.CONFIGURE)
        if len(self.material_color_sets) <= 1:
            return False
        del self.material_color_sets[index]
        return True

    def update_pair(self, index: int, material=None, color=None, enabled=None):
        self._require(State.CONFIGURE)
        target = self.material_color_sets[index]
        if material is not None:
            if material not in MATERIALS:
                raise ValidationError(f"알 수 없는 소재입니다: {material}")
            target.material = material
        if color is not None:
            if not is_hex_color(color):
                raise ValidationError(f"색상은 #RRGGBB 형식이어야 합니다: {color}")
            target.color = color
        if enabled is not None:
            target.enabled = bool(enabled)

    def set_finish(self, finish=None, enabled=True):
        self._require(State.CONFIGURE)
        if finish is not None:
            if finish not in FINISHES:
                raise ValidationError(f"알 수 없는 마감입니다: {finish}")
            self.finish = finish
        self.finish_enabled = bool(enabled)

    def set_description(self, text: str, enabled=True):
        self._require(State.CONFIGURE)
        self.description = text or ""
        self.description_enabled = bool(enabled)

    def apply_advice(self, advice: dict):
        """AI 추천 결과를 첫 번째 조합과 마감/설명에 반영."""
        self._require(State.CONFIGURE)
        first = self.material_color_sets[0]
        if advice.get("material") in MATERIALS:
            first.material = advice["material"]
            first.enabled = True
        if is_hex_color(advice.get("color")):
            first.color = advice["color"]
            first.enabled = True
        if advice.get("finish") in FINISHES:
            self.finish = advice["finish"]
            self.finish_enabled = True
        if advice.get("description"):
            self.description = advice["description"]
            self.description_enabled = True
        self.advice_reasoning = advice.get("reasoning") or None

    def _enabled_pairs(self):
        return [(s.material, s.color) for s in self.material_color_sets if s.enabled]

    def generate(self) -> bool:
        self._require(State.CONFIGURE)
        if not self._busy.acquire(blocking=False):
            raise StateError("이미 디자인을 생성하고 있습니다.")
        try:
            if not self.has_images:
                self.error = self._missing_image_message()
                return False
            pairs = self._enabled_pairs()
            if not pairs:
                self.error = "소재/색상 조합을 1개 이상 활성화해주세요."
                return False

            self.loading = True
            self.error = None
            self.result = None
            try:
                result = self.designer.generate(
                    self.images,
                    pairs,
                    finish=self.finish if self.finish_enabled else None,
                    description=self.description if self.description_enabled else None,
                    mode=self.mode,
                    reasoning=self.advice_reasoning if self.mode == BLUEPRINT else None,
                )
            except CmfStudioError as e:
                logger.error(f"디자인 생성 실패: {e.message}")
                self.error = e.message
                return False
            finally:
                self.loading = False

            self.result = result
            self.state = State.RESULT
            return True
        finally:
            self._busy.release()

    # ── result ──
    def redo(self):
        self._require(State.RESULT)
        self._reset_design()
        self._enter_upload()

    def open_submission(self):
        self._require(State.RESULT)
        if not self.access_code:
            raise StateError("접근 코드가 있는 사용자만 큐레이터에게 보낼 수 있습니다.")
        self.error = None
        self.notice = None
        self.state = State.SUBMISSION

    def submit(self, comment: str = "") -> bool:
        """큐레이터에게 결과를 보낸다. 실패하면 폼에 남아 다시 보낼 수 있다."""
        self._require(State.SUBMISSION)
        self.loading = True
        try:
            self.backend.add_submission(
                self.access_code,
                comment or "",
                self.result.images[0].data,
                self.images,
            )
        except CmfStudioError as e:
            logger.error(f"제출 실패: {e.message}")
            self.error = e.message
            return False
        finally:
            self.loading = False
        self.error = None
        self.notice = "디자인이 큐레이터에게 전송되었습니다."
        self.state = State.RESULT
        return True

    # ── lifecycle ──
    def close(self):
        self._release_images()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
