"""접근 코드, 추천 디자인, 제출물 저장소."""

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from catalog import MAX_IMAGES
from errors import InternalError, InvalidAccessCode, NotFoundError, ValidationError
from images import decode_base64_image, sniff_image
from models import AccessCode, RecommendedDesign, Submission, SubmissionImage

logger = logging.getLogger(__name__)


def _clean(code) -> str:
    return code.strip() if isinstance(code, str) else ""


class AccessCodeStore:
    def __init__(self, db):
        self.db = db

    def _active_query(self, code: str):
        return AccessCode.query.filter(
            AccessCode.code == code, AccessCode.is_active.is_(True)
        )

    def list_active(self) -> set[str]:
        rows = AccessCode.query.filter(AccessCode.is_active.is_(True)).all()
        return {row.code for row in rows}

    def list_all(self) -> list[AccessCode]:
        return AccessCode.query.order_by(
            AccessCode.created_at.desc(), AccessCode.id.desc()
        ).all()

    def validate(self, code) -> bool:
        code = _clean(code)
        if not code:
            return False
        return self._active_query(code).first() is not None

    def create(self, code) -> bool:
        """새 코드를 추가. 이미 있으면 False."""
        code = _clean(code)
        if not code:
            raise ValidationError("유효한 접근 코드가 필요합니다.")
        if AccessCode.query.filter_by(code=code).first() is not None:
            return False
        self.db.session.add(AccessCode(code=code))
        try:
            self.db.session.commit()
        except IntegrityError:
            # 동시에 같은 코드가 들어온 경우
            self.db.session.rollback()
            return False
        except SQLAlchemyError as e:
            self.db.session.rollback()
            logger.error(f"접근 코드 생성 오류: {e}")
            raise InternalError("접근 코드 생성에 실패했습니다.") from e
        return True

    def _get(self, code) -> AccessCode:
        row = AccessCode.query.filter_by(code=_clean(code)).first()
        if row is None:
            raise NotFoundError("접근 코드를 찾을 수 없습니다.")
        return row

    def delete(self, code) -> None:
        """코드 삭제. 연결된 추천 디자인도 함께 삭제되고 제출물은 남는다."""
        row = self._get(code)
        self.db.session.delete(row)
        self._commit("접근 코드 삭제에 실패했습니다.")
        logger.info(f"접근 코드 삭제: {row.code}")

    def deactivate(self, code) -> None:
        row = self._get(code)
        row.is_active = False
        self._commit("접근 코드 비활성화에 실패했습니다.")

    def _commit(self, failure_message: str) -> None:
        try:
            self.db.session.commit()
        except SQLAlchemyError as e:
            self.db.session.rollback()
            logger.error(f"{failure_message} {e}")
            raise InternalError(failure_message) from e


class RecommendationStore:
    def __init__(self, db, codes: AccessCodeStore, images):
        self.db = db
        self.codes = codes
        self.images = images

    @staticmethod
    def _newest_first(query):
        return query.order_by(
            RecommendedDesign.created_at.desc(), RecommendedDesign.id.desc()
        )

    def list_by_code(self, code) -> list[RecommendedDesign]:
        query = RecommendedDesign.query.filter(RecommendedDesign.access_code == code)
        return self._newest_first(query).all()

    def list_all(self, active_only: bool = True) -> list[RecommendedDesign]:
        query = RecommendedDesign.query
        if active_only:
            query = query.join(AccessCode).filter(AccessCode.is_active.is_(True))
        return self._newest_first(query).all()

    def create(self, title, description, access_code, image_bytes, mime_type=None):
        title = (title or "").strip()
        description = (description or "").strip()
        access_code = _clean(access_code)
        if not title or not description or not access_code or not image_bytes:
            raise ValidationError("title, description, access_code, image 값이 모두 필요합니다.")
        if not self.codes.validate(access_code):
            raise InvalidAccessCode()
        mime_type = mime_type or sniff_image(image_bytes)

        image_url = self.images.save(image_bytes, "recommendation", mime_type)
        design = RecommendedDesign(
            title=title,
            description=description,
            image_url=image_url,
            access_code=access_code,
        )
        self.db.session.add(design)
        try:
            self.db.session.commit()
        except SQLAlchemyError as e:
            self.db.session.rollback()
            self.images.discard(image_url)
            logger.error(f"추천 디자인 생성 오류: {e}")
            raise InternalError("추천 디자인 생성에 실패했습니다.") from e
        return design

    def delete(self, design_id: int) -> None:
        design = self.db.session.get(RecommendedDesign, design_id)
        if design is None:
            raise NotFoundError("추천 디자인을 찾을 수 없습니다.")
        self.db.session.delete(design)
        try:
            self.db.session.commit()
        except SQLAlchemyError as e:
            self.db.session.rollback()
            logger.error(f"추천 디자인 삭제 오류: {e}")
            raise InternalError("추천 디자인 삭제에 실패했습니다.") from e


@dataclass
class UploadedImage:
    data: bytes
    mime_type: str | None = None


class SubmissionStore:
    def __init__(self, db, codes: AccessCodeStore, images):
        self.db = db
        self.codes = codes
        self.images = images

    def list_all(self) -> list[Submission]:
        return Submission.query.order_by(
            Submission.created_at.desc(), Submission.id.desc()
        ).all()

    def _store_image(self, image, prefix: str, written: list[str]) -> str:
        """URL 문자열은 그대로, 바이트/base64는 저장 후 URL 반환."""
        if isinstance(image, UploadedImage):
            data, mime = image.data, image.mime_type or sniff_image(image.data)
        elif isinstance(image, (bytes, bytearray)):
            data, mime = bytes(image), sniff_image(bytes(image))
        elif isinstance(image, str) and image.startswith("data:"):
            data, mime = decode_base64_image(image)
        elif isinstance(image, str) and image.strip():
            return image.strip()
        else:
            raise ValidationError("이미지 값이 올바르지 않습니다.")
        url = self.images.save(data, prefix, mime)
        written.append(url)
        return url

    def create(self, access_code, comment, generated_image, original_images=()):
        """제출물과 원본 이미지 목록을 하나의 트랜잭션으로 저장."""
        code = _clean(access_code)
        if not code:
            raise ValidationError("접근 코드와 생성된 이미지가 필요합니다.")
        if not self.codes.validate(code):
            raise InvalidAccessCode()
        if not generated_image:
            raise ValidationError("접근 코드와 생성된 이미지가 필요합니다.")
        original_images = list(original_images or [])
        if len(original_images) > MAX_IMAGES:
            raise ValidationError(f"원본 이미지는 최대 {MAX_IMAGES}장까지 첨부할 수 있습니다.")

        written: list[str] = []
        try:
            generated_url = self._store_image(generated_image, "generated", written)
            original_urls = [
                self._store_image(img, "original", written) for img in original_images
            ]
            submission = Submission(
                access_code=code,
                comment=comment or "",
                generated_image_url=generated_url,
            )
            submission.images = [
                SubmissionImage(image_url=url, image_order=index)
                for index, url in enumerate(original_urls)
            ]
            self.db.session.add(submission)
            self.db.session.commit()
        except ValidationError:
            self._discard(written)
            raise
        except (SQLAlchemyError, OSError) as e:
            self.db.session.rollback()
            self._discard(written)
            logger.error(f"제출물 저장 오류: {e}")
            raise InternalError("제출물 저장에 실패했습니다.") from e

        logger.info(f"제출물 생성: id={submission.id}, 원본 {len(original_urls)}장")
        return submission

    def _discard(self, urls: list[str]) -> None:
        for url in urls:
            self.images.discard(url)

    def delete(self, submission_id: int) -> None:
        submission = self.db.session.get(Submission, submission_id)
        if submission is None:
            raise NotFoundError("제출물을 찾을 수 없습니다.")
        self.db.session.delete(submission)
        try:
            self.db.session.commit()
        except SQLAlchemyError as e:
            self.db.session.rollback()
            logger.error(f"제출물 삭제 오류: {e}")
            raise InternalError("제출물 삭제에 실패했습니다.") from e


@dataclass
class Stores:
    access_codes: AccessCodeStore
    recommendations: RecommendationStore
    submissions: SubmissionStore


def build_stores(db, images) -> Stores:
    codes = AccessCodeStore(db)
    return Stores(
        access_codes=codes,
        recommendations=RecommendationStore(db, codes, images),
        submissions=SubmissionStore(db, codes, images),
    )
