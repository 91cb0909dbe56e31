"""CMF Studio 예외 계층."""


class CmfStudioError(Exception):
    status_code = 500
    code = None
    message = "서버 내부 오류가 발생했습니다."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class ValidationError(CmfStudioError):
    status_code = 400
    message = "입력값이 올바르지 않습니다."


class InvalidAccessCode(ValidationError):
    message = "유효하지 않은 접근 코드입니다."


class DuplicateError(CmfStudioError):
    code = "duplicate"
    status_code = 400
    message = "이미 존재하는 접근 코드입니다."


class NotFoundError(CmfStudioError):
    status_code = 404
    message = "요청한 항목을 찾을 수 없습니다."


class InternalError(CmfStudioError):
    status_code = 500


class StateError(CmfStudioError):
    """컨트롤러 상태에서 허용되지 않는 동작."""

    status_code = 409
    message = "지금은 이 동작을 수행할 수 없습니다."


# ── 이미지 생성 실패 ──
class GenerationError(CmfStudioError):
    code = "unknown"
    status_code = 500
    message = "디자인 생성 중 알 수 없는 오류가 발생했습니다. 다시 시도해주세요."


class MissingCredential(GenerationError):
    code = "missing_credential"
    message = "이미지 생성 서비스가 설정되지 않았습니다. 관리자에게 문의해주세요."


class GenerationTimeout(GenerationError):
    code = "timeout"
    status_code = 504
    message = "이미지 생성 시간이 초과되었습니다. 잠시 후 다시 시도해주세요."


class NoImageReturned(GenerationError):
    code = "no_image"
    status_code = 502
    message = "AI가 이미지를 반환하지 않았습니다. 다른 이미지나 옵션으로 다시 시도해주세요."


class GenerationNetworkError(GenerationError):
    code = "network"
    status_code = 502
    message = "이미지 생성 서비스에 연결할 수 없습니다. 네트워크를 확인해주세요."


class UnknownGenerationError(GenerationError):
    code = "unknown"


GENERATION_ERRORS = {
    cls.code: cls
    for cls in (
        MissingCredential,
        GenerationTimeout,
        NoImageReturned,
        GenerationNetworkError,
        UnknownGenerationError,
    )
}

# 응답의 "code" 값으로 예외를 복원할 때 사용
ERROR_CODES = {DuplicateError.code: DuplicateError, **GENERATION_ERRORS}
