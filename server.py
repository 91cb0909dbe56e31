import atexit
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import wraps

import anthropic
from flask import (
    Blueprint,
    Flask,
    Response,
    current_app,
    jsonify,
    request,
    send_from_directory,
)
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from advisor import recommend_cmf
from catalog import MAX_IMAGES, REDESIGN
from config import load_config
from designer import DesignRequestBuilder, create_designer
from errors import (
    CmfStudioError,
    DuplicateError,
    InvalidAccessCode,
    ValidationError,
)
from images import create_image_storage, decode_base64_image, sniff_image
from models import AccessCode, RecommendedDesign, db
from stores import Stores, UploadedImage, build_stores

log = logging.getLogger(__name__)

DEFAULT_CODES = ["RAONIX-2024", "PREMIUM-USER", "DEMO-ACCESS"]
DEFAULT_RECOMMENDATIONS = [
    (
        "Sporty Red Sneaker",
        "A vibrant red sneaker concept in a glossy, durable plastic finish, perfect for an athletic look.",
        "https://images.unsplash.com/photo-1542291026-7eec264c27ab?q=80&w=800&auto=format&fit=crop",
        "RAONIX-2024",
    ),
    (
        "Elegant Blue Headphones",
        "Sleek blue headphones with a matte aluminum finish, combining style and premium sound quality.",
        "https://images.unsplash.com/photo-1505740420928-5e560c06d30e?q=80&w=800&auto=format&fit=crop",
        "RAONIX-2024",
    ),
    (
        "Modern Green Smartphone",
        "A sophisticated green smartphone with brushed titanium accents and premium materials.",
        "https://images.unsplash.com/photo-1511707171634-5f897ff02aa9?q=80&w=800&auto=format&fit=crop",
        "PREMIUM-USER",
    ),
]


@dataclass
class Services:
    stores: Stores
    images: object
    designer: DesignRequestBuilder


def services() -> Services:
    return current_app.extensions["cmf_studio"]


def _ok(data, status=200):
    return jsonify({"success": True, "data": data}), status


def _fail(message, status):
    return jsonify({"success": False, "error": message}), status


# ── Admin auth ──
def require_admin(f):
    """ADMIN_PASSWORD가 설정된 경우에만 HTTP Basic 인증을 요구."""

    @wraps(f)
    def decorated(*args, **kwargs):
        admin_pw = current_app.config.get("ADMIN_PASSWORD")
        if admin_pw:
            auth = request.authorization
            if not auth or auth.password != admin_pw:
                return Response(
                    '{"success": false, "error": "관리자 인증이 필요합니다."}',
                    401,
                    {"WWW-Authenticate": 'Basic realm="Admin"', "Content-Type": "application/json"},
                )
        return f(*args, **kwargs)

    return decorated


def _parse_id(raw: str, label: str) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"유효한 {label} ID가 필요합니다.") from None
    if value < 1:
        raise ValidationError(f"유효한 {label} ID가 필요합니다.")
    return value


api = Blueprint("api", __name__, url_prefix="/api")


# ── Recommendations ──
@api.route("/recommendations", methods=["GET"])
def list_recommendations():
    code = request.args.get("accessCode") or request.args.get("access_code")
    if not code:
        return _fail("접근 코드가 필요합니다.", 400)
    designs = services().stores.recommendations.list_by_code(code)
    return _ok([d.to_dict() for d in designs])


@api.route("/recommendations/all", methods=["GET"])
@require_admin
def list_all_recommendations():
    include_inactive = request.args.get("includeInactive", "").lower() in ("1", "true")
    designs = services().stores.recommendations.list_all(active_only=not include_inactive)
    return _ok([d.to_dict() for d in designs])


@api.route("/recommendations", methods=["POST"])
@require_admin
def create_recommendation():
    image = request.files.get("image")
    if image is None:
        return _fail("이미지 파일이 필요합니다.", 400)
    title = request.form.get("title")
    description = request.form.get("description")
    access_code = request.form.get("access_code")
    if not title or not description or not access_code:
        return _fail("title, description, access_code 값이 필요합니다.", 400)

    data = image.read()
    design = services().stores.recommendations.create(
        title, description, access_code, data, sniff_image(data)
    )
    return _ok(design.to_dict(), 201)


@api.route("/recommendations/<design_id>", methods=["DELETE"])
@require_admin
def delete_recommendation(design_id):
    services().stores.recommendations.delete(_parse_id(design_id, "추천 디자인"))
    return _ok({"message": "추천 디자인이 삭제되었습니다."})


# ── Access codes ──
@api.route("/access-codes", methods=["GET"])
@require_admin
def list_access_codes():
    codes = services().stores.access_codes.list_all()
    if request.args.get("active", "").lower() in ("1", "true"):
        codes = [c for c in codes if c.is_active]
    return _ok([c.to_dict() for c in codes])


@api.route("/access-codes/validate", methods=["POST"])
def validate_access_code():
    data = request.get_json(silent=True) or {}
    code = data.get("code")
    if not code:
        return _fail("접근 코드가 필요합니다.", 400)
    is_valid = services().stores.access_codes.validate(code)
    return _ok({"isValid": is_valid})


@api.route("/access-codes", methods=["POST"])
@require_admin
def create_access_code():
    data = request.get_json(silent=True) or {}
    code = data.get("code")
    if not code or not isinstance(code, str) or not code.strip():
        return _fail("유효한 접근 코드가 필요합니다.", 400)
    if not services().stores.access_codes.create(code):
        raise DuplicateError()
    return _ok({"message": "접근 코드가 생성되었습니다.", "code": code.strip()}, 201)


@api.route("/access-codes/<path:code>/deactivate", methods=["POST"])
@require_admin
def deactivate_access_code(code):
    services().stores.access_codes.deactivate(code)
    return _ok({"message": "접근 코드가 비활성화되었습니다."})


@api.route("/access-codes/<path:code>", methods=["DELETE"])
@require_admin
def delete_access_code(code):
    services().stores.access_codes.delete(code)
    return _ok({"message": "접근 코드가 삭제되었습니다."})


# ── Submissions ──
@api.route("/submissions", methods=["GET"])
@require_admin
def list_submissions():
    submissions = services().stores.submissions.list_all()
    return _ok([s.to_dict() for s in submissions])


def _submission_payload():
    """multipart 또는 JSON 요청에서 (code, comment, 생성 이미지, 원본 목록)을 꺼낸다."""
    if request.is_json:
        data = request.get_json(silent=True) or {}
        originals = data.get("original_images") or []
        if not isinstance(originals, list):
            raise ValidationError("original_images는 목록이어야 합니다.")
    else:
        data = request.form
        originals = [
            UploadedImage(f.read())
            for f in request.files.getlist("originalImages")
        ]

    generated = data.get("generated_image_url")
    encoded = data.get("generated_image_base64")
    # 생성 이미지는 파일 파트로 받는다 (폼 필드는 크기 제한이 작다)
    generated_file = request.files.get("generatedImage")
    if generated_file is not None:
        generated = UploadedImage(generated_file.read())
    elif encoded:
        raw, mime = decode_base64_image(encoded)
        generated = UploadedImage(raw, mime)
    return data.get("access_code"), data.get("comment") or "", generated, originals


@api.route("/submissions", methods=["POST"])
def create_submission():
    access_code, comment, generated, originals = _submission_payload()
    if not access_code or not generated:
        return _fail("접근 코드와 생성된 이미지가 필요합니다.", 400)
    if len(originals) > MAX_IMAGES:
        return _fail(f"원본 이미지는 최대 {MAX_IMAGES}장까지 첨부할 수 있습니다.", 400)

    try:
        submission = services().stores.submissions.create(
            access_code, comment, generated, originals
        )
    except InvalidAccessCode as e:
        current_app.logger.warning(f"잘못된 접근 코드로 제출 시도: {access_code!r}")
        return _fail(e.message, 500)
    return _ok(submission.to_dict(), 201)


@api.route("/submissions/<submission_id>", methods=["DELETE"])
@require_admin
def delete_submission(submission_id):
    services().stores.submissions.delete(_parse_id(submission_id, "제출물"))
    return _ok({"message": "제출물이 삭제되었습니다."})


# ── Design generation ──
@api.route("/designs", methods=["POST"])
def generate_design():
    files = request.files.getlist("images")
    if not files:
        return _fail("제품 이미지를 업로드해주세요.", 400)
    if len(files) > MAX_IMAGES:
        return _fail(f"이미지는 최대 {MAX_IMAGES}장까지 업로드할 수 있습니다.", 400)

    materials = request.form.getlist("materials")
    colors = request.form.getlist("colors")
    if len(materials) != len(colors):
        return _fail("소재와 색상의 개수가 일치해야 합니다.", 400)

    images = [f.read() for f in files]
    result = services().designer.generate(
        images,
        list(zip(materials, colors)),
        finish=request.form.get("finish"),
        description=request.form.get("description"),
        mode=request.form.get("mode") or REDESIGN,
        reasoning=request.form.get("reasoning"),
    )
    return _ok(result.to_dict())


@api.route("/cmf-recommendations", methods=["POST"])
def cmf_recommendation():
    api_key = current_app.config.get("ANTHROPIC_API_KEY", "")
    if not api_key:
        return _fail("서버에 API 키가 설정되지 않았습니다.", 500)

    if request.is_json:
        data = request.get_json(silent=True) or {}
        images = []
    else:
        data = request.form
        images = [f.read() for f in request.files.getlist("images")][:MAX_IMAGES]

    product_name = (data.get("product_name") or "").strip()
    purpose = (data.get("purpose") or "").strip()
    if not product_name or not purpose:
        return _fail("제품명과 용도를 입력해주세요.", 400)

    try:
        advice = recommend_cmf(
            product_name,
            purpose,
            api_key,
            images=images,
            model=current_app.config.get("ADVISOR_MODEL"),
        )
    except (anthropic.APIError, ValueError) as e:
        current_app.logger.error(f"CMF 추천 오류: {e}")
        return _fail("AI 추천 생성 중 오류가 발생했습니다. 잠시 후 다시 시도해주세요.", 500)
    return _ok(advice)


@api.route("/health", methods=["GET"])
def health():
    return _ok({
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": "CMF Studio API",
    })


# ── Error handlers ──
def register_error_handlers(app):
    @app.errorhandler(CmfStudioError)
    def handle_domain_error(e):
        body = {"success": False, "error": e.message}
        if e.code:
            body["code"] = e.code
        if e.status_code >= 500:
            app.logger.error(f"{type(e).__name__}: {e.message}")
        return jsonify(body), e.status_code

    @app.errorhandler(413)
    def request_entity_too_large(e):
        return _fail("파일이 너무 큽니다. 30MB 이하로 업로드해주세요.", 413)

    @app.errorhandler(404)
    def not_found(e):
        return _fail("요청한 경로를 찾을 수 없습니다.", 404)

    @app.errorhandler(405)
    def method_not_allowed(e):
        return _fail("허용되지 않는 메서드입니다.", 405)

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return _fail(e.description, e.code)

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        app.logger.exception(f"처리되지 않은 오류: {e}")
        return _fail("서버 내부 오류가 발생했습니다.", 500)


def seed_defaults():
    if AccessCode.query.first() is not None:
        return
    for code in DEFAULT_CODES:
        db.session.add(AccessCode(code=code))
    for title, description, image_url, code in DEFAULT_RECOMMENDATIONS:
        db.session.add(RecommendedDesign(
            title=title, description=description, image_url=image_url, access_code=code
        ))
    db.session.commit()
    log.info("기본 접근 코드와 추천 디자인을 추가했습니다.")


def create_app(overrides=None) -> Flask:
    app = Flask(__name__)
    app.config.update(load_config())
    app.config.update(overrides or {})

    db.init_app(app)
    CORS(
        app,
        resources={r"/api/*": {"origins": "*"}, r"/uploads/*": {"origins": "*"}},
        methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    image_storage = create_image_storage(app.config)
    with app.app_context():
        db.create_all()
        if app.config.get("SEED_DEFAULTS"):
            seed_defaults()

    app.extensions["cmf_studio"] = Services(
        stores=build_stores(db, image_storage),
        images=image_storage,
        designer=create_designer(app.config),
    )

    app.register_blueprint(api)
    register_error_handlers(app)

    @app.route("/uploads/<path:filename>")
    def uploaded_file(filename):
        return send_from_directory(app.config["UPLOAD_DIR"], filename)

    return app


def close_app(app: Flask) -> None:
    """종료 시 DB 연결을 정리."""
    with app.app_context():
        db.session.remove()
        db.engine.dispose()
    log.info("CMF Studio 서버 종료")


def main():
    app = create_app()
    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    atexit.register(close_app, app)
    app.run(host="0.0.0.0", port=app.config["PORT"])


if __name__ == "__main__":
    main()
