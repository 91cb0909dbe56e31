"""Flask REST API tests."""

import base64
import io
from unittest.mock import patch

import pytest

from conftest import make_noise_png, make_png
from designer import DesignRequestBuilder
from errors import DuplicateError, InvalidAccessCode, MissingCredential
from server import close_app, create_app


def _basic(user, password):
    token = base64.b64encode(f"{user}:{password}".encode()).decode()
    return {"Authorization": f"Basic {token}"}


class FakeGenerator:
    def __init__(self):
        self.calls = []

    def __call__(self, images, instruction):
        self.calls.append((images, instruction))
        return [(b"generated", "image/png")], "새 디자인"


class TestEnvelope:
    def test_health(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["success"] is True
        assert body["data"]["status"] == "OK"

    def test_unknown_route(self, client):
        resp = client.get("/api/nope")
        assert resp.status_code == 404
        assert resp.get_json()["success"] is False

    def test_method_not_allowed(self, client):
        resp = client.put("/api/access-codes", json={"code": "X"})
        assert resp.status_code == 405
        body = resp.get_json()
        assert body["success"] is False
        assert body["error"]

    def test_cors_preflight(self, client):
        resp = client.options(
            "/api/access-codes/validate",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "POST",
            },
        )
        assert resp.status_code == 200
        assert resp.headers["Access-Control-Allow-Origin"] == "*"

    def test_request_too_large(self, app, client):
        app.config["MAX_CONTENT_LENGTH"] = 1024
        resp = client.post(
            "/api/designs",
            data={"images": [(io.BytesIO(b"x" * 4096), "big.png")]},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 413
        assert resp.get_json()["success"] is False

    def test_unexpected_error_is_generic(self, app, client):
        codes = app.extensions["cmf_studio"].stores.access_codes
        with patch.object(codes, "validate", side_effect=RuntimeError("db exploded")):
            resp = client.post("/api/access-codes/validate", json={"code": "X"})
        assert resp.status_code == 500
        body = resp.get_json()
        assert body["success"] is False
        assert "exploded" not in body["error"]


class TestAccessCodes:
    def test_create_validate_and_duplicate(self, client):
        resp = client.post("/api/access-codes", json={"code": "RAONIX-2024"})
        assert resp.status_code == 201
        assert resp.get_json()["data"]["code"] == "RAONIX-2024"

        resp = client.post("/api/access-codes", json={"code": "RAONIX-2024"})
        assert resp.status_code == 400
        body = resp.get_json()
        assert body["error"] == DuplicateError.message
        assert body["code"] == DuplicateError.code

        resp = client.post("/api/access-codes/validate", json={"code": " RAONIX-2024 "})
        assert resp.get_json()["data"] == {"isValid": True}
        resp = client.post("/api/access-codes/validate", json={"code": "raonix-2024"})
        assert resp.get_json()["data"] == {"isValid": False}

    def test_validate_requires_code(self, client):
        resp = client.post("/api/access-codes/validate", json={})
        assert resp.status_code == 400

    def test_create_requires_code(self, client):
        assert client.post("/api/access-codes", json={"code": "   "}).status_code == 400
        assert client.post("/api/access-codes", json={}).status_code == 400

    def test_list_and_deactivate(self, client):
        client.post("/api/access-codes", json={"code": "A"})
        client.post("/api/access-codes", json={"code": "B"})
        resp = client.post("/api/access-codes/B/deactivate")
        assert resp.status_code == 200

        codes = client.get("/api/access-codes").get_json()["data"]
        assert {c["code"]: c["is_active"] for c in codes} == {"A": True, "B": False}
        active = client.get("/api/access-codes?active=true").get_json()["data"]
        assert [c["code"] for c in active] == ["A"]

    def test_delete(self, client):
        client.post("/api/access-codes", json={"code": "GONE"})
        assert client.delete("/api/access-codes/GONE").status_code == 200
        assert client.delete("/api/access-codes/GONE").status_code == 404


class TestRecommendations:
    def _upload(self, client, code="RAONIX-2024", title="Red Sneaker", image=None):
        return client.post(
            "/api/recommendations",
            data={
                "title": title,
                "description": "glossy red",
                "access_code": code,
                "image": (io.BytesIO(image or make_png()), "red.png"),
            },
            content_type="multipart/form-data",
        )

    def test_create_and_list_by_code(self, client):
        client.post("/api/access-codes", json={"code": "RAONIX-2024"})
        resp = self._upload(client)
        assert resp.status_code == 201
        design = resp.get_json()["data"]
        assert isinstance(design["id"], int)

        listed = client.get("/api/recommendations?accessCode=RAONIX-2024").get_json()["data"]
        assert [d["id"] for d in listed] == [design["id"]]
        assert client.get("/api/recommendations?accessCode=OTHER").get_json()["data"] == []

    def test_list_requires_code(self, client):
        assert client.get("/api/recommendations").status_code == 400

    def test_create_with_unknown_code(self, client):
        resp = self._upload(client, code="MISSING")
        assert resp.status_code == 400
        assert resp.get_json()["error"] == InvalidAccessCode.message

    def test_create_requires_image(self, client):
        client.post("/api/access-codes", json={"code": "C"})
        resp = client.post(
            "/api/recommendations",
            data={"title": "t", "description": "d", "access_code": "C"},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 400

    def test_create_rejects_non_image(self, client):
        client.post("/api/access-codes", json={"code": "C"})
        resp = self._upload(client, code="C", image=b"plain text")
        assert resp.status_code == 400

    def test_delete_ids(self, client):
        client.post("/api/access-codes", json={"code": "C"})
        design_id = self._upload(client, code="C").get_json()["data"]["id"]
        assert client.delete("/api/recommendations/abc").status_code == 400
        assert client.delete("/api/recommendations/0").status_code == 400
        assert client.delete(f"/api/recommendations/{design_id}").status_code == 200
        assert client.delete(f"/api/recommendations/{design_id}").status_code == 404

    def test_deleting_code_removes_its_designs(self, client):
        client.post("/api/access-codes", json={"code": "C"})
        self._upload(client, code="C")
        self._upload(client, code="C", title="Second")
        client.delete("/api/access-codes/C")
        assert client.get("/api/recommendations?accessCode=C").get_json()["data"] == []
        all_designs = client.get("/api/recommendations/all?includeInactive=true")
        assert all_designs.get_json()["data"] == []


class TestSubmissions:
    def test_json_submission(self, client):
        client.post("/api/access-codes", json={"code": "C"})
        resp = client.post("/api/submissions", json={
            "access_code": "C",
            "comment": "검토 부탁드립니다",
            "generated_image_url": "https://example.com/gen.png",
            "original_images": ["https://example.com/a.png", "https://example.com/b.png"],
        })
        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["original_images"] == [
            "https://example.com/a.png",
            "https://example.com/b.png",
        ]

        listed = client.get("/api/submissions").get_json()["data"]
        assert listed[0]["comment"] == "검토 부탁드립니다"

    def test_multipart_submission(self, client, png):
        client.post("/api/access-codes", json={"code": "C"})
        resp = client.post(
            "/api/submissions",
            data={
                "access_code": "C",
                "generated_image_base64": base64.b64encode(png).decode(),
                "originalImages": [
                    (io.BytesIO(make_png("red")), "a.png"),
                    (io.BytesIO(make_png("blue")), "b.png"),
                ],
            },
            content_type="multipart/form-data",
        )
        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["comment"] == ""
        assert data["generated_image_url"].startswith("data:image/png;base64,")
        assert len(data["original_images"]) == 2

    def test_large_generated_image_as_file_part(self, client):
        generated = make_noise_png()
        assert len(generated) > 1_000_000
        client.post("/api/access-codes", json={"code": "C"})
        resp = client.post(
            "/api/submissions",
            data={
                "access_code": "C",
                "comment": "",
                "generatedImage": (io.BytesIO(generated), "generated.png"),
                "originalImages": [(io.BytesIO(make_png()), "a.png")],
            },
            content_type="multipart/form-data",
        )
        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert base64.b64decode(data["generated_image_url"].split(",", 1)[1]) == generated
        assert len(data["original_images"]) == 1

    def test_invalid_code_is_server_error(self, client):
        resp = client.post("/api/submissions", json={
            "access_code": "BAD",
            "generated_image_url": "https://example.com/gen.png",
        })
        assert resp.status_code == 500
        assert resp.get_json()["error"] == InvalidAccessCode.message
        assert client.get("/api/submissions").get_json()["data"] == []

    def test_missing_fields(self, client):
        resp = client.post("/api/submissions", json={"access_code": "C"})
        assert resp.status_code == 400

    def test_too_many_originals(self, client):
        client.post("/api/access-codes", json={"code": "C"})
        resp = client.post("/api/submissions", json={
            "access_code": "C",
            "generated_image_url": "https://example.com/gen.png",
            "original_images": [f"https://example.com/{i}.png" for i in range(4)],
        })
        assert resp.status_code == 400

    def test_submission_survives_code_deletion(self, client):
        client.post("/api/access-codes", json={"code": "C"})
        client.post("/api/submissions", json={
            "access_code": "C",
            "generated_image_url": "https://example.com/gen.png",
        })
        client.delete("/api/access-codes/C")
        listed = client.get("/api/submissions").get_json()["data"]
        assert [s["access_code"] for s in listed] == ["C"]

    def test_delete(self, client):
        client.post("/api/access-codes", json={"code": "C"})
        sub = client.post("/api/submissions", json={
            "access_code": "C",
            "generated_image_url": "https://example.com/gen.png",
        }).get_json()["data"]
        assert client.delete(f"/api/submissions/{sub['id']}").status_code == 200
        assert client.delete(f"/api/submissions/{sub['id']}").status_code == 404
        assert client.delete("/api/submissions/x").status_code == 400


class TestDesigns:
    def _post(self, client, images, materials=("플라스틱",), colors=("#007aff",), **extra):
        data = {
            "images": [(io.BytesIO(img), f"p{i}.png") for i, img in enumerate(images)],
            "materials": list(materials),
            "colors": list(colors),
        }
        data.update(extra)
        return client.post("/api/designs", data=data, content_type="multipart/form-data")

    def test_generate(self, app, client, png):
        generator = FakeGenerator()
        app.extensions["cmf_studio"].designer = DesignRequestBuilder(generator, timeout=5)
        resp = self._post(client, [png, png], finish="무광")
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert base64.b64decode(data["images"][0]) == b"generated"
        assert data["explanation"] == "새 디자인"
        assert len(generator.calls[0][0]) == 2
        assert "'무광'" in generator.calls[0][1]

    def test_blueprint_mode(self, app, client, png):
        generator = FakeGenerator()
        app.extensions["cmf_studio"].designer = DesignRequestBuilder(generator, timeout=5)
        resp = self._post(client, [png], mode="blueprint", reasoning="미니멀 트렌드")
        assert resp.status_code == 200
        assert generator.calls[0][1].startswith("Convert this blueprint")
        assert "미니멀 트렌드" in resp.get_json()["data"]["explanation"]

    def test_unknown_mode(self, app, client, png):
        app.extensions["cmf_studio"].designer = DesignRequestBuilder(FakeGenerator())
        resp = self._post(client, [png], mode="sketch")
        assert resp.status_code == 400

    def test_missing_credential(self, client, png):
        resp = self._post(client, [png])
        assert resp.status_code == 500
        body = resp.get_json()
        assert body["code"] == MissingCredential.code
        assert body["error"] == MissingCredential.message

    def test_requires_images(self, client):
        resp = client.post(
            "/api/designs",
            data={"materials": ["플라스틱"], "colors": ["#007aff"]},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 400

    def test_mismatched_pairs(self, client, png):
        resp = self._post(client, [png], materials=("플라스틱", "반투명 유리"))
        assert resp.status_code == 400

    def test_bad_color(self, app, client, png):
        app.extensions["cmf_studio"].designer = DesignRequestBuilder(FakeGenerator())
        resp = self._post(client, [png], colors=("blue",))
        assert resp.status_code == 400


class TestCmfRecommendations:
    ADVICE = {
        "material": "브러시드 알루미늄",
        "color": "#2E8B57",
        "finish": "무광",
        "description": "차분한 미니멀",
        "reasoning": "트렌드 반영",
    }

    def test_requires_api_key(self, client):
        resp = client.post(
            "/api/cmf-recommendations", json={"product_name": "텀블러", "purpose": "캠핑"}
        )
        assert resp.status_code == 500

    def test_success(self, app, client):
        app.config["ANTHROPIC_API_KEY"] = "test-key"
        with patch("server.recommend_cmf", return_value=self.ADVICE) as mocked:
            resp = client.post(
                "/api/cmf-recommendations",
                json={"product_name": "텀블러", "purpose": "캠핑"},
            )
        assert resp.status_code == 200
        assert resp.get_json()["data"] == self.ADVICE
        args = mocked.call_args
        assert args.args[:3] == ("텀블러", "캠핑", "test-key")

    def test_requires_fields(self, app, client):
        app.config["ANTHROPIC_API_KEY"] = "test-key"
        resp = client.post("/api/cmf-recommendations", json={"product_name": "텀블러"})
        assert resp.status_code == 400

    def test_bad_ai_response(self, app, client):
        app.config["ANTHROPIC_API_KEY"] = "test-key"
        with patch("server.recommend_cmf", side_effect=ValueError("JSON 파싱 실패")):
            resp = client.post(
                "/api/cmf-recommendations",
                json={"product_name": "텀블러", "purpose": "캠핑"},
            )
        assert resp.status_code == 500
        assert resp.get_json()["success"] is False


class TestAdminAuth:
    def test_admin_routes_need_password(self, app, client):
        app.config["ADMIN_PASSWORD"] = "secret"
        assert client.get("/api/access-codes").status_code == 401
        assert client.get("/api/access-codes", headers=_basic("admin", "wrong")).status_code == 401
        assert client.get("/api/access-codes", headers=_basic("admin", "secret")).status_code == 200

    def test_public_routes_stay_open(self, app, client):
        app.config["ADMIN_PASSWORD"] = "secret"
        assert client.post("/api/access-codes/validate", json={"code": "X"}).status_code == 200
        assert client.get("/api/health").status_code == 200


class TestSeedAndUploads:
    @pytest.fixture
    def disk_app(self, tmp_path):
        app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite://",
            "IMAGE_STORAGE": "disk",
            "UPLOAD_DIR": str(tmp_path / "uploads"),
            "SEED_DEFAULTS": True,
            "ADMIN_PASSWORD": "",
            "GEMINI_API_KEY": "",
            "ANTHROPIC_API_KEY": "",
        })
        yield app
        close_app(app)

    def test_seeded_defaults(self, disk_app):
        client = disk_app.test_client()
        for code in ("RAONIX-2024", "PREMIUM-USER", "DEMO-ACCESS"):
            resp = client.post("/api/access-codes/validate", json={"code": code})
            assert resp.get_json()["data"]["isValid"] is True
        designs = client.get("/api/recommendations?accessCode=RAONIX-2024").get_json()["data"]
        assert len(designs) == 2

    def test_uploaded_image_is_served(self, disk_app, png):
        client = disk_app.test_client()
        resp = client.post(
            "/api/recommendations",
            data={
                "title": "t",
                "description": "d",
                "access_code": "DEMO-ACCESS",
                "image": (io.BytesIO(png), "x.png"),
            },
            content_type="multipart/form-data",
        )
        url = resp.get_json()["data"]["image_url"]
        assert url.startswith("/uploads/recommendation-")

        served = client.get(url)
        assert served.status_code == 200
        assert served.data == png
        served.close()
