import io
import os
import shutil
import struct
import tempfile
import unittest
import zlib
from unittest.mock import patch

from fastapi.testclient import TestClient
from PIL import Image

from eventboard.app import create_app
from eventboard.config import Settings
from eventboard.db import SqlDbClient
from eventboard.dependencies import IN_MEMORY_DATABASE_URL, get_db_client, get_storage_client
from eventboard.storage import (
    InMemoryStorageClient,
    LocalStorageClient,
    SpacesStorageClient,
)


def _png_bytes(width=20, height=20, color="red"):
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


def _png_header(width, height):
    """A PNG that declares ``width`` x ``height`` but carries almost no pixel data."""

    def chunk(kind, payload):
        crc = zlib.crc32(kind + payload) & 0xFFFFFFFF
        return struct.pack(">I", len(payload)) + kind + payload + struct.pack(">I", crc)

    ihdr = struct.pack(">IIBBBBB", width, height, 1, 0, 0, 0, 0)
    return (
        b"\x89PNG\r\n\x1a\n"
        + chunk(b"IHDR", ihdr)
        + chunk(b"IDAT", zlib.compress(b"\x00"))
        + chunk(b"IEND", b"")
    )


class SubmissionApiTests(unittest.TestCase):
    def setUp(self):
        self.upload_dir = tempfile.mkdtemp()
        self.settings = Settings(_env_file=None, upload_dir=self.upload_dir)
        self.db = SqlDbClient(IN_MEMORY_DATABASE_URL)
        self.storage = LocalStorageClient(root=self.upload_dir)
        app = create_app(self.settings)
        app.dependency_overrides[get_db_client] = lambda: self.db
        app.dependency_overrides[get_storage_client] = lambda: self.storage
        self.client = TestClient(app)

    def tearDown(self):
        shutil.rmtree(self.upload_dir, ignore_errors=True)

    def _submit(self, name="Ada", image=None, filename="photo.png",
                content_type="image/png", extra=None):
        data = {"name": name}
        data.update(extra or {})
        files = {"image": (filename, image or _png_bytes(), content_type)}
        return self.client.post("/api/submit", data=data, files=files)

    def _stored_images(self):
        images_dir = os.path.join(self.upload_dir, "images")
        if not os.path.isdir(images_dir):
            return []
        return os.listdir(images_dir)

    def test_submit_returns_created_submission_with_served_image(self):
        image = _png_bytes()
        response = self._submit(name="  Ada Lovelace ", image=image)
        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertTrue(payload["success"])
        self.assertEqual(payload["message"], "Form submitted successfully")
        data = payload["data"]
        self.assertTrue(data["id"])
        self.assertEqual(data["name"], "Ada Lovelace")
        self.assertEqual(data["storage_type"], "local")
        self.assertTrue(
            data["image_url"].startswith("http://testserver/uploads/images/")
        )
        self.assertNotIn("image_path", data)

        served = self.client.get(data["image_url"])
        self.assertEqual(served.status_code, 200)
        self.assertEqual(served.content, image)

    def test_submit_requires_name(self):
        response = self._submit(name="   ")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            response.json(), {"success": False, "error": "Name is required"}
        )

    def test_submit_requires_image(self):
        response = self.client.post("/api/submit", data={"name": "Ada"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "Image is required")

    def test_submit_rejects_non_image_upload(self):
        response = self._submit(
            image=b"hello", filename="notes.txt", content_type="text/plain"
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            response.json()["error"],
            "Only image files (JPG, PNG, GIF, WebP) are allowed!",
        )
        self.assertEqual(self._stored_images(), [])

    def test_submit_rejects_oversized_dimensions(self):
        self.settings.max_image_width = 10
        self.settings.max_image_height = 10
        response = self._submit(image=_png_bytes(30, 12))
        self.assertEqual(response.status_code, 400)
        self.assertIn("Image dimensions too large", response.json()["error"])
        self.assertIn("Your image: 30x12px", response.json()["error"])
        self.assertEqual(self._stored_images(), [])

    def test_submit_rejects_image_with_too_many_pixels(self):
        response = self._submit(image=_png_header(20000, 20000))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            response.json(),
            {
                "success": False,
                "error": "Image dimensions too large. Maximum allowed: 4000x4000px.",
            },
        )
        self.assertEqual(self._stored_images(), [])

    def test_submit_rejects_undecodable_image(self):
        response = self._submit(image=b"not really a png")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "Invalid image file")

    def test_submit_with_crop_stores_square_jpeg(self):
        self.settings.crop_output_size = 64
        response = self._submit(
            image=_png_bytes(40, 30),
            extra={"crop_x": "5", "crop_y": "5", "crop_width": "20", "crop_height": "20"},
        )
        self.assertEqual(response.status_code, 201)
        stored = self._stored_images()
        self.assertEqual(len(stored), 1)
        self.assertTrue(stored[0].endswith(".jpg"))
        with Image.open(os.path.join(self.upload_dir, "images", stored[0])) as img:
            self.assertEqual(img.format, "JPEG")
            self.assertEqual(img.size, (64, 64))

    def test_submit_rejects_partial_crop(self):
        response = self._submit(extra={"crop_x": "0"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self._stored_images(), [])

    def test_submit_removes_image_when_insert_fails(self):
        with patch.object(
            self.db, "create_submission", side_effect=RuntimeError("disk full")
        ):
            response = self._submit()
        self.assertEqual(response.status_code, 500)
        self.assertEqual(
            response.json(), {"success": False, "error": "Internal server error"}
        )
        self.assertEqual(self._stored_images(), [])

    def test_list_users_newest_first_and_submit_alias(self):
        self._submit(name="First")
        self._submit(name="Second")
        for path in ("/api/users", "/api/submit"):
            response = self.client.get(path)
            self.assertEqual(response.status_code, 200)
            payload = response.json()
            self.assertEqual(payload["count"], 2)
            self.assertEqual(payload["storage_type"], "local")
            self.assertEqual(
                {item["name"] for item in payload["data"]}, {"First", "Second"}
            )

    def test_get_user(self):
        created = self._submit(name="Grace").json()["data"]
        response = self.client.get(f"/api/users/{created['id']}")
        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertEqual(data["name"], "Grace")
        self.assertTrue(data["image_path"].startswith("images/"))

    def test_get_missing_user_returns_404(self):
        response = self.client.get("/api/users/does-not-exist")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(
            response.json(), {"success": False, "error": "User not found"}
        )

    def test_rename_user(self):
        created = self._submit(name="Grace").json()["data"]
        response = self.client.put(
            f"/api/users/{created['id']}", json={"name": "  Grace Hopper "}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["message"], "Name updated successfully")
        self.assertEqual(response.json()["data"]["name"], "Grace Hopper")

        blank = self.client.put(f"/api/users/{created['id']}", json={"name": " "})
        self.assertEqual(blank.status_code, 400)

        missing = self.client.put("/api/users/nope", json={"name": "X"})
        self.assertEqual(missing.status_code, 404)

    def test_clear_users_removes_rows_and_images(self):
        self._submit(name="One")
        self._submit(name="Two")
        self.assertEqual(len(self._stored_images()), 2)

        response = self.client.delete("/api/users")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json(), {"success": True, "message": "Cleared 2 images"}
        )
        self.assertEqual(self._stored_images(), [])
        self.assertEqual(self.client.get("/api/users").json()["count"], 0)

    def test_unknown_api_route(self):
        response = self.client.get("/api/nothing-here")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(
            response.json(), {"success": False, "error": "API route not found"}
        )
        self.assertEqual(self.client.post("/api/nothing-here").status_code, 404)

    def test_health(self):
        response = self.client.get("/api/health")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["status"], "OK")
        self.assertEqual(payload["storage"], "Local Storage")
        self.assertEqual(payload["spaces_bucket"], "N/A")


class ConfigApiTests(unittest.TestCase):
    def setUp(self):
        self.upload_dir = tempfile.mkdtemp()
        self.db = SqlDbClient(IN_MEMORY_DATABASE_URL)
        app = create_app(Settings(_env_file=None, upload_dir=self.upload_dir))
        app.dependency_overrides[get_db_client] = lambda: self.db
        self.client = TestClient(app)

    def tearDown(self):
        shutil.rmtree(self.upload_dir, ignore_errors=True)

    def test_auto_reply_is_seeded(self):
        response = self.client.get("/api/config/auto_reply_message")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["value"], "Thank you for your pledge!")

    def test_missing_key_returns_404(self):
        response = self.client.get("/api/config/unknown")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"], "Config key not found")

    def test_set_value(self):
        response = self.client.post(
            "/api/config/auto_reply_message", json={"value": "Bless you!"}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["value"], "Bless you!")
        fetched = self.client.get("/api/config/auto_reply_message").json()
        self.assertEqual(fetched["value"], "Bless you!")

    def test_set_requires_value(self):
        response = self.client.post("/api/config/greeting", json={})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            response.json(), {"success": False, "error": "Value is required"}
        )


class FrontendServingTests(unittest.TestCase):
    def setUp(self):
        self.static_dir = tempfile.mkdtemp()
        self.upload_dir = tempfile.mkdtemp()
        with open(os.path.join(self.static_dir, "index.html"), "w") as f:
            f.write("<html>board</html>")
        with open(os.path.join(self.static_dir, "app.js"), "w") as f:
            f.write("console.log('hi')")
        settings = Settings(
            _env_file=None,
            serve_frontend=True,
            static_dir=self.static_dir,
            upload_dir=self.upload_dir,
        )
        app = create_app(settings)
        app.dependency_overrides[get_db_client] = lambda: SqlDbClient(
            IN_MEMORY_DATABASE_URL
        )
        self.client = TestClient(app)

    def tearDown(self):
        shutil.rmtree(self.static_dir, ignore_errors=True)
        shutil.rmtree(self.upload_dir, ignore_errors=True)

    def test_serves_assets_and_falls_back_to_index(self):
        self.assertIn("console.log", self.client.get("/app.js").text)
        self.assertIn("board", self.client.get("/gallery/42").text)
        self.assertIn("board", self.client.get("/").text)

    def test_api_paths_are_not_swallowed(self):
        response = self.client.get("/api/missing")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"], "API route not found")
        self.assertEqual(self.client.get("/api/health").json()["status"], "OK")

        for method in ("post", "put", "patch", "delete"):
            response = getattr(self.client, method)("/api/nope")
            self.assertEqual(response.status_code, 404, method)
            self.assertEqual(
                response.json(), {"success": False, "error": "API route not found"}
            )
        self.assertEqual(self.client.post("/api/votes/clear").status_code, 200)

class ClientWiringTests(unittest.TestCase):
    """Clients are built from the settings passed to ``create_app``."""

    def setUp(self):
        self.upload_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.upload_dir, ignore_errors=True)

    def _submit(self, client):
        files = {"image": ("photo.png", _png_bytes(), "image/png")}
        return client.post("/api/submit", data={"name": "Ada"}, files=files)

    def test_in_memory_backends(self):
        app = create_app(
            Settings(
                _env_file=None, use_in_memory_backends=True, upload_dir=self.upload_dir
            )
        )
        client = TestClient(app)
        response = self._submit(client)
        self.assertEqual(response.status_code, 201)
        self.assertTrue(
            response.json()["data"]["image_url"].startswith(
                "https://example.test/storage/images/"
            )
        )
        self.assertIsInstance(app.state.storage_client, InMemoryStorageClient)
        self.assertEqual(client.get("/api/users").json()["count"], 1)

    @patch("eventboard.storage.boto3.client")
    def test_spaces_settings_select_spaces_storage(self, mock_client):
        app = create_app(
            Settings(
                _env_file=None,
                database_url=IN_MEMORY_DATABASE_URL,
                use_spaces=True,
                spaces_bucket="board",
                spaces_endpoint="nyc3.digitaloceanspaces.com",
            )
        )
        response = self._submit(TestClient(app))
        self.assertEqual(response.status_code, 201)
        data = response.json()["data"]
        self.assertEqual(data["storage_type"], "spaces")
        self.assertTrue(
            data["image_url"].startswith("https://board.nyc3.digitaloceanspaces.com/images/")
        )
        self.assertIsInstance(app.state.storage_client, SpacesStorageClient)
        mock_client.return_value.put_object.assert_called_once()



if __name__ == "__main__":
    unittest.main()
