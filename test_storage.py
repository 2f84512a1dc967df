from io import BytesIO
from unittest.mock import patch

from google.api_core.exceptions import NotFound

import storage


class TestPaths:
    def test_safe_file_name(self):
        assert storage.safe_file_name("my report (final).pdf") == "my_report__final_.pdf"

    def test_course_material_uses_title_when_given(self):
        assert (
            storage.course_material_path("c1", "slides.v2.pdf", title="Week 1: Intro")
            == "courses/c1/materials/Week_1__Intro.pdf"
        )
        assert storage.course_material_path("c1", "my slides.pdf") == "courses/c1/materials/my_slides.pdf"

    @patch("storage._millis", return_value=1700000000000)
    def test_timestamped_paths(self, mock_millis):
        assert (
            storage.submission_path("c1", "a1", "u1", "essay 1.docx")
            == "courses/c1/assessments/a1/submissions/u1/1700000000000_essay_1.docx"
        )
        assert storage.thumbnail_path("cover.png") == "courses/thumbnails/1700000000000_cover.png"

    def test_profile_image_keeps_extension(self):
        assert storage.profile_image_path("u1", "me.jpeg") == "users/u1/profile.jpeg"


class TestUpload:
    def test_upload_returns_public_url(self, bucket):
        fileobj = BytesIO(b"data")

        url = storage.upload_course_thumbnail(bucket, fileobj, "cover.png", "image/png")

        blob = bucket.blob.return_value
        assert url == "https://storage.example.com/blob"
        assert bucket.blob.call_args.args[0].startswith("courses/thumbnails/")
        blob.upload_from_file.assert_called_once_with(fileobj, content_type="image/png")
        blob.make_public.assert_called_once_with()

    @patch("storage.UPLOAD_PUBLIC", False)
    def test_private_uploads_stay_private(self, bucket):
        storage.upload_profile_image(bucket, "u1", BytesIO(b"img"), "me.png")
        bucket.blob.assert_called_once_with("users/u1/profile.png")
        bucket.blob.return_value.make_public.assert_not_called()


class TestDelete:
    def test_delete_file(self, bucket):
        storage.delete_file(bucket, "courses/c1/materials/Slides.pdf")
        bucket.blob.assert_called_once_with("courses/c1/materials/Slides.pdf")
        bucket.blob.return_value.delete.assert_called_once_with()

    def test_path_from_public_url(self, bucket):
        bucket.name = "lms-bucket"
        url = "https://storage.googleapis.com/lms-bucket/courses/c1/materials/Week%201.pdf"

        assert storage.blob_path_from_url(bucket, url) == "courses/c1/materials/Week 1.pdf"
        assert storage.blob_path_from_url(bucket, "https://example.com/video.mp4") is None
        assert storage.blob_path_from_url(bucket, "") is None

    def test_foreign_links_are_not_deleted(self, bucket):
        bucket.name = "lms-bucket"
        assert not storage.delete_file_at_url(bucket, "https://youtu.be/abc")
        bucket.blob.assert_not_called()

    def test_missing_blob_is_tolerated(self, bucket):
        bucket.name = "lms-bucket"
        bucket.blob.return_value.delete.side_effect = NotFound("gone")

        url = "https://storage.googleapis.com/lms-bucket/users/u1/profile.png"
        assert storage.delete_file_at_url(bucket, url)
        bucket.blob.assert_called_once_with("users/u1/profile.png")
