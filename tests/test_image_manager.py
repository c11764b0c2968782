import pytest
from docker.errors import APIError

from image_manager import (
    delete_image,
    ensure_image,
    image_exists,
    image_reference,
    pull_image,
)
from utils import EngineError, ImagePullError


class TestImageExists:
    """Test cases for image existence checks"""

    def test_present(self, fake_client):
        assert image_exists(fake_client, "redis", "latest") is True

    def test_blank_tag_means_latest(self, fake_client):
        assert image_exists(fake_client, "redis", "") is True
        assert image_reference("redis", "") == "redis:latest"

    def test_absent_is_false_not_error(self, fake_client):
        assert image_exists(fake_client, "redis", "6") is False

    def test_other_errors_propagate(self, fake_client):
        fake_client.image_get_error = APIError("500 Server Error")
        with pytest.raises(EngineError):
            image_exists(fake_client, "redis", "latest")


class TestPullImage:
    """Test cases for pulling images"""

    def test_pull_drains_stream_and_verifies(self, fake_client):
        pull_image(fake_client, "memcached", "")
        assert fake_client.pull_calls == ["memcached:latest"]
        assert fake_client.drained == ["memcached:latest"]
        assert image_exists(fake_client, "memcached", "latest")

    def test_pull_that_leaves_no_image_fails(self, fake_client):
        """Test a pull reporting success without producing the image is an error"""
        fake_client.silent_pulls.add("memcached:latest")
        with pytest.raises(ImagePullError) as exc_info:
            pull_image(fake_client, "memcached", "latest")
        assert exc_info.value.reference == "memcached:latest"
        assert fake_client.drained == ["memcached:latest"]

    def test_pull_of_unknown_repository_fails(self, fake_client):
        fake_client.missing_remote.add("non-existent-image-42:latest")
        with pytest.raises(ImagePullError):
            pull_image(fake_client, "non-existent-image-42", "")

    def test_error_in_stream_fails(self, fake_client):
        fake_client.pull_stream_errors["memcached:latest"] = "unauthorized"
        with pytest.raises(ImagePullError) as exc_info:
            pull_image(fake_client, "memcached", "latest")
        assert "unauthorized" in exc_info.value.message


class TestEnsureImage:
    def test_present_image_not_pulled(self, fake_client):
        assert ensure_image(fake_client, "redis", "latest") is False
        assert fake_client.pull_calls == []

    def test_missing_image_pulled(self, fake_client):
        assert ensure_image(fake_client, "mysql", "8") is True
        assert fake_client.pull_calls == ["mysql:8"]


class TestDeleteImage:
    """Test cases for deleting images"""

    def test_delete_present_image(self, fake_client):
        delete_image(fake_client, "redis", "")
        assert fake_client.removed_images == ["redis:latest"]
        assert image_exists(fake_client, "redis", "latest") is False

    def test_delete_absent_image_is_noop(self, fake_client):
        delete_image(fake_client, "hello-world", "latest")
        assert fake_client.removed_images == []

    def test_pull_exists_delete_round(self, fake_client):
        pull_image(fake_client, "hello-world", "")
        assert image_exists(fake_client, "hello-world", "latest")
        delete_image(fake_client, "hello-world", "latest")
        assert not image_exists(fake_client, "hello-world", "latest")
