"""
Image Manager Module

Existence check, pull and delete for a single image:tag.
"""

import docker
from docker.errors import APIError, ImageNotFound

from models import DEFAULT_TAG
from utils import ImagePullError, handle_engine_errors, log_container_operation, logger


def image_reference(image: str, tag: str = "") -> str:
    """image:tag with a blank tag meaning latest"""
    return f"{image}:{tag or DEFAULT_TAG}"


@handle_engine_errors("image_exists")
def image_exists(client: docker.DockerClient, image: str, tag: str = "") -> bool:
    """Return True if image:tag is present locally"""
    try:
        client.images.get(image_reference(image, tag))
    except ImageNotFound:
        return False
    return True


@handle_engine_errors("pull_image")
def pull_image(client: docker.DockerClient, image: str, tag: str = ""):
    """Pull image:tag, draining the progress stream, and verify it arrived"""
    reference = image_reference(image, tag)
    logger.info("Pulling image", image=reference)

    try:
        stream = client.api.pull(image, tag=tag or DEFAULT_TAG, stream=True, decode=True)
        for chunk in stream:
            if chunk.get("error"):
                raise ImagePullError(reference, chunk["error"])
            logger.debug(
                "Pull progress",
                image=reference,
                status=chunk.get("status"),
                progress=chunk.get("progress"),
                layer=chunk.get("id"),
            )
    except APIError as e:
        # Unknown repositories and denied pulls come back as API errors
        raise ImagePullError(reference, str(e)) from e

    # A pull that reported no error can still leave nothing behind
    if not image_exists(client, image, tag):
        raise ImagePullError(reference)

    log_container_operation("pull_image", "", "success", {"image": reference})


@handle_engine_errors("ensure_image")
def ensure_image(client: docker.DockerClient, image: str, tag: str = "") -> bool:
    """Pull image:tag unless it is already present. Returns True if a pull happened"""
    if image_exists(client, image, tag):
        return False
    pull_image(client, image, tag)
    return True


@handle_engine_errors("delete_image")
def delete_image(client: docker.DockerClient, image: str, tag: str = ""):
    """Remove image:tag from the local machine; absent images are left alone"""
    if not image_exists(client, image, tag):
        return

    reference = image_reference(image, tag)
    client.images.remove(image=reference)
    log_container_operation("delete_image", "", "success", {"image": reference})
