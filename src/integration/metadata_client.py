from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.nadapp.net"
UPLOAD_TIMEOUT = 30.0
SALT_TIMEOUT = 60.0


class MetadataServiceError(RuntimeError):
    """Metadata service request failed or returned an unexpected body."""


@dataclass(frozen=True)
class ImageUpload:
    image_uri: str
    is_nsfw: bool = False


@dataclass(frozen=True)
class TokenMetadata:
    name: str
    symbol: str
    description: str = ""
    website: Optional[str] = None
    twitter: Optional[str] = None
    telegram: Optional[str] = None


@dataclass(frozen=True)
class MinedSalt:
    salt: str
    address: str


class MetadataClient:
    """
    Client for the launch venue's off-chain metadata service.

    Launch flow: upload the image, upload metadata pointing at it, then ask
    the service to mine a deployment salt for the resulting metadata URI.
    Transport failures and 5xx responses are retried with backoff; 4xx
    responses are not.
    """

    def __init__(
        self,
        base_url: str | None = None,
        max_retries: int = 3,
        backoff_seconds: float = 0.5,
    ) -> None:
        self._base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self._max_retries = max_retries
        self._backoff = backoff_seconds
        self._session = requests.Session()

    def _post(self, path: str, timeout: float, **kwargs: Any) -> Dict[str, Any]:
        url = f"{self._base_url}{path}"
        last_error: Optional[Exception] = None
        for attempt in range(self._max_retries):
            start = time.perf_counter()
            try:
                resp = self._session.post(url, timeout=timeout, **kwargs)
            except (requests.Timeout, requests.ConnectionError) as exc:
                last_error = exc
                logger.warning("metadata %s attempt %d failed: %s", path, attempt + 1, exc)
                time.sleep(self._backoff * (2**attempt))
                continue
            logger.info(
                "metadata %s -> %d in %.3fs",
                path,
                resp.status_code,
                time.perf_counter() - start,
            )
            if resp.status_code >= 500:
                last_error = MetadataServiceError(f"HTTP {resp.status_code} from {path}")
                time.sleep(self._backoff * (2**attempt))
                continue
            if resp.status_code >= 400:
                raise MetadataServiceError(
                    f"{path} rejected with HTTP {resp.status_code}: {resp.text[:200]!r}"
                )
            try:
                return resp.json()
            except ValueError as exc:
                raise MetadataServiceError(f"Invalid JSON from {path}: {resp.text!r}") from exc
        raise MetadataServiceError(
            f"{path} failed after {self._max_retries} attempts"
        ) from last_error

    def upload_image(self, image: bytes, content_type: str = "image/png") -> ImageUpload:
        if not image:
            raise ValueError("image must not be empty")
        data = self._post(
            "/metadata/image",
            UPLOAD_TIMEOUT,
            data=image,
            headers={"Content-Type": content_type},
        )
        try:
            return ImageUpload(
                image_uri=str(data["image_uri"]),
                is_nsfw=bool(data.get("is_nsfw", False)),
            )
        except KeyError as exc:
            raise MetadataServiceError(f"Unexpected image response: {data}") from exc

    def upload_metadata(self, image_uri: str, metadata: TokenMetadata) -> str:
        body = {
            "image_uri": image_uri,
            "name": metadata.name,
            "symbol": metadata.symbol,
            "description": metadata.description,
            "website": metadata.website,
            "twitter": metadata.twitter,
            "telegram": metadata.telegram,
        }
        data = self._post("/metadata/metadata", UPLOAD_TIMEOUT, json=body)
        try:
            return str(data["metadata_uri"])
        except KeyError as exc:
            raise MetadataServiceError(f"Unexpected metadata response: {data}") from exc

    def mine_salt(self, creator: str, name: str, symbol: str, metadata_uri: str) -> MinedSalt:
        body = {
            "creator": creator,
            "name": name,
            "symbol": symbol,
            "metadata_uri": metadata_uri,
        }
        data = self._post("/token/salt", SALT_TIMEOUT, json=body)
        try:
            return MinedSalt(salt=str(data["salt"]), address=str(data["address"]))
        except KeyError as exc:
            raise MetadataServiceError(f"Unexpected salt response: {data}") from exc

    def prepare_launch(
        self,
        creator: str,
        image: bytes,
        metadata: TokenMetadata,
        content_type: str = "image/png",
    ) -> tuple[str, MinedSalt]:
        """Run the whole upload flow; returns ``(metadata_uri, salt)``."""
        upload = self.upload_image(image, content_type)
        if upload.is_nsfw:
            logger.warning("image for %s flagged nsfw by the service", metadata.symbol)
        metadata_uri = self.upload_metadata(upload.image_uri, metadata)
        salt = self.mine_salt(creator, metadata.name, metadata.symbol, metadata_uri)
        logger.info("mined salt for %s -> predicted address %s", metadata.symbol, salt.address)
        return metadata_uri, salt
