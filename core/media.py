"""
media.py -- Profile image storage on Cloudinary.

Talks to the Cloudinary REST upload API directly with requests; a signed
request needs nothing more than SHA-1 over the sorted parameters plus the API
secret. Upload returns the https URL stored on the account; delete takes that
same URL and derives the public id from it.

Failures never raise: upload returns None and delete returns False, with a
warning logged. Route handlers turn a failed upload into a 400.
"""

import hashlib
import logging
import re
import time
from typing import Optional

import requests

logger = logging.getLogger("campusdesk.media")

CLOUDINARY_API = "https://api.cloudinary.com/v1_1/{cloud_name}/image/{action}"

# Matches the path after /upload/: optional transformation-free version
# segment, then the public id, then the extension.
_PUBLIC_ID_RE = re.compile(r"/upload/(?:v\d+/)?(?P<public_id>.+?)(?:\.[A-Za-z0-9]+)?$")

_session = requests.Session()
_session.max_redirects = 3


def sign_params(params: dict, api_secret: str) -> str:
    """Return the Cloudinary request signature for params.

    Parameters are sorted by name, joined as k=v with '&', the secret is
    appended, and the whole string is SHA-1 hashed. Empty values are skipped.
    """
    to_sign = "&".join(f"{k}={params[k]}" for k in sorted(params) if params[k] not in (None, ""))
    return hashlib.sha1((to_sign + api_secret).encode("utf-8")).hexdigest()  # noqa: S324 # nosec B324


def public_id_from_url(url: str) -> Optional[str]:
    """Extract the public id from a Cloudinary delivery URL, or None if it is not one."""
    if not url:
        return None
    match = _PUBLIC_ID_RE.search(url.split("?", 1)[0])
    return match.group("public_id") if match else None


class MediaStore:
    """Signed upload/destroy client for one Cloudinary cloud.

    Usage:
        media = MediaStore("demo", "123", "secret", folder="campusdesk")
        url = media.upload(raw_bytes, "avatar.png")
        media.delete(url)
    """

    def __init__(self, cloud_name: str, api_key: str, api_secret: str, folder: str = "") -> None:
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.folder = folder

    @property
    def enabled(self) -> bool:
        return bool(self.cloud_name and self.api_key and self.api_secret)

    def _signed(self, params: dict) -> dict:
        params = dict(params, timestamp=int(time.time()))
        params["signature"] = sign_params(params, self.api_secret)
        params["api_key"] = self.api_key
        return params

    def _url(self, action: str) -> str:
        return CLOUDINARY_API.format(cloud_name=self.cloud_name, action=action)

    def upload(self, content: bytes, filename: str) -> Optional[str]:
        """Upload an image and return its secure URL, or None on any failure."""
        if not self.enabled:
            logger.warning("Media upload skipped: Cloudinary is not configured")
            return None
        data = self._signed({"folder": self.folder} if self.folder else {})
        try:
            resp = _session.post(self._url("upload"), data=data, files={"file": (filename, content)}, timeout=30)
            resp.raise_for_status()
            return resp.json().get("secure_url")
        except (requests.RequestException, ValueError) as e:
            logger.warning("Media upload failed for %s: %s", filename, e)
            return None

    def delete(self, url: str) -> bool:
        """Destroy the image behind url. Returns True when Cloudinary reports 'ok'."""
        public_id = public_id_from_url(url)
        if not self.enabled or public_id is None:
            return False
        try:
            resp = _session.post(self._url("destroy"), data=self._signed({"public_id": public_id}), timeout=10)
            resp.raise_for_status()
            return resp.json().get("result") == "ok"
        except (requests.RequestException, ValueError) as e:
            logger.warning("Media delete failed for %s: %s", public_id, e)
            return False
